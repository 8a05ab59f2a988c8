"""Configuration management with recognized YAML options.

Timeouts, ports and paths are operational tuning, so they come from a YAML
file instead of being hardcoded. Only the options below are recognized;
anything else is rejected so typos don't silently fall back to defaults.

Example crossrun.yaml:

    discovery:
      timeout: 5
    transport:
      connect_timeout: 20
      remote_dir: /tmp/crossrun
    emulator:
      memory: 4096
"""

import yaml
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from crossrun.core.protocols import ConfigLoader, EnvironmentProvider, FileSystemService
from crossrun.exceptions import ConfigurationError

CONFIG_ENV_VAR = "CROSSRUN_CONFIG"
LOCAL_CONFIG_NAME = "crossrun.yaml"


@dataclass
class DiscoveryConfig:
    method: str = "broadcast"
    port: int = 33340
    broadcast_address: str = "255.255.255.255"
    timeout: float = 2.0
    tool: List[str] = field(default_factory=list)


@dataclass
class TransportConfig:
    user: str = "fuchsia"
    port: int = 22
    connect_timeout: float = 10.0
    remote_dir: str = "/tmp/crossrun"
    strict_host_key_checking: bool = False
    device_address: Optional[str] = None


@dataclass
class EmulatorConfig:
    memory: int = 2048
    cpus: int = 4
    interface: str = "qemu"
    host_address: str = "192.168.3.1/24"
    start_timeout: float = 30.0
    kernel_image: str = "zircon.bin"
    boot_image: str = "fuchsia.zbi"
    extra_args: List[str] = field(default_factory=list)


@dataclass
class BuildConfig:
    tool: str = "cargo"
    strip: bool = True


@dataclass
class DriverConfig:
    remote_dir: str = "/system/driver"
    load_command: str = "dm add-driver {path}"


@dataclass
class CrossrunConfig:
    """All recognized options, with defaults."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    emulator: EmulatorConfig = field(default_factory=EmulatorConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    driver: DriverConfig = field(default_factory=DriverConfig)
    source: Optional[str] = None


SECTIONS = {
    "discovery": DiscoveryConfig,
    "transport": TransportConfig,
    "emulator": EmulatorConfig,
    "build": BuildConfig,
    "driver": DriverConfig,
}


def _coerce(section: str, key: str, value: Any, default: Any) -> Any:
    """Check value against the type of the default; ints are accepted for floats."""
    if value is None:
        return value
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(default, list):
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return list(value)
    elif isinstance(value, str):
        return value

    raise ConfigurationError(
        f"Invalid value for {section}.{key}: {value!r} "
        f"(expected {type(default).__name__ if default is not None else 'str'})"
    )


def parse_config(data: Dict[str, Any], source: Optional[str] = None) -> CrossrunConfig:
    """Build a CrossrunConfig from parsed YAML, rejecting unknown options."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {source} must contain a mapping", path=source)

    unknown_sections = sorted(set(data) - set(SECTIONS))
    if unknown_sections:
        raise ConfigurationError(
            f"Unknown config section(s) in {source}: {', '.join(unknown_sections)}\n"
            f"Recognized sections: {', '.join(SECTIONS)}",
            path=source,
        )

    config = CrossrunConfig(source=source)
    for section, section_cls in SECTIONS.items():
        values = data.get(section) or {}
        if not isinstance(values, dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping", path=source)

        defaults = section_cls()
        known = {f.name for f in fields(section_cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown option(s) in section '{section}': {', '.join(unknown)}\n"
                f"Recognized options: {', '.join(sorted(known))}",
                path=source,
            )

        for key, value in values.items():
            setattr(defaults, key, _coerce(section, key, value, getattr(defaults, key)))
        setattr(config, section, defaults)

    if config.discovery.method not in ("broadcast", "tool"):
        raise ConfigurationError(
            f"discovery.method must be 'broadcast' or 'tool', got '{config.discovery.method}'",
            path=source,
        )
    if config.discovery.method == "tool" and not config.discovery.tool:
        raise ConfigurationError(
            "discovery.method is 'tool' but discovery.tool is empty",
            path=source,
        )

    return config


def find_config_path(
    fs: FileSystemService,
    env: EnvironmentProvider,
    explicit_path: Optional[str] = None,
) -> Optional[str]:
    """Locate the config file: explicit > $CROSSRUN_CONFIG > ./crossrun.yaml > ~/.crossrun."""
    if explicit_path:
        if not fs.is_file(explicit_path):
            raise ConfigurationError(f"Config file not found: {explicit_path}", path=explicit_path)
        return explicit_path

    env_path = env.get_environ().get(CONFIG_ENV_VAR)
    if env_path:
        if not fs.is_file(env_path):
            raise ConfigurationError(
                f"{CONFIG_ENV_VAR} points to a missing file: {env_path}", path=env_path
            )
        return env_path

    for candidate in (env.get_cwd() / LOCAL_CONFIG_NAME,
                      env.get_home() / ".crossrun" / "config.yaml"):
        if fs.is_file(candidate):
            return str(candidate)
    return None


def load_config(
    loader: ConfigLoader,
    fs: FileSystemService,
    env: EnvironmentProvider,
    explicit_path: Optional[str] = None,
) -> CrossrunConfig:
    """Load configuration; no file at all means every default applies."""
    path = find_config_path(fs, env, explicit_path)
    if path is None:
        return CrossrunConfig()

    try:
        data = loader.load_yaml(path)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}", path=path) from e

    return parse_config(data or {}, source=str(Path(path)))
