"""
Target OS build tree layout.

Everything the cross toolchain needs lives at fixed places inside the
target OS build output tree (the "root"):

    <root>/out/<release|debug>-<cpu>/                 target output dir
    <root>/out/<...>/ssh-keys/id_ed25519               device credentials
    <root>/out/build-zircon/build-user-<cpu>/sysroot   C sysroot
    <root>/buildtools/<linux-x64|mac-x64>/clang/bin    clang toolchain
    <root>/.config                                     build variant/arch
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from crossrun.core.protocols import FileSystemService, EnvironmentProvider
from crossrun.exceptions import ConfigurationError
from crossrun.sdk.profile import BuildProfile

ROOT_ENV_VAR = "CROSSRUN_ROOT"


@dataclass(frozen=True)
class TargetLayout:
    """Paths derived from {root, profile, host system}. No I/O."""

    root: Path
    profile: BuildProfile
    host_system: str = "Linux"

    @property
    def target_out_dir(self) -> Path:
        return self.root / "out" / self.profile.out_dir_name

    @property
    def sysroot(self) -> Path:
        return (self.root / "out" / "build-zircon"
                / f"build-user-{self.profile.zircon_cpu}" / "sysroot")

    @property
    def platform_name(self) -> str:
        return "mac-x64" if self.host_system == "Darwin" else "linux-x64"

    @property
    def toolchain(self) -> Path:
        return self.root / "buildtools" / self.platform_name / "clang"

    @property
    def toolchain_bin(self) -> Path:
        return self.toolchain / "bin"

    @property
    def clang(self) -> Path:
        return self.toolchain_bin / "clang"

    @property
    def clang_cpp(self) -> Path:
        return self.toolchain_bin / "clang++"

    @property
    def archiver(self) -> Path:
        return self.toolchain_bin / "llvm-ar"

    @property
    def ranlib(self) -> Path:
        return self.toolchain_bin / "llvm-ranlib"

    @property
    def linker(self) -> Path:
        return self.toolchain_bin / "llvm-lld"

    @property
    def strip_tool(self) -> Path:
        return self.toolchain_bin / "llvm-objcopy"

    @property
    def rust_bin(self) -> Path:
        return self.root / "buildtools" / self.platform_name / "rust" / "bin"

    @property
    def shared_libs_dir(self) -> Path:
        return self.target_out_dir / f"{self.profile.target_cpu}-shared"

    @property
    def ssh_keys_dir(self) -> Path:
        return self.target_out_dir / "ssh-keys"

    @property
    def ssh_key(self) -> Path:
        return self.ssh_keys_dir / "id_ed25519"

    @property
    def ssh_config(self) -> Path:
        return self.ssh_keys_dir / "ssh_config"


def possible_target_out_dir(fs: FileSystemService, root: Path,
                            profile: BuildProfile) -> Optional[Path]:
    """Return root's output dir for profile if it exists."""
    out_dir = TargetLayout(root, profile).target_out_dir
    return out_dir if fs.exists(out_dir) else None


def find_target_root(fs: FileSystemService, env: EnvironmentProvider,
                     profile: BuildProfile) -> Path:
    """
    Locate the target OS build tree.

    CROSSRUN_ROOT wins when set (and must be a directory). Otherwise walk up
    from the working directory to the first directory holding an output dir
    for this profile.

    Raises:
        ConfigurationError: If neither yields a build tree
    """
    root_value = env.get_environ().get(ROOT_ENV_VAR)
    if root_value:
        root = Path(root_value)
        if not fs.is_dir(root):
            raise ConfigurationError(
                f"{ROOT_ENV_VAR} is set to '{root_value}' but that path does not "
                f"point to a directory.",
                path=root_value,
            )
        return root

    path = env.get_cwd()
    for candidate in [path, *path.parents]:
        if possible_target_out_dir(fs, candidate, profile) is not None:
            return candidate

    raise ConfigurationError(
        f"{ROOT_ENV_VAR} not set and current directory is not in a build tree with "
        f"a {profile.out_dir_name} build.\n"
        f"Set {ROOT_ENV_VAR} to point to a target OS tree with a "
        f"{profile.out_dir_name} build."
    )


@dataclass
class BuildConfig:
    """Values read from the build tree's .config file."""

    build_dir: str = ""
    variant: str = ""
    arch: str = ""
    zircon_project: str = ""
    raw: Dict[str, str] = field(default_factory=dict)

    @property
    def is_release(self) -> bool:
        return self.variant != "debug"

    @property
    def target_cpu(self) -> Optional[str]:
        return {"x64": "x64", "x86-64": "x64", "arm64": "arm64"}.get(self.arch)


def read_build_config(fs: FileSystemService, root: Path) -> Optional[BuildConfig]:
    """Parse <root>/.config (KEY="value" lines). Returns None when absent."""
    config_path = root / ".config"
    if not fs.exists(config_path):
        return None

    values = {}
    for line in fs.read_file(config_path).splitlines():
        parts = line.split("=")
        if len(parts) == 2:
            values[parts[0].strip()] = parts[1].strip().strip('"')

    return BuildConfig(
        build_dir=values.get("FUCHSIA_BUILD_DIR", ""),
        variant=values.get("FUCHSIA_VARIANT", ""),
        arch=values.get("FUCHSIA_ARCH", ""),
        zircon_project=values.get("ZIRCON_PROJECT", ""),
        raw=values,
    )
