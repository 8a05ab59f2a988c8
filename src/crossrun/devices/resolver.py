"""
TargetResolver - choose the one target an invocation talks to.

Rules:
    name given, answered          → that target (returns on first match)
    name given, never answered    → TargetNotFound
    no name, nothing answered     → NoTargetFound
    no name, exactly one answered → that target
    no name, several answered     → AmbiguousTarget

A static device address skips discovery altogether. debug_mode never
affects which target is chosen, only which credential set is attached.
"""

from pathlib import Path
from typing import Dict, List, Optional, Protocol

from crossrun.core.protocols import FileSystemService, Logger
from crossrun.devices.base import Credential, Target, parse_device_address
from crossrun.devices.discovery import DiscoveryProbe
from crossrun.exceptions import (
    AmbiguousTarget,
    ConfigurationError,
    NoTargetFound,
    TargetNotFound,
)
from crossrun.sdk.layout import TargetLayout
from crossrun.sdk.profile import BuildProfile


class CredentialProvider(Protocol):
    def credential_for(self, debug_mode: bool) -> Credential:
        ...


class LayoutCredentials:
    """Picks the key set shipped in the release or debug output directory."""

    def __init__(self, filesystem: FileSystemService, root: Path, target_cpu: str = "x64"):
        self.fs = filesystem
        self.root = Path(root)
        self.target_cpu = target_cpu

    def credential_for(self, debug_mode: bool) -> Credential:
        """
        Raises:
            ConfigurationError: If the selected image has no ssh key
        """
        layout = TargetLayout(self.root, BuildProfile(self.target_cpu, release_os=not debug_mode))
        if not self.fs.exists(layout.ssh_key):
            raise ConfigurationError(
                f"SSH key not found: {layout.ssh_key}\n"
                f"The {layout.profile.out_dir_name} build does not contain device "
                f"credentials. Build it first"
                f"{' or drop --debug-os' if debug_mode else ' or pass --debug-os'}.",
                path=str(layout.ssh_key),
            )
        ssh_config = layout.ssh_config if self.fs.exists(layout.ssh_config) else None
        return Credential(key_file=layout.ssh_key, ssh_config=ssh_config)


class TargetResolver:
    """
    Resolves a device name (or no name) to a single Target.

    Args:
        probe: Discovery probe
        credentials: Supplies the key set for release or debug images
        logger: Logger
        timeout: Discovery window in seconds
        static_address: "[user@]host[:port]"; when set, discovery is skipped
        user: Default SSH user
        port: Default SSH port
    """

    def __init__(
        self,
        probe: DiscoveryProbe,
        credentials: CredentialProvider,
        logger: Logger,
        timeout: float = 2.0,
        static_address: Optional[str] = None,
        user: str = "fuchsia",
        port: int = 22,
    ):
        self.probe = probe
        self.credentials = credentials
        self.log = logger
        self.timeout = timeout
        self.static_address = static_address
        self.user = user
        self.port = port

    def resolve(self, name: Optional[str] = None, debug_mode: bool = False) -> Target:
        """
        Raises:
            NoTargetFound, TargetNotFound, AmbiguousTarget: Selection failed
            ConfigurationError: Credential for the selected image is missing
        """
        credential = self.credentials.credential_for(debug_mode)

        if self.static_address:
            return self._static_target(name, credential)

        seen: Dict[str, str] = {}
        for response in self.probe.responses(self.timeout):
            if name is not None and response.name == name:
                self.log.debug(f"Resolved {name} -> {response.address}")
                return self._target(name, response.address, credential)
            seen.setdefault(response.name, response.address)

        if name is not None:
            raise TargetNotFound(name, sorted(seen))
        if not seen:
            raise NoTargetFound(self.timeout)
        if len(seen) > 1:
            raise AmbiguousTarget(sorted(seen))

        (only_name, address), = seen.items()
        self.log.debug(f"Resolved {only_name} -> {address}")
        return self._target(only_name, address, credential)

    def list_targets(self) -> List[Target]:
        """All targets answering within the window, one per name, sorted by name."""
        if self.static_address:
            user, host, port = self._parse_static()
            return [Target(name=host, address=host, port=port, user=user, reachable=False)]

        seen: Dict[str, str] = {}
        for response in self.probe.responses(self.timeout):
            seen.setdefault(response.name, response.address)
        return [Target(name=n, address=seen[n], port=self.port, user=self.user)
                for n in sorted(seen)]

    def _target(self, name: str, address: str, credential: Credential) -> Target:
        return Target(name=name, address=address, port=self.port, user=self.user,
                      credential=credential)

    def _static_target(self, name: Optional[str], credential: Credential) -> Target:
        user, host, port = self._parse_static()
        # The configured host is the only target; any other name is a miss
        if name is not None and name != host:
            raise TargetNotFound(name, [host])
        return Target(name=host, address=host, port=port, user=user,
                      credential=credential, reachable=False)

    def _parse_static(self):
        try:
            return parse_device_address(self.static_address, self.user, self.port)
        except ValueError as e:
            raise ConfigurationError(f"Invalid transport.device_address: {e}") from e
