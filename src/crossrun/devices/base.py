"""
Target model and static device address parsing.

Static address formats (transport.device_address):
    host                   → default user, port 22
    user@host              → explicit user
    user@host:2222         → custom SSH port
    user@[fe80::1%eth0]    → IPv6 (brackets required when a port follows)
    [fe80::1]:2222         → IPv6 with port, default user
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True)
class Credential:
    """Key pair (and optional ssh_config) used to authenticate to a target."""
    key_file: Path
    ssh_config: Optional[Path] = None


@dataclass(frozen=True)
class DiscoveryResponse:
    """One answer to a discovery probe."""
    name: str
    address: str


@dataclass(frozen=True)
class Target:
    """
    A reachable endpoint that can receive files and run commands.

    Attributes:
        name: Stable identifier the target announces
        address: IPv4/IPv6 address or hostname
        port: SSH port
        user: SSH user
        credential: Selected key set (None until resolution picks one)
        reachable: Whether the target answered discovery; False for a
            configured static address, which is never probed
    """
    name: str
    address: str
    port: int = 22
    user: str = "fuchsia"
    credential: Optional[Credential] = None
    reachable: bool = True

    @property
    def host_for_scp(self) -> str:
        """Address as scp wants it: IPv6 literals wrapped in brackets."""
        if ":" in self.address and not self.address.startswith("["):
            return f"[{self.address}]"
        return self.address

    @property
    def ssh_destination(self) -> str:
        return f"{self.user}@{self.address}"


def parse_device_address(device: str, default_user: str,
                         default_port: int = 22) -> Tuple[str, str, int]:
    """
    Parse "[user@]host[:port]" into (user, host, port).

    Raises:
        ValueError: If the string is empty or malformed
    """
    if not device:
        raise ValueError("Empty device address")

    user = default_user
    host_part = device
    if '@' in device:
        user, host_part = device.split('@', 1)
        if not user:
            raise ValueError(f"Missing user before '@': {device}")

    if host_part.startswith('['):
        # IPv6: [fe80::1] or [fe80::1]:2222
        bracket_end = host_part.find(']')
        if bracket_end == -1:
            raise ValueError(f"Malformed IPv6 address: {device}")
        host = host_part[1:bracket_end]
        remainder = host_part[bracket_end + 1:]
        port = int(remainder[1:]) if remainder.startswith(':') else default_port
    elif host_part.count(':') == 1:
        host, port_str = host_part.rsplit(':', 1)
        port = int(port_str)
    else:
        # Hostname, IPv4, or bare IPv6 without port
        host = host_part
        port = default_port

    if not host:
        raise ValueError(f"Missing host: {device}")
    return user, host, port
