"""
Discovery probes: find targets answering on the local network.

Broadcast protocol (UDP, default port 33340):
    host   → broadcast   b"crossrun:discover\\n"
    target → host        b"crossrun:target <name>\\n"

The target's address is the source address of its reply.
"""

import socket
import subprocess
from typing import Iterator, List, Optional, Protocol

from crossrun.core.protocols import Logger, ProcessExecutor, SocketFactory, TimeProvider
from crossrun.devices.base import DiscoveryResponse
from crossrun.exceptions import ConfigurationError

DISCOVER_MESSAGE = b"crossrun:discover\n"
RESPONSE_PREFIX = "crossrun:target "
MAX_DATAGRAM = 1024


class DiscoveryProbe(Protocol):
    """Yields responses until the timeout elapses (or the caller stops iterating)."""

    def responses(self, timeout: float) -> Iterator[DiscoveryResponse]:
        ...


def parse_response(data: bytes, address: str) -> Optional[DiscoveryResponse]:
    """Decode one reply datagram; None when it is not a target announcement."""
    try:
        text = data.decode("utf-8").strip()
    except UnicodeDecodeError:
        return None
    if not text.startswith(RESPONSE_PREFIX):
        return None
    name = text[len(RESPONSE_PREFIX):].strip()
    if not name or any(c.isspace() for c in name):
        return None
    return DiscoveryResponse(name=name, address=address)


class BroadcastProbe:
    """Sends one broadcast datagram and collects replies for `timeout` seconds."""

    def __init__(
        self,
        socket_factory: SocketFactory,
        time_provider: TimeProvider,
        logger: Logger,
        port: int = 33340,
        broadcast_address: str = "255.255.255.255",
    ):
        self.sockets = socket_factory
        self.time = time_provider
        self.log = logger
        self.port = port
        self.broadcast_address = broadcast_address

    def responses(self, timeout: float) -> Iterator[DiscoveryResponse]:
        sock = self.sockets.broadcast_socket()
        try:
            self.log.debug(f"Discovery: broadcasting to {self.broadcast_address}:{self.port}")
            sock.sendto(DISCOVER_MESSAGE, (self.broadcast_address, self.port))

            deadline = self.time.current_time() + timeout
            while True:
                remaining = deadline - self.time.current_time()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
                try:
                    data, source = sock.recvfrom(MAX_DATAGRAM)
                except socket.timeout:
                    break

                response = parse_response(data, source[0])
                if response is None:
                    self.log.debug(f"Discovery: ignoring datagram from {source[0]}")
                    continue
                self.log.debug(f"Discovery: {response.name} at {response.address}")
                yield response
        finally:
            sock.close()


class ToolProbe:
    """
    Runs an external discovery tool that prints `<address> <name>` per line.

    Args:
        process_executor: Runs the tool
        logger: Logger
        command: Tool command line
    """

    def __init__(self, process_executor: ProcessExecutor, logger: Logger, command: List[str]):
        self.process = process_executor
        self.log = logger
        self.command = list(command)

    def responses(self, timeout: float) -> Iterator[DiscoveryResponse]:
        self.log.debug(f"Discovery: {' '.join(self.command)}")
        try:
            result = self.process.run(self.command, capture_output=True, timeout=timeout)
        except FileNotFoundError as e:
            raise ConfigurationError(
                f"Discovery tool not found: {self.command[0]}\n"
                f"Check discovery.tool in the config file.",
                path=self.command[0],
            ) from e
        except subprocess.TimeoutExpired:
            self.log.warning(f"Discovery tool did not finish within {timeout:g}s")
            return

        # Finders commonly exit non-zero when nothing answered
        if result.returncode != 0:
            self.log.debug(f"Discovery tool exited {result.returncode}: {result.stderr.strip()}")

        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) != 2:
                continue
            address, name = parts
            yield DiscoveryResponse(name=name, address=address)
