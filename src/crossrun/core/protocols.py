"""Seams between crossrun's pipeline logic and the host it runs on.

Anything that touches the outside world (the build tree on disk, cargo and
ssh subprocesses, the environment, the clock, broadcast sockets, PATH lookup)
is reached through one of the Protocols below. They are structural, so the
production classes in ``implementations`` and the fakes used by the test
suite satisfy them without subclassing.

With these seams the resolver, emulator manager and remote pipeline can be
driven end to end in tests with no emulator, device or network present.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Dict, Any, Optional, List, Union, Tuple


@dataclass
class ProcessResult:
    """Exit status plus whatever output was captured (empty strings otherwise)."""
    returncode: int
    stdout: str = ""
    stderr: str = ""


class Logger(Protocol):
    """Sink for user-facing progress and diagnostic messages."""

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def debug(self, message: str) -> None:
        """Only shown when crossrun runs with --verbose."""
        ...


class FileSystemService(Protocol):
    """Disk access for build tree layout, config files and source watching."""

    def exists(self, path: Union[str, Path]) -> bool: ...

    def is_file(self, path: Union[str, Path]) -> bool: ...

    def is_dir(self, path: Union[str, Path]) -> bool: ...

    def read_file(self, path: Union[str, Path]) -> str:
        """Return the text content of ``path``."""
        ...

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None: ...

    def mtime(self, path: Union[str, Path]) -> float:
        """Last modification timestamp, used to detect source edits."""
        ...

    def rglob(self, path: Union[str, Path], pattern: str) -> List[Path]:
        """All paths below ``path`` matching the glob ``pattern``."""
        ...

    def copy_file(self, source: Union[str, Path], destination: Union[str, Path]) -> None:
        """Copy contents and permission bits."""
        ...

    def open(self, path: Union[str, Path], mode: str = 'r', buffering: int = -1) -> Any:
        """Like builtin open(); the emulator log is written through this."""
        ...


class ProcessHandle(Protocol):
    """A running child process (emulator, ssh session) and its pipes."""

    pid: int
    stdout: Any
    stderr: Any

    def poll(self) -> Optional[int]:
        """Exit status if the child has exited, None while it runs."""
        ...

    def wait(self, timeout: Optional[float] = None) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ProcessExecutor(Protocol):
    """Launches host tools: cargo, objcopy, ssh, scp, qemu, ip, pgrep."""

    def run(
        self,
        cmd: List[str],
        capture_output: bool = True,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        stdout: Optional[Any] = None,
    ) -> ProcessResult:
        """Block until ``cmd`` exits.

        With ``capture_output`` False the child inherits the terminal, which is
        how interactive ssh shells and plain cargo invocations are run.
        """
        ...

    def popen(
        self,
        cmd: List[str],
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
        stdin: Optional[Any] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        start_new_session: bool = False,
    ) -> ProcessHandle:
        """Start ``cmd`` without waiting for it."""
        ...


class TimeProvider(Protocol):
    """Clock for boot timeouts, discovery windows and the autotest poll loop."""

    def current_time(self) -> float:
        """Monotonic seconds."""
        ...

    def sleep(self, seconds: float) -> None: ...


class EnvironmentProvider(Protocol):
    """Process environment and host facts the configurator depends on."""

    def get_environ(self) -> Dict[str, str]:
        """A copy; callers may modify it freely."""
        ...

    def get_system_type(self) -> str:
        """platform.system() value, e.g. 'Linux' or 'Darwin'."""
        ...

    def get_cwd(self) -> Path: ...

    def get_home(self) -> Path: ...


class ToolLocator(Protocol):
    """Looks up host executables on PATH."""

    def find_tool(self, tool_name: str) -> Optional[str]:
        """Absolute path of ``tool_name``, None when PATH has no such tool."""
        ...

    def has_tool(self, tool_name: str) -> bool: ...


class ConfigLoader(Protocol):
    """Reads crossrun.yaml style documents."""

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Parsed mapping; an empty document yields {}."""
        ...


class DatagramSocket(Protocol):
    """The part of a UDP socket that target discovery uses."""

    def sendto(self, data: bytes, address: Tuple[str, int]) -> int: ...

    def recvfrom(self, bufsize: int) -> Tuple[bytes, Tuple[Any, ...]]:
        """Next reply; raises socket.timeout once the timeout elapses."""
        ...

    def settimeout(self, value: Optional[float]) -> None: ...

    def close(self) -> None: ...


class SocketFactory(Protocol):
    """Creates broadcast-capable datagram sockets."""

    def broadcast_socket(self) -> DatagramSocket:
        """UDP socket with SO_BROADCAST set."""
        ...


class ConsoleStreams(Protocol):
    """Local console the remote output is streamed to."""

    def write_stdout(self, data: bytes) -> None:
        """Write raw bytes to local stdout and flush."""
        ...

    def write_stderr(self, data: bytes) -> None:
        """Write raw bytes to local stderr and flush."""
        ...
