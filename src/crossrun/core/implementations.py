"""Host-backed classes satisfying the protocols in ``crossrun.core.protocols``.

``crossrun.app.Application`` wires these in by default; tests pass fakes or
``Mock(spec=...)`` objects in their place.
"""

import os
import platform
import shutil
import socket
import subprocess
import sys
import time
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from crossrun.core.protocols import ProcessResult


class ConsoleLogger:
    """Prints messages to the terminal; errors go to stderr.

    Debug lines appear only with ``verbose`` (the --verbose flag).
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def info(self, message: str) -> None:
        print(message)

    def warning(self, message: str) -> None:
        print(f"Warning: {message}")

    def error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        if self.verbose:
            print(f"Debug: {message}")


class RealFileSystemService:
    """pathlib/shutil backed disk access."""

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    def is_file(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def is_dir(self, path: Union[str, Path]) -> bool:
        return Path(path).is_dir()

    def read_file(self, path: Union[str, Path]) -> str:
        return Path(path).read_text()

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        Path(path).mkdir(parents=parents, exist_ok=exist_ok)

    def mtime(self, path: Union[str, Path]) -> float:
        return Path(path).stat().st_mtime

    def rglob(self, path: Union[str, Path], pattern: str) -> List[Path]:
        # Sorted so watcher snapshots compare deterministically
        return sorted(Path(path).rglob(pattern))

    def copy_file(self, source: Union[str, Path], destination: Union[str, Path]) -> None:
        shutil.copy2(source, destination)

    def open(self, path: Union[str, Path], mode: str = 'r', buffering: int = -1) -> Any:
        return open(path, mode, buffering=buffering)


class SubprocessHandle:
    """Thin adapter exposing the ProcessHandle surface of a Popen object."""

    def __init__(self, popen_handle):
        self._handle = popen_handle
        self.pid = popen_handle.pid
        self.stdout = popen_handle.stdout
        self.stderr = popen_handle.stderr

    def poll(self) -> Optional[int]:
        return self._handle.poll()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self._handle.wait(timeout=timeout)

    def terminate(self) -> None:
        self._handle.terminate()

    def kill(self) -> None:
        self._handle.kill()


class SubprocessExecutor:
    """Runs host tools through the subprocess module."""

    def run(
        self,
        cmd: List[str],
        capture_output: bool = True,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        stdout: Optional[Any] = None,
    ) -> ProcessResult:
        """Wait for ``cmd`` and collect its exit status.

        Passing ``stdout=subprocess.PIPE`` together with ``capture_output=False``
        collects stdout only; stderr stays on the terminal. Cargo's JSON
        message stream is read this way so compiler diagnostics remain visible.
        """
        if capture_output:
            completed = subprocess.run(
                cmd, capture_output=True, text=True, cwd=cwd, env=env, timeout=timeout
            )
        else:
            completed = subprocess.run(
                cmd, stdout=stdout, text=True, cwd=cwd, env=env, timeout=timeout
            )
        return ProcessResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def popen(
        self,
        cmd: List[str],
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
        stdin: Optional[Any] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        start_new_session: bool = False,
    ) -> SubprocessHandle:
        return SubprocessHandle(subprocess.Popen(
            cmd,
            stdout=stdout,
            stderr=stderr,
            stdin=stdin,
            cwd=cwd,
            env=env,
            start_new_session=start_new_session,
        ))


class SystemTimeProvider:
    """time.monotonic / time.sleep."""

    def current_time(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class SystemEnvironmentProvider:
    """Reads the real process environment and host platform."""

    def get_environ(self) -> Dict[str, str]:
        return dict(os.environ)

    def get_system_type(self) -> str:
        return platform.system()

    def get_cwd(self) -> Path:
        return Path.cwd()

    def get_home(self) -> Path:
        return Path.home()


class SystemToolLocator:
    def find_tool(self, tool_name: str) -> Optional[str]:
        return shutil.which(tool_name)

    def has_tool(self, tool_name: str) -> bool:
        return self.find_tool(tool_name) is not None


class YamlConfigLoader:
    """Parses crossrun config files with PyYAML's safe loader."""

    def __init__(self, filesystem: 'RealFileSystemService'):
        self.fs = filesystem

    def load_yaml(self, path: str) -> Dict[str, Any]:
        # An empty document parses to None
        return yaml.safe_load(self.fs.read_file(path)) or {}


class UdpSocketFactory:
    """Creates real UDP sockets for broadcast discovery."""

    def broadcast_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind(("", 0))
        return sock


class TerminalStreams:
    """Writes streamed remote output to this process's stdout/stderr."""

    def write_stdout(self, data: bytes) -> None:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()

    def write_stderr(self, data: bytes) -> None:
        sys.stderr.buffer.write(data)
        sys.stderr.buffer.flush()
