"""
SSHTransport - remote shell sessions over OpenSSH.

Targets: emulators and devices reachable over ssh
Strategy: one ControlMaster connection per target, every ssh/scp call
          multiplexed over it until close()
"""

import queue
import shlex
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import List, Optional

from crossrun.core.protocols import ConsoleStreams, Logger, ProcessExecutor, ProcessHandle
from crossrun.deploy.base import ExitStatus
from crossrun.devices.base import Target
from crossrun.exceptions import TransferError, TransportError

# ssh reserves 255 for its own failures
SSH_TRANSPORT_FAILURE = 255
PID_MARKER = b"CROSSRUN_PID="
CHUNK_SIZE = 4096

# stderr fragment -> TransportError.kind, first match wins
ERROR_KINDS = [
    ("connection refused", "refused"),
    ("permission denied", "auth"),
    ("host key verification failed", "auth"),
    ("too many authentication failures", "auth"),
    ("timed out", "timeout"),
    ("no route to host", "unreachable"),
    ("network is unreachable", "unreachable"),
    ("could not resolve hostname", "unreachable"),
    ("name or service not known", "unreachable"),
]

STALE_SESSION_MARKERS = [
    "connection closed",
    "connection reset",
    "broken pipe",
    "lost connection",
    "control socket connect",
    "mux_client",
    "disconnected",
]


def classify_ssh_error(stderr: str) -> str:
    """Map ssh's stderr to a TransportError kind."""
    lowered = stderr.lower()
    for fragment, kind in ERROR_KINDS:
        if fragment in lowered:
            return kind
    return "unknown"


def is_stale_session(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in STALE_SESSION_MARKERS)


def wrap_with_pid_marker(command: str) -> str:
    """Report the remote shell's pid on stderr, then replace it with command."""
    return f"echo {PID_MARKER.decode()}$$ >&2; exec sh -c {shlex.quote(command)}"


class SSHTransport:
    """
    Runs commands on one target via ssh/scp.

    Requirements: the target's key in target.credential, an ssh server on
    target.address:target.port

    Args:
        target: Resolved target (with credential)
        process_executor: Runs ssh/scp
        logger: Logger
        streams: Local console for streamed output
        connect_timeout: ssh ConnectTimeout in seconds
        strict_host_key_checking: Verify host keys against known_hosts
    """

    def __init__(
        self,
        target: Target,
        process_executor: ProcessExecutor,
        logger: Logger,
        streams: ConsoleStreams,
        connect_timeout: float = 10.0,
        strict_host_key_checking: bool = False,
    ):
        self.target = target
        self.process = process_executor
        self.log = logger
        self.streams = streams
        self.connect_timeout = connect_timeout
        self.strict_host_key_checking = strict_host_key_checking
        self._control_dir: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._control_dir is not None

    @property
    def control_path(self) -> str:
        return str(Path(self._control_dir) / "master")

    def _common_options(self) -> List[str]:
        opts = [
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={int(self.connect_timeout)}",
            "-o", "LogLevel=ERROR",
        ]
        if self.strict_host_key_checking:
            opts += ["-o", "StrictHostKeyChecking=yes"]
        else:
            opts += ["-o", "StrictHostKeyChecking=no", "-o", "UserKnownHostsFile=/dev/null"]

        credential = self.target.credential
        if credential is not None:
            opts += ["-i", str(credential.key_file)]
            if credential.ssh_config is not None:
                opts += ["-F", str(credential.ssh_config)]
        if self._control_dir is not None:
            opts += ["-o", f"ControlPath={self.control_path}"]
        return opts

    def _ssh_cmd(self, command: Optional[str] = None, *extra: str) -> List[str]:
        """Build ssh command over the shared connection."""
        cmd = ["ssh", "-p", str(self.target.port), *self._common_options(), *extra,
               self.target.ssh_destination]
        if command is not None:
            cmd.append(command)
        return cmd

    def _transport_error(self, action: str, stderr: str) -> TransportError:
        kind = classify_ssh_error(stderr)
        port_flag = f"-p {self.target.port} " if self.target.port != 22 else ""
        return TransportError(
            f"{action} failed for {self.target.name} "
            f"({self.target.ssh_destination}:{self.target.port}): {kind}\n"
            f"Error: {stderr.strip() or '(no output from ssh)'}\n\n"
            f"Troubleshooting:\n"
            f"  1. Verify SSH access: ssh {port_flag}{self.target.ssh_destination}\n"
            f"  2. Check network: ping {self.target.address}\n"
            f"  3. For an emulator: crossrun enable-networking",
            kind=kind,
            target=self.target.name,
        )

    def connect(self) -> None:
        if self.connected:
            return

        self._control_dir = tempfile.mkdtemp(prefix="crossrun-ssh-")
        cmd = self._ssh_cmd(None, "-o", "ControlMaster=yes", "-o", "ControlPersist=yes",
                            "-f", "-N")
        self.log.debug(f"SSH: {' '.join(cmd)}")
        result = self.process.run(cmd, capture_output=True)
        if result.returncode != 0:
            self._discard_control_dir()
            raise self._transport_error("Connection", result.stderr)

    def copy(self, local_path: str, remote_path: str) -> None:
        self.connect()
        host = self.target.host_for_scp
        cmd = ["scp", "-p", "-P", str(self.target.port), *self._common_options(),
               str(local_path), f"{self.target.user}@{host}:{remote_path}"]
        self.log.debug(f"SCP: {' '.join(cmd)}")
        result = self.process.run(cmd, capture_output=True)
        if result.returncode != 0:
            raise TransferError(
                f"Copy to {self.target.name} failed: {local_path} -> {remote_path}\n"
                f"Error: {result.stderr.strip()}",
                stale_session=is_stale_session(result.stderr),
            )

    def execute(self, command: str, stream_output: bool = True) -> ExitStatus:
        self.connect()
        cmd = self._ssh_cmd(wrap_with_pid_marker(command), "-T")
        self.log.debug(f"SSH: {command}")

        if not stream_output:
            result = self.process.run(cmd, capture_output=True)
            stderr = result.stderr
            if stderr.startswith(PID_MARKER.decode()):
                stderr = stderr.partition("\n")[2]
            if result.returncode == SSH_TRANSPORT_FAILURE:
                raise self._transport_error("Command", stderr)
            return ExitStatus(result.returncode, output=result.stdout)

        handle = self.process.popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
        )
        return self._stream(handle)

    def _pump(self, name: str, pipe, chunks: queue.Queue) -> None:
        try:
            for chunk in iter(lambda: pipe.read1(CHUNK_SIZE), b""):
                chunks.put((name, chunk))
        finally:
            chunks.put((name, None))

    def _stream(self, handle: ProcessHandle) -> ExitStatus:
        """Forward remote output to the console in arrival order."""
        chunks: queue.Queue = queue.Queue()
        readers = [
            threading.Thread(target=self._pump, args=("stdout", handle.stdout, chunks),
                             daemon=True),
            threading.Thread(target=self._pump, args=("stderr", handle.stderr, chunks),
                             daemon=True),
        ]
        for reader in readers:
            reader.start()

        remote_pid: Optional[int] = None
        marker_seen = False
        pending = b""
        stderr_tail = b""
        try:
            open_pipes = len(readers)
            while open_pipes:
                name, chunk = chunks.get()
                if chunk is None:
                    open_pipes -= 1
                    continue
                if name == "stdout":
                    self.streams.write_stdout(chunk)
                    continue

                if not marker_seen:
                    pending += chunk
                    if b"\n" not in pending:
                        continue
                    line, rest = pending.split(b"\n", 1)
                    if line.startswith(PID_MARKER):
                        remote_pid = int(line[len(PID_MARKER):].strip())
                        chunk = rest
                    else:
                        chunk = pending
                    marker_seen = True
                    if not chunk:
                        continue

                stderr_tail = (stderr_tail + chunk)[-CHUNK_SIZE:]
                self.streams.write_stderr(chunk)

            if pending and not marker_seen:
                stderr_tail = pending
                self.streams.write_stderr(pending)
            code = handle.wait()
        except KeyboardInterrupt:
            self._interrupt(handle, remote_pid)
            raise

        for reader in readers:
            reader.join()

        if code == SSH_TRANSPORT_FAILURE:
            raise self._transport_error("Command", stderr_tail.decode("utf-8", "replace"))
        return ExitStatus(code)

    def _interrupt(self, handle: ProcessHandle, remote_pid: Optional[int]) -> None:
        """Stop the remote program and the local ssh after Ctrl-C."""
        if remote_pid is not None and self.connected:
            self.log.debug(f"Interrupted, killing remote pid {remote_pid}")
            self.process.run(self._ssh_cmd(f"kill -TERM {remote_pid}", "-T"),
                             capture_output=True)
        handle.terminate()
        try:
            handle.wait(timeout=5)
        except subprocess.TimeoutExpired:
            handle.kill()
        self.close()

    def interactive_shell(self) -> ExitStatus:
        self.connect()
        cmd = self._ssh_cmd(None, "-t")
        self.log.debug(f"SSH: {' '.join(cmd)}")
        result = self.process.run(cmd, capture_output=False)
        if result.returncode == SSH_TRANSPORT_FAILURE:
            raise self._transport_error("Shell", result.stderr)
        return ExitStatus(result.returncode)

    def close(self) -> None:
        if not self.connected:
            return
        cmd = self._ssh_cmd(None, "-O", "exit")
        self.log.debug(f"SSH: {' '.join(cmd)}")
        result = self.process.run(cmd, capture_output=True)
        if result.returncode != 0:
            self.log.debug(f"Closing master connection: {result.stderr.strip()}")
        self._discard_control_dir()

    def _discard_control_dir(self) -> None:
        shutil.rmtree(self._control_dir, ignore_errors=True)
        self._control_dir = None
