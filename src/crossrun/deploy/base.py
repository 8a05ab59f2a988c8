"""
RemoteTransport Protocol - interface to a target's remote shell.

The pipeline only talks to targets through this protocol, so tests can run
the whole push/exec flow against an in-memory fake.
"""

import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from crossrun.sdk.profile import BuildProfile


@dataclass(frozen=True)
class RemoteArtifact:
    """
    A built artifact bound for a target.

    The destination depends only on the remote directory, the profile and
    the package name, so pushing the same artifact twice lands on the same
    path and overwrites it.
    """
    local_path: Path
    package_name: str
    profile: BuildProfile

    def destination(self, remote_dir: str) -> str:
        return posixpath.join(remote_dir, self.profile.remote_namespace, self.package_name)


@dataclass(frozen=True)
class ExitStatus:
    """Exit code of a remote program (or remote shell)."""
    code: int
    output: str = ""

    @property
    def success(self) -> bool:
        return self.code == 0


@runtime_checkable
class RemoteTransport(Protocol):
    """
    A session with one target.

    Implementations:
        - SSHTransport: OpenSSH subprocesses over a multiplexed connection
    """

    def connect(self) -> None:
        """
        Establish the session. Repeated calls reuse it.

        Raises:
            TransportError: Connection refused, auth failure, timeout...
        """
        ...

    def copy(self, local_path: str, remote_path: str) -> None:
        """
        Copy a file, overwriting any existing remote file.

        Raises:
            TransferError: Copy failed (stale_session set when the session dropped)
        """
        ...

    def execute(self, command: str, stream_output: bool = True) -> ExitStatus:
        """
        Run a command, streaming its output to the local console.

        Returns the remote exit code; only transport failures raise.
        """
        ...

    def interactive_shell(self) -> ExitStatus:
        """Open an interactive shell attached to the local terminal."""
        ...

    def close(self) -> None:
        """Tear down the session. Idempotent."""
        ...
