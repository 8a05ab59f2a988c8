"""
RemoteExecutionPipeline - push artifacts to targets and run them there.

One transport per target for the lifetime of the pipeline; a second push
or exec to the same target reuses the open session.
"""

import posixpath
import shlex
from typing import Callable, Dict, Optional, Sequence

from crossrun.core.protocols import Logger
from crossrun.deploy.base import ExitStatus, RemoteArtifact, RemoteTransport
from crossrun.devices.base import Target
from crossrun.exceptions import RemoteCommandFailed, TransferError

TransportFactory = Callable[[Target], RemoteTransport]


def remote_command(path: str, args: Sequence[str] = ()) -> str:
    """Shell-quoted command line for a pushed binary."""
    return " ".join(shlex.quote(part) for part in [path, *args])


class RemoteExecutionPipeline:
    """
    Push / exec / shell against resolved targets.

    Usable as a context manager; leaving the block closes every session.
    """

    def __init__(self, transport_factory: TransportFactory, logger: Logger,
                 remote_dir: str = "/tmp/crossrun"):
        self.transport_factory = transport_factory
        self.log = logger
        self.remote_dir = remote_dir
        self._sessions: Dict[tuple, RemoteTransport] = {}

    def __enter__(self) -> "RemoteExecutionPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def _key(target: Target) -> tuple:
        return (target.name, target.address, target.port)

    def session(self, target: Target) -> RemoteTransport:
        key = self._key(target)
        if key not in self._sessions:
            transport = self.transport_factory(target)
            transport.connect()
            self._sessions[key] = transport
        return self._sessions[key]

    def push(self, artifact: RemoteArtifact, target: Target,
             remote_dir: Optional[str] = None) -> str:
        """
        Copy artifact to its destination on target, replacing any earlier copy.

        Returns:
            The remote path

        Raises:
            TransferError: Directory creation or copy failed
            TransportError: The session could not be established
        """
        destination = artifact.destination(remote_dir or self.remote_dir)
        transport = self.session(target)

        parent = posixpath.dirname(destination)
        status = transport.execute(f"mkdir -p {shlex.quote(parent)}", stream_output=False)
        if not status.success:
            raise TransferError(
                f"Could not create {parent} on {target.name} (exit {status.code})"
            )

        self.log.debug(f"Push {artifact.local_path} -> {target.name}:{destination}")
        transport.copy(str(artifact.local_path), destination)
        return destination

    def exec(self, command: str, target: Target, stream_output: bool = True) -> ExitStatus:
        """
        Run command on target.

        Raises:
            RemoteCommandFailed: The command exited non-zero (carries its code)
            TransportError: The session failed
        """
        status = self.session(target).execute(command, stream_output=stream_output)
        if not status.success:
            raise RemoteCommandFailed(status.code, command)
        return status

    def shell(self, target: Target) -> ExitStatus:
        """Interactive shell; the shell's own exit code is returned, not raised."""
        return self.session(target).interactive_shell()

    def reset(self, target: Target) -> None:
        """Drop the session for target so the next use reconnects."""
        transport = self._sessions.pop(self._key(target), None)
        if transport is not None:
            transport.close()

    def close(self) -> None:
        while self._sessions:
            _, transport = self._sessions.popitem()
            transport.close()
