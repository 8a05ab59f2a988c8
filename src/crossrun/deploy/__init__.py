"""
Remote execution.

Public API:
    - RemoteTransport: Protocol for a session with one target
    - SSHTransport: OpenSSH implementation
    - RemoteExecutionPipeline: push/exec/shell with one session per target
    - RemoteArtifact, ExitStatus: Data types
"""

from .base import RemoteArtifact, ExitStatus, RemoteTransport
from .ssh_transport import SSHTransport
from .pipeline import RemoteExecutionPipeline, remote_command

__all__ = [
    "RemoteArtifact",
    "ExitStatus",
    "RemoteTransport",
    "SSHTransport",
    "RemoteExecutionPipeline",
    "remote_command",
]
