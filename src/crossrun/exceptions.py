"""
crossrun exceptions.

One taxonomy for every stage of the pipeline. Each exception carries the
process exit code the CLI should use, so the stage that failed is visible
both in the message and in the exit status.
"""

from typing import Optional, Sequence


def exit_status(returncode: int) -> int:
    """Map a subprocess returncode to a process exit status.

    subprocess reports death by signal N as -N; shells report it as 128+N.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


class CrossrunError(Exception):
    """Base class for all crossrun failures."""

    exit_code = 1


class ConfigurationError(CrossrunError):
    """
    Raised when the cross-compilation layout or configuration is unusable.

    Examples:
        - CROSSRUN_ROOT points to a missing directory
        - Sysroot or clang toolchain not found in the build tree
        - Unknown option in the YAML config file

    Fatal, never retried.
    """

    exit_code = 2

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class BuildError(CrossrunError):
    """Raised when the external build tool fails. Carries its exit status."""

    def __init__(self, message: str, returncode: int = 1):
        super().__init__(message)
        self.returncode = returncode
        self.exit_code = exit_status(returncode) if returncode else 1


class ResolutionError(CrossrunError):
    """Raised when no single target can be selected."""

    exit_code = 3


class NoTargetFound(ResolutionError):
    """No target answered the discovery probe."""

    def __init__(self, timeout: float):
        super().__init__(
            f"No target found (waited {timeout:g}s for discovery responses)\n\n"
            f"Troubleshooting:\n"
            f"  1. Start an emulator: crossrun start\n"
            f"  2. Bridge its network: crossrun enable-networking\n"
            f"  3. Check the device is on the same network segment"
        )
        self.timeout = timeout


class TargetNotFound(ResolutionError):
    """A named target did not answer before the discovery timeout."""

    def __init__(self, name: str, candidates: Sequence[str] = ()):
        available = ", ".join(candidates) if candidates else "(none)"
        super().__init__(
            f"Target '{name}' not found\n"
            f"Targets that answered: {available}\n"
            f"Names must match exactly."
        )
        self.name = name
        self.candidates = list(candidates)


class AmbiguousTarget(ResolutionError):
    """More than one target answered and none was named."""

    def __init__(self, candidates: Sequence[str]):
        super().__init__(
            f"Multiple targets found: {', '.join(candidates)}\n"
            f"Select one with --device-name <name> or CROSSRUN_DEVICE_NAME."
        )
        self.candidates = list(candidates)


class EmulatorError(CrossrunError):
    """Raised when an emulator lifecycle operation fails."""

    exit_code = 4


class StartError(EmulatorError):
    """
    Raised when an emulator cannot be started.

    Examples:
        - An emulator for the same profile is already running
        - Kernel or boot image missing from the build output
        - qemu exited before it became visible
    """
    pass


class NetworkingError(EmulatorError):
    """Raised when the emulator network bridge cannot be enabled."""
    pass


class TransportError(CrossrunError):
    """
    Raised when the remote shell transport itself fails.

    Distinct from a remote program's non-zero exit (RemoteCommandFailed).

    Attributes:
        kind: "refused", "auth", "timeout", "unreachable" or "unknown"
        target: Name of the target the session was for
    """

    exit_code = 5

    def __init__(self, message: str, kind: str = "unknown", target: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.target = target


class TransferError(CrossrunError):
    """
    Raised when copying an artifact to the target fails.

    stale_session is True when the failure came from a dropped or
    disconnected session, the one case the coordinator retries once.
    """

    exit_code = 5

    def __init__(self, message: str, stale_session: bool = False):
        super().__init__(message)
        self.stale_session = stale_session


class RemoteCommandFailed(CrossrunError):
    """The remote program ran and exited non-zero. Carries that exit code."""

    def __init__(self, exit_code: int, command: str = ""):
        super().__init__(f"Remote command exited with status {exit_code}: {command}")
        self.exit_code = exit_code
        self.command = command
