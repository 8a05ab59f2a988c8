"""
Emulator instance model.

Lifecycle:
    STOPPED → STARTING → RUNNING → STOPPED
    STARTING → STOPPED   (process exited or never appeared)

Only a RUNNING instance can be networked.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from crossrun.exceptions import EmulatorError


class EmulatorState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


ALLOWED_TRANSITIONS = {
    EmulatorState.STOPPED: {EmulatorState.STARTING},
    EmulatorState.STARTING: {EmulatorState.RUNNING, EmulatorState.STOPPED},
    EmulatorState.RUNNING: {EmulatorState.STOPPED},
}


@dataclass
class EmulatorInstance:
    """
    A local emulator process as seen by the manager.

    Attributes:
        pid: Process id (None while STOPPED)
        target_cpu: "x64" or "arm64"
        release_os: Whether the release image is booted
        networked: Host bridge interface is up with its address
        state: Lifecycle state
    """
    pid: Optional[int]
    target_cpu: str
    release_os: bool
    networked: bool = False
    state: EmulatorState = EmulatorState.STOPPED

    def __post_init__(self):
        if self.networked and self.state is not EmulatorState.RUNNING:
            raise EmulatorError(f"An emulator in state {self.state.value} cannot be networked")

    @property
    def running(self) -> bool:
        return self.state is EmulatorState.RUNNING

    def transition(self, new_state: EmulatorState) -> "EmulatorInstance":
        """Move to new_state, rejecting transitions outside the lifecycle."""
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise EmulatorError(
                f"Invalid emulator transition: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        if new_state is not EmulatorState.RUNNING:
            self.networked = False
        if new_state is EmulatorState.STOPPED:
            self.pid = None
        return self

    def mark_networked(self) -> None:
        if self.state is not EmulatorState.RUNNING:
            raise EmulatorError(f"An emulator in state {self.state.value} cannot be networked")
        self.networked = True
