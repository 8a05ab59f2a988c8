"""Local emulator lifecycle."""

from .base import EmulatorInstance, EmulatorState
from .manager import EmulatorManager, EmulatorProcess

__all__ = [
    "EmulatorInstance",
    "EmulatorState",
    "EmulatorManager",
    "EmulatorProcess",
]
