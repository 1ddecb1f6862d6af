"""
Playback building blocks: phase state machine, variable store, history,
duration timer, breakpoints and recoverable errors.

The engine itself lives in src.player.engine and is imported from there.
"""

from src.player.breakpoints import BreakpointController
from src.player.errors import ErrorKind, PlayerError
from src.player.history import PlaythroughHistory, Step
from src.player.state_machine import (
    InvalidTransitionError,
    PlayerPhase,
    PlayerStateMachine,
    VALID_TRANSITIONS,
)
from src.player.timer import DurationTimer, compute_duration, wall_clock_ms
from src.player.variables import VariableStore, freeze_variables

__all__ = [
    "BreakpointController",
    "ErrorKind",
    "PlayerError",
    "PlaythroughHistory",
    "Step",
    "InvalidTransitionError",
    "PlayerPhase",
    "PlayerStateMachine",
    "VALID_TRANSITIONS",
    "DurationTimer",
    "compute_duration",
    "wall_clock_ms",
    "VariableStore",
    "freeze_variables",
]
