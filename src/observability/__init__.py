"""
Observability, recording and replay for the playback engine.

Provides a sequenced log of every engine event (passages, choices, variable
writes, phase transitions, breakpoints, rewinds, errors), the playthrough
recorder/exporter, and choice-stream replay.
"""

from src.observability.run_log import (
    RunLog,
    LogEvent,
    EventType,
    PassageEvent,
    ChoiceEvent,
    VariableEvent,
    TransitionEvent,
    BreakpointEvent,
    RewindEvent,
    ErrorEvent,
)
from src.observability.recorder import (
    PlaythroughRecording,
    PlaythroughMetadata,
    FinalState,
    PlaythroughFormatError,
    build_playthrough,
    save_playthrough,
    load_playthrough,
)
from src.observability.replay import ReplaySession, ReplayMode, ReplayResult

__all__ = [
    "RunLog",
    "LogEvent",
    "EventType",
    "PassageEvent",
    "ChoiceEvent",
    "VariableEvent",
    "TransitionEvent",
    "BreakpointEvent",
    "RewindEvent",
    "ErrorEvent",
    "PlaythroughRecording",
    "PlaythroughMetadata",
    "FinalState",
    "PlaythroughFormatError",
    "build_playthrough",
    "save_playthrough",
    "load_playthrough",
    "ReplaySession",
    "ReplayMode",
    "ReplayResult",
]
