"""
Run Log for playback event tracking.

Captures every engine event (passage entries, choices, variable writes,
phase transitions, breakpoint hits, rewinds, errors) in sequence so an author
can see exactly how a playthrough unfolded. Each engine owns its own RunLog.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Callable
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    PASSAGE = "passage"  # Passage entered
    CHOICE = "choice"  # Choice taken
    VARIABLE = "variable"  # Variable written
    TRANSITION = "transition"  # Phase transition
    BREAKPOINT = "breakpoint"  # Breakpoint hit
    REWIND = "rewind"  # Undo or jump to step
    ERROR = "error"  # Recoverable error recorded
    CUSTOM = "custom"  # Custom event


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # Note: event_type has a default to allow subclass fields with defaults
    # Subclasses set the correct value in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    passage_id: Optional[str] = None  # Current passage when the event was logged
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "passage_id": self.passage_id,
            "context": self.context,
        }

    @classmethod
    def _base_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromisoformat(data["timestamp"]),
            "sequence_number": data.get("sequence_number", 0),
            "passage_id": data.get("passage_id"),
            "context": data.get("context", {}),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        return cls(event_type=EventType(data["event_type"]), **cls._base_kwargs(data))

    def __str__(self) -> str:
        name = self.context.get("event_name", self.event_type.value)
        return f"[{self.sequence_number}] {name.upper()} {self.context}"


@dataclass
class PassageEvent(LogEvent):
    """Entry into a passage."""

    title: str = ""
    step_index: int = 0
    visit_count: int = 0

    def __post_init__(self):
        self.event_type = EventType.PASSAGE

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {"title": self.title, "step_index": self.step_index, "visit_count": self.visit_count}
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PassageEvent":
        return cls(
            **cls._base_kwargs(data),
            title=data.get("title", ""),
            step_index=data.get("step_index", 0),
            visit_count=data.get("visit_count", 0),
        )

    def __str__(self) -> str:
        return (
            f"[{self.sequence_number}] PASSAGE #{self.step_index} {self.title} "
            f"(visit {self.visit_count})"
        )


@dataclass
class ChoiceEvent(LogEvent):
    """A choice taken from the current passage."""

    choice_id: str = ""
    choice_text: str = ""
    target_id: str = ""

    def __post_init__(self):
        self.event_type = EventType.CHOICE

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "choice_id": self.choice_id,
                "choice_text": self.choice_text,
                "target_id": self.target_id,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChoiceEvent":
        return cls(
            **cls._base_kwargs(data),
            choice_id=data.get("choice_id", ""),
            choice_text=data.get("choice_text", ""),
            target_id=data.get("target_id", ""),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] CHOICE '{self.choice_text}' -> {self.target_id}"


@dataclass
class VariableEvent(LogEvent):
    """A variable write."""

    name: str = ""
    old_value: Any = None
    new_value: Any = None

    def __post_init__(self):
        self.event_type = EventType.VARIABLE

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({"name": self.name, "old_value": self.old_value, "new_value": self.new_value})
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariableEvent":
        return cls(
            **cls._base_kwargs(data),
            name=data.get("name", ""),
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] VAR {self.name}: {self.old_value!r} -> {self.new_value!r}"


@dataclass
class TransitionEvent(LogEvent):
    """A phase transition."""

    from_state: str = ""
    to_state: str = ""
    trigger: str = ""

    def __post_init__(self):
        self.event_type = EventType.TRANSITION

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "from_state": self.from_state,
                "to_state": self.to_state,
                "trigger": self.trigger,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransitionEvent":
        return cls(
            **cls._base_kwargs(data),
            from_state=data.get("from_state", ""),
            to_state=data.get("to_state", ""),
            trigger=data.get("trigger", ""),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] TRANSITION {self.from_state} -> {self.to_state} (trigger: {self.trigger})"


@dataclass
class BreakpointEvent(LogEvent):
    """Playback entered a passage flagged as a breakpoint."""

    title: str = ""

    def __post_init__(self):
        self.event_type = EventType.BREAKPOINT

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["title"] = self.title
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BreakpointEvent":
        return cls(**cls._base_kwargs(data), title=data.get("title", ""))

    def __str__(self) -> str:
        return f"[{self.sequence_number}] BREAKPOINT {self.title} ({self.passage_id})"


@dataclass
class RewindEvent(LogEvent):
    """History shortened by undo or jump-to-step."""

    operation: str = ""  # "undo" or "jump"
    from_length: int = 0
    to_length: int = 0
    variables_restored: bool = False

    def __post_init__(self):
        self.event_type = EventType.REWIND

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "operation": self.operation,
                "from_length": self.from_length,
                "to_length": self.to_length,
                "variables_restored": self.variables_restored,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RewindEvent":
        return cls(
            **cls._base_kwargs(data),
            operation=data.get("operation", ""),
            from_length=data.get("from_length", 0),
            to_length=data.get("to_length", 0),
            variables_restored=data.get("variables_restored", False),
        )

    def __str__(self) -> str:
        restored = ", variables restored" if self.variables_restored else ""
        return (
            f"[{self.sequence_number}] {self.operation.upper()} "
            f"{self.from_length} -> {self.to_length} steps{restored}"
        )


@dataclass
class ErrorEvent(LogEvent):
    """A recoverable error recorded by the engine."""

    kind: str = ""
    message: str = ""
    operation: str = ""

    def __post_init__(self):
        self.event_type = EventType.ERROR

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({"kind": self.kind, "message": self.message, "operation": self.operation})
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorEvent":
        return cls(
            **cls._base_kwargs(data),
            kind=data.get("kind", ""),
            message=data.get("message", ""),
            operation=data.get("operation", ""),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] ERROR ({self.kind}) {self.operation}: {self.message}"


EVENT_CLASSES: dict[EventType, type[LogEvent]] = {
    EventType.PASSAGE: PassageEvent,
    EventType.CHOICE: ChoiceEvent,
    EventType.VARIABLE: VariableEvent,
    EventType.TRANSITION: TransitionEvent,
    EventType.BREAKPOINT: BreakpointEvent,
    EventType.REWIND: RewindEvent,
    EventType.ERROR: ErrorEvent,
}


class RunLog:
    """
    Sequenced log of playback events.

    Every PlaybackEngine owns one RunLog. Subscribers receive each event as
    it is logged; a failing subscriber is logged and skipped.
    """

    def __init__(self) -> None:
        self._events: list[LogEvent] = []
        self._sequence: int = 0
        self._session_start: datetime = datetime.now()
        self._passage_provider: Optional[Callable[[], Optional[str]]] = None
        self._subscribers: list[Callable[[LogEvent], None]] = []

    def reset(self) -> None:
        """Reset the log for a new session."""
        self._events = []
        self._sequence = 0
        self._session_start = datetime.now()
        logger.debug("RunLog reset")

    def set_passage_provider(self, provider: Callable[[], Optional[str]]) -> None:
        """Set a callback returning the current passage id, stamped on each event."""
        self._passage_provider = provider

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Subscribe to receive events as they are logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _get_current_passage(self) -> Optional[str]:
        if self._passage_provider:
            try:
                return self._passage_provider()
            except Exception:
                return None
        return None

    def _log_event(self, event: LogEvent) -> None:
        self._sequence += 1
        event.sequence_number = self._sequence
        if event.passage_id is None:
            event.passage_id = self._get_current_passage()
        self._events.append(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_passage(
        self,
        passage_id: str,
        title: str,
        step_index: int,
        visit_count: int,
        context: Optional[dict[str, Any]] = None,
    ) -> PassageEvent:
        event = PassageEvent(
            passage_id=passage_id,
            title=title,
            step_index=step_index,
            visit_count=visit_count,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_choice(
        self,
        choice_id: str,
        choice_text: str,
        target_id: str,
        context: Optional[dict[str, Any]] = None,
    ) -> ChoiceEvent:
        event = ChoiceEvent(
            choice_id=choice_id,
            choice_text=choice_text,
            target_id=target_id,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_variable(
        self,
        name: str,
        old_value: Any,
        new_value: Any,
        context: Optional[dict[str, Any]] = None,
    ) -> VariableEvent:
        event = VariableEvent(
            name=name, old_value=old_value, new_value=new_value, context=context or {}
        )
        self._log_event(event)
        return event

    def log_transition(
        self,
        from_state: str,
        to_state: str,
        trigger: str,
        context: Optional[dict[str, Any]] = None,
    ) -> TransitionEvent:
        event = TransitionEvent(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_breakpoint(self, passage_id: str, title: str) -> BreakpointEvent:
        event = BreakpointEvent(passage_id=passage_id, title=title)
        self._log_event(event)
        return event

    def log_rewind(
        self,
        operation: str,
        from_length: int,
        to_length: int,
        variables_restored: bool = False,
    ) -> RewindEvent:
        event = RewindEvent(
            operation=operation,
            from_length=from_length,
            to_length=to_length,
            variables_restored=variables_restored,
        )
        self._log_event(event)
        return event

    def log_error(
        self,
        kind: str,
        message: str,
        operation: str,
        passage_id: Optional[str] = None,
    ) -> ErrorEvent:
        event = ErrorEvent(kind=kind, message=message, operation=operation, passage_id=passage_id)
        self._log_event(event)
        return event

    def log_custom(self, event_name: str, details: dict[str, Any]) -> LogEvent:
        event = LogEvent(
            event_type=EventType.CUSTOM,
            context={"event_name": event_name, **details},
        )
        self._log_event(event)
        return event

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        since_sequence: int = 0,
    ) -> list[LogEvent]:
        """
        Get logged events.

        Args:
            event_type: Filter by event type (None = all)
            since_sequence: Only events after this sequence number

        Returns:
            List of events
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_passages(self) -> list[PassageEvent]:
        return [e for e in self._events if isinstance(e, PassageEvent)]

    def get_choices(self) -> list[ChoiceEvent]:
        return [e for e in self._events if isinstance(e, ChoiceEvent)]

    def get_transitions(self) -> list[TransitionEvent]:
        return [e for e in self._events if isinstance(e, TransitionEvent)]

    def get_errors(self) -> list[ErrorEvent]:
        return [e for e in self._events if isinstance(e, ErrorEvent)]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        counts = {event_type.value: 0 for event_type in EventType}
        for event in self._events:
            counts[event.event_type.value] += 1
        return {
            "session_start": self._session_start.isoformat(),
            "total_events": len(self._events),
            "counts": counts,
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_start": self._session_start.isoformat(),
            "sequence": self._sequence,
            "events": [e.to_dict() for e in self._events],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, filepath: Path | str) -> None:
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"RunLog saved to {filepath}")

    @classmethod
    def load(cls, filepath: Path | str) -> "RunLog":
        """Load a saved log into a new RunLog."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        log = cls()
        log._session_start = datetime.fromisoformat(data["session_start"])
        log._sequence = data.get("sequence", 0)

        for event_data in data.get("events", []):
            event_type = EventType(event_data["event_type"])
            event_cls = EVENT_CLASSES.get(event_type, LogEvent)
            log._events.append(event_cls.from_dict(event_data))

        logger.info(f"RunLog loaded from {filepath}: {len(log._events)} events")
        return log

    def format_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = None,
    ) -> str:
        """
        Format the log as a human-readable string.

        Args:
            event_types: Filter by event types (None = all)
            max_events: Maximum number of most recent events to include

        Returns:
            Formatted log string
        """
        lines = [
            "=== Run Log ===",
            f"Session: {self._session_start.isoformat()}",
            f"Total Events: {len(self._events)}",
            "",
        ]

        events = self._events
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        if max_events:
            events = events[-max_events:]

        for event in events:
            lines.append(str(event))

        return "\n".join(lines)
