"""Recoverable playback errors. The engine records these instead of raising."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Kinds of recoverable playback failures."""

    VALIDATION = "validation"  # Bad command argument (unknown choice, step out of range)
    INTEGRITY = "integrity"  # Story graph problem (dangling choice target)


@dataclass(frozen=True)
class PlayerError:
    """A structured entry in the engine's error list."""

    kind: ErrorKind
    message: str
    context: str  # Engine operation that failed
    passage_id: Optional[str] = None
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "context": self.context,
            "passage_id": self.passage_id,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        return f"{self.kind.value} error in {self.context}: {self.message}"
