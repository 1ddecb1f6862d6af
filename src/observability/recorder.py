"""
Playthrough recorder and exporter.

A PlaythroughRecording is an immutable summary of one run of the engine:
story metadata, the ordered steps, and the final state. It serializes to the
JSON document consumed by external analytics:

    {
      "metadata": {"storyTitle": ..., "recordedAt": ISO8601},
      "steps": [{"index", "passageId", "passageTitle", "choiceId",
                 "choiceText", "timestamp"}, ...],
      "finalState": {"variables": {...}, "passagesVisited": [...],
                     "completed": bool, "durationMs": number}
    }
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping
import json
import logging

from src.player.history import Step
from src.player.variables import EMPTY_SNAPSHOT, freeze_variables

logger = logging.getLogger(__name__)


class PlaythroughFormatError(Exception):
    """Raised when a playthrough document cannot be parsed."""

    pass


def iso_timestamp(epoch_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC timestamp."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class PlaythroughMetadata:
    story_title: str
    recorded_at: str


@dataclass(frozen=True)
class FinalState:
    """State of the engine when the recording was taken."""

    variables: Mapping[str, Any] = field(default_factory=lambda: EMPTY_SNAPSHOT)
    passages_visited: tuple[str, ...] = ()
    completed: bool = False
    duration_ms: int = 0


@dataclass(frozen=True)
class PlaythroughRecording:
    """Immutable record of a playthrough."""

    metadata: PlaythroughMetadata
    steps: tuple[Step, ...] = ()
    final_state: FinalState = field(default_factory=FinalState)

    @property
    def choice_count(self) -> int:
        return sum(1 for step in self.steps if not step.is_initial)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": {
                "storyTitle": self.metadata.story_title,
                "recordedAt": self.metadata.recorded_at,
            },
            "steps": [step.to_dict() for step in self.steps],
            "finalState": {
                "variables": dict(self.final_state.variables),
                "passagesVisited": list(self.final_state.passages_visited),
                "completed": self.final_state.completed,
                "durationMs": self.final_state.duration_ms,
            },
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlaythroughRecording":
        """
        Parse an exported playthrough document.

        Raises:
            PlaythroughFormatError: If a required section is missing or malformed
        """
        if not isinstance(data, dict):
            raise PlaythroughFormatError("Playthrough document must be a JSON object")
        try:
            metadata = data["metadata"]
            final = data.get("finalState", {})
            steps = tuple(Step.from_dict(s) for s in data.get("steps", []))
            return cls(
                metadata=PlaythroughMetadata(
                    story_title=metadata.get("storyTitle", "Untitled"),
                    recorded_at=metadata.get("recordedAt", ""),
                ),
                steps=steps,
                final_state=FinalState(
                    variables=freeze_variables(final.get("variables", {})),
                    passages_visited=tuple(final.get("passagesVisited", [])),
                    completed=bool(final.get("completed", False)),
                    duration_ms=int(final.get("durationMs", 0)),
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PlaythroughFormatError(f"Malformed playthrough document: {e}") from e

    @classmethod
    def from_json(cls, text: str) -> "PlaythroughRecording":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PlaythroughFormatError(f"Playthrough is not valid JSON: {e}") from e
        return cls.from_dict(data)


def build_playthrough(
    story_title: str,
    recorded_at: str,
    steps: Iterable[Step],
    variables: Mapping[str, Any],
    passages_visited: Iterable[str],
    completed: bool,
    duration_ms: int,
) -> PlaythroughRecording:
    """Assemble a recording from engine projections."""
    return PlaythroughRecording(
        metadata=PlaythroughMetadata(story_title=story_title, recorded_at=recorded_at),
        steps=tuple(steps),
        final_state=FinalState(
            variables=freeze_variables(variables),
            passages_visited=tuple(passages_visited),
            completed=completed,
            duration_ms=int(duration_ms),
        ),
    )


def save_playthrough(recording: PlaythroughRecording, filepath: Path | str, indent: int = 2) -> Path:
    """Write a recording to a JSON file, creating parent directories."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(recording.to_json(indent=indent), encoding="utf-8")
    logger.info(f"Playthrough saved to {path} ({len(recording.steps)} steps)")
    return path


def load_playthrough(filepath: Path | str) -> PlaythroughRecording:
    path = Path(filepath)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PlaythroughFormatError(f"Cannot read playthrough file {path}: {e}") from e
    return PlaythroughRecording.from_json(text)
