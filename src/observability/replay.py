"""
Replay system for deterministic playthrough replay.

A ReplaySession holds the ordered choice stream of a recorded playthrough
and feeds it back into a PlaybackEngine, checking that each choice lands on
the same passage it did when recorded. Divergence is reported in the
ReplayResult rather than raised.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional
import json
import logging

from src.observability.recorder import PlaythroughRecording

if TYPE_CHECKING:
    from src.player.engine import PlaybackEngine

logger = logging.getLogger(__name__)


class ReplayMode(str, Enum):
    """Replay mode settings."""

    DISABLED = "disabled"  # Choices come from the reader
    REPLAYING = "replaying"  # Choices come from the recorded stream


@dataclass
class ReplayResult:
    """Outcome of replaying a choice stream against an engine."""

    passed: bool
    steps_matched: int
    divergent_step: Optional[int] = None
    expected_passage_id: Optional[str] = None
    actual_passage_id: Optional[str] = None
    message: str = ""

    def __str__(self) -> str:
        status = "PASSED" if self.passed else "DIVERGED"
        return f"Replay {status}: {self.steps_matched} steps matched. {self.message}".strip()


@dataclass
class ReplaySession:
    """
    Manages a replay session.

    Each stream entry is a dict with {choice_id, choice_text, passage_id,
    passage_title}, where passage_id is the passage the choice led to.
    """

    start_passage_id: Optional[str] = None
    choice_stream: list[dict[str, Any]] = field(default_factory=list)
    mode: ReplayMode = ReplayMode.DISABLED
    _position: int = 0
    _overruns: int = 0

    def __post_init__(self):
        self._position = 0
        self._overruns = 0

    @classmethod
    def from_playthrough(cls, recording: PlaythroughRecording) -> "ReplaySession":
        """
        Create a replay session from an exported playthrough.

        The first step supplies the start passage; every later step supplies
        one recorded choice.
        """
        steps = recording.steps
        start_passage_id = steps[0].passage_id if steps else None
        choice_stream = [
            {
                "choice_id": step.choice_id,
                "choice_text": step.choice_text,
                "passage_id": step.passage_id,
                "passage_title": step.passage_title,
            }
            for step in steps[1:]
        ]
        session = cls(start_passage_id=start_passage_id, choice_stream=choice_stream)
        session.mode = ReplayMode.REPLAYING
        return session

    @classmethod
    def from_run_log(cls, log_data: dict[str, Any]) -> "ReplaySession":
        """
        Create a replay session from saved run log data.

        Args:
            log_data: Dictionary from RunLog.to_dict() or loaded JSON
        """
        start_passage_id = None
        choice_stream = []
        for event in log_data.get("events", []):
            event_type = event.get("event_type")
            if event_type == "passage" and event.get("step_index") == 0:
                # A restart re-seeds the stream
                start_passage_id = event.get("passage_id")
                choice_stream = []
            elif event_type == "choice":
                choice_stream.append(
                    {
                        "choice_id": event.get("choice_id"),
                        "choice_text": event.get("choice_text", ""),
                        "passage_id": event.get("target_id"),
                        "passage_title": "",
                    }
                )
            elif event_type == "rewind":
                # History length counts the initial step, the stream does not
                del choice_stream[max(event.get("to_length", 1) - 1, 0):]

        session = cls(start_passage_id=start_passage_id, choice_stream=choice_stream)
        session.mode = ReplayMode.REPLAYING
        return session

    @classmethod
    def load(cls, filepath: Path | str) -> "ReplaySession":
        """Load a replay session from a file."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        # Accepts ReplaySession.save(), exported playthroughs and run logs
        if "choice_stream" in data:
            session = cls(
                start_passage_id=data.get("start_passage_id"),
                choice_stream=data.get("choice_stream", []),
            )
            session.mode = ReplayMode.REPLAYING
            return session
        if "steps" in data:
            return cls.from_playthrough(PlaythroughRecording.from_dict(data))
        return cls.from_run_log(data)

    def save(self, filepath: Path | str) -> None:
        """Save the replay session to a file."""
        data = {
            "start_passage_id": self.start_passage_id,
            "choice_stream": self.choice_stream,
        }
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info(f"ReplaySession saved to {filepath}")

    def start_replay(self) -> None:
        """Start replaying from the beginning."""
        self.mode = ReplayMode.REPLAYING
        self._position = 0
        self._overruns = 0
        logger.info(f"Replay started with {len(self.choice_stream)} recorded choices")

    def stop_replay(self) -> None:
        self.mode = ReplayMode.DISABLED
        logger.info(f"Replay stopped at position {self._position}/{len(self.choice_stream)}")

    def is_replaying(self) -> bool:
        return self.mode == ReplayMode.REPLAYING

    def has_next_choice(self) -> bool:
        return self._position < len(self.choice_stream)

    def get_next_choice(self) -> Optional[dict[str, Any]]:
        """
        Get the next recorded choice.

        Returns:
            The stream entry, or None when not replaying or the stream is exhausted
        """
        if not self.is_replaying():
            return None

        if self._position >= len(self.choice_stream):
            self._overruns += 1
            logger.warning(
                f"Replay overrun #{self._overruns}: no more recorded choices at position {self._position}"
            )
            return None

        entry = self.choice_stream[self._position]
        self._position += 1
        return entry

    def peek_next_choice(self) -> Optional[dict[str, Any]]:
        """Peek at the next choice without advancing position."""
        if self._position < len(self.choice_stream):
            return self.choice_stream[self._position]
        return None

    def get_position(self) -> int:
        return self._position

    def get_total_choices(self) -> int:
        return len(self.choice_stream)

    def get_remaining_choices(self) -> int:
        return max(0, len(self.choice_stream) - self._position)

    def get_overrun_count(self) -> int:
        """Get number of times replay ran out of recorded choices."""
        return self._overruns

    def reset(self) -> None:
        """Reset to the beginning of the choice stream."""
        self._position = 0
        self._overruns = 0

    def add_choice(
        self,
        choice_id: str,
        passage_id: str,
        choice_text: str = "",
        passage_title: str = "",
    ) -> None:
        """
        Append a choice to the stream.

        Args:
            choice_id: Id of the choice taken
            passage_id: Passage the choice is expected to lead to
            choice_text: Display text of the choice
            passage_title: Title of the expected passage
        """
        self.choice_stream.append(
            {
                "choice_id": choice_id,
                "choice_text": choice_text,
                "passage_id": passage_id,
                "passage_title": passage_title,
            }
        )

    def run(self, engine: "PlaybackEngine") -> ReplayResult:
        """
        Replay the whole stream on an engine, restarting it first.

        Breakpoints hit during replay pause the engine but do not stop the
        replay, since choices are accepted while paused.
        """
        self.start_replay()
        engine.stop()
        engine.start(self.start_passage_id)

        if not engine.active:
            self.stop_replay()
            return ReplayResult(
                passed=False,
                steps_matched=0,
                divergent_step=0,
                expected_passage_id=self.start_passage_id,
                message=f"Could not start at passage '{self.start_passage_id}'",
            )

        matched = 0
        while self.has_next_choice():
            step_index = self._position + 1
            entry = self.get_next_choice()
            expected = entry.get("passage_id")
            moved = engine.make_choice(entry.get("choice_id"))
            actual = engine.current_passage_id
            if not moved or actual != expected:
                self.stop_replay()
                reason = "choice was rejected" if not moved else f"landed on '{actual}'"
                logger.warning(f"Replay diverged at step {step_index}: {reason}")
                return ReplayResult(
                    passed=False,
                    steps_matched=matched,
                    divergent_step=step_index,
                    expected_passage_id=expected,
                    actual_passage_id=actual,
                    message=f"Step {step_index}: expected '{expected}' but {reason}",
                )
            matched += 1

        self.stop_replay()
        logger.info(f"Replay completed: {matched} choices matched")
        return ReplayResult(passed=True, steps_matched=matched)

    def get_summary(self) -> dict[str, Any]:
        return {
            "start_passage_id": self.start_passage_id,
            "mode": self.mode.value,
            "total_choices": len(self.choice_stream),
            "current_position": self._position,
            "remaining_choices": self.get_remaining_choices(),
            "overruns": self._overruns,
        }

    def __repr__(self) -> str:
        return (
            f"ReplaySession(start={self.start_passage_id}, "
            f"mode={self.mode.value}, "
            f"position={self._position}/{len(self.choice_stream)})"
        )
