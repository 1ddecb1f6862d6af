"""
Playthrough history: an append/truncate log of visited steps.

Each Step carries an immutable snapshot of the variables at the moment the
step was entered. Steps are never mutated; undo and jump shorten the log.
Visit counts are kept in lockstep with the steps so that
visited_counts[p] always equals the number of steps on passage p.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional
import logging

from src.player.variables import EMPTY_SNAPSHOT, freeze_variables

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """One passage visit in the playthrough."""

    index: int
    passage_id: str
    passage_title: str
    timestamp: int  # epoch milliseconds
    variables: Mapping[str, Any] = field(default_factory=lambda: EMPTY_SNAPSHOT, compare=False)
    choice_id: Optional[str] = None
    choice_text: Optional[str] = None

    @property
    def is_initial(self) -> bool:
        return self.choice_id is None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the exported playthrough keys (snapshot excluded)."""
        return {
            "index": self.index,
            "passageId": self.passage_id,
            "passageTitle": self.passage_title,
            "choiceId": self.choice_id,
            "choiceText": self.choice_text,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Step":
        return cls(
            index=int(data.get("index", 0)),
            passage_id=data["passageId"],
            passage_title=data.get("passageTitle", ""),
            timestamp=int(data.get("timestamp", 0)),
            variables=freeze_variables(data.get("variables") or {}),
            choice_id=data.get("choiceId"),
            choice_text=data.get("choiceText"),
        )

    def __str__(self) -> str:
        if self.choice_text is None:
            return f"[{self.index}] {self.passage_title}"
        return f"[{self.index}] --{self.choice_text}--> {self.passage_title}"


class PlaythroughHistory:
    """Ordered steps of the current playthrough plus per-passage visit counts."""

    def __init__(self) -> None:
        self._steps: list[Step] = []
        self._visited: dict[str, int] = {}

    def append(
        self,
        passage_id: str,
        passage_title: str,
        timestamp: int,
        variables: Mapping[str, Any],
        choice_id: Optional[str] = None,
        choice_text: Optional[str] = None,
    ) -> Step:
        """Record entry into a passage and return the new step."""
        step = Step(
            index=len(self._steps),
            passage_id=passage_id,
            passage_title=passage_title,
            timestamp=timestamp,
            variables=freeze_variables(variables),
            choice_id=choice_id,
            choice_text=choice_text,
        )
        self._steps.append(step)
        self._visited[passage_id] = self._visited.get(passage_id, 0) + 1
        return step

    def truncate(self, length: int) -> list[Step]:
        """
        Shorten the log to its first `length` steps.

        Returns:
            The removed steps, oldest first
        """
        length = max(0, length)
        removed = self._steps[length:]
        del self._steps[length:]
        for step in removed:
            remaining = self._visited.get(step.passage_id, 0) - 1
            if remaining > 0:
                self._visited[step.passage_id] = remaining
            else:
                self._visited.pop(step.passage_id, None)
        return removed

    def undo(self) -> Optional[Step]:
        """Drop the last step. The initial step can never be removed."""
        if not self.can_undo:
            return None
        return self.truncate(len(self._steps) - 1)[0]

    def reset(self) -> None:
        self._steps = []
        self._visited = {}

    @property
    def can_undo(self) -> bool:
        return len(self._steps) > 1

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def last(self) -> Optional[Step]:
        return self._steps[-1] if self._steps else None

    @property
    def visited_counts(self) -> Mapping[str, int]:
        return MappingProxyType(dict(self._visited))

    def visit_count(self, passage_id: str) -> int:
        return self._visited.get(passage_id, 0)

    def passages_visited(self) -> list[str]:
        """Distinct passage ids in order of first visit."""
        seen: list[str] = []
        for step in self._steps:
            if step.passage_id not in seen:
                seen.append(step.passage_id)
        return seen

    def __len__(self) -> int:
        return len(self._steps)

    def __getitem__(self, index: int) -> Step:
        return self._steps[index]

    def __iter__(self) -> Iterator[Step]:
        return iter(list(self._steps))

    def __repr__(self) -> str:
        return f"PlaythroughHistory(steps={len(self._steps)}, unique={len(self._visited)})"
