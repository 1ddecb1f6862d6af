"""Breakpoints and debug mode: authoring configuration that outlives a playthrough."""

from typing import Iterable, Iterator, Optional
import logging

logger = logging.getLogger(__name__)


class BreakpointController:
    """
    Set of passages that force playback into PAUSED when entered.

    Breakpoints fire on every entry, loops included; no acknowledgement
    state is kept.
    """

    def __init__(self, passage_ids: Optional[Iterable[str]] = None, debug_mode: bool = False):
        self._breakpoints: set[str] = set(passage_ids or ())
        self.debug_mode = debug_mode

    def toggle(self, passage_id: str) -> bool:
        """Flip the breakpoint on a passage. Returns True if it is now set."""
        if passage_id in self._breakpoints:
            self._breakpoints.discard(passage_id)
            logger.debug(f"Breakpoint cleared: {passage_id}")
            return False
        self._breakpoints.add(passage_id)
        logger.debug(f"Breakpoint set: {passage_id}")
        return True

    def has(self, passage_id: Optional[str]) -> bool:
        return passage_id in self._breakpoints

    def clear(self) -> None:
        self._breakpoints.clear()

    def toggle_debug_mode(self) -> bool:
        self.debug_mode = not self.debug_mode
        return self.debug_mode

    def as_frozenset(self) -> frozenset[str]:
        return frozenset(self._breakpoints)

    def __contains__(self, passage_id: object) -> bool:
        return passage_id in self._breakpoints

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._breakpoints))

    def __len__(self) -> int:
        return len(self._breakpoints)
