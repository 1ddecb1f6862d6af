"""
Playthrough duration timer.

Duration is derived on read from timestamps; there is no background task.
    duration = accumulated_ms + (running ? now - last_resume_at : 0)
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import time

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def compute_duration(
    now: int,
    last_resume_at: Optional[int],
    accumulated_ms: int,
    running: bool,
) -> int:
    """Pure duration calculation. A clock that steps backwards adds nothing."""
    if not running or last_resume_at is None:
        return accumulated_ms
    return accumulated_ms + max(0, now - last_resume_at)


@dataclass
class DurationTimer:
    """Tracks running time across pause/resume cycles."""

    clock: Clock = field(default=wall_clock_ms)
    accumulated_ms: int = 0
    last_resume_at: Optional[int] = None
    running: bool = False

    def start(self) -> None:
        """Reset to zero and start running."""
        self.accumulated_ms = 0
        self.last_resume_at = self.clock()
        self.running = True

    def pause(self) -> None:
        """Fold elapsed running time into the accumulator."""
        if not self.running:
            return
        self.accumulated_ms = self.duration_ms()
        self.running = False

    def resume(self) -> None:
        if self.running:
            return
        self.last_resume_at = self.clock()
        self.running = True

    def reset(self) -> None:
        """Stop and zero the timer, re-anchoring at the current time."""
        self.accumulated_ms = 0
        self.last_resume_at = self.clock()
        self.running = False

    def restore(self, accumulated_ms: int, running: bool) -> None:
        self.accumulated_ms = max(0, int(accumulated_ms))
        self.last_resume_at = self.clock()
        self.running = running

    def duration_ms(self) -> int:
        return compute_duration(
            self.clock(), self.last_resume_at, self.accumulated_ms, self.running
        )
