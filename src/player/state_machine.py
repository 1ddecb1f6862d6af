"""
Phase state machine for the playback engine.

The engine is always in exactly one phase: INACTIVE, RUNNING or PAUSED.
All phase changes go through PlayerStateMachine, which validates the trigger
against the transition table and keeps a transition history for debugging.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional


class PlayerPhase(str, Enum):
    """Playback phases. Only ONE phase is active at any time."""

    INACTIVE = "inactive"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class PhaseTransition:
    """Defines a valid phase transition."""

    from_state: PlayerPhase
    to_state: PlayerPhase
    trigger: str
    description: str = ""

    def __hash__(self) -> int:
        return hash((self.from_state, self.to_state, self.trigger))


@dataclass
class TransitionLog:
    """Log entry for a phase transition."""

    timestamp: datetime
    from_state: str
    to_state: str
    trigger: str
    context: dict[str, Any] = field(default_factory=dict)


VALID_TRANSITIONS: list[PhaseTransition] = [
    PhaseTransition(
        PlayerPhase.INACTIVE,
        PlayerPhase.RUNNING,
        "start",
        "Playthrough begins at the start passage",
    ),
    # Running transitions
    PhaseTransition(
        PlayerPhase.RUNNING,
        PlayerPhase.PAUSED,
        "pause",
        "Author pauses playback",
    ),
    PhaseTransition(
        PlayerPhase.RUNNING,
        PlayerPhase.PAUSED,
        "breakpoint_hit",
        "A choice led into a passage flagged as a breakpoint",
    ),
    PhaseTransition(
        PlayerPhase.RUNNING,
        PlayerPhase.INACTIVE,
        "stop",
        "Playthrough discarded",
    ),
    PhaseTransition(
        PlayerPhase.RUNNING,
        PlayerPhase.RUNNING,
        "restart",
        "History and variables reseeded",
    ),
    # Paused transitions
    PhaseTransition(
        PlayerPhase.PAUSED,
        PlayerPhase.RUNNING,
        "resume",
        "Author resumes playback",
    ),
    PhaseTransition(
        PlayerPhase.PAUSED,
        PlayerPhase.INACTIVE,
        "stop",
        "Playthrough discarded while paused",
    ),
    PhaseTransition(
        PlayerPhase.PAUSED,
        PlayerPhase.RUNNING,
        "restart",
        "Restart clears the pause",
    ),
]


class InvalidTransitionError(Exception):
    """Raised when an invalid phase transition is attempted."""

    pass


class PlayerStateMachine:
    """
    Manages playback phase transitions with validation and history tracking.

    Attributes:
        current_state: The current phase
        previous_state: The phase before the last transition
        state_history: History of all transitions
    """

    def __init__(self, initial_state: PlayerPhase = PlayerPhase.INACTIVE):
        self._current_state: PlayerPhase = initial_state
        self._previous_state: Optional[PlayerPhase] = None
        self._state_history: list[TransitionLog] = []
        self._post_transition_hooks: list[Callable] = []

        self._valid_transitions: dict[tuple[PlayerPhase, str], PlayerPhase] = {}
        for transition in VALID_TRANSITIONS:
            key = (transition.from_state, transition.trigger)
            self._valid_transitions[key] = transition.to_state

        self._log_transition(
            from_state="INIT", to_state=initial_state.value, trigger="initialization"
        )

    @property
    def current_state(self) -> PlayerPhase:
        return self._current_state

    @property
    def previous_state(self) -> Optional[PlayerPhase]:
        return self._previous_state

    @property
    def state_history(self) -> list[TransitionLog]:
        return self._state_history.copy()

    @property
    def is_active(self) -> bool:
        return self._current_state != PlayerPhase.INACTIVE

    @property
    def is_paused(self) -> bool:
        return self._current_state == PlayerPhase.PAUSED

    def can_transition(self, trigger: str) -> bool:
        """Check if a trigger is valid from the current phase."""
        return (self._current_state, trigger) in self._valid_transitions

    def get_valid_triggers(self) -> list[str]:
        """Get all valid triggers from the current phase."""
        return [
            trigger
            for (state, trigger) in self._valid_transitions
            if state == self._current_state
        ]

    def transition(self, trigger: str, context: Optional[dict[str, Any]] = None) -> PlayerPhase:
        """
        Attempt to move to a new phase.

        Args:
            trigger: The trigger event causing the transition
            context: Optional context data for the transition

        Returns:
            The new phase

        Raises:
            InvalidTransitionError: If the transition is not valid
        """
        context = context or {}

        key = (self._current_state, trigger)
        if key not in self._valid_transitions:
            raise InvalidTransitionError(
                f"Invalid transition: Cannot trigger '{trigger}' from phase "
                f"'{self._current_state.value}'. Valid triggers: {self.get_valid_triggers()}"
            )

        new_state = self._valid_transitions[key]
        old_state = self._current_state

        self._previous_state = old_state
        self._current_state = new_state

        self._log_transition(
            from_state=old_state.value, to_state=new_state.value, trigger=trigger, context=context
        )

        for hook in self._post_transition_hooks:
            hook(old_state, new_state, trigger, context)

        return new_state

    def register_post_hook(self, hook: Callable) -> None:
        """Register a hook called with (old_state, new_state, trigger, context) after any transition."""
        self._post_transition_hooks.append(hook)

    def _log_transition(
        self, from_state: str, to_state: str, trigger: str, context: Optional[dict[str, Any]] = None
    ) -> None:
        self._state_history.append(
            TransitionLog(
                timestamp=datetime.now(),
                from_state=from_state,
                to_state=to_state,
                trigger=trigger,
                context=context or {},
            )
        )

    def __repr__(self) -> str:
        return (
            f"PlayerStateMachine(current={self._current_state.value}, "
            f"previous={self._previous_state})"
        )
