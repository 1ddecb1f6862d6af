"""
Playback & Debugging Engine.

Simulates one reader traversing the story graph while the author edits it.
The engine owns a private overlay (phase, variables, history, breakpoints,
errors, timer) and exposes:

- commands: load_story, start, stop, restart, pause, resume, toggle_pause,
  make_choice, undo, jump_to_step, set_variable, toggle_breakpoint,
  toggle_debug_mode, clear_errors, restore_state
- read-only projections: active, paused, current_passage, available_choices,
  variables, history, visited_counts, breakpoints, errors, duration, ...
- the recorder: get_playthrough / export_playthrough
- observers: subscribe() for state snapshots after every mutating command,
  on()/off() for typed events

Every command completes synchronously and never raises. Failures are
recorded in `errors` and signalled through boolean return values.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional
import logging

from src.data_models import Choice, Passage, Story
from src.observability.recorder import PlaythroughRecording, build_playthrough, iso_timestamp
from src.observability.run_log import RunLog
from src.player.breakpoints import BreakpointController
from src.player.errors import ErrorKind, PlayerError
from src.player.history import PlaythroughHistory, Step
from src.player.state_machine import PlayerPhase, PlayerStateMachine
from src.player.timer import Clock, DurationTimer, wall_clock_ms
from src.player.variables import EMPTY_SNAPSHOT, VariableStore

logger = logging.getLogger(__name__)


class PlayerEvent(str, Enum):
    """Typed events emitted by the engine."""

    PASSAGE_ENTERED = "passage_entered"
    CHOICE_SELECTED = "choice_selected"
    VARIABLE_CHANGED = "variable_changed"
    BREAKPOINT_HIT = "breakpoint_hit"
    ERROR = "error"
    STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class PlayerSnapshot:
    """Immutable view of the engine overlay at one point in time."""

    phase: PlayerPhase = PlayerPhase.INACTIVE
    current_passage_id: Optional[str] = None
    variables: Mapping[str, Any] = field(default_factory=lambda: EMPTY_SNAPSHOT)
    history: tuple[Step, ...] = ()
    visited_counts: Mapping[str, int] = field(default_factory=lambda: EMPTY_SNAPSHOT)
    breakpoints: frozenset[str] = frozenset()
    debug_mode: bool = False
    errors: tuple[PlayerError, ...] = ()
    duration_ms: int = 0

    @property
    def active(self) -> bool:
        return self.phase != PlayerPhase.INACTIVE

    @property
    def paused(self) -> bool:
        return self.phase == PlayerPhase.PAUSED


Subscriber = Callable[[PlayerSnapshot], None]
Listener = Callable[[dict[str, Any]], None]


class PlaybackEngine:
    """
    Single-reader story interpreter with undo, replay-consistent history,
    breakpoints and pause-aware timing.

    Args:
        story: Optional story to load immediately
        clock: Callable returning epoch milliseconds (defaults to wall clock)
        run_log: RunLog to record events into (a fresh one by default)
    """

    def __init__(
        self,
        story: Optional[Story] = None,
        clock: Optional[Clock] = None,
        run_log: Optional[RunLog] = None,
    ):
        self._story: Optional[Story] = None
        self._clock: Clock = clock or wall_clock_ms
        self._machine = PlayerStateMachine()
        self._variables = VariableStore()
        self._history = PlaythroughHistory()
        self._debug = BreakpointController()
        self._timer = DurationTimer(clock=self._clock)
        self._errors: list[PlayerError] = []
        self._current_passage_id: Optional[str] = None
        self._session_started_at: Optional[int] = None
        self._subscribers: list[Subscriber] = []
        self._listeners: dict[PlayerEvent, list[Listener]] = {event: [] for event in PlayerEvent}

        self._run_log = run_log if run_log is not None else RunLog()
        self._run_log.set_passage_provider(lambda: self._current_passage_id)
        self._machine.register_post_hook(self._on_phase_transition)

        if story is not None:
            self.load_story(story)

    # =========================================================================
    # PROJECTIONS
    # =========================================================================

    @property
    def story(self) -> Optional[Story]:
        return self._story

    @property
    def phase(self) -> PlayerPhase:
        return self._machine.current_state

    @property
    def active(self) -> bool:
        return self._machine.is_active

    @property
    def paused(self) -> bool:
        return self._machine.is_paused

    @property
    def current_passage_id(self) -> Optional[str]:
        return self._current_passage_id

    @property
    def current_passage(self) -> Optional[Passage]:
        if self._story is None or not self.active:
            return None
        return self._story.get_passage(self._current_passage_id)

    @property
    def available_choices(self) -> tuple[Choice, ...]:
        passage = self.current_passage
        return tuple(passage.choices) if passage else ()

    @property
    def variables(self) -> Mapping[str, Any]:
        return self._variables.snapshot()

    @property
    def history(self) -> tuple[Step, ...]:
        return self._history.steps

    @property
    def visited_counts(self) -> Mapping[str, int]:
        return self._history.visited_counts

    @property
    def breakpoints(self) -> frozenset[str]:
        return self._debug.as_frozenset()

    @property
    def debug_mode(self) -> bool:
        return self._debug.debug_mode

    @property
    def errors(self) -> tuple[PlayerError, ...]:
        return tuple(self._errors)

    @property
    def duration(self) -> int:
        """Running time in milliseconds; frozen while paused, zero while inactive."""
        if not self.active:
            return 0
        return self._timer.duration_ms()

    @property
    def has_history(self) -> bool:
        return len(self._history) > 1

    @property
    def can_undo(self) -> bool:
        return self.active and self._history.can_undo

    @property
    def unique_passages_visited(self) -> int:
        return len(self._history.visited_counts)

    @property
    def completed(self) -> bool:
        """True when the reader is on a passage with no outgoing choices."""
        passage = self.current_passage
        return passage is not None and passage.is_ending()

    @property
    def run_log(self) -> RunLog:
        return self._run_log

    def visit_count(self, passage_id: str) -> int:
        return self._history.visit_count(passage_id)

    def get_variable(self, name: str) -> Optional[Any]:
        """Current value of a variable, or None if it was never bound."""
        return self._variables.get(name)

    def has_breakpoint(self, passage_id: str) -> bool:
        return self._debug.has(passage_id)

    def get_state(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            phase=self.phase,
            current_passage_id=self._current_passage_id,
            variables=self._variables.snapshot(),
            history=self._history.steps,
            visited_counts=self._history.visited_counts,
            breakpoints=self._debug.as_frozenset(),
            debug_mode=self._debug.debug_mode,
            errors=tuple(self._errors),
            duration_ms=self.duration,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def load_story(self, story: Story) -> None:
        """Load a story. An in-flight playthrough is stopped first; breakpoints survive."""
        if self.active:
            self.stop()
        self._story = story
        logger.info(f"Loaded story '{story.title}' ({len(story.passages)} passages)")
        self._notify()

    def start(self, passage_id: Optional[str] = None) -> None:
        """
        Begin a playthrough at `passage_id` or the story's start passage.

        A no-op while already active.
        """
        if self.active:
            logger.debug("start ignored: playthrough already active")
            return
        if self._story is None:
            self._record_error(ErrorKind.VALIDATION, "No story loaded", "start")
            self._notify()
            return

        start_id = passage_id or self._story.start_passage
        passage = self._story.get_passage(start_id)
        if passage is None:
            self._record_error(
                ErrorKind.VALIDATION,
                f"Start passage '{start_id}' not found",
                "start",
                passage_id=start_id,
            )
            self._notify()
            return

        self._machine.transition("start", {"passage_id": passage.id})
        self._begin_session(passage)
        logger.info(f"Playthrough started at '{passage.title}'")
        self._notify()

    def stop(self) -> None:
        """Discard the playthrough and its run log and return to inactive. Idempotent."""
        if self.active:
            self._machine.transition("stop")
            logger.info("Playthrough stopped")
        self._history.reset()
        self._run_log.reset()
        self._variables.clear()
        self._errors.clear()
        self._timer.reset()
        self._current_passage_id = None
        self._session_started_at = None
        self._notify()

    def restart(self) -> None:
        """
        Reseed variables and history from the story's start passage.

        Starts a new playthrough when inactive.
        """
        if not self.active:
            self.start()
            return

        passage = self._story.get_passage(self._story.start_passage)
        if passage is None:
            self._record_error(
                ErrorKind.INTEGRITY,
                "Cannot restart: start passage no longer exists",
                "restart",
                passage_id=self._story.start_passage,
            )
            self._notify()
            return

        self._machine.transition("restart", {"passage_id": passage.id})
        self._begin_session(passage)
        logger.info(f"Playthrough restarted at '{passage.title}'")
        self._notify()

    def _begin_session(self, passage: Passage) -> None:
        self._errors.clear()
        self._variables.seed(self._story.variables.values())
        self._history.reset()
        self._timer.start()
        self._session_started_at = self._clock()
        self._enter_passage(passage)

    # =========================================================================
    # PAUSE / RESUME
    # =========================================================================

    def pause(self) -> None:
        if not self._machine.can_transition("pause"):
            return
        self._machine.transition("pause")
        self._timer.pause()
        self._notify()

    def resume(self) -> None:
        if not self._machine.can_transition("resume"):
            return
        self._machine.transition("resume")
        self._timer.resume()
        self._notify()

    def toggle_pause(self) -> None:
        if self.paused:
            self.resume()
        else:
            self.pause()

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def make_choice(self, choice_id: str) -> bool:
        """
        Follow a choice from the current passage.

        Returns:
            True if the reader moved to the choice's target passage
        """
        passage = self.current_passage
        if passage is None:
            message = "No active playthrough" if not self.active else "Current passage no longer exists"
            kind = ErrorKind.VALIDATION if not self.active else ErrorKind.INTEGRITY
            self._record_error(kind, message, "make_choice", passage_id=self._current_passage_id)
            self._notify()
            return False

        choice = passage.get_choice(choice_id)
        if choice is None:
            self._record_error(
                ErrorKind.VALIDATION,
                f"Choice '{choice_id}' not found in passage '{passage.title}'",
                "make_choice",
                passage_id=passage.id,
            )
            self._notify()
            return False

        target = self._story.get_passage(choice.target)
        if target is None:
            self._record_error(
                ErrorKind.INTEGRITY,
                f"Choice '{choice.text}' targets missing passage '{choice.target}'",
                "make_choice",
                passage_id=passage.id,
            )
            self._notify()
            return False

        self._emit(PlayerEvent.CHOICE_SELECTED, {"choice": choice, "passage": passage})
        self._run_log.log_choice(choice.id, choice.text, target.id)
        self._enter_passage(target, choice)

        if self._debug.has(target.id):
            self._hit_breakpoint(target)

        self._notify()
        return True

    def _enter_passage(self, passage: Passage, choice: Optional[Choice] = None) -> Step:
        step = self._history.append(
            passage_id=passage.id,
            passage_title=passage.title,
            timestamp=self._clock(),
            variables=self._variables.view(),
            choice_id=choice.id if choice else None,
            choice_text=choice.text if choice else None,
        )
        self._current_passage_id = passage.id
        visits = self._history.visit_count(passage.id)

        self._trace(f"Entered passage '{passage.title}' (step {step.index}, visit {visits})")
        self._run_log.log_passage(passage.id, passage.title, step.index, visits)
        self._emit(
            PlayerEvent.PASSAGE_ENTERED,
            {"passage": passage, "step": step, "visit_count": visits},
        )
        return step

    def _hit_breakpoint(self, passage: Passage) -> None:
        if self._machine.can_transition("breakpoint_hit"):
            self._machine.transition("breakpoint_hit", {"passage_id": passage.id})
            self._timer.pause()
        if self._debug.debug_mode:
            logger.info(f"Breakpoint hit: {passage.title}")
        else:
            logger.debug(f"Breakpoint hit: {passage.title}")
        self._run_log.log_breakpoint(passage.id, passage.title)
        self._emit(PlayerEvent.BREAKPOINT_HIT, {"passage": passage})

    # =========================================================================
    # HISTORY
    # =========================================================================

    def undo(self) -> bool:
        """
        Step back one passage. Variables keep their live values.

        Returns:
            False when inactive or already at the initial step
        """
        if not self.can_undo:
            return False
        before = len(self._history)
        self._history.undo()
        self._current_passage_id = self._history.last.passage_id
        self._trace(f"Undo: back to '{self._history.last.passage_title}'")
        self._run_log.log_rewind("undo", before, len(self._history))
        self._notify()
        return True

    def jump_to_step(self, index: int) -> bool:
        """
        Rewind to a history step, truncating later steps and restoring the
        step's variable snapshot.

        Returns:
            False for an out-of-range index
        """
        size = len(self._history)
        if not self.active or isinstance(index, bool) or not 0 <= index < size:
            self._record_error(
                ErrorKind.VALIDATION,
                f"Step index {index} out of range (history has {size} steps)",
                "jump_to_step",
                passage_id=self._current_passage_id,
            )
            self._notify()
            return False

        step = self._history[index]
        self._history.truncate(index + 1)
        self._variables.restore(step.variables)
        self._current_passage_id = step.passage_id
        self._trace(f"Jumped to step {index} ('{step.passage_title}')")
        self._run_log.log_rewind("jump", size, len(self._history), variables_restored=True)
        self._notify()
        return True

    # =========================================================================
    # VARIABLES
    # =========================================================================

    def set_variable(self, name: str, value: Any) -> None:
        """Bind a variable. No type checking against the declaration."""
        if not self.active:
            logger.debug(f"set_variable({name!r}) ignored: playthrough not active")
            return
        old_value = self._variables.set(name, value)
        self._run_log.log_variable(name, old_value, value)
        self._emit(
            PlayerEvent.VARIABLE_CHANGED,
            {
                "name": name,
                "old_value": old_value,
                "new_value": value,
                "timestamp": self._clock(),
            },
        )
        self._notify()

    # =========================================================================
    # DEBUGGING
    # =========================================================================

    def toggle_breakpoint(self, passage_id: str) -> bool:
        enabled = self._debug.toggle(passage_id)
        self._notify()
        return enabled

    def toggle_debug_mode(self) -> bool:
        enabled = self._debug.toggle_debug_mode()
        logger.info(f"Debug mode {'enabled' if enabled else 'disabled'}")
        self._notify()
        return enabled

    def clear_errors(self) -> None:
        self._errors.clear()
        self._notify()

    def restore_state(self, snapshot: PlayerSnapshot) -> bool:
        """
        Restore the playthrough portion of a snapshot (phase, passage,
        variables, history, duration). Breakpoints and debug mode are
        authoring configuration and are left as they are.

        Returns:
            False if the snapshot refers to passages missing from the story
        """
        if not snapshot.history:
            self.stop()
            return True
        if self._story is None:
            self._record_error(ErrorKind.VALIDATION, "No story loaded", "restore_state")
            self._notify()
            return False
        missing = [s.passage_id for s in snapshot.history if not self._story.has_passage(s.passage_id)]
        if missing:
            self._record_error(
                ErrorKind.INTEGRITY,
                f"Snapshot refers to missing passages: {sorted(set(missing))}",
                "restore_state",
            )
            self._notify()
            return False

        if not self.active:
            self._machine.transition("start", {"restored": True})
        if snapshot.paused and self.phase == PlayerPhase.RUNNING:
            self._machine.transition("pause", {"restored": True})
        elif not snapshot.paused and self.phase == PlayerPhase.PAUSED:
            self._machine.transition("resume", {"restored": True})

        self._history.reset()
        for step in snapshot.history:
            self._history.append(
                passage_id=step.passage_id,
                passage_title=step.passage_title,
                timestamp=step.timestamp,
                variables=step.variables,
                choice_id=step.choice_id,
                choice_text=step.choice_text,
            )
        self._variables.restore(snapshot.variables)
        self._current_passage_id = self._history.last.passage_id
        self._errors = list(snapshot.errors)
        self._timer.restore(snapshot.duration_ms, running=not snapshot.paused)
        if self._session_started_at is None:
            self._session_started_at = snapshot.history[0].timestamp
        self._notify()
        return True

    # =========================================================================
    # RECORDER
    # =========================================================================

    def get_playthrough(self) -> PlaythroughRecording:
        """Immutable summary of the current playthrough. Callable at any time."""
        story_title = self._story.title if self._story else "Untitled"
        started = self._session_started_at if self._session_started_at is not None else self._clock()
        return build_playthrough(
            story_title=story_title,
            recorded_at=iso_timestamp(started),
            steps=self._history.steps,
            variables=self._variables.snapshot(),
            passages_visited=self._history.passages_visited(),
            completed=self.completed,
            duration_ms=self.duration,
        )

    def export_playthrough(self, indent: int = 2) -> str:
        """Serialize the current playthrough to JSON."""
        recording = self.get_playthrough()
        logger.debug(f"Exporting playthrough with {len(recording.steps)} steps")
        return recording.to_json(indent=indent)

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback receiving a PlayerSnapshot after every mutating
        command.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on(self, event: PlayerEvent, callback: Listener) -> None:
        self._listeners[PlayerEvent(event)].append(callback)

    def off(self, event: PlayerEvent, callback: Listener) -> None:
        listeners = self._listeners[PlayerEvent(event)]
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: PlayerEvent, payload: dict[str, Any]) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception as e:
                logger.warning(f"Listener error on {event.value}: {e}")

    def _notify(self) -> None:
        if not self._subscribers and not self._listeners[PlayerEvent.STATE_CHANGED]:
            return
        snapshot = self.get_state()
        for subscriber in list(self._subscribers):
            try:
                subscriber(snapshot)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")
        self._emit(PlayerEvent.STATE_CHANGED, {"state": snapshot})

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _record_error(
        self,
        kind: ErrorKind,
        message: str,
        context: str,
        passage_id: Optional[str] = None,
    ) -> PlayerError:
        error = PlayerError(
            kind=kind,
            message=message,
            context=context,
            passage_id=passage_id,
            timestamp=self._clock(),
        )
        self._errors.append(error)
        logger.warning(f"[{context}] {message}")
        self._run_log.log_error(kind.value, message, context, passage_id=passage_id)
        self._emit(PlayerEvent.ERROR, {"error": error})
        return error

    def _on_phase_transition(
        self,
        old_state: PlayerPhase,
        new_state: PlayerPhase,
        trigger: str,
        context: dict[str, Any],
    ) -> None:
        self._run_log.log_transition(old_state.value, new_state.value, trigger, context)

    def _trace(self, message: str) -> None:
        if self._debug.debug_mode:
            logger.info(message)
        else:
            logger.debug(message)

    def __repr__(self) -> str:
        return (
            f"PlaybackEngine(phase={self.phase.value}, "
            f"passage={self._current_passage_id}, steps={len(self._history)})"
        )
