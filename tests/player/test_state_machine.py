"""
Tests for the playback phase state machine.
"""

from unittest.mock import MagicMock

import pytest

from src.player.state_machine import (
    InvalidTransitionError,
    PlayerPhase,
    PlayerStateMachine,
)


class TestPhaseTransitions:
    """Test valid and invalid phase transitions."""

    def test_initial_phase(self):
        machine = PlayerStateMachine()
        assert machine.current_state == PlayerPhase.INACTIVE
        assert not machine.is_active
        assert machine.state_history[0].from_state == "INIT"

    def test_start_pause_resume_stop(self):
        """The full lifecycle visits every phase."""
        machine = PlayerStateMachine()
        assert machine.transition("start") == PlayerPhase.RUNNING
        assert machine.transition("pause") == PlayerPhase.PAUSED
        assert machine.is_paused
        assert machine.transition("resume") == PlayerPhase.RUNNING
        assert machine.transition("stop") == PlayerPhase.INACTIVE
        assert machine.previous_state == PlayerPhase.RUNNING

    def test_breakpoint_pauses(self):
        machine = PlayerStateMachine(PlayerPhase.RUNNING)
        assert machine.transition("breakpoint_hit") == PlayerPhase.PAUSED

    def test_restart_from_paused_runs(self):
        machine = PlayerStateMachine(PlayerPhase.PAUSED)
        assert machine.transition("restart") == PlayerPhase.RUNNING

    def test_invalid_trigger_raises(self):
        """Pausing an inactive player is not a valid transition."""
        machine = PlayerStateMachine()
        with pytest.raises(InvalidTransitionError, match="pause"):
            machine.transition("pause")
        assert machine.current_state == PlayerPhase.INACTIVE

    def test_valid_triggers(self):
        machine = PlayerStateMachine(PlayerPhase.PAUSED)
        assert set(machine.get_valid_triggers()) == {"resume", "stop", "restart"}
        assert machine.can_transition("resume")
        assert not machine.can_transition("pause")


class TestHooks:
    """Test transition hooks and history."""

    def test_post_hook_receives_transition(self):
        machine = PlayerStateMachine()
        hook = MagicMock()
        machine.register_post_hook(hook)

        machine.transition("start", {"passage_id": "start"})

        hook.assert_called_once_with(
            PlayerPhase.INACTIVE, PlayerPhase.RUNNING, "start", {"passage_id": "start"}
        )

    def test_history_records_context(self):
        machine = PlayerStateMachine()
        machine.transition("start", {"passage_id": "p1"})
        last = machine.state_history[-1]
        assert (last.from_state, last.to_state, last.trigger) == ("inactive", "running", "start")
        assert last.context == {"passage_id": "p1"}
