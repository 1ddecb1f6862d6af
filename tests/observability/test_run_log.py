"""
Tests for the RunLog: sequencing, filtering, subscribers and persistence.
"""

from unittest.mock import MagicMock

import pytest

from src.observability.run_log import (
    ChoiceEvent,
    EventType,
    PassageEvent,
    RunLog,
    TransitionEvent,
)


@pytest.fixture
def run_log():
    log = RunLog()
    log.log_transition("inactive", "running", "start")
    log.log_passage("start", "Start", step_index=0, visit_count=1)
    log.log_choice("go", "Go", "second")
    log.log_passage("second", "Second", step_index=1, visit_count=1)
    log.log_variable("health", 100, 90)
    return log


class TestRunLogBasics:
    """Test event sequencing and queries."""

    def test_sequence_numbers_increase_by_one(self, run_log):
        assert [e.sequence_number for e in run_log.get_events()] == [1, 2, 3, 4, 5]

    def test_filter_by_type(self, run_log):
        passages = run_log.get_events(EventType.PASSAGE)
        assert [e.title for e in passages] == ["Start", "Second"]
        assert all(isinstance(e, PassageEvent) for e in passages)

    def test_since_sequence(self, run_log):
        assert [e.sequence_number for e in run_log.get_events(since_sequence=3)] == [4, 5]

    def test_typed_getters(self, run_log):
        assert len(run_log.get_passages()) == 2
        assert run_log.get_choices()[0].target_id == "second"
        assert run_log.get_transitions()[0].trigger == "start"
        assert run_log.get_errors() == []

    def test_summary_counts(self, run_log):
        summary = run_log.get_summary()
        assert summary["total_events"] == 5
        assert summary["counts"]["passage"] == 2
        assert summary["counts"]["error"] == 0

    def test_reset_clears(self, run_log):
        run_log.reset()
        assert run_log.get_event_count() == 0
        run_log.log_custom("marker", {"note": "x"})
        assert run_log.get_events()[0].sequence_number == 1

    def test_passage_provider_stamps_events(self):
        log = RunLog()
        log.set_passage_provider(lambda: "here")
        event = log.log_variable("x", None, 1)
        assert event.passage_id == "here"

    def test_explicit_passage_id_wins(self):
        log = RunLog()
        log.set_passage_provider(lambda: "here")
        event = log.log_breakpoint("there", "There")
        assert event.passage_id == "there"

    def test_instances_are_independent(self):
        first = RunLog()
        second = RunLog()
        first.log_custom("only_first", {})
        assert second.get_event_count() == 0


class TestRunLogSubscribers:
    """Test subscriber notification."""

    def test_subscriber_receives_events(self):
        log = RunLog()
        subscriber = MagicMock()
        log.subscribe(subscriber)
        event = log.log_choice("go", "Go", "second")
        subscriber.assert_called_once_with(event)

    def test_failing_subscriber_is_skipped(self):
        log = RunLog()
        log.subscribe(MagicMock(side_effect=ValueError("bad")))
        good = MagicMock()
        log.subscribe(good)
        log.log_custom("ping", {})
        good.assert_called_once()
        assert log.get_event_count() == 1

    def test_unsubscribe(self):
        log = RunLog()
        subscriber = MagicMock()
        log.subscribe(subscriber)
        log.unsubscribe(subscriber)
        log.log_custom("ping", {})
        subscriber.assert_not_called()


class TestRunLogPersistence:
    """Test save/load and formatting."""

    def test_save_and_load(self, run_log, tmp_path):
        path = tmp_path / "run_log.json"
        run_log.save(path)

        loaded = RunLog.load(path)

        assert loaded.get_event_count() == 5
        assert isinstance(loaded.get_events()[0], TransitionEvent)
        choice = loaded.get_choices()[0]
        assert isinstance(choice, ChoiceEvent)
        assert choice.choice_text == "Go"
        assert loaded.get_events(EventType.VARIABLE)[0].old_value == 100

    def test_format_log(self, run_log):
        text = run_log.format_log()
        assert "=== Run Log ===" in text
        assert "CHOICE 'Go' -> second" in text
        assert "VAR health: 100 -> 90" in text

    def test_format_log_limits(self, run_log):
        text = run_log.format_log(event_types=[EventType.PASSAGE], max_events=1)
        assert "Second" in text
        assert "PASSAGE #0" not in text
