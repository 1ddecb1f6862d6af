"""
Tests for choice-stream replay.

Verifies that:
1. ReplaySession hands out recorded choices in order and tracks overruns
2. Sessions can be built from exported playthroughs, run logs and saved files
3. Replaying against the same story reproduces the path
4. Replaying against an edited story reports the first divergent step
"""

import pytest

from src.data_models import Choice
from src.observability.replay import ReplayMode, ReplayResult, ReplaySession
from src.observability.recorder import save_playthrough
from src.player.engine import PlaybackEngine


@pytest.fixture
def recorded(started_engine):
    """A recording of Start -> Second -> Start -> Third."""
    for choice_id in ("go", "back", "skip"):
        started_engine.make_choice(choice_id)
    return started_engine.get_playthrough()


class TestReplaySessionBasics:
    """Test ReplaySession core functionality."""

    def test_create_empty_session(self):
        session = ReplaySession()
        assert session.mode == ReplayMode.DISABLED
        assert session.get_total_choices() == 0
        assert not session.has_next_choice()

    def test_next_choice_in_sequence(self):
        session = ReplaySession(start_passage_id="start")
        session.add_choice("go", "second")
        session.add_choice("back", "start")
        session.start_replay()

        assert session.get_next_choice()["choice_id"] == "go"
        assert session.get_position() == 1
        assert session.peek_next_choice()["choice_id"] == "back"
        assert session.get_next_choice()["passage_id"] == "start"
        assert session.get_remaining_choices() == 0

    def test_no_choices_when_disabled(self):
        session = ReplaySession()
        session.add_choice("go", "second")
        assert session.get_next_choice() is None

    def test_overrun_tracking(self):
        session = ReplaySession()
        session.add_choice("go", "second")
        session.start_replay()
        session.get_next_choice()
        assert session.get_next_choice() is None
        assert session.get_overrun_count() == 1

    def test_reset(self):
        session = ReplaySession()
        session.add_choice("go", "second")
        session.start_replay()
        session.get_next_choice()
        session.reset()
        assert session.get_position() == 0

    def test_summary(self):
        session = ReplaySession(start_passage_id="start")
        session.add_choice("go", "second")
        summary = session.get_summary()
        assert summary["start_passage_id"] == "start"
        assert summary["total_choices"] == 1
        assert summary["mode"] == "disabled"


class TestReplaySources:
    """Test building sessions from recorded data."""

    def test_from_playthrough(self, recorded):
        session = ReplaySession.from_playthrough(recorded)
        assert session.is_replaying()
        assert session.start_passage_id == "start"
        assert [c["choice_id"] for c in session.choice_stream] == ["go", "back", "skip"]
        assert [c["passage_id"] for c in session.choice_stream] == ["second", "start", "third"]

    def test_from_run_log(self, started_engine):
        started_engine.make_choice("go")
        started_engine.make_choice("onward")
        session = ReplaySession.from_run_log(started_engine.run_log.to_dict())
        assert session.start_passage_id == "start"
        assert [c["choice_id"] for c in session.choice_stream] == ["go", "onward"]

    def test_from_run_log_drops_undone_choices(self, started_engine, sample_story, clock):
        started_engine.make_choice("skip")
        started_engine.undo()
        started_engine.make_choice("go")

        session = ReplaySession.from_run_log(started_engine.run_log.to_dict())

        assert [c["choice_id"] for c in session.choice_stream] == ["go"]
        assert session.run(PlaybackEngine(sample_story, clock=clock)).passed

    def test_from_run_log_after_jump(self, started_engine):
        for choice_id in ("go", "back", "skip"):
            started_engine.make_choice(choice_id)
        started_engine.jump_to_step(1)
        started_engine.make_choice("onward")

        session = ReplaySession.from_run_log(started_engine.run_log.to_dict())

        assert [c["choice_id"] for c in session.choice_stream] == ["go", "onward"]

    def test_save_and_load(self, tmp_path):
        session = ReplaySession(start_passage_id="start")
        session.add_choice("go", "second", "Go", "Second")
        path = tmp_path / "replay.json"
        session.save(path)

        loaded = ReplaySession.load(path)

        assert loaded.is_replaying()
        assert loaded.choice_stream == session.choice_stream

    def test_load_exported_playthrough(self, recorded, tmp_path):
        path = save_playthrough(recorded, tmp_path / "run.json")
        loaded = ReplaySession.load(path)
        assert loaded.get_total_choices() == 3

    def test_load_run_log_file(self, started_engine, tmp_path):
        started_engine.make_choice("go")
        path = tmp_path / "log.json"
        started_engine.run_log.save(path)
        assert ReplaySession.load(path).get_total_choices() == 1


class TestReplayRun:
    """Test replaying against an engine."""

    def test_same_story_reproduces_path(self, recorded, sample_story, clock):
        engine = PlaybackEngine(sample_story, clock=clock)
        result = ReplaySession.from_playthrough(recorded).run(engine)

        assert result.passed
        assert result.steps_matched == 3
        assert [s.passage_id for s in engine.history] == ["start", "second", "start", "third"]

    def test_edited_story_reports_divergence(self, recorded, sample_story, clock):
        sample_story.passages["second"].choices[0].target = "third"
        engine = PlaybackEngine(sample_story, clock=clock)

        result = ReplaySession.from_playthrough(recorded).run(engine)

        assert not result.passed
        assert result.steps_matched == 1
        assert result.divergent_step == 2
        assert result.expected_passage_id == "start"
        assert result.actual_passage_id == "third"

    def test_removed_choice_reports_divergence(self, recorded, sample_story, clock):
        sample_story.passages["start"].choices = [Choice(id="other", text="Other", target="third")]
        engine = PlaybackEngine(sample_story, clock=clock)

        result = ReplaySession.from_playthrough(recorded).run(engine)

        assert not result.passed
        assert result.divergent_step == 1
        assert "rejected" in result.message

    def test_missing_start_passage(self, sample_story, clock):
        engine = PlaybackEngine(sample_story, clock=clock)
        result = ReplaySession(start_passage_id="gone").run(engine)
        assert not result.passed
        assert result.steps_matched == 0

    def test_breakpoints_do_not_stop_replay(self, recorded, sample_story, clock):
        engine = PlaybackEngine(sample_story, clock=clock)
        engine.toggle_breakpoint("second")
        result = ReplaySession.from_playthrough(recorded).run(engine)
        assert result.passed
        assert engine.current_passage_id == "third"


def test_replay_result_str():
    assert str(ReplayResult(passed=True, steps_matched=2)) == "Replay PASSED: 2 steps matched."
    diverged = ReplayResult(passed=False, steps_matched=0, message="Step 1: bad")
    assert str(diverged) == "Replay DIVERGED: 0 steps matched. Step 1: bad"
