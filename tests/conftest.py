"""
Pytest fixtures for the Branchplay test suite.

Provides reusable fixtures for sample stories, a controllable clock, and
playback engines.
"""

import pytest

from src.data_models import Choice, Passage, Story, Variable, VariableType
from src.player.engine import PlaybackEngine


# =============================================================================
# CLOCK FIXTURES
# =============================================================================


class FakeClock:
    """Manually advanced clock returning epoch milliseconds."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def advance(self, ms: int) -> None:
        self.now += ms

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    """A fake clock starting at a fixed epoch time."""
    return FakeClock()


# =============================================================================
# STORY FIXTURES
# =============================================================================


@pytest.fixture
def sample_story():
    """
    Three-passage story:

        Start --Go--> Second --Back--> Start
        Start --Skip--> Third (ending)
        Second --Onward--> Third
    """
    story = Story(title="Test Story")
    start = story.add_passage(Passage(id="start", title="Start", content="The beginning."))
    second = story.add_passage(Passage(id="second", title="Second", content="The middle."))
    third = story.add_passage(Passage(id="third", title="Third", content="The end."))

    start.add_choice(Choice(id="go", text="Go", target=second.id))
    start.add_choice(Choice(id="skip", text="Skip", target=third.id))
    second.add_choice(Choice(id="back", text="Back", target=start.id))
    second.add_choice(Choice(id="onward", text="Onward", target=third.id))

    story.add_variable(Variable(name="health", type=VariableType.NUMBER, initial=100))
    story.add_variable(Variable(name="has_key", type=VariableType.BOOLEAN, initial=False))
    story.add_variable(Variable(name="player_name", type=VariableType.STRING, initial="Hero"))
    return story


@pytest.fixture
def dangling_story(sample_story):
    """Sample story with a choice pointing at a passage that does not exist."""
    sample_story.passages["start"].add_choice(
        Choice(id="broken", text="Into the void", target="missing")
    )
    return sample_story


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def engine(sample_story, clock):
    """Engine with the sample story loaded, not started."""
    return PlaybackEngine(sample_story, clock=clock)


@pytest.fixture
def started_engine(engine):
    """Engine with a playthrough running at the start passage."""
    engine.start()
    return engine
