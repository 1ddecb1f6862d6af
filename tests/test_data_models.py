"""
Tests for the story graph records and the JSON story loader.
"""

import json

import pytest

from src.data_models import (
    Choice,
    Passage,
    Story,
    StoryFormatError,
    Variable,
    VariableType,
    infer_variable_type,
    load_story,
    save_story,
)


class TestVariableTypes:
    """Test variable type inference and parsing."""

    def test_infer_types(self):
        """Python values map onto the three declared types."""
        assert infer_variable_type(True) == VariableType.BOOLEAN
        assert infer_variable_type(3) == VariableType.NUMBER
        assert infer_variable_type(2.5) == VariableType.NUMBER
        assert infer_variable_type("x") == VariableType.STRING

    def test_shorthand_declaration(self):
        """A bare value under a name declares a variable with that initial value."""
        variable = Variable.from_dict(100, "health")
        assert variable.name == "health"
        assert variable.type == VariableType.NUMBER
        assert variable.initial == 100

    def test_unknown_type_rejected(self):
        """An unknown declared type is a format error."""
        with pytest.raises(StoryFormatError, match="unknown type"):
            Variable.from_dict({"name": "x", "type": "vector"})

    def test_missing_name_rejected(self):
        with pytest.raises(StoryFormatError):
            Variable.from_dict({"type": "number", "initial": 1})


class TestPassage:
    """Test passage behavior."""

    def test_get_choice(self):
        passage = Passage(title="A")
        choice = passage.add_choice(Choice(id="c1", text="Go", target="b"))
        assert passage.get_choice("c1") is choice
        assert passage.get_choice("nope") is None

    def test_ending(self):
        """A passage without choices is an ending."""
        assert Passage(title="End").is_ending()
        assert not Passage(title="A", choices=[Choice(text="x", target="b")]).is_ending()


class TestStory:
    """Test story graph construction and serialization."""

    def test_first_passage_is_start(self):
        story = Story()
        first = story.add_passage(Passage(id="a", title="A"))
        story.add_passage(Passage(id="b", title="B"))
        assert story.start_passage == first.id

    def test_find_passage_by_title(self, sample_story):
        assert sample_story.find_passage_by_title("Second").id == "second"
        assert sample_story.find_passage_by_title("Nowhere") is None

    def test_dangling_choices(self, dangling_story):
        """Choices whose target is missing are reported."""
        dangling = dangling_story.dangling_choices()
        assert [(p.id, c.id) for p, c in dangling] == [("start", "broken")]

    def test_roundtrip_json(self, sample_story):
        """A story survives to_json/from_json."""
        restored = Story.from_json(sample_story.to_json())
        assert restored.title == "Test Story"
        assert restored.start_passage == "start"
        assert list(restored.passages) == ["start", "second", "third"]
        assert restored.passages["start"].choices[0].target == "second"
        assert restored.variables["health"].initial == 100

    def test_list_form_and_metadata_title(self):
        """Passages may be a list of records and the title may live in metadata."""
        data = {
            "metadata": {"title": "Listed"},
            "passages": [
                {"id": "p1", "title": "One", "choices": [{"id": "c", "text": "On", "target": "p2"}]},
                {"id": "p2", "title": "Two"},
            ],
            "variables": [{"name": "gold", "type": "number", "initial": 5}],
        }
        story = Story.from_dict(data)
        assert story.title == "Listed"
        assert story.start_passage == "p1"
        assert story.variables["gold"].type == VariableType.NUMBER

    def test_invalid_json(self):
        with pytest.raises(StoryFormatError, match="not valid JSON"):
            Story.from_json("{not json")

    def test_passages_must_be_collection(self):
        with pytest.raises(StoryFormatError):
            Story.from_dict({"passages": 5})


class TestStoryFiles:
    """Test loading and saving story files."""

    def test_save_and_load(self, sample_story, tmp_path):
        path = save_story(sample_story, tmp_path / "story.json")
        loaded = load_story(path)
        assert loaded.title == sample_story.title
        assert set(loaded.passages) == set(sample_story.passages)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(StoryFormatError, match="Cannot read"):
            load_story(tmp_path / "missing.json")

    def test_load_warns_on_dangling_choice(self, dangling_story, tmp_path, caplog):
        """Loading a story with a broken choice logs a warning but succeeds."""
        path = tmp_path / "broken.json"
        path.write_text(json.dumps(dangling_story.to_dict()), encoding="utf-8")
        with caplog.at_level("WARNING"):
            story = load_story(path)
        assert "missing" in story.passages["start"].choices[-1].target
        assert any("missing passage" in r.message for r in caplog.records)
