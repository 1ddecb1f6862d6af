"""
Story graph records consumed by the playback engine.

The story graph is produced by the editor or an importer and is read-only
from the engine's point of view. These structures only carry what playback
needs: passages, their ordered choices, and variable declarations.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional
import json
import logging
import uuid

logger = logging.getLogger(__name__)


class StoryFormatError(Exception):
    """Raised when a story document cannot be parsed."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class VariableType(str, Enum):
    """Declared type of a story variable."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


def _new_id() -> str:
    return str(uuid.uuid4())


def infer_variable_type(value: Any) -> VariableType:
    """Infer a declaration type from an initial value."""
    if isinstance(value, bool):
        return VariableType.BOOLEAN
    if isinstance(value, (int, float)):
        return VariableType.NUMBER
    return VariableType.STRING


# =============================================================================
# GRAPH RECORDS
# =============================================================================


@dataclass
class Choice:
    """A labeled edge from one passage to another."""

    text: str
    target: Optional[str] = None
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "target": self.target}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Choice":
        if not isinstance(data, dict):
            raise StoryFormatError(f"Choice must be an object, got {type(data).__name__}")
        return cls(
            id=str(data.get("id") or _new_id()),
            text=str(data.get("text", "")),
            target=data.get("target"),
        )


@dataclass
class Passage:
    """A node of story text with zero or more outgoing choices."""

    title: str
    content: str = ""
    choices: list[Choice] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def add_choice(self, choice: Choice) -> Choice:
        self.choices.append(choice)
        return choice

    def get_choice(self, choice_id: str) -> Optional[Choice]:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    def is_ending(self) -> bool:
        """A passage with no outgoing choices ends the story."""
        return not self.choices

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "choices": [c.to_dict() for c in self.choices],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], passage_id: Optional[str] = None) -> "Passage":
        if not isinstance(data, dict):
            raise StoryFormatError(f"Passage must be an object, got {type(data).__name__}")
        choices = data.get("choices", [])
        if not isinstance(choices, list):
            raise StoryFormatError("Passage 'choices' must be a list")
        return cls(
            id=str(passage_id or data.get("id") or _new_id()),
            title=str(data.get("title", "Untitled")),
            content=str(data.get("content", "")),
            choices=[Choice.from_dict(c) for c in choices],
        )


@dataclass
class Variable:
    """A named, typed variable declaration with its initial value."""

    name: str
    type: VariableType = VariableType.STRING
    initial: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type.value, "initial": self.initial}

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: Optional[str] = None) -> "Variable":
        if not isinstance(data, dict):
            # Shorthand form: {"health": 100}
            if name:
                return cls(name=str(name), type=infer_variable_type(data), initial=data)
            raise StoryFormatError(f"Variable must be an object, got {type(data).__name__}")
        var_name = name or data.get("name")
        if not var_name:
            raise StoryFormatError("Variable declaration is missing a name")
        initial = data.get("initial")
        raw_type = data.get("type")
        try:
            var_type = VariableType(raw_type) if raw_type else infer_variable_type(initial)
        except ValueError:
            raise StoryFormatError(
                f"Variable '{var_name}' has unknown type '{raw_type}'. "
                f"Expected one of: {[t.value for t in VariableType]}"
            )
        return cls(name=str(var_name), type=var_type, initial=initial)


@dataclass
class Story:
    """
    The story graph: passages keyed by id and variable declarations keyed by name.

    Attributes:
        title: Story title, used when recording playthroughs
        start_passage: Id of the passage playback starts from
        passages: Passage id -> Passage
        variables: Variable name -> declaration
    """

    title: str = "Untitled"
    start_passage: Optional[str] = None
    passages: dict[str, Passage] = field(default_factory=dict)
    variables: dict[str, Variable] = field(default_factory=dict)

    def get_passage(self, passage_id: Optional[str]) -> Optional[Passage]:
        if passage_id is None:
            return None
        return self.passages.get(passage_id)

    def has_passage(self, passage_id: Optional[str]) -> bool:
        return passage_id is not None and passage_id in self.passages

    def add_passage(self, passage: Passage) -> Passage:
        """Add a passage; the first passage added becomes the start passage."""
        self.passages[passage.id] = passage
        if self.start_passage is None:
            self.start_passage = passage.id
        return passage

    def add_variable(self, variable: Variable) -> Variable:
        self.variables[variable.name] = variable
        return variable

    def find_passage_by_title(self, title: str) -> Optional[Passage]:
        for passage in self.passages.values():
            if passage.title == title:
                return passage
        return None

    def dangling_choices(self) -> list[tuple[Passage, Choice]]:
        """Choices whose target is not a passage in this story."""
        return [
            (passage, choice)
            for passage in self.passages.values()
            for choice in passage.choices
            if not self.has_passage(choice.target)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "startPassage": self.start_passage,
            "passages": {pid: p.to_dict() for pid, p in self.passages.items()},
            "variables": {name: v.to_dict() for name, v in self.variables.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Story":
        """
        Build a story from its JSON document.

        Passages and variables may be given either as objects keyed by
        id/name or as lists of records carrying their own id/name.

        Raises:
            StoryFormatError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise StoryFormatError("Story document must be a JSON object")

        metadata = data.get("metadata") or {}
        title = data.get("title") or metadata.get("title") or "Untitled"
        story = cls(title=str(title))

        for passage in _iter_records(data.get("passages", {}), "passages", Passage.from_dict):
            story.passages[passage.id] = passage
        for variable in _iter_records(data.get("variables", {}), "variables", Variable.from_dict):
            story.variables[variable.name] = variable

        start = data.get("startPassage", data.get("start_passage"))
        if start is None and story.passages:
            start = next(iter(story.passages))
        story.start_passage = start
        return story

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "Story":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StoryFormatError(f"Story is not valid JSON: {e}") from e
        return cls.from_dict(data)


def _iter_records(raw: Any, label: str, factory) -> Iterable[Any]:
    if isinstance(raw, dict):
        return [factory(value, key) for key, value in raw.items()]
    if isinstance(raw, list):
        return [factory(value) for value in raw]
    raise StoryFormatError(f"Story '{label}' must be an object or a list")


def load_story(filepath: Path | str) -> Story:
    """Load a story graph from a JSON file."""
    path = Path(filepath)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StoryFormatError(f"Cannot read story file {path}: {e}") from e
    story = Story.from_json(text)
    logger.info(f"Loaded story '{story.title}' from {path}: {len(story.passages)} passages")
    for passage, choice in story.dangling_choices():
        logger.warning(
            f"Choice '{choice.text}' in passage '{passage.title}' targets "
            f"missing passage '{choice.target}'"
        )
    return story


def save_story(story: Story, filepath: Path | str, indent: int = 2) -> Path:
    """Write a story graph to a JSON file."""
    path = Path(filepath)
    path.write_text(story.to_json(indent=indent), encoding="utf-8")
    logger.info(f"Story '{story.title}' saved to {path}")
    return path
