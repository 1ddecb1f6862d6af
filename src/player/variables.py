"""
Variable binding store.

A mutable overlay of current variable values on top of the story's
declarations. Writes are unconditional: declared types are not enforced.
Snapshots are immutable copies used by history steps.
"""

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional
import copy
import logging

from src.data_models import Variable

logger = logging.getLogger(__name__)

EMPTY_SNAPSHOT: Mapping[str, Any] = MappingProxyType({})


def copy_variables(values: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep copy a variable mapping.

    Values that cannot be deep copied (locks, sockets and the like) are
    shared with the source instead.
    """
    copied = {}
    for name, value in values.items():
        try:
            copied[name] = copy.deepcopy(value)
        except (TypeError, copy.Error) as e:
            logger.debug(f"Variable '{name}' shared by reference: {e}")
            copied[name] = value
    return copied


def freeze_variables(values: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return a read-only deep copy of a variable mapping."""
    return MappingProxyType(copy_variables(values))


class VariableStore:
    """Current variable bindings for one playthrough."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def seed(self, declarations: Iterable[Variable]) -> None:
        """Discard all bindings and bind every declaration to its initial value."""
        self._values = {}
        for declaration in declarations:
            self._values[declaration.name] = copy.deepcopy(declaration.initial)
        logger.debug(f"Seeded {len(self._values)} variables")

    def get(self, name: str) -> Optional[Any]:
        return self._values.get(name)

    def set(self, name: str, value: Any) -> Any:
        """Bind a value and return the previous one (None if unbound)."""
        old_value = self._values.get(name)
        self._values[name] = value
        return old_value

    def clear(self) -> None:
        self._values = {}

    def snapshot(self) -> Mapping[str, Any]:
        return freeze_variables(self._values)

    def restore(self, snapshot: Mapping[str, Any]) -> None:
        """Replace every binding with those from a snapshot."""
        self._values = copy_variables(snapshot)

    def view(self) -> Mapping[str, Any]:
        """Read-only live view of the bindings."""
        return MappingProxyType(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableStore({self._values!r})"
