"""Tagged results returned by table handles.

A table handle never reports success or failure with a bare boolean. Each
executed batch yields exactly one of:

- Rows: a select that produced entities
- Serialized: a select that was asked for JSON text
- Affected: a write batch (insert/update/delete) and its row count
- Failed: the batch did not run; ``reason`` says why
"""

from dataclasses import dataclass, field
from typing import Any

import pydantic_core

from tablescribe.models.base import Row


class RowCollection(list[Row]):
    """Ordered collection of entities returned by selects."""

    def first(self) -> Row | None:
        """First entity, or None if the collection is empty."""
        return self[0] if self else None

    def to_dicts(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self]

    def to_json(self) -> str:
        return pydantic_core.to_json(self.to_dicts()).decode()


def row_to_json(row: Row | None) -> str:
    """Serialize one entity; a missing entity serializes to an empty object."""
    if row is None:
        return "{}"
    return pydantic_core.to_json(row.to_dict()).decode()


class Result:
    """Base class of every table handle result."""


@dataclass(frozen=True)
class Rows(Result):
    rows: RowCollection = field(default_factory=RowCollection)


@dataclass(frozen=True)
class Serialized(Result):
    text: str


@dataclass(frozen=True)
class Affected(Result):
    count: int


@dataclass(frozen=True)
class Failed(Result):
    reason: str
