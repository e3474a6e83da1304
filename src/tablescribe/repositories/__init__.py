"""Repository layer.

This package implements a generic repository over deferred table handles,
built around:
- BASE REPOSITORY: Repository[RowType] with builders, finders and a join registry
- CRITERIA NORMALIZATION: entities and column mappings turned into criteria lists
- EXCEPTION HIERARCHY: RepositoryError and its subclasses
"""

from tablescribe.repositories.base import Repository
from tablescribe.repositories.criteria import normalize_criteria
from tablescribe.repositories.errors import (
    FlushError,
    RepositoryError,
    TypeMismatchError,
    UnboundTableError,
)

__all__ = [
    "Repository",
    "normalize_criteria",
    "RepositoryError",
    "TypeMismatchError",
    "UnboundTableError",
    "FlushError",
]
