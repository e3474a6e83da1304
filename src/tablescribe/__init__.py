"""Generic repositories over SQLAlchemy-mapped tables."""

from tablescribe.core.database import Database, close_database, get_database
from tablescribe.core.results import Affected, Failed, Result, RowCollection, Rows, Serialized
from tablescribe.core.table import Order, Table
from tablescribe.models.base import Row
from tablescribe.repositories import (
    FlushError,
    Repository,
    RepositoryError,
    TypeMismatchError,
    UnboundTableError,
)

__version__ = "0.1.0"

__all__ = [
    "Affected",
    "Database",
    "Failed",
    "FlushError",
    "Order",
    "Repository",
    "RepositoryError",
    "Result",
    "Row",
    "RowCollection",
    "Rows",
    "Serialized",
    "Table",
    "TypeMismatchError",
    "UnboundTableError",
    "close_database",
    "get_database",
]
