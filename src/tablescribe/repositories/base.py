"""Generic repository over a deferred table handle.

A Repository wraps the Table handle of one Row model and offers two kinds of
operations:

- BUILDERS (select, insert, update, delete, limit, order_by, join,
  always_join) queue work on the handle and return the repository, so calls
  chain until execute() runs them.
- FINDERS (fetch_all, find, find_by, find_one, find_one_by, find_where,
  find_one_where) build and execute in one step and adapt the outcome:
  failures become empty collections or None, never exceptions.

Usage Example:
    repo = Repository(Author)
    repo.insert({"firstName": "Ada", "lastName": "Lovelace"}).execute()
    repo.flush()

    ada = repo.find_one_by("lastName", "Lovelace")
    authors = repo.always_join("books").select({"books.title": "Notes"}).execute()
    as_json = repo.fetch_all(to_json=True)

Repositories hold mutable builder state (queued joins, the read flag), so use
one instance per unit of work.
"""

import functools
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from tablescribe.core.database import Database, get_database
from tablescribe.core.logging import get_logger
from tablescribe.core.naming import camel_to_underscore
from tablescribe.core.results import Failed, Result, RowCollection, Rows, Serialized, row_to_json
from tablescribe.core.table import Order, Table
from tablescribe.core.tracing import trace_database
from tablescribe.models.base import Row
from tablescribe.repositories.criteria import normalize_criteria
from tablescribe.repositories.errors import FlushError, UnboundTableError

RowType = TypeVar("RowType", bound=Row)

logger = get_logger(__name__)


class Repository(Generic[RowType]):
    """CRUD and query operations for one Row model.

    Args:
        model: Mapped Row subclass whose table this repository serves
        database: Database to bind to; the process-wide one if omitted

    Raises:
        UnboundTableError: If no table handle can be created for the model
    """

    ORDER_ASC = Order.ASC
    ORDER_DESC = Order.DESC

    def __init__(self, model: type[RowType], database: Database | None = None) -> None:
        try:
            self._database = database if database is not None else get_database()
            self._table: Table = self._database.table(model)
        except ValueError as e:
            logger.error("Failed to bind repository", model=getattr(model, "__name__", repr(model)), error=str(e))
            raise UnboundTableError(f"Cannot bind repository to {model!r}: {e}") from e

        self._model = model
        self._always_join: dict[str, dict[str, Any]] = {}
        self._is_select = False
        self._logger = get_logger(f"{__name__}.{model.__name__}Repository")

    @property
    def is_select(self) -> bool:
        """True once select() has been called on this repository."""
        return self._is_select

    # ========================================================================
    # FINDERS
    # ========================================================================

    @trace_database("repository.fetch_all")
    def fetch_all(self, to_json: bool = False) -> RowCollection | str:
        """Fetch every row of the table.

        Registered always-joins apply.

        Returns:
            All entities, or their JSON array text when to_json is set
        """
        return self._adapt(self.select({}, to_json).execute())

    @trace_database("repository.find_by")
    def find_by(self, column: str, value: Any, to_json: bool = False) -> RowCollection | str:
        """Find rows whose column equals value.

        The column may be given in property convention ("firstName").
        Runs straight on the table handle; always-joins are not replayed.
        """
        self._logger.debug("Finding by column", column=column)
        criteria = [{camel_to_underscore(column): value}]
        return self._adapt(self._table.select(criteria, to_json).execute())

    def find_one_by(self, column: str, value: Any, to_json: bool = False) -> RowType | str | None:
        """Find the first row whose column equals value."""
        return self.find_one_where([{column: value}], to_json)

    def find_one(self, id_or_entity: Any, to_json: bool = False) -> RowType | str | None:
        """Find a row by primary key.

        Args:
            id_or_entity: A primary-key value, or an entity to read it from
            to_json: Return the entity as JSON object text
        """
        primary_key = self._table.get_primary_key()
        if isinstance(id_or_entity, Row):
            id_or_entity = getattr(id_or_entity, type(id_or_entity).attribute_for(primary_key))

        return self.find_one_by(primary_key, id_or_entity, to_json)

    def find(self, id: Any, to_json: bool = False) -> RowCollection | str:
        """Find rows by primary key."""
        return self.find_by(self._table.get_primary_key(), id, to_json)

    @trace_database("repository.find_where")
    def find_where(self, criteria: Any, to_json: bool = False) -> RowCollection | str | Failed:
        """Find rows matching criteria.

        Args:
            criteria: One AND-group (mapping or entity) or a list of them
            to_json: Return JSON array text

        Returns:
            The matching entities, or JSON text. A failed query yields an
            empty collection, except with to_json, where the Failed result
            itself is returned.
        """
        if not isinstance(criteria, list):
            criteria = [criteria]

        result = self._table.select(criteria, to_json).execute()
        if isinstance(result, Rows):
            return result.rows
        if not to_json:
            return RowCollection()
        if isinstance(result, Serialized):
            return result.text

        self._logger.warning("Passing through failed serialized query", reason=getattr(result, "reason", None))
        return result  # type: ignore[return-value]

    def find_one_where(self, criteria: Any, to_json: bool = False) -> RowType | str | None:
        """Find the first row matching criteria.

        Returns:
            The entity or None; with to_json its JSON object text or "{}"
        """
        rows = self.find_where(criteria)
        first = rows.first() if isinstance(rows, RowCollection) else None

        if to_json:
            return row_to_json(first)
        return first  # type: ignore[return-value]

    def finder(self, column: str) -> Callable[..., RowCollection | str]:
        """Return a find_by bound to one column.

        Example:
            by_email = repo.finder("Email")
            by_email("ada@example.com")  # same as repo.find_by("Email", ...)
        """
        return functools.partial(self.find_by, column)

    def _adapt(self, result: Result) -> RowCollection | str:
        if isinstance(result, Rows):
            return result.rows
        if isinstance(result, Serialized):
            return result.text
        return RowCollection()

    # ========================================================================
    # JOIN REGISTRY
    # ========================================================================

    def always_join(
        self, table_name: str, options: Mapping[str, Any] | None = None
    ) -> "Repository[RowType]":
        """Join the given table on every select.

        Registering the same table again replaces its options.

        See Table.join() for the supported options.
        """
        self._always_join[table_name] = dict(options or {})
        return self

    def _insert_joins(self) -> None:
        for table_name, options in self._always_join.items():
            self.join(table_name, options)

    # ========================================================================
    # BUILDERS
    # ========================================================================

    def select(self, models: Any = None, to_json: bool = False) -> "Repository[RowType]":
        """Queue a select with the non-None values of the model(s) as criteria.

        Args:
            models: An entity, a column mapping, or a list of those;
                None selects everything
            to_json: Execute to JSON array text instead of entities
        """
        models = normalize_criteria([] if models is None else models)
        self._insert_joins()
        self._table.select(models, to_json)
        self._is_select = True
        return self

    def insert(self, models: Any) -> "Repository[RowType]":
        """Queue the insertion of one or more entities or column mappings."""
        self._table.insert(normalize_criteria(models))
        return self

    def update(self, models: Any, key_property: str = "id") -> "Repository[RowType]":
        """Queue an update of one or more entities or column mappings.

        Args:
            models: Rows to write
            key_property: Property matched against the table to find each
                row; it must be set on every model
        """
        self._table.update(normalize_criteria(models), key_property)
        return self

    def delete(self, models: Any) -> "Repository[RowType]":
        """Queue the deletion of one or more entities or column mappings."""
        self._table.delete(normalize_criteria(models))
        return self

    def limit(self, count: int, offset: int = 0) -> "Repository[RowType]":
        """Limit the next select to count rows, starting at offset."""
        self._table.limit(count, offset)
        return self

    def order_by(self, column: str, direction: Order | str = Order.ASC) -> "Repository[RowType]":
        """Order the next select by column (ORDER_ASC or ORDER_DESC)."""
        self._table.order_by(camel_to_underscore(column), direction)
        return self

    def join(
        self, table_name: str, options: Mapping[str, Any] | None = None
    ) -> "Repository[RowType]":
        """Join another table on the next select only."""
        self._table.join(table_name, options)
        return self

    def execute(self) -> Result:
        """Run the queued operations.

        Returns the table handle's result as is; a Failed result is not
        converted here.
        """
        return self._table.execute()

    # ========================================================================
    # TABLE INFORMATION
    # ========================================================================

    def get_table_name(self) -> str:
        return self._table.get_name()

    def get_name(self) -> str:
        return self._table.get_name()

    def get_primary_key(self) -> str:
        return self._table.get_primary_key()

    # ========================================================================
    # TRANSACTION MANAGEMENT
    # ========================================================================

    def flush(self) -> bool:
        """Commit all executed operations on the shared connection.

        The commit covers every repository bound to the same Database, not
        only this one.

        Raises:
            FlushError: If the commit fails (the transaction is rolled back)
        """
        try:
            self._database.flush()
            self._logger.debug("Flushed", table=self.get_table_name())
            return True
        except SQLAlchemyError as e:
            self._logger.error("Failed to flush", table=self.get_table_name(), error=str(e))
            raise FlushError(f"Failed to commit transaction: {e}") from e

    def rollback(self) -> None:
        """Discard everything executed since the last flush, on every repository."""
        self._database.rollback()
