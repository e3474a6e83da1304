"""Table handle: a deferred operation queue for one mapped table.

Operations (select, insert, update, delete) are queued and shaped (join,
limit, order_by) without touching the database. ``execute()`` builds
SQLAlchemy Core statements from the queue, runs them in order through the
shared session and reports the outcome of the last one as a tagged Result.

Criteria are lists of AND-groups combined with OR:

    [{"first_name": "Ada"}, {"last_name": "Lovelace", "email": None}]
    # WHERE first_name = 'Ada' OR (last_name = 'Lovelace' AND email IS NULL)

Keys are converted from property to column convention, so ``firstName``
and ``first_name`` address the same column. ``"books.title"`` addresses a
column of another table (usually a joined one). An empty group matches every
row.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import ColumnElement, Executable, Select, and_, delete, insert, or_, select, update
from sqlalchemy import Table as SATable
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tablescribe.core.logging import get_logger
from tablescribe.core.naming import camel_to_underscore
from tablescribe.core.results import Affected, Failed, Result, RowCollection, Rows, Serialized
from tablescribe.core.tracing import trace_database
from tablescribe.models.base import Row

if TYPE_CHECKING:
    from tablescribe.core.database import Database

JOIN_TYPES = ("inner", "left", "outer")


class Order(str, Enum):
    """Sort direction for order_by()."""

    ASC = "ASC"
    DESC = "DESC"


class TableError(Exception):
    """Raised when queued operations cannot be turned into a statement."""
    pass


@dataclass
class _Operation:
    kind: str
    rows: list[Any]
    to_json: bool = False
    key_column: str = "id"


class Table:
    """Deferred CRUD access to the table of one Row model.

    Every queueing method returns the handle itself so calls can be chained:

        result = table.select([{"email": "ada@example.com"}]).limit(1).execute()
    """

    def __init__(self, database: "Database", model: type[Row]) -> None:
        self._database = database
        self._model = model
        self._table: SATable = model.__table__
        self._pending: list[_Operation] = []
        self._joins: list[tuple[str, dict[str, Any]]] = []
        self._limit: tuple[int, int] | None = None
        self._order: list[tuple[str, Order]] = []
        self._logger = get_logger(f"{__name__}.{self._table.name}")

    @property
    def model(self) -> type[Row]:
        return self._model

    @property
    def database(self) -> "Database":
        return self._database

    def get_name(self) -> str:
        return self._table.name

    def get_primary_key(self) -> str:
        """Name of the first primary-key column, "id" if none is declared."""
        columns = list(self._table.primary_key.columns)
        return columns[0].name if columns else "id"

    # ========================================================================
    # QUEUEING
    # ========================================================================

    def select(self, criteria: list[Any], to_json: bool = False) -> "Table":
        self._queue(_Operation("select", list(criteria), to_json=to_json))
        return self

    def insert(self, rows: list[Any]) -> "Table":
        self._queue(_Operation("insert", list(rows)))
        return self

    def update(self, rows: list[Any], key_column: str = "id") -> "Table":
        self._queue(_Operation("update", list(rows), key_column=camel_to_underscore(key_column)))
        return self

    def delete(self, rows: list[Any]) -> "Table":
        self._queue(_Operation("delete", list(rows)))
        return self

    def join(self, table_name: str, options: Mapping[str, Any] | None = None) -> "Table":
        """Join another table on the next select.

        Options:
            on: (local_column, remote_column); inferred from foreign keys if omitted
            type: "inner" (default), "left" or "outer"
        """
        self._joins.append((table_name, dict(options or {})))
        return self

    def limit(self, count: int, offset: int = 0) -> "Table":
        if count < 0:
            raise ValueError("Limit must be non-negative")
        if offset < 0:
            raise ValueError("Offset must be non-negative")
        self._limit = (count, offset)
        return self

    def order_by(self, column: str, direction: Order | str = Order.ASC) -> "Table":
        if not isinstance(direction, Order):
            direction = Order(str(direction).upper())
        self._order.append((camel_to_underscore(column), direction))
        return self

    def _queue(self, operation: _Operation) -> None:
        self._logger.debug(
            "Queued operation",
            table=self._table.name,
            operation=operation.kind,
            rows=len(operation.rows),
        )
        self._pending.append(operation)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    @trace_database("table.execute")
    def execute(self) -> Result:
        """Run every queued operation and return the result of the last one.

        Pending state is cleared whether the batch succeeds or not. Statements
        are built before anything runs, and the batch runs inside a savepoint,
        so a failed batch leaves earlier unflushed work in the shared session
        untouched. Failures are reported as Failed, never raised.

        Entities returned by selects are detached from the shared session;
        changing them writes nothing until they are passed to update().
        """
        pending, self._pending = self._pending, []
        joins, self._joins = self._joins, []
        limit, self._limit = self._limit, None
        order, self._order = self._order, []

        if not pending:
            self._logger.warning("Nothing to execute", table=self._table.name)
            return Failed("No pending operation")

        try:
            batch = [self._prepare(operation, joins, limit, order) for operation in pending]
        except (SQLAlchemyError, TableError) as e:
            return self._failed(pending, e)

        session = self._database.session
        try:
            result: Result = Failed("No pending operation")
            with session.begin_nested():
                for operation, statements in batch:
                    if operation.kind == "select":
                        result = self._run_select(session, operation, statements[0][0])
                    else:
                        result = self._run_write(session, operation, statements)
            return result
        except SQLAlchemyError as e:
            return self._failed(pending, e)

    def _failed(self, pending: list[_Operation], error: Exception) -> Failed:
        self._logger.error(
            "Failed to execute queued operations",
            table=self._table.name,
            operations=[operation.kind for operation in pending],
            error=str(error),
        )
        return Failed(str(error))

    def _prepare(
        self,
        operation: _Operation,
        joins: list[tuple[str, dict[str, Any]]],
        limit: tuple[int, int] | None,
        order: list[tuple[str, Order]],
    ) -> tuple[_Operation, list[tuple[Executable, Any]]]:
        if operation.kind == "select":
            return operation, [(self._build_select(operation, joins, limit, order), None)]

        statements = []
        for row in operation.rows:
            if operation.kind == "insert":
                statement = self._build_insert(row)
            elif operation.kind == "update":
                statement = self._build_update(row, operation.key_column)
            else:
                statement = self._build_delete(row)
            if statement is not None:
                statements.append((statement, row))
        return operation, statements

    def _build_select(
        self,
        operation: _Operation,
        joins: list[tuple[str, dict[str, Any]]],
        limit: tuple[int, int] | None,
        order: list[tuple[str, Order]],
    ) -> Select[Any]:
        query: Select[Any] = select(self._model)
        for table_name, options in joins:
            query = self._apply_join(query, table_name, options)

        where = self._where(operation.rows)
        if where is not None:
            query = query.where(where)

        for column_name, direction in order:
            column = self._column(column_name)
            query = query.order_by(column.desc() if direction is Order.DESC else column.asc())

        if limit is not None:
            count, offset = limit
            query = query.limit(count).offset(offset)

        # Core writes bypass the identity map, so reload what it already holds
        return query.execution_options(populate_existing=True)

    def _build_insert(self, row: Any) -> Executable:
        return insert(self._table).values(self._column_values(self._values(row)))

    def _build_update(self, row: Any, key_column: str) -> Executable | None:
        values = self._values(row)
        if key_column not in values:
            raise TableError(f"Row has no value for update key '{key_column}'")

        key_value = values.pop(key_column)
        if not values:
            return None

        return (
            update(self._table)
            .where(self._column(key_column) == key_value)
            .values(self._column_values(values))
        )

    def _build_delete(self, row: Any) -> Executable:
        values = self._values(row)

        if isinstance(row, Row):
            primary_key = [column.name for column in self._table.primary_key.columns]
            if primary_key and all(name in values for name in primary_key):
                values = {name: values[name] for name in primary_key}

        if not values:
            raise TableError("Refusing to delete without criteria")

        return delete(self._table).where(self._group(values))

    def _run_select(self, session: Session, operation: _Operation, query: Executable) -> Result:
        rows = RowCollection(session.execute(query).scalars().unique().all())
        for row in rows:
            session.expunge(row)

        self._logger.debug("Selected rows", table=self._table.name, count=len(rows))
        if operation.to_json:
            return Serialized(rows.to_json())
        return Rows(rows)

    def _run_write(
        self, session: Session, operation: _Operation, statements: list[tuple[Executable, Any]]
    ) -> Result:
        count = 0
        for statement, row in statements:
            result = session.execute(statement)
            if operation.kind == "insert":
                self._write_back_key(row, result.inserted_primary_key)
                count += 1
            else:
                count += result.rowcount

        self._logger.info(
            "Write completed",
            table=self._table.name,
            operation=operation.kind,
            affected=count,
        )
        return Affected(count)

    def _write_back_key(self, row: Any, inserted_key: Any) -> None:
        # Hand generated keys back to the entity that was inserted
        if not isinstance(row, self._model) or not inserted_key:
            return
        for column, value in zip(self._table.primary_key.columns, inserted_key):
            key = self._model.attribute_for(column.name)
            if getattr(row, key) is None and value is not None:
                setattr(row, key, value)

    # ========================================================================
    # STATEMENT HELPERS
    # ========================================================================

    def _values(self, row: Any) -> dict[str, Any]:
        if isinstance(row, Row):
            return row.to_columns()
        if isinstance(row, Mapping):
            return {camel_to_underscore(str(key)): value for key, value in row.items()}
        raise TableError(f"Unsupported row type: {type(row).__name__}")

    def _column_values(self, values: dict[str, Any]) -> dict[Any, Any]:
        return {self._column(name): value for name, value in values.items()}

    def _resolve_table(self, table_name: str) -> SATable:
        table = self._table.metadata.tables.get(table_name)
        if table is None:
            raise TableError(f"Unknown table '{table_name}'")
        return table

    def _column(self, name: str) -> Any:
        if "." in name:
            table_name, column_name = name.split(".", 1)
            table = self._resolve_table(table_name)
        else:
            table, column_name = self._table, name

        try:
            return table.c[column_name]
        except KeyError:
            raise TableError(f"Unknown column '{column_name}' on table '{table.name}'") from None

    def _group(self, values: dict[str, Any]) -> ColumnElement[bool]:
        clauses = []
        for name, value in values.items():
            column = self._column(name)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                # None compiles to IS NULL
                clauses.append(column == value)
        return and_(*clauses)

    def _where(self, criteria: list[Any]) -> ColumnElement[bool] | None:
        groups = []
        for group in criteria:
            values = self._values(group)
            if not values:
                return None
            groups.append(self._group(values))
        if not groups:
            return None
        return or_(*groups)

    def _apply_join(
        self, query: Select[Any], table_name: str, options: dict[str, Any]
    ) -> Select[Any]:
        other = self._resolve_table(table_name)

        join_type = str(options.get("type", "inner")).lower()
        if join_type not in JOIN_TYPES:
            raise TableError(f"Unsupported join type '{join_type}'")

        onclause = None
        if options.get("on") is not None:
            local, remote = options["on"]
            onclause = self._column(local) == self._column(f"{table_name}.{remote}")

        return query.join(other, onclause, isouter=join_type != "inner")
