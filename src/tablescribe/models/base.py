"""Base entity class and mixins for SQLAlchemy models."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, func, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Row(DeclarativeBase):
    """Base class for all entities.

    Being an instance of Row is what makes an object acceptable as a model
    argument to repositories and table handles. Column values are read
    through the SQLAlchemy mapper, so attribute keys may differ from column
    names.
    """

    @classmethod
    def attribute_for(cls, column_name: str) -> str:
        """Return the attribute key mapped to the given column.

        Raises:
            KeyError: If the entity's table has no such column
        """
        column = cls.__table__.c[column_name]
        return inspect(cls).get_property_by_column(column).key

    def to_columns(self, skip_none: bool = True) -> dict[str, Any]:
        """Map column names to this entity's current values.

        Args:
            skip_none: Leave out columns whose value is None

        Returns:
            Dict keyed by column name (not attribute key)
        """
        values: dict[str, Any] = {}
        for attr in inspect(type(self)).column_attrs:
            value = getattr(self, attr.key)
            if value is None and skip_none:
                continue
            values[attr.columns[0].name] = value
        return values

    def to_dict(self) -> dict[str, Any]:
        """Every mapped column, including unset ones."""
        return self.to_columns(skip_none=False)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was created."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was last updated."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        )


def generate_repr(*attrs: str) -> Any:
    """Generate a __repr__ method for model classes.

    Args:
        *attrs: Attribute names to include in the repr string.

    Returns:
        A __repr__ method that displays the specified attributes.

    Example:
        __repr__ = generate_repr("id", "name", "email")
    """

    def __repr__(self: Any) -> str:
        class_name = self.__class__.__name__
        attr_strs = [f"{attr}={getattr(self, attr)!r}" for attr in attrs]
        return f"{class_name}({', '.join(attr_strs)})"

    return __repr__
