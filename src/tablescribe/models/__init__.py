"""Entity base classes."""

from tablescribe.models.base import Row, TimestampMixin, generate_repr

__all__ = [
    "Row",
    "TimestampMixin",
    "generate_repr",
]
