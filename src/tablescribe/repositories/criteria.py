"""Normalization of model arguments into criteria lists."""

from collections.abc import Mapping
from typing import Any

from tablescribe.core.naming import camel_to_underscore
from tablescribe.models.base import Row
from tablescribe.repositories.errors import TypeMismatchError


def normalize_criteria(models: Any) -> list[Any]:
    """Turn a model argument into a list of entities and column maps.

    A list is rewritten in place and returned; anything else is wrapped in a
    new one-element list first. Mapping keys move from property to column
    convention (``firstName`` -> ``first_name``); entities are kept as is.

    Raises:
        TypeMismatchError: If an element is neither a Row nor a Mapping
    """
    if not isinstance(models, list):
        models = [models]

    for index, model in enumerate(models):
        if isinstance(model, Row):
            continue
        if isinstance(model, Mapping):
            models[index] = {camel_to_underscore(str(key)): value for key, value in model.items()}
            continue
        raise TypeMismatchError(model)

    return models
