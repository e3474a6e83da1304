"""Conversion between property names (camelCase) and column names (snake_case)."""
import re

# "HTTPCode" -> "HTTP_Code", then "firstName" -> "first_Name"
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")


def camel_to_underscore(name: str) -> str:
    """Convert a property name to its column name.

    Example:
        camel_to_underscore("firstName")  # "first_name"
        camel_to_underscore("Email")      # "email"
        camel_to_underscore("first_name") # "first_name"
    """
    name = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    name = _WORD_BOUNDARY.sub(r"\1_\2", name)
    return name.lower()


def underscore_to_camel(name: str, capitalize: bool = False) -> str:
    """Convert a column name to its property name.

    The library itself only converts towards column names; this is the inverse
    for callers that expose rows under property names.

    Example:
        underscore_to_camel("first_name")                   # "firstName"
        underscore_to_camel("first_name", capitalize=True)  # "FirstName"
    """
    head, *rest = name.split("_")
    converted = head + "".join(part[:1].upper() + part[1:] for part in rest)
    if capitalize:
        converted = converted[:1].upper() + converted[1:]
    return converted
