"""
Argument validation against a tool's JSON-Schema-like ``input_schema``.

Supports the subset the tool catalog uses: object ``properties`` with
``type`` (a name or a list of names), ``required``, ``enum``,
``minLength``/``maxLength``, ``minimum``/``maximum``, array ``items`` and
``default``.  Keys not declared in ``properties`` are dropped.
"""

from __future__ import annotations

import math
from typing import Any

from .errors import ToolValidationError


def _matches(value: Any, type_name: str) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "integer":
        return (isinstance(value, int) and not isinstance(value, bool)) or \
            (isinstance(value, float) and math.isfinite(value) and value.is_integer())
    if type_name == "number":
        if isinstance(value, float):
            return math.isfinite(value)
        return isinstance(value, int) and not isinstance(value, bool)
    if type_name == "array":
        return isinstance(value, list)
    if type_name == "object":
        return isinstance(value, dict)
    if type_name == "null":
        return value is None
    return True


def _type_label(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _check(path: str, value: Any, prop: dict, errors: list[str]) -> Any:
    expected = prop.get("type")
    if expected:
        types = expected if isinstance(expected, list) else [expected]
        if not any(_matches(value, t) for t in types):
            errors.append(f"'{path}' should be {' or '.join(types)}, got {_type_label(value)}")
            return value
        if "integer" in types and isinstance(value, float):
            value = int(value)

    if value is None:
        return value

    if "enum" in prop and value not in prop["enum"]:
        errors.append(f"'{path}' must be one of {prop['enum']}")
    if isinstance(value, str):
        if len(value) < prop.get("minLength", 0):
            errors.append(f"'{path}' must be at least {prop['minLength']} characters")
        if "maxLength" in prop and len(value) > prop["maxLength"]:
            errors.append(f"'{path}' must be at most {prop['maxLength']} characters")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "minimum" in prop and value < prop["minimum"]:
            errors.append(f"'{path}' must be >= {prop['minimum']}")
        if "maximum" in prop and value > prop["maximum"]:
            errors.append(f"'{path}' must be <= {prop['maximum']}")
    if isinstance(value, list) and isinstance(prop.get("items"), dict):
        value = [_check(f"{path}[{i}]", item, prop["items"], errors) for i, item in enumerate(value)]
    return value


def validate_arguments(tool_name: str, schema: dict, arguments: Any) -> dict:
    """
    Return a cleaned copy of *arguments* with defaults applied.

    Raises:
        ToolValidationError: listing every problem found.
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ToolValidationError(
            f"Invalid arguments for tool '{tool_name}': expected an object, got {_type_label(arguments)}"
        )

    properties: dict = schema.get("properties", {})
    missing = [name for name in schema.get("required", []) if arguments.get(name) is None]
    if missing:
        raise ToolValidationError(
            f"Missing required fields for tool '{tool_name}': {', '.join(missing)}"
        )

    errors: list[str] = []
    cleaned: dict = {}
    for name, prop in properties.items():
        if name in arguments:
            cleaned[name] = _check(name, arguments[name], prop, errors)
        elif "default" in prop:
            cleaned[name] = prop["default"]

    if errors:
        raise ToolValidationError(f"Invalid arguments for tool '{tool_name}': {'; '.join(errors)}")
    return cleaned
