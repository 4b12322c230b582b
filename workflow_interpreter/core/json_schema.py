"""
JSON Schema -> pydantic conversion for step output validation.

Supports the subset of JSON Schema draft 7 used in workflow files:
type (single or ["<type>", "null"]), enum, properties/required, items and
additionalProperties. Unknown or unsupported constructs accept any value.
Undeclared object properties are ignored unless additionalProperties is a
schema, in which case every undeclared property value must satisfy it.
"""

from __future__ import annotations

import itertools
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    AfterValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
)

_model_counter = itertools.count(1)


def _is_integer(value: Any) -> Any:
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("Expected an integer")
    return value


def _reject_all(value: Any) -> Any:
    raise ValueError("No value is allowed by an empty enum")


# Strict floats accept ints but reject bools and numeric strings.
_NUMBER = StrictFloat
_PRIMITIVES: dict[str, Any] = {
    "string": StrictStr,
    "number": _NUMBER,
    "integer": Annotated[_NUMBER, AfterValidator(_is_integer)],
    "boolean": StrictBool,
    "null": None,
}


def _enum_type(values: list[Any]) -> Any:
    if not values:
        return Annotated[Any, AfterValidator(_reject_all)]
    return Literal[tuple(values)]


def _object_type(schema: dict[str, Any]) -> Any:
    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    additional = schema.get("additionalProperties")

    fields: dict[str, Any] = {}
    for index, (prop_name, prop_schema) in enumerate(properties.items()):
        annotation = convert_json_schema_to_type(prop_schema or {})
        if prop_name in required:
            fields[f"field_{index}"] = (annotation, Field(alias=prop_name))
        else:
            fields[f"field_{index}"] = (annotation, Field(default=None, alias=prop_name))

    extra = "allow" if additional is True or isinstance(additional, dict) else "ignore"
    model = create_model(
        f"OutputObject{next(_model_counter)}",
        __config__=ConfigDict(extra=extra, populate_by_name=False),
        **fields,
    )

    if not isinstance(additional, dict):
        return model

    value_adapter = TypeAdapter(convert_json_schema_to_type(additional))

    def _check_values(instance: Any) -> Any:
        for key, item in (instance.model_extra or {}).items():
            try:
                value_adapter.validate_python(item)
            except ValidationError as e:
                first = e.errors()[0]
                raise ValueError(f"property '{key}': {first.get('msg')}") from e
        return instance

    return Annotated[model, AfterValidator(_check_values)]


def convert_json_schema_to_type(schema: dict[str, Any]) -> Any:
    """Translate a JSON Schema dict into a type usable with pydantic's TypeAdapter."""
    if "enum" in schema:
        return _enum_type(list(schema.get("enum") or []))

    schema_type = schema.get("type")

    if isinstance(schema_type, list):
        if "null" in schema_type and len(schema_type) == 2:
            non_null = next(t for t in schema_type if t != "null")
            return Optional[convert_json_schema_to_type({**schema, "type": non_null})]
        return Any

    if schema_type in _PRIMITIVES:
        return _PRIMITIVES[schema_type]
    if schema_type == "object":
        return _object_type(schema)
    if schema_type == "array":
        items = schema.get("items")
        if not items:
            return list[Any]
        return list[convert_json_schema_to_type(items)]
    return Any


def validate_against_json_schema(schema: dict[str, Any], value: Any) -> list[str]:
    """Validate `value`; returns "path: message" issues (empty when valid)."""
    adapter = TypeAdapter(convert_json_schema_to_type(schema))
    try:
        adapter.validate_python(value)
    except ValidationError as e:
        issues = []
        for item in e.errors():
            path = ".".join(str(part) for part in item.get("loc", ()))
            issues.append(f"{path or 'root'}: {item.get('msg')}")
        return issues
    return []
