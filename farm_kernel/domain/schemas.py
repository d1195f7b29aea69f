"""
Declarative payload field schemas and their validator.

Each event type declares the fields its payload carries as a tuple of
PayloadField.  ``validate_fields`` walks a raw payload against that tuple and
returns the coerced values (Decimals for numbers, stripped strings, nested
dicts for array items) together with every problem found, so a caller gets
the complete list of field errors in one response.

Pure functional core: no I/O, no ORM.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from farm_kernel.domain.values import ZERO, range_problem, to_decimal


class FieldType(str, Enum):
    STRING = "string"
    DECIMAL = "decimal"
    INTEGER = "integer"
    STRING_LIST = "string_list"
    OBJECT_LIST = "object_list"


@dataclass(frozen=True)
class PayloadField:
    """
    Schema for one payload field.

    ``name`` is the wire name (camelCase, as sent by the request layer);
    ``attr`` is the snake_case attribute of the payload dataclass.
    """

    name: str
    field_type: FieldType
    required: bool = True
    default: Any = None
    # Numeric constraints
    positive: bool = False
    non_negative: bool = False
    non_zero: bool = False
    # String constraints
    allowed_values: frozenset[str] | None = None
    max_length: int = 200
    # OBJECT_LIST item schema
    item_fields: tuple["PayloadField", ...] | None = None
    min_items: int = 0

    def __post_init__(self) -> None:
        if self.field_type == FieldType.OBJECT_LIST and not self.item_fields:
            raise ValueError(f"Field '{self.name}' of type OBJECT_LIST needs item_fields")

    @property
    def attr(self) -> str:
        return _camel_to_snake(self.name)


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _error(path: str, message: str) -> dict:
    return {"field": path, "message": message}


def _coerce(spec: PayloadField, value: Any, path: str, errors: list[dict]) -> Any:
    if spec.field_type == FieldType.STRING:
        if not isinstance(value, str) or not value.strip():
            errors.append(_error(path, "must be a non-empty string"))
            return None
        value = value.strip()
        if len(value) > spec.max_length:
            errors.append(_error(path, f"must be at most {spec.max_length} characters"))
        if spec.allowed_values is not None:
            value = value.upper()
            if value not in spec.allowed_values:
                allowed = ", ".join(sorted(spec.allowed_values))
                errors.append(_error(path, f"must be one of {allowed}"))
        return value

    if spec.field_type in (FieldType.DECIMAL, FieldType.INTEGER):
        try:
            number = to_decimal(value)
        except (TypeError, ValueError):
            errors.append(_error(path, "must be a number"))
            return None
        problem = range_problem(number)
        if problem is not None:
            errors.append(_error(path, problem))
            return None
        if spec.field_type == FieldType.INTEGER:
            if number != number.to_integral_value():
                errors.append(_error(path, "must be a whole number"))
                return None
            number = int(number)
        if spec.positive and number <= ZERO:
            errors.append(_error(path, "must be greater than zero"))
        if spec.non_negative and number < ZERO:
            errors.append(_error(path, "must not be negative"))
        if spec.non_zero and number == ZERO:
            errors.append(_error(path, "must not be zero"))
        return number

    if spec.field_type == FieldType.STRING_LIST:
        if not isinstance(value, (list, tuple)) or not all(
            isinstance(item, str) and item.strip() for item in value
        ):
            errors.append(_error(path, "must be a list of non-empty strings"))
            return None
        return tuple(item.strip() for item in value)

    # OBJECT_LIST
    if not isinstance(value, (list, tuple)):
        errors.append(_error(path, "must be a list"))
        return None
    if len(value) < spec.min_items:
        errors.append(_error(path, f"must contain at least {spec.min_items} item(s)"))
    items = []
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        if not isinstance(item, dict):
            errors.append(_error(item_path, "must be an object"))
            continue
        items.append(validate_fields(spec.item_fields, item, errors, prefix=f"{item_path}."))
    return tuple(items)


def validate_fields(
    fields: tuple[PayloadField, ...],
    raw: dict[str, Any],
    errors: list[dict],
    prefix: str = "",
) -> dict[str, Any]:
    """
    Validate ``raw`` against ``fields``.

    Appends one error dict per problem to ``errors`` and returns the coerced
    values keyed by snake_case attribute name.  Missing optional fields take
    their declared default.  Unknown keys are ignored.
    """
    values: dict[str, Any] = {}
    for spec in fields:
        path = f"{prefix}{spec.name}"
        value = raw.get(spec.name)
        if value is None:
            if spec.required:
                errors.append(_error(path, "is required"))
            values[spec.attr] = spec.default
            continue
        values[spec.attr] = _coerce(spec, value, path, errors)
    return values
