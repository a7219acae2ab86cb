"""Helpers for building configuration dataclasses from JSON payloads.

Payloads produced by the scenario collaborator use camelCase keys
(``amortizationYears``); the dataclasses use snake_case. Both are accepted.
"""

from typing import Any, Dict, Type, TypeVar
from enum import Enum

from capstack.errors import ConfigurationError

E = TypeVar("E", bound=Enum)

_MISSING = object()


def camel_case(name: str) -> str:
    """Convert a snake_case field name to the camelCase payload key."""
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def get_field(data: Dict[str, Any], name: str, default: Any = _MISSING) -> Any:
    """Look up ``name`` in a payload under its snake_case or camelCase key."""
    if name in data:
        return data[name]
    key = camel_case(name)
    if key in data:
        return data[key]
    if default is _MISSING:
        raise ConfigurationError(
            f"Missing required field '{key}'",
            field=name,
        )
    return default


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Coerce a payload value into ``enum_cls``, accepting names or values."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if value == member.value or value.upper() == member.name:
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ConfigurationError(
        f"Invalid {camel_case(field)} '{value}': expected one of {allowed}",
        field=field,
    )
