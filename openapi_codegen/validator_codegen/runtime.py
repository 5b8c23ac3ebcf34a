"""
Runtime helpers imported by generated validator modules.

These cover the JSON-Schema checks pydantic has no direct annotation for:
string formats that must stay strings, ``allOf`` intersections,
``uniqueItems`` and ``minProperties``/``maxProperties`` on models.
Enum membership, unique items and patterns compare values the JSON way:
``true`` is not ``1``, and a pattern may match anywhere in the string.
"""

from __future__ import annotations

import re
from datetime import date
from fractions import Fraction
from functools import lru_cache
from typing import Any, Callable, Final

from pydantic import AnyUrl, AwareDatetime, BaseModel, TypeAdapter, ValidationError
from pydantic.networks import validate_email

_UUID_RE: Final = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_DATE_RE: Final = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATE_TIME_RE: Final = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
_COLOR_HEX_RE: Final = re.compile(r"^[a-fA-F0-9]{6}$")
_OBJECT_ID_RE: Final = re.compile(r"^[0-9a-fA-F]{24}$")


@lru_cache(maxsize=None)
def _adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def _parses_as(tp: Any, value: str) -> bool:
    try:
        _adapter(tp).validate_python(value)
    except ValidationError:
        return False
    return True


def _email(value: str) -> bool:
    try:
        validate_email(value)
    except ValueError:
        return False
    return True


def _date(value: str) -> bool:
    return bool(_DATE_RE.match(value)) and _parses_as(date, value)


def _date_time(value: str) -> bool:
    return bool(_DATE_TIME_RE.match(value)) and _parses_as(AwareDatetime, value)


FORMAT_CHECKS: Final[dict[str, Callable[[str], bool]]] = {
    "color-hex": lambda value: bool(_COLOR_HEX_RE.match(value)),
    "date": _date,
    "date-time": _date_time,
    "email": _email,
    "iso-date": _date,
    "iso-date-time": _date_time,
    "objectid": lambda value: bool(_OBJECT_ID_RE.match(value)),
    "uri": lambda value: _parses_as(AnyUrl, value),
    "url": lambda value: _parses_as(AnyUrl, value),
    "uuid": lambda value: bool(_UUID_RE.match(value)),
}

SUPPORTED_FORMATS: Final[frozenset[str]] = frozenset(FORMAT_CHECKS)


@lru_cache(maxsize=None)
def check_format(name: str) -> Callable[[str], str]:
    """Return an after-validator accepting strings of the given format.

    Raises:
        KeyError: If the format has no built-in check.
    """
    check = FORMAT_CHECKS[name]

    def validate(value: str) -> str:
        if not check(value):
            raise ValueError(f"value is not a valid {name}")
        return value

    validate.__name__ = f"check_{name.replace('-', '_')}"
    return validate


def all_of(*types: Any) -> Callable[[Any], Any]:
    """Return an after-validator requiring the value to satisfy every type.

    Adapters are built on first use so that types still being defined
    (recursive declarations) can be passed in.
    """
    adapters: list[TypeAdapter] = []

    def validate(value: Any) -> Any:
        if not adapters:
            adapters.extend(TypeAdapter(tp) for tp in types)
        for adapter in adapters:
            adapter.validate_python(value)
        return value

    return validate


def _json_key(value: Any) -> Any:
    """Hashable key under which two values are equal exactly when they are equal JSON values."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)
    if value is None or isinstance(value, bool):
        return (type(value).__name__, value)
    if isinstance(value, (int, float)):
        return ("number", value)
    if isinstance(value, str):
        return ("string", value)
    if isinstance(value, (list, tuple)):
        return ("array", tuple(_json_key(item) for item in value))
    if isinstance(value, dict):
        return ("object", frozenset((key, _json_key(item)) for key, item in value.items()))
    return (type(value).__name__, repr(value))


def unique_items(values: list[Any]) -> list[Any]:
    seen: set[Any] = set()
    for value in values:
        key = _json_key(value)
        if key in seen:
            raise ValueError("array items must be unique")
        seen.add(key)
    return values


def exact_values(*values: Any) -> Callable[[Any], Any]:
    """Return a before-validator accepting only the given JSON values.

    ``Literal`` matching alone lets ``True`` through for ``1``.
    """
    allowed = frozenset(_json_key(value) for value in values)

    def validate(value: Any) -> Any:
        if _json_key(value) not in allowed:
            raise ValueError(f"value must be one of {', '.join(repr(v) for v in values)}")
        return value

    return validate


@lru_cache(maxsize=None)
def check_pattern(pattern: str) -> Callable[[str], str]:
    """Return an after-validator searching strings for a regular expression."""
    compiled = re.compile(pattern)

    def validate(value: str) -> str:
        if compiled.search(value) is None:
            raise ValueError(f"string does not match pattern {pattern!r}")
        return value

    return validate


def check_multiple_of(step: int | float) -> Callable[[Any], Any]:
    """Return an after-validator requiring an exact multiple of a fractional step."""
    exact = Fraction(repr(step))

    def validate(value: Any) -> Any:
        if (Fraction(value) / exact).denominator != 1:
            raise ValueError(f"value must be a multiple of {step}")
        return value

    return validate


def property_count(minimum: int | None, maximum: int | None) -> Callable[[Any, Any], Any]:
    """Return a before-validator bounding the number of keys of an object."""

    def validate_property_count(cls: Any, data: Any) -> Any:
        if isinstance(data, dict):
            if minimum is not None and len(data) < minimum:
                raise ValueError(f"object must have at least {minimum} properties")
            if maximum is not None and len(data) > maximum:
                raise ValueError(f"object must have at most {maximum} properties")
        return data

    return validate_property_count
