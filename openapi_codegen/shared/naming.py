"""Naming utilities for code generation."""

from __future__ import annotations

import keyword
import re
from functools import lru_cache

# Attribute names a pydantic model field must not shadow
MODEL_RESERVED: frozenset[str] = frozenset({
    "construct",
    "copy",
    "dict",
    "fields",
    "from_orm",
    "json",
    "parse_file",
    "parse_obj",
    "parse_raw",
    "schema",
    "schema_json",
    "update_forward_refs",
    "validate",
})

_WORD_SPLIT = re.compile(r"[^a-zA-Z0-9]+")


@lru_cache(maxsize=1024)
def to_pascal_case(value: str) -> str:
    """Convert a string to PascalCase.

    Uses caching for repeated calls with the same input.

    Examples:
        >>> to_pascal_case("hello_world")
        'HelloWorld'
        >>> to_pascal_case("timer-drafts")
        'TimerDrafts'
        >>> to_pascal_case("helloWorld")
        'HelloWorld'
    """
    # Handle already camelCase/PascalCase by splitting before caps
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    parts = [part for part in _WORD_SPLIT.split(value) if part]
    return "".join(part[0].upper() + part[1:].lower() for part in parts)


@lru_cache(maxsize=1024)
def sanitize_identifier(value: str) -> str:
    """Turn an arbitrary document name into a Python identifier.

    Valid identifiers are kept as written so component names survive
    unchanged; anything else is PascalCased.
    """
    if value.isidentifier() and not keyword.iskeyword(value):
        return value
    pascal = to_pascal_case(value) or "Schema"
    if pascal[0].isdigit():
        pascal = f"_{pascal}"
    return pascal


@lru_cache(maxsize=1024)
def sanitize_field_name(value: str) -> str:
    """Sanitize a JSON property name for use as a pydantic field name.

    Uses caching for repeated calls with the same input.
    """
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "_", value)
    sanitized = sanitized.lstrip("_") or "field"
    if sanitized[0].isdigit():
        sanitized = f"field_{sanitized}"
    if sanitized.startswith("model_"):
        return f"field_{sanitized}"
    if keyword.iskeyword(sanitized) or sanitized in MODEL_RESERVED:
        return f"{sanitized}_"
    return sanitized
