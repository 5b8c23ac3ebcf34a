"""Custom exceptions for the validator generator."""

from __future__ import annotations

from typing import Sequence


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    def __init__(self, message: str, schema_path: str | None = None) -> None:
        self.schema_path = schema_path
        full_message = f"{message}" if not schema_path else f"[{schema_path}] {message}"
        super().__init__(full_message)


class UnresolvedReferenceError(SchemaError):
    """Raised when a `$ref` target cannot be found."""

    def __init__(self, ref: str, referrer: str | None = None) -> None:
        self.ref = ref
        self.referrer = referrer
        super().__init__(f"Unresolved reference '{ref}'", referrer)


class UnsupportedSchemaError(SchemaError):
    """Raised when a schema construct has no translation rule."""

    def __init__(
        self,
        keyword: str,
        schema_path: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.keyword = keyword
        self.detail = detail
        message = f"Unsupported schema keyword '{keyword}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, schema_path)


class UnbreakableCycleError(SchemaError):
    """Raised when a reference cycle cannot be broken with a lazy reference."""

    def __init__(self, names: Sequence[str], schema_path: str | None = None) -> None:
        self.names = tuple(names)
        cycle = " -> ".join(self.names)
        super().__init__(f"Reference cycle cannot be broken: {cycle}", schema_path)


class DuplicateRouteError(SchemaError):
    """Raised when two route definitions share the same (path, method) key."""

    def __init__(self, method: str, path: str, other_path: str) -> None:
        self.method = method
        self.path = path
        self.other_path = other_path
        super().__init__(
            f"Duplicate route {method} {path} (conflicts with {other_path})",
            f"#/paths/{path}",
        )


class FormatRegistrationError(SchemaError):
    """Raised when a string format is registered to two different validators."""

    def __init__(self, format_name: str, existing: str, new: str) -> None:
        self.format_name = format_name
        self.existing = existing
        self.new = new
        super().__init__(
            f"Format '{format_name}' is already registered to '{existing}', cannot register '{new}'"
        )
