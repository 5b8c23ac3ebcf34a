"""Shared utilities for the generator."""

from .schema_loader import (
    DocumentCache,
    load_document,
    load_source,
    make_ref_loader,
)
from .naming import (
    to_pascal_case,
    sanitize_identifier,
    sanitize_field_name,
    MODEL_RESERVED,
)
from .errors import (
    SchemaError,
    UnresolvedReferenceError,
    UnsupportedSchemaError,
    UnbreakableCycleError,
    DuplicateRouteError,
    FormatRegistrationError,
)

__all__ = [
    # Document loading
    "DocumentCache",
    "load_document",
    "load_source",
    "make_ref_loader",
    # Naming utilities
    "to_pascal_case",
    "sanitize_identifier",
    "sanitize_field_name",
    "MODEL_RESERVED",
    # Errors
    "SchemaError",
    "UnresolvedReferenceError",
    "UnsupportedSchemaError",
    "UnbreakableCycleError",
    "DuplicateRouteError",
    "FormatRegistrationError",
]
