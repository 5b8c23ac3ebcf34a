"""Generates pydantic validator modules and route lookup tables from OpenAPI documents."""

from .config import FormatRegistry, GeneratorConfig
from .main import generate_from_source, generate_validators, load_spec

__all__ = [
    "FormatRegistry",
    "GeneratorConfig",
    "generate_from_source",
    "generate_validators",
    "load_spec",
]
