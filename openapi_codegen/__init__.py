"""OpenAPI to pydantic validator code generation."""

__version__ = "0.1.0"
