"""Generator configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..shared.errors import FormatRegistrationError


class FormatRegistry:
    """Maps string formats to user-supplied validator names.

    A registered name replaces the built-in format check in generated code
    and is used verbatim, so it must be importable in the generated module
    (see ``GeneratorConfig.extra_imports``). One registry belongs to one
    generation run.
    """

    __slots__ = ("_formats",)

    def __init__(self) -> None:
        self._formats: dict[str, str] = {}

    def register(self, name: str, formats: Iterable[str]) -> None:
        """Register `name` as the validator for every format in `formats`.

        Raises:
            FormatRegistrationError: If a format already maps to another name.
        """
        formats = list(formats)
        for format_name in formats:
            existing = self._formats.get(format_name)
            if existing is not None and existing != name:
                raise FormatRegistrationError(format_name, existing, name)
        for format_name in formats:
            self._formats[format_name] = name

    def lookup(self, format_name: str) -> str | None:
        return self._formats.get(format_name)

    def is_registered(self, format_name: str) -> bool:
        return format_name in self._formats

    def validators(self) -> frozenset[str]:
        """Names of every registered validator."""
        return frozenset(self._formats.values())

    def clear(self) -> None:
        self._formats.clear()

    def __len__(self) -> int:
        return len(self._formats)


@dataclass(frozen=True)
class GeneratorConfig:
    """Options recognised by the generator.

    Attributes:
        include_routes: Emit route declarations and the Request/Response tables.
        name_prefix: Prefix applied to every generated identifier.
        extra_imports: Import lines copied verbatim into the generated module.
        formats: Custom string format validators.
        title: First line of the generated module docstring.
    """

    include_routes: bool = True
    name_prefix: str = ""
    extra_imports: tuple[str, ...] = ()
    formats: FormatRegistry = field(default_factory=FormatRegistry)
    title: str = "Validators generated from an OpenAPI document."

    def __post_init__(self) -> None:
        if self.name_prefix and not self.name_prefix.isidentifier():
            raise ValueError(f"name_prefix must be a valid identifier, got {self.name_prefix!r}")
