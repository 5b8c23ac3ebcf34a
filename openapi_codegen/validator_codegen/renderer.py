"""
Code renderer - serializes ordered declarations into pydantic source text.

Expressions are rendered bottom-up from the validator description; every
symbol an expression uses is recorded so the module header imports exactly
what the body needs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Iterable

from jinja2 import Environment, FileSystemLoader, Template

from ..shared.naming import MODEL_RESERVED, sanitize_field_name
from . import runtime
from .config import GeneratorConfig
from .declarations import DeclarationEntry
from .routes import RouteLookup
from .translator import (
    AnyValidator,
    ArrayValidator,
    BoolValidator,
    CustomValidator,
    IntersectionValidator,
    LiteralValidator,
    NamedRef,
    NoneValidator,
    NullableValidator,
    NumberValidator,
    ObjectValidator,
    RecordValidator,
    RefValidator,
    StringValidator,
    UnionValidator,
    Validator,
)

logger = logging.getLogger(__name__)

TYPING: Final = "typing"
PYDANTIC: Final = "pydantic"
TYPING_EXTENSIONS: Final = "typing_extensions"
RUNTIME: Final = runtime.__name__

# Import groups in emission order: stdlib, third party, package runtime
MODULE_ORDER: Final[tuple[str, ...]] = (TYPING, PYDANTIC, TYPING_EXTENSIONS, RUNTIME)

IMPORTABLE: Final[dict[str, str]] = {
    "Annotated": TYPING,
    "Any": TYPING,
    "Literal": TYPING,
    "Optional": TYPING,
    "Union": TYPING,
    "AfterValidator": PYDANTIC,
    "BaseModel": PYDANTIC,
    "BeforeValidator": PYDANTIC,
    "ConfigDict": PYDANTIC,
    "Field": PYDANTIC,
    "Strict": PYDANTIC,
    "StrictBool": PYDANTIC,
    "StrictFloat": PYDANTIC,
    "StrictInt": PYDANTIC,
    "StrictStr": PYDANTIC,
    "StringConstraints": PYDANTIC,
    "model_validator": PYDANTIC,
    "TypeAliasType": TYPING_EXTENSIONS,
    "all_of": RUNTIME,
    "check_format": RUNTIME,
    "check_multiple_of": RUNTIME,
    "check_pattern": RUNTIME,
    "exact_values": RUNTIME,
    "property_count": RUNTIME,
    "unique_items": RUNTIME,
}

PROPERTY_COUNT_VALIDATOR: Final = "validate_property_count"

# Builtins that rendered expressions refer to by name
BUILTIN_NAMES: Final[frozenset[str]] = frozenset({"dict", "float", "int", "list", "str"})


class ImportCollector:
    """Records the symbols used by rendered code."""

    def __init__(self) -> None:
        self._used: set[str] = set()

    def use(self, name: str) -> str:
        if name not in IMPORTABLE:
            raise KeyError(f"'{name}' is not an importable symbol")
        self._used.add(name)
        return name

    def lines(self) -> list[str]:
        grouped: dict[str, list[str]] = {}
        for name in self._used:
            grouped.setdefault(IMPORTABLE[name], []).append(name)
        return [
            f"from {module} import {', '.join(sorted(grouped[module]))}"
            for module in MODULE_ORDER
            if module in grouped
        ]


def _literal(value: Any) -> str:
    return repr(value)


def _keywords(pairs: Iterable[tuple[str, Any]]) -> str:
    return ", ".join(f"{key}={_literal(value)}" for key, value in pairs if value is not None)


class ExpressionRenderer:
    """Renders validator descriptions as pydantic type expressions."""

    def __init__(self, imports: ImportCollector) -> None:
        self.imports = imports

    def render(self, validator: Validator) -> str:
        use = self.imports.use
        if isinstance(validator, NamedRef):
            return validator.name
        if isinstance(validator, AnyValidator):
            return use("Any")
        if isinstance(validator, NoneValidator):
            return "None"
        if isinstance(validator, BoolValidator):
            return use("StrictBool")
        if isinstance(validator, StringValidator):
            return self._string(validator)
        if isinstance(validator, CustomValidator):
            return validator.name
        if isinstance(validator, NumberValidator):
            return self._number(validator)
        if isinstance(validator, LiteralValidator):
            return self._literal(validator)
        if isinstance(validator, ArrayValidator):
            return self._array(validator)
        if isinstance(validator, RecordValidator):
            expr = f"dict[str, {self.render(validator.values)}]"
            bounds = _keywords((("min_length", validator.min_properties), ("max_length", validator.max_properties)))
            if bounds:
                expr = f"{use('Annotated')}[{expr}, {use('Field')}({bounds})]"
            return expr
        if isinstance(validator, UnionValidator):
            branches = ", ".join(self.render(branch) for branch in validator.branches)
            return f"{use('Annotated')}[{use('Union')}[{branches}], {use('Field')}(union_mode='left_to_right')]"
        if isinstance(validator, IntersectionValidator):
            branches = ", ".join(self.render(branch) for branch in validator.branches)
            return f"{use('Annotated')}[{use('Any')}, {use('AfterValidator')}({use('all_of')}({branches}))]"
        if isinstance(validator, NullableValidator):
            return f"{use('Optional')}[{self.render(validator.inner)}]"
        if isinstance(validator, (ObjectValidator, RefValidator)):
            raise TypeError(f"{type(validator).__name__} must be promoted to a declaration before rendering")
        raise TypeError(f"Unknown validator {validator!r}")

    def _string(self, validator: StringValidator) -> str:
        use = self.imports.use
        constraints = _keywords((
            ("min_length", validator.min_length),
            ("max_length", validator.max_length),
        ))
        if constraints:
            metadata = [f"{use('StringConstraints')}(strict=True, {constraints})"]
            base = "str"
        else:
            metadata = []
            base = use("StrictStr")
        if validator.pattern is not None:
            metadata.append(f"{use('AfterValidator')}({use('check_pattern')}({_literal(validator.pattern)}))")
        if validator.format is not None:
            metadata.append(f"{use('AfterValidator')}({use('check_format')}({_literal(validator.format)}))")
        if not metadata:
            return base
        return f"{use('Annotated')}[{base}, {', '.join(metadata)}]"

    def _number(self, validator: NumberValidator) -> str:
        use = self.imports.use
        step = validator.multiple_of
        # pydantic only takes an integer step for int
        fractional_step = validator.integer and step is not None and not isinstance(step, int)
        constraints = _keywords((
            ("ge", validator.minimum),
            ("gt", validator.exclusive_minimum),
            ("le", validator.maximum),
            ("lt", validator.exclusive_maximum),
            ("multiple_of", None if fractional_step else step),
        ))
        if not constraints and not fractional_step:
            return use("StrictInt") if validator.integer else use("StrictFloat")
        base = "int" if validator.integer else "float"
        metadata = [f"{use('Strict')}()"]
        if constraints:
            metadata.append(f"{use('Field')}({constraints})")
        if fractional_step:
            metadata.append(f"{use('AfterValidator')}({use('check_multiple_of')}({_literal(step)}))")
        return f"{use('Annotated')}[{base}, {', '.join(metadata)}]"

    def _literal(self, validator: LiteralValidator) -> str:
        use = self.imports.use
        values = ", ".join(_literal(v) for v in validator.values)
        expr = f"{use('Literal')}[{values}]"
        if not any(isinstance(v, (bool, int, float)) for v in validator.values):
            return expr
        # Literal matching alone equates True with 1
        return f"{use('Annotated')}[{expr}, {use('BeforeValidator')}({use('exact_values')}({values}))]"

    def _array(self, validator: ArrayValidator) -> str:
        use = self.imports.use
        expr = f"list[{self.render(validator.items)}]"
        metadata = []
        bounds = _keywords((("min_length", validator.min_items), ("max_length", validator.max_items)))
        if bounds:
            metadata.append(f"{use('Field')}({bounds})")
        if validator.unique:
            metadata.append(f"{use('AfterValidator')}({use('unique_items')})")
        if not metadata:
            return expr
        return f"{use('Annotated')}[{expr}, {', '.join(metadata)}]"


@dataclass
class RenderedModule:
    """Inputs of the module template."""

    title: str
    imports: list[str]
    extra_imports: list[str]
    blocks: list[str]
    lookup: RouteLookup | None
    exports: list[str]


class DeclarationRenderer:
    """Renders declarations, one block per entry."""

    def __init__(self, imports: ImportCollector, module_names: set[str]) -> None:
        self.imports = imports
        self.expressions = ExpressionRenderer(imports)
        # Field names must not shadow module level names inside a class body
        self._module_names = module_names | set(IMPORTABLE) | BUILTIN_NAMES

    def render(self, entry: DeclarationEntry) -> str:
        if entry.is_model:
            return self._model(entry.name, entry.validator)
        expr = self.expressions.render(entry.validator)
        if entry.is_cyclic:
            return f"{entry.name} = {self.imports.use('TypeAliasType')}({_literal(entry.name)}, {_literal(expr)})"
        return f"{entry.name} = {expr}"

    def _model(self, name: str, validator: ObjectValidator) -> str:
        use = self.imports.use
        extra = "forbid" if validator.forbid_extra else "allow"
        lines = [
            f"class {name}({use('BaseModel')}):",
            f"    model_config = {use('ConfigDict')}(extra={extra!r})",
            "",
        ]
        if validator.extra is not None:
            expr = self.expressions.render(validator.extra)
            lines.append(f"    __pydantic_extra__: dict[str, {expr}] = {use('Field')}(init=False)")

        used: set[str] = set()
        for spec in validator.fields:
            field_name = self._field_name(spec.key, used)
            expr = self.expressions.render(spec.validator)
            arguments = []
            if not spec.required:
                arguments.append("default=None")
            if field_name != spec.key:
                arguments.append(f"alias={spec.key!r}")
            if not arguments:
                lines.append(f"    {field_name}: {expr}")
            elif arguments == ["default=None"]:
                lines.append(f"    {field_name}: {expr} = None")
            else:
                lines.append(f"    {field_name}: {expr} = {use('Field')}({', '.join(arguments)})")

        if validator.min_properties is not None or validator.max_properties is not None:
            lines.append("")
            lines.append(
                f"    {PROPERTY_COUNT_VALIDATOR} = {use('model_validator')}(mode='before')"
                f"({use('property_count')}({validator.min_properties!r}, {validator.max_properties!r}))"
            )
        if lines[-1] == "":
            lines.pop()
        return "\n".join(lines)

    def _field_name(self, key: str, used: set[str]) -> str:
        name = sanitize_field_name(key)
        if name in self._module_names or name in MODEL_RESERVED or name == PROPERTY_COUNT_VALIDATOR:
            name = f"{name}_"
        base, count = name, 1
        while name in used:
            count += 1
            name = f"{base}_{count}"
        used.add(name)
        return name


@dataclass
class GeneratorContext:
    """Context for code generation with cached resources."""

    template_env: Environment = field(init=False)
    _module_template: Template = field(init=False)

    def __post_init__(self) -> None:
        templates_dir = Path(__file__).parent / "templates"
        self.template_env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            auto_reload=False,
        )
        self.template_env.filters["pyrepr"] = _literal
        self._module_template = self.template_env.get_template("validators.py.jinja")

    @property
    def module_template(self) -> Template:
        return self._module_template


def render_module(
    ctx: GeneratorContext,
    components: list[list[DeclarationEntry]],
    lookup: RouteLookup | None,
    config: GeneratorConfig,
) -> str:
    """Render the ordered declaration groups and lookup tables as one module."""
    imports = ImportCollector()
    names = {entry.name for component in components for entry in component}
    renderer = DeclarationRenderer(imports, names)

    blocks: list[str] = []
    for component in components:
        for entry in component:
            blocks.append(renderer.render(entry))
        rebuilds = [f"{entry.name}.model_rebuild()" for entry in component if entry.is_cyclic and entry.is_model]
        if rebuilds:
            blocks.append("\n".join(rebuilds))

    exports = [entry.name for component in components for entry in component]
    if lookup is not None:
        exports.extend(["Request", "Response"])

    module = RenderedModule(
        title=config.title,
        imports=imports.lines(),
        extra_imports=list(config.extra_imports),
        blocks=blocks,
        lookup=lookup,
        exports=exports,
    )
    logger.debug("Rendering %d blocks", len(blocks))
    return ctx.module_template.render(module=module)
