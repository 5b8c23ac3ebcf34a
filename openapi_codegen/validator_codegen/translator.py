"""
Schema translator - converts SchemaNodes into validator descriptions.

The validator description is the intermediate representation shared by the
naming unit, the dependency orderer and the renderer. Every node kind has
exactly the acceptance semantics of the JSON-Schema construct it came from.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import re
from dataclasses import dataclass, fields
from typing import Any, Iterator, Union

from ..shared.errors import UnbreakableCycleError, UnsupportedSchemaError
from .config import FormatRegistry
from .model import ResolvedDocument, SchemaKind, SchemaNode
from .runtime import SUPPORTED_FORMATS

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AnyValidator:
    """Accepts any value."""


@dataclass(frozen=True, slots=True)
class NoneValidator:
    """Accepts only null."""


@dataclass(frozen=True, slots=True)
class BoolValidator:
    pass


@dataclass(frozen=True, slots=True)
class StringValidator:
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    format: str | None = None


@dataclass(frozen=True, slots=True)
class CustomValidator:
    """A user-registered validator referenced by name."""

    name: str


@dataclass(frozen=True, slots=True)
class NumberValidator:
    """Numeric range validator; exclusive bounds are kept apart from inclusive ones."""

    integer: bool = False
    minimum: int | float | None = None
    maximum: int | float | None = None
    exclusive_minimum: int | float | None = None
    exclusive_maximum: int | float | None = None
    multiple_of: int | float | None = None


@dataclass(frozen=True, slots=True)
class LiteralValidator:
    values: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class ArrayValidator:
    items: Validator
    min_items: int | None = None
    max_items: int | None = None
    unique: bool = False


@dataclass(frozen=True, slots=True)
class RecordValidator:
    """An object with no declared properties: a mapping of string keys to values."""

    values: Validator
    min_properties: int | None = None
    max_properties: int | None = None


@dataclass(frozen=True, slots=True)
class FieldSpec:
    key: str
    validator: Validator
    required: bool


@dataclass(frozen=True, slots=True)
class ObjectValidator:
    """An object with declared properties, rendered as a model."""

    fields: tuple[FieldSpec, ...]
    forbid_extra: bool = False
    extra: Validator | None = None
    min_properties: int | None = None
    max_properties: int | None = None


@dataclass(frozen=True, slots=True)
class UnionValidator:
    branches: tuple[Validator, ...]


@dataclass(frozen=True, slots=True)
class IntersectionValidator:
    branches: tuple[Validator, ...]


@dataclass(frozen=True, slots=True)
class NullableValidator:
    inner: Validator


@dataclass(frozen=True, slots=True)
class RefValidator:
    """Reference to a resolved definition, by canonical target id."""

    target: str


@dataclass(frozen=True, slots=True)
class NamedRef:
    """Reference to a named declaration."""

    name: str


Validator = Union[
    AnyValidator,
    NoneValidator,
    BoolValidator,
    StringValidator,
    CustomValidator,
    NumberValidator,
    LiteralValidator,
    ArrayValidator,
    RecordValidator,
    ObjectValidator,
    UnionValidator,
    IntersectionValidator,
    NullableValidator,
    RefValidator,
    NamedRef,
]

# Kinds worth sharing through a named declaration when repeated
COMPOSITE_TYPES = (
    ArrayValidator,
    RecordValidator,
    ObjectValidator,
    UnionValidator,
    IntersectionValidator,
    LiteralValidator,
)


def children(validator: Validator) -> Iterator[Validator]:
    """Yield the direct child validators."""
    if isinstance(validator, ArrayValidator):
        yield validator.items
    elif isinstance(validator, RecordValidator):
        yield validator.values
    elif isinstance(validator, ObjectValidator):
        for spec in validator.fields:
            yield spec.validator
        if validator.extra is not None:
            yield validator.extra
    elif isinstance(validator, (UnionValidator, IntersectionValidator)):
        yield from validator.branches
    elif isinstance(validator, NullableValidator):
        yield validator.inner


def _canonical(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_canonical(item) for item in value]
    if hasattr(value, "__dataclass_fields__"):
        return {
            "@": type(value).__name__,
            **{f.name: _canonical(getattr(value, f.name)) for f in fields(value)},
        }
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    # Keep 1 and 1.0 apart
    return {"#": type(value).__name__, "v": value}


def fingerprint(validator: Validator) -> str:
    """Structural fingerprint of a validator tree."""
    canonical = json.dumps(_canonical(validator), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class SchemaTranslator:
    """Translates SchemaNodes of one resolved document."""

    def __init__(self, document: ResolvedDocument, formats: FormatRegistry | None = None) -> None:
        self._document = document
        self._formats = formats or FormatRegistry()

    def translate(self, node: SchemaNode) -> Validator:
        validator = self._translate(node)
        if node.nullable and not _accepts_none(validator):
            validator = NullableValidator(validator)
        return validator

    def _translate(self, node: SchemaNode) -> Validator:
        kind = node.kind
        if kind is SchemaKind.ANY:
            return AnyValidator()
        if kind is SchemaKind.NULL:
            return NoneValidator()
        if kind is SchemaKind.BOOLEAN:
            return BoolValidator()
        if kind is SchemaKind.STRING:
            return self._string(node)
        if kind in (SchemaKind.NUMBER, SchemaKind.INTEGER):
            return self._number(node)
        if kind in (SchemaKind.ENUM, SchemaKind.LITERAL):
            return LiteralValidator(values=node.values)
        if kind is SchemaKind.ARRAY:
            return ArrayValidator(
                items=AnyValidator() if node.items is None else self.translate(node.items),
                min_items=node.constraint("min_items"),
                max_items=node.constraint("max_items"),
                unique=node.constraint("unique_items") is True,
            )
        if kind is SchemaKind.OBJECT:
            return self._object(node)
        if kind in (SchemaKind.ANY_OF, SchemaKind.ONE_OF):
            branches = tuple(self.translate(branch) for branch in node.branches)
            return branches[0] if len(branches) == 1 else UnionValidator(branches)
        if kind is SchemaKind.ALL_OF:
            return self._all_of(node)
        if kind is SchemaKind.REFERENCE:
            if node.target is None or node.target not in self._document.definitions:
                raise UnsupportedSchemaError("$ref", node.pointer, "reference has no resolved target")
            return RefValidator(node.target)
        raise UnsupportedSchemaError(str(kind.value), node.pointer, "no translation rule")

    def _number(self, node: SchemaNode) -> NumberValidator:
        bounds = {
            name: node.constraint(name)
            for name in ("minimum", "maximum", "exclusive_minimum", "exclusive_maximum")
        }
        multiple_of = node.constraint("multiple_of")
        if node.kind is SchemaKind.INTEGER:
            bounds = _integer_bounds(**bounds)
            if isinstance(multiple_of, float) and multiple_of.is_integer():
                multiple_of = int(multiple_of)
        return NumberValidator(integer=node.kind is SchemaKind.INTEGER, multiple_of=multiple_of, **bounds)

    def _string(self, node: SchemaNode) -> Validator:
        pattern = node.constraint("pattern")
        if pattern is not None:
            if not isinstance(pattern, str):
                raise UnsupportedSchemaError("pattern", node.pointer, f"expected a string, found {pattern!r}")
            try:
                re.compile(pattern)
            except re.error as e:
                raise UnsupportedSchemaError("pattern", node.pointer, f"invalid regular expression: {e}") from e
        format_name = node.constraint("format")
        if format_name is not None:
            custom = self._formats.lookup(format_name)
            if custom is not None:
                return CustomValidator(custom)
            if format_name not in SUPPORTED_FORMATS:
                logger.debug("Ignoring unknown string format %r at %s", format_name, node.pointer)
                format_name = None
        return StringValidator(
            min_length=node.constraint("min_length"),
            max_length=node.constraint("max_length"),
            pattern=node.constraint("pattern"),
            format=format_name,
        )

    def _object(self, node: SchemaNode) -> Validator:
        additional = node.additional
        if not node.properties and additional is not False:
            values = self.translate(additional) if isinstance(additional, SchemaNode) else AnyValidator()
            return RecordValidator(
                values=values,
                min_properties=node.constraint("min_properties"),
                max_properties=node.constraint("max_properties"),
            )
        return ObjectValidator(
            fields=tuple(
                FieldSpec(key=name, validator=self.translate(prop), required=name in node.required)
                for name, prop in node.properties
            ),
            forbid_extra=additional is False,
            extra=self.translate(additional) if isinstance(additional, SchemaNode) else None,
            min_properties=node.constraint("min_properties"),
            max_properties=node.constraint("max_properties"),
        )

    # ------------------------------------------------------------------
    # allOf
    # ------------------------------------------------------------------

    def _all_of(self, node: SchemaNode) -> Validator:
        if len(node.branches) == 1:
            return self.translate(node.branches[0])
        shapes = self._object_shapes(node, [])
        if shapes is not None:
            return self._merge(shapes)
        return IntersectionValidator(tuple(self.translate(branch) for branch in node.branches))

    def _object_shapes(self, node: SchemaNode, stack: list[str]) -> list[SchemaNode] | None:
        """Flatten an allOf into plain object shapes, or None if a branch is not one."""
        shapes: list[SchemaNode] = []
        for branch in node.branches:
            if branch.nullable:
                return None
            if branch.kind is SchemaKind.OBJECT:
                shapes.append(branch)
                continue
            if branch.kind is SchemaKind.REFERENCE and branch.target is not None:
                if branch.target in stack:
                    cycle = [*stack[stack.index(branch.target):], branch.target]
                    raise UnbreakableCycleError(
                        [self._document.names.get(t, t) for t in cycle], branch.pointer
                    )
                target = self._document.definitions.get(branch.target)
                if target is None or target.nullable:
                    return None
                if target.kind is SchemaKind.OBJECT:
                    shapes.append(target)
                    continue
                if target.kind is SchemaKind.ALL_OF:
                    nested = self._object_shapes(target, [*stack, branch.target])
                    if nested is None:
                        return None
                    shapes.extend(nested)
                    continue
            if branch.kind is SchemaKind.ALL_OF:
                nested = self._object_shapes(branch, stack)
                if nested is None:
                    return None
                shapes.extend(nested)
                continue
            return None
        return shapes

    def _merge(self, shapes: list[SchemaNode]) -> Validator:
        """Merge object shapes by property union and required-set union.

        A property declared by several shapes must satisfy each declaration.
        """
        declared: dict[str, list[SchemaNode]] = {}
        required: set[str] = set()
        forbid = False
        extras: list[SchemaNode] = []
        minimum: int | None = None
        maximum: int | None = None
        for shape in shapes:
            for name, prop in shape.properties:
                candidates = declared.setdefault(name, [])
                if prop not in candidates:
                    candidates.append(prop)
            required |= shape.required
            if shape.additional is False:
                forbid = True
            elif isinstance(shape.additional, SchemaNode) and shape.additional not in extras:
                extras.append(shape.additional)
            low, high = shape.constraint("min_properties"), shape.constraint("max_properties")
            if low is not None:
                minimum = low if minimum is None else max(minimum, low)
            if high is not None:
                maximum = high if maximum is None else min(maximum, high)

        extra = self._conjunction(extras) if extras else None
        if not declared and not forbid:
            return RecordValidator(
                values=extra or AnyValidator(),
                min_properties=minimum,
                max_properties=maximum,
            )
        return ObjectValidator(
            fields=tuple(
                FieldSpec(key=name, validator=self._conjunction(nodes), required=name in required)
                for name, nodes in declared.items()
            ),
            forbid_extra=forbid,
            extra=None if forbid else extra,
            min_properties=minimum,
            max_properties=maximum,
        )

    def _conjunction(self, nodes: list[SchemaNode]) -> Validator:
        validators = tuple(dict.fromkeys(self.translate(n) for n in nodes))
        if len(validators) > 1:
            validators = tuple(v for v in validators if not isinstance(v, AnyValidator)) or validators
        return validators[0] if len(validators) == 1 else IntersectionValidator(validators)


def _accepts_none(validator: Validator) -> bool:
    if isinstance(validator, UnionValidator):
        return any(_accepts_none(branch) for branch in validator.branches)
    return isinstance(validator, (AnyValidator, NoneValidator, NullableValidator))


def _integer_bounds(
    minimum: int | float | None,
    maximum: int | float | None,
    exclusive_minimum: int | float | None,
    exclusive_maximum: int | float | None,
) -> dict[str, int | None]:
    """Integer bounds admitting the same integers as the given numeric bounds.

    Fractional bounds are rounded inward; a fractional exclusive bound
    becomes an inclusive one.
    """
    lower = [] if minimum is None else [math.ceil(minimum)]
    upper = [] if maximum is None else [math.floor(maximum)]
    if exclusive_minimum is not None and not float(exclusive_minimum).is_integer():
        lower.append(math.ceil(exclusive_minimum))
        exclusive_minimum = None
    if exclusive_maximum is not None and not float(exclusive_maximum).is_integer():
        upper.append(math.floor(exclusive_maximum))
        exclusive_maximum = None
    return {
        "minimum": max(lower) if lower else None,
        "maximum": min(upper) if upper else None,
        "exclusive_minimum": None if exclusive_minimum is None else int(exclusive_minimum),
        "exclusive_maximum": None if exclusive_maximum is None else int(exclusive_maximum),
    }
