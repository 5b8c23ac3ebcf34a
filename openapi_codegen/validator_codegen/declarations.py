"""
Naming and deduplication of generated declarations.

Every schema that must be emitted as a named, reusable unit becomes a
DeclarationEntry. Names are derived from the document (component names) or
from the route context, and structurally identical schemas share one entry.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Iterable

from ..shared.naming import sanitize_identifier, to_pascal_case
from .model import ResolvedDocument, RouteKey
from .translator import (
    COMPOSITE_TYPES,
    ArrayValidator,
    FieldSpec,
    IntersectionValidator,
    NamedRef,
    NullableValidator,
    ObjectValidator,
    RecordValidator,
    RefValidator,
    SchemaTranslator,
    UnionValidator,
    Validator,
    children,
    fingerprint,
)

logger = logging.getLogger(__name__)

SCHEMA_SUFFIX = "Schema"

KIND_SUFFIXES: dict[str, str] = {
    "params": "Params",
    "query": "Query",
    "headers": "Headers",
    "body": "Body",
}


@dataclass(slots=True)
class DeclarationEntry:
    """A named, emittable validator.

    ``dependencies`` lists referenced declaration names in first-use order;
    ``eager_dependencies`` is the subset referenced outside any container
    (alias targets, union and intersection branches, nullable wrappers).
    """

    name: str
    validator: Validator
    pointer: str = ""
    dependencies: tuple[str, ...] = ()
    eager_dependencies: tuple[str, ...] = ()
    is_cyclic: bool = False

    @property
    def is_model(self) -> bool:
        return isinstance(self.validator, ObjectValidator)


@dataclass(frozen=True, slots=True)
class RouteDeclarations:
    """Declaration names of one route, by request kind and by status code."""

    key: RouteKey
    request: tuple[tuple[str, str], ...] = ()
    responses: tuple[tuple[str, str], ...] = ()


@dataclass
class DeclarationSet:
    """Arena of declarations; entries reference each other by name."""

    entries: list[DeclarationEntry] = field(default_factory=list)
    routes: list[RouteDeclarations] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._index: dict[str, int] = {entry.name: i for i, entry in enumerate(self.entries)}

    def add(self, entry: DeclarationEntry) -> None:
        if entry.name in self._index:
            raise ValueError(f"Declaration '{entry.name}' already exists")
        self._index[entry.name] = len(self.entries)
        self.entries.append(entry)

    def get(self, name: str) -> DeclarationEntry:
        return self.entries[self._index[name]]

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def names(self) -> list[str]:
        return [entry.name for entry in self.entries]


class NameRegistry:
    """Per-run mapping between structural fingerprints and assigned names.

    One fingerprint maps to one name and one name to at most one
    fingerprint. Disambiguators are sequential, so a document always
    produces the same names.
    """

    __slots__ = ("_prefix", "_used", "_by_fingerprint", "_fingerprint_of")

    def __init__(self, prefix: str = "", reserved: Iterable[str] = ()) -> None:
        self._prefix = prefix
        self._used: dict[str, int] = {name: 1 for name in reserved}
        self._by_fingerprint: dict[str, str] = {}
        self._fingerprint_of: dict[str, str] = {}

    def claim(self, base: str) -> str:
        """Reserve a unique identifier derived from `base`."""
        name = f"{self._prefix}{base}"
        if name not in self._used:
            self._used[name] = 1
            return name
        count = self._used[name]
        while True:
            count += 1
            candidate = f"{name}_{count}"
            if candidate not in self._used:
                break
        self._used[name] = count
        self._used[candidate] = 1
        return candidate

    def lookup(self, print_: str) -> str | None:
        return self._by_fingerprint.get(print_)

    def bind(self, print_: str, name: str) -> None:
        existing = self._by_fingerprint.get(print_)
        if existing is not None and existing != name:
            raise ValueError(f"Fingerprint already bound to '{existing}', cannot bind '{name}'")
        other = self._fingerprint_of.get(name)
        if other is not None and other != print_:
            raise ValueError(f"Name '{name}' is already bound to a different schema")
        self._by_fingerprint[print_] = name
        self._fingerprint_of[name] = print_

    def __contains__(self, name: object) -> bool:
        return name in self._used


def route_stem(key: RouteKey, suffix: str) -> str:
    """Base name for a route-scoped schema.

    Non-parameter path segments are title-cased, ``{param}`` segments are
    dropped: ``POST /users/{id}/tags`` + ``Body`` -> ``PostUsersTagsBody``.
    """
    segments = []
    for segment in key.path.split("/"):
        segment = re.sub(r"\{[^}]*\}", "", segment)
        if segment:
            segments.append(to_pascal_case(segment))
    return f"{key.method.capitalize()}{''.join(segments)}{suffix}"


def status_suffix(status: str) -> str:
    if status == "default":
        return "DefaultResponse"
    label = to_pascal_case(status) or status
    if status.startswith("2"):
        return f"{label}Response"
    return f"{label}ErrorResponse"


class DeclarationBuilder:
    """Promotes translated schemas to named declarations for one run."""

    def __init__(
        self,
        document: ResolvedDocument,
        translator: SchemaTranslator,
        registry: NameRegistry,
    ) -> None:
        self._document = document
        self._translator = translator
        self._registry = registry
        self._declarations = DeclarationSet()
        self._target_names: dict[str, str] = {}
        self._target_stems: dict[str, str] = {}
        self._repeated: set[str] = set()

    def build(self, include_routes: bool = True) -> DeclarationSet:
        definitions = {
            target: self._translator.translate(node)
            for target, node in self._document.definitions.items()
        }
        routes: list[tuple[RouteKey, str, list[tuple[str, Validator]], list[tuple[str, Validator]]]] = []
        if include_routes:
            for route in self._document.routes:
                routes.append((
                    route.key,
                    route.pointer,
                    [(kind, self._translator.translate(node)) for kind, node in route.request],
                    [(status, self._translator.translate(node)) for status, node in route.responses],
                ))

        roots = list(definitions.values())
        for _, _, request, responses in routes:
            roots.extend(v for _, v in request)
            roots.extend(v for _, v in responses)
        self._repeated = self._count_repeated(roots)

        # Names of reference targets must exist before any tree is lifted
        for target in definitions:
            stem = sanitize_identifier(self._document.names[target])
            self._target_stems[target] = stem
            self._target_names[target] = self._registry.claim(f"{stem}{SCHEMA_SUFFIX}")

        for target, validator in definitions.items():
            self._define(target, validator)

        for key, pointer, request, responses in routes:
            self._declarations.routes.append(RouteDeclarations(
                key=key,
                request=tuple(
                    (kind, self._route_name(v, route_stem(key, KIND_SUFFIXES[kind]), pointer))
                    for kind, v in request
                ),
                responses=tuple(
                    (status, self._route_name(v, route_stem(key, status_suffix(status)), pointer))
                    for status, v in responses
                ),
            ))

        logger.debug("Built %d declarations", len(self._declarations))
        return self._declarations

    def _count_repeated(self, roots: list[Validator]) -> set[str]:
        counts: Counter[str] = Counter()

        def visit(validator: Validator, is_root: bool) -> None:
            if isinstance(validator, COMPOSITE_TYPES) and not is_root:
                counts[fingerprint(validator)] += 1
            for child in children(validator):
                visit(child, False)

        for root in roots:
            visit(root, True)
            if isinstance(root, COMPOSITE_TYPES):
                counts[fingerprint(root)] += 1
        return {print_ for print_, count in counts.items() if count > 1}

    def _define(self, target: str, validator: Validator) -> None:
        name = self._target_names[target]
        pointer = self._document.definitions[target].pointer or target
        if isinstance(validator, RefValidator):
            self._add(name, NamedRef(self._target_names[validator.target]), pointer)
            return
        print_ = fingerprint(validator)
        existing = self._registry.lookup(print_)
        if existing is not None:
            # Identical to an earlier component: keep the name as an alias
            self._add(name, NamedRef(existing), pointer)
            return
        self._registry.bind(print_, name)
        self._add(name, self._lift(validator, self._target_stems[target], root=True), pointer)

    def _route_name(self, validator: Validator, stem: str, pointer: str) -> str:
        if isinstance(validator, RefValidator):
            return self._target_names[validator.target]
        return self._declare(validator, stem, pointer)

    def _declare(self, validator: Validator, stem: str, pointer: str) -> str:
        print_ = fingerprint(validator)
        existing = self._registry.lookup(print_)
        if existing is not None:
            return existing
        name = self._registry.claim(f"{stem}{SCHEMA_SUFFIX}")
        self._registry.bind(print_, name)
        self._add(name, self._lift(validator, stem, root=True), pointer)
        return name

    def _add(self, name: str, validator: Validator, pointer: str) -> None:
        dependencies, eager = collect_references(validator)
        self._declarations.add(DeclarationEntry(
            name=name,
            validator=validator,
            pointer=pointer,
            dependencies=dependencies,
            eager_dependencies=eager,
        ))

    def _lift(self, validator: Validator, stem: str, root: bool = False) -> Validator:
        """Replace references and promotable subtrees with NamedRefs."""
        if isinstance(validator, RefValidator):
            return NamedRef(self._target_names[validator.target])
        if not root and isinstance(validator, COMPOSITE_TYPES):
            if isinstance(validator, ObjectValidator) or fingerprint(validator) in self._repeated:
                return NamedRef(self._declare(validator, stem, ""))

        if isinstance(validator, ArrayValidator):
            return replace(validator, items=self._lift(validator.items, f"{stem}Item"))
        if isinstance(validator, RecordValidator):
            return replace(validator, values=self._lift(validator.values, f"{stem}Value"))
        if isinstance(validator, ObjectValidator):
            return replace(
                validator,
                fields=tuple(
                    FieldSpec(
                        key=spec.key,
                        validator=self._lift(spec.validator, f"{stem}{to_pascal_case(spec.key) or 'Field'}"),
                        required=spec.required,
                    )
                    for spec in validator.fields
                ),
                extra=None if validator.extra is None else self._lift(validator.extra, f"{stem}Extra"),
            )
        if isinstance(validator, UnionValidator):
            return UnionValidator(tuple(
                self._lift(branch, f"{stem}Option{i}") for i, branch in enumerate(validator.branches, 1)
            ))
        if isinstance(validator, IntersectionValidator):
            return IntersectionValidator(tuple(
                self._lift(branch, f"{stem}Part{i}") for i, branch in enumerate(validator.branches, 1)
            ))
        if isinstance(validator, NullableValidator):
            # A root declaration already holds the stem's name
            return NullableValidator(self._lift(validator.inner, f"{stem}Value" if root else stem))
        return validator


def collect_references(validator: Validator) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return (all referenced names, eagerly referenced names), in first-use order."""
    found: dict[str, bool] = {}

    def visit(node: Validator, eager: bool) -> None:
        if isinstance(node, NamedRef):
            found[node.name] = found.get(node.name, False) or eager
            return
        contained = isinstance(node, (ArrayValidator, RecordValidator, ObjectValidator))
        for child in children(node):
            visit(child, eager and not contained)

    visit(validator, True)
    return tuple(found), tuple(name for name, eager in found.items() if eager)


def build_declarations(
    document: ResolvedDocument,
    translator: SchemaTranslator,
    registry: NameRegistry,
    *,
    include_routes: bool = True,
) -> DeclarationSet:
    return DeclarationBuilder(document, translator, registry).build(include_routes)


__all__ = [
    "DeclarationBuilder",
    "DeclarationEntry",
    "DeclarationSet",
    "NameRegistry",
    "RouteDeclarations",
    "build_declarations",
    "collect_references",
    "route_stem",
    "status_suffix",
]
