"""Normalized schema graph produced by the resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

# HTTP methods supported in OpenAPI, in emission order
HTTP_METHODS: Final[tuple[str, ...]] = (
    "get", "post", "put", "patch", "delete", "head", "options", "trace",
)

# Parameter location -> request lookup kind
PARAMETER_KINDS: Final[dict[str, str]] = {
    "path": "params",
    "query": "query",
    "header": "headers",
}

REQUEST_KINDS: Final[tuple[str, ...]] = ("params", "query", "headers", "body")


class SchemaKind(str, Enum):
    """Kinds of normalized schema nodes."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    NULL = "null"
    ARRAY = "array"
    OBJECT = "object"
    ANY_OF = "union-anyOf"
    ONE_OF = "union-oneOf"
    ALL_OF = "intersection-allOf"
    ENUM = "enum"
    LITERAL = "literal"
    REFERENCE = "reference"
    ANY = "any"


@dataclass(frozen=True, slots=True)
class SchemaNode:
    """One normalized OpenAPI/JSON-Schema unit.

    Only the attributes relevant to ``kind`` are populated:

    - ``constraints``: sorted ``(name, value)`` pairs (format, pattern, bounds)
    - ``items``: element schema of an array, ``None`` for unconstrained
    - ``properties``/``required``/``additional``: object shape; ``additional``
      is ``None`` when ``additionalProperties`` is absent
    - ``branches``: union and intersection members, in document order
    - ``values``: enum or literal values, in document order
    - ``target``: canonical target id of a reference
    """

    kind: SchemaKind
    pointer: str = field(default="", compare=False)
    nullable: bool = False
    constraints: tuple[tuple[str, Any], ...] = ()
    items: SchemaNode | None = None
    properties: tuple[tuple[str, SchemaNode], ...] = ()
    required: frozenset[str] = frozenset()
    additional: bool | SchemaNode | None = None
    branches: tuple[SchemaNode, ...] = ()
    values: tuple[Any, ...] = ()
    target: str | None = None

    def constraint(self, name: str, default: Any = None) -> Any:
        for key, value in self.constraints:
            if key == name:
                return value
        return default


@dataclass(frozen=True, slots=True)
class RouteKey:
    """Unique identifier of a route."""

    path: str
    method: str


@dataclass(frozen=True, slots=True)
class RouteSchemas:
    """Resolved request and response schemas of one route.

    ``request`` maps a request kind (``params``, ``query``, ``headers``,
    ``body``) and ``responses`` maps a status code string to its schema;
    both keep document order.
    """

    key: RouteKey
    pointer: str
    request: tuple[tuple[str, SchemaNode], ...] = ()
    responses: tuple[tuple[str, SchemaNode], ...] = ()


@dataclass(frozen=True)
class ResolvedDocument:
    """Reference-annotated schema graph of a whole document.

    ``definitions`` holds every reference target in document order, keyed
    by canonical target id; ``names`` gives each target its document name.
    """

    definitions: dict[str, SchemaNode]
    names: dict[str, str]
    routes: tuple[RouteSchemas, ...]
    cyclic: frozenset[str] = frozenset()
