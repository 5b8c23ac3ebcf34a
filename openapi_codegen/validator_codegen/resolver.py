"""
Schema resolver - maps a decoded OpenAPI document onto the SchemaNode graph.

Loosely-typed document fragments stop here: everything downstream works
on immutable SchemaNode values whose `$ref`s are reference nodes carrying
a canonical target id.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Final
from urllib.parse import unquote, urljoin

from ..shared.errors import (
    DuplicateRouteError,
    SchemaError,
    UnresolvedReferenceError,
    UnsupportedSchemaError,
)
from ..shared.schema_loader import RefLoader
from .model import (
    HTTP_METHODS,
    PARAMETER_KINDS,
    ResolvedDocument,
    RouteKey,
    RouteSchemas,
    SchemaKind,
    SchemaNode,
)

logger = logging.getLogger(__name__)

# Keywords whose acceptance semantics have no translation rule
UNSUPPORTED_KEYWORDS: Final[tuple[str, ...]] = (
    "not",
    "if",
    "then",
    "else",
    "patternProperties",
    "prefixItems",
    "contains",
    "propertyNames",
    "dependentSchemas",
    "dependentRequired",
    "dependencies",
    "unevaluatedProperties",
    "unevaluatedItems",
)

COMBINATORS: Final[tuple[tuple[str, SchemaKind], ...]] = (
    ("allOf", SchemaKind.ALL_OF),
    ("anyOf", SchemaKind.ANY_OF),
    ("oneOf", SchemaKind.ONE_OF),
)

_OBJECT_HINTS: Final[frozenset[str]] = frozenset({
    "properties", "additionalProperties", "required", "minProperties", "maxProperties",
})
_ARRAY_HINTS: Final[frozenset[str]] = frozenset({"items", "minItems", "maxItems", "uniqueItems"})
_STRING_HINTS: Final[frozenset[str]] = frozenset({"minLength", "maxLength", "pattern", "format"})
_NUMBER_HINTS: Final[frozenset[str]] = frozenset({
    "minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum", "multipleOf",
})
_TYPED_HINTS: Final[frozenset[str]] = _OBJECT_HINTS | _ARRAY_HINTS | _STRING_HINTS | _NUMBER_HINTS

# Every JSON type with the keywords that only constrain values of that type
_JSON_TYPES: Final[tuple[tuple[str, frozenset[str]], ...]] = (
    ("string", _STRING_HINTS),
    ("number", _NUMBER_HINTS),
    ("boolean", frozenset()),
    ("null", frozenset()),
    ("array", _ARRAY_HINTS),
    ("object", _OBJECT_HINTS),
)

_PRIMITIVE_KINDS: Final[dict[str, SchemaKind]] = {
    "string": SchemaKind.STRING,
    "number": SchemaKind.NUMBER,
    "integer": SchemaKind.INTEGER,
    "boolean": SchemaKind.BOOLEAN,
    "null": SchemaKind.NULL,
    "array": SchemaKind.ARRAY,
    "object": SchemaKind.OBJECT,
}

JSON_MEDIA_TYPE: Final[str] = "application/json"


def escape_pointer(token: str) -> str:
    """Escape one JSON pointer reference token."""
    return token.replace("~", "~0").replace("/", "~1")


def unescape_pointer(token: str) -> str:
    """Unescape one JSON pointer reference token."""
    return unquote(token).replace("~1", "/").replace("~0", "~")


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _has_type(value: Any, type_name: str) -> bool:
    """Whether a scalar enum value is an instance of a JSON type."""
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "number":
        return _is_number(value)
    if type_name == "integer":
        return _is_number(value) and float(value).is_integer()
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "null":
        return value is None
    return False


def _route_template(path: str) -> str:
    return re.sub(r"\{[^}/]*\}", "{}", path)


class SchemaResolver:
    """Resolves one document into a ResolvedDocument.

    A resolver instance owns the state of exactly one resolution run.
    """

    def __init__(
        self,
        document: dict[str, Any],
        *,
        base_uri: str = "",
        ref_loader: RefLoader | None = None,
    ) -> None:
        if not isinstance(document, dict):
            raise SchemaError("Document root must be a mapping")
        self._base_uri = base_uri
        self._documents: dict[str, dict[str, Any]] = {base_uri: document}
        self._ref_loader = ref_loader
        self._definitions: dict[str, SchemaNode] = {}
        self._order: list[str] = []
        self._names: dict[str, str] = {}
        self._stack: list[str] = []
        self._cyclic: set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self) -> ResolvedDocument:
        document = self._documents[self._base_uri]
        components = document.get("components") or {}
        schemas = (components.get("schemas") or {}) if isinstance(components, dict) else {}
        if not isinstance(schemas, dict):
            raise SchemaError("components.schemas must be a mapping", "#/components/schemas")

        # Component order is document order, whatever order references are met in
        targets = [f"#/components/schemas/{escape_pointer(str(name))}" for name in schemas]
        for name, target in zip(schemas, targets):
            self._order.append(target)
            self._names[target] = str(name)
        for target in targets:
            self._define(target, self._base_uri)

        routes = self._collect_routes(document)
        logger.debug(
            "Resolved %d definitions, %d routes, %d cyclic targets",
            len(self._order), len(routes), len(self._cyclic),
        )
        return ResolvedDocument(
            definitions={target: self._definitions[target] for target in self._order},
            names=dict(self._names),
            routes=tuple(routes),
            cyclic=frozenset(self._cyclic),
        )

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _document(self, uri: str, ref: str, referrer: str) -> dict[str, Any]:
        if uri in self._documents:
            return self._documents[uri]
        if self._ref_loader is None:
            raise UnresolvedReferenceError(ref, referrer)
        try:
            data = self._ref_loader(uri)
        except SchemaError as e:
            raise UnresolvedReferenceError(ref, referrer) from e
        self._documents[uri] = data
        return data

    def _locate(self, ref: str, doc_uri: str, referrer: str) -> tuple[str, str, str]:
        """Split a `$ref` into (target id, document uri, fragment)."""
        document_part, _, fragment = ref.partition("#")
        if document_part:
            uri = urljoin(doc_uri, document_part) if doc_uri else document_part
        else:
            uri = doc_uri
        if fragment and not fragment.startswith("/"):
            raise UnresolvedReferenceError(ref, referrer)
        target = f"{uri}#{fragment}" if uri != self._base_uri else f"#{fragment}"
        return target, uri, fragment

    def _lookup(self, ref: str, uri: str, fragment: str, referrer: str) -> Any:
        node: Any = self._document(uri, ref, referrer)
        if not fragment:
            return node
        for token in fragment.lstrip("/").split("/"):
            key = unescape_pointer(token)
            if isinstance(node, dict) and key in node:
                node = node[key]
            elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
                node = node[int(key)]
            else:
                raise UnresolvedReferenceError(ref, referrer)
        return node

    def _define(self, target: str, doc_uri: str, ref: str | None = None, referrer: str = "") -> None:
        if target in self._definitions:
            return
        if target in self._stack:
            # Re-entered while resolving our own descendants
            start = self._stack.index(target)
            self._cyclic.update(self._stack[start:])
            return

        _, uri, fragment = self._locate(target, doc_uri, referrer)
        raw = self._lookup(ref or target, uri, fragment, referrer)
        if target not in self._names:
            self._order.append(target)
            last = fragment.rsplit("/", 1)[-1] if fragment else uri.rsplit("/", 1)[-1]
            self._names[target] = unescape_pointer(last) or "Schema"

        self._stack.append(target)
        try:
            node = self._node(raw, uri, target)
        finally:
            self._stack.pop()
        self._definitions[target] = node

    def _reference(self, raw: dict[str, Any], doc_uri: str, pointer: str) -> SchemaNode:
        ref = raw["$ref"]
        if not isinstance(ref, str):
            raise UnsupportedSchemaError("$ref", pointer, "reference must be a string")
        target, uri, _ = self._locate(ref, doc_uri, pointer)
        self._define(target, uri, ref, pointer)
        return SchemaNode(
            kind=SchemaKind.REFERENCE,
            pointer=pointer,
            nullable=raw.get("nullable") is True,
            target=target,
        )

    def _deref(self, raw: Any, doc_uri: str, pointer: str) -> tuple[Any, str, str]:
        """Follow non-schema `$ref`s (parameters, bodies, responses, path items)."""
        seen: set[str] = set()
        while isinstance(raw, dict) and isinstance(raw.get("$ref"), str):
            ref = raw["$ref"]
            target, uri, fragment = self._locate(ref, doc_uri, pointer)
            if target in seen:
                raise SchemaError(f"Reference loop through '{ref}'", pointer)
            seen.add(target)
            raw = self._lookup(ref, uri, fragment, pointer)
            doc_uri, pointer = uri, target
        return raw, doc_uri, pointer

    # ------------------------------------------------------------------
    # Schema nodes
    # ------------------------------------------------------------------

    def _node(self, raw: Any, doc_uri: str, pointer: str) -> SchemaNode:
        if raw is True or raw == {}:
            return SchemaNode(kind=SchemaKind.ANY, pointer=pointer)
        if not isinstance(raw, dict):
            raise UnsupportedSchemaError("schema", pointer, f"expected a mapping, found {type(raw).__name__}")
        if "$ref" in raw:
            return self._reference(raw, doc_uri, pointer)
        for keyword in UNSUPPORTED_KEYWORDS:
            if keyword in raw:
                raise UnsupportedSchemaError(keyword, pointer)

        nullable = raw.get("nullable") is True
        raw_type = raw.get("type")
        if isinstance(raw_type, list):
            types = [t for t in raw_type if t != "null"]
            nullable = nullable or len(types) != len(raw_type)
        elif raw_type is None:
            types = []
        else:
            types = [raw_type]

        only_null = raw_type is not None and not types
        parts: list[SchemaNode] = []
        if not only_null and self._has_base(raw, types):
            parts.append(self._base(raw, types, doc_uri, pointer))
        for keyword, kind in COMBINATORS:
            if keyword not in raw:
                continue
            members = raw[keyword]
            if not isinstance(members, list) or not members:
                raise UnsupportedSchemaError(keyword, pointer, "expected a non-empty list")
            branches = tuple(
                self._node(member, doc_uri, f"{pointer}/{keyword}/{i}")
                for i, member in enumerate(members)
            )
            parts.append(SchemaNode(kind=kind, pointer=f"{pointer}/{keyword}", branches=branches))

        if not parts:
            if only_null:
                return SchemaNode(kind=SchemaKind.NULL, pointer=pointer)
            node = SchemaNode(kind=SchemaKind.ANY, pointer=pointer)
        elif len(parts) == 1:
            node = parts[0]
        else:
            node = SchemaNode(kind=SchemaKind.ALL_OF, pointer=pointer, branches=tuple(parts))
        if nullable and node.kind is not SchemaKind.ANY:
            node = _with_nullable(node)
        return node

    @staticmethod
    def _has_base(raw: dict[str, Any], types: list[Any]) -> bool:
        return bool(types) or "enum" in raw or "const" in raw or bool(_TYPED_HINTS & raw.keys())

    def _base(self, raw: dict[str, Any], types: list[Any], doc_uri: str, pointer: str) -> SchemaNode:
        if "enum" in raw or "const" in raw:
            values = self._enum(raw, pointer)
            if not _TYPED_HINTS & raw.keys():
                return values
            # Constraints still apply to the listed values
            shape = self._shape(raw, types, doc_uri, pointer)
            return SchemaNode(kind=SchemaKind.ALL_OF, pointer=pointer, branches=(values, shape))
        return self._shape(raw, types, doc_uri, pointer)

    def _shape(self, raw: dict[str, Any], types: list[Any], doc_uri: str, pointer: str) -> SchemaNode:
        if not types:
            return self._untyped(raw, doc_uri, pointer)
        if len(types) > 1:
            branches = tuple(self._typed(raw, t, doc_uri, pointer) for t in types)
            return SchemaNode(kind=SchemaKind.ANY_OF, pointer=pointer, branches=branches)
        return self._typed(raw, types[0], doc_uri, pointer)

    def _untyped(self, raw: dict[str, Any], doc_uri: str, pointer: str) -> SchemaNode:
        """Constraints without a `type` restrict only values of the type they apply to.

        Object and array keywords on their own keep the OpenAPI reading of
        an implicit object or array.
        """
        if not (_STRING_HINTS | _NUMBER_HINTS) & raw.keys():
            implied = "array" if _ARRAY_HINTS & raw.keys() else "object"
            return self._typed(raw, implied, doc_uri, pointer)
        branches = tuple(
            self._typed(raw, type_name, doc_uri, pointer)
            if hints & raw.keys()
            else SchemaNode(kind=_PRIMITIVE_KINDS[type_name], pointer=pointer)
            for type_name, hints in _JSON_TYPES
        )
        return SchemaNode(kind=SchemaKind.ANY_OF, pointer=pointer, branches=branches)

    def _enum(self, raw: dict[str, Any], pointer: str) -> SchemaNode:
        if "const" in raw:
            keyword = "const"
            values = [raw["const"]]
            kind = SchemaKind.LITERAL
        else:
            keyword = "enum"
            values = raw["enum"]
            kind = SchemaKind.ENUM
            if not isinstance(values, list) or not values:
                raise UnsupportedSchemaError("enum", pointer, "expected a non-empty list")
        for value in values:
            if not _is_scalar(value):
                raise UnsupportedSchemaError("enum", pointer, f"non-scalar value {value!r}")

        declared = raw.get("type")
        if declared is not None:
            declared = declared if isinstance(declared, list) else [declared]
            for type_name in declared:
                if type_name not in _PRIMITIVE_KINDS:
                    raise UnsupportedSchemaError("type", pointer, f"unknown type {type_name!r}")
            values = [v for v in values if any(_has_type(v, t) for t in declared)]
            if not values:
                raise UnsupportedSchemaError(keyword, pointer, "no value matches the declared type")
        # Drop duplicates, keep document order
        unique = tuple(dict.fromkeys((type(v), v) for v in values))
        return SchemaNode(kind=kind, pointer=pointer, values=tuple(v for _, v in unique))

    def _typed(self, raw: dict[str, Any], type_name: Any, doc_uri: str, pointer: str) -> SchemaNode:
        kind = _PRIMITIVE_KINDS.get(type_name) if isinstance(type_name, str) else None
        if kind is None:
            raise UnsupportedSchemaError("type", pointer, f"unknown type {type_name!r}")

        if kind is SchemaKind.STRING:
            return SchemaNode(kind=kind, pointer=pointer, constraints=_pick(raw, {
                "format": "format",
                "minLength": "min_length",
                "maxLength": "max_length",
                "pattern": "pattern",
            }))
        if kind in (SchemaKind.NUMBER, SchemaKind.INTEGER):
            return SchemaNode(kind=kind, pointer=pointer, constraints=_numeric_constraints(raw, pointer))
        if kind is SchemaKind.ARRAY:
            items = raw.get("items")
            if isinstance(items, list):
                raise UnsupportedSchemaError("items", pointer, "tuple validation is not supported")
            return SchemaNode(
                kind=kind,
                pointer=pointer,
                items=None if items is None else self._node(items, doc_uri, f"{pointer}/items"),
                constraints=_pick(raw, {
                    "minItems": "min_items",
                    "maxItems": "max_items",
                    "uniqueItems": "unique_items",
                }),
            )
        if kind is SchemaKind.OBJECT:
            return self._object(raw, doc_uri, pointer)
        return SchemaNode(kind=kind, pointer=pointer)

    def _object(self, raw: dict[str, Any], doc_uri: str, pointer: str) -> SchemaNode:
        properties = raw.get("properties") or {}
        if not isinstance(properties, dict):
            raise UnsupportedSchemaError("properties", pointer, "expected a mapping")
        required = raw.get("required") or []
        if not isinstance(required, list):
            raise UnsupportedSchemaError("required", pointer, "expected a list")

        props = [
            (str(name), self._node(schema, doc_uri, f"{pointer}/properties/{escape_pointer(str(name))}"))
            for name, schema in properties.items()
        ]
        # A required key without a declared schema may hold any value
        declared = {name for name, _ in props}
        for name in required:
            if str(name) not in declared:
                props.append((str(name), SchemaNode(kind=SchemaKind.ANY, pointer=f"{pointer}/required")))
                declared.add(str(name))

        additional_raw = raw.get("additionalProperties")
        additional: bool | SchemaNode | None
        if additional_raw is None or isinstance(additional_raw, bool):
            additional = additional_raw
        elif additional_raw == {}:
            additional = True
        else:
            additional = self._node(additional_raw, doc_uri, f"{pointer}/additionalProperties")

        return SchemaNode(
            kind=SchemaKind.OBJECT,
            pointer=pointer,
            properties=tuple(props),
            required=frozenset(str(name) for name in required),
            additional=additional,
            constraints=_pick(raw, {
                "minProperties": "min_properties",
                "maxProperties": "max_properties",
            }),
        )

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _collect_routes(self, document: dict[str, Any]) -> list[RouteSchemas]:
        paths = document.get("paths") or {}
        if not isinstance(paths, dict):
            raise SchemaError("paths must be a mapping", "#/paths")

        routes: list[RouteSchemas] = []
        templates: dict[tuple[str, str], str] = {}
        for path, raw_item in paths.items():
            path = str(path)
            item_pointer = f"#/paths/{escape_pointer(path)}"
            item, doc_uri, item_pointer = self._deref(raw_item, self._base_uri, item_pointer)
            if not isinstance(item, dict):
                continue
            shared_params = self._parameters(item.get("parameters"), doc_uri, item_pointer)

            for method in HTTP_METHODS:
                operation = item.get(method)
                if not isinstance(operation, dict):
                    continue
                key = RouteKey(path=path, method=method.upper())
                template = (_route_template(path), key.method)
                if template in templates:
                    raise DuplicateRouteError(key.method, path, templates[template])
                templates[template] = path

                op_pointer = f"{item_pointer}/{method}"
                params = dict(shared_params)
                params.update(self._parameters(operation.get("parameters"), doc_uri, op_pointer))
                routes.append(RouteSchemas(
                    key=key,
                    pointer=op_pointer,
                    request=tuple(self._request(params, operation, doc_uri, op_pointer)),
                    responses=tuple(self._responses(operation, doc_uri, op_pointer)),
                ))
        return routes

    def _parameters(
        self, raw: Any, doc_uri: str, pointer: str
    ) -> dict[tuple[str, str], tuple[dict[str, Any], str, str]]:
        if raw is None:
            return {}
        if not isinstance(raw, list):
            raise SchemaError("parameters must be a list", f"{pointer}/parameters")
        result: dict[tuple[str, str], tuple[dict[str, Any], str, str]] = {}
        for i, entry in enumerate(raw):
            param, uri, param_pointer = self._deref(entry, doc_uri, f"{pointer}/parameters/{i}")
            if not isinstance(param, dict) or "name" not in param:
                raise SchemaError("parameter must be a mapping with a name", param_pointer)
            result[(str(param["name"]), str(param.get("in", "query")))] = (param, uri, param_pointer)
        return result

    def _request(
        self,
        params: dict[tuple[str, str], tuple[dict[str, Any], str, str]],
        operation: dict[str, Any],
        doc_uri: str,
        pointer: str,
    ) -> list[tuple[str, SchemaNode]]:
        request: list[tuple[str, SchemaNode]] = []
        for location, kind in PARAMETER_KINDS.items():
            props: list[tuple[str, SchemaNode]] = []
            required: set[str] = set()
            for (name, where), (param, uri, param_pointer) in params.items():
                if where != location:
                    continue
                schema, schema_pointer = param.get("schema"), f"{param_pointer}/schema"
                if schema is None and isinstance(param.get("content"), dict):
                    schema, schema_pointer = self._media_schema(param["content"], f"{param_pointer}/content")
                props.append((name, self._node({} if schema is None else schema, uri, schema_pointer)))
                if location == "path" or param.get("required") is True:
                    required.add(name)
            if props:
                request.append((kind, SchemaNode(
                    kind=SchemaKind.OBJECT,
                    pointer=f"{pointer}/parameters",
                    properties=tuple(props),
                    required=frozenset(required),
                )))

        if "requestBody" in operation:
            body, uri, body_pointer = self._deref(operation["requestBody"], doc_uri, f"{pointer}/requestBody")
            content = body.get("content") if isinstance(body, dict) else None
            if isinstance(content, dict):
                schema, schema_pointer = self._media_schema(content, f"{body_pointer}/content")
                if schema is not None:
                    request.append(("body", self._node(schema, uri, schema_pointer)))
        return request

    def _responses(self, operation: dict[str, Any], doc_uri: str, pointer: str) -> list[tuple[str, SchemaNode]]:
        responses = operation.get("responses") or {}
        if not isinstance(responses, dict):
            raise SchemaError("responses must be a mapping", f"{pointer}/responses")
        result: list[tuple[str, SchemaNode]] = []
        for status, raw in responses.items():
            status_pointer = f"{pointer}/responses/{escape_pointer(str(status))}"
            response, uri, status_pointer = self._deref(raw, doc_uri, status_pointer)
            content = response.get("content") if isinstance(response, dict) else None
            schema, schema_pointer = (None, status_pointer)
            if isinstance(content, dict):
                schema, schema_pointer = self._media_schema(content, f"{status_pointer}/content")
            if schema is None:
                node = SchemaNode(kind=SchemaKind.NULL, pointer=status_pointer)
            else:
                node = self._node(schema, uri, schema_pointer)
            result.append((str(status), node))
        return result

    @staticmethod
    def _media_schema(content: dict[str, Any], pointer: str) -> tuple[Any, str]:
        """Pick the schema of the preferred media type."""
        candidates = [JSON_MEDIA_TYPE]
        candidates.extend(m for m in content if isinstance(m, str) and m.endswith("+json"))
        candidates.extend(content)
        for media_type in candidates:
            media = content.get(media_type)
            if isinstance(media, dict) and "schema" in media:
                return media["schema"], f"{pointer}/{escape_pointer(str(media_type))}/schema"
        return None, pointer


def _pick(raw: dict[str, Any], keys: dict[str, str]) -> tuple[tuple[str, Any], ...]:
    picked = [(name, raw[key]) for key, name in keys.items() if key in raw and raw[key] is not None]
    return tuple(sorted(picked, key=lambda pair: pair[0]))


def _numeric_constraints(raw: dict[str, Any], pointer: str) -> tuple[tuple[str, Any], ...]:
    constraints: dict[str, Any] = {}
    for key in ("minimum", "maximum", "multipleOf"):
        value = raw.get(key)
        if value is None:
            continue
        if not _is_number(value):
            raise UnsupportedSchemaError(key, pointer, f"expected a number, found {value!r}")
        constraints[{"multipleOf": "multiple_of"}.get(key, key)] = value

    # OpenAPI 3.0 uses boolean flags, 3.1 uses numeric bounds
    for key, bound, name in (
        ("exclusiveMinimum", "minimum", "exclusive_minimum"),
        ("exclusiveMaximum", "maximum", "exclusive_maximum"),
    ):
        value = raw.get(key)
        if value is None or value is False:
            continue
        if value is True:
            if bound in constraints:
                constraints[name] = constraints.pop(bound)
            continue
        if not _is_number(value):
            raise UnsupportedSchemaError(key, pointer, f"expected a number or boolean, found {value!r}")
        constraints[name] = value
    return tuple(sorted(constraints.items()))


def _with_nullable(node: SchemaNode) -> SchemaNode:
    return replace(node, nullable=True)


def resolve_document(
    document: dict[str, Any],
    *,
    base_uri: str = "",
    ref_loader: RefLoader | None = None,
) -> ResolvedDocument:
    """Resolve every route and referenced schema of `document`."""
    return SchemaResolver(document, base_uri=base_uri, ref_loader=ref_loader).resolve()
