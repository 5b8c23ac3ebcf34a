"""
Validator Code Generator - Generates pydantic validators from OpenAPI specs.

The generated module contains one declaration per named schema, in
dependency order, followed by ``Request`` and ``Response`` lookup tables
indexed by path, method and parameter kind or status code.
"""

from __future__ import annotations

import argparse
import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any

from ..shared.errors import SchemaError
from ..shared.schema_loader import (
    DocumentCache,
    RefLoader,
    base_uri as document_uri,
    load_source,
    make_ref_loader,
)
from .config import FormatRegistry, GeneratorConfig
from .declarations import NameRegistry, build_declarations
from .ordering import order_declarations
from .renderer import IMPORTABLE, GeneratorContext, render_module
from .resolver import resolve_document
from .routes import build_route_lookup
from .translator import SchemaTranslator

logger = logging.getLogger(__name__)

LOOKUP_NAMES = ("Request", "Response")


@lru_cache(maxsize=1)
def _context() -> GeneratorContext:
    return GeneratorContext()


def load_spec(source: str | Path, cache: DocumentCache | None = None) -> dict[str, Any]:
    """Load an OpenAPI document from a path or URL."""
    return load_source(str(source), cache)


def reserved_names(config: GeneratorConfig) -> set[str]:
    """Module level names generated declarations must not take."""
    return {*IMPORTABLE, *LOOKUP_NAMES, *config.formats.validators()}


def generate_validators(
    document: dict[str, Any],
    config: GeneratorConfig | None = None,
    *,
    base_uri: str = "",
    ref_loader: RefLoader | None = None,
) -> str:
    """Generate the validator module source for `document`.

    Raises:
        SchemaError: On the first resolution, translation or ordering error.
            No partial output is produced.
    """
    config = config or GeneratorConfig()
    resolved = resolve_document(document, base_uri=base_uri, ref_loader=ref_loader)
    translator = SchemaTranslator(resolved, config.formats)
    registry = NameRegistry(config.name_prefix, reserved=reserved_names(config))
    declarations = build_declarations(
        resolved, translator, registry, include_routes=config.include_routes
    )
    components = order_declarations(declarations)
    lookup = build_route_lookup(declarations) if config.include_routes else None
    source = render_module(_context(), components, lookup, config)
    logger.debug("Generated %d declarations", len(declarations))
    return source


def generate_from_source(source: str | Path, config: GeneratorConfig | None = None) -> str:
    """Load a document from a path or URL and generate its validators.

    External references are resolved relative to the document.
    """
    cache = DocumentCache()
    source = str(source)
    document = load_spec(source, cache)
    return generate_validators(
        document,
        config,
        base_uri=document_uri(source),
        ref_loader=make_ref_loader(source, cache),
    )


def _parse_formats(values: list[str], parser: argparse.ArgumentParser) -> FormatRegistry:
    registry = FormatRegistry()
    for value in values:
        format_name, sep, validator = value.partition("=")
        if not sep or not format_name or not validator.isidentifier():
            parser.error(f"--format expects FORMAT=NAME, got {value!r}")
        registry.register(validator, [format_name])
    return registry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--spec", default="schemas/api/openapi.yaml", help="Path or URL of the OpenAPI specification (JSON or YAML)")
    parser.add_argument("--output", default=Path("generated/validators.py"), type=Path, help="Output path for the generated module")
    parser.add_argument("--name-prefix", default="", help="Prefix applied to every generated identifier")
    parser.add_argument("--no-routes", action="store_true", help="Skip route declarations and the Request/Response tables")
    parser.add_argument("--import", dest="imports", action="append", default=[], metavar="LINE", help="Extra import line for the generated module (repeatable)")
    parser.add_argument("--format", dest="formats", action="append", default=[], metavar="FORMAT=NAME", help="Validate a string format with a custom validator (repeatable)")
    parser.add_argument("--check", action="store_true", help="Exit with status 1 if the output file is not up to date")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = GeneratorConfig(
            include_routes=not args.no_routes,
            name_prefix=args.name_prefix,
            extra_imports=tuple(args.imports),
            formats=_parse_formats(args.formats, parser),
        )
        code = generate_from_source(args.spec, config)
    except (SchemaError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.check:
        current = args.output.read_text(encoding="utf-8") if args.output.exists() else None
        if current != code:
            print(f"Validators are out of date -> {args.output}", file=sys.stderr)
            return 1
        print(f"Validators are up to date -> {args.output}")
        return 0

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(code, encoding="utf-8")
    print(f"Generated validators -> {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
