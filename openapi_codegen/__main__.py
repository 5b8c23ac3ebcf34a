#!/usr/bin/env python3
"""
Unified CLI for the OpenAPI validator generator.

Usage:
    python -m openapi_codegen <command> [options]

Commands:
    generate    Generate the validator module from an OpenAPI document
    check       Verify the generated validator module is up to date

Examples:
    python -m openapi_codegen generate --spec api/openapi.yaml --output app/validators.py
    python -m openapi_codegen check --spec api/openapi.yaml --output app/validators.py
    python -m openapi_codegen generate --format phone=PhoneNumber --import "from app.types import PhoneNumber"
"""

from __future__ import annotations

import sys


def cmd_generate(args: list[str]) -> int:
    """Generate validators."""
    from openapi_codegen.validator_codegen import main as generator
    try:
        return generator.main(args)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1


def cmd_check(args: list[str]) -> int:
    """Check generated validators are up to date."""
    return cmd_generate([*args, "--check"] if "--check" not in args else args)


COMMANDS = {
    "generate": (cmd_generate, "Generate the validator module from an OpenAPI document"),
    "check": (cmd_check, "Verify the generated validator module is up to date"),
}


def main() -> int:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(__doc__)
        print("Available commands:")
        for name, (_, desc) in COMMANDS.items():
            print(f"  {name:12} {desc}")
        print("\nUse '<command> --help' for command-specific options.")
        return 0

    command = sys.argv[1]
    args = sys.argv[2:]

    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        print(f"Available commands: {', '.join(COMMANDS.keys())}")
        return 1

    handler, _ = COMMANDS[command]
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
