"""
Dependency ordering of declarations.

Declarations are grouped into strongly connected components (Tarjan) and
emitted dependency-first. Members of a multi-member component, or of a
component with a self-reference, are marked cyclic and rendered with
deferred resolution.
"""

from __future__ import annotations

import logging

from ..shared.errors import UnbreakableCycleError
from .declarations import DeclarationEntry, DeclarationSet

logger = logging.getLogger(__name__)


def strongly_connected(declarations: DeclarationSet) -> list[list[DeclarationEntry]]:
    """Return the components of the dependency graph, dependencies first.

    Components and their members keep declaration order where the graph
    allows it, so the result is stable for a given document.
    """
    position = {entry.name: i for i, entry in enumerate(declarations.entries)}
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[list[DeclarationEntry]] = []

    def visit(name: str) -> None:
        index[name] = lowlink[name] = len(index)
        stack.append(name)
        on_stack.add(name)
        for dependency in declarations.get(name).dependencies:
            if dependency not in declarations:
                continue
            if dependency not in index:
                visit(dependency)
                lowlink[name] = min(lowlink[name], lowlink[dependency])
            elif dependency in on_stack:
                lowlink[name] = min(lowlink[name], index[dependency])
        if lowlink[name] != index[name]:
            return
        members: list[str] = []
        while True:
            member = stack.pop()
            on_stack.discard(member)
            members.append(member)
            if member == name:
                break
        members.sort(key=position.__getitem__)
        components.append([declarations.get(member) for member in members])

    for entry in declarations.entries:
        if entry.name not in index:
            visit(entry.name)
    return components


def _eager_cycle(component: list[DeclarationEntry]) -> list[str] | None:
    """Find a cycle made only of eager references inside one component."""
    members = {entry.name: entry for entry in component}
    visiting: list[str] = []
    done: set[str] = set()

    def visit(name: str) -> list[str] | None:
        if name in visiting:
            return [*visiting[visiting.index(name):], name]
        if name in done:
            return None
        visiting.append(name)
        for dependency in members[name].eager_dependencies:
            if dependency in members:
                cycle = visit(dependency)
                if cycle is not None:
                    return cycle
        visiting.pop()
        done.add(name)
        return None

    for entry in component:
        cycle = visit(entry.name)
        if cycle is not None:
            return cycle
    return None


def order_declarations(declarations: DeclarationSet) -> list[list[DeclarationEntry]]:
    """Order declarations for emission and mark cyclic ones.

    Raises:
        UnbreakableCycleError: If a cycle passes through no model field,
            array item or record value.
    """
    components = strongly_connected(declarations)
    for component in components:
        head = component[0]
        cyclic = len(component) > 1 or head.name in head.dependencies
        if not cyclic:
            continue
        cycle = _eager_cycle(component)
        if cycle is not None:
            raise UnbreakableCycleError(cycle, head.pointer or None)
        for entry in component:
            entry.is_cyclic = True
        logger.debug("Cyclic group: %s", ", ".join(entry.name for entry in component))
    return components
