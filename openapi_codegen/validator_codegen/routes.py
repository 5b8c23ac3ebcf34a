"""Route lookup builder - groups route declarations into Request/Response tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .declarations import DeclarationSet
from .model import REQUEST_KINDS, RouteKey


@dataclass(frozen=True, slots=True)
class RequestEntry:
    """Declaration names of one route's parameter kinds, absent kinds omitted."""

    key: RouteKey
    kinds: tuple[tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class ResponseEntry:
    """Declaration names of one route's responses, by status code string."""

    key: RouteKey
    statuses: tuple[tuple[str, str], ...]


# path -> [(METHOD, ((kind or status, declaration name), ...)), ...]
LookupTable = list[tuple[str, list[tuple[str, tuple[tuple[str, str], ...]]]]]


@dataclass(frozen=True)
class RouteLookup:
    """Both lookup tables, indexed path -> METHOD -> kind or status."""

    request: tuple[RequestEntry, ...]
    response: tuple[ResponseEntry, ...]

    @staticmethod
    def _table(entries: Iterable[RequestEntry | ResponseEntry]) -> LookupTable:
        by_path: dict[str, list[tuple[str, tuple[tuple[str, str], ...]]]] = {}
        for entry in entries:
            pairs = entry.kinds if isinstance(entry, RequestEntry) else entry.statuses
            by_path.setdefault(entry.key.path, []).append((entry.key.method.upper(), pairs))
        return list(by_path.items())

    @property
    def request_table(self) -> LookupTable:
        return self._table(self.request)

    @property
    def response_table(self) -> LookupTable:
        return self._table(self.response)


def build_route_lookup(declarations: DeclarationSet) -> RouteLookup:
    """Build the lookup tables from the same declarations the renderer emits.

    Every route gets an entry in both tables, even when it declares no
    parameters or responses.
    """
    request: list[RequestEntry] = []
    response: list[ResponseEntry] = []
    for route in declarations.routes:
        for _, name in (*route.request, *route.responses):
            if name not in declarations:
                raise KeyError(f"Route {route.key.method.upper()} {route.key.path} references unknown declaration '{name}'")
        kinds = dict(route.request)
        request.append(RequestEntry(
            key=route.key,
            kinds=tuple((kind, kinds[kind]) for kind in REQUEST_KINDS if kind in kinds),
        ))
        response.append(ResponseEntry(key=route.key, statuses=route.responses))
    return RouteLookup(request=tuple(request), response=tuple(response))
