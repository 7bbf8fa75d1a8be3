"""
Structured route -> permission table.

The table is owned by the operator, not by modules: a module declares which
routes it serves, and this table decides which capabilities each route needs.
Keys use the same "METHOD /path" strings as the module route declarations,
with paths relative to the module prefix.
"""
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from signflow.core.errors import RouteConflictError


HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


def parse_route(route: str) -> tuple[str, str]:
    """Split "METHOD /path" into a normalized (method, path) pair."""
    method, _, path = route.strip().partition(" ")
    method = method.upper()
    path = path.strip()
    if method not in HTTP_METHODS:
        raise ValueError(f"Unsupported HTTP method in route '{route}'")
    if not path.startswith("/"):
        raise ValueError(f"Route path must start with '/' in '{route}'")
    return method, normalize_path(path)


def normalize_path(path: str) -> str:
    return path.rstrip("/") or "/"


def join_path(prefix: str, path: str) -> str:
    return normalize_path(normalize_path(prefix).rstrip("/") + path)


@dataclass(frozen=True)
class RouteRule:
    method: str
    path: str
    permissions: frozenset[str]


@dataclass
class ModuleRoutes:
    module: str
    prefix: str
    rules: dict[tuple[str, str], RouteRule] = field(default_factory=dict)


class RouteTable:
    """
    Mapping of module name -> URL prefix and per-route permission rules.

    Method/path uniqueness is checked as sections are added.
    """

    def __init__(self):
        self._sections: dict[str, ModuleRoutes] = {}

    def add_module(self, module: str, prefix: str, permissions: Mapping[str, Iterable[str]]) -> "RouteTable":
        if module in self._sections:
            raise RouteConflictError(f"Route table already has a section for module '{module}'")

        section = ModuleRoutes(module=module, prefix=normalize_path(prefix))
        for route, required in permissions.items():
            method, path = parse_route(route)
            if (method, path) in section.rules:
                raise RouteConflictError(f"Duplicate route '{method} {path}' for module '{module}'")
            section.rules[(method, path)] = RouteRule(method, path, frozenset(required))

        self._sections[module] = section
        return self

    def section(self, module: str) -> ModuleRoutes | None:
        return self._sections.get(module)

    def modules(self) -> list[str]:
        return list(self._sections)

    def required_permissions(self, module: str, route: str) -> frozenset[str] | None:
        """
        Permissions required by a module route.

        Returns None when the table has no rule for the route, an empty set
        when the rule explicitly requires nothing.
        """
        section = self._sections.get(module)
        if section is None:
            return None
        rule = section.rules.get(parse_route(route))
        return rule.permissions if rule else None

    @classmethod
    def from_mapping(cls, table: Mapping[str, tuple[str, Mapping[str, Iterable[str]]]]) -> "RouteTable":
        route_table = cls()
        for module, (prefix, permissions) in table.items():
            route_table.add_module(module, prefix, permissions)
        return route_table
