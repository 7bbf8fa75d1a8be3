import pytest

from signflow.core.errors import RouteConflictError
from signflow.core.route_permissions import ROUTE_PERMISSIONS, default_route_table
from signflow.core.routing import RouteTable, join_path, parse_route


def test_parse_route_normalizes_method_and_path():
    assert parse_route("get /documents/") == ("GET", "/documents")
    assert parse_route("POST /") == ("POST", "/")


@pytest.mark.parametrize("route", ["FETCH /documents", "GET documents", "GET"])
def test_parse_route_rejects_malformed_routes(route):
    with pytest.raises(ValueError):
        parse_route(route)


def test_join_path():
    assert join_path("/api/v1/templates", "/") == "/api/v1/templates"
    assert join_path("/api/v1/templates", "/{template_id}") == "/api/v1/templates/{template_id}"
    assert join_path("/api/v1/", "/health") == "/api/v1/health"


def test_required_permissions_distinguishes_missing_from_empty():
    table = RouteTable().add_module("auth", "/auth", {"POST /login": []})

    assert table.required_permissions("auth", "POST /login") == frozenset()
    assert table.required_permissions("auth", "GET /me") is None
    assert table.required_permissions("unknown", "GET /") is None


def test_duplicate_route_in_a_section_is_rejected():
    with pytest.raises(RouteConflictError):
        RouteTable().add_module("documents", "/documents", {
            "GET /": ["documents:read"],
            "get /": ["documents:update"],
        })


def test_duplicate_section_is_rejected():
    table = RouteTable().add_module("documents", "/documents", {})
    with pytest.raises(RouteConflictError):
        table.add_module("documents", "/docs", {})


def test_default_table_covers_every_module():
    table = default_route_table()

    assert set(table.modules()) == set(ROUTE_PERMISSIONS)
    assert table.required_permissions("documents", "POST /") == frozenset({"documents:create"})
    assert table.required_permissions("templates", "GET /{template_id}") == frozenset({"templates:read"})
