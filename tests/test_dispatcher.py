import asyncio

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from signflow.core.config import MailConfig
from signflow.core.database.engine import build_engine
from signflow.core.dispatcher import RequestDispatcher
from signflow.core.errors import GENERIC_INTERNAL_MESSAGE, RouteConflictError
from signflow.core.manager import CoreManager
from signflow.core.modules.base import BaseModule, HealthReport, ModuleContext, ModuleDescriptor, ModuleFactory
from signflow.core.modules.registry import ModuleRegistry
from signflow.core.routing import RouteTable
from signflow.core.security import AuthGateway
from signflow.main import create_app

from conftest import database_url

SECRET = "dispatcher-secret"


class StrictBody(BaseModel):
    name: str = Field(..., min_length=3)
    count: int = Field(..., gt=0)


class EchoModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="echo",
        version="0.1.0",
        permissions=frozenset({"echo:read", "echo:write"}),
        routes=(
            "GET /items/{item_id}",
            "POST /items",
            "POST /strict",
            "GET /slow",
            "GET /boom",
            "GET /open",
            "GET /unhandled",
        ),
    )

    def get_routes(self):
        return {
            "GET /items/{item_id}": self.get_item,
            "POST /items": self.create_item,
            "POST /strict": self.strict,
            "GET /slow": self.slow,
            "GET /boom": self.boom,
            "GET /open": self.open,
        }

    async def get_item(self, payload):
        return {"item_id": payload["item_id"], "q": payload.get("q"), "caller": payload["user"].subject_id}

    async def create_item(self, payload):
        return {key: value for key, value in payload.items() if key != "user"}

    async def strict(self, payload):
        return StrictBody.model_validate(payload).model_dump()

    async def slow(self, payload):
        await asyncio.sleep(5)
        return {"finished": True}

    async def boom(self, payload):
        raise RuntimeError("database password is hunter2")

    async def open(self, payload):
        return {"open": True}


class BrokenModule(BaseModule):
    descriptor = ModuleDescriptor(name="broken", version="0.1.0", routes=("GET /status",))

    async def initialize(self):
        raise ConnectionError("upstream unavailable")

    def get_routes(self):
        return {"GET /status": self.status}

    async def status(self, payload):
        return {"ok": True}


class SickModule(BaseModule):
    descriptor = ModuleDescriptor(name="sick", version="0.1.0")

    async def get_health(self):
        return HealthReport(status="unhealthy", details={"db_sick": "unreachable"})

    def get_routes(self):
        return {}


def echo_table() -> RouteTable:
    return RouteTable().add_module("broken", "/broken", {"GET /status": []}).add_module("echo", "/echo", {
        "GET /items/{item_id}": ["echo:read"],
        "POST /items": ["echo:write"],
        "POST /strict": [],
        "GET /slow": [],
        "GET /boom": [],
        "GET /unhandled": [],
    })


@pytest.fixture()
def echo_manager(tmp_path):
    return CoreManager(
        engine=build_engine(database_url(tmp_path)),
        jwt_secret=SECRET,
        mail_config=MailConfig(),
        factories=[ModuleFactory(EchoModule), ModuleFactory(BrokenModule), ModuleFactory(SickModule)],
        route_table=echo_table(),
        prefix="/api/v1",
        handler_timeout=0.3,
    )


@pytest.fixture()
def echo_client(echo_manager):
    with TestClient(create_app(echo_manager)) as client:
        yield client


@pytest.fixture()
def headers(echo_manager):
    def issue(role="operator", *permissions):
        token = echo_manager.gateway.issue_token("caller-1", "caller@example.com", role, permissions)
        return {"Authorization": f"Bearer {token}"}
    return issue


def test_get_merges_path_and_query_params(echo_client, headers):
    response = echo_client.get("/api/v1/echo/items/42?q=hello", headers=headers("operator", "echo:read"))

    assert response.status_code == 200
    assert response.json() == {"item_id": "42", "q": "hello", "caller": "caller-1"}


def test_post_returns_201_and_body_wins_over_query(echo_client, headers):
    response = echo_client.post(
        "/api/v1/echo/items?source=query&label=query",
        json={"label": "body"},
        headers=headers("operator", "echo:write"),
    )

    assert response.status_code == 201
    assert response.json() == {"source": "query", "label": "body"}


def test_missing_permission_is_403_naming_it(echo_client, headers):
    response = echo_client.post("/api/v1/echo/items", json={}, headers=headers("client", "echo:read"))

    assert response.status_code == 403
    assert response.json()["message"] == "Permission denied. Requires one of: echo:write"


def test_admin_role_passes_without_permissions(echo_client, headers):
    response = echo_client.post("/api/v1/echo/items", json={"a": 1}, headers=headers("admin"))

    assert response.status_code == 201


def test_missing_token_is_401(echo_client):
    response = echo_client.get("/api/v1/echo/items/1")

    assert response.status_code == 401
    assert response.json() == {"error": "Access Denied", "message": "Access token required"}


def test_invalid_token_is_403(echo_client):
    response = echo_client.get("/api/v1/echo/items/1", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 403
    assert response.json()["message"] == "Invalid or expired token"


def test_malformed_json_is_400(echo_client, headers):
    response = echo_client.post(
        "/api/v1/echo/strict",
        content=b'{"name": "abc",',
        headers={**headers(), "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Malformed JSON in request body"


def test_non_object_body_is_400(echo_client, headers):
    response = echo_client.post("/api/v1/echo/strict", json=[1, 2, 3], headers=headers())

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "body"


def test_validation_failure_reports_every_field(echo_client, headers):
    response = echo_client.post("/api/v1/echo/strict", json={"name": "a", "count": 0}, headers=headers())

    body = response.json()
    assert response.status_code == 400
    assert body["error"] == "Validation Error"
    assert len(body["details"]) == 2
    assert body["message"].count("; ") == 1


def test_slow_handler_times_out_with_504(echo_client, headers):
    response = echo_client.get("/api/v1/echo/slow", headers=headers())

    assert response.status_code == 504
    assert response.json()["error"] == "Gateway Timeout"


def test_unexpected_error_is_generic_500(echo_client, headers):
    response = echo_client.get("/api/v1/echo/boom", headers=headers())

    assert response.status_code == 500
    assert response.json()["message"] == GENERIC_INTERNAL_MESSAGE
    assert "hunter2" not in response.text


def test_route_without_table_rule_needs_only_authentication(echo_client, headers):
    assert echo_client.get("/api/v1/echo/open").status_code == 401
    assert echo_client.get("/api/v1/echo/open", headers=headers("client")).json() == {"open": True}


def test_declared_route_without_handler_is_not_bound(echo_client, headers):
    assert echo_client.get("/api/v1/echo/unhandled", headers=headers("admin")).status_code == 404


def test_health_is_public_and_degraded(echo_client):
    response = echo_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["modules"]["sick"]["details"] == {"db_sick": "unreachable"}


def test_module_listing_is_admin_only(echo_client, headers):
    assert echo_client.get("/api/v1/modules", headers=headers("manager", "echo:read")).status_code == 403

    response = echo_client.get("/api/v1/modules", headers=headers("admin"))
    assert response.status_code == 200
    assert [m["name"] for m in response.json()] == ["echo", "sick"]
    assert "GET /items/{item_id}" in response.json()[0]["routes"]


def test_same_route_from_two_modules_is_a_startup_conflict():
    class Twin(EchoModule):
        descriptor = EchoModule.descriptor.model_copy(update={"name": "twin"})

    table = echo_table().add_module("twin", "/echo", {"GET /open": []})
    registry = ModuleRegistry(ModuleContext(db=None, gateway=AuthGateway(SECRET), mail=MailConfig()))
    asyncio.run(registry.initialize_all([ModuleFactory(EchoModule), ModuleFactory(Twin)]))
    dispatcher = RequestDispatcher(AuthGateway(SECRET), table, "/api/v1", timeout=1)

    with pytest.raises(RouteConflictError, match="echo and twin"):
        dispatcher.build_bindings(registry)


def test_failed_module_routes_are_absent(echo_client, echo_manager, headers):
    assert echo_manager.registry.failed == {"BrokenModule": "upstream unavailable"}
    assert "broken" not in echo_manager.registry
    assert echo_client.get("/api/v1/broken/status", headers=headers("admin")).status_code == 404
