import asyncio
import functools

import pytest
from fastapi.testclient import TestClient

from signflow.core.config import MailConfig
from signflow.core.database.engine import build_engine
from signflow.core.manager import CoreManager
from signflow.core.modules.base import ModuleFactory, ModuleStage
from signflow.core.route_permissions import default_route_table
from signflow.features.admin.module import AdminModule
from signflow.features.analytics.module import AnalyticsModule
from signflow.features.api_tokens.module import ApiTokensModule
from signflow.features.auth.module import AuthModule
from signflow.features.auth.roles import permissions_for
from signflow.features.coupons.module import CouponsModule
from signflow.features.documents.module import DocumentsModule
from signflow.features.identity.module import IdentityModule
from signflow.features.payments.gateway import GatewayResult
from signflow.features.payments.module import PaymentsModule
from signflow.features.signatures.module import SignaturesModule
from signflow.features.templates.module import TemplatesModule
from signflow.features.users.module import UsersModule
from signflow.main import create_app

TEST_SECRET = "test-secret"
OTP_CODE = "123456"
API = "/api/v1"


class FakePaymentGateway:
    """Deterministic gateway that counts how often it is charged."""

    def __init__(self, success: bool = True, latency: float = 0.0):
        self.success = success
        self.latency = latency
        self.charges = 0
        self.error: Exception | None = None

    async def charge(self, amount, currency, method, details):
        self.charges += 1
        await asyncio.sleep(self.latency)
        if self.error is not None:
            raise self.error
        if self.success:
            return GatewayResult(success=True, transaction_id=f"TRX-TEST-{self.charges}")
        return GatewayResult(success=False, message="Card declined")


def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture()
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture()
def manager(tmp_path, payment_gateway):
    factories = [
        ModuleFactory(AuthModule, ModuleStage.AUTH),
        ModuleFactory(UsersModule, ModuleStage.AUTH),
        ModuleFactory(ApiTokensModule, ModuleStage.AUTH),
        ModuleFactory(TemplatesModule),
        ModuleFactory(DocumentsModule),
        ModuleFactory(SignaturesModule),
        ModuleFactory(functools.partial(PaymentsModule, gateway=payment_gateway)),
        ModuleFactory(CouponsModule),
        ModuleFactory(functools.partial(IdentityModule, code_factory=lambda: OTP_CODE)),
        ModuleFactory(AnalyticsModule, ModuleStage.ADMIN),
        ModuleFactory(AdminModule, ModuleStage.ADMIN),
    ]
    return CoreManager(
        engine=build_engine(database_url(tmp_path)),
        jwt_secret=TEST_SECRET,
        mail_config=MailConfig(),
        factories=factories,
        route_table=default_route_table(),
        prefix=API,
        handler_timeout=5,
    )


@pytest.fixture()
def client(manager):
    with TestClient(create_app(manager)) as client:
        yield client


@pytest.fixture()
def auth_headers(manager):
    """Build Authorization headers for a synthetic user of the given role."""
    def issue(role: str, subject_id: str | None = None, permissions=None) -> dict[str, str]:
        subject_id = subject_id or f"{role}-user"
        granted = permissions_for(role) if permissions is None else permissions
        token = manager.gateway.issue_token(subject_id, f"{subject_id}@example.com", role, granted)
        return {"Authorization": f"Bearer {token}"}
    return issue


@pytest.fixture()
def template(client, auth_headers):
    response = client.post(
        f"{API}/templates",
        json={
            "name": "Power of attorney",
            "content_html": "<p>{{ client_name }} appoints {{ agent_name }}</p>",
        },
        headers=auth_headers("admin"),
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture()
def document(client, auth_headers, template):
    response = client.post(
        f"{API}/documents",
        json={
            "template_id": template["id"],
            "name": "Poder simple",
            "data": {"client_name": "Ana Rojas", "agent_name": "Luis Soto"},
        },
        headers=auth_headers("operator"),
    )
    assert response.status_code == 201, response.text
    return response.json()
