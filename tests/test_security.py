import asyncio
from datetime import timedelta

import jwt
import pytest
from starlette.requests import Request

from signflow.core.errors import AuthenticationError, AuthorizationError
from signflow.core.security import AuthGateway, AuthorizationContext

SECRET = "unit-secret"


def context(role, *permissions):
    return AuthorizationContext(subject_id="u1", email="u1@example.com", role=role, permissions=frozenset(permissions))


def test_issued_token_round_trips_through_decode():
    gateway = AuthGateway(SECRET)
    token = gateway.issue_token("u1", "u1@example.com", "operator", {"documents:read", "documents:create"})

    ctx = gateway.decode_token(token)

    assert ctx.subject_id == "u1"
    assert ctx.role == "operator"
    assert ctx.permissions == frozenset({"documents:read", "documents:create"})


def test_tokens_signed_with_another_secret_are_rejected():
    token = AuthGateway("other-secret").issue_token("u1", "u1@example.com", "client")

    with pytest.raises(AuthorizationError):
        AuthGateway(SECRET).decode_token(token)


def test_expired_tokens_are_rejected():
    gateway = AuthGateway(SECRET, expires_in=timedelta(seconds=-5))
    token = gateway.issue_token("u1", "u1@example.com", "client")

    with pytest.raises(AuthorizationError, match="Invalid or expired token"):
        gateway.decode_token(token)


def test_subject_falls_back_to_sub_claim():
    token = jwt.encode({"sub": "legacy-1", "role": "client"}, SECRET, algorithm="HS256")

    assert AuthGateway(SECRET).decode_token(token).subject_id == "legacy-1"


def test_admin_bypasses_permission_checks():
    AuthGateway.authorize_permission(context("admin"), ["analytics:read"])


def test_any_one_permission_is_enough():
    AuthGateway.authorize_permission(context("operator", "documents:read"), ["documents:update", "documents:read"])


def test_missing_permission_names_the_requirement():
    with pytest.raises(AuthorizationError) as exc_info:
        AuthGateway.authorize_permission(context("client", "documents:read"), ["documents:create"])

    assert exc_info.value.message == "Permission denied. Requires one of: documents:create"


def test_missing_context_is_unauthenticated():
    with pytest.raises(AuthenticationError):
        AuthGateway.authorize_permission(None, ["documents:read"])
    with pytest.raises(AuthenticationError):
        AuthGateway.authorize_role(None, "admin")


def test_role_check_is_exact():
    AuthGateway.authorize_role(context("certifier"), ["certifier", "admin"])
    with pytest.raises(AuthorizationError, match="Requires role: admin"):
        AuthGateway.authorize_role(context("manager", "users:read"), "admin")


def request_for(path, authorization=None):
    headers = [(b"authorization", authorization.encode())] if authorization else []
    return Request({
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "query_string": b"",
        "headers": headers,
    })


@pytest.mark.parametrize("authorization", [None, "Bearer not-a-token", "Basic abc"])
def test_public_paths_never_reject(authorization):
    gateway = AuthGateway(SECRET, public_paths={"/api/v1/auth/login"})

    assert asyncio.run(gateway.authenticate(request_for("/api/v1/auth/login", authorization))) is None


def test_protected_paths_require_a_bearer_token():
    gateway = AuthGateway(SECRET, public_paths={"/api/v1/auth/login"})

    with pytest.raises(AuthenticationError, match="Access token required"):
        asyncio.run(gateway.authenticate(request_for("/api/v1/documents/")))
    with pytest.raises(AuthorizationError):
        asyncio.run(gateway.authenticate(request_for("/api/v1/documents/", "Bearer not-a-token")))
