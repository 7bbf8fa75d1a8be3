"""
Bearer token authentication and permission/role authorization.

The AuthGateway is the only place that touches token cryptography. It turns
an incoming request into an AuthorizationContext and answers the two
authorization questions the dispatcher and routes ask:

- does the caller hold at least one of these capabilities?
- does the caller have one of these roles?
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable

import jwt
from fastapi import Request

from signflow.core.errors import AuthenticationError, AuthorizationError
from signflow.utils import get_logger


log = get_logger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class AuthorizationContext:
    """Identity and capabilities of the caller, derived once per request."""
    subject_id: str
    email: str | None
    role: str | None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def _as_tuple(values: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(values, str):
        return (values,)
    return tuple(values)


class AuthGateway:
    """
    Validates bearer credentials and enforces permission checks.

    Args:
        secret: Opaque signing secret shared with the auth module
        public_paths: Request paths that never require a token
        algorithm: JWT signing algorithm
        expires_in: Lifetime of issued tokens
    """

    def __init__(
        self,
        secret: str,
        public_paths: Iterable[str] = (),
        algorithm: str = "HS256",
        expires_in: timedelta = timedelta(hours=24),
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._expires_in = expires_in
        self.public_paths = frozenset(public_paths)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_token(
        self,
        subject_id: str,
        email: str,
        role: str,
        permissions: Iterable[str] = (),
    ) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "userId": subject_id,
            "email": email,
            "role": role,
            "permissions": sorted(permissions),
            "iat": now,
            "exp": now + self._expires_in,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode_token(self, token: str) -> AuthorizationContext:
        """
        Verify signature and expiry and build the caller's context.

        Raises:
            AuthorizationError: 403 if the token is invalid or expired
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.InvalidTokenError as e:
            log.debug("Rejected token: %s", e)
            raise AuthorizationError("Invalid or expired token")

        subject_id = claims.get("userId") or claims.get("id") or claims.get("sub")
        if not subject_id:
            raise AuthorizationError("Invalid or expired token")

        return AuthorizationContext(
            subject_id=str(subject_id),
            email=claims.get("email"),
            role=claims.get("role"),
            permissions=frozenset(claims.get("permissions") or ()),
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def authenticate(self, request: Request) -> AuthorizationContext | None:
        """
        FastAPI dependency that attaches an AuthorizationContext to the request.

        Public paths pass through with no context, whatever headers they carry.

        Raises:
            AuthenticationError: 401 if no bearer token is present
            AuthorizationError: 403 if the token fails verification
        """
        if request.url.path in self.public_paths:
            return None

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Access token required")

        context = self.decode_token(token.strip())
        request.state.auth = context
        return context

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    @staticmethod
    def authorize_permission(
        context: AuthorizationContext | None,
        required: str | Iterable[str],
    ) -> None:
        """Pass if the caller is admin or holds at least one required permission."""
        if context is None:
            raise AuthenticationError("User not authenticated")

        if context.is_admin:
            return

        permissions = _as_tuple(required)
        if context.permissions.intersection(permissions):
            return

        log.debug("Subject %s denied, requires one of %s", context.subject_id, permissions)
        raise AuthorizationError(f"Permission denied. Requires one of: {', '.join(permissions)}")

    @staticmethod
    def authorize_role(
        context: AuthorizationContext | None,
        required: str | Iterable[str],
    ) -> None:
        """Pass if the caller's role is exactly one of the required roles."""
        if context is None:
            raise AuthenticationError("User not authenticated")

        roles = _as_tuple(required)
        if context.role not in roles:
            raise AuthorizationError(f"Access denied. Requires role: {' or '.join(roles)}")

    # ------------------------------------------------------------------
    # FastAPI dependencies
    # ------------------------------------------------------------------

    def require_permission(self, *permissions: str):
        """
        FastAPI dependency to require ANY of the given permissions.

        Usage:
            @router.get("/documents", dependencies=[Depends(gateway.require_permission("documents:read"))])
        """
        async def permission_dependency(request: Request) -> AuthorizationContext:
            context = getattr(request.state, "auth", None)
            self.authorize_permission(context, permissions)
            return context

        return permission_dependency

    def require_role(self, *roles: str):
        """FastAPI dependency to require one of the given roles."""
        async def role_dependency(request: Request) -> AuthorizationContext:
            context = getattr(request.state, "auth", None)
            self.authorize_role(context, roles)
            return context

        return role_dependency
