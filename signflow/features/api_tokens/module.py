"""
API tokens module: issue, rotate, validate and meter integration tokens.
"""
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select

from signflow.core.errors import AuthorizationError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.api_tokens.models import ApiToken, ApiTokenUsage
from signflow.features.api_tokens.schemas import (
    ApiTokenCreate,
    ApiTokenResponse,
    ApiTokenUpdate,
    ApiTokenValidate,
    as_utc,
)

TOKEN_PREFIX = "sf_"
RATE_WINDOW = timedelta(minutes=1)


def generate_token() -> str:
    return TOKEN_PREFIX + secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _serialize(token: ApiToken) -> dict[str, Any]:
    return ApiTokenResponse.model_validate(token).model_dump()


def _check_grantable(caller, permissions: list[str]) -> None:
    # A token never carries more than its creator holds
    if caller.is_admin:
        return
    extra = sorted(set(permissions) - caller.permissions)
    if extra:
        raise AuthorizationError(f"Cannot grant permissions you do not hold: {', '.join(extra)}")


class ApiTokensModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="api_tokens",
        version="1.0.0",
        permissions=frozenset({
            "api_tokens:create", "api_tokens:read", "api_tokens:update", "api_tokens:delete",
            "api_tokens:regenerate", "api_tokens:validate", "api_tokens:usage_read",
        }),
        # Static paths before "/{token_id}" so they are matched first
        routes=(
            "POST /create",
            "GET /list",
            "POST /validate",
            "GET /{token_id}",
            "PUT /{token_id}",
            "DELETE /{token_id}",
            "POST /{token_id}/regenerate",
            "GET /{token_id}/usage",
        ),
    )
    health_table = "api_tokens"

    def get_routes(self):
        return {
            "POST /create": self.create_token,
            "GET /list": self.list_tokens,
            "POST /validate": self.validate_token,
            "GET /{token_id}": self.get_token,
            "PUT /{token_id}": self.update_token,
            "DELETE /{token_id}": self.delete_token,
            "POST /{token_id}/regenerate": self.regenerate_token,
            "GET /{token_id}/usage": self.token_usage,
        }

    @staticmethod
    async def _owned_token(session, token_id: str, caller) -> ApiToken:
        """Load a token the caller may manage. Other users' tokens look missing."""
        token = await session.get(ApiToken, token_id)
        if token is None or (not caller.is_admin and token.user_id != caller.subject_id):
            raise NotFoundError("API token")
        return token

    async def create_token(self, payload: RequestPayload) -> dict[str, Any]:
        data = ApiTokenCreate.model_validate(payload)
        caller = payload["user"]
        owner = data.user_id or caller.subject_id
        if owner != caller.subject_id and not caller.is_admin:
            raise AuthorizationError("Only administrators can create tokens for other users")
        _check_grantable(caller, data.permissions)

        plain = generate_token()
        async with self.db() as session:
            token = ApiToken(
                name=data.name,
                description=data.description,
                user_id=owner,
                token_hash=hash_token(plain),
                token_prefix=plain[:len(TOKEN_PREFIX) + 6],
                permissions=sorted(set(data.permissions)),
                rate_limit_per_minute=data.rate_limit_per_minute,
                expires_at=data.expires_at,
            )
            session.add(token)
            await session.commit()
            await session.refresh(token)

        self.log.info("API token %s created for user %s", token.id, owner)
        return {
            "message": "API token created, store it now as it will not be shown again",
            "token": plain,
            "api_token": _serialize(token),
        }

    async def list_tokens(self, payload: RequestPayload) -> list[dict[str, Any]]:
        """Own tokens; admins see everyone's, optionally filtered by user_id."""
        caller = payload["user"]
        stmt = select(ApiToken).order_by(ApiToken.created_at.desc())
        if not caller.is_admin:
            stmt = stmt.where(ApiToken.user_id == caller.subject_id)
        elif payload.get("user_id"):
            stmt = stmt.where(ApiToken.user_id == payload["user_id"])

        async with self.db() as session:
            result = await session.execute(stmt)
            return [_serialize(t) for t in result.scalars().all()]

    async def get_token(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            token = await self._owned_token(session, payload["token_id"], payload["user"])
        return _serialize(token)

    async def update_token(self, payload: RequestPayload) -> dict[str, Any]:
        data = ApiTokenUpdate.model_validate(payload)
        changes = data.model_dump(exclude_unset=True)
        if "permissions" in changes:
            _check_grantable(payload["user"], changes["permissions"])
            changes["permissions"] = sorted(set(changes["permissions"]))

        async with self.db() as session:
            token = await self._owned_token(session, payload["token_id"], payload["user"])
            for key, value in changes.items():
                setattr(token, key, value)
            await session.commit()
            await session.refresh(token)
        return _serialize(token)

    async def delete_token(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            token = await self._owned_token(session, payload["token_id"], payload["user"])
            await session.delete(token)
            await session.commit()

        self.log.info("API token %s deleted", payload["token_id"])
        return {"success": True, "message": "API token deleted successfully"}

    async def regenerate_token(self, payload: RequestPayload) -> dict[str, Any]:
        """Swap the secret; the previous token stops validating immediately."""
        plain = generate_token()

        async with self.db() as session:
            token = await self._owned_token(session, payload["token_id"], payload["user"])
            token.token_hash = hash_token(plain)
            token.token_prefix = plain[:len(TOKEN_PREFIX) + 6]
            await session.commit()
            await session.refresh(token)

        self.log.info("API token %s regenerated", token.id)
        return {
            "message": "API token regenerated, store it now as it will not be shown again",
            "token": plain,
            "api_token": _serialize(token),
        }

    async def validate_token(self, payload: RequestPayload) -> dict[str, Any]:
        """
        Check a presented token and record the use.

        Unknown, inactive and expired tokens are reported as invalid rather
        than raised, so integrations can tell a bad token from a bad request.
        Accepted uses count against rate_limit_per_minute.
        """
        data = ApiTokenValidate.model_validate(payload)
        now = datetime.now(timezone.utc)

        async with self.db() as session:
            token = await session.scalar(
                select(ApiToken).where(ApiToken.token_hash == hash_token(data.token), ApiToken.is_active.is_(True))
            )
            if token is None:
                return {"valid": False, "message": "Unknown or inactive token"}
            if token.expires_at is not None and as_utc(token.expires_at) <= now:
                return {"valid": False, "message": "Token has expired"}

            recent = await session.scalar(
                select(func.count())
                .select_from(ApiTokenUsage)
                .where(ApiTokenUsage.token_id == token.id, ApiTokenUsage.created_at >= now - RATE_WINDOW)
            )
            if recent >= token.rate_limit_per_minute:
                self.log.warning("API token %s exceeded %d requests per minute", token.id, token.rate_limit_per_minute)
                return {"valid": False, "rate_limit_exceeded": True, "message": "Rate limit exceeded"}

            session.add(ApiTokenUsage(token_id=token.id, endpoint=data.endpoint, method=data.method))
            token.last_used_at = now
            await session.commit()

        return {
            "valid": True,
            "user_id": token.user_id,
            "permissions": token.permissions,
            "remaining_this_minute": token.rate_limit_per_minute - recent - 1,
        }

    async def token_usage(self, payload: RequestPayload) -> dict[str, Any]:
        now = datetime.now(timezone.utc)

        async with self.db() as session:
            token = await self._owned_token(session, payload["token_id"], payload["user"])
            total = await session.scalar(
                select(func.count()).select_from(ApiTokenUsage).where(ApiTokenUsage.token_id == token.id)
            )
            last_minute = await session.scalar(
                select(func.count())
                .select_from(ApiTokenUsage)
                .where(ApiTokenUsage.token_id == token.id, ApiTokenUsage.created_at >= now - RATE_WINDOW)
            )
            by_endpoint = await session.execute(
                select(ApiTokenUsage.method, ApiTokenUsage.endpoint, func.count().label("requests"))
                .where(ApiTokenUsage.token_id == token.id)
                .group_by(ApiTokenUsage.method, ApiTokenUsage.endpoint)
                .order_by(func.count().desc())
            )

        return {
            "token_id": token.id,
            "total_requests": total,
            "requests_last_minute": last_minute,
            "rate_limit_per_minute": token.rate_limit_per_minute,
            "last_used_at": token.last_used_at,
            "by_endpoint": [dict(row._mapping) for row in by_endpoint],
        }
