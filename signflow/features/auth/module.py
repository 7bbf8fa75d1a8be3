"""
Auth module: credentials in, bearer token out.
"""
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from signflow.core.errors import AuthenticationError, BusinessRuleError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.auth.models import User
from signflow.features.auth.passwords import hash_password, verify_password
from signflow.features.auth.roles import permissions_for
from signflow.features.auth.schemas import LoginRequest, RegisterRequest, UserResponse


class AuthModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="auth",
        version="1.0.0",
        permissions=frozenset(),
        routes=(
            "POST /login",
            "POST /register",
            "POST /logout",
            "GET /me",
        ),
    )
    health_table = "users"

    def get_routes(self):
        return {
            "POST /login": self.login,
            "POST /register": self.register,
            "POST /logout": self.logout,
            "GET /me": self.me,
        }

    async def login(self, payload: RequestPayload) -> dict[str, Any]:
        data = LoginRequest.model_validate(payload)

        async with self.db() as session:
            user = await session.scalar(select(User).where(User.email == data.email))
            if user is None or not await verify_password(user.password_hash, data.password):
                raise AuthenticationError("Invalid credentials")
            if not user.is_active:
                raise AuthenticationError("User account is deactivated")

            user.last_login_at = datetime.now(timezone.utc)
            await session.commit()

        permissions = permissions_for(user.role)
        token = self.context.gateway.issue_token(user.id, user.email, user.role, permissions)
        self.log.info("User %s logged in", user.id)
        return {
            "success": True,
            "message": "Login successful",
            "token": token,
            "user": {
                **UserResponse.model_validate(user).model_dump(),
                "permissions": sorted(permissions),
            },
        }

    async def register(self, payload: RequestPayload) -> dict[str, Any]:
        data = RegisterRequest.model_validate(payload)

        async with self.db() as session:
            existing = await session.scalar(select(User.id).where(User.email == data.email))
            if existing is not None:
                raise BusinessRuleError("Email is already registered")

            user = User(
                email=data.email,
                password_hash=await hash_password(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                role=data.role,
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError("Email is already registered")
            await session.refresh(user)

        self.log.info("Registered user %s with role %s", user.id, user.role)
        return {
            "success": True,
            "message": "User registered successfully",
            "user": UserResponse.model_validate(user).model_dump(),
        }

    async def logout(self, payload: RequestPayload) -> dict[str, Any]:
        # Tokens are stateless; the client drops its copy
        self.log.info("User %s logged out", payload["user"].subject_id)
        return {"success": True, "message": "Logout successful"}

    async def me(self, payload: RequestPayload) -> dict[str, Any]:
        context = payload["user"]
        async with self.db() as session:
            user = await session.get(User, context.subject_id)
        if user is None:
            raise NotFoundError("User")
        return {
            **UserResponse.model_validate(user).model_dump(),
            "permissions": sorted(context.permissions),
        }
