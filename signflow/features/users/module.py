"""
Users module: account administration and activity.
"""
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from signflow.core.errors import AuthorizationError, BusinessRuleError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.core.security import ADMIN_ROLE
from signflow.features.auth.models import User
from signflow.features.auth.passwords import hash_password
from signflow.features.documents.models import Document
from signflow.features.payments.models import Payment
from signflow.features.users.schemas import UserCreate, UserDetail, UserUpdate

ACTIVITY_LIMIT = 20


def _serialize(user: User) -> dict[str, Any]:
    return UserDetail.model_validate(user).model_dump()


def _check_role_grant(caller, role: str | None) -> None:
    # Only admins hand out the admin role
    if role == ADMIN_ROLE and not caller.is_admin:
        raise AuthorizationError("Only administrators can assign the admin role")


def _check_admin_target(caller, target: User) -> None:
    # Admin accounts are managed by admins only
    if target.role == ADMIN_ROLE and not caller.is_admin:
        raise AuthorizationError("Only administrators can modify an administrator account")


class UsersModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="users",
        version="1.0.0",
        dependencies=("auth",),
        permissions=frozenset({
            "users:read", "users:create", "users:update", "users:delete", "users:activity_read",
        }),
        routes=(
            "GET /",
            "POST /",
            "GET /{user_id}",
            "PUT /{user_id}",
            "DELETE /{user_id}",
            "GET /{user_id}/activity",
        ),
    )
    health_table = "users"

    def get_routes(self):
        return {
            "GET /": self.list_users,
            "POST /": self.create_user,
            "GET /{user_id}": self.get_user,
            "PUT /{user_id}": self.update_user,
            "DELETE /{user_id}": self.delete_user,
            "GET /{user_id}/activity": self.user_activity,
        }

    async def list_users(self, payload: RequestPayload) -> list[dict[str, Any]]:
        async with self.db() as session:
            result = await session.execute(select(User).order_by(User.created_at.desc()))
            return [_serialize(u) for u in result.scalars().all()]

    async def create_user(self, payload: RequestPayload) -> dict[str, Any]:
        data = UserCreate.model_validate(payload)
        _check_role_grant(payload["user"], data.role)

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

        self.log.info("User %s created by %s", user.id, payload["user"].subject_id)
        return _serialize(user)

    async def get_user(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            user = await session.get(User, payload["user_id"])
        if user is None:
            raise NotFoundError("User")
        return _serialize(user)

    async def update_user(self, payload: RequestPayload) -> dict[str, Any]:
        data = UserUpdate.model_validate(payload)
        _check_role_grant(payload["user"], data.role)
        changes = data.model_dump(exclude_unset=True)

        async with self.db() as session:
            user = await session.get(User, payload["user_id"])
            if user is None:
                raise NotFoundError("User")
            _check_admin_target(payload["user"], user)

            if "password" in changes:
                user.password_hash = await hash_password(changes.pop("password"))
            for key, value in changes.items():
                setattr(user, key, value)

            await session.commit()
            await session.refresh(user)
        return _serialize(user)

    async def delete_user(self, payload: RequestPayload) -> dict[str, Any]:
        """Deactivate an account. Rows stay so documents and payments keep their owner."""
        user_id = payload["user_id"]
        if user_id == payload["user"].subject_id:
            raise BusinessRuleError("Cannot deactivate your own account")

        async with self.db() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User")
            _check_admin_target(payload["user"], user)
            user.is_active = False
            await session.commit()

        self.log.info("User %s deactivated", user_id)
        return {"success": True, "message": "User deactivated successfully"}

    async def user_activity(self, payload: RequestPayload) -> dict[str, Any]:
        user_id = payload["user_id"]

        async with self.db() as session:
            if await session.get(User, user_id) is None:
                raise NotFoundError("User")
            documents = await session.execute(
                select(Document.id, Document.name, Document.status, Document.created_at)
                .where(Document.created_by == user_id)
                .order_by(Document.created_at.desc())
                .limit(ACTIVITY_LIMIT)
            )
            payments = await session.execute(
                select(Payment.id, Payment.amount, Payment.currency, Payment.status, Payment.created_at)
                .where(Payment.user_id == user_id)
                .order_by(Payment.created_at.desc())
                .limit(ACTIVITY_LIMIT)
            )

        return {
            "user_id": user_id,
            "documents": [dict(row._mapping) for row in documents],
            "payments": [dict(row._mapping) for row in payments],
        }
