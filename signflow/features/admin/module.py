"""
Platform administration module: roles, subscriptions and platform metrics.
"""
import csv
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from signflow.core.errors import BusinessRuleError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.admin.models import PlatformRole, Subscription
from signflow.features.admin.schemas import (
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    SubscriptionCreate,
    SubscriptionResponse,
    SubscriptionUpdate,
    as_utc,
)
from signflow.features.analytics.schemas import RangeQuery
from signflow.features.api_tokens.models import ApiTokenUsage
from signflow.features.auth.models import User
from signflow.features.auth.roles import ALL_PERMISSIONS, ROLES
from signflow.features.payments.models import Payment

EXPORT_COLUMNS = ("id", "user_id", "plan_name", "status", "start_date", "end_date", "price", "currency")


def _check_permissions(permissions: list[str]) -> list[str]:
    unknown = sorted(set(permissions) - ALL_PERMISSIONS)
    if unknown:
        raise BusinessRuleError(f"Unknown permissions: {', '.join(unknown)}")
    return sorted(set(permissions))


def _role(role: PlatformRole) -> dict[str, Any]:
    return RoleResponse.model_validate(role).model_dump()


def _subscription(subscription: Subscription) -> dict[str, Any]:
    return SubscriptionResponse.model_validate(subscription).model_dump()


class AdminModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="admin",
        version="1.0.0",
        dependencies=("auth", "payments", "api_tokens"),
        permissions=frozenset({
            "saas_roles:read", "saas_roles:create", "saas_roles:update", "saas_roles:delete",
            "saas_subscriptions:read", "saas_subscriptions:create",
            "saas_subscriptions:update", "saas_subscriptions:delete",
            "saas_analytics:read", "saas_analytics:export",
        }),
        routes=(
            "GET /dashboard",
            "GET /roles",
            "POST /roles",
            "PUT /roles/{role_id}",
            "DELETE /roles/{role_id}",
            "GET /subscriptions",
            "POST /subscriptions",
            "PUT /subscriptions/{subscription_id}",
            "DELETE /subscriptions/{subscription_id}",
            "GET /analytics",
            "GET /analytics/export",
        ),
    )
    health_table = "subscriptions"

    def get_routes(self):
        return {
            "GET /dashboard": self.dashboard,
            "GET /roles": self.list_roles,
            "POST /roles": self.create_role,
            "PUT /roles/{role_id}": self.update_role,
            "DELETE /roles/{role_id}": self.delete_role,
            "GET /subscriptions": self.list_subscriptions,
            "POST /subscriptions": self.create_subscription,
            "PUT /subscriptions/{subscription_id}": self.update_subscription,
            "DELETE /subscriptions/{subscription_id}": self.cancel_subscription,
            "GET /analytics": self.platform_analytics,
            "GET /analytics/export": self.export_subscriptions,
        }

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def list_roles(self, payload: RequestPayload) -> list[dict[str, Any]]:
        async with self.db() as session:
            result = await session.execute(select(PlatformRole).order_by(PlatformRole.name))
            return [_role(r) for r in result.scalars().all()]

    async def create_role(self, payload: RequestPayload) -> dict[str, Any]:
        data = RoleCreate.model_validate(payload)
        if data.name in ROLES:
            raise BusinessRuleError(f"Role name '{data.name}' is reserved")

        async with self.db() as session:
            role = PlatformRole(
                name=data.name,
                description=data.description,
                permissions=_check_permissions(data.permissions),
                is_system=data.is_system,
            )
            session.add(role)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError(f"Role '{data.name}' already exists")
            await session.refresh(role)

        self.log.info("Role %s created", role.name)
        return _role(role)

    async def update_role(self, payload: RequestPayload) -> dict[str, Any]:
        data = RoleUpdate.model_validate(payload)
        changes = data.model_dump(exclude_unset=True)
        if "permissions" in changes:
            changes["permissions"] = _check_permissions(changes["permissions"] or [])

        async with self.db() as session:
            role = await session.get(PlatformRole, payload["role_id"])
            if role is None:
                raise NotFoundError("Role")
            new_name = changes.get("name")
            if new_name is not None and new_name != role.name:
                if role.is_system:
                    raise BusinessRuleError("System roles cannot be renamed")
                if new_name in ROLES:
                    raise BusinessRuleError(f"Role name '{new_name}' is reserved")

            for key, value in changes.items():
                setattr(role, key, value)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError(f"Role '{new_name}' already exists")
            await session.refresh(role)
        return _role(role)

    async def delete_role(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            role = await session.get(PlatformRole, payload["role_id"])
            if role is None:
                raise NotFoundError("Role")
            if role.is_system:
                raise BusinessRuleError("System roles cannot be deleted")
            await session.delete(role)
            await session.commit()
        return {"success": True, "message": "Role deleted successfully"}

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _subscriptions_query(self, payload: RequestPayload):
        stmt = select(Subscription).order_by(Subscription.created_at.desc())
        if payload.get("status"):
            stmt = stmt.where(Subscription.status == payload["status"])
        if payload.get("user_id"):
            stmt = stmt.where(Subscription.user_id == payload["user_id"])
        return stmt

    async def list_subscriptions(self, payload: RequestPayload) -> list[dict[str, Any]]:
        async with self.db() as session:
            result = await session.execute(self._subscriptions_query(payload))
            return [_subscription(s) for s in result.scalars().all()]

    async def create_subscription(self, payload: RequestPayload) -> dict[str, Any]:
        data = SubscriptionCreate.model_validate(payload)

        async with self.db() as session:
            if await session.get(User, data.user_id) is None:
                raise NotFoundError("User")
            subscription = Subscription(**data.model_dump())
            session.add(subscription)
            await session.commit()
            await session.refresh(subscription)

        self.log.info("Subscription %s (%s) created for user %s", subscription.id, data.plan_name, data.user_id)
        return _subscription(subscription)

    async def update_subscription(self, payload: RequestPayload) -> dict[str, Any]:
        data = SubscriptionUpdate.model_validate(payload)
        changes = data.model_dump(exclude_unset=True)

        async with self.db() as session:
            subscription = await session.get(Subscription, payload["subscription_id"])
            if subscription is None:
                raise NotFoundError("Subscription")
            end_date = changes.get("end_date")
            if end_date is not None and end_date <= as_utc(subscription.start_date):
                raise BusinessRuleError("end_date must be after start_date")

            for key, value in changes.items():
                setattr(subscription, key, value)
            await session.commit()
            await session.refresh(subscription)
        return _subscription(subscription)

    async def cancel_subscription(self, payload: RequestPayload) -> dict[str, Any]:
        """Cancel rather than delete, so billing history is kept."""
        async with self.db() as session:
            subscription = await session.get(Subscription, payload["subscription_id"])
            if subscription is None:
                raise NotFoundError("Subscription")
            subscription.status = "cancelled"
            await session.commit()
        return {"success": True, "message": "Subscription cancelled successfully"}

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def dashboard(self, payload: RequestPayload) -> dict[str, Any]:
        now = datetime.now(timezone.utc)

        async with self.db() as session:
            total_users = await session.scalar(select(func.count()).select_from(User))
            active_users = await session.scalar(
                select(func.count()).select_from(User).where(User.is_active.is_(True))
            )
            active_subscriptions = await session.scalar(
                select(func.count()).select_from(Subscription).where(Subscription.status == "active")
            )
            recurring_revenue = await session.scalar(
                select(func.coalesce(func.sum(Subscription.price), 0)).where(Subscription.status == "active")
            )
            revenue_month = await session.scalar(
                select(func.coalesce(func.sum(Payment.amount), 0))
                .where(Payment.status == "COMPLETED", Payment.created_at >= now - timedelta(days=30))
            )
            api_requests_today = await session.scalar(
                select(func.count()).select_from(ApiTokenUsage)
                .where(ApiTokenUsage.created_at >= now - timedelta(days=1))
            )

        return {
            "total_users": total_users,
            "active_users": active_users,
            "active_subscriptions": active_subscriptions,
            "recurring_revenue": float(recurring_revenue),
            "revenue_month": float(revenue_month),
            "api_requests_today": api_requests_today,
        }

    async def platform_analytics(self, payload: RequestPayload) -> dict[str, Any]:
        query = RangeQuery.model_validate(payload)
        since = query.since()

        def windowed(stmt, column):
            return stmt.where(column >= since) if since is not None else stmt

        async with self.db() as session:
            by_plan = await session.execute(windowed(
                select(Subscription.plan_name, func.count()).group_by(Subscription.plan_name),
                Subscription.created_at,
            ))
            by_status = await session.execute(windowed(
                select(Subscription.status, func.count()).group_by(Subscription.status),
                Subscription.created_at,
            ))
            new_users = await session.scalar(windowed(
                select(func.count()).select_from(User), User.created_at,
            ))
            day = func.date(ApiTokenUsage.created_at)
            api_by_day = await session.execute(windowed(
                select(day.label("date"), func.count().label("requests")).group_by(day).order_by(day),
                ApiTokenUsage.created_at,
            ))

        requests_by_day = [{"date": str(row.date), "requests": row.requests} for row in api_by_day]
        return {
            "time_range": query.time_range,
            "subscriptions_by_plan": dict(by_plan.all()),
            "subscriptions_by_status": dict(by_status.all()),
            "new_users": new_users,
            "api_requests": sum(r["requests"] for r in requests_by_day),
            "api_requests_by_day": requests_by_day,
        }

    async def export_subscriptions(self, payload: RequestPayload) -> dict[str, Any]:
        """Subscriptions as CSV text, filtered like the subscription list."""
        async with self.db() as session:
            result = await session.execute(self._subscriptions_query(payload))
            subscriptions = result.scalars().all()

        buffer = StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for s in subscriptions:
            writer.writerow([
                s.id, s.user_id, s.plan_name, s.status,
                as_utc(s.start_date).isoformat(), as_utc(s.end_date).isoformat(),
                f"{s.price:.2f}", s.currency,
            ])

        return {
            "filename": f"subscriptions-{datetime.now(timezone.utc):%Y%m%d}.csv",
            "content_type": "text/csv",
            "rows": len(subscriptions),
            "content": buffer.getvalue(),
        }
