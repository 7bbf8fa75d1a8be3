"""
Analytics module: dashboard, usage report and conversion metrics.
"""
from typing import Any, Optional

from sqlalchemy import distinct, func, select

from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.analytics.schemas import RangeQuery, UsageQuery
from signflow.features.auth.models import User
from signflow.features.coupons.models import Coupon, CouponUsage
from signflow.features.documents.models import Document
from signflow.features.payments.models import Payment

SIGNED_STATUSES = ("client_signed", "certifier_review", "certifier_approved",
                   "certification_pending", "certified", "delivered")


def _rate(part: int, whole: int) -> float:
    return round(100.0 * part / whole, 1) if whole else 0.0


class AnalyticsModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="analytics",
        version="1.0.1",
        dependencies=("documents", "payments", "users", "coupons"),
        permissions=frozenset({"analytics:read"}),
        routes=(
            "GET /dashboard",
            "GET /usage",
            "GET /conversion",
        ),
    )

    def get_routes(self):
        return {
            "GET /dashboard": self.dashboard,
            "GET /usage": self.usage_report,
            "GET /conversion": self.conversion_metrics,
        }

    async def dashboard(self, payload: RequestPayload) -> dict[str, Any]:
        query = RangeQuery.model_validate(payload)
        since = query.since()

        documents_by_status = select(Document.status, func.count(Document.id)).group_by(Document.status)
        revenue = select(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id)).where(
            Payment.status == "COMPLETED"
        )
        if since is not None:
            documents_by_status = documents_by_status.where(Document.created_at >= since)
            revenue = revenue.where(Payment.created_at >= since)

        async with self.db() as session:
            by_status = {status: count for status, count in (await session.execute(documents_by_status)).all()}
            revenue_total, completed_payments = (await session.execute(revenue)).one()
            users_count = await session.scalar(select(func.count(User.id)).where(User.is_active.is_(True)))
            active_coupons = await session.scalar(select(func.count(Coupon.id)).where(Coupon.is_active.is_(True)))

        return {
            "period": query.time_range,
            "documents_total": sum(by_status.values()),
            "documents_by_status": by_status,
            "completed_payments": completed_payments,
            "revenue": float(revenue_total),
            "users_count": users_count,
            "active_coupons": active_coupons,
        }

    async def usage_report(self, payload: RequestPayload) -> dict[str, Any]:
        query = UsageQuery.model_validate(payload)

        def in_range(stmt, column, owner: Optional[Any] = None):
            stmt = stmt.where(column >= query.start_date, column <= query.end_date)
            if query.user_id and owner is not None:
                stmt = stmt.where(owner == query.user_id)
            return stmt

        async with self.db() as session:
            documents_created = await session.scalar(
                in_range(select(func.count(Document.id)), Document.created_at, Document.created_by)
            )
            payments_processed = await session.scalar(
                in_range(
                    select(func.count(Payment.id)).where(Payment.status == "COMPLETED"),
                    Payment.created_at,
                    Payment.user_id,
                )
            )
            coupons_applied = await session.scalar(
                in_range(select(func.count(CouponUsage.id)), CouponUsage.created_at, CouponUsage.user_id)
            )
            active_users = await session.scalar(
                in_range(select(func.count(distinct(Document.created_by))), Document.created_at, Document.created_by)
            )

        return {
            "period": f"{query.start_date.isoformat()} to {query.end_date.isoformat()}",
            "user_id": query.user_id,
            "documents_created": documents_created,
            "payments_processed": payments_processed,
            "coupons_applied": coupons_applied,
            "active_users": active_users,
        }

    async def conversion_metrics(self, payload: RequestPayload) -> dict[str, Any]:
        query = RangeQuery.model_validate(payload)
        since = query.since()

        documents = select(func.count(Document.id))
        signed = select(func.count(Document.id)).where(Document.status.in_(SIGNED_STATUSES))
        payments = select(func.count(Payment.id))
        completed = select(func.count(Payment.id)).where(Payment.status == "COMPLETED")
        if since is not None:
            documents = documents.where(Document.created_at >= since)
            signed = signed.where(Document.created_at >= since)
            payments = payments.where(Payment.created_at >= since)
            completed = completed.where(Payment.created_at >= since)

        async with self.db() as session:
            total_documents = await session.scalar(documents)
            signed_documents = await session.scalar(signed)
            total_payments = await session.scalar(payments)
            completed_payments = await session.scalar(completed)

        return {
            "period": query.time_range,
            "draft_to_signed_rate": _rate(signed_documents, total_documents),
            "payment_success_rate": _rate(completed_payments, total_payments),
            "documents": total_documents,
            "payments": total_payments,
        }
