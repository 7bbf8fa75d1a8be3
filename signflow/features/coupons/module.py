"""
Coupons module: create, validate and apply discount codes.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from signflow.core.errors import BusinessRuleError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.coupons.models import Coupon, CouponUsage
from signflow.features.coupons.schemas import CouponApply, CouponCreate, CouponResponse, CouponValidate
from signflow.features.documents.models import Document


def _serialize(coupon: Coupon) -> dict[str, Any]:
    return CouponResponse.model_validate(coupon).model_dump()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def check_coupon(coupon: Optional[Coupon], document_type: Optional[str], now: datetime) -> Coupon:
    """Raise BusinessRuleError unless the coupon can be used right now."""
    if coupon is None or not coupon.is_active:
        raise BusinessRuleError("Coupon not found or inactive")
    if coupon.expires_at is not None and _as_utc(coupon.expires_at) <= now:
        raise BusinessRuleError("Coupon has expired")
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        raise BusinessRuleError("Coupon has no uses left")
    if document_type and "all" not in coupon.document_types and document_type not in coupon.document_types:
        raise BusinessRuleError("Coupon does not apply to this document type")
    return coupon


class CouponsModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="coupons",
        version="1.0.1",
        permissions=frozenset({
            "coupons:read", "coupons:create", "coupons:validate", "coupons:apply", "coupons:usage_read",
        }),
        routes=(
            "GET /",
            "POST /",
            "POST /validate",
            "POST /apply",
            "GET /{coupon_id}/usage",
        ),
    )
    health_table = "coupons"

    def get_routes(self):
        return {
            "GET /": self.list_coupons,
            "POST /": self.create_coupon,
            "POST /validate": self.validate_coupon,
            "POST /apply": self.apply_coupon,
            "GET /{coupon_id}/usage": self.coupon_usage,
        }

    async def list_coupons(self, payload: RequestPayload) -> list[dict[str, Any]]:
        async with self.db() as session:
            result = await session.execute(select(Coupon).order_by(Coupon.created_at.desc()))
            return [_serialize(c) for c in result.scalars().all()]

    async def create_coupon(self, payload: RequestPayload) -> dict[str, Any]:
        data = CouponCreate.model_validate(payload)

        async with self.db() as session:
            existing = await session.scalar(select(Coupon.id).where(Coupon.code == data.code))
            if existing is not None:
                raise BusinessRuleError("Coupon code already exists")

            coupon = Coupon(**data.model_dump())
            session.add(coupon)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError("Coupon code already exists")
            await session.refresh(coupon)

        self.log.info("Coupon %s created", coupon.code)
        return _serialize(coupon)

    async def validate_coupon(self, payload: RequestPayload) -> dict[str, Any]:
        data = CouponValidate.model_validate(payload)

        async with self.db() as session:
            coupon = await session.scalar(select(Coupon).where(Coupon.code == data.code))
        check_coupon(coupon, data.document_type, datetime.now(timezone.utc))

        return {
            "valid": True,
            "message": "Coupon is valid",
            "code": coupon.code,
            "discount": coupon.discount_value,
            "type": coupon.discount_type,
        }

    async def apply_coupon(self, payload: RequestPayload) -> dict[str, Any]:
        """
        Record one use of a coupon against a document.

        The usage counter is bumped by a guarded UPDATE in the same transaction
        as the usage row, so the cap holds under concurrent applies and a coupon
        is never applied twice to one document.
        """
        data = CouponApply.model_validate(payload)
        now = datetime.now(timezone.utc)

        async with self.db() as session:
            if await session.get(Document, data.document_id) is None:
                raise NotFoundError("Document")
            coupon = check_coupon(
                await session.scalar(select(Coupon).where(Coupon.code == data.code)),
                data.document_type,
                now,
            )

            claimed = await session.execute(
                update(Coupon)
                .where(
                    Coupon.id == coupon.id,
                    Coupon.is_active.is_(True),
                    or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses),
                    or_(Coupon.expires_at.is_(None), Coupon.expires_at > now),
                )
                .values(current_uses=Coupon.current_uses + 1)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                await session.rollback()
                raise BusinessRuleError("Coupon has no uses left")

            session.add(CouponUsage(
                coupon_id=coupon.id,
                document_id=data.document_id,
                user_id=payload["user"].subject_id,
            ))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError("Coupon was already applied to this document")
            await session.refresh(coupon)

        self.log.info("Coupon %s applied to document %s", coupon.code, data.document_id)
        return {"success": True, "message": "Coupon applied successfully", "coupon": _serialize(coupon)}

    async def coupon_usage(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            coupon = await session.get(Coupon, payload["coupon_id"])
            if coupon is None:
                raise NotFoundError("Coupon")
            usages = await session.execute(
                select(CouponUsage.document_id, CouponUsage.user_id, CouponUsage.created_at)
                .where(CouponUsage.coupon_id == coupon.id)
                .order_by(CouponUsage.created_at.desc())
            )

        remaining = None if coupon.max_uses is None else coupon.max_uses - coupon.current_uses
        return {
            "code": coupon.code,
            "current_uses": coupon.current_uses,
            "max_uses": coupon.max_uses,
            "remaining_uses": remaining,
            "usages": [dict(row._mapping) for row in usages],
        }
