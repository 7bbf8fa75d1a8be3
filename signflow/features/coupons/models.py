"""
Coupon SQLAlchemy models.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Integer, Numeric, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from signflow.core.database.base import Base, TimestampMixin, generate_ulid


class Coupon(Base, TimestampMixin):
    """
    Discount code.

    current_uses never exceeds max_uses; the increment is a single guarded
    UPDATE so concurrent applications cannot overshoot the cap.
    """
    __tablename__ = "coupons"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    document_types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: ["all"])
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code!r}, uses={self.current_uses}/{self.max_uses})>"


class CouponUsage(Base, TimestampMixin):
    """One application of a coupon to a document."""
    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint("coupon_id", "document_id", name="uq_coupon_document"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    coupon_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(26), nullable=False)
