"""
One-time code SQLAlchemy model.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from signflow.core.database.base import Base, TimestampMixin, generate_ulid


class OtpToken(Base, TimestampMixin):
    """
    A one-time code issued to a phone number.

    Only the SHA-256 of the code is stored. used_at is set exactly once.
    """
    __tablename__ = "otp_tokens"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True, index=True)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<OtpToken(id={self.id}, phone={self.phone_number}, used={self.used_at is not None})>"
