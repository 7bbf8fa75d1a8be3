"""
Payment SQLAlchemy model.
"""
from typing import Optional
from sqlalchemy import String, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from signflow.core.database.base import Base, TimestampMixin, generate_ulid


class Payment(Base, TimestampMixin):
    """
    A charge for a document.

    status moves PENDING -> PROCESSING -> COMPLETED | FAILED. Only the caller
    that wins the PENDING -> PROCESSING update talks to the gateway.
    """
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    document_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("documents.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CLP")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING", index=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount} {self.currency}, status={self.status})>"
