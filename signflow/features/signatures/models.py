"""
Signature SQLAlchemy models.
"""
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from signflow.core.database.base import Base, TimestampMixin, generate_ulid


class Signature(Base, TimestampMixin):
    """
    A signature made on a document.

    document_hash is the document's content hash at signing time; a later
    change to the document content invalidates the signature.
    """
    __tablename__ = "signatures"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    document_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    signer_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    document_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    artifact_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_by: Mapped[str] = mapped_column(String(26), nullable=False)

    def __repr__(self) -> str:
        return f"<Signature(id={self.id}, document={self.document_id}, kind={self.kind!r})>"


class SigningRequest(Base, TimestampMixin):
    """An invitation for an external signer. Only the SHA-256 of the link token is stored."""
    __tablename__ = "signing_requests"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    document_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    signer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[str] = mapped_column(String(26), nullable=False)
