"""
Document SQLAlchemy model.
"""
from typing import Any
from sqlalchemy import String, Text, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from signflow.core.database.base import Base, TimestampMixin, generate_ulid


class Document(Base, TimestampMixin):
    """
    A filled-in template.

    content_hash is the SHA-256 of content_html and changes whenever the
    document data is edited.
    """
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    template_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("templates.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="draft", index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    content_html: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by: Mapped[str] = mapped_column(String(26), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name={self.name!r}, status={self.status})>"
