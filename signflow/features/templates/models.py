"""
Template SQLAlchemy model.
"""
from typing import Any
from sqlalchemy import String, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from signflow.core.database.base import Base, TimestampMixin, generate_ulid


class Template(Base, TimestampMixin):
    """
    Reusable HTML template that documents are rendered from.

    Attributes:
        fields_definition: List of {"name", "type", "required"} entries
        created_by: ID of the user who created the template
    """
    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_html: Mapped[str] = mapped_column(Text, nullable=False)
    fields_definition: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[str] = mapped_column(String(26), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Template(id={self.id}, name={self.name!r})>"
