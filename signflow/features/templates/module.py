"""
Templates module: CRUD over HTML templates plus placeholder extraction.
"""
import base64
import binascii
import re
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from signflow.core.errors import BusinessRuleError, NotFoundError, ValidationError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.documents.models import Document
from signflow.features.templates.models import Template
from signflow.features.templates.schemas import (
    FieldDefinition,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
    TemplateUploadConvert,
)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

HTML_EXTENSIONS = (".html", ".htm")


def extract_fields(content_html: str) -> list[FieldDefinition]:
    """Unique {{ placeholder }} names in order of first appearance, required text fields."""
    seen: dict[str, None] = {}
    for match in PLACEHOLDER.finditer(content_html):
        seen.setdefault(match.group(1))
    return [FieldDefinition(name=name, type="text", required=True) for name in seen]


def render(content_html: str, data: dict[str, Any]) -> str:
    """Replace every {{ key }} present in data; unknown placeholders stay as they are."""
    def substitute(match: re.Match) -> str:
        key = match.group(1)
        return str(data[key]) if key in data else match.group(0)

    return PLACEHOLDER.sub(substitute, content_html)


def _serialize(template: Template) -> dict[str, Any]:
    return TemplateResponse.model_validate(template).model_dump()


class TemplatesModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="templates",
        version="1.1.0",
        permissions=frozenset({
            "templates:read", "templates:create", "templates:update",
            "templates:delete", "templates:upload_convert",
        }),
        routes=(
            "GET /",
            "GET /{template_id}",
            "POST /",
            "PUT /{template_id}",
            "DELETE /{template_id}",
            "POST /upload-convert",
        ),
    )
    health_table = "templates"

    def get_routes(self):
        return {
            "GET /": self.list_templates,
            "GET /{template_id}": self.get_template,
            "POST /": self.create_template,
            "PUT /{template_id}": self.update_template,
            "DELETE /{template_id}": self.delete_template,
            "POST /upload-convert": self.upload_convert,
        }

    async def list_templates(self, payload: RequestPayload) -> list[dict[str, Any]]:
        async with self.db() as session:
            result = await session.execute(select(Template).order_by(Template.name))
            return [_serialize(t) for t in result.scalars().all()]

    async def get_template(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            template = await session.get(Template, payload["template_id"])
        if template is None:
            raise NotFoundError("Template")
        return _serialize(template)

    async def create_template(self, payload: RequestPayload) -> dict[str, Any]:
        data = TemplateCreate.model_validate(payload)
        fields = data.fields_definition or extract_fields(data.content_html)
        template = await self._insert(
            name=data.name,
            description=data.description,
            content_html=data.content_html,
            fields=fields,
            created_by=payload["user"].subject_id,
        )
        return _serialize(template)

    async def update_template(self, payload: RequestPayload) -> dict[str, Any]:
        data = TemplateUpdate.model_validate(payload)
        changes = data.model_dump(exclude_unset=True)

        async with self.db() as session:
            template = await session.get(Template, payload["template_id"])
            if template is None:
                raise NotFoundError("Template")
            for key, value in changes.items():
                setattr(template, key, value)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError("A template with this name already exists")
            await session.refresh(template)
        return _serialize(template)

    async def delete_template(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            template = await session.get(Template, payload["template_id"])
            if template is None:
                raise NotFoundError("Template")
            in_use = await session.scalar(
                select(func.count()).select_from(Document).where(Document.template_id == template.id)
            )
            if in_use:
                raise BusinessRuleError(f"Template is used by {in_use} document(s) and cannot be deleted")
            await session.delete(template)
            await session.commit()
        return {"success": True, "message": "Template deleted successfully"}

    async def upload_convert(self, payload: RequestPayload) -> dict[str, Any]:
        """Accept a base64 encoded HTML file and store it as a template."""
        data = TemplateUploadConvert.model_validate(payload)

        if not data.file_name.lower().endswith(HTML_EXTENSIONS):
            raise BusinessRuleError("Unsupported file format, only .html files can be converted")
        try:
            content_html = base64.b64decode(data.file_content_base64, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise ValidationError.single("file_content_base64", "File content is not valid base64 encoded UTF-8")

        fields = extract_fields(content_html)
        template = await self._insert(
            name=data.template_name,
            description=data.template_description,
            content_html=content_html,
            fields=fields,
            created_by=payload["user"].subject_id,
        )
        return {
            "success": True,
            "message": "Template uploaded and converted successfully",
            "template": _serialize(template),
            "detected_fields": [f.model_dump() for f in fields],
        }

    async def _insert(self, name, description, content_html, fields, created_by) -> Template:
        async with self.db() as session:
            existing = await session.scalar(select(Template.id).where(Template.name == name))
            if existing is not None:
                raise BusinessRuleError("A template with this name already exists")

            template = Template(
                name=name,
                description=description,
                content_html=content_html,
                fields_definition=[f.model_dump() for f in fields],
                created_by=created_by,
            )
            session.add(template)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise BusinessRuleError("A template with this name already exists")
            await session.refresh(template)
        return template
