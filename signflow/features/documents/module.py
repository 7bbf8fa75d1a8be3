"""
Documents module: render templates into documents and drive the workflow.
"""
import hashlib
from typing import Any

from sqlalchemy import select, update

from signflow.core.errors import AuthorizationError, BusinessRuleError, NotFoundError, ValidationError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.documents.models import Document
from signflow.features.documents.schemas import (
    DocumentCreate,
    DocumentResponse,
    DocumentSummary,
    DocumentTransition,
    DocumentUpdate,
)
from signflow.features.templates.models import Template
from signflow.features.templates.module import render


# action -> (next status, roles allowed to perform it); admin may do anything
TRANSITIONS: dict[str, tuple[str, frozenset[str]]] = {
    "complete_data": ("data_completed", frozenset({"manager", "operator"})),
    "start_verification": ("verification_pending", frozenset({"manager", "operator"})),
    "verification_succeeded": ("verified", frozenset({"certifier", "validator"})),
    "request_signature": ("signature_pending", frozenset({"manager", "operator"})),
    "signature_captured": ("client_signed", frozenset({"operator", "client"})),
    "send_to_review": ("certifier_review", frozenset({"operator"})),
    "certifier_approve": ("certifier_approved", frozenset({"certifier"})),
    "start_certification": ("certification_pending", frozenset({"certifier"})),
    "digital_certification": ("certified", frozenset({"certifier"})),
    "deliver": ("delivered", frozenset()),
    "reject": ("rejected", frozenset({"certifier", "operator"})),
    "cancel": ("cancelled", frozenset({"operator", "client"})),
}

FINAL_STATUSES = frozenset({"delivered", "rejected", "cancelled"})


def content_hash(content_html: str) -> str:
    return hashlib.sha256(content_html.encode("utf-8")).hexdigest()


def missing_required_fields(fields_definition: list[dict[str, Any]], data: dict[str, Any]) -> list[str]:
    return [
        field["name"]
        for field in fields_definition
        if field.get("required") and data.get(field["name"]) in (None, "")
    ]


class DocumentsModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="documents",
        version="1.2.0",
        dependencies=("templates",),
        permissions=frozenset({
            "documents:read", "documents:create", "documents:update",
            "documents:delete", "documents:transition",
        }),
        routes=(
            "GET /",
            "GET /{document_id}",
            "POST /",
            "PUT /{document_id}",
            "DELETE /{document_id}",
            "POST /{document_id}/transition",
        ),
    )
    health_table = "documents"

    def get_routes(self):
        return {
            "GET /": self.list_documents,
            "GET /{document_id}": self.get_document,
            "POST /": self.create_document,
            "PUT /{document_id}": self.update_document,
            "DELETE /{document_id}": self.delete_document,
            "POST /{document_id}/transition": self.transition_document,
        }

    async def list_documents(self, payload: RequestPayload) -> list[dict[str, Any]]:
        """Admins see every document, everyone else only their own."""
        user = payload["user"]
        stmt = select(Document).order_by(Document.created_at.desc())
        if not user.is_admin:
            stmt = stmt.where(Document.created_by == user.subject_id)
        if payload.get("status"):
            stmt = stmt.where(Document.status == payload["status"])

        async with self.db() as session:
            result = await session.execute(stmt)
            return [DocumentSummary.model_validate(d).model_dump() for d in result.scalars().all()]

    async def get_document(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            document = await session.get(Document, payload["document_id"])
        if document is None:
            raise NotFoundError("Document")
        return DocumentResponse.model_validate(document).model_dump()

    async def create_document(self, payload: RequestPayload) -> dict[str, Any]:
        data = DocumentCreate.model_validate(payload)

        async with self.db() as session:
            template = await session.get(Template, data.template_id)
            if template is None:
                raise NotFoundError("Template")

            missing = missing_required_fields(template.fields_definition, data.data)
            if missing:
                raise ValidationError.single("data", f"Required template fields missing: {', '.join(missing)}")

            content_html = render(template.content_html, data.data)
            document = Document(
                template_id=template.id,
                name=data.name,
                data=data.data,
                content_html=content_html,
                content_hash=content_hash(content_html),
                created_by=payload["user"].subject_id,
            )
            session.add(document)
            await session.commit()
            await session.refresh(document)

        self.log.info("Document %s created from template %s", document.id, template.id)
        return DocumentResponse.model_validate(document).model_dump()

    async def update_document(self, payload: RequestPayload) -> dict[str, Any]:
        """Update name and/or data; new data is merged and the content re-rendered."""
        data = DocumentUpdate.model_validate(payload)

        async with self.db() as session:
            document = await session.get(Document, payload["document_id"])
            if document is None:
                raise NotFoundError("Document")
            if document.status in FINAL_STATUSES:
                raise BusinessRuleError(f"Document in status '{document.status}' cannot be modified")

            if data.name is not None:
                document.name = data.name
            if data.data is not None:
                template = await session.get(Template, document.template_id)
                if template is None:
                    raise NotFoundError("Template", "Template linked to this document not found")
                merged = {**document.data, **data.data}
                document.data = merged
                document.content_html = render(template.content_html, merged)
                document.content_hash = content_hash(document.content_html)

            await session.commit()
            await session.refresh(document)
        return DocumentResponse.model_validate(document).model_dump()

    async def delete_document(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            document = await session.get(Document, payload["document_id"])
            if document is None:
                raise NotFoundError("Document")
            await session.delete(document)
            await session.commit()
        return {"success": True, "message": "Document deleted successfully"}

    async def transition_document(self, payload: RequestPayload) -> dict[str, Any]:
        data = DocumentTransition.model_validate(payload)
        user = payload["user"]
        document_id = payload["document_id"]
        next_status, allowed_roles = TRANSITIONS[data.action]

        if not user.is_admin and user.role not in allowed_roles:
            raise AuthorizationError(f"Permission denied. Role '{user.role}' cannot perform '{data.action}'")

        async with self.db() as session:
            document = await session.get(Document, document_id)
            if document is None:
                raise NotFoundError("Document")
            current = document.status
            if current in FINAL_STATUSES:
                raise BusinessRuleError(f"Transition cannot be performed from final status '{current}'")

            # Compare-and-set so a concurrent transition is not silently overwritten
            result = await session.execute(
                update(Document)
                .where(Document.id == document_id, Document.status == current)
                .values(status=next_status)
            )
            if result.rowcount != 1:
                await session.rollback()
                raise BusinessRuleError("Document status changed concurrently, retry the transition")
            await session.commit()

        self.log.info("Document %s: %s -> %s via %s", document_id, current, next_status, data.action)
        return {
            "document_id": document_id,
            "previous_status": current,
            "new_status": next_status,
            "notes": data.notes,
            "message": f"Document moved to '{next_status}' by action '{data.action}'",
        }
