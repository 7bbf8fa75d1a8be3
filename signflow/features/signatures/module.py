"""
Signatures module: capture, handwritten, signing requests and certification.
"""
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import update

from signflow.core.errors import AuthorizationError, BusinessRuleError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleDescriptor, RequestPayload
from signflow.features.documents.models import Document
from signflow.features.documents.module import FINAL_STATUSES
from signflow.features.signatures.models import Signature, SigningRequest
from signflow.features.signatures.schemas import (
    CertifierUpload,
    HandwrittenSignature,
    SignatureCapture,
    SignatureResponse,
    SigningRequestCreate,
)

SIGNING_URL = "https://sign.signflow.local/sign-document/{document_id}/{token}"
SIGNING_REQUEST_TTL = timedelta(hours=72)

# Statuses from which a certifier may upload the signed PDF
CERTIFIABLE_STATUSES = frozenset({"certifier_approved", "certification_pending"})
CERTIFIER_ROLES = frozenset({"certifier"})


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _serialize(signature: Signature) -> dict[str, Any]:
    return SignatureResponse.model_validate(signature).model_dump()


class SignaturesModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="signatures",
        version="1.1.0",
        dependencies=("documents",),
        permissions=frozenset({
            "signatures:capture", "signatures:verify", "signatures:request_signing",
            "signatures:apply_handwritten", "signatures:certifier_upload",
        }),
        routes=(
            "POST /capture",
            "GET /{signature_id}/verify",
            "POST /request-signing",
            "POST /handwritten",
            "POST /certifier-upload",
        ),
    )
    health_table = "signatures"

    def get_routes(self):
        return {
            "POST /capture": self.capture_signature,
            "GET /{signature_id}/verify": self.verify_signature,
            "POST /request-signing": self.request_signing,
            "POST /handwritten": self.apply_handwritten,
            "POST /certifier-upload": self.certifier_upload,
        }

    @staticmethod
    async def _signable_document(session, document_id: str) -> Document:
        document = await session.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document")
        if document.status in FINAL_STATUSES:
            raise BusinessRuleError(f"Document in status '{document.status}' cannot be signed")
        return document

    async def capture_signature(self, payload: RequestPayload) -> dict[str, Any]:
        data = SignatureCapture.model_validate(payload)
        user = payload["user"]

        async with self.db() as session:
            document = await self._signable_document(session, data.document_id)
            signature = Signature(
                document_id=document.id,
                signer_id=user.subject_id,
                kind="capture",
                document_hash=document.content_hash,
                details={"method": data.method, "evidence": data.evidence},
                created_by=user.subject_id,
            )
            session.add(signature)
            await session.commit()
            await session.refresh(signature)

        self.log.info("Signature capture %s (%s) on document %s", signature.id, data.method, document.id)
        return {"success": True, "message": "Signature capture recorded", "signature": _serialize(signature)}

    async def verify_signature(self, payload: RequestPayload) -> dict[str, Any]:
        """A signature is valid while the document content still matches what was signed."""
        async with self.db() as session:
            signature = await session.get(Signature, payload["signature_id"])
            if signature is None:
                raise NotFoundError("Signature")
            document = await session.get(Document, signature.document_id)

        if document is None:
            valid, reason = False, "Signed document no longer exists"
        elif document.content_hash != signature.document_hash:
            valid, reason = False, "Document content changed after signing"
        else:
            valid, reason = True, "Signature matches the current document content"

        return {
            "signature_id": signature.id,
            "document_id": signature.document_id,
            "kind": signature.kind,
            "signed_at": signature.created_at,
            "valid": valid,
            "message": reason,
        }

    async def request_signing(self, payload: RequestPayload) -> dict[str, Any]:
        data = SigningRequestCreate.model_validate(payload)
        user = payload["user"]
        token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + SIGNING_REQUEST_TTL

        async with self.db() as session:
            document = await self._signable_document(session, data.document_id)
            request = SigningRequest(
                document_id=document.id,
                signer_email=data.signer_email,
                signer_name=data.signer_name,
                token_hash=sha256(token.encode("utf-8")),
                expires_at=expires_at,
                created_by=user.subject_id,
            )
            session.add(request)
            await session.commit()
            await session.refresh(request)

        # Delivery is simulated; the link carries the only copy of the token
        self.log.info(
            "Signing request %s for document %s sent to %s via %s",
            request.id, document.id, data.signer_email, self.context.mail.sender,
        )
        return {
            "success": True,
            "message": "Signing request sent",
            "request_id": request.id,
            "signing_url": SIGNING_URL.format(document_id=document.id, token=token),
            "expires_at": expires_at,
        }

    async def apply_handwritten(self, payload: RequestPayload) -> dict[str, Any]:
        """
        Place a handwritten signature image on a document page.

        A document waiting for the client's signature moves to client_signed.
        """
        data = HandwrittenSignature.model_validate(payload)
        user = payload["user"]

        async with self.db() as session:
            document = await self._signable_document(session, data.document_id)
            signature = Signature(
                document_id=document.id,
                signer_id=data.signer_id,
                kind="handwritten",
                document_hash=document.content_hash,
                artifact_hash=sha256(data.image_bytes()),
                details={"x": data.x_coord, "y": data.y_coord, "page": data.page_number},
                created_by=user.subject_id,
            )
            session.add(signature)
            if document.status == "signature_pending":
                await session.execute(
                    update(Document)
                    .where(Document.id == document.id, Document.status == "signature_pending")
                    .values(status="client_signed")
                )
            await session.commit()
            await session.refresh(signature)
            await session.refresh(document)

        self.log.info("Handwritten signature %s applied to document %s page %d", signature.id, document.id, data.page_number)
        return {
            "success": True,
            "message": "Handwritten signature applied",
            "document_status": document.status,
            "signature": _serialize(signature),
        }

    async def certifier_upload(self, payload: RequestPayload) -> dict[str, Any]:
        """Store the certifier's signed PDF and mark the document certified."""
        data = CertifierUpload.model_validate(payload)
        user = payload["user"]

        if not user.is_admin and user.role not in CERTIFIER_ROLES:
            raise AuthorizationError("Only certifiers can upload certified documents")
        if not user.is_admin and data.certifier_id != user.subject_id:
            raise AuthorizationError("Cannot certify on behalf of another certifier")

        async with self.db() as session:
            document = await session.get(Document, data.document_id)
            if document is None:
                raise NotFoundError("Document")
            current = document.status
            if current not in CERTIFIABLE_STATUSES:
                raise BusinessRuleError(f"Document in status '{current}' is not ready for certification")

            moved = await session.execute(
                update(Document)
                .where(Document.id == document.id, Document.status == current)
                .values(status="certified")
            )
            if moved.rowcount != 1:
                await session.rollback()
                raise BusinessRuleError("Document status changed concurrently, retry the upload")

            signature = Signature(
                document_id=document.id,
                signer_id=data.certifier_id,
                kind="certifier",
                document_hash=document.content_hash,
                artifact_hash=sha256(data.pdf_bytes()),
                details={"previous_status": current},
                created_by=user.subject_id,
            )
            session.add(signature)
            await session.commit()
            await session.refresh(signature)

        self.log.info("Document %s certified by %s", document.id, data.certifier_id)
        return {
            "success": True,
            "message": "Certified PDF uploaded, document certified",
            "previous_status": current,
            "new_status": "certified",
            "signature": _serialize(signature),
        }
