"""
Pydantic schemas for signatures.
"""
import base64
import binascii
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
PDF_MAGIC = b"%PDF"


def decode_base64(value: str) -> bytes:
    """Decode plain base64 or a data URL (data:<type>;base64,<payload>)."""
    if value.startswith("data:"):
        _, _, value = value.partition(",")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Content is not valid base64")


class SignatureCapture(BaseModel):
    document_id: str = Field(..., min_length=1)
    method: Literal["id_card", "video", "biometric"] = "id_card"
    evidence: dict[str, Any] = Field(default_factory=dict)


class SigningRequestCreate(BaseModel):
    document_id: str = Field(..., min_length=1)
    signer_email: EmailStr
    signer_name: Optional[str] = Field(None, max_length=200)


class HandwrittenSignature(BaseModel):
    document_id: str = Field(..., min_length=1)
    signer_id: str = Field(..., min_length=1)
    signature_image_base64: str = Field(..., min_length=10)
    x_coord: int = Field(..., ge=0)
    y_coord: int = Field(..., ge=0)
    page_number: int = Field(..., gt=0)

    @field_validator("signature_image_base64")
    @classmethod
    def png_image(cls, v: str) -> str:
        if not decode_base64(v).startswith(PNG_MAGIC):
            raise ValueError("Signature image must be a PNG")
        return v

    def image_bytes(self) -> bytes:
        return decode_base64(self.signature_image_base64)


class CertifierUpload(BaseModel):
    document_id: str = Field(..., min_length=1)
    certifier_id: str = Field(..., min_length=1)
    signed_pdf_base64: str = Field(..., min_length=10)

    @field_validator("signed_pdf_base64")
    @classmethod
    def pdf_file(cls, v: str) -> str:
        if not decode_base64(v).startswith(PDF_MAGIC):
            raise ValueError("Signed file must be a PDF")
        return v

    def pdf_bytes(self) -> bytes:
        return decode_base64(self.signed_pdf_base64)


class SignatureResponse(BaseModel):
    id: str
    document_id: str
    signer_id: str
    kind: str
    document_hash: str
    details: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
