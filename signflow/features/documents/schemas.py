"""
Pydantic schemas for documents and workflow transitions.
"""
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator

DocumentStatus = Literal[
    "draft",
    "data_completed",
    "verification_pending",
    "verified",
    "signature_pending",
    "client_signed",
    "certifier_review",
    "certifier_approved",
    "certification_pending",
    "certified",
    "delivered",
    "rejected",
    "cancelled",
]

TransitionAction = Literal[
    "complete_data",
    "start_verification",
    "verification_succeeded",
    "request_signature",
    "signature_captured",
    "send_to_review",
    "certifier_approve",
    "start_certification",
    "digital_certification",
    "deliver",
    "reject",
    "cancel",
]


class DocumentCreate(BaseModel):
    template_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=5, max_length=255)
    data: dict[str, Any] = Field(default_factory=dict)


class DocumentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=5, max_length=255)
    data: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "DocumentUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for the update")
        return self


class DocumentTransition(BaseModel):
    action: TransitionAction
    notes: Optional[str] = None


class DocumentSummary(BaseModel):
    id: str
    template_id: str
    name: str
    status: str
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentResponse(DocumentSummary):
    data: dict[str, Any]
    content_html: str
    content_hash: str
