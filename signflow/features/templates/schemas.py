"""
Pydantic schemas for template requests and responses.
"""
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator


class FieldDefinition(BaseModel):
    name: str = Field(..., min_length=1)
    type: Literal["text", "number", "date", "checkbox"] = "text"
    required: bool = False


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = None
    content_html: str = Field(..., min_length=1)
    fields_definition: list[FieldDefinition] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = None
    content_html: Optional[str] = Field(None, min_length=1)
    fields_definition: Optional[list[FieldDefinition]] = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "TemplateUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for the update")
        return self


class TemplateUploadConvert(BaseModel):
    file_content_base64: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    template_name: str = Field(..., min_length=3, max_length=255)
    template_description: Optional[str] = None


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    content_html: str
    fields_definition: list[FieldDefinition]
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
