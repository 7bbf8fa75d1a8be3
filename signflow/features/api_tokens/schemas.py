"""
Pydantic schemas for API tokens.
"""
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator


def as_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    return v.astimezone(timezone.utc) if v.tzinfo else v.replace(tzinfo=timezone.utc)


class ApiTokenCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = None
    user_id: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)
    rate_limit_per_minute: int = Field(100, gt=0, le=1000)
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def expires_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class ApiTokenUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = None
    permissions: Optional[list[str]] = None
    rate_limit_per_minute: Optional[int] = Field(None, gt=0, le=1000)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("expires_at")
    @classmethod
    def expires_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "ApiTokenUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for the update")
        return self


class ApiTokenValidate(BaseModel):
    token: str = Field(..., min_length=1)
    endpoint: str = Field("/", max_length=255)
    method: str = Field("GET", max_length=10)

    @field_validator("method")
    @classmethod
    def upper_method(cls, v: str) -> str:
        return v.upper()


class ApiTokenResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    user_id: str
    token_prefix: str
    permissions: list[str]
    rate_limit_per_minute: int
    expires_at: Optional[datetime] = None
    is_active: bool
    last_used_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}
