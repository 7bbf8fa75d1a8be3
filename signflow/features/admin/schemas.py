"""
Pydantic schemas for platform administration.
"""
from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

Plan = Literal["free", "basic", "premium", "enterprise"]
SubscriptionStatus = Literal["active", "expired", "cancelled", "pending"]


def as_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    return v.astimezone(timezone.utc) if v.tzinfo else v.replace(tzinfo=timezone.utc)


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)
    is_system: bool = False

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip().lower()


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = None
    permissions: Optional[list[str]] = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v is not None else v

    @model_validator(mode="after")
    def at_least_one_field(self) -> "RoleUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for the update")
        return self


class RoleResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    permissions: list[str]
    is_system: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SubscriptionCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    plan_name: Plan
    start_date: datetime
    end_date: datetime
    price: float = Field(..., ge=0)
    currency: Literal["CLP", "USD"] = "CLP"
    status: SubscriptionStatus = "pending"

    @field_validator("start_date", "end_date")
    @classmethod
    def dates_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def ordered_period(self) -> "SubscriptionCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class SubscriptionUpdate(BaseModel):
    plan_name: Optional[Plan] = None
    end_date: Optional[datetime] = None
    price: Optional[float] = Field(None, ge=0)
    status: Optional[SubscriptionStatus] = None

    @field_validator("end_date")
    @classmethod
    def end_date_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "SubscriptionUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for the update")
        return self


class SubscriptionResponse(BaseModel):
    id: str
    user_id: str
    plan_name: str
    start_date: datetime
    end_date: datetime
    price: float
    currency: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
