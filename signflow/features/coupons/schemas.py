"""
Pydantic schemas for coupons.
"""
from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., gt=0)
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)
    document_types: list[str] = Field(default_factory=lambda: ["all"])

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("expires_at")
    @classmethod
    def expires_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        return v.astimezone(timezone.utc) if v.tzinfo else v.replace(tzinfo=timezone.utc)

    @model_validator(mode="after")
    def percentage_in_range(self) -> "CouponCreate":
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("A percentage discount cannot exceed 100")
        return self


class CouponValidate(BaseModel):
    code: str = Field(..., min_length=1)
    document_type: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class CouponApply(CouponValidate):
    document_id: str = Field(..., min_length=1)


class CouponResponse(BaseModel):
    id: str
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    current_uses: int
    document_types: list[str]
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
