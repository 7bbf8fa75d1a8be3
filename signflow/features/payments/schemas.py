"""
Pydantic schemas for payments.
"""
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict

PaymentStatus = Literal["PENDING", "PROCESSING", "COMPLETED", "FAILED"]


class PaymentCreate(BaseModel):
    document_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    currency: str = Field("CLP", min_length=3, max_length=3)


class PaymentProcess(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_details: dict[str, Any] = Field(default_factory=dict)


class PaymentResponse(BaseModel):
    id: str
    user_id: str
    document_id: str
    amount: float
    currency: str
    status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
