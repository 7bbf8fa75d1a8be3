"""
Pydantic schemas for user management.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

from signflow.features.auth.roles import Role


class UserCreate(BaseModel):
    """Schema for an account created by staff. Any role may be assigned."""
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Role = "client"


class UserUpdate(BaseModel):
    """Schema for updating an account. Only provided fields change."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[Role] = None
    password: Optional[str] = Field(None, min_length=6)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "UserUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for the update")
        return self


class UserDetail(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
