"""
Pydantic schemas for identity checks.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

RUT_PATTERN = r"^[0-9]{7,8}-[0-9K]$"


class RutValidate(BaseModel):
    rut: str = Field(..., pattern=RUT_PATTERN)

    @field_validator("rut", mode="before")
    @classmethod
    def strip_dots(cls, v):
        # Accept 12.345.678-5 as well as 12345678-5
        if isinstance(v, str):
            return v.replace(".", "").strip().upper()
        return v


class OtpSend(BaseModel):
    phone: str = Field(..., min_length=8, max_length=20)
    user_id: Optional[str] = None


class OtpVerify(BaseModel):
    phone: str = Field(..., min_length=8, max_length=20)
    code: str = Field(..., pattern=r"^[0-9]{6}$")


class BiometricData(BaseModel):
    face_match_score: Optional[float] = Field(None, alias="faceMatchScore", ge=0, le=1)
    liveness_detected: Optional[bool] = Field(None, alias="livenessDetected")

    model_config = ConfigDict(populate_by_name=True)


class BiometricVerify(BaseModel):
    biometric_data: BiometricData = Field(..., alias="biometricData")

    model_config = ConfigDict(populate_by_name=True)
