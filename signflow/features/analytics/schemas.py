"""
Query schemas for analytics reports.
"""
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TimeRange = Literal["7d", "30d", "90d", "all"]


class RangeQuery(BaseModel):
    time_range: TimeRange = Field("30d", alias="timeRange")

    model_config = ConfigDict(populate_by_name=True)

    def since(self) -> Optional[datetime]:
        if self.time_range == "all":
            return None
        return datetime.now(timezone.utc) - timedelta(days=int(self.time_range[:-1]))


class UsageQuery(BaseModel):
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    user_id: Optional[str] = Field(None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("start_date", "end_date")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return v.astimezone(timezone.utc) if v.tzinfo else v.replace(tzinfo=timezone.utc)

    @model_validator(mode="after")
    def ordered_range(self) -> "UsageQuery":
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self
