from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from vigil.utils.timeutils import as_naive_utc


class SegmentCreate(BaseModel):
    camera_id: str
    file_path: str = Field(..., min_length=1, max_length=500)
    start_time: datetime
    end_time: datetime
    size_bytes: Optional[int] = Field(None, ge=0)
    codec: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, value):
        return as_naive_utc(value)


class SegmentOut(BaseModel):
    id: int
    camera_id: str
    file_path: str
    start_time: datetime
    end_time: datetime
    size_bytes: Optional[int]
    codec: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class SegmentDetailOut(SegmentOut):
    event_ids: list[int] = []
