from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional


class CameraCreate(BaseModel):
    camera_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    stream_url: str
    location: Optional[str] = None
    enabled: bool = True
    zones: dict[str, list[list[float]]] = {}
    username: Optional[str] = None
    password: Optional[str] = None


class CameraUpdate(BaseModel):
    name: Optional[str] = None
    stream_url: Optional[str] = None
    location: Optional[str] = None
    enabled: Optional[bool] = None
    zones: Optional[dict[str, list[list[float]]]] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("name", "stream_url", "enabled")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class CameraOut(BaseModel):
    id: int
    camera_id: str
    name: str
    stream_url: str
    location: Optional[str]
    status: str
    enabled: bool
    zones: Optional[dict]
    created_at: datetime
    updated_at: Optional[datetime]
    last_seen_at: Optional[datetime]

    class Config:
        from_attributes = True


class CameraPage(BaseModel):
    items: list[CameraOut]
    total: int
    limit: int
    offset: int
