from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class EventObjectOut(BaseModel):
    id: int
    label: str
    confidence: float
    bbox: list[float]
    zone_id: Optional[str]
    source_model: Optional[str]
    attributes: Optional[dict]

    class Config:
        from_attributes = True


class EventOut(BaseModel):
    id: int
    camera_id: str
    event_type: str
    occurred_at: datetime
    max_confidence: float
    object_count: int
    snapshot_path: Optional[str]
    models: Optional[list[str]]
    created_at: datetime

    class Config:
        from_attributes = True


class EventDetailOut(EventOut):
    objects: list[EventObjectOut] = []


class EventPage(BaseModel):
    items: list[EventOut]
    total: int
    limit: int
    offset: int
