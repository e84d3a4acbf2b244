from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional

Severity = Literal["low", "medium", "high", "critical"]


class AlertCreate(BaseModel):
    """Manual alert raised by an operator or an external system."""
    camera_id: str
    severity: Severity = "medium"
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    event_id: Optional[int] = None


class AlertAcknowledge(BaseModel):
    user: str = Field(..., min_length=1, max_length=100)


class AlertResolve(BaseModel):
    note: Optional[str] = None


class AlertOut(BaseModel):
    id: int
    event_id: Optional[int]
    rule_id: Optional[int]
    camera_id: str
    severity: str
    title: str
    description: Optional[str]
    status: str
    dedup_key: Optional[str]
    source: str
    triggered_at: datetime
    acknowledged_at: Optional[datetime]
    acknowledged_by: Optional[str]
    resolved_at: Optional[datetime]
    resolution_note: Optional[str]

    class Config:
        from_attributes = True


class AlertPage(BaseModel):
    items: list[AlertOut]
    total: int
    limit: int
    offset: int
