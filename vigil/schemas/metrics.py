from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class MetricSampleOut(BaseModel):
    name: str
    value: float
    labels: Optional[dict]
    recorded_at: datetime

    class Config:
        from_attributes = True


class MetricBucketOut(BaseModel):
    bucket_start: datetime
    count: int
    avg: float
    min: float
    max: float


class AnalyticsSummaryOut(BaseModel):
    since: datetime
    until: datetime
    total_events: int
    total_alerts: int
    events_by_camera: dict[str, int]
    events_by_type: dict[str, int]
    alerts_by_severity: dict[str, int]
    alerts_by_status: dict[str, int]
