# vigil/routers/metrics.py
"""Metrics time series + analytics summary."""

from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from vigil.database import get_db
from vigil.schemas.metrics import AnalyticsSummaryOut, MetricBucketOut, MetricSampleOut
from vigil.services import metrics_service

router = APIRouter()


@router.get("/metrics", response_model=Union[list[MetricBucketOut], list[MetricSampleOut]],
            summary="Raw or bucketed metric samples")
def get_metrics(
    name: str,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    bucket_seconds: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    """Defaults to the last 24 hours. With bucket_seconds, returns count/avg/min/max per bucket."""
    rows = metrics_service.query_metrics(db, name, since, until, bucket_seconds)
    if bucket_seconds:
        return rows
    return [MetricSampleOut.model_validate(r) for r in rows]


@router.get("/analytics/summary", response_model=AnalyticsSummaryOut,
            summary="Event / alert counts over a time range")
def analytics_summary(since: Optional[datetime] = None, until: Optional[datetime] = None,
                      db: Session = Depends(get_db)):
    return metrics_service.analytics_summary(db, since, until)
