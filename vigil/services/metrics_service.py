# vigil/services/metrics_service.py
"""
Metrics time series and analytics aggregates.
Samples are written by the pipeline; the API reads them raw or bucketed.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from vigil.exceptions import InvalidRequestError
from vigil.models.alert import Alert
from vigil.models.event import Event
from vigil.models.metric import MetricSample
from vigil.services.cache_manager import cache
from vigil.utils.timeutils import as_naive_utc

DEFAULT_WINDOW = timedelta(hours=24)
SUMMARY_ALIGN = timedelta(minutes=1)
_EPOCH = datetime(1970, 1, 1)


def record_metric(db: Session, name: str, value: float, labels: Optional[dict] = None,
                  at: Optional[datetime] = None, commit: bool = True) -> MetricSample:
    sample = MetricSample(name=name, value=float(value), labels=labels or {},
                          recorded_at=at or datetime.utcnow())
    db.add(sample)
    if commit:
        db.commit()
    return sample


def _utcnow() -> datetime:
    return datetime.utcnow()


def _window(since: Optional[datetime], until: Optional[datetime],
            align: Optional[timedelta] = None) -> tuple[datetime, datetime]:
    """
    Resolve a query window to naive UTC. A defaulted `until` is rounded up
    to `align` so repeated calls share a cache key.
    """
    since, until = as_naive_utc(since), as_naive_utc(until)
    if until is None:
        until = _utcnow()
        if align:
            step = align.total_seconds()
            elapsed = (until - _EPOCH).total_seconds()
            until = _EPOCH + timedelta(seconds=math.ceil(elapsed / step) * step)
    since = since or until - DEFAULT_WINDOW
    if since >= until:
        raise InvalidRequestError("'since' must be before 'until'")
    return since, until


def query_metrics(db: Session, name: str, since: Optional[datetime] = None, until: Optional[datetime] = None,
                  bucket_seconds: Optional[int] = None) -> list:
    since, until = _window(since, until)
    samples = db.query(MetricSample).filter(
        MetricSample.name == name,
        MetricSample.recorded_at >= since,
        MetricSample.recorded_at <= until,
    ).order_by(MetricSample.recorded_at).all()
    if not bucket_seconds:
        return samples
    if bucket_seconds < 1:
        raise InvalidRequestError("bucket_seconds must be >= 1")

    buckets: dict[int, list[float]] = {}
    for s in samples:
        index = int((s.recorded_at - _EPOCH).total_seconds()) // bucket_seconds
        buckets.setdefault(index, []).append(s.value)
    return [
        {
            "bucket_start": _EPOCH + timedelta(seconds=index * bucket_seconds),
            "count": len(values),
            "avg": sum(values) / len(values),
            "min": min(values),
            "max": max(values),
        }
        for index, values in sorted(buckets.items())
    ]


def analytics_summary(db: Session, since: Optional[datetime] = None, until: Optional[datetime] = None) -> dict:
    since, until = _window(since, until, align=SUMMARY_ALIGN)

    def load():
        def grouped(column, model, time_column):
            rows = db.query(column, func.count(model.id)).filter(
                time_column >= since, time_column <= until).group_by(column).all()
            return {key: count for key, count in rows}

        by_camera = grouped(Event.camera_id, Event, Event.occurred_at)
        by_severity = grouped(Alert.severity, Alert, Alert.triggered_at)
        return {
            "since": since,
            "until": until,
            "total_events": sum(by_camera.values()),
            "total_alerts": sum(by_severity.values()),
            "events_by_camera": by_camera,
            "events_by_type": grouped(Event.event_type, Event, Event.occurred_at),
            "alerts_by_severity": by_severity,
            "alerts_by_status": grouped(Alert.status, Alert, Alert.triggered_at),
        }

    return cache.get_or_load("analytics", f"{since.isoformat()}|{until.isoformat()}", load)
