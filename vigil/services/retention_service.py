# vigil/services/retention_service.py
"""
Retention enforcement: the only code path that bulk-deletes history.

    events          older than RETENTION_EVENTS_DAYS (objects cascade, snapshots removed,
                    resolved alerts deleted, other alerts detached)
    video_segments  ended more than RETENTION_SEGMENTS_DAYS ago (files removed)
    metrics         older than RETENTION_METRICS_DAYS
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from vigil.config import settings
from vigil.models.alert import Alert
from vigil.models.event import Event
from vigil.models.metric import MetricSample
from vigil.models.video_segment import VideoSegment
from vigil.services.cache_manager import cache
from vigil.services.snapshot_service import delete_file
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

BATCH_SIZE = 500


def _expire_events(db: Session, cutoff: datetime) -> tuple[int, int]:
    events_deleted = alerts_deleted = 0
    while True:
        batch = db.query(Event).filter(Event.occurred_at < cutoff).order_by(Event.id).limit(BATCH_SIZE).all()
        if not batch:
            break
        ids = [e.id for e in batch]
        alerts_deleted += db.query(Alert).filter(
            Alert.event_id.in_(ids), Alert.status == "resolved").delete(synchronize_session=False)
        db.query(Alert).filter(Alert.event_id.in_(ids)).update(
            {Alert.event_id: None}, synchronize_session=False)
        for event in batch:
            delete_file(event.snapshot_path)
            db.delete(event)
        db.commit()
        events_deleted += len(batch)
    return events_deleted, alerts_deleted


def _expire_segments(db: Session, cutoff: datetime) -> tuple[int, int]:
    segments = db.query(VideoSegment).filter(VideoSegment.end_time < cutoff).all()
    files_deleted = 0
    for segment in segments:
        if delete_file(segment.file_path):
            files_deleted += 1
        db.delete(segment)
    db.commit()
    return len(segments), files_deleted


def enforce_retention(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    events, alerts = _expire_events(db, now - timedelta(days=settings.RETENTION_EVENTS_DAYS))
    segments, files = _expire_segments(db, now - timedelta(days=settings.RETENTION_SEGMENTS_DAYS))
    metrics = db.query(MetricSample).filter(
        MetricSample.recorded_at < now - timedelta(days=settings.RETENTION_METRICS_DAYS)
    ).delete(synchronize_session=False)
    db.commit()

    if events or segments or metrics:
        cache.invalidate_namespace("events")
        cache.invalidate_namespace("analytics")
    result = {
        "events_deleted": events,
        "alerts_deleted": alerts,
        "segments_deleted": segments,
        "files_deleted": files,
        "metrics_deleted": metrics,
    }
    logger.info(f"[RETENTION] {result}")
    return result
