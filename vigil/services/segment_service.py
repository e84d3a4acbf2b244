# vigil/services/segment_service.py
"""Video segment registry: metadata for recorded clips and the events inside them."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from vigil.exceptions import ConflictError, InvalidRequestError, NotFoundError
from vigil.models.event import Event
from vigil.models.video_segment import VideoSegment
from vigil.schemas.video_segment import SegmentCreate
from vigil.services.camera_service import get_camera
from vigil.utils.logger import get_logger
from vigil.utils.timeutils import as_naive_utc

logger = get_logger(__name__)


def register_segment(db: Session, body: SegmentCreate) -> VideoSegment:
    get_camera(db, body.camera_id)
    if body.end_time <= body.start_time:
        raise InvalidRequestError("end_time must be after start_time")
    if db.query(VideoSegment).filter(VideoSegment.file_path == body.file_path).first():
        raise ConflictError(f"Segment '{body.file_path}' is already registered")

    segment = VideoSegment(**body.model_dump(), created_at=datetime.utcnow())
    db.add(segment)
    db.commit()
    db.refresh(segment)
    logger.info(f"[STORAGE] Segment {segment.id} registered for {segment.camera_id}: {segment.file_path}")
    return segment


def get_segment(db: Session, segment_id: int) -> VideoSegment:
    segment = db.get(VideoSegment, segment_id)
    if not segment:
        raise NotFoundError("Segment", segment_id)
    return segment


def list_segments(db: Session, camera_id: Optional[str] = None, since: Optional[datetime] = None,
                  until: Optional[datetime] = None, limit: int = 50, offset: int = 0) -> list[VideoSegment]:
    """Segments overlapping [since, until]."""
    since, until = as_naive_utc(since), as_naive_utc(until)
    q = db.query(VideoSegment)
    if camera_id:
        q = q.filter(VideoSegment.camera_id == camera_id)
    if since:
        q = q.filter(VideoSegment.end_time >= since)
    if until:
        q = q.filter(VideoSegment.start_time <= until)
    return q.order_by(VideoSegment.start_time.desc()).offset(offset).limit(limit).all()


def segment_event_ids(db: Session, segment: VideoSegment) -> list[int]:
    rows = db.query(Event.id).filter(
        Event.camera_id == segment.camera_id,
        Event.occurred_at >= segment.start_time,
        Event.occurred_at <= segment.end_time,
    ).order_by(Event.occurred_at).all()
    return [r[0] for r in rows]
