# vigil/routers/segments.py
"""Recorded video segment metadata."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vigil.database import get_db
from vigil.schemas.video_segment import SegmentCreate, SegmentDetailOut, SegmentOut
from vigil.services import segment_service

router = APIRouter()


@router.get("/segments", response_model=list[SegmentOut], summary="Segments overlapping a time range")
def list_segments(
    camera_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return segment_service.list_segments(db, camera_id, since, until, limit, offset)


@router.post("/segments", response_model=SegmentOut, status_code=status.HTTP_201_CREATED)
def register_segment(body: SegmentCreate, db: Session = Depends(get_db)):
    return segment_service.register_segment(db, body)


@router.get("/segments/{segment_id}", response_model=SegmentDetailOut)
def get_segment(segment_id: int, db: Session = Depends(get_db)):
    segment = segment_service.get_segment(db, segment_id)
    out = SegmentDetailOut.model_validate(segment)
    out.event_ids = segment_service.segment_event_ids(db, segment)
    return out
