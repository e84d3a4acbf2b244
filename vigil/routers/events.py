# vigil/routers/events.py
"""
Detection event log.
GET /events       — paginated event list with camera / type / time filters.
GET /events/{id}  — one event with its detected objects.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, selectinload

from vigil.database import get_db
from vigil.exceptions import NotFoundError
from vigil.models.event import Event
from vigil.schemas.event import EventDetailOut, EventOut, EventPage
from vigil.services.cache_manager import cache
from vigil.utils.timeutils import as_naive_utc

router = APIRouter()


@router.get("/events", response_model=EventPage, summary="List detection events")
def list_events(
    camera_id: Optional[str] = None,
    event_type: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Newest first."""
    since, until = as_naive_utc(since), as_naive_utc(until)

    def load():
        q = db.query(Event)
        if camera_id:
            q = q.filter(Event.camera_id == camera_id)
        if event_type:
            q = q.filter(Event.event_type == event_type)
        if since:
            q = q.filter(Event.occurred_at >= since)
        if until:
            q = q.filter(Event.occurred_at <= until)
        total = q.count()
        rows = q.order_by(Event.occurred_at.desc(), Event.id.desc()).offset(offset).limit(limit).all()
        return {"items": [EventOut.model_validate(e).model_dump() for e in rows],
                "total": total, "limit": limit, "offset": offset}

    key = f"{camera_id}|{event_type}|{since}|{until}|{limit}|{offset}"
    return cache.get_or_load("events", key, load)


@router.get("/events/{event_id}", response_model=EventDetailOut)
def get_event(event_id: int, db: Session = Depends(get_db)):
    event = db.query(Event).options(selectinload(Event.objects)).filter(Event.id == event_id).first()
    if not event:
        raise NotFoundError("Event", event_id)
    return event
