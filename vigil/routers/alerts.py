# vigil/routers/alerts.py
"""Alert listing, manual alerts and the acknowledge / resolve workflow."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vigil.database import get_db
from vigil.exceptions import NotFoundError
from vigil.models.alert import Alert
from vigil.models.event import Event
from vigil.schemas.alert import AlertAcknowledge, AlertCreate, AlertOut, AlertPage, AlertResolve
from vigil.services import alert_service
from vigil.services.camera_service import get_camera

router = APIRouter()


@router.get("/alerts", response_model=AlertPage, summary="All alerts, filterable")
def list_alerts(
    status: Optional[str] = None,
    severity: Optional[str] = None,
    camera_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Newest first. Filter by status, severity or camera_id."""
    q = db.query(Alert)
    if status:
        q = q.filter(Alert.status == status)
    if severity:
        q = q.filter(Alert.severity == severity)
    if camera_id:
        q = q.filter(Alert.camera_id == camera_id)
    total = q.count()
    items = q.order_by(Alert.triggered_at.desc(), Alert.id.desc()).offset(offset).limit(limit).all()
    return {"items": [AlertOut.model_validate(a) for a in items], "total": total, "limit": limit, "offset": offset}


@router.post("/alerts", response_model=AlertOut, status_code=status.HTTP_201_CREATED,
             summary="Raise a manual alert")
async def create_manual_alert(body: AlertCreate, db: Session = Depends(get_db)):
    get_camera(db, body.camera_id)
    if body.event_id is not None and not db.get(Event, body.event_id):
        raise NotFoundError("Event", body.event_id)
    return await alert_service.create_alert(
        db, camera_id=body.camera_id, severity=body.severity, title=body.title,
        description=body.description, event_id=body.event_id, source="manual",
    )


@router.get("/alerts/{alert_id}", response_model=AlertOut)
def get_alert(alert_id: int, db: Session = Depends(get_db)):
    return alert_service.get_alert(db, alert_id)


@router.put("/alerts/{alert_id}/acknowledge", response_model=AlertOut)
def acknowledge_alert(alert_id: int, body: AlertAcknowledge, db: Session = Depends(get_db)):
    return alert_service.acknowledge_alert(db, alert_id, body.user)


@router.put("/alerts/{alert_id}/resolve", response_model=AlertOut)
def resolve_alert(alert_id: int, body: Optional[AlertResolve] = None, db: Session = Depends(get_db)):
    return alert_service.resolve_alert(db, alert_id, body.note if body else None)
