# vigil/services/alert_service.py
"""
Shared alert lifecycle service.
Used by the event processor (rule alerts) and the alerts router (manual alerts,
acknowledge, resolve). Notifications go out in the background via notification_service.
"""

import asyncio
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from vigil.exceptions import ConflictError, NotFoundError
from vigil.models.alert import Alert
from vigil.services.cache_manager import cache
from vigil.services.notification_service import alert_payload, notifier
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

# Allowed status transitions
TRANSITIONS = {
    "open": {"acknowledged", "resolved"},
    "acknowledged": {"resolved"},
    "resolved": set(),
}

_background_tasks: set = set()


def _schedule_notification(alert: Alert):
    if not notifier.enabled:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(notifier.notify(alert_payload(alert)))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def create_alert(db: Session, *, camera_id: str, severity: str, title: str,
                       description: Optional[str] = None, event_id: Optional[int] = None,
                       rule_id: Optional[int] = None, dedup_key: Optional[str] = None,
                       source: str = "rule") -> Alert:
    """Create and persist an open alert. Always commits immediately."""
    alert = Alert(camera_id=camera_id, severity=severity, title=title, description=description,
                  event_id=event_id, rule_id=rule_id, dedup_key=dedup_key, source=source,
                  status="open", triggered_at=datetime.utcnow())
    db.add(alert)
    db.commit()
    db.refresh(alert)
    cache.invalidate_namespace("analytics")
    logger.warning(f"[ALERT][{severity.upper()}] {title} — {camera_id}")
    _schedule_notification(alert)
    return alert


def get_alert(db: Session, alert_id: int) -> Alert:
    alert = db.get(Alert, alert_id)
    if not alert:
        raise NotFoundError("Alert", alert_id)
    return alert


def _transition(alert: Alert, new_status: str):
    if new_status not in TRANSITIONS.get(alert.status, set()):
        raise ConflictError(f"Alert {alert.id} cannot move from '{alert.status}' to '{new_status}'")
    alert.status = new_status


def acknowledge_alert(db: Session, alert_id: int, user: str) -> Alert:
    alert = get_alert(db, alert_id)
    _transition(alert, "acknowledged")
    alert.acknowledged_at = datetime.utcnow()
    alert.acknowledged_by = user
    db.commit()
    db.refresh(alert)
    cache.invalidate_namespace("analytics")
    logger.info(f"[ALERT] {alert.id} acknowledged by {user}")
    return alert


def resolve_alert(db: Session, alert_id: int, note: Optional[str] = None) -> Alert:
    alert = get_alert(db, alert_id)
    _transition(alert, "resolved")
    alert.resolved_at = datetime.utcnow()
    alert.resolution_note = note
    db.commit()
    db.refresh(alert)
    cache.invalidate_namespace("analytics")
    logger.info(f"[ALERT] {alert.id} resolved")
    return alert
