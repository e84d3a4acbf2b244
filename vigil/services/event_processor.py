# vigil/services/event_processor.py
"""
Turns an AnalysisResult into a stored Event, then runs the rules engine and
raises one alert per triggered rule. Frames without detections leave no trace.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from vigil.models.camera import Camera
from vigil.models.event import Event, EventObject
from vigil.services import rules_engine
from vigil.services.alert_service import create_alert
from vigil.services.analysis_engine import AnalysisResult
from vigil.services.cache_manager import cache
from vigil.services.snapshot_service import save_snapshot
from vigil.services.stream_handler import Frame
from vigil.utils.logger import get_logger

logger = get_logger(__name__)


def event_type_for(result: AnalysisResult) -> str:
    return f"{result.primary_label}_detected"


def _alert_title(rule, event: Event) -> str:
    return f"{rule.name}: {event.event_type} on {event.camera_id}"


def _alert_description(triggered, event: Event) -> str:
    labels = sorted({o.label for o in event.objects})
    return (f"{event.object_count} object(s) [{', '.join(labels)}], max confidence "
            f"{event.max_confidence:.2f}; matched {', '.join(triggered.matched_conditions)}")


async def process_result(result: AnalysisResult, db: Session, frame: Optional[Frame] = None,
                         now: Optional[datetime] = None) -> Optional[Event]:
    if not result.has_detections:
        return None

    event_type = event_type_for(result)
    snapshot_path = save_snapshot(frame, event_type) if frame is not None else None

    event = Event(
        camera_id=result.camera_id,
        event_type=event_type,
        occurred_at=result.captured_at,
        max_confidence=result.max_confidence,
        object_count=len(result.detections),
        snapshot_path=snapshot_path,
        models=list(result.models),
        created_at=datetime.utcnow(),
    )
    for d in result.detections:
        event.objects.append(EventObject(
            label=d.label, confidence=d.confidence, bbox=list(d.bbox), zone_id=d.zone_id,
            source_model=d.source_model, attributes=d.attributes,
        ))
    db.add(event)

    camera = db.query(Camera).filter(Camera.camera_id == result.camera_id).first()
    if camera is not None:
        camera.last_seen_at = result.captured_at
    db.commit()
    db.refresh(event)
    cache.invalidate_namespace("events")
    cache.invalidate_namespace("analytics")
    logger.info(f"📥 Event {event.id} | {event.camera_id} | {event.event_type} "
                f"objects={event.object_count} conf={event.max_confidence:.2f}")

    evaluation = rules_engine.evaluate(event, list(event.objects), db, now=now)
    for triggered in evaluation.triggered:
        await create_alert(
            db,
            camera_id=event.camera_id,
            severity=triggered.severity,
            title=_alert_title(triggered.rule, event),
            description=_alert_description(triggered, event),
            event_id=event.id,
            rule_id=triggered.rule.id,
            dedup_key=triggered.dedup_key,
            source="rule",
        )
    for rule, reason in evaluation.skipped:
        logger.debug(f"[RULES] Event {event.id}: rule {rule.name} skipped ({reason})")
    return event
