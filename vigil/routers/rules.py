# vigil/routers/rules.py
"""Alert rule management + dry-run testing against recent events."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session, selectinload

from vigil.database import get_db
from vigil.exceptions import ConflictError, NotFoundError
from vigil.models.alert_rule import AlertRule
from vigil.models.event import Event
from vigil.schemas.rule import RuleCreate, RuleOut, RuleTestOut, RuleUpdate
from vigil.services.rules_engine import evaluate_rule
from vigil.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


def _get_rule(db: Session, rule_id: int) -> AlertRule:
    rule = db.get(AlertRule, rule_id)
    if not rule:
        raise NotFoundError("Rule", rule_id)
    return rule


def _ensure_unique_name(db: Session, name: str, exclude_id: int = None):
    q = db.query(AlertRule).filter(AlertRule.name == name)
    if exclude_id is not None:
        q = q.filter(AlertRule.id != exclude_id)
    if q.first():
        raise ConflictError(f"Rule '{name}' already exists")


@router.get("/rules", response_model=list[RuleOut], summary="List alert rules")
def list_rules(enabled: bool = None, db: Session = Depends(get_db)):
    q = db.query(AlertRule)
    if enabled is not None:
        q = q.filter(AlertRule.enabled.is_(enabled))
    return q.order_by(AlertRule.id).all()


@router.post("/rules", response_model=RuleOut, status_code=status.HTTP_201_CREATED)
def create_rule(body: RuleCreate, db: Session = Depends(get_db)):
    _ensure_unique_name(db, body.name)
    now = datetime.utcnow()
    rule = AlertRule(**body.model_dump(), created_at=now, updated_at=now)
    db.add(rule)
    db.commit()
    db.refresh(rule)
    logger.info(f"[RULES] Created rule {rule.id} '{rule.name}' ({rule.severity})")
    return rule


@router.get("/rules/{rule_id}", response_model=RuleOut)
def get_rule(rule_id: int, db: Session = Depends(get_db)):
    return _get_rule(db, rule_id)


@router.put("/rules/{rule_id}", response_model=RuleOut)
def update_rule(rule_id: int, body: RuleUpdate, db: Session = Depends(get_db)):
    rule = _get_rule(db, rule_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name"):
        _ensure_unique_name(db, changes["name"], exclude_id=rule_id)
    for field, value in changes.items():
        setattr(rule, field, value)
    rule.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(rule)
    logger.info(f"[RULES] Updated rule {rule_id}: {sorted(changes)}")
    return rule


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(rule_id: int, db: Session = Depends(get_db)):
    rule = _get_rule(db, rule_id)
    db.delete(rule)
    db.commit()
    logger.info(f"[RULES] Deleted rule {rule_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/rules/{rule_id}/test", response_model=RuleTestOut,
             summary="Dry-run a rule against recent events (no alerts created)")
def test_rule(rule_id: int, limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)):
    rule = _get_rule(db, rule_id)
    events = (db.query(Event).options(selectinload(Event.objects))
              .order_by(Event.occurred_at.desc()).limit(limit).all())
    matches = []
    for event in events:
        matched, conditions = evaluate_rule(rule, event, list(event.objects))
        if matched:
            matches.append({"event_id": event.id, "camera_id": event.camera_id,
                            "matched_conditions": conditions})
    return {"rule_id": rule_id, "events_tested": len(events), "matches": matches}
