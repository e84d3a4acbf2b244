# vigil/services/rules_engine.py
"""
Alert rules engine.

Every enabled AlertRule is evaluated against a stored event and its objects.
Conditions inside a rule are ANDed; a condition left empty is not checked, so
a rule with no conditions matches every event.

    camera_ids      event camera is listed
    object_types    some object has one of these labels (case-insensitive)
    zone_ids        some object sits in one of these zones
    min_confidence  some qualifying object reaches the confidence
    min_objects     at least this many qualifying objects
    schedule        event time falls in days / start_time-end_time (overnight allowed)

"Qualifying" objects are those matching object_types and zone_ids when set.

Triggered rules are ordered critical → low, then priority (high first), then id.
Rules whose dedup key already fired inside the cooldown window are skipped, and
when two rules resolve to the same dedup key only the first one in that order fires.
"""

import string
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from vigil.config import settings
from vigil.models.alert import Alert
from vigil.models.alert_rule import AlertRule
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

SEVERITY_PRIORITY = {"low": 0, "medium": 1, "high": 2, "critical": 3}
DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
DEFAULT_DEDUP_TEMPLATE = "{camera_id}:{rule_id}"
DEDUP_TEMPLATE_FIELDS = {"camera_id", "rule_id", "object_type"}


@dataclass
class TriggeredRule:
    rule: AlertRule
    severity: str
    matched_conditions: list[str] = field(default_factory=list)
    dedup_key: str = ""


@dataclass
class EvaluationResult:
    triggered: list[TriggeredRule] = field(default_factory=list)
    skipped: list[tuple[AlertRule, str]] = field(default_factory=list)

    @property
    def highest_severity(self) -> Optional[str]:
        return self.triggered[0].severity if self.triggered else None

    @property
    def has_triggers(self) -> bool:
        return bool(self.triggered)


def _parse_time(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def check_schedule(schedule: Optional[dict], when: datetime) -> bool:
    """True when `when` (naive UTC) falls inside the schedule. Malformed times match."""
    if not schedule:
        return True

    tz_name = schedule.get("timezone") or "UTC"
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown schedule timezone {tz_name!r}, using UTC")
        tz = ZoneInfo("UTC")
    local = when.replace(tzinfo=ZoneInfo("UTC")).astimezone(tz)

    days = schedule.get("days")
    if days and DAY_NAMES[local.weekday()] not in [d.lower() for d in days]:
        return False

    start_str, end_str = schedule.get("start_time"), schedule.get("end_time")
    if start_str and end_str:
        try:
            start, end = _parse_time(start_str), _parse_time(end_str)
        except (ValueError, AttributeError):
            logger.warning(f"Unparseable schedule window {start_str!r}-{end_str!r}, ignoring")
            return True
        now = local.time()
        if start <= end:
            return start <= now <= end
        return now >= start or now <= end
    return True


def _qualifying_objects(rule: AlertRule, objects: list) -> list:
    types = [t.lower() for t in rule.object_types] if rule.object_types else None
    zones = set(rule.zone_ids) if rule.zone_ids else None
    result = []
    for obj in objects:
        if types is not None and (obj.label or "").lower() not in types:
            continue
        if zones is not None and obj.zone_id not in zones:
            continue
        result.append(obj)
    return result


def evaluate_rule(rule: AlertRule, event, objects: list,
                  now: Optional[datetime] = None) -> tuple[bool, list[str]]:
    """
    Check one rule against one event. Returns (matches, matched condition descriptions).
    The schedule is checked at `now`, which defaults to the event time.
    """
    matched: list[str] = []

    if rule.camera_ids:
        if event.camera_id not in rule.camera_ids:
            return False, []
        matched.append(f"camera_id in {rule.camera_ids}")

    qualifying = _qualifying_objects(rule, objects)
    if rule.object_types or rule.zone_ids:
        if not qualifying:
            return False, []
        if rule.object_types:
            matched.append(f"object_type in {rule.object_types}")
        if rule.zone_ids:
            matched.append(f"zone_id in {rule.zone_ids}")

    if rule.min_confidence is not None:
        if not any(o.confidence is not None and o.confidence >= rule.min_confidence for o in qualifying):
            return False, []
        matched.append(f"confidence >= {rule.min_confidence}")

    if rule.min_objects is not None:
        if len(qualifying) < rule.min_objects:
            return False, []
        matched.append(f"objects >= {rule.min_objects}")

    if rule.schedule:
        if not check_schedule(rule.schedule, now or event.occurred_at):
            return False, []
        matched.append("within_schedule")

    if not matched:
        matched.append("no_conditions")
    return True, matched


def check_dedup_template(template: str) -> Optional[str]:
    """Return an error message if the template is unusable, else None."""
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as e:
        return f"malformed template: {e}"
    for _, name, _, _ in parsed:
        if name is None:
            continue
        if name not in DEDUP_TEMPLATE_FIELDS:
            return f"unknown template field {{{name}}}; allowed: {sorted(DEDUP_TEMPLATE_FIELDS)}"
    return None


def build_dedup_key(rule: AlertRule, event, objects: list) -> str:
    template = rule.dedup_key_template or DEFAULT_DEDUP_TEMPLATE
    qualifying = _qualifying_objects(rule, objects) or objects
    object_type = qualifying[0].label if qualifying and qualifying[0].label else "unknown"
    try:
        return template.format(camera_id=event.camera_id, rule_id=rule.id, object_type=object_type)
    except (KeyError, IndexError, ValueError, AttributeError, TypeError):
        logger.warning(f"Invalid dedup_key_template on rule {rule.id}: {template!r}")
        return DEFAULT_DEDUP_TEMPLATE.format(camera_id=event.camera_id, rule_id=rule.id)


def rule_order(rule: AlertRule) -> tuple:
    return (-SEVERITY_PRIORITY.get(rule.severity, 0), -(rule.priority or 0), rule.id or 0)


def in_cooldown(db: Session, rule: AlertRule, dedup_key: str, now: datetime) -> bool:
    cooldown = rule.cooldown_seconds
    if cooldown is None:
        cooldown = settings.ALERT_DEFAULT_COOLDOWN_SECONDS
    if cooldown <= 0:
        return False
    recent = db.query(Alert).filter(
        Alert.rule_id == rule.id, Alert.dedup_key == dedup_key,
        Alert.triggered_at >= now - timedelta(seconds=cooldown),
    ).first()
    return recent is not None


def get_enabled_rules(db: Session) -> list[AlertRule]:
    return db.query(AlertRule).filter(AlertRule.enabled.is_(True)).all()


def evaluate(event, objects: list, db: Session, now: Optional[datetime] = None,
             rules: Optional[list[AlertRule]] = None) -> EvaluationResult:
    now = now or datetime.utcnow()
    if rules is None:
        rules = get_enabled_rules(db)

    result = EvaluationResult()
    claimed_keys: set[str] = set()
    for rule in sorted(rules, key=rule_order):
        try:
            matches, conditions = evaluate_rule(rule, event, objects)
            dedup_key = build_dedup_key(rule, event, objects) if matches else None
        except Exception as e:
            logger.error(f"Rule {rule.id} ({rule.name}) failed to evaluate: {e}", exc_info=True)
            result.skipped.append((rule, "error"))
            continue
        if not matches:
            continue

        if dedup_key in claimed_keys:
            result.skipped.append((rule, "superseded"))
            continue
        if in_cooldown(db, rule, dedup_key, now):
            result.skipped.append((rule, "in_cooldown"))
            continue

        claimed_keys.add(dedup_key)
        result.triggered.append(TriggeredRule(rule=rule, severity=rule.severity,
                                              matched_conditions=conditions, dedup_key=dedup_key))

    if result.triggered:
        logger.info(f"[RULES] Event {getattr(event, 'id', None)}: "
                    f"{[t.rule.name for t in result.triggered]} triggered")
    return result
