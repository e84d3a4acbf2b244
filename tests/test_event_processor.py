"""Integration tests: analysis result → stored event → rule alerts."""

import pytest
from datetime import datetime

from vigil.models.alert import Alert
from vigil.models.alert_rule import AlertRule
from vigil.models.event import Event
from vigil.services import event_processor
from vigil.services.analysis_engine import AnalysisResult, Detection
from vigil.services.stream_handler import Frame

CAPTURED = datetime(2026, 3, 4, 12, 0)


def make_result(*detections, camera_id="CAM-01"):
    return AnalysisResult(camera_id=camera_id, frame_sequence=1, captured_at=CAPTURED,
                          detections=list(detections), models=["objects"])


def det(label="person", confidence=0.9, zone_id=None):
    return Detection(label, confidence, (0.1, 0.1, 0.3, 0.5), "objects", {}, zone_id)


def add_rule(db, name, **kwargs):
    rule = AlertRule(name=name, enabled=True, created_at=datetime.utcnow(), **kwargs)
    db.add(rule)
    db.commit()
    return rule


@pytest.fixture(autouse=True)
def no_snapshots(monkeypatch):
    monkeypatch.setattr(event_processor, "save_snapshot", lambda frame, event_type: "/snaps/test.jpg")


class TestProcessResult:
    @pytest.mark.asyncio
    async def test_no_detections_stores_nothing(self, db_session, make_camera):
        make_camera()
        assert await event_processor.process_result(make_result(), db_session) is None
        assert db_session.query(Event).count() == 0

    @pytest.mark.asyncio
    async def test_stores_event_with_objects(self, db_session, make_camera):
        camera = make_camera()
        result = make_result(det("person", 0.9, "door"), det("car", 0.7))
        event = await event_processor.process_result(result, db_session)

        assert event.id is not None
        assert event.event_type == "person_detected"
        assert event.object_count == 2
        assert event.max_confidence == pytest.approx(0.9)
        assert event.occurred_at == CAPTURED
        assert [o.label for o in event.objects] == ["person", "car"]
        assert event.objects[0].zone_id == "door"
        assert event.snapshot_path is None
        db_session.refresh(camera)
        assert camera.last_seen_at == CAPTURED

    @pytest.mark.asyncio
    async def test_saves_snapshot_when_frame_given(self, db_session, make_camera):
        make_camera()
        frame = Frame("CAM-01", 1, CAPTURED, b"\xff\xd8jpeg\xff\xd9")
        event = await event_processor.process_result(make_result(det()), db_session, frame=frame)
        assert event.snapshot_path == "/snaps/test.jpg"

    @pytest.mark.asyncio
    async def test_matching_rule_raises_alert(self, db_session, make_camera):
        make_camera()
        rule = add_rule(db_session, "people at door", severity="high", object_types=["person"], zone_ids=["door"])
        event = await event_processor.process_result(make_result(det("person", 0.9, "door")), db_session)

        alert = db_session.query(Alert).one()
        assert alert.rule_id == rule.id
        assert alert.event_id == event.id
        assert alert.severity == "high"
        assert alert.status == "open"
        assert alert.source == "rule"
        assert alert.dedup_key == f"CAM-01:{rule.id}"
        assert alert.title.startswith("people at door")

    @pytest.mark.asyncio
    async def test_non_matching_rule_is_silent(self, db_session, make_camera):
        make_camera()
        add_rule(db_session, "cars only", object_types=["car"])
        await event_processor.process_result(make_result(det("person")), db_session)
        assert db_session.query(Alert).count() == 0

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_repeat_alert(self, db_session, make_camera):
        make_camera()
        add_rule(db_session, "any person", object_types=["person"], cooldown_seconds=300)
        await event_processor.process_result(make_result(det()), db_session)
        await event_processor.process_result(make_result(det()), db_session)
        assert db_session.query(Event).count() == 2
        assert db_session.query(Alert).count() == 1

    @pytest.mark.asyncio
    async def test_disabled_rule_ignored(self, db_session, make_camera):
        make_camera()
        rule = add_rule(db_session, "off", object_types=["person"])
        rule.enabled = False
        db_session.commit()
        await event_processor.process_result(make_result(det()), db_session)
        assert db_session.query(Alert).count() == 0

    @pytest.mark.asyncio
    async def test_shared_dedup_key_keeps_highest_severity(self, db_session, make_camera):
        make_camera()
        add_rule(db_session, "low", severity="low", dedup_key_template="{camera_id}:{object_type}")
        high = add_rule(db_session, "high", severity="critical", dedup_key_template="{camera_id}:{object_type}")
        await event_processor.process_result(make_result(det()), db_session)
        alerts = db_session.query(Alert).all()
        assert [a.rule_id for a in alerts] == [high.id]
        assert alerts[0].dedup_key == "CAM-01:person"
