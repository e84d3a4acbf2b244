"""Tests for history expiry across events, alerts, segments and metrics."""

import pytest
from datetime import datetime, timedelta

from vigil.config import settings
from vigil.models.alert import Alert
from vigil.models.event import Event, EventObject
from vigil.models.metric import MetricSample
from vigil.models.video_segment import VideoSegment
from vigil.services.retention_service import enforce_retention

NOW = datetime(2026, 6, 1, 12, 0)


def add_event(db, age_days, snapshot_path=None):
    at = NOW - timedelta(days=age_days)
    event = Event(camera_id="CAM-01", event_type="person_detected", occurred_at=at, max_confidence=0.9,
                  object_count=1, snapshot_path=snapshot_path, models=["objects"], created_at=at)
    event.objects.append(EventObject(label="person", confidence=0.9, bbox=[0.1, 0.1, 0.2, 0.2]))
    db.add(event)
    db.commit()
    return event


def add_alert(db, event, status):
    alert = Alert(camera_id="CAM-01", severity="high", title="t", status=status,
                  event_id=event.id, triggered_at=event.occurred_at)
    db.add(alert)
    db.commit()
    return alert


@pytest.fixture(autouse=True)
def retention_windows(monkeypatch):
    monkeypatch.setattr(settings, "RETENTION_EVENTS_DAYS", 30)
    monkeypatch.setattr(settings, "RETENTION_SEGMENTS_DAYS", 7)
    monkeypatch.setattr(settings, "RETENTION_METRICS_DAYS", 14)


class TestEnforceRetention:
    def test_expires_old_events_and_objects(self, db_session, make_camera, tmp_path):
        make_camera()
        snapshot = tmp_path / "old.jpg"
        snapshot.write_bytes(b"jpeg")
        add_event(db_session, 45, snapshot_path=str(snapshot))
        recent = add_event(db_session, 2)

        result = enforce_retention(db_session, now=NOW)

        assert result["events_deleted"] == 1
        assert [e.id for e in db_session.query(Event).all()] == [recent.id]
        assert db_session.query(EventObject).count() == 1
        assert not snapshot.exists()

    def test_resolved_alerts_go_open_alerts_stay(self, db_session, make_camera):
        make_camera()
        old = add_event(db_session, 45)
        resolved = add_alert(db_session, old, "resolved")
        still_open = add_alert(db_session, old, "open")
        resolved_id, open_id = resolved.id, still_open.id

        result = enforce_retention(db_session, now=NOW)

        assert result["alerts_deleted"] == 1
        db_session.expire_all()
        assert db_session.query(Alert).filter(Alert.id == resolved_id).count() == 0
        kept = db_session.query(Alert).filter(Alert.id == open_id).one()
        assert kept.status == "open"
        assert kept.event_id is None

    def test_expires_segments_and_files(self, db_session, make_camera, tmp_path):
        make_camera()
        old_file = tmp_path / "old.mp4"
        old_file.write_bytes(b"video")
        db_session.add_all([
            VideoSegment(camera_id="CAM-01", file_path=str(old_file), start_time=NOW - timedelta(days=10, minutes=5),
                         end_time=NOW - timedelta(days=10), created_at=NOW),
            VideoSegment(camera_id="CAM-01", file_path=str(tmp_path / "new.mp4"),
                         start_time=NOW - timedelta(days=1, minutes=5), end_time=NOW - timedelta(days=1),
                         created_at=NOW),
        ])
        db_session.commit()

        result = enforce_retention(db_session, now=NOW)

        assert result["segments_deleted"] == 1
        assert result["files_deleted"] == 1
        assert not old_file.exists()
        assert db_session.query(VideoSegment).count() == 1

    def test_expires_metrics(self, db_session):
        db_session.add_all([
            MetricSample(name="pipeline.workers", value=1, labels={}, recorded_at=NOW - timedelta(days=20)),
            MetricSample(name="pipeline.workers", value=2, labels={}, recorded_at=NOW - timedelta(days=1)),
        ])
        db_session.commit()

        assert enforce_retention(db_session, now=NOW)["metrics_deleted"] == 1
        assert db_session.query(MetricSample).count() == 1

    def test_nothing_to_expire(self, db_session):
        assert enforce_retention(db_session, now=NOW) == {
            "events_deleted": 0, "alerts_deleted": 0, "segments_deleted": 0,
            "files_deleted": 0, "metrics_deleted": 0,
        }
