"""Tests for the alert lifecycle and webhook notifications."""

import json
import pytest
import httpx

from vigil.exceptions import ConflictError, NotFoundError
from vigil.services.alert_service import acknowledge_alert, create_alert, get_alert, resolve_alert
from vigil.services.notification_service import NotificationService


async def open_alert(db):
    return await create_alert(db, camera_id="CAM-01", severity="high", title="Intruder", source="manual")


class TestAlertLifecycle:
    @pytest.mark.asyncio
    async def test_create_alert_is_open(self, db_session, make_camera):
        make_camera()
        alert = await open_alert(db_session)
        assert alert.id is not None
        assert alert.status == "open"
        assert alert.triggered_at is not None

    @pytest.mark.asyncio
    async def test_acknowledge_then_resolve(self, db_session, make_camera):
        make_camera()
        alert = await open_alert(db_session)

        alert = acknowledge_alert(db_session, alert.id, "guard-7")
        assert alert.status == "acknowledged"
        assert alert.acknowledged_by == "guard-7"
        assert alert.acknowledged_at is not None

        alert = resolve_alert(db_session, alert.id, "false alarm")
        assert alert.status == "resolved"
        assert alert.resolution_note == "false alarm"

    @pytest.mark.asyncio
    async def test_resolve_directly_from_open(self, db_session, make_camera):
        make_camera()
        alert = await open_alert(db_session)
        assert resolve_alert(db_session, alert.id).status == "resolved"

    @pytest.mark.asyncio
    async def test_resolved_alert_is_final(self, db_session, make_camera):
        make_camera()
        alert = await open_alert(db_session)
        resolve_alert(db_session, alert.id)
        with pytest.raises(ConflictError):
            acknowledge_alert(db_session, alert.id, "guard-7")
        with pytest.raises(ConflictError):
            resolve_alert(db_session, alert.id)

    @pytest.mark.asyncio
    async def test_double_acknowledge_conflicts(self, db_session, make_camera):
        make_camera()
        alert = await open_alert(db_session)
        acknowledge_alert(db_session, alert.id, "a")
        with pytest.raises(ConflictError):
            acknowledge_alert(db_session, alert.id, "b")

    def test_unknown_alert(self, db_session):
        with pytest.raises(NotFoundError):
            get_alert(db_session, 999)


class TestNotificationService:
    PAYLOAD = {"id": 1, "severity": "high", "title": "Intruder"}

    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        assert await NotificationService(None).notify(self.PAYLOAD) is False

    @pytest.mark.asyncio
    async def test_delivers_json(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(204)

        svc = NotificationService("http://hooks/alerts", transport=httpx.MockTransport(handler), backoff=0)
        assert await svc.notify(self.PAYLOAD) is True
        assert received == [self.PAYLOAD]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = iter([httpx.Response(503), httpx.Response(200)])
        svc = NotificationService("http://hooks/alerts", attempts=3,
                                  transport=httpx.MockTransport(lambda r: next(responses)), backoff=0)
        assert await svc.notify(self.PAYLOAD) is True

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400)

        svc = NotificationService("http://hooks/alerts", attempts=3, transport=httpx.MockTransport(handler), backoff=0)
        assert await svc.notify(self.PAYLOAD) is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        svc = NotificationService("http://hooks/alerts", attempts=2, transport=httpx.MockTransport(handler), backoff=0)
        assert await svc.notify(self.PAYLOAD) is False
        assert len(calls) == 2
