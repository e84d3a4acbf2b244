# vigil/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + camera stream reachability.
"""

import requests
from requests.auth import HTTPDigestAuth
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from datetime import datetime

from vigil.database import get_db
from vigil.models.camera import Camera
from vigil.services.cache_manager import cache
from vigil.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)

PROBE_TIMEOUT = 3


def probe_camera(camera: Camera) -> str:
    """Open the stream URL and report 'ok', 'http_<code>', 'unreachable' or 'error: ...'."""
    auth = HTTPDigestAuth(camera.username, camera.password) if camera.username else None
    try:
        # stream=True: only headers are read, the MJPEG body is never consumed
        with requests.get(camera.stream_url, auth=auth, timeout=PROBE_TIMEOUT, stream=True) as resp:
            return "ok" if resp.status_code == 200 else f"http_{resp.status_code}"
    except requests.exceptions.ConnectionError:
        return "unreachable"
    except requests.exceptions.RequestException as e:
        return f"error: {e}"


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Stream reachability of each enabled camera (cached briefly)
    """
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "cameras": {},
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        logger.error(f"Health check: database unavailable: {e}")
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"
        return result

    for camera in db.query(Camera).filter(Camera.enabled.is_(True)).order_by(Camera.camera_id).all():
        state = cache.get_or_load("health", camera.camera_id, lambda: probe_camera(camera))
        result["cameras"][camera.camera_id] = state
        if state != "ok":
            result["status"] = "degraded"

    return result
