# vigil/services/camera_service.py
"""
Camera registry: CRUD plus the cached lookups the pipeline needs per frame.
Cache namespaces: "camera" (zones by camera_id, LRU) and "camera_list" (list pages, TTL).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from vigil.exceptions import ConflictError, InvalidRequestError, NotFoundError
from vigil.models.camera import Camera
from vigil.schemas.camera import CameraCreate, CameraOut, CameraUpdate
from vigil.services.cache_manager import cache
from vigil.utils.geometry import validate_polygon
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

CAMERA_STATUSES = {"online", "offline", "error", "disabled"}


def _validate_zones(zones: Optional[dict]):
    for zone_id, points in (zones or {}).items():
        error = validate_polygon(points)
        if error:
            raise InvalidRequestError(f"Zone '{zone_id}': {error}")


def _invalidate(camera_id: str):
    cache.invalidate("camera", camera_id)
    cache.invalidate_namespace("camera_list")
    cache.invalidate_namespace("health")


def get_camera(db: Session, camera_id: str) -> Camera:
    camera = db.query(Camera).filter(Camera.camera_id == camera_id).first()
    if not camera:
        raise NotFoundError("Camera", camera_id)
    return camera


def get_camera_zones(db: Session, camera_id: str) -> dict:
    """Zones for a camera, served from the LRU tier. Unknown cameras have no zones."""
    def load():
        camera = db.query(Camera).filter(Camera.camera_id == camera_id).first()
        return dict(camera.zones or {}) if camera else None
    return cache.get_or_load("camera", camera_id, load) or {}


def list_cameras(db: Session, status: Optional[str] = None, enabled: Optional[bool] = None,
                 limit: int = 50, offset: int = 0) -> dict:
    def load():
        q = db.query(Camera)
        if status:
            q = q.filter(Camera.status == status)
        if enabled is not None:
            q = q.filter(Camera.enabled.is_(enabled))
        total = q.count()
        rows = q.order_by(Camera.camera_id).offset(offset).limit(limit).all()
        return {
            "items": [CameraOut.model_validate(c).model_dump() for c in rows],
            "total": total, "limit": limit, "offset": offset,
        }
    return cache.get_or_load("camera_list", f"{status}|{enabled}|{limit}|{offset}", load)


def create_camera(db: Session, body: CameraCreate) -> Camera:
    _validate_zones(body.zones)
    if db.query(Camera).filter(Camera.camera_id == body.camera_id).first():
        raise ConflictError(f"Camera '{body.camera_id}' already exists")

    now = datetime.utcnow()
    camera = Camera(**body.model_dump(), status="offline" if body.enabled else "disabled",
                    created_at=now, updated_at=now)
    db.add(camera)
    db.commit()
    db.refresh(camera)
    _invalidate(camera.camera_id)
    logger.info(f"📷 Camera registered: {camera.camera_id} ({camera.stream_url})")
    return camera


def update_camera(db: Session, camera_id: str, body: CameraUpdate) -> Camera:
    camera = get_camera(db, camera_id)
    changes = body.model_dump(exclude_unset=True)
    if "zones" in changes:
        _validate_zones(changes["zones"])
    for field, value in changes.items():
        setattr(camera, field, value)
    if "enabled" in changes:
        camera.status = "offline" if camera.enabled else "disabled"
    camera.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(camera)
    _invalidate(camera_id)
    logger.info(f"📷 Camera updated: {camera_id} fields={sorted(changes)}")
    return camera


def delete_camera(db: Session, camera_id: str):
    camera = get_camera(db, camera_id)
    db.delete(camera)
    db.commit()
    _invalidate(camera_id)
    cache.invalidate_namespace("events")
    cache.invalidate_namespace("analytics")
    logger.info(f"📷 Camera deleted: {camera_id}")


def set_camera_status(db: Session, camera_id: str, status: str):
    if status not in CAMERA_STATUSES:
        raise ValueError(f"Unknown camera status: {status}")
    camera = db.query(Camera).filter(Camera.camera_id == camera_id).first()
    if not camera:
        return
    camera.status = status
    if status == "online":
        camera.last_seen_at = datetime.utcnow()
    db.commit()
    cache.invalidate_namespace("camera_list")
