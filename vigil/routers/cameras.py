# vigil/routers/cameras.py
"""Camera registry endpoints. Writes are pushed to the running pipeline."""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import Optional

from vigil.database import get_db
from vigil.schemas.camera import CameraCreate, CameraOut, CameraPage, CameraUpdate
from vigil.services import camera_service
from vigil.services import pipeline as pipeline_module

router = APIRouter()


@router.get("/cameras", response_model=CameraPage, summary="List cameras")
def list_cameras(
    status: Optional[str] = None,
    enabled: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Paginated camera list, ordered by camera_id. Optional status / enabled filters."""
    return camera_service.list_cameras(db, status=status, enabled=enabled, limit=limit, offset=offset)


# Writes run on the event loop: the pipeline hooks create and cancel reader tasks
STREAM_FIELDS = {"stream_url", "username", "password", "enabled"}


@router.post("/cameras", response_model=CameraOut, status_code=status.HTTP_201_CREATED,
             summary="Register a camera")
async def create_camera(body: CameraCreate, db: Session = Depends(get_db)):
    camera = camera_service.create_camera(db, body)
    if pipeline_module.pipeline is not None:
        pipeline_module.pipeline.sync_camera(pipeline_module.camera_config(camera))
    return camera


@router.get("/cameras/{camera_id}", response_model=CameraOut)
def get_camera(camera_id: str, db: Session = Depends(get_db)):
    return camera_service.get_camera(db, camera_id)


@router.put("/cameras/{camera_id}", response_model=CameraOut, summary="Update camera settings / zones")
async def update_camera(camera_id: str, body: CameraUpdate, db: Session = Depends(get_db)):
    camera = camera_service.update_camera(db, camera_id, body)
    if pipeline_module.pipeline is not None and STREAM_FIELDS & body.model_fields_set:
        pipeline_module.pipeline.sync_camera(pipeline_module.camera_config(camera))
    return camera


@router.delete("/cameras/{camera_id}", status_code=status.HTTP_204_NO_CONTENT,
               summary="Delete a camera with its events and segments")
async def delete_camera(camera_id: str, db: Session = Depends(get_db)):
    camera_service.delete_camera(db, camera_id)
    if pipeline_module.pipeline is not None:
        pipeline_module.pipeline.remove_camera(camera_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
