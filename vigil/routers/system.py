# vigil/routers/system.py
"""Operational endpoints: pipeline state, cache control, retention."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from vigil.database import get_db
from vigil.services import pipeline as pipeline_module
from vigil.services.cache_manager import cache
from vigil.services.retention_service import enforce_retention

router = APIRouter()


@router.get("/system/pipeline", summary="Stream / analysis pipeline status")
def pipeline_status():
    if pipeline_module.pipeline is None:
        return {"running": False}
    return pipeline_module.pipeline.status()


@router.get("/system/cache", summary="Cache statistics")
def cache_stats():
    return cache.stats()


@router.delete("/system/cache", status_code=status.HTTP_204_NO_CONTENT, summary="Clear all caches")
def clear_cache():
    cache.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/system/retention", summary="Run retention now")
def run_retention(db: Session = Depends(get_db)):
    return enforce_retention(db)
