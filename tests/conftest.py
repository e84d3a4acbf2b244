"""Shared fixtures: in-memory SQLite database, API client, clean caches."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before vigil.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", "")

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vigil.database import create_tables, get_db
from vigil.models.camera import Camera
from vigil.services.cache_manager import cache


@pytest.fixture(autouse=True)
def clean_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def db_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient
    from vigil.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_camera(db_session):
    def _make(camera_id="CAM-01", zones=None, enabled=True):
        camera = Camera(camera_id=camera_id, name=f"Camera {camera_id}", stream_url=f"http://cams/{camera_id}",
                        status="offline", enabled=enabled, zones=zones or {}, created_at=datetime.utcnow())
        db_session.add(camera)
        db_session.commit()
        return camera
    return _make
