# vigil/models/camera.py
"""
Cameras table: one row per registered video source.
Zones are stored as {zone_id: [[x, y], ...]} polygons in normalized image coordinates.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import relationship
from vigil.database import Base


class Camera(Base):
    __tablename__ = "cameras"

    id = Column(Integer, primary_key=True, autoincrement=True)
    camera_id = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    stream_url = Column(String(500), nullable=False)
    location = Column(String(200))
    status = Column(String(20), default="offline", nullable=False)   # online | offline | error | disabled
    enabled = Column(Boolean, default=True, nullable=False)
    zones = Column(JSON, default=dict)
    username = Column(String(100))
    password = Column(String(200))
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime)
    last_seen_at = Column(DateTime)

    events = relationship("Event", back_populates="camera", cascade="all, delete-orphan")
    segments = relationship("VideoSegment", back_populates="camera", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Camera {self.camera_id} status={self.status} enabled={self.enabled}>"
