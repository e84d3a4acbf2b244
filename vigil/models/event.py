# vigil/models/event.py
"""
Detection events and the objects that make them up.
One Event per analysed frame that produced at least one detection.
"""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship
from vigil.database import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    camera_id = Column(String(50), ForeignKey("cameras.camera_id", ondelete="CASCADE"),
                       nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)     # <label>_detected
    occurred_at = Column(DateTime, nullable=False, index=True)
    max_confidence = Column(Float, nullable=False)
    object_count = Column(Integer, nullable=False)
    snapshot_path = Column(String(500))
    models = Column(JSON, default=list)
    created_at = Column(DateTime, nullable=False)

    camera = relationship("Camera", back_populates="events")
    objects = relationship("EventObject", back_populates="event", cascade="all, delete-orphan", order_by="EventObject.id")

    def __repr__(self):
        return f"<Event {self.id} type={self.event_type} cam={self.camera_id}>"


class EventObject(Base):
    __tablename__ = "event_objects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(100), nullable=False, index=True)
    confidence = Column(Float, nullable=False)
    bbox = Column(JSON, nullable=False)        # [x1, y1, x2, y2] normalized
    zone_id = Column(String(100))
    source_model = Column(String(100))
    attributes = Column(JSON, default=dict)

    event = relationship("Event", back_populates="objects")

    def __repr__(self):
        return f"<EventObject {self.id} {self.label}@{self.confidence:.2f}>"
