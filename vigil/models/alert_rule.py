# vigil/models/alert_rule.py
"""
Alert rules evaluated by the rules engine against every stored event.
Empty / NULL condition columns mean "no constraint".
"""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String, Text
from vigil.database import Base


class AlertRule(Base):
    __tablename__ = "alert_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text)
    enabled = Column(Boolean, default=True, nullable=False)
    severity = Column(String(20), default="medium", nullable=False)   # low | medium | high | critical
    priority = Column(Integer, default=0, nullable=False)
    camera_ids = Column(JSON)
    object_types = Column(JSON)
    zone_ids = Column(JSON)
    min_confidence = Column(Float)
    min_objects = Column(Integer)
    schedule = Column(JSON)                   # {"days": [...], "start_time": "HH:MM", "end_time": "HH:MM"}
    cooldown_seconds = Column(Integer)
    dedup_key_template = Column(String(200))
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime)

    def __repr__(self):
        return f"<AlertRule {self.id} {self.name!r} severity={self.severity} enabled={self.enabled}>"
