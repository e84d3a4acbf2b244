# vigil/models/alert.py
"""
Alerts table: generated by the rules engine or raised manually through the API.
Status moves open → acknowledged → resolved (or open → resolved).
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from vigil.database import Base


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), index=True)
    rule_id = Column(Integer, ForeignKey("alert_rules.id", ondelete="SET NULL"), index=True)
    camera_id = Column(String(50), nullable=False, index=True)
    severity = Column(String(20), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text)
    status = Column(String(20), default="open", nullable=False, index=True)
    dedup_key = Column(String(300), index=True)
    source = Column(String(20), default="rule", nullable=False)   # rule | manual
    triggered_at = Column(DateTime, nullable=False, index=True)
    acknowledged_at = Column(DateTime)
    acknowledged_by = Column(String(100))
    resolved_at = Column(DateTime)
    resolution_note = Column(Text)

    def __repr__(self):
        return f"<Alert {self.id} severity={self.severity} status={self.status}>"
