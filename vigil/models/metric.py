# vigil/models/metric.py
"""Metrics time series: one row per sample (pipeline load, worker count, etc.)."""

from sqlalchemy import Column, DateTime, Float, Integer, JSON, String
from vigil.database import Base


class MetricSample(Base):
    __tablename__ = "metrics_timeseries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    value = Column(Float, nullable=False)
    labels = Column(JSON, default=dict)
    recorded_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<MetricSample {self.name}={self.value} at {self.recorded_at}>"
