# vigil/models/video_segment.py
"""
Recorded video segment metadata. The files themselves live on disk / object storage;
retention_service removes both the row and the file.
"""

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from vigil.database import Base


class VideoSegment(Base):
    __tablename__ = "video_segments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    camera_id = Column(String(50), ForeignKey("cameras.camera_id", ondelete="CASCADE"),
                       nullable=False, index=True)
    file_path = Column(String(500), unique=True, nullable=False)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    size_bytes = Column(BigInteger)
    codec = Column(String(50))
    created_at = Column(DateTime, nullable=False)

    camera = relationship("Camera", back_populates="segments")

    def __repr__(self):
        return f"<VideoSegment {self.id} cam={self.camera_id} {self.start_time}→{self.end_time}>"
