from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


class SyncLog(Base):
    __tablename__ = "sync_logs"

    # Status values
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String, nullable=False, default=RUNNING, index=True)
    tweets_found = Column(Integer, default=0)
    tweets_new = Column(Integer, default=0)
    duration = Column(Integer, nullable=True)  # milliseconds
    error = Column(Text, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="sync_logs")
