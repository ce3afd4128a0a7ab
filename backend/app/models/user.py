from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Twitter account
    twitter_id = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=False, index=True)
    display_name = Column(String)
    profile_image_url = Column(String)

    # Provider credentials, cleared on logout
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)

    # Metadata
    is_active = Column(Boolean, default=True)
    last_sync = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tweets = relationship(
        "Tweet", back_populates="user", cascade="all, delete-orphan"
    )
    categories = relationship(
        "Category", back_populates="user", cascade="all, delete-orphan"
    )
    sync_logs = relationship(
        "SyncLog", back_populates="user", cascade="all, delete-orphan"
    )
