from sqlalchemy import (
    Column,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


class TweetCategory(Base):
    """Multi-category membership of a tweet; source of truth over Tweet.category."""

    __tablename__ = "tweet_categories"

    id = Column(Integer, primary_key=True, index=True)
    tweet_id = Column(
        Integer, ForeignKey("tweets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    confidence = Column(Float, nullable=False, default=0.0)  # [0, 1]
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    tweet = relationship("Tweet", back_populates="tweet_categories")
    category = relationship("Category", back_populates="tweet_categories")

    __table_args__ = (
        UniqueConstraint("tweet_id", "category_id", name="uq_tweet_category"),
    )
