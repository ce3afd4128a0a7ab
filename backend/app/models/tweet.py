from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import List
from app.core.database import Base
import json


def parse_json_list(value) -> List[str]:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []


class Tweet(Base):
    __tablename__ = "tweets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Original tweet data from the provider (immutable after insert)
    tweet_id = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False)
    author_id = Column(String)
    author_username = Column(String, index=True)
    author_name = Column(String)
    created_at_twitter = Column(DateTime)
    bookmarked_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Engagement counters, refreshed on every sync
    reply_count = Column(Integer, default=0)
    like_count = Column(Integer, default=0)
    retweet_count = Column(Integer, default=0)

    # JSON encoded lists, NULL when empty
    media_urls = Column(Text, nullable=True)
    hashtags = Column(Text, nullable=True)
    mentions = Column(Text, nullable=True)

    # Legacy single label, mirrors the primary TweetCategory row
    category = Column(String, nullable=True, index=True)

    # Metadata
    processed = Column(Boolean, default=False)
    is_archived = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="tweets")
    tweet_categories = relationship(
        "TweetCategory",
        back_populates="tweet",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # One archived copy per user and provider tweet
    __table_args__ = (
        UniqueConstraint("user_id", "tweet_id", name="uq_tweets_user_tweet"),
    )

    @property
    def media_url_list(self) -> List[str]:
        return parse_json_list(self.media_urls)

    @property
    def hashtag_list(self) -> List[str]:
        return parse_json_list(self.hashtags)

    @property
    def mention_list(self) -> List[str]:
        return parse_json_list(self.mentions)
