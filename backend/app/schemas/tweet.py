from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List
from app.models.tweet import parse_json_list


class TweetCategoryInfo(BaseModel):
    name: str
    confidence: float
    is_primary: bool
    color: Optional[str] = None
    category_id: Optional[int] = None


class Tweet(BaseModel):
    id: int
    tweet_id: str
    content: str
    author_id: Optional[str] = None
    author_username: Optional[str] = None
    author_name: Optional[str] = None
    created_at_twitter: Optional[datetime] = None
    bookmarked_at: Optional[datetime] = None
    reply_count: int = 0
    like_count: int = 0
    retweet_count: int = 0
    media_urls: List[str] = []
    hashtags: List[str] = []
    mentions: List[str] = []
    category: Optional[str] = None  # Primary category name
    processed: bool = False
    is_archived: bool = False
    created_at: Optional[datetime] = None

    @field_validator("media_urls", "hashtags", "mentions", mode="before")
    @classmethod
    def parse_json_lists(cls, v):
        # Stored as JSON text (or NULL) on the model
        if v is None or isinstance(v, str):
            return parse_json_list(v)
        return v

    class Config:
        from_attributes = True


class TweetWithCategories(Tweet):
    categories: List[TweetCategoryInfo] = []


class TweetList(BaseModel):
    tweets: List[Tweet]
    total: int
    skip: int
    limit: int


class TweetCategoryUpdate(BaseModel):
    category: str = Field(min_length=1, max_length=50)


class ExtensionTweet(BaseModel):
    """One tweet as scraped from the timeline by the browser extension."""

    tweet_url: str
    user_name: Optional[str] = None
    user_handle: Optional[str] = None
    user_image_url: Optional[str] = None
    tweet_content: Optional[str] = ""
    media_url: Optional[str] = None
    media_link: Optional[str] = None


class ExtensionIngest(BaseModel):
    tweets: List[ExtensionTweet] = Field(max_length=500)


class ExtensionIngestResult(BaseModel):
    processed: int
    new_tweets: int
    skipped: int
