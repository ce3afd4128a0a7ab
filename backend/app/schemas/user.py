from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Optional, Dict


class User(BaseModel):
    id: int
    twitter_id: str
    username: str
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    is_active: bool = True
    last_sync: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserStats(BaseModel):
    total_tweets: int
    archived_tweets: int
    total_categories: int
    tweets_by_category: Dict[str, int]
    last_sync: Optional[datetime] = None


class UserUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=100)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v):
        if v is None:
            return v
        return v.strip() or None


class AccountDeletion(BaseModel):
    confirmation: str


class DailyActivity(BaseModel):
    date: date
    tweets_count: int
    categories_used: int
    avg_likes: int


class GrowthStats(BaseModel):
    current: int
    previous: int
    growth: int
    trend: str
