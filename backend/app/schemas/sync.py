from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict


class SyncLog(BaseModel):
    id: int
    status: str
    tweets_found: int = 0
    tweets_new: int = 0
    duration: Optional[int] = None  # milliseconds
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncResult(BaseModel):
    total_tweets: int
    new_tweets: int
    duration: int


class SyncStatusAggregate(BaseModel):
    count: int
    avg_duration: Optional[int] = None
    tweets_found: int = 0
    tweets_new: int = 0


class SyncStats(BaseModel):
    days: int
    recent: List[SyncLog]
    by_status: Dict[str, SyncStatusAggregate]
