"""
Bookmark activity statistics for one user.

All figures count non-archived tweets only and are bucketed by
``bookmarked_at``.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.tweet import Tweet

GROWTH_WINDOW_DAYS = 30
WEEKLY_WINDOW_DAYS = 7


class UserStatsService:
    def __init__(self, db: Session):
        self.db = db

    def _active_tweets(self, user_id: int):
        return self.db.query(Tweet).filter(
            Tweet.user_id == user_id, Tweet.is_archived == False
        )

    def popular_tweets(self, user_id: int, limit: int = 10) -> List[Tweet]:
        """Most liked bookmarks, ties broken by newest bookmark."""
        return (
            self._active_tweets(user_id)
            .order_by(Tweet.like_count.desc(), Tweet.bookmarked_at.desc())
            .limit(limit)
            .all()
        )

    def weekly_activity(self, user_id: int) -> List[Dict[str, Any]]:
        """Per-day bookmark counts over the last week, oldest day first."""
        since = datetime.utcnow() - timedelta(days=WEEKLY_WINDOW_DAYS)
        day = func.date(Tweet.bookmarked_at)

        rows = (
            self.db.query(
                day.label("date"),
                func.count(Tweet.id),
                func.count(func.distinct(Tweet.category)),
                func.avg(Tweet.like_count),
            )
            .filter(
                Tweet.user_id == user_id,
                Tweet.is_archived == False,
                Tweet.bookmarked_at >= since,
            )
            .group_by(day)
            .order_by(day)
            .all()
        )

        return [
            {
                "date": date,
                "tweets_count": count,
                "categories_used": categories_used,
                "avg_likes": round(avg_likes or 0),
            }
            for date, count, categories_used, avg_likes in rows
        ]

    def growth(self, user_id: int) -> Dict[str, Any]:
        """
        Compare the last 30 days of bookmarks with the 30 days before.

        ``growth`` is the percentage change; with an empty previous period it
        is 100 when anything was bookmarked since, otherwise 0.
        """
        now = datetime.utcnow()
        current_start = now - timedelta(days=GROWTH_WINDOW_DAYS)
        previous_start = now - timedelta(days=2 * GROWTH_WINDOW_DAYS)

        current = (
            self._active_tweets(user_id)
            .filter(Tweet.bookmarked_at >= current_start)
            .count()
        )
        previous = (
            self._active_tweets(user_id)
            .filter(
                Tweet.bookmarked_at >= previous_start,
                Tweet.bookmarked_at < current_start,
            )
            .count()
        )

        if previous:
            growth = round((current - previous) / previous * 100)
        else:
            growth = 100 if current else 0

        if growth > 0:
            trend = "up"
        elif growth < 0:
            trend = "down"
        else:
            trend = "stable"

        return {"current": current, "previous": previous, "growth": growth, "trend": trend}
