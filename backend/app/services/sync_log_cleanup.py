"""
Housekeeping for sync history and cached category counts.

Runs from the scheduler: a weekly purge of old SyncLog rows and a monthly
pass that recounts every user's categories and reports inactive accounts.
"""

import logging
from datetime import datetime, timedelta
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.sync_log import SyncLog
from app.models.user import User
from app.core.config import settings
from app.services.categorization import CategorizationService

logger = logging.getLogger(__name__)

INACTIVE_AFTER_DAYS = 30


class SyncLogCleanupService:
    """Service for purging old sync logs and refreshing cached counters."""

    def __init__(self, db: Session):
        self.db = db

    def cleanup_old_logs(self, days_to_keep: int = None) -> dict:
        """
        Delete sync logs started more than ``days_to_keep`` days ago.

        Args:
            days_to_keep: Retention window (default SYNC_LOG_RETENTION_DAYS)

        Returns:
            dict with cleanup statistics
        """
        days_to_keep = days_to_keep or settings.SYNC_LOG_RETENTION_DAYS
        cutoff_date = datetime.utcnow() - timedelta(days=days_to_keep)

        deleted_count = (
            self.db.query(SyncLog)
            .filter(SyncLog.started_at < cutoff_date)
            .delete(synchronize_session=False)
        )
        self.db.commit()

        if deleted_count:
            logger.info(f"Deleted {deleted_count} sync logs older than {days_to_keep} days")
        else:
            logger.info("No old sync logs to delete")

        return {
            "deleted_logs": deleted_count,
            "cutoff_date": cutoff_date.isoformat(),
        }

    def monthly_maintenance(self) -> dict:
        """Recount tweets for every user's categories and count inactive users."""
        users = self.db.query(User).all()
        service = CategorizationService(self.db)

        categories_updated = 0
        for user in users:
            counts = service.recompute_tweet_counts(user.id)
            categories_updated += len(counts)
        logger.info(f"Updated tweet counts of {categories_updated} categories")

        cutoff_date = datetime.utcnow() - timedelta(days=INACTIVE_AFTER_DAYS)
        inactive_users = (
            self.db.query(User)
            .filter(
                User.is_active == True,
                or_(User.last_sync < cutoff_date, User.last_sync.is_(None)),
            )
            .count()
        )
        if inactive_users:
            logger.warning(
                f"{inactive_users} active users have not synced in {INACTIVE_AFTER_DAYS} days"
            )

        return {
            "categories_updated": categories_updated,
            "inactive_users": inactive_users,
        }
