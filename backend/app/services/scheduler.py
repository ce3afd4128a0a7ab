from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from app.core.config import settings
from app.core.database import SessionLocal
from app.core.exceptions import RateLimitError
from app.core.logging_config import log_error, log_sync_event, new_correlation_id
from app.models.user import User
from app.services.sentiment_adapter import SentimentAdapter
from app.services.categorization import CategorizationService
from app.services.sync_log_cleanup import SyncLogCleanupService
from app.services.sync_pipeline import SyncPipeline
from typing import Callable, Optional
import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        sentiment_adapter: Optional[SentimentAdapter] = None,
    ):
        self.scheduler = AsyncIOScheduler(timezone=settings.SYNC_TIMEZONE)
        self.session_factory = session_factory
        self.sentiment_adapter = sentiment_adapter

    def _pipeline(self, db) -> SyncPipeline:
        categorization = CategorizationService(db, self.sentiment_adapter)
        return SyncPipeline(db, categorization=categorization)

    async def sync_all_users(self) -> dict:
        """
        Sync every active user that has a stored access token, one at a time.

        A user's failure never stops the run: rate limits trigger the long
        cooldown, any other error a short pause.
        """
        new_correlation_id("sync")
        started = time.monotonic()
        db = self.session_factory()
        succeeded = 0
        failed = 0
        try:
            users = (
                db.query(User)
                .filter(User.is_active == True, User.access_token.isnot(None))
                .order_by(User.id)
                .all()
            )
            log_sync_event(
                None, "SYNC_ALL_START", f"Scheduled sync of {len(users)} users", users=len(users)
            )

            pipeline = self._pipeline(db)
            for user in users:
                try:
                    result = await pipeline.sync_user(user.id)
                    succeeded += 1
                    logger.info(
                        f"Synced @{user.username}: {result.new_tweets} new of {result.total_tweets}",
                        extra={"user_id": user.id},
                    )
                    await asyncio.sleep(settings.SYNC_USER_DELAY)
                except RateLimitError as e:
                    failed += 1
                    log_error(e, "scheduled_sync", user_id=user.id)
                    logger.warning(
                        f"Rate limited while syncing @{user.username}, "
                        f"cooling down for {settings.SYNC_RATE_LIMIT_COOLDOWN}s"
                    )
                    await asyncio.sleep(settings.SYNC_RATE_LIMIT_COOLDOWN)
                except Exception as e:
                    failed += 1
                    log_error(e, "scheduled_sync", user_id=user.id)
                    await asyncio.sleep(settings.SYNC_ERROR_PAUSE)
        finally:
            db.close()

        summary = {
            "total": succeeded + failed,
            "succeeded": succeeded,
            "failed": failed,
            "duration": int((time.monotonic() - started) * 1000),
        }
        log_sync_event(
            None,
            "SYNC_ALL_COMPLETE",
            f"Scheduled sync finished: {succeeded} succeeded, {failed} failed",
            **summary,
        )
        return summary

    async def run_sync_job(self):
        try:
            await self.sync_all_users()
        except Exception as e:
            logger.error(f"Error in scheduled sync: {str(e)}")

    async def cleanup_job(self):
        new_correlation_id("cleanup")
        db = self.session_factory()
        try:
            result = SyncLogCleanupService(db).cleanup_old_logs()
            logger.info(f"Weekly cleanup completed: {result['deleted_logs']} sync logs deleted")
        except Exception as e:
            logger.error(f"Error in weekly cleanup: {str(e)}")
        finally:
            db.close()

    async def maintenance_job(self):
        new_correlation_id("maintenance")
        db = self.session_factory()
        try:
            result = SyncLogCleanupService(db).monthly_maintenance()
            logger.info(
                f"Monthly maintenance completed: {result['categories_updated']} categories "
                f"recounted, {result['inactive_users']} inactive users"
            )
        except Exception as e:
            logger.error(f"Error in monthly maintenance: {str(e)}")
        finally:
            db.close()

    def start(self):
        """Start the scheduler."""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=CronTrigger.from_crontab(
                settings.SYNC_SCHEDULE_CRON, timezone=settings.SYNC_TIMEZONE
            ),
            id="sync_bookmarks",
            name="Sync bookmarks of all users",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.cleanup_job,
            trigger=CronTrigger(day_of_week="sun", hour=2, minute=0),
            id="cleanup_sync_logs",
            name="Purge old sync logs",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.maintenance_job,
            trigger=CronTrigger(day=1, hour=1, minute=0),
            id="monthly_maintenance",
            name="Recount categories and report inactive users",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started with sync schedule: {settings.SYNC_SCHEDULE_CRON}")

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Scheduler shutdown")


# Global scheduler instance
scheduler = SyncScheduler()
