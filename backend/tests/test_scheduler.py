"""Tests for scheduled sync, cleanup and maintenance jobs."""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from app.core.exceptions import RateLimitError
from app.models.sync_log import SyncLog
from app.models.user import User
from app.services.scheduler import SyncScheduler
from app.services.sync_log_cleanup import SyncLogCleanupService
from app.services.sync_pipeline import SyncResult


@pytest.fixture
def more_users(db_session, test_user):
    users = [
        User(twitter_id="2", username="second", access_token="tok-2"),
        User(twitter_id="3", username="third", access_token="tok-3"),
        User(twitter_id="4", username="no_token", access_token=None),
        User(twitter_id="5", username="inactive", access_token="tok-5", is_active=False),
    ]
    db_session.add_all(users)
    db_session.commit()
    return users


@pytest.mark.unit
class TestSyncAllUsers:
    """One scheduled pass over every eligible user."""

    @pytest.mark.asyncio
    async def test_continues_after_failures(self, db_session, test_user, more_users):
        """Rate limits trigger the long cooldown, other errors a short pause."""
        scheduler = SyncScheduler(session_factory=lambda: db_session)
        pipeline = MagicMock()
        pipeline.sync_user = AsyncMock(
            side_effect=[
                SyncResult(total_tweets=5, new_tweets=2, duration=10),
                RateLimitError(),
                ValueError("boom"),
            ]
        )

        with patch.object(scheduler, "_pipeline", return_value=pipeline), patch(
            "asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            summary = await scheduler.sync_all_users()

        synced_ids = [c.args[0] for c in pipeline.sync_user.await_args_list]
        assert synced_ids == [test_user.id, more_users[0].id, more_users[1].id]
        assert [c.args[0] for c in mock_sleep.await_args_list] == [2.0, 900.0, 5.0]
        assert summary["total"] == 3
        assert summary["succeeded"] == 1
        assert summary["failed"] == 2

    @pytest.mark.asyncio
    async def test_no_users(self, db_session):
        scheduler = SyncScheduler(session_factory=lambda: db_session)

        summary = await scheduler.sync_all_users()

        assert summary["total"] == 0

    @pytest.mark.asyncio
    async def test_run_sync_job_swallows_errors(self):
        scheduler = SyncScheduler()

        with patch.object(
            scheduler, "sync_all_users", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            await scheduler.run_sync_job()

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self):
        scheduler = SyncScheduler()
        scheduler.start()
        try:
            job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
            assert job_ids == {"sync_bookmarks", "cleanup_sync_logs", "monthly_maintenance"}
        finally:
            scheduler.shutdown()


@pytest.mark.unit
class TestSyncLogCleanup:
    """Weekly log purge and monthly maintenance."""

    def test_cleanup_old_logs(self, db_session, test_user):
        now = datetime.utcnow()
        db_session.add_all(
            [
                SyncLog(user_id=test_user.id, status=SyncLog.SUCCESS, started_at=now - timedelta(days=45)),
                SyncLog(user_id=test_user.id, status=SyncLog.ERROR, started_at=now - timedelta(days=31)),
                SyncLog(user_id=test_user.id, status=SyncLog.SUCCESS, started_at=now - timedelta(days=2)),
            ]
        )
        db_session.commit()

        result = SyncLogCleanupService(db_session).cleanup_old_logs()

        assert result["deleted_logs"] == 2
        assert db_session.query(SyncLog).count() == 1

    def test_cleanup_custom_retention(self, db_session, test_user):
        db_session.add(
            SyncLog(
                user_id=test_user.id,
                status=SyncLog.SUCCESS,
                started_at=datetime.utcnow() - timedelta(days=10),
            )
        )
        db_session.commit()

        result = SyncLogCleanupService(db_session).cleanup_old_logs(days_to_keep=7)

        assert result["deleted_logs"] == 1

    def test_monthly_maintenance(self, db_session, test_user, default_categories):
        test_user.last_sync = datetime.utcnow() - timedelta(days=60)
        db_session.commit()

        result = SyncLogCleanupService(db_session).monthly_maintenance()

        assert result["categories_updated"] == 5
        assert result["inactive_users"] == 1

    @pytest.mark.asyncio
    async def test_cleanup_job_uses_own_session(self, db_session, test_user):
        session = MagicMock(wraps=db_session)
        scheduler = SyncScheduler(session_factory=lambda: session)

        with patch(
            "app.services.scheduler.SyncLogCleanupService.cleanup_old_logs",
            return_value={"deleted_logs": 0, "cutoff_date": "x"},
        ) as mock_cleanup:
            await scheduler.cleanup_job()

        mock_cleanup.assert_called_once()
        session.close.assert_called_once()
