"""
Bookmark synchronization for one user.

A run walks the provider's bookmark pages, stores new tweets (categorizing
each one on first insert) and refreshes the engagement counters of tweets it
already knows. Every run is recorded in a SyncLog row that is finalized on
both the success and the failure path.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.exceptions import AuthError, NotFoundError, PersistenceError
from app.core.logging_config import log_error, log_sync_event
from app.models.sync_log import SyncLog
from app.models.tweet import Tweet
from app.models.user import User
from app.services.categorization import CategorizationService, get_user_lock
from app.services.rate_limiter import with_rate_limit_retry
from app.services.twitter_client import FetchPage, TwitterClient
from app.services.token_store import TokenStore
import asyncio
import json
import logging
import re
import time

logger = logging.getLogger(__name__)

# Word characters including Latin-1 Supplement, Latin Extended A/B and
# Latin Extended Additional, so "#café" and "@josé" stay whole.
_ENTITY_CHARS = r"[\w\u00c0-\u024f\u1e00-\u1eff]+"
HASHTAG_PATTERN = re.compile("#" + _ENTITY_CHARS)
MENTION_PATTERN = re.compile("@" + _ENTITY_CHARS)

COUNTER_FIELDS = ("reply_count", "like_count", "retweet_count")


def extract_entities(text: Optional[str], pattern: re.Pattern) -> Optional[str]:
    """JSON list of pattern matches in ``text``, or None when there are none."""
    if not text:
        return None
    found = pattern.findall(text)
    return json.dumps(found, ensure_ascii=False) if found else None


def _json_list_or_none(values: Optional[Iterable[str]]) -> Optional[str]:
    values = [v for v in (values or []) if v]
    return json.dumps(values) if values else None


@dataclass
class SyncResult:
    total_tweets: int
    new_tweets: int
    duration: int  # milliseconds

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SyncPipeline:
    def __init__(
        self,
        db: Session,
        client: Optional[TwitterClient] = None,
        token_store: Optional[TokenStore] = None,
        categorization: Optional[CategorizationService] = None,
    ):
        self.db = db
        self.client = client or TwitterClient()
        self.token_store = token_store or TokenStore(db)
        self.categorization = categorization or CategorizationService(db)

    async def sync_user(self, user_id: int) -> SyncResult:
        """
        Run one bookmark sync for ``user_id``.

        Runs for the same user are serialized. Raises NotFoundError for an
        unknown user, AuthError when no credential is stored, and re-raises
        whatever ended a started run after recording it on the SyncLog.
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User", user_id)
        if not self.token_store.get(user):
            raise AuthError("User has no Twitter access token", "MISSING_TOKEN", user_id=user_id)

        async with get_user_lock(user.id):
            return await self._run(user)

    async def _run(self, user: User) -> SyncResult:
        self.reconcile_stale_runs(user.id)
        self.categorization.ensure_default_categories(user.id)

        started = time.monotonic()
        sync_log = SyncLog(user_id=user.id, status=SyncLog.RUNNING, started_at=datetime.utcnow())
        self.db.add(sync_log)
        self.db.commit()

        log_sync_event(
            user.id,
            "SYNC_START",
            f"Starting bookmark sync for @{user.username}",
            sync_log_id=sync_log.id,
            username=user.username,
        )

        total = 0
        new = 0
        try:
            records = await self._fetch_all(user)
            total = len(records)

            for record in records:
                if await self._ingest_one(user, record):
                    new += 1

            if new:
                self.categorization.recompute_tweet_counts(user.id)

            user.last_sync = datetime.utcnow()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            duration = int((time.monotonic() - started) * 1000)
            self._finish(sync_log, SyncLog.ERROR, total, new, duration, getattr(e, "message", str(e)))
            log_sync_event(
                user.id,
                "SYNC_ERROR",
                f"Bookmark sync failed for @{user.username}: {e}",
                level=logging.ERROR,
                sync_log_id=sync_log.id,
                error_code=getattr(e, "error_code", type(e).__name__),
                tweets_found=total,
                tweets_new=new,
                duration_ms=duration,
            )
            raise

        duration = int((time.monotonic() - started) * 1000)
        self._finish(sync_log, SyncLog.SUCCESS, total, new, duration)
        log_sync_event(
            user.id,
            "SYNC_COMPLETE",
            f"Synced {total} bookmarks for @{user.username} ({new} new) in {duration}ms",
            sync_log_id=sync_log.id,
            tweets_found=total,
            tweets_new=new,
            duration_ms=duration,
        )
        return SyncResult(total_tweets=total, new_tweets=new, duration=duration)

    async def _fetch_all(self, user: User) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        cursor = None

        while True:
            page = await self._fetch_page(user, cursor)
            records.extend(page.records)
            cursor = page.next_cursor

            log_sync_event(
                user.id,
                "SYNC_BATCH",
                level=logging.DEBUG,
                batch_size=page.count,
                total_so_far=len(records),
                has_next=bool(cursor),
            )

            if not cursor or len(records) >= settings.SYNC_MAX_TWEETS:
                break
            await asyncio.sleep(settings.SYNC_PAGE_DELAY)

        return records

    async def _fetch_page(self, user: User, cursor: Optional[str]) -> FetchPage:
        async def fetch(credential: str) -> FetchPage:
            return await self.client.fetch_page(
                credential, cursor, settings.SYNC_PAGE_SIZE, user.twitter_id
            )

        async def attempt() -> FetchPage:
            return await self.token_store.call_with_refresh(user, fetch)

        return await with_rate_limit_retry(
            attempt, context={"user_id": user.id, "cursor": cursor}
        )

    async def ingest_records(self, user: User, records: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Store a batch of normalized records for ``user``.

        Records without ``tweet_id`` are skipped. Known tweets only get their
        counters refreshed. Returns ``{processed, new_tweets, skipped}``.
        """
        processed = 0
        new = 0
        skipped = 0

        async with get_user_lock(user.id):
            self.categorization.ensure_default_categories(user.id)
            for record in records:
                if not record.get("tweet_id"):
                    skipped += 1
                    continue
                processed += 1
                if await self._ingest_one(user, record):
                    new += 1

            if new:
                self.categorization.recompute_tweet_counts(user.id)

        log_sync_event(
            user.id,
            "INGEST",
            f"Ingested {processed} records for @{user.username} ({new} new, {skipped} skipped)",
            tweets_found=processed,
            tweets_new=new,
            skipped=skipped,
        )
        return {"processed": processed, "new_tweets": new, "skipped": skipped}

    async def _ingest_one(self, user: User, record: Dict[str, Any]) -> bool:
        """Upsert one record; returns True when it was inserted."""
        tweet = (
            self.db.query(Tweet)
            .filter(Tweet.user_id == user.id, Tweet.tweet_id == str(record["tweet_id"]))
            .first()
        )
        is_new = tweet is None

        try:
            if is_new:
                tweet = self._build_tweet(user, record)
                self.db.add(tweet)
            else:
                for field in COUNTER_FIELDS:
                    if record.get(field) is not None:
                        setattr(tweet, field, record[field])
            self.db.commit()
        except IntegrityError:
            # Inserted by another writer since the lookup
            self.db.rollback()
            logger.debug(f"Tweet {record['tweet_id']} already stored for user {user.id}")
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "ingest_record", user_id=user.id, tweet_id=record["tweet_id"])
            raise PersistenceError("ingest_record", str(e))

        # Unprocessed tweets are left over from a run that failed mid-way
        if is_new or not tweet.processed:
            ranked = await self.categorization.categorize(tweet.content)
            self.categorization.persist_categories(tweet.id, ranked, user.id)
        return is_new

    @staticmethod
    def _build_tweet(user: User, record: Dict[str, Any]) -> Tweet:
        content = record.get("content") or ""
        return Tweet(
            user_id=user.id,
            tweet_id=str(record["tweet_id"]),
            content=content,
            author_id=record.get("author_id"),
            author_username=record.get("author_username"),
            author_name=record.get("author_name"),
            created_at_twitter=record.get("created_at_twitter"),
            bookmarked_at=record.get("bookmarked_at") or datetime.utcnow(),
            reply_count=record.get("reply_count") or 0,
            like_count=record.get("like_count") or 0,
            retweet_count=record.get("retweet_count") or 0,
            media_urls=_json_list_or_none(record.get("media_urls")),
            hashtags=extract_entities(content, HASHTAG_PATTERN),
            mentions=extract_entities(content, MENTION_PATTERN),
            processed=False,
        )

    def _finish(
        self,
        sync_log: SyncLog,
        status: str,
        tweets_found: int,
        tweets_new: int,
        duration: int,
        error: Optional[str] = None,
    ) -> None:
        sync_log.status = status
        sync_log.tweets_found = tweets_found
        sync_log.tweets_new = tweets_new
        sync_log.duration = duration
        sync_log.error = error
        sync_log.completed_at = datetime.utcnow()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "finish_sync_log", sync_log_id=sync_log.id)

    def reconcile_stale_runs(self, user_id: int) -> int:
        """Mark runs stuck in ``running`` past the stale threshold as errors."""
        cutoff = datetime.utcnow() - timedelta(minutes=settings.SYNC_STALE_AFTER_MINUTES)
        stale = (
            self.db.query(SyncLog)
            .filter(
                SyncLog.user_id == user_id,
                SyncLog.status == SyncLog.RUNNING,
                SyncLog.started_at < cutoff,
            )
            .all()
        )
        for sync_log in stale:
            sync_log.status = SyncLog.ERROR
            sync_log.error = "Stale sync run (process ended before completion)"
            sync_log.completed_at = datetime.utcnow()
        if stale:
            self.db.commit()
            log_sync_event(
                user_id,
                "STALE_RECONCILED",
                f"Marked {len(stale)} stale sync runs as failed",
                level=logging.WARNING,
                count=len(stale),
            )
        return len(stale)

    def get_sync_stats(self, user_id: int, days: int = 7) -> Dict[str, Any]:
        """Recent sync logs plus per-status aggregates over the last ``days``."""
        self.reconcile_stale_runs(user_id)
        since = datetime.utcnow() - timedelta(days=days)

        recent = (
            self.db.query(SyncLog)
            .filter(SyncLog.user_id == user_id, SyncLog.started_at >= since)
            .order_by(SyncLog.started_at.desc())
            .limit(50)
            .all()
        )

        rows = (
            self.db.query(
                SyncLog.status,
                func.count(SyncLog.id),
                func.avg(SyncLog.duration),
                func.sum(SyncLog.tweets_found),
                func.sum(SyncLog.tweets_new),
            )
            .filter(SyncLog.user_id == user_id, SyncLog.started_at >= since)
            .group_by(SyncLog.status)
            .all()
        )
        by_status = {
            status: {
                "count": count,
                "avg_duration": round(avg_duration) if avg_duration is not None else None,
                "tweets_found": tweets_found or 0,
                "tweets_new": tweets_new or 0,
            }
            for status, count, avg_duration, tweets_found, tweets_new in rows
        }

        return {"days": days, "recent": recent, "by_status": by_status}
