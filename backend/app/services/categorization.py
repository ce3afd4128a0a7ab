from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.exceptions import CategorizationError, NotFoundError, ValidationError
from app.core.logging_config import log_error
from app.models.category import Category
from app.models.tweet import Tweet
from app.models.tweet_category import TweetCategory
from app.services.category_ranker import CategoryRanker, CategoryResult, fallback_result
from app.services.classifiers import (
    CATEGORY_KEYWORDS,
    GENERAL_CATEGORY,
    ContextClassifier,
    KeywordClassifier,
)
from app.services.sentiment_adapter import SentimentAdapter
import asyncio
import logging
import random
import weakref

logger = logging.getLogger(__name__)

# Suggested colours; auto-created categories pick one at random
CATEGORY_COLORS = [
    {"name": "Blue", "value": "#3B82F6"},
    {"name": "Green", "value": "#10B981"},
    {"name": "Red", "value": "#EF4444"},
    {"name": "Yellow", "value": "#F59E0B"},
    {"name": "Purple", "value": "#8B5CF6"},
    {"name": "Pink", "value": "#EC4899"},
    {"name": "Indigo", "value": "#6366F1"},
    {"name": "Gray", "value": "#6B7280"},
    {"name": "Orange", "value": "#F97316"},
    {"name": "Teal", "value": "#14B8A6"},
]

# Auto-created categories sort after anything a user made by hand
AUTO_CATEGORY_SORT_BASE = 100

DEFAULT_CATEGORIES = [
    {
        "name": GENERAL_CATEGORY,
        "description": "Tweets without a specific category",
        "color": "#6B7280",
        "is_default": True,
        "sort_order": 0,
    },
    {
        "name": "Technology",
        "description": "Technology, programming and software",
        "color": "#3B82F6",
        "is_default": False,
        "sort_order": 1,
    },
    {
        "name": "News",
        "description": "News and current affairs",
        "color": "#EF4444",
        "is_default": False,
        "sort_order": 2,
    },
    {
        "name": "Education",
        "description": "Educational content and learning",
        "color": "#10B981",
        "is_default": False,
        "sort_order": 3,
    },
    {
        "name": "Inspiration",
        "description": "Quotes, motivation and inspiration",
        "color": "#F59E0B",
        "is_default": False,
        "sort_order": 4,
    },
]

SUGGESTION_SAMPLE_SIZE = 50

# Entries disappear once no coroutine holds or waits on the lock
_user_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def get_user_lock(user_id: int) -> asyncio.Lock:
    """Lock serializing category-mutating work (sync, recategorize) per user."""
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = _user_locks[user_id] = asyncio.Lock()
    return lock


@dataclass
class CategoryView:
    name: str
    confidence: float
    is_primary: bool
    color: Optional[str] = None
    category_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "confidence": self.confidence,
            "is_primary": self.is_primary,
            "color": self.color,
            "category_id": self.category_id,
        }


class CategorizationService:
    def __init__(
        self,
        db: Session,
        sentiment_adapter: Optional[SentimentAdapter] = None,
        keyword_classifier: Optional[KeywordClassifier] = None,
        context_classifier: Optional[ContextClassifier] = None,
        ranker: Optional[CategoryRanker] = None,
    ):
        self.db = db
        self.sentiment_adapter = sentiment_adapter or SentimentAdapter()
        self.keyword_classifier = keyword_classifier or KeywordClassifier()
        self.context_classifier = context_classifier or ContextClassifier()
        self.ranker = ranker or CategoryRanker()

    async def categorize(self, text: str) -> List[CategoryResult]:
        """
        Rank categories for a piece of text.

        Signals are gathered in keywords, ai, context order (the ranker's merge
        depends on it). A failing classifier only removes its own signals.
        Always returns at least one result; at most one is primary.
        """
        if not text or not isinstance(text, str):
            return [fallback_result()]

        signals = []
        try:
            signals.extend(self.keyword_classifier.classify(text))
        except Exception as e:
            logger.warning(f"Keyword classifier failed: {e}")

        signals.extend(await self.sentiment_adapter.classify(text))

        try:
            signals.extend(self.context_classifier.classify(text))
        except Exception as e:
            logger.warning(f"Context classifier failed: {e}")

        ranked = self.ranker.rank(signals)
        if not ranked:
            return [fallback_result()]
        return ranked

    async def batch_categorize(self, tweets: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Categorize tweets independently; one failure never aborts the batch."""
        results = []
        for tweet in tweets:
            tweet_id = None
            try:
                tweet_id = tweet.get("id") or tweet.get("tweet_id")
                ranked = await self.categorize(tweet["content"])
                top = ranked[0]
                results.append(
                    {
                        "tweet_id": tweet_id,
                        "category": top.category,
                        "confidence": top.confidence,
                        "categories": [r.to_dict() for r in ranked],
                    }
                )
            except Exception as e:
                log_error(e, "batch_categorize", tweet_id=tweet_id)
                results.append(
                    {
                        "tweet_id": tweet_id,
                        "category": GENERAL_CATEGORY,
                        "confidence": 0.2,
                        "error": True,
                    }
                )
        return results

    def persist_categories(
        self, tweet_id: int, categories: List[CategoryResult], user_id: int
    ) -> List[TweetCategory]:
        """
        Replace the tweet's category rows with ``categories`` and commit.

        Missing categories are created for the user. The primary name is written
        back to ``Tweet.category``. On any database failure the session is
        rolled back, so the tweet keeps the rows it had before the call.
        """
        if not categories:
            raise ValidationError("At least one category is required", tweet_id=tweet_id)

        unique: List[CategoryResult] = []
        seen = set()
        for result in categories:
            if result.category not in seen:
                seen.add(result.category)
                unique.append(result)

        primary_name = next(
            (r.category for r in unique if r.is_primary), unique[0].category
        )

        try:
            tweet = (
                self.db.query(Tweet)
                .filter(Tweet.id == tweet_id, Tweet.user_id == user_id)
                .first()
            )
            if tweet is None:
                raise NotFoundError("Tweet", tweet_id)

            for existing in list(tweet.tweet_categories):
                self.db.delete(existing)
            self.db.flush()

            rows = []
            for result in unique:
                category = self._get_or_create_category(user_id, result.category)
                row = TweetCategory(
                    tweet_id=tweet_id,
                    category_id=category.id,
                    confidence=min(max(result.confidence, 0.0), 1.0),
                    is_primary=result.category == primary_name,
                )
                self.db.add(row)
                rows.append(row)

            tweet.category = primary_name
            tweet.processed = True
            self.db.commit()
            return rows
        except NotFoundError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "persist_categories", tweet_id=tweet_id, user_id=user_id)
            raise CategorizationError(tweet_id=tweet_id)

    def _get_or_create_category(self, user_id: int, name: str) -> Category:
        category = (
            self.db.query(Category)
            .filter(Category.user_id == user_id, Category.name == name)
            .first()
        )
        if category:
            return category
        if name == GENERAL_CATEGORY:
            # The fallback category is always the user's default
            category = Category(user_id=user_id, **DEFAULT_CATEGORIES[0])
            self.db.add(category)
            self.db.flush()
            logger.info(f"Created default category '{name}' for user {user_id}")
            return category

        existing = (
            self.db.query(func.count(Category.id))
            .filter(Category.user_id == user_id)
            .scalar()
        )
        category = Category(
            user_id=user_id,
            name=name,
            description="Created automatically by the categorizer",
            color=random.choice(CATEGORY_COLORS)["value"],
            is_default=False,
            sort_order=AUTO_CATEGORY_SORT_BASE + existing,
        )
        self.db.add(category)
        self.db.flush()
        logger.info(f"Auto-created category '{name}' for user {user_id}")
        return category

    def get_categories(self, tweet_id: int) -> List[CategoryView]:
        """Persisted categories of a tweet, primary first then by confidence."""
        try:
            rows = (
                self.db.query(TweetCategory, Category)
                .join(Category, Category.id == TweetCategory.category_id)
                .filter(TweetCategory.tweet_id == tweet_id)
                .order_by(TweetCategory.is_primary.desc(), TweetCategory.confidence.desc())
                .all()
            )
        except SQLAlchemyError as e:
            log_error(e, "get_categories", tweet_id=tweet_id)
            raise CategorizationError(tweet_id=tweet_id)

        return [
            CategoryView(
                name=category.name,
                confidence=row.confidence,
                is_primary=row.is_primary,
                color=category.color,
                category_id=category.id,
            )
            for row, category in rows
        ]

    def recompute_tweet_counts(self, user_id: int) -> Dict[str, int]:
        """Recount non-archived tweets per category and cache the numbers."""
        try:
            counts = dict(
                self.db.query(TweetCategory.category_id, func.count(TweetCategory.id))
                .join(Tweet, Tweet.id == TweetCategory.tweet_id)
                .filter(Tweet.user_id == user_id, Tweet.is_archived == False)
                .group_by(TweetCategory.category_id)
                .all()
            )
            categories = (
                self.db.query(Category).filter(Category.user_id == user_id).all()
            )
            for category in categories:
                category.tweet_count = counts.get(category.id, 0)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "recompute_tweet_counts", user_id=user_id)
            raise CategorizationError(user_id=user_id)

        return {category.name: category.tweet_count for category in categories}

    def _primary_row(self, tweet_id: int) -> Optional[CategoryView]:
        return next(
            (view for view in self.get_categories(tweet_id) if view.is_primary), None
        )

    async def _recategorize(self, tweet: Tweet, user_id: int) -> Dict[str, Any]:
        old = self._primary_row(tweet.id)
        old_category = old.name if old else tweet.category
        old_confidence = old.confidence if old else None

        ranked = await self.categorize(tweet.content)
        self.persist_categories(tweet.id, ranked, user_id)
        new = self._primary_row(tweet.id)

        change = {
            "tweet_id": tweet.id,
            "old_category": old_category,
            "new_category": new.name,
            "old_confidence": old_confidence,
            "new_confidence": new.confidence,
            "categories": [r.to_dict() for r in ranked],
        }
        logger.info(
            f"Recategorized tweet {tweet.id}: {old_category} ({old_confidence}) "
            f"-> {new.name} ({new.confidence:.2f})",
            extra={"user_id": user_id, "tweet_id": tweet.id},
        )
        return change

    async def recategorize_one(self, tweet_id: int, user_id: int) -> Dict[str, Any]:
        tweet = (
            self.db.query(Tweet)
            .filter(Tweet.id == tweet_id, Tweet.user_id == user_id)
            .first()
        )
        if tweet is None:
            raise NotFoundError("Tweet", tweet_id)

        change = await self._recategorize(tweet, user_id)
        self.recompute_tweet_counts(user_id)
        return change

    async def recategorize_all(self, user_id: int, limit: Optional[int] = None) -> Dict[str, Any]:
        """Re-run categorization on the user's non-archived tweets, newest first."""
        query = (
            self.db.query(Tweet)
            .filter(Tweet.user_id == user_id, Tweet.is_archived == False)
            .order_by(Tweet.bookmarked_at.desc())
        )
        if limit:
            query = query.limit(limit)
        tweets = query.all()

        changes = []
        for tweet in tweets:
            changes.append(await self._recategorize(tweet, user_id))

        counts = self.recompute_tweet_counts(user_id)
        updated = sum(1 for c in changes if c["old_category"] != c["new_category"])
        logger.info(
            f"Recategorized {len(changes)} tweets for user {user_id} ({updated} changed)",
            extra={"user_id": user_id},
        )
        return {
            "processed": len(changes),
            "updated": updated,
            "changes": changes,
            "tweet_counts": counts,
        }

    async def get_suggested_categories(self, user_id: int) -> List[Dict[str, Any]]:
        """Category suggestions from the user's most recent bookmarks."""
        recent = (
            self.db.query(Tweet.content)
            .filter(Tweet.user_id == user_id, Tweet.is_archived == False)
            .order_by(Tweet.bookmarked_at.desc())
            .limit(SUGGESTION_SAMPLE_SIZE)
            .all()
        )

        if not recent:
            return [
                {"name": name, "confidence": 0.5}
                for name in self.keyword_classifier.keywords or CATEGORY_KEYWORDS
            ]

        frequency: Dict[str, int] = {}
        for (content,) in recent:
            top = (await self.categorize(content))[0]
            if top.confidence > 0.5:
                frequency[top.category] = frequency.get(top.category, 0) + 1

        suggestions = [
            {
                "name": name,
                "confidence": min(count / len(recent), 1.0),
                "frequency": count,
            }
            for name, count in frequency.items()
        ]
        suggestions.sort(key=lambda s: s["confidence"], reverse=True)
        return suggestions

    def create_default_categories(self, user_id: int) -> List[Category]:
        """Bootstrap the fixed default set; existing names are left untouched."""
        existing = {
            name
            for (name,) in self.db.query(Category.name).filter(
                Category.user_id == user_id
            )
        }
        created = []
        try:
            for data in DEFAULT_CATEGORIES:
                if data["name"] in existing:
                    continue
                category = Category(user_id=user_id, **data)
                self.db.add(category)
                created.append(category)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "create_default_categories", user_id=user_id)
            raise CategorizationError(user_id=user_id)

        logger.info(f"Created {len(created)} default categories for user {user_id}")
        return created

    def ensure_default_categories(self, user_id: int) -> List[Category]:
        """Create the default set for a user who has no default category yet."""
        has_default = (
            self.db.query(Category.id)
            .filter(Category.user_id == user_id, Category.is_default == True)
            .first()
        )
        if has_default:
            return []
        return self.create_default_categories(user_id)

    def count_category_tweets(self, category_id: int) -> int:
        return (
            self.db.query(func.count(TweetCategory.id))
            .join(Tweet, Tweet.id == TweetCategory.tweet_id)
            .filter(TweetCategory.category_id == category_id, Tweet.is_archived == False)
            .scalar()
        )

    def delete_category(self, category_id: int, user_id: int) -> None:
        """Delete an empty, non-default category. Tweets are never removed."""
        category = (
            self.db.query(Category)
            .filter(Category.id == category_id, Category.user_id == user_id)
            .first()
        )
        if category is None:
            raise NotFoundError("Category", category_id)
        if category.is_default:
            raise ValidationError(
                "The default category cannot be deleted", "CANNOT_DELETE_DEFAULT"
            )

        tweet_count = self.count_category_tweets(category.id)
        if tweet_count > 0:
            raise ValidationError(
                f"Category has {tweet_count} tweets and cannot be deleted",
                "CATEGORY_HAS_TWEETS",
                tweet_count=tweet_count,
            )

        try:
            self.db.delete(category)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "delete_category", user_id=user_id, category_id=category_id)
            raise CategorizationError(category_id=category_id)

        logger.info(f"Deleted category '{category.name}' for user {user_id}")

    def move_tweets(self, source_id: int, target_name: str, user_id: int) -> int:
        """Move every non-archived tweet of one category into another."""
        source = (
            self.db.query(Category)
            .filter(Category.id == source_id, Category.user_id == user_id)
            .first()
        )
        if source is None:
            raise NotFoundError("Category", source_id, "SOURCE_CATEGORY_NOT_FOUND")
        target = (
            self.db.query(Category)
            .filter(Category.name == target_name, Category.user_id == user_id)
            .first()
        )
        if target is None:
            raise NotFoundError("Category", target_name, "TARGET_CATEGORY_NOT_FOUND")
        if target.id == source.id:
            return 0

        rows = (
            self.db.query(TweetCategory)
            .join(Tweet, Tweet.id == TweetCategory.tweet_id)
            .filter(TweetCategory.category_id == source.id, Tweet.is_archived == False)
            .all()
        )

        try:
            for row in rows:
                already = (
                    self.db.query(TweetCategory)
                    .filter(
                        TweetCategory.tweet_id == row.tweet_id,
                        TweetCategory.category_id == target.id,
                    )
                    .first()
                )
                if already:
                    already.is_primary = already.is_primary or row.is_primary
                    already.confidence = max(already.confidence, row.confidence)
                    self.db.delete(row)
                else:
                    row.category_id = target.id
                if row.is_primary:
                    row.tweet.category = target.name
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_error(e, "move_tweets", user_id=user_id, category_id=source_id)
            raise CategorizationError(category_id=source_id)

        self.recompute_tweet_counts(user_id)
        logger.info(
            f"Moved {len(rows)} tweets from '{source.name}' to '{target.name}'",
            extra={"user_id": user_id},
        )
        return len(rows)
