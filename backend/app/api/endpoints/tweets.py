from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import List, Optional
from app.api.dependencies import get_categorization_service, get_sync_pipeline
from app.api.validation import (
    CategoryNameParam,
    LimitParam,
    SearchParam,
    SkipParam,
    validate_sort,
)
from app.core.auth import get_current_user
from app.core.database import get_db
from app.core.exceptions import NotFoundError, ValidationError
from app.models.category import Category
from app.models.tweet import Tweet
from app.models.tweet_category import TweetCategory
from app.models.user import User
from app.schemas.category import CategoryStat
from app.schemas.tweet import (
    ExtensionIngest,
    ExtensionIngestResult,
    Tweet as TweetSchema,
    TweetCategoryInfo,
    TweetCategoryUpdate,
    TweetList,
    TweetWithCategories,
)
from app.services.categorization import CategorizationService, get_user_lock
from app.services.category_ranker import CategoryResult
from app.services.sync_pipeline import SyncPipeline
from slowapi import Limiter
from slowapi.util import get_remote_address
import logging
import re

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)

STATUS_ID_PATTERN = re.compile(r"/status/(\d+)")


def _get_user_tweet(db: Session, tweet_id: int, user_id: int) -> Tweet:
    tweet = (
        db.query(Tweet)
        .filter(Tweet.id == tweet_id, Tweet.user_id == user_id)
        .first()
    )
    if not tweet:
        raise NotFoundError("Tweet", tweet_id)
    return tweet


@router.get("/", response_model=TweetList)
def get_tweets(
    skip: int = SkipParam,
    limit: int = LimitParam,
    category: Optional[str] = CategoryNameParam,
    search: Optional[str] = SearchParam,
    sort_by: str = "bookmarked_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the user's non-archived tweets with category filter, search and sorting."""
    column = getattr(Tweet, validate_sort(sort_by))

    query = db.query(Tweet).filter(
        Tweet.user_id == current_user.id, Tweet.is_archived == False
    )
    if category and category != "all":
        query = query.filter(
            Tweet.tweet_categories.any(
                TweetCategory.category.has(Category.name == category)
            )
        )
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Tweet.content.ilike(pattern),
                Tweet.author_username.ilike(pattern),
                Tweet.author_name.ilike(pattern),
            )
        )

    total = query.count()
    order = column.asc() if sort_order == "asc" else column.desc()
    tweets = query.order_by(order, Tweet.id.desc()).offset(skip).limit(limit).all()

    return {"tweets": tweets, "total": total, "skip": skip, "limit": limit}


@router.get("/categories/stats", response_model=List[CategoryStat])
def get_category_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tweets per category, with how many of them carry it as primary."""
    rows = (
        db.query(
            Category.name,
            Category.color,
            TweetCategory.is_primary,
            func.count(TweetCategory.id),
        )
        .join(TweetCategory, TweetCategory.category_id == Category.id)
        .join(Tweet, Tweet.id == TweetCategory.tweet_id)
        .filter(Category.user_id == current_user.id, Tweet.is_archived == False)
        .group_by(Category.name, Category.color, TweetCategory.is_primary)
        .all()
    )

    stats = {}
    for name, color, is_primary, count in rows:
        stat = stats.setdefault(
            name, {"name": name, "color": color, "tweet_count": 0, "primary_count": 0}
        )
        stat["tweet_count"] += count
        if is_primary:
            stat["primary_count"] += count

    return sorted(stats.values(), key=lambda s: s["tweet_count"], reverse=True)


@router.post("/extension", response_model=ExtensionIngestResult)
@limiter.limit("30/minute")
async def ingest_from_extension(
    request: Request,
    payload: ExtensionIngest,
    current_user: User = Depends(get_current_user),
    pipeline: SyncPipeline = Depends(get_sync_pipeline),
):
    """
    Store tweets scraped by the browser extension.

    The tweet id comes from the ``/status/<id>`` part of the URL; records
    without one are skipped. Known tweets are counted but not re-inserted.
    """
    records = []
    for item in payload.tweets:
        match = STATUS_ID_PATTERN.search(item.tweet_url)
        records.append(
            {
                "tweet_id": match.group(1) if match else None,
                "content": item.tweet_content or "",
                "author_username": (item.user_handle or "").lstrip("@") or None,
                "author_name": item.user_name,
                "media_urls": [item.media_url] if item.media_url else [],
            }
        )

    return await pipeline.ingest_records(current_user, records)


@router.get("/{tweet_id}", response_model=TweetWithCategories)
def get_tweet(
    tweet_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    tweet = _get_user_tweet(db, tweet_id, current_user.id)
    result = TweetWithCategories.model_validate(tweet)
    result.categories = [
        TweetCategoryInfo(**view.to_dict())
        for view in categorization.get_categories(tweet.id)
    ]
    return result


@router.get("/{tweet_id}/categories", response_model=List[TweetCategoryInfo])
def get_tweet_categories(
    tweet_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """All categories of a tweet, primary first."""
    tweet = _get_user_tweet(db, tweet_id, current_user.id)
    return [view.to_dict() for view in categorization.get_categories(tweet.id)]


@router.put("/{tweet_id}/category", response_model=TweetSchema)
async def update_tweet_category(
    tweet_id: int,
    update: TweetCategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Manually assign a single existing category to a tweet."""
    tweet = _get_user_tweet(db, tweet_id, current_user.id)
    category = (
        db.query(Category)
        .filter(Category.name == update.category, Category.user_id == current_user.id)
        .first()
    )
    if not category:
        raise ValidationError("Invalid category", "INVALID_CATEGORY", category=update.category)

    old_category = tweet.category
    async with get_user_lock(current_user.id):
        categorization.persist_categories(
            tweet.id,
            [CategoryResult(category.name, 1.0, is_primary=True, methods=["manual"])],
            current_user.id,
        )
        categorization.recompute_tweet_counts(current_user.id)

    logger.info(
        f"Tweet category updated: {old_category} -> {category.name}",
        extra={"user_id": current_user.id, "tweet_id": tweet.tweet_id},
    )
    db.refresh(tweet)
    return tweet


@router.delete("/{tweet_id}")
def archive_tweet(
    tweet_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Archive (soft delete) a tweet."""
    tweet = _get_user_tweet(db, tweet_id, current_user.id)
    tweet.is_archived = True
    db.commit()
    categorization.recompute_tweet_counts(current_user.id)

    logger.info(
        "Tweet archived",
        extra={"user_id": current_user.id, "tweet_id": tweet.tweet_id},
    )
    return {"message": "Tweet archived successfully"}


@router.post("/{tweet_id}/recategorize")
@limiter.limit("30/minute")
async def recategorize_tweet(
    request: Request,
    tweet_id: int,
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Run categorization again for one tweet and report the change."""
    async with get_user_lock(current_user.id):
        return await categorization.recategorize_one(tweet_id, current_user.id)
