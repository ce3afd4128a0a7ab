from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List
from app.core.auth import get_current_user
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.logging_config import log_auth_event
from app.models.category import Category
from app.models.tweet import Tweet
from app.models.user import User
from app.schemas.tweet import Tweet as TweetSchema
from app.schemas.user import (
    AccountDeletion,
    DailyActivity,
    GrowthStats,
    User as UserSchema,
    UserStats,
    UserUpdate,
)
from app.services.user_stats import UserStatsService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

DELETE_CONFIRMATION = "DELETE_MY_ACCOUNT"


@router.get("/me", response_model=UserSchema)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/profile", response_model=UserSchema)
def update_profile(
    update: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    current_user.display_name = update.display_name
    db.commit()
    db.refresh(current_user)
    logger.info(f"Updated profile of user {current_user.id}")
    return current_user


@router.delete("/account")
def delete_account(
    deletion: AccountDeletion,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Permanently delete the current user.

    Tweets, categories, their associations and sync logs go with it. The
    body must carry ``confirmation: "DELETE_MY_ACCOUNT"``.
    """
    if deletion.confirmation != DELETE_CONFIRMATION:
        raise ValidationError(
            f'Send "{DELETE_CONFIRMATION}" in the confirmation field',
            "MISSING_CONFIRMATION",
        )

    user_id = current_user.id
    db.delete(current_user)
    db.commit()
    log_auth_event("account_deleted", user_id)

    response = JSONResponse(content={"message": "Account deleted successfully"})
    response.delete_cookie(key="auth_token", httponly=True, samesite="lax")
    return response


@router.get("/stats", response_model=UserStats)
def get_user_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tweet and category totals for the current user."""
    archived_counts = dict(
        db.query(Tweet.is_archived, func.count(Tweet.id))
        .filter(Tweet.user_id == current_user.id)
        .group_by(Tweet.is_archived)
        .all()
    )
    categories = (
        db.query(Category.name, Category.tweet_count)
        .filter(Category.user_id == current_user.id)
        .order_by(Category.sort_order)
        .all()
    )

    return {
        "total_tweets": archived_counts.get(False, 0),
        "archived_tweets": archived_counts.get(True, 0),
        "total_categories": len(categories),
        "tweets_by_category": {name: count or 0 for name, count in categories},
        "last_sync": current_user.last_sync,
    }


@router.get("/stats/popular", response_model=List[TweetSchema])
def get_popular_tweets(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UserStatsService(db).popular_tweets(current_user.id, limit)


@router.get("/stats/weekly", response_model=List[DailyActivity])
def get_weekly_activity(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UserStatsService(db).weekly_activity(current_user.id)


@router.get("/stats/growth", response_model=GrowthStats)
def get_growth(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Bookmarks of the last 30 days against the 30 days before."""
    return UserStatsService(db).growth(current_user.id)
