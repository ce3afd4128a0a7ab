from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import List
from app.api.dependencies import get_sync_pipeline
from app.api.validation import DaysParam, LimitParam, SkipParam
from app.core.auth import get_current_user
from app.core.database import get_db
from app.core.exceptions import (
    AuthError,
    NotFoundError,
    RateLimitError,
    SyncError,
    TweetvaultError,
)
from app.models.sync_log import SyncLog
from app.models.user import User
from app.schemas.sync import SyncLog as SyncLogSchema, SyncResult, SyncStats
from app.services.sync_pipeline import SyncPipeline
from slowapi import Limiter
from slowapi.util import get_remote_address

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/", response_model=SyncResult)
@limiter.limit("5/hour")
async def sync_bookmarks(
    request: Request,
    current_user: User = Depends(get_current_user),
    pipeline: SyncPipeline = Depends(get_sync_pipeline),
):
    """Manually trigger a bookmark sync for the current user."""
    try:
        result = await pipeline.sync_user(current_user.id)
    except (AuthError, NotFoundError, RateLimitError):
        raise
    except TweetvaultError as e:
        # The failure is already recorded on the SyncLog and in the logs
        raise SyncError(cause=e.error_code)
    return result.to_dict()


@router.get("/stats", response_model=SyncStats)
def get_sync_stats(
    days: int = DaysParam,
    current_user: User = Depends(get_current_user),
    pipeline: SyncPipeline = Depends(get_sync_pipeline),
):
    return pipeline.get_sync_stats(current_user.id, days)


@router.get("/logs", response_model=List[SyncLogSchema])
def get_sync_logs(
    skip: int = SkipParam,
    limit: int = LimitParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    pipeline: SyncPipeline = Depends(get_sync_pipeline),
):
    """Sync history, newest first. Stale runs are closed before listing."""
    pipeline.reconcile_stale_runs(current_user.id)
    return (
        db.query(SyncLog)
        .filter(SyncLog.user_id == current_user.id)
        .order_by(SyncLog.started_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
