from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from app.core.auth import get_current_user
from app.core.database import get_db
from app.core.logging_config import log_auth_event
from app.models.user import User
from app.services.token_store import TokenStore
from slowapi import Limiter
from slowapi.util import get_remote_address
import logging

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.get("/status")
def auth_status(current_user: User = Depends(get_current_user)):
    """Whether the current user can sync (has a stored Twitter credential)."""
    return {
        "authenticated": True,
        "twitter_connected": bool(current_user.access_token),
        "can_refresh": bool(current_user.refresh_token),
        "last_sync": current_user.last_sync,
    }


@router.post("/refresh-twitter-token")
@limiter.limit("10/minute")
async def refresh_twitter_token(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Exchange the stored refresh token for a new Twitter access token."""
    await TokenStore(db).refresh(current_user)
    return {"message": "Twitter token refreshed successfully"}


@router.post("/logout")
def logout(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Forget the user's Twitter credentials and clear the session cookie."""
    TokenStore(db).clear(current_user)
    log_auth_event("logout", current_user.id)

    response = JSONResponse(content={"message": "Logged out successfully"})
    response.delete_cookie(key="auth_token", httponly=True, samesite="lax")
    return response
