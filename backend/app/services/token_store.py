from typing import Awaitable, Callable, Optional, Tuple, TypeVar
import httpx
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.exceptions import AuthError
from app.core.logging_config import log_auth_event, log_error
from app.models.user import User
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenStore:
    """Provider credentials of a user, persisted on the User row."""

    def __init__(self, db: Session, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.transport = transport

    def get(self, user: User) -> Optional[str]:
        return user.access_token

    def set(self, user: User, access_token: str, refresh_token: Optional[str] = None) -> None:
        user.access_token = access_token
        if refresh_token:
            user.refresh_token = refresh_token
        self.db.commit()

    def clear(self, user: User) -> None:
        user.access_token = None
        user.refresh_token = None
        self.db.commit()
        log_auth_event("tokens_cleared", user.id)

    async def refresh(self, user: User) -> Tuple[str, str]:
        """
        Exchange the stored refresh token for a new access token and persist both.

        The provider may omit a new refresh token; the old one is kept then.

        Raises:
            AuthError: TOKEN_REFRESH_ERROR when there is nothing to refresh
                or the provider rejects the request
        """
        if not user.refresh_token:
            raise AuthError("No refresh token stored", "TOKEN_REFRESH_ERROR", user_id=user.id)

        log_auth_event("token_refresh_start", user.id)
        try:
            async with httpx.AsyncClient(
                timeout=settings.TWITTER_API_TIMEOUT, transport=self.transport
            ) as client:
                response = await client.post(
                    settings.TWITTER_TOKEN_URL,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": user.refresh_token,
                        "client_id": settings.TWITTER_CLIENT_ID,
                    },
                    auth=(settings.TWITTER_CLIENT_ID, settings.TWITTER_CLIENT_SECRET),
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log_error(e, "token_refresh", user_id=user.id)
            raise AuthError(
                "Error refreshing access token", "TOKEN_REFRESH_ERROR", user_id=user.id
            )

        access_token = payload.get("access_token")
        if not access_token:
            raise AuthError(
                "Token response has no access token", "TOKEN_REFRESH_ERROR", user_id=user.id
            )
        refresh_token = payload.get("refresh_token") or user.refresh_token

        self.set(user, access_token, refresh_token)
        log_auth_event("token_refresh_success", user.id, expires_in=payload.get("expires_in"))
        return access_token, refresh_token

    async def call_with_refresh(
        self, user: User, call: Callable[[str], Awaitable[T]]
    ) -> T:
        """
        Run ``call(access_token)``; on an AuthError refresh once and retry once.

        A second AuthError after a successful refresh propagates unchanged.
        """
        credential = self.get(user)
        if not credential:
            raise AuthError("User has no Twitter access token", "MISSING_TOKEN", user_id=user.id)

        try:
            return await call(credential)
        except AuthError as e:
            if e.error_code == "MISSING_TOKEN":
                raise
            log_auth_event("token_rejected", user.id, level=logging.WARNING)

        credential, _ = await self.refresh(user)
        return await call(credential)
