"""
Client for the X (Twitter) API v2 bookmarks endpoint.

Each call opens a short lived ``httpx.AsyncClient`` with the user's bearer
credential. HTTP failures are mapped onto the provider error taxonomy so the
sync pipeline can tell retryable rate limits apart from everything else.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import httpx
from app.core.config import settings
from app.core.exceptions import (
    AuthError,
    PermanentProviderError,
    RateLimitError,
    TransientProviderError,
)
from app.core.logging_config import log_provider_call
import logging

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

TWEET_FIELDS = "created_at,public_metrics,entities,attachments,author_id"
EXPANSIONS = "author_id,attachments.media_keys"
USER_FIELDS = "username,name,profile_image_url"
MEDIA_FIELDS = "url,preview_image_url,type"


@dataclass
class FetchPage:
    records: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None
    count: int = 0


def parse_twitter_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO 8601 timestamp from the API as a naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable tweet timestamp: {value}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _header_number(headers: httpx.Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors:
        return errors[0].get("message") or errors[0].get("detail") or str(errors[0])
    if isinstance(payload, dict):
        return payload.get("detail") or payload.get("title") or response.reason_phrase
    return response.reason_phrase


def raise_for_provider_status(response: httpx.Response) -> None:
    """Map a non-2xx provider response to the matching ProviderError subtype."""
    status = response.status_code
    if status < 400:
        return

    if status == 401:
        raise AuthError("Twitter credential is invalid or expired", provider_status=401)
    if status == 429:
        raise RateLimitError(
            reset_time=_header_number(response.headers, "x-rate-limit-reset"),
            remaining=_header_number(response.headers, "x-rate-limit-remaining"),
            limit=_header_number(response.headers, "x-rate-limit-limit"),
        )
    if status >= 500:
        raise TransientProviderError(
            f"Twitter server error: {_error_message(response)}", provider_status=status
        )
    raise PermanentProviderError(_error_message(response), provider_status=status)


class TwitterClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.TWITTER_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.TWITTER_API_TIMEOUT
        # Tests inject httpx.MockTransport here
        self.transport = transport

    def _client(self, credential: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {credential}"},
            transport=self.transport,
        )

    async def _get(self, credential: str, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        log_provider_call("request", level=logging.DEBUG, path=path, params=params)
        try:
            async with self._client(credential) as client:
                response = await client.get(path, params=params)
        except httpx.RequestError as e:
            log_provider_call("transport_error", level=logging.WARNING, path=path, reason=str(e))
            raise TransientProviderError(f"Error connecting to Twitter API: {e}")

        log_provider_call(
            "response",
            level=logging.DEBUG if response.is_success else logging.WARNING,
            path=path,
            status=response.status_code,
            rate_limit_remaining=response.headers.get("x-rate-limit-remaining"),
            rate_limit_reset=response.headers.get("x-rate-limit-reset"),
        )
        raise_for_provider_status(response)
        return response.json()

    async def fetch_page(
        self,
        credential: str,
        cursor: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
        user_external_id: Optional[str] = None,
    ) -> FetchPage:
        """
        Fetch one page of the user's bookmarks.

        Args:
            credential: OAuth 2.0 user access token
            cursor: ``next_token`` of the previous page, None for the first page
            page_size: Requested records, clamped to the API's 1..100 range
            user_external_id: The user's Twitter account id

        Returns:
            FetchPage with normalized records and the cursor for the next page
        """
        if not credential:
            raise AuthError("A Twitter access token is required", "MISSING_TOKEN")

        params = {
            "max_results": min(max(page_size, 1), MAX_PAGE_SIZE),
            "tweet.fields": TWEET_FIELDS,
            "expansions": EXPANSIONS,
            "user.fields": USER_FIELDS,
            "media.fields": MEDIA_FIELDS,
        }
        if cursor:
            params["pagination_token"] = cursor

        payload = await self._get(credential, f"/users/{user_external_id}/bookmarks", params)

        includes = payload.get("includes") or {}
        users = {u["id"]: u for u in includes.get("users", [])}
        media = {m["media_key"]: m for m in includes.get("media", [])}
        records = [
            self._normalize(tweet, users, media) for tweet in payload.get("data") or []
        ]
        next_cursor = (payload.get("meta") or {}).get("next_token")

        return FetchPage(records=records, next_cursor=next_cursor, count=len(records))

    @staticmethod
    def _normalize(
        tweet: Dict[str, Any],
        users: Dict[str, Dict[str, Any]],
        media: Dict[str, Dict[str, Any]],
    ) -> Dict[str, Any]:
        author = users.get(tweet.get("author_id"), {})
        metrics = tweet.get("public_metrics") or {}
        media_keys = (tweet.get("attachments") or {}).get("media_keys", [])
        media_urls = [
            media[key].get("url") or media[key].get("preview_image_url")
            for key in media_keys
            if key in media
        ]

        return {
            "tweet_id": tweet["id"],
            "content": tweet.get("text", ""),
            "author_id": tweet.get("author_id"),
            "author_username": author.get("username"),
            "author_name": author.get("name"),
            "created_at_twitter": parse_twitter_datetime(tweet.get("created_at")),
            "reply_count": metrics.get("reply_count", 0),
            "like_count": metrics.get("like_count", 0),
            "retweet_count": metrics.get("retweet_count", 0),
            "media_urls": [url for url in media_urls if url],
        }
