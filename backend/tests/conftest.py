"""
Pytest configuration and fixtures for Tweetvault tests.
"""

import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.core.database import Base, get_db
from app.core.auth import create_access_token
from app.core.exceptions import TweetvaultError, tweetvault_exception_handler
from app.models.user import User
from app.models.tweet import Tweet
from app.services.categorization import CategorizationService
from app.services.twitter_client import FetchPage


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=db_engine
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def disable_rate_limits(monkeypatch):
    """Route limiters keep their counters for the whole process."""
    from app.api.endpoints import auth, categories, sync, tweets

    for module in (auth, categories, sync, tweets):
        monkeypatch.setattr(module.limiter, "enabled", False)


@pytest.fixture(scope="function")
def test_app(db_session):
    """Create a FastAPI test app without lifespan events."""
    from fastapi import FastAPI
    from app.api.endpoints import auth, categories, sync, tweets, user

    # Create app without lifespan to avoid starting the scheduler
    test_app = FastAPI(title="Tweetvault - Test", version="1.0.0")
    test_app.add_exception_handler(TweetvaultError, tweetvault_exception_handler)

    test_app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    test_app.include_router(tweets.router, prefix="/api/tweets", tags=["tweets"])
    test_app.include_router(
        categories.router, prefix="/api/categories", tags=["categories"]
    )
    test_app.include_router(sync.router, prefix="/api/sync", tags=["sync"])
    test_app.include_router(user.router, prefix="/api/user", tags=["user"])

    @test_app.get("/health")
    def health():
        return {"status": "healthy"}

    # Override database dependency
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    test_app.dependency_overrides[get_db] = override_get_db

    return test_app


@pytest.fixture(scope="function")
def client(test_app) -> TestClient:
    """Create a test client without entering context manager."""
    return TestClient(test_app, raise_server_exceptions=False)


@pytest.fixture(scope="function")
def test_user(db_session) -> User:
    """Create a test user with stored Twitter credentials."""
    user = User(
        twitter_id="1234567890",
        username="testuser",
        display_name="Test User",
        access_token="access-token-123",
        refresh_token="refresh-token-456",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def auth_headers(test_user) -> dict:
    """Create authentication headers for test requests."""
    access_token = create_access_token(data={"sub": test_user.id})
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture(scope="function")
def authenticated_client(client, test_user) -> TestClient:
    """Create an authenticated test client."""
    access_token = create_access_token(data={"sub": test_user.id})
    client.cookies.set("auth_token", access_token)
    return client


@pytest.fixture(scope="function")
def default_categories(db_session, test_user):
    """General, Technology, News, Education and Inspiration."""
    return CategorizationService(db_session).create_default_categories(test_user.id)


@pytest.fixture
def make_tweet(db_session, test_user):
    """Factory storing an uncategorized tweet for the test user."""
    counter = {"n": 0}

    def _make(content: str = "Just a tweet", **kwargs) -> Tweet:
        counter["n"] += 1
        tweet = Tweet(
            user_id=kwargs.pop("user_id", test_user.id),
            tweet_id=kwargs.pop("tweet_id", str(1000 + counter["n"])),
            content=content,
            author_username=kwargs.pop("author_username", "someone"),
            bookmarked_at=kwargs.pop(
                "bookmarked_at", datetime.utcnow() - timedelta(minutes=counter["n"])
            ),
            **kwargs,
        )
        db_session.add(tweet)
        db_session.commit()
        db_session.refresh(tweet)
        return tweet

    return _make


@pytest.fixture
def make_record():
    """Factory for normalized provider records as returned by TwitterClient.fetch_page."""

    def _make(tweet_id: str, content: str, **kwargs) -> dict:
        record = {
            "tweet_id": tweet_id,
            "content": content,
            "author_id": "42",
            "author_username": "author",
            "author_name": "Author Name",
            "created_at_twitter": datetime(2024, 1, 1, 12, 0, 0),
            "reply_count": 1,
            "like_count": 10,
            "retweet_count": 2,
            "media_urls": [],
        }
        record.update(kwargs)
        return record

    return _make


@pytest.fixture
def make_page():
    def _make(records, next_cursor=None) -> FetchPage:
        return FetchPage(records=list(records), next_cursor=next_cursor, count=len(records))

    return _make
