from pydantic_settings import BaseSettings
from typing import List, Union, Optional
from pydantic import field_validator


class Settings(BaseSettings):
    # Database
    POSTGRES_USER: str = "tweetvault"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "tweetvault"
    SQLALCHEMY_DATABASE_URL: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Construct database URL from components unless an override is set."""
        if self.SQLALCHEMY_DATABASE_URL:
            return self.SQLALCHEMY_DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Application
    SECRET_KEY: str
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # Twitter / X API (OAuth 2.0 user context)
    TWITTER_CLIENT_ID: str = ""
    TWITTER_CLIENT_SECRET: str = ""
    TWITTER_API_BASE_URL: str = "https://api.twitter.com/2"
    TWITTER_TOKEN_URL: str = "https://api.twitter.com/2/oauth2/token"
    TWITTER_API_TIMEOUT: float = 30.0

    # Sync pipeline
    SYNC_PAGE_SIZE: int = 100  # max_results per bookmarks page
    SYNC_MAX_TWEETS: int = 1000  # Safety cap per sync run
    SYNC_PAGE_DELAY: float = 1.0  # seconds between pages
    SYNC_MAX_RETRIES: int = 3  # attempts per page on rate limiting
    SYNC_STALE_AFTER_MINUTES: int = 60  # "running" logs older than this are stale

    # Provider rate limit handling
    RATE_LIMIT_MIN_WAIT: float = 60.0  # seconds
    RATE_LIMIT_SAFETY_MARGIN: float = 5.0  # seconds added to the reset wait
    BACKOFF_BASE_SECONDS: float = 10.0
    BACKOFF_MAX_SECONDS: float = 300.0

    # Scheduler
    SYNC_SCHEDULE_CRON: str = "0 9 * * *"  # daily at 9:00
    SYNC_TIMEZONE: str = "Europe/Madrid"
    SYNC_USER_DELAY: float = 2.0  # seconds between users
    SYNC_ERROR_PAUSE: float = 5.0  # seconds after a failed user
    SYNC_RATE_LIMIT_COOLDOWN: float = 15 * 60  # seconds after a rate limited user
    SYNC_LOG_RETENTION_DAYS: int = 30

    # AI categorization signal
    ENABLE_AI_CATEGORIZATION: bool = False
    OPENAI_API_KEY: str = ""
    LLM_MODEL: str = "gpt-5-nano"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
