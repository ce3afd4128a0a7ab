from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.core.config import settings
from app.core.database import engine, Base
from app.core.exceptions import TweetvaultError, tweetvault_exception_handler
from app.core.logging_config import setup_logging, CorrelationIdMiddleware
from app.api.dependencies import sentiment_adapter
from app.api.endpoints import auth, categories, sync, tweets, user
from app.services.scheduler import scheduler
import app.models  # noqa: F401 (registers tables on Base.metadata)
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import logging

# Configure structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Tweetvault application...")

    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    await sentiment_adapter.initialize()
    scheduler.sentiment_adapter = sentiment_adapter
    scheduler.start()

    yield

    logger.info("Shutting down Tweetvault application...")
    scheduler.shutdown()


app = FastAPI(
    title="Tweetvault - Bookmark Archive",
    description="Twitter bookmark archive with automatic multi-category classification",
    version="1.0.0",
    lifespan=lifespan,
)

# Add correlation ID middleware (first, so all logs have correlation IDs)
app.add_middleware(CorrelationIdMiddleware)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_exception_handler(TweetvaultError, tweetvault_exception_handler)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(tweets.router, prefix="/api/tweets", tags=["tweets"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(sync.router, prefix="/api/sync", tags=["sync"])
app.include_router(user.router, prefix="/api/user", tags=["user"])


@app.get("/")
def root():
    return {
        "name": "Tweetvault",
        "version": "1.0.0",
        "description": "Twitter bookmark archive",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
