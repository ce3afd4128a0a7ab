from fastapi import Depends
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.services.categorization import CategorizationService
from app.services.sentiment_adapter import SentimentAdapter, build_sentiment_adapter
from app.services.sync_pipeline import SyncPipeline

# Initialized once in the application lifespan
sentiment_adapter = build_sentiment_adapter()


def get_sentiment_adapter() -> SentimentAdapter:
    return sentiment_adapter


def get_categorization_service(
    db: Session = Depends(get_db),
    adapter: SentimentAdapter = Depends(get_sentiment_adapter),
) -> CategorizationService:
    return CategorizationService(db, adapter)


def get_sync_pipeline(
    db: Session = Depends(get_db),
    categorization: CategorizationService = Depends(get_categorization_service),
) -> SyncPipeline:
    return SyncPipeline(db, categorization=categorization)
