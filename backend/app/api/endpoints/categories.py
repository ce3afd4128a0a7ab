from fastapi import APIRouter, Depends, Request
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List
from app.api.dependencies import get_categorization_service
from app.core.auth import get_current_user
from app.core.database import get_db
from app.core.exceptions import NotFoundError, ValidationError
from app.models.category import Category
from app.models.tweet import Tweet
from app.models.user import User
from app.schemas.category import (
    Category as CategorySchema,
    CategoryCreate,
    CategorySuggestion,
    CategoryUpdate,
    MoveTweets,
    RecategorizeRequest,
    RecategorizeResult,
)
from app.services.categorization import (
    CATEGORY_COLORS,
    CategorizationService,
    get_user_lock,
)
from slowapi import Limiter
from slowapi.util import get_remote_address
import logging

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def _get_user_category(db: Session, category_id: int, user_id: int) -> Category:
    category = (
        db.query(Category)
        .filter(Category.id == category_id, Category.user_id == user_id)
        .first()
    )
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def _name_taken(db: Session, user_id: int, name: str) -> bool:
    return (
        db.query(Category.id)
        .filter(Category.user_id == user_id, Category.name == name)
        .first()
        is not None
    )


@router.get("/", response_model=List[CategorySchema])
def get_categories(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    """Get all categories for the current user."""
    return (
        db.query(Category)
        .filter(Category.user_id == current_user.id)
        .order_by(Category.sort_order, Category.name)
        .all()
    )


@router.post("/", response_model=CategorySchema, status_code=201)
def create_category(
    category: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a new category; it sorts after the user's existing ones."""
    name = category.name.strip()
    if _name_taken(db, current_user.id, name):
        raise ValidationError("A category with this name already exists", "CATEGORY_EXISTS")

    last_order = (
        db.query(func.max(Category.sort_order))
        .filter(Category.user_id == current_user.id)
        .scalar()
    )
    db_category = Category(
        name=name,
        description=category.description.strip() if category.description else None,
        color=category.color,
        user_id=current_user.id,
        sort_order=(last_order or 0) + 1,
        is_default=False,
    )
    db.add(db_category)
    db.commit()
    db.refresh(db_category)

    logger.info(
        f"Category created: {db_category.name}", extra={"user_id": current_user.id}
    )
    return db_category


@router.get("/colors")
def get_colors():
    """Suggested category colours."""
    return {"colors": CATEGORY_COLORS}


@router.get("/suggestions", response_model=List[CategorySuggestion])
async def get_suggestions(
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Categories that fit the user's recent bookmarks."""
    return await categorization.get_suggested_categories(current_user.id)


@router.post("/recategorize", response_model=RecategorizeResult)
@limiter.limit("5/hour")
async def recategorize_all(
    request: Request,
    options: RecategorizeRequest = RecategorizeRequest(),
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Run categorization again over the user's tweets."""
    async with get_user_lock(current_user.id):
        return await categorization.recategorize_all(current_user.id, options.limit)


@router.post("/recount")
def recount(
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Recompute the cached tweet count of every category."""
    return {"tweet_counts": categorization.recompute_tweet_counts(current_user.id)}


@router.put("/{category_id}", response_model=CategorySchema)
def update_category(
    category_id: int,
    category_update: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update a category. Renames are mirrored onto the tweets' primary label."""
    category = _get_user_category(db, category_id, current_user.id)
    if category.is_default:
        raise ValidationError("The default category cannot be edited", "CANNOT_EDIT_DEFAULT")

    update_data = category_update.model_dump(exclude_unset=True)
    new_name = update_data.get("name")
    if new_name is not None:
        new_name = update_data["name"] = new_name.strip()
    if new_name and new_name != category.name:
        if _name_taken(db, current_user.id, new_name):
            raise ValidationError("A category with this name already exists", "CATEGORY_EXISTS")
        db.query(Tweet).filter(
            Tweet.user_id == current_user.id, Tweet.category == category.name
        ).update({"category": new_name}, synchronize_session=False)

    for key, value in update_data.items():
        setattr(category, key, value)

    db.commit()
    db.refresh(category)
    return category


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Delete a category that has no tweets."""
    categorization.delete_category(category_id, current_user.id)
    return {"message": "Category deleted successfully"}


@router.post("/{category_id}/move-tweets")
async def move_tweets(
    category_id: int,
    move: MoveTweets,
    current_user: User = Depends(get_current_user),
    categorization: CategorizationService = Depends(get_categorization_service),
):
    """Move every tweet of this category into another one."""
    async with get_user_lock(current_user.id):
        moved = categorization.move_tweets(category_id, move.target_category, current_user.id)
    return {"moved_count": moved}
