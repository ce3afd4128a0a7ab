from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict, Any
import re

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _validate_color(v: Optional[str]) -> Optional[str]:
    if v is not None and not HEX_COLOR.match(v):
        raise ValueError("color must be a hex value like #3B82F6")
    return v


class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    color: str = "#6B7280"

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return _validate_color(v)


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    color: Optional[str] = None
    sort_order: Optional[int] = None

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return _validate_color(v)


class Category(CategoryBase):
    id: int
    is_default: bool = False
    sort_order: int = 0
    tweet_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MoveTweets(BaseModel):
    target_category: str = Field(min_length=1, max_length=50)


class CategorySuggestion(BaseModel):
    name: str
    confidence: float
    frequency: Optional[int] = None


class RecategorizeRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=1000)


class RecategorizeResult(BaseModel):
    processed: int
    updated: int
    changes: List[Dict[str, Any]]
    tweet_counts: Dict[str, int]


class CategoryStat(BaseModel):
    name: str
    color: Optional[str] = None
    tweet_count: int
    primary_count: int
