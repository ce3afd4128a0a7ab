"""
Shared validation utilities for API endpoints.
Query parameter definitions and checks reused across routers.
"""

from typing import Optional
from fastapi import Query, HTTPException

SORT_FIELDS = {
    "bookmarked_at": "bookmarked_at",
    "created_at": "created_at_twitter",
    "likes": "like_count",
    "retweets": "retweet_count",
}


def validate_string_length(
    value: Optional[str],
    param_name: str = "parameter",
    max_length: int = 255,
    min_length: int = 0,
) -> Optional[str]:
    """
    Validate string parameter length.

    Raises:
        HTTPException: If validation fails
    """
    if value is not None:
        if len(value) < min_length:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid {param_name}: minimum length is {min_length}",
            )
        if len(value) > max_length:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid {param_name}: maximum length is {max_length}",
            )
    return value


def validate_sort(sort_by: str) -> str:
    """Map a public sort key to a Tweet column name."""
    if sort_by not in SORT_FIELDS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid sort_by: must be one of {', '.join(sorted(SORT_FIELDS))}",
        )
    return SORT_FIELDS[sort_by]


# Query parameter dependencies for common validations
CategoryNameParam = Query(None, min_length=1, max_length=50, description="Category name filter")
SearchParam = Query(None, min_length=1, max_length=200, description="Text search in tweet content")
DaysParam = Query(7, ge=1, le=90, description="Number of days to look back")
LimitParam = Query(20, ge=1, le=100, description="Maximum items to return")
SkipParam = Query(0, ge=0, le=100000, description="Number of items to skip")
