from .user import User
from .tweet import Tweet
from .category import Category
from .tweet_category import TweetCategory
from .sync_log import SyncLog

__all__ = [
    "User",
    "Tweet",
    "Category",
    "TweetCategory",
    "SyncLog",
]
