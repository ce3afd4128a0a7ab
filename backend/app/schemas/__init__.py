from app.schemas.tweet import (
    Tweet,
    TweetWithCategories,
    TweetList,
    TweetCategoryInfo,
    TweetCategoryUpdate,
    ExtensionTweet,
    ExtensionIngest,
    ExtensionIngestResult,
)
from app.schemas.category import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryStat,
    CategorySuggestion,
    MoveTweets,
    RecategorizeRequest,
    RecategorizeResult,
)
from app.schemas.sync import SyncLog, SyncResult, SyncStats
from app.schemas.user import (
    User,
    UserStats,
    UserUpdate,
    AccountDeletion,
    DailyActivity,
    GrowthStats,
)

__all__ = [
    "Tweet",
    "TweetWithCategories",
    "TweetList",
    "TweetCategoryInfo",
    "TweetCategoryUpdate",
    "ExtensionTweet",
    "ExtensionIngest",
    "ExtensionIngestResult",
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryStat",
    "CategorySuggestion",
    "MoveTweets",
    "RecategorizeRequest",
    "RecategorizeResult",
    "SyncLog",
    "SyncResult",
    "SyncStats",
    "User",
    "UserStats",
    "UserUpdate",
    "AccountDeletion",
    "DailyActivity",
    "GrowthStats",
]
