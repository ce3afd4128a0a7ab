"""Tests for the categorization service."""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError
from app.core.exceptions import CategorizationError, NotFoundError, ValidationError
from app.models.category import Category
from app.models.tweet_category import TweetCategory
from app.services.categorization import (
    CATEGORY_COLORS,
    CategorizationService,
    _user_locks,
    get_user_lock,
)
from app.services.category_ranker import CategoryResult
import gc


@pytest.fixture
def service(db_session):
    return CategorizationService(db_session)


def category_named(db_session, user_id, name):
    return (
        db_session.query(Category)
        .filter(Category.user_id == user_id, Category.name == name)
        .first()
    )


@pytest.mark.unit
class TestCategorize:
    """Combining classifier signals for one text."""

    @pytest.mark.asyncio
    async def test_technology_text(self, service):
        results = await service.categorize("I love kubernetes and docker")

        assert results[0].category == "Technology"
        assert results[0].is_primary is True
        assert sum(1 for r in results if r.is_primary) == 1

    @pytest.mark.asyncio
    async def test_uncategorizable_text_falls_back(self, service):
        """No signal at all gives the General fallback."""
        results = await service.categorize("zzz qqq")

        assert len(results) == 1
        assert results[0].category == "General"
        assert results[0].confidence == 0.3
        assert results[0].is_primary is True

    @pytest.mark.asyncio
    async def test_empty_text_falls_back(self, service):
        results = await service.categorize("")
        assert results[0].category == "General"

    @pytest.mark.asyncio
    async def test_failing_classifier_only_drops_its_signals(self, service):
        with patch.object(
            service.keyword_classifier, "classify", side_effect=RuntimeError("boom")
        ):
            results = await service.categorize("#python rocks")

        assert results[0].category == "Technology"
        assert results[0].methods == ["context"]

    @pytest.mark.asyncio
    async def test_batch_categorize_isolates_failures(self, service):
        """An entry without content is reported as an error, others succeed."""
        results = await service.batch_categorize(
            [
                {"id": 1, "content": "kubernetes and docker"},
                {"id": 2},
                {"tweet_id": "3", "content": "zzz"},
            ]
        )

        assert results[0]["tweet_id"] == 1
        assert results[0]["category"] == "Technology"
        assert results[1] == {
            "tweet_id": 2,
            "category": "General",
            "confidence": 0.2,
            "error": True,
        }
        assert results[2]["tweet_id"] == "3"
        assert results[2]["category"] == "General"


@pytest.mark.unit
class TestPersistCategories:
    """Replacing a tweet's category rows."""

    def test_round_trip(self, service, make_tweet, test_user, default_categories):
        tweet = make_tweet("kubernetes")
        service.persist_categories(
            tweet.id,
            [
                CategoryResult("Technology", 0.9, is_primary=True),
                CategoryResult("News", 0.4),
            ],
            test_user.id,
        )

        views = service.get_categories(tweet.id)
        assert [(v.name, v.confidence, v.is_primary) for v in views] == [
            ("Technology", 0.9, True),
            ("News", 0.4, False),
        ]
        assert tweet.category == "Technology"
        assert tweet.processed is True

    def test_replaces_previous_rows(self, service, make_tweet, test_user, db_session):
        tweet = make_tweet()
        service.persist_categories(tweet.id, [CategoryResult("News", 0.8, True)], test_user.id)
        service.persist_categories(
            tweet.id, [CategoryResult("Education", 0.7, True)], test_user.id
        )

        rows = db_session.query(TweetCategory).filter(TweetCategory.tweet_id == tweet.id).all()
        assert len(rows) == 1
        assert rows[0].category.name == "Education"

    def test_auto_creates_missing_category(
        self, service, make_tweet, test_user, db_session, default_categories
    ):
        """New categories sort after hand-made ones and get a palette colour."""
        tweet = make_tweet()
        service.persist_categories(tweet.id, [CategoryResult("Sports", 0.8, True)], test_user.id)

        sports = category_named(db_session, test_user.id, "Sports")
        assert sports is not None
        assert sports.sort_order == 105
        assert sports.is_default is False
        assert sports.color in {c["value"] for c in CATEGORY_COLORS}

    def test_general_is_created_as_default(self, service, make_tweet, test_user, db_session):
        tweet = make_tweet()
        service.persist_categories(tweet.id, [CategoryResult("General", 0.3, True)], test_user.id)

        general = category_named(db_session, test_user.id, "General")
        assert general.is_default is True
        assert general.sort_order == 0

        with pytest.raises(ValidationError):
            service.delete_category(general.id, test_user.id)

    def test_first_entry_becomes_primary(self, service, make_tweet, test_user):
        tweet = make_tweet()
        service.persist_categories(
            tweet.id,
            [CategoryResult("News", 0.35), CategoryResult("Technology", 0.3)],
            test_user.id,
        )

        views = service.get_categories(tweet.id)
        assert views[0].name == "News"
        assert views[0].is_primary is True
        assert sum(1 for v in views if v.is_primary) == 1

    def test_duplicate_names_first_wins(self, service, make_tweet, test_user):
        tweet = make_tweet()
        service.persist_categories(
            tweet.id,
            [CategoryResult("News", 0.9, True), CategoryResult("News", 0.2)],
            test_user.id,
        )

        views = service.get_categories(tweet.id)
        assert len(views) == 1
        assert views[0].confidence == 0.9

    def test_confidence_clamped(self, service, make_tweet, test_user):
        tweet = make_tweet()
        service.persist_categories(tweet.id, [CategoryResult("News", 1.4, True)], test_user.id)
        assert service.get_categories(tweet.id)[0].confidence == 1.0

    def test_empty_input_rejected(self, service, make_tweet, test_user):
        tweet = make_tweet()
        with pytest.raises(ValidationError):
            service.persist_categories(tweet.id, [], test_user.id)

    def test_unknown_tweet(self, service, test_user):
        with pytest.raises(NotFoundError):
            service.persist_categories(999, [CategoryResult("News", 0.9, True)], test_user.id)

    def test_failure_keeps_previous_rows(self, service, make_tweet, test_user):
        """A database error rolls back the delete of the old rows too."""
        tweet = make_tweet()
        service.persist_categories(tweet.id, [CategoryResult("News", 0.8, True)], test_user.id)

        with patch.object(
            service, "_get_or_create_category", side_effect=SQLAlchemyError("boom")
        ):
            with pytest.raises(CategorizationError):
                service.persist_categories(
                    tweet.id, [CategoryResult("Education", 0.9, True)], test_user.id
                )

        views = service.get_categories(tweet.id)
        assert [(v.name, v.is_primary) for v in views] == [("News", True)]


@pytest.mark.unit
class TestTweetCounts:
    """Cached per-category counters."""

    def test_archived_tweets_not_counted(
        self, service, make_tweet, test_user, db_session, default_categories
    ):
        kept = make_tweet()
        archived = make_tweet(is_archived=True)
        for tweet in (kept, archived):
            service.persist_categories(
                tweet.id, [CategoryResult("Technology", 0.9, True)], test_user.id
            )

        counts = service.recompute_tweet_counts(test_user.id)

        assert counts["Technology"] == 1
        assert counts["General"] == 0
        assert category_named(db_session, test_user.id, "Technology").tweet_count == 1

    def test_multi_category_tweet_counted_in_each(self, service, make_tweet, test_user):
        tweet = make_tweet()
        service.persist_categories(
            tweet.id,
            [CategoryResult("Technology", 0.9, True), CategoryResult("News", 0.5)],
            test_user.id,
        )

        counts = service.recompute_tweet_counts(test_user.id)
        assert counts == {"Technology": 1, "News": 1}


@pytest.mark.unit
class TestRecategorize:
    """Running categorization again over stored tweets."""

    @pytest.mark.asyncio
    async def test_recategorize_one_reports_change(
        self, service, make_tweet, test_user, default_categories
    ):
        tweet = make_tweet("I love kubernetes and docker")
        service.persist_categories(tweet.id, [CategoryResult("General", 0.3, True)], test_user.id)

        change = await service.recategorize_one(tweet.id, test_user.id)

        assert change["old_category"] == "General"
        assert change["old_confidence"] == 0.3
        assert change["new_category"] == "Technology"
        assert change["new_confidence"] == 1.0
        assert change["categories"][0]["category"] == "Technology"

    @pytest.mark.asyncio
    async def test_recategorize_one_unknown_tweet(self, service, test_user):
        with pytest.raises(NotFoundError):
            await service.recategorize_one(12345, test_user.id)

    @pytest.mark.asyncio
    async def test_recategorize_all(self, service, make_tweet, test_user, default_categories):
        make_tweet("kubernetes and docker")
        make_tweet("zzz")
        make_tweet("learn python", is_archived=True)

        result = await service.recategorize_all(test_user.id)

        assert result["processed"] == 2
        assert result["updated"] == 2  # both started without a category
        assert result["tweet_counts"]["Technology"] == 1
        assert result["tweet_counts"]["General"] == 1

    @pytest.mark.asyncio
    async def test_recategorize_all_respects_limit(self, service, make_tweet, test_user):
        for _ in range(3):
            make_tweet("kubernetes")

        result = await service.recategorize_all(test_user.id, limit=2)
        assert result["processed"] == 2


@pytest.mark.unit
class TestSuggestions:
    """Suggested categories from recent bookmarks."""

    @pytest.mark.asyncio
    async def test_no_tweets_suggests_keyword_categories(self, service, test_user):
        suggestions = await service.get_suggested_categories(test_user.id)

        assert len(suggestions) == 7
        assert {s["name"] for s in suggestions} >= {"Technology", "News", "Sports"}
        assert all(s["confidence"] == 0.5 for s in suggestions)

    @pytest.mark.asyncio
    async def test_suggestions_from_confident_tweets(self, service, make_tweet, test_user):
        make_tweet("I love kubernetes and docker")
        make_tweet("zzz")

        suggestions = await service.get_suggested_categories(test_user.id)

        assert suggestions == [{"name": "Technology", "confidence": 0.5, "frequency": 1}]


@pytest.mark.unit
class TestCategoryManagement:
    """Default categories, deletion and moving tweets."""

    def test_create_default_categories(self, service, test_user, db_session):
        created = service.create_default_categories(test_user.id)

        assert [c.name for c in created] == [
            "General",
            "Technology",
            "News",
            "Education",
            "Inspiration",
        ]
        general = category_named(db_session, test_user.id, "General")
        assert general.is_default is True
        assert general.sort_order == 0

    def test_create_default_categories_is_idempotent(self, service, test_user, default_categories):
        assert service.create_default_categories(test_user.id) == []

    def test_ensure_default_categories(self, service, test_user, db_session):
        assert len(service.ensure_default_categories(test_user.id)) == 5
        assert service.ensure_default_categories(test_user.id) == []
        assert (
            db_session.query(Category)
            .filter(Category.user_id == test_user.id, Category.is_default == True)
            .count()
            == 1
        )

    def test_delete_empty_category(self, service, test_user, db_session, default_categories):
        news = category_named(db_session, test_user.id, "News")
        service.delete_category(news.id, test_user.id)

        assert category_named(db_session, test_user.id, "News") is None

    def test_cannot_delete_default(self, service, test_user, db_session, default_categories):
        general = category_named(db_session, test_user.id, "General")

        with pytest.raises(ValidationError) as exc_info:
            service.delete_category(general.id, test_user.id)
        assert exc_info.value.error_code == "CANNOT_DELETE_DEFAULT"

    def test_cannot_delete_category_with_tweets(
        self, service, make_tweet, test_user, db_session, default_categories
    ):
        tweet = make_tweet()
        service.persist_categories(tweet.id, [CategoryResult("News", 0.9, True)], test_user.id)
        news = category_named(db_session, test_user.id, "News")

        with pytest.raises(ValidationError) as exc_info:
            service.delete_category(news.id, test_user.id)
        assert exc_info.value.error_code == "CATEGORY_HAS_TWEETS"
        assert exc_info.value.details["tweet_count"] == 1

    def test_delete_unknown_category(self, service, test_user):
        with pytest.raises(NotFoundError):
            service.delete_category(999, test_user.id)

    def test_move_tweets(self, service, make_tweet, test_user, db_session, default_categories):
        first = make_tweet()
        second = make_tweet()
        service.persist_categories(first.id, [CategoryResult("News", 0.9, True)], test_user.id)
        service.persist_categories(
            second.id,
            [CategoryResult("Technology", 0.8, True), CategoryResult("News", 0.5)],
            test_user.id,
        )
        news = category_named(db_session, test_user.id, "News")

        moved = service.move_tweets(news.id, "Education", test_user.id)

        assert moved == 2
        assert first.category == "Education"
        assert second.category == "Technology"
        assert [v.name for v in service.get_categories(second.id)] == ["Technology", "Education"]
        assert category_named(db_session, test_user.id, "News").tweet_count == 0
        assert category_named(db_session, test_user.id, "Education").tweet_count == 2

    def test_move_tweets_merges_existing_membership(
        self, service, make_tweet, test_user, default_categories
    ):
        tweet = make_tweet()
        service.persist_categories(
            tweet.id,
            [CategoryResult("News", 0.9, True), CategoryResult("Education", 0.5)],
            test_user.id,
        )
        news_id = next(v.category_id for v in service.get_categories(tweet.id) if v.name == "News")

        service.move_tweets(news_id, "Education", test_user.id)

        views = service.get_categories(tweet.id)
        assert [(v.name, v.confidence, v.is_primary) for v in views] == [
            ("Education", 0.9, True)
        ]

    def test_move_tweets_unknown_target(self, service, test_user, db_session, default_categories):
        news = category_named(db_session, test_user.id, "News")

        with pytest.raises(NotFoundError) as exc_info:
            service.move_tweets(news.id, "Nope", test_user.id)
        assert exc_info.value.error_code == "TARGET_CATEGORY_NOT_FOUND"

    def test_move_tweets_unknown_source(self, service, test_user):
        with pytest.raises(NotFoundError) as exc_info:
            service.move_tweets(999, "News", test_user.id)
        assert exc_info.value.error_code == "SOURCE_CATEGORY_NOT_FOUND"


@pytest.mark.unit
def test_user_lock_is_shared_per_user():
    assert get_user_lock(1) is get_user_lock(1)
    assert get_user_lock(1) is not get_user_lock(2)


@pytest.mark.unit
def test_user_lock_released_when_unused():
    lock = get_user_lock(77)
    assert _user_locks.get(77) is lock

    del lock
    gc.collect()
    assert 77 not in _user_locks


@pytest.mark.unit
@pytest.mark.asyncio
async def test_user_lock_kept_while_held():
    async with get_user_lock(78):
        gc.collect()
        assert get_user_lock(78).locked()
