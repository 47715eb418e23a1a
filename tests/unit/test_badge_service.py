"""Badge service tests: award, duplicate prevention, bulk evaluation, failure handling."""

from __future__ import annotations

import asyncio
import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from rsnews.badges import activity as activity_module
from rsnews.badges import badge_service as service_module
from rsnews.badges.badge_service import (
    ALREADY_EARNED,
    CRITERIA_NOT_MET,
    BadgeEvaluationError,
    BadgeNotFoundError,
    BadgeService,
    create_badge,
    leaderboard,
    list_user_badges,
    mark_notified,
    pending_notifications,
)
from rsnews.badges.catalog import BadgeCatalog, BadgeSpec
from rsnews.badges.criteria import Criterion
from rsnews.badges.seed import seed_badges
from rsnews.db.base import Base
from rsnews.db.models import Article, Comment, User, UserActivity, UserBadge


async def award_count(db, user_id: int) -> int:
    result = await db.execute(select(func.count()).select_from(UserBadge).where(UserBadge.user_id == user_id))
    return result.scalar_one()


def make_badge(slug: str, criterion_type: str, value: int, badge_id: int) -> BadgeSpec:
    return BadgeSpec(
        id=badge_id,
        slug=slug,
        name=slug.replace("_", " ").title(),
        description="test badge",
        icon="*",
        category="engagement",
        rarity="common",
        color="#A0A0A0",
        criterion=Criterion(criterion_type, value),
    )


class FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, dict]] = []

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, json.loads(message)))
        return 1


class TestCheckBadge:

    @pytest.mark.asyncio
    async def test_five_articles_awards_then_already_earned(self, seeded_db, community):
        db = seeded_db
        badge = await create_badge(
            db,
            slug="b1",
            name="Five Articles",
            description="Write five articles",
            icon="5",
            category="contributor",
            criterion_type="articleCount",
            criterion_value=5,
        )
        user = await community.user()
        await community.articles(user, 5)

        service = BadgeService(db)
        first = await service.check_badge(user.id, "b1")
        assert first.awarded is True
        assert first.badge.id == badge.id
        assert first.earned_at is not None

        second = await BadgeService(db).check_badge(user.id, "b1")
        assert second.awarded is False
        assert second.reason == ALREADY_EARNED
        assert await award_count(db, user.id) == 1

    @pytest.mark.asyncio
    async def test_criteria_not_met(self, seeded_db, community):
        user = await community.user()
        await community.followers(user, 9)

        result = await BadgeService(seeded_db).check_badge(user.id, "rising_voice")
        assert result.awarded is False
        assert result.reason == CRITERIA_NOT_MET
        assert await award_count(seeded_db, user.id) == 0

    @pytest.mark.asyncio
    async def test_threshold_boundary_awards(self, seeded_db, community):
        user = await community.user()
        await community.followers(user, 10)

        result = await BadgeService(seeded_db).check_badge(user.id, "rising_voice")
        assert result.awarded is True

    @pytest.mark.asyncio
    async def test_unknown_badge_raises(self, seeded_db, community):
        user = await community.user()
        with pytest.raises(BadgeNotFoundError):
            await BadgeService(seeded_db).check_badge(user.id, "no_such_badge")

    @pytest.mark.asyncio
    async def test_unknown_user_does_not_qualify(self, seeded_db):
        result = await BadgeService(seeded_db).check_badge(9999, "first_follower")
        assert result.awarded is False
        assert result.reason == CRITERIA_NOT_MET

    @pytest.mark.asyncio
    async def test_unknown_criterion_type_never_awards(self, seeded_db, community):
        user = await community.user(age_days=5000)
        await community.followers(user, 3)
        catalog = BadgeCatalog([make_badge("future_badge", "streakDays", 0, badge_id=1)])

        result = await BadgeService(seeded_db, catalog=catalog).check_badge(user.id, "future_badge")
        assert result.awarded is False
        assert result.reason == CRITERIA_NOT_MET
        assert await award_count(seeded_db, user.id) == 0

    @pytest.mark.asyncio
    async def test_award_persists_after_metric_drops(self, seeded_db, community):
        db = seeded_db
        user = await community.user(age_days=100)
        follows = await community.followers(user, 1)
        assert (await BadgeService(db).check_badge(user.id, "first_follower")).awarded is True

        for follow in follows:
            await db.delete(follow)
        await db.commit()

        result = await BadgeService(db).check_badge(user.id, "first_follower")
        assert result.awarded is False
        assert result.reason == ALREADY_EARNED
        assert await BadgeService(db).check_all_badges(user.id) == []
        assert [ub.badge.slug for ub in await list_user_badges(db, user.id)] == ["first_follower"]

    @pytest.mark.asyncio
    async def test_injected_launch_date_used_for_early_user(self, seeded_db, community):
        from datetime import datetime, timedelta, timezone

        user = await community.user(age_days=380)
        launched = datetime.now(timezone.utc) - timedelta(days=400)

        result = await BadgeService(seeded_db, launched_at=launched).check_badge(user.id, "early_user")
        assert result.awarded is True


class TestConcurrentAward:
    """A lost race on the UNIQUE constraint is reported as already earned."""

    @pytest.mark.asyncio
    async def test_constraint_violation_is_already_earned(self, seeded_db, community, monkeypatch):
        db = seeded_db
        user = await community.user()
        user_id = user.id
        await community.comments(user, 1)

        async def stale_lookup(self, user_id, badge_id):
            return None

        # Both attempts miss the pre-check, as two concurrent requests would.
        monkeypatch.setattr(BadgeService, "get_award", stale_lookup)

        first = await BadgeService(db).check_badge(user_id, "first_comment")
        second = await BadgeService(db).check_badge(user_id, "first_comment")

        assert first.awarded is True
        assert second.awarded is False
        assert second.reason == ALREADY_EARNED
        assert await award_count(db, user_id) == 1

    @pytest.mark.asyncio
    async def test_parallel_sessions_award_once(self, tmp_path, monkeypatch):
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'badges.db'}",
            connect_args={"timeout": 15},
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        sessions = async_sessionmaker(engine, expire_on_commit=False)

        async with sessions() as setup:
            await seed_badges(setup)
            user = User(username="racer", email="racer@example.com")
            article = Article(title="Race conditions")
            setup.add_all([user, article])
            await setup.flush()
            setup.add(Comment(article_id=article.id, user_id=user.id, body="First!"))
            await setup.commit()
            user_id = user.id

        # Hold both evaluations after the pre-check so each sees no existing award.
        barrier = asyncio.Barrier(2)
        real_get_award = BadgeService.get_award

        async def synchronized_get_award(self, user_id, badge_id):
            award = await real_get_award(self, user_id, badge_id)
            await barrier.wait()
            return award

        monkeypatch.setattr(BadgeService, "get_award", synchronized_get_award)

        async def attempt():
            async with sessions() as db:
                return await BadgeService(db).check_badge(user_id, "first_comment")

        try:
            results = await asyncio.wait_for(asyncio.gather(attempt(), attempt()), timeout=30)

            assert sorted(r.awarded for r in results) == [False, True]
            assert [r.reason for r in results if not r.awarded] == [ALREADY_EARNED]
            async with sessions() as db:
                assert await award_count(db, user_id) == 1
        finally:
            await engine.dispose()


class TestCheckAllBadges:

    @pytest.mark.asyncio
    async def test_returns_only_new_awards(self, seeded_db, community):
        db = seeded_db
        user = await community.user(age_days=100)
        await community.followers(user, 1)
        await community.comments(user, 1)
        await community.articles(user, 1)

        results = await BadgeService(db).check_all_badges(user.id)
        assert {r.badge.slug for r in results} == {"first_follower", "first_comment", "first_article"}
        assert all(r.awarded for r in results)

        assert await BadgeService(db).check_all_badges(user.id) == []
        assert await award_count(db, user.id) == 3

    @pytest.mark.asyncio
    async def test_matches_individual_checks(self, seeded_db, community):
        db = seeded_db
        bulk_user = await community.user()
        single_user = await community.user()
        for user in (bulk_user, single_user):
            await community.followers(user, 10)
            await community.favorites(user, 10)
            await community.articles(user, 1, featured=True)

        bulk = {r.badge.slug for r in await BadgeService(db).check_all_badges(bulk_user.id)}

        service = BadgeService(db)
        single = set()
        for badge in await service.catalog():
            result = await service.check_badge(single_user.id, badge.slug)
            if result.awarded:
                single.add(badge.slug)

        assert bulk == single
        assert {"first_follower", "rising_voice", "collector", "first_article", "featured_author"} <= bulk

    @pytest.mark.asyncio
    async def test_unknown_user_gets_nothing(self, seeded_db):
        assert await BadgeService(seeded_db).check_all_badges(31337) == []


class TestActivityEmission:

    @pytest.mark.asyncio
    async def test_award_records_public_activity(self, seeded_db, community):
        db = seeded_db
        user = await community.user("writer")
        await community.articles(user, 1)

        await BadgeService(db).check_badge(user.id, "first_article")

        result = await db.execute(select(UserActivity).where(UserActivity.activity_type == "badge_earned"))
        activities = result.scalars().all()
        assert len(activities) == 1
        entry = activities[0]
        assert entry.user_id == user.id
        assert entry.is_public is True
        assert entry.target_type == "Badge"
        assert entry.activity_metadata["badge_slug"] == "first_article"
        assert entry.activity_metadata["user_name"] == "writer"

    @pytest.mark.asyncio
    async def test_no_activity_when_not_awarded(self, seeded_db, community):
        db = seeded_db
        user = await community.user()
        await BadgeService(db).check_badge(user.id, "first_article")

        result = await db.execute(select(func.count()).select_from(UserActivity))
        assert result.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_activity_failure_does_not_undo_award(self, seeded_db, community, monkeypatch):
        db = seeded_db
        user = await community.user()
        user_id = user.id
        await community.articles(user, 1)

        async def broken_record_activity(*args, **kwargs):
            raise SQLAlchemyError("activity table unavailable")

        monkeypatch.setattr(activity_module, "record_activity", broken_record_activity)

        result = await BadgeService(db).check_badge(user_id, "first_article")
        assert result.awarded is True
        assert await award_count(db, user_id) == 1

    @pytest.mark.asyncio
    async def test_failed_rollback_after_activity_error_keeps_award(self, seeded_db, community, monkeypatch):
        db = seeded_db
        user = await community.user()
        user_id = user.id
        await community.articles(user, 1)

        async def broken_record_activity(*args, **kwargs):
            raise OperationalError("INSERT INTO user_activities", {}, Exception("connection reset"))

        async def broken_rollback():
            raise OperationalError("ROLLBACK", {}, Exception("connection reset"))

        monkeypatch.setattr(activity_module, "record_activity", broken_record_activity)
        monkeypatch.setattr(db, "rollback", broken_rollback)

        result = await BadgeService(db).check_badge(user_id, "first_article")
        assert result.awarded is True

        monkeypatch.undo()
        assert await award_count(db, user_id) == 1

    @pytest.mark.asyncio
    async def test_publishes_to_redis(self, seeded_db, community):
        user = await community.user()
        await community.comments(user, 1)
        redis = FakeRedis()

        await BadgeService(seeded_db, redis).check_badge(user.id, "first_comment")

        assert len(redis.published) == 1
        channel, payload = redis.published[0]
        assert channel == "pubsub:badge_earned"
        assert payload["user_id"] == user.id
        assert payload["badge_slug"] == "first_comment"

    @pytest.mark.asyncio
    async def test_redis_failure_is_swallowed(self, seeded_db, community):
        user = await community.user()
        await community.comments(user, 1)

        result = await BadgeService(seeded_db, FakeRedis(fail=True)).check_badge(user.id, "first_comment")
        assert result.awarded is True


class TestStorageFailure:

    @pytest.mark.asyncio
    async def test_metrics_failure_raises_evaluation_error(self, seeded_db, community, monkeypatch):
        user = await community.user()

        async def broken_collect(db, user_id):
            raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))

        monkeypatch.setattr(service_module, "collect_metrics", broken_collect)

        with pytest.raises(BadgeEvaluationError):
            await BadgeService(seeded_db).check_badge(user.id, "first_comment")
        with pytest.raises(BadgeEvaluationError):
            await BadgeService(seeded_db).check_all_badges(user.id)

    @pytest.mark.asyncio
    async def test_catalog_failure_raises_evaluation_error(self, seeded_db, community, monkeypatch):
        user = await community.user()
        user_id = user.id

        async def broken_load(cls, db):
            raise OperationalError("SELECT badge_definitions", {}, Exception("connection refused"))

        monkeypatch.setattr(BadgeCatalog, "load", classmethod(broken_load))

        with pytest.raises(BadgeEvaluationError):
            await BadgeService(seeded_db).check_all_badges(user_id)
        with pytest.raises(BadgeEvaluationError):
            await BadgeService(seeded_db).check_badge(user_id, "first_comment")
        with pytest.raises(BadgeEvaluationError):
            await BadgeService(seeded_db).badge_progress(user_id)

    @pytest.mark.asyncio
    async def test_progress_metrics_failure_raises_evaluation_error(self, seeded_db, community, monkeypatch):
        user = await community.user()

        async def broken_collect(db, user_id):
            raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))

        monkeypatch.setattr(service_module, "collect_metrics", broken_collect)

        with pytest.raises(BadgeEvaluationError):
            await BadgeService(seeded_db).badge_progress(user.id)


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_user_badges_newest_first(self, seeded_db, community):
        db = seeded_db
        user = await community.user()
        await community.comments(user, 1)
        await BadgeService(db).check_badge(user.id, "first_comment")
        await community.articles(user, 1)
        await BadgeService(db).check_badge(user.id, "first_article")

        badges = await list_user_badges(db, user.id)
        assert [ub.badge.slug for ub in badges] == ["first_article", "first_comment"]
        assert all(ub.progress == 100 for ub in badges)

    @pytest.mark.asyncio
    async def test_pending_and_mark_notified(self, seeded_db, community):
        db = seeded_db
        user = await community.user()
        await community.comments(user, 1)
        await BadgeService(db).check_badge(user.id, "first_comment")

        pending = await pending_notifications(db, user.id)
        assert [ub.badge.slug for ub in pending] == ["first_comment"]

        assert await mark_notified(db, user.id, "first_comment") is True
        assert await mark_notified(db, user.id, "first_comment") is False
        assert await pending_notifications(db, user.id) == []

    @pytest.mark.asyncio
    async def test_leaderboard_ranks_by_badge_count(self, seeded_db, community):
        db = seeded_db
        busy = await community.user("busy", age_days=100)
        quiet = await community.user("quiet", age_days=100)
        await community.user("idle")
        await community.comments(busy, 1)
        await community.articles(busy, 1)
        await community.articles(quiet, 1)
        for user in (busy, quiet):
            await BadgeService(db).check_all_badges(user.id)

        rows = await leaderboard(db)
        assert [r["username"] for r in rows] == ["busy", "quiet"]
        assert rows[0]["badge_count"] == 2
        assert rows[1]["badge_count"] == 1

        assert len(await leaderboard(db, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_badge_progress(self, seeded_db, community):
        db = seeded_db
        user = await community.user()
        await community.followers(user, 5)
        await BadgeService(db).check_badge(user.id, "first_follower")

        rows = await BadgeService(db).badge_progress(user.id)
        by_slug = {badge.slug: (pct, earned) for badge, pct, earned in rows}
        assert by_slug["first_follower"] == (100, True)
        assert by_slug["rising_voice"] == (50, False)
        assert by_slug["influencer"] == (5, False)

    @pytest.mark.asyncio
    async def test_badge_progress_unknown_user(self, seeded_db):
        assert await BadgeService(seeded_db).badge_progress(404) is None

    @pytest.mark.asyncio
    async def test_create_badge_rejects_duplicate_slug(self, seeded_db):
        with pytest.raises(ValueError, match="already exists"):
            await create_badge(
                seeded_db,
                slug="first_comment",
                name="Another First Comment",
                description="dup",
                icon="!",
                category="engagement",
                criterion_type="commentCount",
                criterion_value=1,
            )

    @pytest.mark.asyncio
    async def test_create_badge_defaults_color_from_rarity(self, seeded_db):
        badge = await create_badge(
            seeded_db,
            slug="legend",
            name="Legend",
            description="d",
            icon="L",
            category="milestone",
            criterion_type="daysActive",
            criterion_value=1000,
            rarity="legendary",
        )
        assert badge.color == "#FF8000"
