"""Badge award service with duplicate prevention and activity emission."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.badges.activity import emit_badge_earned
from rsnews.badges.catalog import BadgeCatalog, BadgeSpec, color_for_rarity
from rsnews.badges.criteria import evaluate, progress
from rsnews.badges.metrics import UserMetricsSnapshot, collect_metrics
from rsnews.db.models import BadgeDefinition, User, UserBadge

logger = logging.getLogger(__name__)

ALREADY_EARNED = "already earned"
CRITERIA_NOT_MET = "criteria not met"


class BadgeNotFoundError(LookupError):
    """No active badge with the requested slug."""


class BadgeEvaluationError(RuntimeError):
    """Storage failure while evaluating or awarding a badge."""


@dataclass(frozen=True)
class AwardResult:
    """Outcome of one award attempt."""

    badge: BadgeSpec
    awarded: bool
    reason: str | None = None
    earned_at: datetime | None = None


class BadgeService:
    """Evaluates badge criteria for users and records awards.

    The catalog may be injected; otherwise it is loaded from the database
    once per service instance.
    """

    def __init__(
        self,
        db: AsyncSession,
        redis: object = None,
        catalog: BadgeCatalog | None = None,
        launched_at: datetime | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.launched_at = launched_at
        self._catalog = catalog

    async def catalog(self) -> BadgeCatalog:
        if self._catalog is None:
            try:
                self._catalog = await BadgeCatalog.load(self.db)
            except SQLAlchemyError as exc:
                raise BadgeEvaluationError("Failed to load the badge catalog") from exc
        return self._catalog

    async def get_badge(self, slug: str) -> BadgeSpec:
        """Look up a catalog badge by slug."""
        badge = (await self.catalog()).get(slug)
        if badge is None:
            raise BadgeNotFoundError(slug)
        return badge

    async def get_award(self, user_id: int, badge_id: int) -> UserBadge | None:
        """Existing award for (user, badge), if any."""
        result = await self.db.execute(
            select(UserBadge).where(
                UserBadge.user_id == user_id,
                UserBadge.badge_id == badge_id,
            )
        )
        return result.scalar_one_or_none()

    async def check_badge(self, user_id: int, slug: str) -> AwardResult:
        """Award a single badge if the user qualifies and does not hold it yet."""
        badge = await self.get_badge(slug)
        return await self.try_award(user_id, badge)

    async def check_all_badges(self, user_id: int) -> list[AwardResult]:
        """Try every catalog badge for a user. Returns only the new awards."""
        catalog = await self.catalog()
        try:
            metrics = await collect_metrics(self.db, user_id)
        except SQLAlchemyError as exc:
            raise BadgeEvaluationError(f"Failed to collect metrics for user {user_id}") from exc

        awarded: list[AwardResult] = []
        for badge in catalog:
            result = await self.try_award(user_id, badge, metrics=metrics)
            if result.awarded:
                awarded.append(result)
        return awarded

    async def try_award(
        self,
        user_id: int,
        badge: BadgeSpec,
        metrics: UserMetricsSnapshot | None = None,
    ) -> AwardResult:
        """Award ``badge`` to ``user_id`` at most once.

        1. Already held: not awarded, "already earned".
        2. Criteria not met (or unknown user): not awarded, "criteria not met".
        3. Insert under UNIQUE(user_id, badge_id); a violation means a
           concurrent evaluation won the race and is reported as "already earned".
        4. Commit, then emit the badge_earned activity.
        """
        try:
            if await self.get_award(user_id, badge.id) is not None:
                return AwardResult(badge=badge, awarded=False, reason=ALREADY_EARNED)

            if metrics is None:
                metrics = await collect_metrics(self.db, user_id)
            if metrics is None or not evaluate(metrics, badge.criterion, self.launched_at):
                return AwardResult(badge=badge, awarded=False, reason=CRITERIA_NOT_MET)

            now = datetime.now(timezone.utc)
            self.db.add(UserBadge(user_id=user_id, badge_id=badge.id, earned_at=now, progress=100))
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                logger.info("Badge %s already awarded to user %s (concurrent insert)", badge.slug, user_id)
                return AwardResult(badge=badge, awarded=False, reason=ALREADY_EARNED)

            await self.db.commit()
        except SQLAlchemyError as exc:
            raise BadgeEvaluationError(f"Failed to evaluate badge {badge.slug} for user {user_id}") from exc

        logger.info("Awarded badge %s to user %s", badge.slug, user_id)
        await emit_badge_earned(self.db, self.redis, user_id, badge)
        return AwardResult(badge=badge, awarded=True, earned_at=now)

    async def badge_progress(self, user_id: int) -> list[tuple[BadgeSpec, int, bool]] | None:
        """(badge, progress %, earned) for every catalog badge. None for an unknown user."""
        try:
            metrics = await collect_metrics(self.db, user_id)
            if metrics is None:
                return None
            earned_result = await self.db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
            earned_ids = set(earned_result.scalars())
        except SQLAlchemyError as exc:
            raise BadgeEvaluationError(f"Failed to load badge progress for user {user_id}") from exc

        rows = []
        for badge in await self.catalog():
            earned = badge.id in earned_ids
            pct = 100 if earned else progress(metrics, badge.criterion, self.launched_at)
            rows.append((badge, pct, earned))
        return rows


# ── Queries ──


async def earned_counts(db: AsyncSession) -> dict[int, int]:
    """Number of users holding each badge, keyed by badge id."""
    result = await db.execute(
        select(UserBadge.badge_id, func.count()).group_by(UserBadge.badge_id)
    )
    return {badge_id: count for badge_id, count in result.all()}


async def list_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """A user's earned badges, newest first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
    )
    return list(result.scalars().all())


async def leaderboard(db: AsyncSession, limit: int = 50) -> list[dict[str, Any]]:
    """Users ranked by number of badges earned."""
    badge_count = func.count(UserBadge.id).label("badge_count")
    result = await db.execute(
        select(User.id, User.username, User.avatar_url, badge_count)
        .join(UserBadge, UserBadge.user_id == User.id)
        .group_by(User.id, User.username, User.avatar_url)
        .order_by(badge_count.desc(), User.id)
        .limit(limit)
    )
    return [
        {
            "user_id": row.id,
            "username": row.username,
            "avatar_url": row.avatar_url,
            "badge_count": row.badge_count,
        }
        for row in result
    ]


async def pending_notifications(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """Awards the user has not been notified about yet, oldest first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id, UserBadge.notified.is_(False))
        .order_by(UserBadge.earned_at, UserBadge.id)
    )
    return list(result.scalars().all())


async def mark_notified(db: AsyncSession, user_id: int, slug: str) -> bool:
    """Flag an award as notified. Returns False if there is no pending award."""
    badge_id = select(BadgeDefinition.id).where(BadgeDefinition.slug == slug).scalar_subquery()
    result = await db.execute(
        update(UserBadge)
        .where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
            UserBadge.notified.is_(False),
        )
        .values(notified=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0


async def create_badge(
    db: AsyncSession,
    slug: str,
    name: str,
    description: str,
    icon: str,
    category: str,
    criterion_type: str,
    criterion_value: int,
    rarity: str = "common",
    color: str | None = None,
    sort_order: int = 0,
) -> BadgeDefinition:
    """Create a new badge definition."""
    existing = await db.execute(
        select(BadgeDefinition).where((BadgeDefinition.slug == slug) | (BadgeDefinition.name == name))
    )
    if existing.scalars().first() is not None:
        raise ValueError("A badge with this slug or name already exists")

    badge = BadgeDefinition(
        slug=slug,
        name=name,
        description=description,
        icon=icon,
        category=category,
        rarity=rarity,
        color=color or color_for_rarity(rarity),
        criterion_type=criterion_type,
        criterion_value=criterion_value,
        sort_order=sort_order,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db.add(badge)
    await db.commit()
    logger.info("Created badge %s (%s >= %d)", slug, criterion_type, criterion_value)
    return badge
