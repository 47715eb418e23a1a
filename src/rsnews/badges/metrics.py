"""User metrics snapshot used for badge evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.db.models import Article, Comment, CommentLike, Favorite, Follow, User, UserActivity

ARTICLE_VIEWED = "article_viewed"


@dataclass(frozen=True)
class UserMetricsSnapshot:
    """Aggregate counters for one user at one point in time. Never stored."""

    user_id: int
    created_at: datetime
    follower_count: int = 0
    comment_count: int = 0
    favorite_count: int = 0
    article_count: int = 0
    featured_count: int = 0
    comment_likes: int = 0
    views: int = 0
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def account_age_days(self) -> int:
        """Whole days since account creation."""
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        taken = self.taken_at
        if taken.tzinfo is None:
            taken = taken.replace(tzinfo=timezone.utc)
        return max(0, (taken - created).days)


async def _count(db: AsyncSession, stmt) -> int:
    result = await db.execute(stmt)
    return int(result.scalar_one() or 0)


async def collect_metrics(db: AsyncSession, user_id: int) -> UserMetricsSnapshot | None:
    """Compute a fresh snapshot for a user. Returns None for an unknown user."""
    user = await db.get(User, user_id)
    if user is None:
        return None

    follower_count = await _count(
        db, select(func.count()).select_from(Follow).where(Follow.followee_id == user_id)
    )
    comment_count = await _count(
        db, select(func.count()).select_from(Comment).where(Comment.user_id == user_id)
    )
    favorite_count = await _count(
        db, select(func.count()).select_from(Favorite).where(Favorite.user_id == user_id)
    )
    article_count = await _count(
        db, select(func.count()).select_from(Article).where(Article.author_id == user_id)
    )
    featured_count = await _count(
        db,
        select(func.count())
        .select_from(Article)
        .where(Article.author_id == user_id, Article.featured.is_(True)),
    )
    comment_likes = await _count(
        db,
        select(func.count())
        .select_from(CommentLike)
        .join(Comment, CommentLike.comment_id == Comment.id)
        .where(Comment.user_id == user_id),
    )
    views = await _count(
        db,
        select(func.count())
        .select_from(UserActivity)
        .where(UserActivity.user_id == user_id, UserActivity.activity_type == ARTICLE_VIEWED),
    )

    return UserMetricsSnapshot(
        user_id=user_id,
        created_at=user.created_at,
        follower_count=follower_count,
        comment_count=comment_count,
        favorite_count=favorite_count,
        article_count=article_count,
        featured_count=featured_count,
        comment_likes=comment_likes,
        views=views,
    )
