"""Activity feed recording and badge-earned emission."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.db.models import User, UserActivity
from rsnews.redis_client import publish_event

if TYPE_CHECKING:
    from rsnews.badges.catalog import BadgeSpec

logger = logging.getLogger(__name__)

BADGE_EARNED = "badge_earned"
BADGE_EARNED_CHANNEL = "pubsub:badge_earned"


async def record_activity(
    db: AsyncSession,
    user_id: int,
    activity_type: str,
    title: str,
    target_type: str | None = None,
    target_id: int | None = None,
    metadata: dict[str, Any] | None = None,
    is_public: bool = True,
) -> UserActivity:
    """Append an activity entry to the feed."""
    activity = UserActivity(
        user_id=user_id,
        activity_type=activity_type,
        title=title,
        target_type=target_type,
        target_id=target_id,
        activity_metadata=metadata or {},
        is_public=is_public,
        created_at=datetime.now(timezone.utc),
    )
    db.add(activity)
    await db.flush()
    return activity


async def emit_badge_earned(
    db: AsyncSession,
    redis: object,
    user_id: int,
    badge: BadgeSpec,
) -> None:
    """Record a public badge_earned activity and push it over Redis pub/sub.

    Best effort: the award is already committed, failures here are only logged.
    """
    try:
        user = await db.get(User, user_id)
        username = user.username if user else None
        await record_activity(
            db,
            user_id,
            BADGE_EARNED,
            title=f'Earned badge "{badge.name}"',
            target_type="Badge",
            target_id=badge.id,
            metadata={
                "badge_slug": badge.slug,
                "badge_name": badge.name,
                "badge_icon": badge.icon,
                "user_name": username,
            },
        )
        await db.commit()
    except SQLAlchemyError:
        logger.warning("Failed to record badge_earned activity for user %s", user_id, exc_info=True)
        try:
            await db.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback after failed badge_earned activity also failed", exc_info=True)

    if redis is not None:
        try:
            await publish_event(
                redis,  # type: ignore[arg-type]
                BADGE_EARNED_CHANNEL,
                {
                    "user_id": user_id,
                    "badge_slug": badge.slug,
                    "badge_name": badge.name,
                    "rarity": badge.rarity,
                    "icon": badge.icon,
                },
            )
        except Exception:
            logger.warning("Failed to publish badge_earned notification", exc_info=True)
