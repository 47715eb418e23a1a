"""Default badge catalog, upserted on startup."""

from __future__ import annotations

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.badges.catalog import color_for_rarity
from rsnews.db.models import BadgeDefinition

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Community
    {
        "slug": "first_follower",
        "name": "First Follower",
        "description": "Someone out there wants to hear what you have to say",
        "icon": "\U0001F44B",
        "category": "community",
        "rarity": "common",
        "criterion_type": "followerCount",
        "criterion_value": 1,
        "sort_order": 1,
    },
    {
        "slug": "rising_voice",
        "name": "Rising Voice",
        "description": "Gain 10 followers",
        "icon": "\U0001F4E3",
        "category": "community",
        "rarity": "uncommon",
        "criterion_type": "followerCount",
        "criterion_value": 10,
        "sort_order": 2,
    },
    {
        "slug": "influencer",
        "name": "Influencer",
        "description": "Gain 100 followers",
        "icon": "\U0001F31F",
        "category": "community",
        "rarity": "rare",
        "criterion_type": "followerCount",
        "criterion_value": 100,
        "sort_order": 3,
    },
    # Engagement
    {
        "slug": "first_comment",
        "name": "Conversation Starter",
        "description": "Post your first comment",
        "icon": "\U0001F4AC",
        "category": "engagement",
        "rarity": "common",
        "criterion_type": "commentCount",
        "criterion_value": 1,
        "sort_order": 4,
    },
    {
        "slug": "commentator",
        "name": "Commentator",
        "description": "Post 50 comments",
        "icon": "\U0001F5E3",
        "category": "engagement",
        "rarity": "uncommon",
        "criterion_type": "commentCount",
        "criterion_value": 50,
        "sort_order": 5,
    },
    {
        "slug": "well_liked",
        "name": "Well Liked",
        "description": "Collect 25 likes on your comments",
        "icon": "\U0001F44D",
        "category": "engagement",
        "rarity": "uncommon",
        "criterion_type": "commentLikes",
        "criterion_value": 25,
        "sort_order": 6,
    },
    {
        "slug": "collector",
        "name": "Collector",
        "description": "Save 10 articles to your favorites",
        "icon": "❤️",
        "category": "engagement",
        "rarity": "common",
        "criterion_type": "favoriteCount",
        "criterion_value": 10,
        "sort_order": 7,
    },
    {
        "slug": "avid_reader",
        "name": "Avid Reader",
        "description": "Read 100 articles",
        "icon": "\U0001F4D6",
        "category": "engagement",
        "rarity": "uncommon",
        "criterion_type": "views",
        "criterion_value": 100,
        "sort_order": 8,
    },
    # Contributor
    {
        "slug": "first_article",
        "name": "Published",
        "description": "Publish your first article",
        "icon": "✍️",
        "category": "contributor",
        "rarity": "common",
        "criterion_type": "articleCount",
        "criterion_value": 1,
        "sort_order": 9,
    },
    {
        "slug": "prolific_writer",
        "name": "Prolific Writer",
        "description": "Publish 25 articles",
        "icon": "\U0001F4DD",
        "category": "contributor",
        "rarity": "rare",
        "criterion_type": "articleCount",
        "criterion_value": 25,
        "sort_order": 10,
    },
    {
        "slug": "featured_author",
        "name": "Featured Author",
        "description": "Have one of your articles featured on the front page",
        "icon": "⭐",
        "category": "contributor",
        "rarity": "legendary",
        "criterion_type": "featured",
        "criterion_value": 1,
        "sort_order": 11,
    },
    # Milestones
    {
        "slug": "one_year",
        "name": "One Year In",
        "description": "Be a member for a full year",
        "icon": "\U0001F382",
        "category": "milestone",
        "rarity": "uncommon",
        "criterion_type": "daysActive",
        "criterion_value": 365,
        "sort_order": 12,
    },
    {
        "slug": "early_user",
        "name": "Early Bird",
        "description": "Join within the first 30 days of the platform",
        "icon": "\U0001F426",
        "category": "milestone",
        "rarity": "rare",
        "criterion_type": "earlyUser",
        "criterion_value": 30,
        "sort_order": 13,
    },
]

_UPSERT_COLUMNS = (
    "name",
    "description",
    "icon",
    "category",
    "rarity",
    "color",
    "criterion_type",
    "criterion_value",
    "sort_order",
)


async def seed_badges(db: AsyncSession) -> int:
    """Upsert the default badge definitions. Returns number of badges seeded."""
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        values = {**badge_data, "color": color_for_rarity(badge_data["rarity"])}
        stmt = insert(BadgeDefinition).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={col: stmt.excluded[col] for col in _UPSERT_COLUMNS},
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
