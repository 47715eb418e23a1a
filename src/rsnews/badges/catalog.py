"""Read-only badge catalog."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from types import MappingProxyType

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.badges.criteria import Criterion
from rsnews.db.models import BadgeDefinition

RARITY_COLORS: dict[str, str] = {
    "common": "#A0A0A0",
    "uncommon": "#1EFF00",
    "rare": "#0070DD",
    "legendary": "#FF8000",
}
DEFAULT_COLOR = "#FFD700"

RARITY_RANK: dict[str, int] = {"common": 0, "uncommon": 1, "rare": 2, "legendary": 3}


def color_for_rarity(rarity: str) -> str:
    """Display color for a rarity tier."""
    return RARITY_COLORS.get(rarity, DEFAULT_COLOR)


@dataclass(frozen=True)
class BadgeSpec:
    """Immutable view of a badge definition."""

    id: int
    slug: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    color: str
    criterion: Criterion
    sort_order: int = 0

    @classmethod
    def from_model(cls, badge: BadgeDefinition) -> BadgeSpec:
        return cls(
            id=badge.id,
            slug=badge.slug,
            name=badge.name,
            description=badge.description,
            icon=badge.icon,
            category=badge.category,
            rarity=badge.rarity,
            color=badge.color or color_for_rarity(badge.rarity),
            criterion=Criterion(type=badge.criterion_type, value=badge.criterion_value),
            sort_order=badge.sort_order,
        )


class BadgeCatalog:
    """Badge definitions keyed by slug, in display order (rarest first)."""

    def __init__(self, badges: Iterable[BadgeSpec]) -> None:
        ordered = sorted(badges, key=lambda b: (-RARITY_RANK.get(b.rarity, -1), b.sort_order, b.slug))
        self._badges = MappingProxyType({b.slug: b for b in ordered})

    @classmethod
    async def load(cls, db: AsyncSession) -> BadgeCatalog:
        """Build a catalog from the active badge definitions."""
        result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.is_active.is_(True)))
        return cls(BadgeSpec.from_model(b) for b in result.scalars())

    def get(self, slug: str) -> BadgeSpec | None:
        return self._badges.get(slug)

    def __iter__(self) -> Iterator[BadgeSpec]:
        return iter(self._badges.values())

    def __len__(self) -> int:
        return len(self._badges)

    def __contains__(self, slug: object) -> bool:
        return slug in self._badges
