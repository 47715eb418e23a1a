"""Pydantic request/response models for badge endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from rsnews.badges.criteria import CriterionType


# --- Catalog ---


class CriterionResponse(BaseModel):
    type: str
    value: int


class BadgeResponse(BaseModel):
    slug: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    color: str
    criterion: CriterionResponse
    sort_order: int = 0
    total_earned: int = 0


class AllBadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class BadgeCreateRequest(BaseModel):
    slug: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9_]+$")
    name: str = Field(min_length=1, max_length=128)
    description: str = Field(min_length=1)
    icon: str = Field(min_length=1, max_length=64)
    category: Literal["engagement", "contributor", "community", "milestone"]
    rarity: Literal["common", "uncommon", "rare", "legendary"] = "common"
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    criterion_type: CriterionType
    criterion_value: int = Field(ge=0)
    sort_order: int = 0


# --- Awards ---


class CheckBadgeRequest(BaseModel):
    user_id: int


class AwardResultResponse(BaseModel):
    awarded: bool
    reason: str | None = None
    badge: BadgeResponse | None = None


class AwardedBadgeItem(BaseModel):
    slug: str
    name: str
    awarded: bool = True
    earned_at: datetime | None = None


class CheckAllResponse(BaseModel):
    user_id: int
    results: list[AwardedBadgeItem]


# --- User badges ---


class EarnedBadgeResponse(BaseModel):
    slug: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    color: str
    earned_at: datetime
    progress: int


class UserBadgesResponse(BaseModel):
    user_id: int
    badges: list[EarnedBadgeResponse]
    count: int


class BadgeProgressItem(BaseModel):
    slug: str
    name: str
    progress: int
    earned: bool


class BadgeProgressResponse(BaseModel):
    user_id: int
    badges: list[BadgeProgressItem]


class PendingBadgeItem(BaseModel):
    slug: str
    name: str
    icon: str
    earned_at: datetime


class PendingBadgesResponse(BaseModel):
    user_id: int
    pending: list[PendingBadgeItem]


# --- Leaderboard ---


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    avatar_url: str | None = None
    badge_count: int


class LeaderboardResponse(BaseModel):
    leaderboard: list[LeaderboardEntry]
