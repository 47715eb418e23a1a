"""Badge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rsnews.badges.badge_service import (
    BadgeNotFoundError,
    BadgeService,
    create_badge,
    earned_counts,
    leaderboard,
    list_user_badges,
    mark_notified,
    pending_notifications,
)
from rsnews.badges.catalog import BadgeSpec
from rsnews.badges.schemas import (
    AllBadgesResponse,
    AwardedBadgeItem,
    AwardResultResponse,
    BadgeCreateRequest,
    BadgeProgressItem,
    BadgeProgressResponse,
    BadgeResponse,
    CheckAllResponse,
    CheckBadgeRequest,
    CriterionResponse,
    EarnedBadgeResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    PendingBadgeItem,
    PendingBadgesResponse,
    UserBadgesResponse,
)
from rsnews.config import get_settings
from rsnews.dependencies import get_badge_service, get_db

router = APIRouter(prefix="/api/v1", tags=["Badges"])


def _badge_response(badge: BadgeSpec, total_earned: int = 0) -> BadgeResponse:
    return BadgeResponse(
        slug=badge.slug,
        name=badge.name,
        description=badge.description,
        icon=badge.icon,
        category=badge.category,
        rarity=badge.rarity,
        color=badge.color,
        criterion=CriterionResponse(type=badge.criterion.type, value=badge.criterion.value),
        sort_order=badge.sort_order,
        total_earned=total_earned,
    )


# ── Catalog ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(service: BadgeService = Depends(get_badge_service)):
    """Get all active badges, rarest first."""
    counts = await earned_counts(service.db)
    return AllBadgesResponse(
        badges=[_badge_response(b, counts.get(b.id, 0)) for b in await service.catalog()]
    )


@router.post("/badges", response_model=BadgeResponse, status_code=201)
async def add_badge(body: BadgeCreateRequest, db: AsyncSession = Depends(get_db)):
    """Create a badge definition."""
    try:
        badge = await create_badge(
            db,
            slug=body.slug,
            name=body.name,
            description=body.description,
            icon=body.icon,
            category=body.category,
            criterion_type=body.criterion_type.value,
            criterion_value=body.criterion_value,
            rarity=body.rarity,
            color=body.color,
            sort_order=body.sort_order,
        )
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _badge_response(BadgeSpec.from_model(badge))


@router.get("/badges/leaderboard", response_model=LeaderboardResponse)
async def badge_leaderboard(
    limit: int | None = Query(None, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Top users by badge count."""
    rows = await leaderboard(db, limit or get_settings().badge_leaderboard_size)
    return LeaderboardResponse(
        leaderboard=[LeaderboardEntry(rank=i, **row) for i, row in enumerate(rows, start=1)]
    )


@router.get("/badges/{slug}", response_model=BadgeResponse)
async def get_badge(slug: str, service: BadgeService = Depends(get_badge_service)):
    """Get a single badge definition."""
    try:
        badge = await service.get_badge(slug)
    except BadgeNotFoundError:
        raise HTTPException(status_code=404, detail="Badge not found") from None
    counts = await earned_counts(service.db)
    return _badge_response(badge, counts.get(badge.id, 0))


# ── Evaluation ──


@router.post("/badges/{slug}/check", response_model=AwardResultResponse)
async def check_badge(
    slug: str,
    body: CheckBadgeRequest,
    service: BadgeService = Depends(get_badge_service),
):
    """Evaluate one badge for a user and award it if newly earned."""
    try:
        result = await service.check_badge(body.user_id, slug)
    except BadgeNotFoundError:
        raise HTTPException(status_code=404, detail="Badge not found") from None
    return AwardResultResponse(
        awarded=result.awarded,
        reason=result.reason,
        badge=_badge_response(result.badge) if result.awarded else None,
    )


@router.post("/users/{user_id}/badges/check", response_model=CheckAllResponse)
async def check_all_badges(user_id: int, service: BadgeService = Depends(get_badge_service)):
    """Evaluate every badge for a user. Returns only the new awards."""
    results = await service.check_all_badges(user_id)
    return CheckAllResponse(
        user_id=user_id,
        results=[
            AwardedBadgeItem(slug=r.badge.slug, name=r.badge.name, earned_at=r.earned_at)
            for r in results
        ],
    )


# ── User badges ──


@router.get("/users/{user_id}/badges", response_model=UserBadgesResponse)
async def get_user_badges(user_id: int, db: AsyncSession = Depends(get_db)):
    """A user's earned badges, newest first."""
    awards = await list_user_badges(db, user_id)
    badges = [
        EarnedBadgeResponse(
            slug=ub.badge.slug,
            name=ub.badge.name,
            description=ub.badge.description,
            icon=ub.badge.icon,
            category=ub.badge.category,
            rarity=ub.badge.rarity,
            color=ub.badge.color,
            earned_at=ub.earned_at,
            progress=ub.progress,
        )
        for ub in awards
    ]
    return UserBadgesResponse(user_id=user_id, badges=badges, count=len(badges))


@router.get("/users/{user_id}/badges/progress", response_model=BadgeProgressResponse)
async def get_badge_progress(user_id: int, service: BadgeService = Depends(get_badge_service)):
    """Progress towards every badge."""
    rows = await service.badge_progress(user_id)
    if rows is None:
        raise HTTPException(status_code=404, detail="User not found")
    return BadgeProgressResponse(
        user_id=user_id,
        badges=[
            BadgeProgressItem(slug=b.slug, name=b.name, progress=pct, earned=earned)
            for b, pct, earned in rows
        ],
    )


@router.get("/users/{user_id}/badges/pending", response_model=PendingBadgesResponse)
async def get_pending_badges(user_id: int, db: AsyncSession = Depends(get_db)):
    """Badges earned but not yet shown to the user."""
    awards = await pending_notifications(db, user_id)
    return PendingBadgesResponse(
        user_id=user_id,
        pending=[
            PendingBadgeItem(slug=ub.badge.slug, name=ub.badge.name, icon=ub.badge.icon, earned_at=ub.earned_at)
            for ub in awards
        ],
    )


@router.post("/users/{user_id}/badges/{slug}/ack", status_code=204)
async def acknowledge_badge(user_id: int, slug: str, db: AsyncSession = Depends(get_db)):
    """Mark a badge notification as seen."""
    if not await mark_notified(db, user_id, slug):
        raise HTTPException(status_code=404, detail="Pending badge not found")
    return Response(status_code=204)
