"""Badge criteria evaluation.

Maps a user's metrics snapshot and a badge criterion to a qualify/not-qualify
decision. Pure: no I/O, never raises for a well-formed criterion. Criterion
types the service does not know about never qualify, so new badge types can
be added to the catalog before the evaluator learns about them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from rsnews.badges.metrics import UserMetricsSnapshot


class CriterionType(str, Enum):
    FOLLOWER_COUNT = "followerCount"
    COMMENT_COUNT = "commentCount"
    FAVORITE_COUNT = "favoriteCount"
    ARTICLE_COUNT = "articleCount"
    DAYS_ACTIVE = "daysActive"
    COMMENT_LIKES = "commentLikes"
    FEATURED = "featured"
    EARLY_USER = "earlyUser"
    VIEWS = "views"


# Count criteria compare one snapshot attribute against the threshold.
COUNT_METRICS: dict[CriterionType, str] = {
    CriterionType.FOLLOWER_COUNT: "follower_count",
    CriterionType.COMMENT_COUNT: "comment_count",
    CriterionType.FAVORITE_COUNT: "favorite_count",
    CriterionType.ARTICLE_COUNT: "article_count",
    CriterionType.COMMENT_LIKES: "comment_likes",
    CriterionType.VIEWS: "views",
}


@dataclass(frozen=True)
class Criterion:
    """Badge rule: a criterion type name and a threshold value."""

    type: str
    value: int

    @property
    def kind(self) -> CriterionType | None:
        """Parsed criterion type, or None when the name is not recognised."""
        try:
            return CriterionType(self.type)
        except ValueError:
            return None


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def days_after_launch(metrics: UserMetricsSnapshot, launched_at: datetime) -> int:
    """Whole days between platform launch and the user's signup (negative for pre-launch accounts)."""
    return (_as_utc(metrics.created_at) - _as_utc(launched_at)).days


def evaluate(
    metrics: UserMetricsSnapshot,
    criterion: Criterion,
    launched_at: datetime | None = None,
) -> bool:
    """Return True when the metrics satisfy the criterion."""
    kind = criterion.kind

    if kind in COUNT_METRICS:
        return getattr(metrics, COUNT_METRICS[kind]) >= criterion.value

    if kind is CriterionType.DAYS_ACTIVE:
        return metrics.account_age_days >= criterion.value

    if kind is CriterionType.EARLY_USER:
        if launched_at is not None:
            return days_after_launch(metrics, launched_at) <= criterion.value
        return metrics.account_age_days <= criterion.value

    if kind is CriterionType.FEATURED:
        return metrics.featured_count >= max(criterion.value, 1)

    return False


def progress(
    metrics: UserMetricsSnapshot,
    criterion: Criterion,
    launched_at: datetime | None = None,
) -> int:
    """Completion percentage (0-100) towards the criterion."""
    kind = criterion.kind

    if kind in COUNT_METRICS:
        current = getattr(metrics, COUNT_METRICS[kind])
    elif kind is CriterionType.DAYS_ACTIVE:
        current = metrics.account_age_days
    else:
        return 100 if evaluate(metrics, criterion, launched_at) else 0

    if criterion.value <= 0:
        return 100
    return max(0, min(100, current * 100 // criterion.value))
