"""Engagement-level derivations: health, status changes and progress."""

from __future__ import annotations

from app.schemas.engagement import Engagement, Health, MilestoneStage, ProjectStatus
from app.services.milestone_tracker import get_date_for_milestone_stage, is_counted_complete

_RED_STATUSES = frozenset({ProjectStatus.CLAWED_BACK, ProjectStatus.ON_HOLD})


def derive_health(status: ProjectStatus | str) -> Health:
    status = ProjectStatus(status)
    if status in _RED_STATUSES:
        return Health.RED
    if status == ProjectStatus.STALLED:
        return Health.YELLOW
    return Health.GREEN


def with_derived_health(engagement: Engagement) -> Engagement:
    """Recompute health from status; a stored health value is never trusted."""
    health = derive_health(engagement.status)
    if engagement.health == health:
        return engagement
    return engagement.model_copy(update={"health": health})


def change_status(engagement: Engagement, status: ProjectStatus | str) -> Engagement:
    status = ProjectStatus(status)
    if engagement.status == status:
        return engagement
    return engagement.model_copy(update={"status": status, "health": derive_health(status)})


def progress(engagement: Engagement) -> tuple[int, int]:
    """(done, total) over purchased milestones only."""
    purchased = [m for m in engagement.milestones if not m.not_purchased]
    done = sum(1 for m in purchased if m.stage == MilestoneStage.COMPLETED)
    return done, len(purchased)


def is_engagement_completed(engagement: Engagement) -> bool:
    return bool(engagement.milestones) and all(
        is_counted_complete(m) for m in engagement.milestones
    )


def latest_completion_date(engagement: Engagement) -> str | None:
    dates = [
        get_date_for_milestone_stage(m, MilestoneStage.COMPLETED)
        for m in engagement.milestones
        if m.stage == MilestoneStage.COMPLETED
    ]
    # ISO dates sort lexicographically
    return max((d for d in dates if d), default=None)
