"""One-time upgrade of engagements saved before stage tracking existed."""

from __future__ import annotations

import logging

from app.config import settings
from app.schemas.engagement import Engagement
from app.services.milestone_tracker import initialize_milestone_with_start_date

logger = logging.getLogger(__name__)


def needs_migration(engagement: Engagement) -> bool:
    return any(m.stage_history is None for m in engagement.milestones)


def migrate_engagement_data(
    engagement: Engagement,
    *,
    fallback_start_date: str | None = None,
    today: str | None = None,
) -> Engagement:
    """Backfill stage history on every untracked milestone.

    Returns ``engagement`` itself when all milestones are already tracked, so
    repeated calls are free.
    """
    if not needs_migration(engagement):
        return engagement

    start_date = engagement.start_date or fallback_start_date or settings.DEFAULT_START_DATE
    logger.info(
        "Backfilling stage history for engagement %s from %s",
        engagement.id,
        start_date,
        extra={"engagement_id": engagement.id},
    )
    return engagement.model_copy(
        update={
            "milestones": [
                initialize_milestone_with_start_date(m, start_date, today=today)
                for m in engagement.milestones
            ]
        }
    )
