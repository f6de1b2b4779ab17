"""Stage-transition bookkeeping for milestones.

Each milestone carries at most one history entry per stage, holding the date
it most recently entered that stage. Once history exists ``due_date`` mirrors
the date of the entry for the current stage. All functions return new
milestone values and never mutate their input.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from app.schemas.engagement import Milestone, MilestoneStage, StageHistoryEntry

STANDARD_MILESTONE_NAMES: tuple[str, ...] = (
    "Kick-Off",
    "Workflow Design",
    "Content Strategy",
    "CRM Integration",
    "Data Migration",
    "Change Readiness",
    "User Training",
    "User Office Hours",
    "Manager Training",
    "Admin Training",
)


def format_date(d: date | datetime) -> str:
    """YYYY-MM-DD for a date or datetime."""
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()


def current_date() -> str:
    return format_date(datetime.now(timezone.utc))


def get_date_for_milestone_stage(milestone: Milestone, target_stage: MilestoneStage) -> str | None:
    if not milestone.stage_history:
        return None
    for entry in milestone.stage_history:
        if entry.stage == target_stage:
            return entry.date
    return None


def get_current_stage_date(milestone: Milestone) -> str | None:
    return get_date_for_milestone_stage(milestone, milestone.stage)


def add_stage_to_history(
    milestone: Milestone,
    new_stage: MilestoneStage,
    moved_by: str | None = None,
    *,
    today: str | None = None,
) -> Milestone:
    """Move ``milestone`` to ``new_stage`` and record the entry date.

    Moving a milestone to the stage it is already in returns the same object.
    Re-entering a stage overwrites that stage's entry instead of appending.
    """
    new_stage = MilestoneStage(new_stage)
    if milestone.stage == new_stage:
        return milestone

    now = today or current_date()
    entry = StageHistoryEntry(stage=new_stage, date=now, moved_by=moved_by)
    history = list(milestone.stage_history or [])

    for index, existing in enumerate(history):
        if existing.stage == new_stage:
            history[index] = entry
            break
    else:
        history.append(entry)

    return milestone.model_copy(
        update={"stage": new_stage, "stage_history": history, "due_date": now}
    )


def initialize_milestone_with_start_date(
    milestone: Milestone,
    start_date: str,
    *,
    today: str | None = None,
) -> Milestone:
    """Backfill stage history for a milestone created before tracking existed.

    Milestones that already carry ``stage_history`` are returned unchanged.
    """
    if milestone.stage_history is not None:
        return milestone

    history = [StageHistoryEntry(stage=MilestoneStage.NOT_STARTED, date=start_date)]
    if milestone.stage != MilestoneStage.NOT_STARTED:
        # Already progressed before tracking: date the current stage by its old due date
        history.append(
            StageHistoryEntry(stage=milestone.stage, date=milestone.due_date or today or current_date())
        )

    tracked = milestone.model_copy(update={"stage_history": history})
    return tracked.model_copy(
        update={"due_date": get_current_stage_date(tracked) or milestone.due_date}
    )


def is_counted_complete(milestone: Milestone) -> bool:
    """Completed milestones and ones the client never purchased both close out."""
    return milestone.stage == MilestoneStage.COMPLETED or milestone.not_purchased


def set_not_purchased(
    milestone: Milestone,
    not_purchased: bool,
    moved_by: str | None = None,
    *,
    today: str | None = None,
) -> Milestone:
    """Toggle the not-purchased flag.

    Marking a milestone not purchased parks it in COMPLETED; clearing the flag
    leaves the stage where it is.
    """
    if milestone.not_purchased == not_purchased:
        return milestone
    updated = milestone.model_copy(update={"not_purchased": not_purchased})
    if not_purchased:
        updated = add_stage_to_history(updated, MilestoneStage.COMPLETED, moved_by, today=today)
    return updated


def new_milestone(name: str, owner: str | None = None, *, today: str | None = None) -> Milestone:
    now = today or current_date()
    return Milestone(
        id=uuid.uuid4().hex,
        name=name,
        stage=MilestoneStage.NOT_STARTED,
        owner=owner,
        due_date=now,
        stage_history=[StageHistoryEntry(stage=MilestoneStage.NOT_STARTED, date=now)],
    )


def create_standard_milestones(assigned_rep: str | None, start_date: str) -> list[Milestone]:
    """The milestones every new engagement starts with."""
    return [
        Milestone(
            id=uuid.uuid4().hex,
            name=name,
            stage=MilestoneStage.NOT_STARTED,
            owner=assigned_rep,
            is_standard=True,
            stage_history=[StageHistoryEntry(stage=MilestoneStage.NOT_STARTED, date=start_date)],
        )
        for name in STANDARD_MILESTONE_NAMES
    ]
