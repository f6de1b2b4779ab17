from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ── Enumerations ────────────────────────────────────────────────


class MilestoneStage(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    INITIAL_CALL = "INITIAL_CALL"
    WORKSHOP = "WORKSHOP"
    COMPLETED = "COMPLETED"


# Board column order, left to right
STAGE_ORDER: tuple[MilestoneStage, ...] = (
    MilestoneStage.NOT_STARTED,
    MilestoneStage.INITIAL_CALL,
    MilestoneStage.WORKSHOP,
    MilestoneStage.COMPLETED,
)


class ProjectStatus(str, enum.Enum):
    NEW = "NEW"
    KICK_OFF = "KICK_OFF"
    IN_PROGRESS = "IN_PROGRESS"
    LAUNCHED = "LAUNCHED"
    ACTIVE = "ACTIVE"
    STALLED = "STALLED"
    ON_HOLD = "ON_HOLD"
    CLAWED_BACK = "CLAWED_BACK"
    COMPLETED = "COMPLETED"


class Health(str, enum.Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


# ── Engagement document ─────────────────────────────────────────
#
# Documents are immutable values: every edit produces a new object so the
# undo history can compare snapshots by identity. Attributes are snake_case,
# the stored JSON shape is camelCase.

_DOCUMENT_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    use_enum_values=False,
)


class StageHistoryEntry(BaseModel):
    model_config = _DOCUMENT_CONFIG

    stage: MilestoneStage
    date: str
    moved_by: str | None = None


class Milestone(BaseModel):
    model_config = _DOCUMENT_CONFIG

    id: str
    name: str
    stage: MilestoneStage = MilestoneStage.NOT_STARTED
    owner: str | None = None
    due_date: str | None = None
    not_purchased: bool = False
    is_standard: bool = False
    # None means the milestone predates stage tracking, [] means tracked but empty
    stage_history: list[StageHistoryEntry] | None = None


class Engagement(BaseModel):
    model_config = _DOCUMENT_CONFIG

    id: str
    account_name: str = ""
    name: str = ""
    status: ProjectStatus = ProjectStatus.NEW
    health: Health = Health.GREEN
    assigned_rep: str | None = None
    start_date: str | None = None
    close_date: str | None = None
    sales_type: str | None = None
    speed: str | None = None
    crm: str | None = None
    engagement_type: str | None = None
    avaza_link: str | None = None
    project_folder_link: str | None = None
    client_website_link: str | None = None
    sold_by: str | None = None
    seat_count: int | None = None
    hours_alloted: float | None = None
    primary_contact_name: str | None = None
    primary_contact_email: str | None = None
    linkedin_link: str | None = None
    add_ons_purchased: list[str] | None = None
    milestones: list[Milestone] = Field(default_factory=list)

    def milestone(self, milestone_id: str) -> Milestone | None:
        for m in self.milestones:
            if m.id == milestone_id:
                return m
        return None

    def with_milestone(self, updated: Milestone) -> Engagement:
        """Return a copy with the milestone of the same id replaced.

        Returns ``self`` when the stored milestone already is ``updated``.
        """
        changed = False
        milestones = []
        for m in self.milestones:
            if m.id == updated.id and m is not updated:
                milestones.append(updated)
                changed = True
            else:
                milestones.append(m)
        if not changed:
            return self
        return self.model_copy(update={"milestones": milestones})

    def to_document(self) -> dict[str, Any]:
        """JSON-serializable camelCase representation used for persistence."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Engagement:
        return cls.model_validate(document)


# ── API payloads ────────────────────────────────────────────────


class MilestoneCreate(BaseModel):
    name: str
    owner: str | None = None


class MilestoneUpdate(BaseModel):
    name: str | None = None
    owner: str | None = None
    not_purchased: bool | None = None
    moved_by: str | None = None


class MilestoneMove(BaseModel):
    stage: MilestoneStage
    moved_by: str | None = None


class StatusUpdate(BaseModel):
    status: ProjectStatus


class ProgressResponse(BaseModel):
    done: int
    total: int
    completed: bool
    latest_completion_date: str | None = None


class EngagementStateResponse(BaseModel):
    engagement: dict[str, Any]
    can_undo: bool
    can_redo: bool
    progress: ProgressResponse
    save_pending: bool = False
    last_save_error: str | None = None


class EngagementCreate(BaseModel):
    id: str | None = None
    name: str
    account_name: str = ""
    assigned_rep: str | None = None
    start_date: str | None = None
    status: ProjectStatus = ProjectStatus.NEW
