"""Engagement board API: milestone moves, edits and undo/redo for one engagement."""
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from app.api.deps import get_session, get_sessions
from app.config import settings
from app.core.rate_limit import limiter
from app.schemas.engagement import (
    Engagement,
    EngagementCreate,
    EngagementStateResponse,
    MilestoneCreate,
    MilestoneMove,
    MilestoneUpdate,
    ProgressResponse,
    StatusUpdate,
)
from app.services.editing_session import EditingSession, SessionRegistry
from app.services.engagement_service import (
    derive_health,
    is_engagement_completed,
    latest_completion_date,
    progress,
)
from app.services.errors import MilestoneNotFoundError, PersistenceError, StandardMilestoneError
from app.services.milestone_tracker import create_standard_milestones, current_date

router = APIRouter(prefix="/engagements", tags=["engagements"])


def _state_response(session: EditingSession) -> EngagementStateResponse:
    engagement = session.engagement
    done, total = progress(engagement)
    return EngagementStateResponse(
        engagement=engagement.to_document(),
        can_undo=session.can_undo,
        can_redo=session.can_redo,
        progress=ProgressResponse(
            done=done,
            total=total,
            completed=is_engagement_completed(engagement),
            latest_completion_date=latest_completion_date(engagement),
        ),
        save_pending=session.save_pending,
        last_save_error=session.last_save_error,
    )


@router.post("", response_model=EngagementStateResponse, status_code=201)
async def create_engagement(
    body: EngagementCreate,
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Create an engagement seeded with the standard milestones."""
    engagement_id = body.id or uuid.uuid4().hex
    try:
        exists = await sessions.exists(engagement_id)
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Engagement storage unavailable")
    if exists:
        raise HTTPException(status_code=409, detail="Engagement already exists")

    start_date = body.start_date or current_date()
    engagement = Engagement(
        id=engagement_id,
        name=body.name,
        account_name=body.account_name,
        assigned_rep=body.assigned_rep,
        start_date=start_date,
        status=body.status,
        health=derive_health(body.status),
        milestones=create_standard_milestones(body.assigned_rep, start_date),
    )
    session = await sessions.open(engagement)
    return _state_response(session)


@router.get("/{engagement_id}", response_model=EngagementStateResponse)
async def get_engagement(session: EditingSession = Depends(get_session)):
    return _state_response(session)


@router.put("/{engagement_id}", response_model=EngagementStateResponse)
@limiter.limit(settings.SAVE_RATE_LIMIT)
async def open_engagement(
    request: Request,
    engagement_id: str,
    body: dict,
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Start a fresh editing session from a full engagement document.

    Accepts the stored camelCase shape as well as snake_case. Clears undo
    history.
    """
    try:
        engagement = Engagement.from_document({**body, "id": engagement_id})
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False))
    session = await sessions.open(engagement)
    return _state_response(session)


@router.patch("/{engagement_id}/status", response_model=EngagementStateResponse)
async def update_status(body: StatusUpdate, session: EditingSession = Depends(get_session)):
    await session.change_status(body.status)
    return _state_response(session)


@router.post("/{engagement_id}/milestones", response_model=EngagementStateResponse, status_code=201)
async def add_milestone(body: MilestoneCreate, session: EditingSession = Depends(get_session)):
    await session.add_milestone(body.name, body.owner)
    return _state_response(session)


@router.patch("/{engagement_id}/milestones/{milestone_id}", response_model=EngagementStateResponse)
async def update_milestone(
    milestone_id: str,
    body: MilestoneUpdate,
    session: EditingSession = Depends(get_session),
):
    """Edit a milestone; all fields in one request form a single undo step.

    Sending ``"owner": null`` clears the owner.
    """
    try:
        await session.update_milestone(milestone_id, **body.model_dump(exclude_unset=True))
    except MilestoneNotFoundError:
        raise HTTPException(status_code=404, detail="Milestone not found")
    return _state_response(session)


@router.delete("/{engagement_id}/milestones/{milestone_id}", response_model=EngagementStateResponse)
async def delete_milestone(milestone_id: str, session: EditingSession = Depends(get_session)):
    try:
        await session.remove_milestone(milestone_id)
    except MilestoneNotFoundError:
        raise HTTPException(status_code=404, detail="Milestone not found")
    except StandardMilestoneError:
        raise HTTPException(status_code=400, detail="Standard milestones cannot be deleted")
    return _state_response(session)


@router.post(
    "/{engagement_id}/milestones/{milestone_id}/move",
    response_model=EngagementStateResponse,
)
async def move_milestone(
    milestone_id: str,
    body: MilestoneMove,
    session: EditingSession = Depends(get_session),
):
    """Move a milestone card to another board column."""
    try:
        await session.move_milestone(milestone_id, body.stage, body.moved_by)
    except MilestoneNotFoundError:
        raise HTTPException(status_code=404, detail="Milestone not found")
    return _state_response(session)


@router.post("/{engagement_id}/undo", response_model=EngagementStateResponse)
async def undo(session: EditingSession = Depends(get_session)):
    await session.undo()
    return _state_response(session)


@router.post("/{engagement_id}/redo", response_model=EngagementStateResponse)
async def redo(session: EditingSession = Depends(get_session)):
    await session.redo()
    return _state_response(session)


@router.post("/{engagement_id}/save", response_model=EngagementStateResponse)
@limiter.limit(settings.SAVE_RATE_LIMIT)
async def save(request: Request, session: EditingSession = Depends(get_session)):
    """Flush pending changes immediately instead of waiting for autosave."""
    await session.save()
    return _state_response(session)
