from __future__ import annotations

from fastapi import HTTPException, Request

from app.services.editing_session import EditingSession, SessionRegistry
from app.services.errors import EngagementNotFoundError, PersistenceError


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


async def get_session(engagement_id: str, request: Request) -> EditingSession:
    """Resolve the editing session for the ``engagement_id`` path parameter."""
    sessions = get_sessions(request)
    try:
        return await sessions.get(engagement_id)
    except EngagementNotFoundError:
        raise HTTPException(status_code=404, detail="Engagement not found")
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Engagement storage unavailable")
