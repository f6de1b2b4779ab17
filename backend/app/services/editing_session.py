"""Editing sessions: the undo/redo history of one engagement plus its side effects.

A session owns a ``HistoryStore[Engagement]``. Every edit is computed with the
pure milestone/engagement helpers, pushed through ``HistoryStore.set`` and
then mirrored to persistence through a ``DebouncedSink``. The history store
itself stays free of I/O.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from app.config import settings
from app.core.metrics import editing_sessions_open, history_operations_total, milestones_completed_total
from app.schemas.engagement import Engagement, Milestone, MilestoneStage, ProjectStatus
from app.services.autosave import DebouncedSink
from app.services.engagement_service import change_status, with_derived_health
from app.services.errors import (
    EngagementNotFoundError,
    MilestoneNotFoundError,
    PersistenceError,
    StandardMilestoneError,
)
from app.services.event_bus import event_bus
from app.services.history_store import HistoryStore
from app.services.migration import migrate_engagement_data
from app.services.milestone_tracker import add_stage_to_history, new_milestone, set_not_purchased
from app.services.persistence import PersistenceAdapter, engagement_key

logger = logging.getLogger(__name__)

# Marks a keyword argument the caller did not pass, so None can mean "clear"
_UNCHANGED: Any = object()


class EditingSession:
    def __init__(
        self,
        engagement_id: str,
        adapter: PersistenceAdapter,
        *,
        debounce_seconds: float | None = None,
        celebration_delay_seconds: float | None = None,
        history_limit: int | None = None,
    ) -> None:
        self.engagement_id = engagement_id
        self._adapter = adapter
        self._key = engagement_key(engagement_id)
        self._history_limit = history_limit if history_limit is not None else settings.HISTORY_LIMIT
        self._celebration_delay = (
            celebration_delay_seconds
            if celebration_delay_seconds is not None
            else settings.CELEBRATION_DELAY_SECONDS
        )
        self._sink = DebouncedSink(
            adapter,
            self._key,
            debounce_seconds if debounce_seconds is not None else settings.AUTOSAVE_DEBOUNCE_SECONDS,
            engagement_id=engagement_id,
        )
        self._history: HistoryStore[Engagement] | None = None
        self._celebrations: set[asyncio.Task] = set()

    # ── State ───────────────────────────────────────────────────

    @property
    def history(self) -> HistoryStore[Engagement]:
        if self._history is None:
            raise EngagementNotFoundError(self.engagement_id)
        return self._history

    @property
    def engagement(self) -> Engagement:
        return self.history.present

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def save_pending(self) -> bool:
        return self._sink.pending

    @property
    def last_save_error(self) -> str | None:
        return self._sink.last_error

    def _require_milestone(self, milestone_id: str) -> Milestone:
        milestone = self.engagement.milestone(milestone_id)
        if milestone is None:
            raise MilestoneNotFoundError(milestone_id)
        return milestone

    # ── Lifecycle ───────────────────────────────────────────────

    async def open(self, engagement: Engagement | None = None) -> Engagement:
        """Start editing ``engagement``, or the persisted document when omitted.

        Health is re-derived and untracked milestones are backfilled before the
        history is seeded, so neither step is undoable. The upgraded document
        is written back once.
        """
        if engagement is None:
            document = await self._adapter.load(self._key)
            if document is None:
                raise EngagementNotFoundError(self.engagement_id)
            try:
                engagement = Engagement.from_document(document)
            except ValidationError as exc:
                logger.warning(
                    "Stored document for engagement %s is invalid: %s",
                    self.engagement_id,
                    exc,
                    extra={"engagement_id": self.engagement_id},
                )
                raise PersistenceError(
                    f"Stored document for engagement {self.engagement_id!r} is invalid"
                ) from exc
            explicit = False
        else:
            explicit = True

        prepared = migrate_engagement_data(with_derived_health(engagement))

        if self._history is None:
            self._history = HistoryStore(prepared, limit=self._history_limit)
        else:
            self._history.reset(prepared)

        if explicit or prepared is not engagement:
            self._sink.notify(prepared.to_document())
            await self._sink.flush()
        logger.info(
            "Opened editing session for engagement %s",
            self.engagement_id,
            extra={"engagement_id": self.engagement_id},
        )
        return prepared

    async def save(self) -> bool:
        return await self._sink.flush()

    async def close(self) -> None:
        await self._sink.flush()
        for task in list(self._celebrations):
            task.cancel()

    # ── History ─────────────────────────────────────────────────

    def _mirror(self) -> None:
        self._sink.notify(self.engagement.to_document())

    def _commit(self, updated: Engagement) -> bool:
        if not self.history.set(updated):
            return False
        history_operations_total.labels(operation="set").inc()
        self._mirror()
        return True

    async def undo(self) -> bool:
        if not self.history.undo():
            return False
        history_operations_total.labels(operation="undo").inc()
        self._mirror()
        await event_bus.publish("history.undo", {}, engagement_id=self.engagement_id)
        return True

    async def redo(self) -> bool:
        if not self.history.redo():
            return False
        history_operations_total.labels(operation="redo").inc()
        self._mirror()
        await event_bus.publish("history.redo", {}, engagement_id=self.engagement_id)
        return True

    # ── Edits ───────────────────────────────────────────────────

    async def move_milestone(
        self,
        milestone_id: str,
        stage: MilestoneStage | str,
        moved_by: str | None = None,
    ) -> Milestone:
        milestone = self._require_milestone(milestone_id)
        moved = add_stage_to_history(milestone, MilestoneStage(stage), moved_by)
        if moved is milestone:
            return milestone

        self._commit(self.engagement.with_milestone(moved))
        await event_bus.publish(
            "milestone.moved",
            {
                "milestone_id": moved.id,
                "from_stage": milestone.stage.value,
                "to_stage": moved.stage.value,
                "moved_by": moved_by,
            },
            engagement_id=self.engagement_id,
        )
        if moved.stage == MilestoneStage.COMPLETED:
            milestones_completed_total.inc()
            self._schedule_celebration(moved)
        return moved

    async def update_milestone(
        self,
        milestone_id: str,
        *,
        name: str | None = None,
        owner: str | None = _UNCHANGED,
        not_purchased: bool | None = None,
        moved_by: str | None = None,
    ) -> Milestone:
        """Apply every given field change as a single undo step.

        ``owner=None`` clears the owner; leaving ``owner`` out keeps it.
        """
        milestone = self._require_milestone(milestone_id)
        changes = {}
        if name is not None and name != milestone.name:
            changes["name"] = name
        if owner is not _UNCHANGED and owner != milestone.owner:
            changes["owner"] = owner
        updated = milestone.model_copy(update=changes) if changes else milestone
        if not_purchased is not None:
            updated = set_not_purchased(updated, not_purchased, moved_by)
        if updated is not milestone:
            self._commit(self.engagement.with_milestone(updated))
        return updated

    async def set_not_purchased(
        self,
        milestone_id: str,
        not_purchased: bool,
        moved_by: str | None = None,
    ) -> Milestone:
        return await self.update_milestone(
            milestone_id, not_purchased=not_purchased, moved_by=moved_by
        )

    async def add_milestone(self, name: str, owner: str | None = None) -> Milestone:
        milestone = new_milestone(name, owner or self.engagement.assigned_rep)
        self._commit(
            self.engagement.model_copy(
                update={"milestones": [*self.engagement.milestones, milestone]}
            )
        )
        return milestone

    async def remove_milestone(self, milestone_id: str) -> None:
        milestone = self._require_milestone(milestone_id)
        if milestone.is_standard:
            raise StandardMilestoneError(milestone_id)
        self._commit(
            self.engagement.model_copy(
                update={
                    "milestones": [m for m in self.engagement.milestones if m.id != milestone_id]
                }
            )
        )

    async def change_status(self, status: ProjectStatus | str) -> Engagement:
        self._commit(change_status(self.engagement, status))
        return self.engagement

    async def replace(self, engagement: Engagement) -> Engagement:
        """Undoable wholesale edit, e.g. from the engagement header form."""
        if engagement.id != self.engagement_id:
            raise ValueError("Engagement id cannot change during an editing session")
        self._commit(migrate_engagement_data(with_derived_health(engagement)))
        return self.engagement

    # ── Side effects ────────────────────────────────────────────

    def _schedule_celebration(self, milestone: Milestone) -> None:
        task = asyncio.get_running_loop().create_task(self._celebrate(milestone))
        self._celebrations.add(task)
        task.add_done_callback(self._celebrations.discard)

    async def _celebrate(self, milestone: Milestone) -> None:
        await asyncio.sleep(self._celebration_delay)
        await event_bus.publish(
            "milestone.completed",
            {"milestone_id": milestone.id, "name": milestone.name},
            engagement_id=self.engagement_id,
        )


class SessionRegistry:
    """One editing session per engagement id, held in memory."""

    def __init__(self, adapter: PersistenceAdapter, **session_options) -> None:
        self.adapter = adapter
        self._session_options = session_options
        self._sessions: dict[str, EditingSession] = {}
        # Serializes loading per engagement so concurrent first requests share one session
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, engagement_id: str) -> asyncio.Lock:
        lock = self._locks.get(engagement_id)
        if lock is None:
            lock = self._locks[engagement_id] = asyncio.Lock()
        return lock

    def __contains__(self, engagement_id: str) -> bool:
        return engagement_id in self._sessions

    async def exists(self, engagement_id: str) -> bool:
        """True when the engagement is open here or has a persisted document."""
        if engagement_id in self._sessions:
            return True
        return await self.adapter.load(engagement_key(engagement_id)) is not None

    def _new_session(self, engagement_id: str) -> EditingSession:
        return EditingSession(engagement_id, self.adapter, **self._session_options)

    async def get(self, engagement_id: str) -> EditingSession:
        """Return the open session, loading the persisted document on first use."""
        session = self._sessions.get(engagement_id)
        if session is not None:
            return session
        async with self._lock(engagement_id):
            session = self._sessions.get(engagement_id)
            if session is None:
                session = self._new_session(engagement_id)
                await session.open()
                self._sessions[engagement_id] = session
                editing_sessions_open.set(len(self._sessions))
        return session

    async def open(self, engagement: Engagement) -> EditingSession:
        """Start (or restart) editing with ``engagement`` as the seed value."""
        async with self._lock(engagement.id):
            session = self._sessions.get(engagement.id)
            if session is None:
                session = self._new_session(engagement.id)
                self._sessions[engagement.id] = session
                editing_sessions_open.set(len(self._sessions))
            await session.open(engagement)
        return session

    async def close_all(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()
        self._locks.clear()
        editing_sessions_open.set(0)
