"""Debounced mirroring of an editing session's present value to persistence."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from app.core.metrics import autosave_flushes_total, autosave_last_success
from app.services.errors import PersistenceError
from app.services.event_bus import event_bus
from app.services.persistence import PersistenceAdapter

logger = logging.getLogger(__name__)


class DebouncedSink:
    """Writes the latest notified value once ``delay`` seconds pass without a
    newer one.

    A new ``notify`` restarts the timer. Save failures are logged and kept in
    ``last_error``; they never propagate to the caller of ``notify``.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        key: str,
        delay: float,
        *,
        engagement_id: str | None = None,
    ) -> None:
        self._adapter = adapter
        self._key = key
        self._delay = delay
        self._engagement_id = engagement_id
        self._latest: Any = None
        self._dirty = False
        self._task: asyncio.Task | None = None
        self.last_error: str | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def dirty(self) -> bool:
        return self._dirty

    def notify(self, value: Any) -> None:
        self._latest = value
        self._dirty = True
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._flush_later())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> bool:
        """Save the latest value now. Returns False if the save failed."""
        self.cancel()
        if not self._dirty:
            return True
        return await self._write()

    async def _flush_later(self) -> None:
        try:
            await asyncio.sleep(self._delay)
            await self._write()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Unexpected error in autosave for %s", self._key)

    async def _write(self) -> bool:
        value = self._latest
        try:
            await self._adapter.save(self._key, value)
        except PersistenceError as exc:
            self.last_error = str(exc)
            autosave_flushes_total.labels(status="error").inc()
            logger.warning(
                "Autosave of %s failed: %s",
                self._key,
                exc,
                extra={"engagement_id": self._engagement_id},
            )
            await event_bus.publish(
                "engagement.save_failed",
                {"key": self._key, "error": self.last_error},
                engagement_id=self._engagement_id,
            )
            return False

        # A newer value may have arrived while the save was awaiting
        if value is self._latest:
            self._dirty = False
        self.last_error = None
        autosave_flushes_total.labels(status="ok").inc()
        autosave_last_success.set(time.time())
        await event_bus.publish(
            "engagement.saved",
            {"key": self._key},
            engagement_id=self._engagement_id,
        )
        return True
