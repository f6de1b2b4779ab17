"""Key-value persistence for engagement documents.

Adapters store JSON-serializable values under string keys. Every failure is
raised as ``PersistenceError`` so callers handle a single exception type.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.engagement_document import EngagementDocument
from app.services.errors import PersistenceError

logger = logging.getLogger(__name__)


def engagement_key(engagement_id: str) -> str:
    return f"engagement:{engagement_id}"


class PersistenceAdapter(Protocol):
    async def load(self, key: str, default: Any = None) -> Any: ...

    async def save(self, key: str, value: Any) -> None: ...


class MemoryPersistence:
    """In-process store, used in tests and with PERSISTENCE_BACKEND=memory.

    Values are kept JSON-encoded so a value that would not survive a real
    store fails here too.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def load(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    async def save(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Value for {key!r} is not JSON-serializable") from exc

    def keys(self) -> list[str]:
        return list(self._data)


class DatabasePersistence:
    """Stores documents in the ``engagement_documents`` table.

    Saves overwrite the row unconditionally (last write wins).
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, key: str, default: Any = None) -> Any:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(EngagementDocument.value).where(EngagementDocument.key == key)
                )
                row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load {key!r}") from exc
        if row is None or row[0] is None:
            return default
        return row[0]

    async def save(self, key: str, value: Any) -> None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(EngagementDocument).where(EngagementDocument.key == key)
                )
                doc = result.scalar_one_or_none()
                if doc is None:
                    db.add(EngagementDocument(key=key, value=value))
                else:
                    doc.value = value
                await db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save {key!r}") from exc
        logger.debug("Saved document %s", key)
