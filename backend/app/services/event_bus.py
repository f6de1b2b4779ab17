import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class EventBus:
    """In-process async event bus with SSE broadcast support."""

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue] = []

    async def publish(
        self,
        event_type: str,
        data: dict,
        engagement_id: str | None = None,
    ) -> dict:
        message = {
            "event": event_type,
            "data": data,
            "engagement_id": engagement_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        dead: list[asyncio.Queue] = []
        for queue in self._subscribers:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                dead.append(queue)
                logger.warning("Dropping slow event subscriber")

        for queue in dead:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

        return message

    async def subscribe(self) -> AsyncGenerator[str, None]:
        """Yield SSE-formatted messages until the consumer goes away."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=256)
        self._subscribers.append(queue)
        try:
            while True:
                message = await queue.get()
                yield f"data: {json.dumps(message, default=str)}\n\n"
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)


# Global singleton
event_bus = EventBus()
