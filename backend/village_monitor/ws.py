import asyncio
import logging
from typing import Any, Awaitable, Callable, Set

from fastapi import WebSocket

from .config import get_settings

logger = logging.getLogger(__name__)


class Subscription:
    """One listener's bounded mailbox in the broadcast group."""

    def __init__(self, maxsize: int):
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, message: dict[str, Any]) -> bool:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> dict[str, Any]:
        return await self.queue.get()


class Broadcaster:
    """Single-topic fan-out to every connected dashboard.

    ``publish`` never awaits a listener: messages are enqueued in production
    order and each listener drains its own queue. A full queue drops the
    message for that listener only; nothing is kept for absent listeners.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self.subscriptions: Set[Subscription] = set()

    def subscribe(self) -> Subscription:
        sub = Subscription(self.queue_size)
        self.subscriptions.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self.subscriptions.discard(sub)

    def publish(self, event: str, data: Any) -> int:
        """Enqueue ``{"event", "data"}`` for every listener; returns how many accepted it."""

        message = {"event": event, "data": data}
        delivered = 0
        for sub in list(self.subscriptions):
            if sub.offer(message):
                delivered += 1
            else:
                logger.warning("Dropping '%s' for a slow listener (%d dropped so far)", event, sub.dropped)
        return delivered

    async def connect(self, ws: WebSocket) -> Subscription:
        await ws.accept()
        return self.subscribe()

    async def pump(self, ws: WebSocket, sub: Subscription) -> None:
        """Forward queued messages to *ws* until the socket fails."""

        while True:
            message = await sub.get()
            await ws.send_json(message)

    async def serve(
        self,
        ws: WebSocket,
        sub: Subscription,
        receive: Callable[[], Awaitable[None]],
    ) -> None:
        """Run the pump next to *receive* until either one finishes, then unsubscribe.

        A failed send ends the session even while the client keeps the
        socket open, and both tasks are awaited before returning.
        """

        sender = asyncio.create_task(self.pump(ws, sub))
        receiver = asyncio.create_task(receive())
        try:
            await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sender, receiver):
                task.cancel()
            for task in (sender, receiver):
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.warning("Dashboard session ended with an error", exc_info=True)
            await self.disconnect(sub)

    async def disconnect(self, sub: Subscription) -> None:
        self.unsubscribe(sub)

    @property
    def listener_count(self) -> int:
        return len(self.subscriptions)


broadcaster = Broadcaster(get_settings().ws_queue_size)
