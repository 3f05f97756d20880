import asyncio
import json
from datetime import datetime, timezone

from fastapi import WebSocket

from portal.schemas.events import CardEvent, event_payload

SSE_QUEUE_MAXSIZE = 100


class RealtimeHub:
    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._subscribers: set[asyncio.Queue] = set()
        self._lock = asyncio.Lock()
        self._revision = 0

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        await websocket.send_text(
            json.dumps(
                {
                    "type": "hello",
                    "revision": self._revision,
                    "ts": datetime.now(timezone.utc).isoformat(),
                }
            )
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)

    async def subscribe(self) -> asyncio.Queue:
        """Register an event-stream listener; messages arrive as JSON text."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=SSE_QUEUE_MAXSIZE)
        async with self._lock:
            self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def broadcast(self, event: CardEvent) -> int:
        self._revision += 1
        message = json.dumps(
            {
                **event_payload(event),
                "revision": self._revision,
                "ts": datetime.now(timezone.utc).isoformat(),
            }
        )
        async with self._lock:
            clients = list(self._clients)
            subscribers = list(self._subscribers)

        stale: list[WebSocket] = []
        for client in clients:
            try:
                await client.send_text(message)
            except Exception:
                stale.append(client)

        # A listener that stopped draining its queue is dropped like a dead socket.
        lagging: list[asyncio.Queue] = []
        for queue in subscribers:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                lagging.append(queue)

        if stale or lagging:
            async with self._lock:
                for client in stale:
                    self._clients.discard(client)
                for queue in lagging:
                    self._subscribers.discard(queue)
        return self._revision

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def listener_count(self) -> int:
        return len(self._clients) + len(self._subscribers)


hub = RealtimeHub()
