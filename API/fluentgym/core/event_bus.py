import asyncio
from collections import deque
from datetime import datetime, timezone

# Engine event types.
SESSION_STARTED = "session_started"
TURN_APPENDED = "turn_appended"
METRICS_UPDATED = "metrics_updated"
GATE_EXPIRED = "gate_expired"
SESSION_ENDED = "session_ended"
SESSION_RESET = "session_reset"


class EventBus:
    def __init__(self, history_size: int = 200):
        self._subscribers: list[asyncio.Queue] = []
        self._history: deque[dict] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    async def publish(self, event_type: str, source: str, data: dict) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "source": source,
            "data": data,
        }
        async with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                continue

    async def subscribe(self, replay_last: int = 10, event_types: set[str] | None = None) -> asyncio.Queue:
        queue: asyncio.Queue = _FilteredQueue(event_types) if event_types else asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
            history = list(self._history)[-replay_last:] if replay_last > 0 else []
        for event in history:
            queue.put_nowait(event)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def history(self, event_type: str | None = None) -> list[dict]:
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if event["type"] == event_type]


class _FilteredQueue(asyncio.Queue):
    """Queue that silently drops events outside the subscribed types."""

    def __init__(self, event_types: set[str]):
        super().__init__()
        self.event_types = set(event_types)

    def put_nowait(self, item) -> None:
        if item.get("type") in self.event_types:
            super().put_nowait(item)
