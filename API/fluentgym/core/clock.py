import time
from datetime import datetime, timedelta, timezone


class MonotonicClock:
    """Clock collaborator: monotonic seconds for deadlines/latency, UTC wall time for timestamps."""

    def __init__(self):
        self._origin_monotonic = time.monotonic()
        self._origin_wall = datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        # Derived from the monotonic source so turn timestamps never run backwards.
        return self._origin_wall + timedelta(seconds=time.monotonic() - self._origin_monotonic)
