from __future__ import annotations

import asyncio
import inspect
import json
from enum import Enum
from typing import Awaitable, Callable, Union

from fluentgym.core.exceptions import InvalidStateError
from fluentgym.core.logging import DOMAIN_SESSION, get_domain_logger
from fluentgym.orchestrator.collaborators import Clock
from fluentgym.schemas.session import FluencyGateState

logger = get_domain_logger(__name__, DOMAIN_SESSION)

Listener = Callable[..., Union[None, Awaitable[None]]]


class GatePhase(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    ANSWERED = "answered"
    EXPIRED = "expired"


async def _notify(listeners: list[Listener], *args) -> None:
    for listener in list(listeners):
        result = listener(*args)
        if inspect.isawaitable(result):
            await result


class FluencyGate:
    """Response-deadline timer for one session.

    Ticks only refresh the countdown for observers; whether a response was
    on time is decided by comparing the clock against the absolute deadline.
    """

    def __init__(self, clock: Clock, *, tick_seconds: float = 0.1):
        self.clock = clock
        self.tick_seconds = tick_seconds
        self.phase = GatePhase.IDLE
        self.deadline: float | None = None
        self.armed_at: float | None = None
        self.elapsed_ms: float | None = None
        self._watcher: asyncio.Task | None = None
        self._expired_listeners: list[Listener] = []
        self._tick_listeners: list[Listener] = []

    def on_expired(self, listener: Listener) -> None:
        self._expired_listeners.append(listener)

    def on_tick(self, listener: Listener) -> None:
        self._tick_listeners.append(listener)

    @property
    def state(self) -> FluencyGateState:
        return FluencyGateState(
            phase=self.phase.value,
            deadline=self.deadline if self.phase == GatePhase.ARMED else None,
            remaining_seconds=self.remaining_seconds(),
            elapsed_ms=self.elapsed_ms if self.phase == GatePhase.ANSWERED else None,
        )

    def remaining_seconds(self) -> float | None:
        if self.phase != GatePhase.ARMED or self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock.monotonic())

    def arm(self, deadline_seconds: float) -> None:
        if self.phase == GatePhase.ARMED:
            raise InvalidStateError("fluency gate is already armed; disarm it first")
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        self.armed_at = self.clock.monotonic()
        self.deadline = self.armed_at + deadline_seconds
        self.elapsed_ms = None
        self.phase = GatePhase.ARMED
        self._start_watcher()
        logger.debug(json.dumps({"type": "gate_armed", "deadline_seconds": deadline_seconds}))

    async def record_answer(self, elapsed_ms: float) -> bool:
        """Mark the gate answered; returns False when it was not armed or the deadline had passed."""
        if self.phase != GatePhase.ARMED:
            return False
        if self.clock.monotonic() >= self.deadline:
            await self._expire()
            return False
        self._stop_watcher()
        self.elapsed_ms = float(elapsed_ms)
        self.phase = GatePhase.ANSWERED
        logger.debug(json.dumps({"type": "gate_answered", "elapsed_ms": self.elapsed_ms}))
        return True

    def disarm(self) -> None:
        self._stop_watcher()
        self.phase = GatePhase.IDLE
        self.deadline = None
        self.armed_at = None

    async def check(self) -> bool:
        """Run one deadline comparison; returns True if this call expired the gate."""
        if self.phase != GatePhase.ARMED:
            return False
        if self.clock.monotonic() < self.deadline:
            return False
        await self._expire()
        return True

    async def _expire(self) -> None:
        # Leave ARMED before notifying so a listener cannot trigger a second expiry.
        self._stop_watcher()
        self.phase = GatePhase.EXPIRED
        logger.info(json.dumps({"type": "gate_expired", "deadline": self.deadline}))
        try:
            await _notify(self._expired_listeners)
        finally:
            if self.phase == GatePhase.EXPIRED:
                self.phase = GatePhase.IDLE
                self.deadline = None
                self.armed_at = None

    def _start_watcher(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the gate is driven by explicit check() calls.
            return
        self._watcher = loop.create_task(self._watch())

    def _stop_watcher(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is not None and not watcher.done() and watcher is not _current_task():
            watcher.cancel()

    async def _watch(self) -> None:
        while self.phase == GatePhase.ARMED:
            remaining = self.remaining_seconds()
            if remaining is not None and self._tick_listeners:
                await _notify(self._tick_listeners, remaining)
            if await self.check():
                return
            await asyncio.sleep(min(self.tick_seconds, max(remaining or 0.0, 0.001)))


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
