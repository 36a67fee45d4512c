"""App lifecycle — STARTING, READY, EXITED, and only ever forward.

Two independent tasks drive it: the stderr scanner moves it to READY and
the exit watcher moves it to EXITED. Either may get there second, so
advancing to a state the app has already reached or passed is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Awaitable

from spanharness.types import SupervisorState

_logger = logging.getLogger(__name__)

TransitionCallback = Callable[[str, SupervisorState, SupervisorState], Awaitable[None]]

_ORDER: dict[SupervisorState, int] = {
    SupervisorState.STARTING: 0,
    SupervisorState.READY: 1,
    SupervisorState.EXITED: 2,
}


class AppLifecycle:
    """Monotonic lifecycle of one supervised app.

    The state changes synchronously inside advance(), so readers never see
    a stale value. Listeners are awaited afterwards, one transition at a
    time, and a failing listener is logged and skipped: it must never take
    down the task that reported the transition.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._state = SupervisorState.STARTING
        self._history: list[tuple[SupervisorState, float]] = [
            (SupervisorState.STARTING, time.monotonic()),
        ]
        self._listeners: list[TransitionCallback] = []
        self._dispatch_lock = asyncio.Lock()

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def history(self) -> list[tuple[SupervisorState, float]]:
        """States entered so far, with the monotonic time each was entered."""
        return list(self._history)

    def reached(self, state: SupervisorState) -> bool:
        return _ORDER[self._state] >= _ORDER[state]

    async def advance(self, target: SupervisorState) -> bool:
        """Move forward to target. Returns False if already there or past it."""
        if self.reached(target):
            return False

        old = self._state
        self._state = target
        self._history.append((target, time.monotonic()))

        # FIFO lock: a slow READY listener still finishes before EXITED is heard
        async with self._dispatch_lock:
            for listener in list(self._listeners):
                try:
                    await listener(self.label, old, target)
                except Exception as e:
                    _logger.warning(
                        "%s: transition listener %r failed on %s -> %s: %s",
                        self.label, listener, old.value, target.value, e,
                    )
        return True

    def on_transition(self, callback: TransitionCallback) -> None:
        self._listeners.append(callback)
