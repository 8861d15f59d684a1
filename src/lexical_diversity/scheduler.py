"""Periodic decay-and-save lifecycle for a relationship learner."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol

from .logging import get_logger

LOGGER = get_logger(__name__)


class _Persistent(Protocol):
    user_id: str

    def apply_decay(self, now: Optional[float] = None) -> int:  # pragma: no cover - protocol
        ...

    async def save(self) -> bool:  # pragma: no cover - protocol
        ...


class AutosaveScheduler:
    """Runs ``apply_decay`` then ``save`` every ``interval_seconds``.

    The clock and sleep function are injectable so tests can drive ticks
    without waiting. :meth:`stop` cancels the background task and waits for
    it, after which no periodic work remains.
    """

    def __init__(
        self,
        learner: _Persistent,
        interval_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        apply_decay: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.learner = learner
        self.interval_seconds = interval_seconds
        self.apply_decay = apply_decay
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task[None]] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"autosave-{self.learner.user_id}")
        LOGGER.debug("Autosave started for %s every %.0fs", self.learner.user_id, self.interval_seconds)

    async def tick(self) -> bool:
        """Run one decay-and-save cycle; returns whether the save succeeded."""
        try:
            if self.apply_decay:
                removed = self.learner.apply_decay(now=self._clock())
                if removed:
                    LOGGER.debug("Decay pruned %d relations for %s", removed, self.learner.user_id)
            saved = await self.learner.save()
        except Exception:  # next tick retries
            LOGGER.exception("Autosave tick failed for %s", self.learner.user_id)
            return False
        finally:
            self.ticks += 1
        return saved

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval_seconds)
            await self.tick()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        LOGGER.debug("Autosave stopped for %s", self.learner.user_id)

    async def __aenter__(self) -> AutosaveScheduler:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
