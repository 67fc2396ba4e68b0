from __future__ import annotations

import asyncio
import itertools
from typing import Callable, Optional

import structlog

from ..core.constants import DEFAULT_TICK_INTERVAL_SECONDS

log = structlog.get_logger(__name__)

ElapsedCallback = Callable[[str], None]


class TickScheduler:
    """Periodic re-publisher of a derived display value.

    One instance serves every view watching the same session. It only reads
    through ``render`` and never writes anywhere. The loop runs as a task on the
    current asyncio event loop, so ``start`` must be called from inside it.
    """

    def __init__(self, render: Callable[[], str], *, interval: float = DEFAULT_TICK_INTERVAL_SECONDS, name: str = ""):
        self._render = render
        self._interval = float(interval)
        self._name = name
        self._subscribers: dict[int, ElapsedCallback] = {}
        self._ids = itertools.count(1)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def subscribe(self, callback: ElapsedCallback) -> Callable[[], None]:
        sub_id = next(self._ids)
        self._subscribers[sub_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(sub_id, None)
            if not self._subscribers:
                self.stop()

        return unsubscribe

    def start(self) -> None:
        if self.running or not self._subscribers:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        log.debug("ticker_started", ticker=self._name)

    def stop(self) -> None:
        # Cancellation is requested synchronously; the loop only wakes up inside
        # asyncio.sleep, so no publish happens after this returns.
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            log.debug("ticker_stopped", ticker=self._name)

    def close(self) -> None:
        self._subscribers.clear()
        self.stop()

    def publish(self) -> None:
        if not self._subscribers:
            return
        value = self._render()
        for sub_id, callback in list(self._subscribers.items()):
            # A callback may unsubscribe others; skip anything removed mid-round.
            if sub_id not in self._subscribers:
                continue
            try:
                callback(value)
            except Exception:
                log.exception("ticker_subscriber_failed", ticker=self._name)

    async def _run(self) -> None:
        while True:
            self.publish()
            await asyncio.sleep(self._interval)
