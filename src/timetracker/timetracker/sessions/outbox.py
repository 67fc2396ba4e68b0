from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from ..core.exceptions import SessionError

log = structlog.get_logger(__name__)


@dataclass
class PendingWrite:
    user_id: str
    collection: str
    description: str
    run: Callable[[], Awaitable[object]]
    attempts: int = 0


class PendingWrites:
    """Writes that failed after a local transition was already committed.

    Flushed in insertion order. A write that fails again with a retryable error
    stays queued together with every later write of the same user to the same
    collection, so per-user order within a collection is preserved.
    """

    def __init__(self) -> None:
        self._items: list[PendingWrite] = []

    def __len__(self) -> int:
        return len(self._items)

    def add(self, user_id: str, collection: str, description: str, run: Callable[[], Awaitable[object]]) -> None:
        self._items.append(PendingWrite(user_id=user_id, collection=collection, description=description, run=run))
        log.warning("write_queued", user_id=user_id, collection=collection, write=description, pending=len(self._items))

    def pending_for(self, user_id: str, collection: Optional[str] = None) -> list[str]:
        return [
            item.description
            for item in self._items
            if item.user_id == user_id and (collection is None or item.collection == collection)
        ]

    async def flush(self) -> int:
        """Retry queued writes; returns how many are still pending."""
        items, self._items = self._items, []
        blocked: set[tuple[str, str]] = set()
        remaining: list[PendingWrite] = []

        for item in items:
            key = (item.user_id, item.collection)
            if key in blocked:
                remaining.append(item)
                continue
            item.attempts += 1
            try:
                await item.run()
            except SessionError as exc:
                if not exc.retryable:
                    log.error("queued_write_dropped", user_id=item.user_id, write=item.description, error=str(exc))
                    continue
                log.warning("queued_write_failed", user_id=item.user_id, write=item.description, attempts=item.attempts)
                blocked.add(key)
                remaining.append(item)
            else:
                log.info("queued_write_applied", user_id=item.user_id, write=item.description, attempts=item.attempts)

        # Writes queued while flushing go after the ones carried over.
        self._items = remaining + self._items
        return len(self._items)
