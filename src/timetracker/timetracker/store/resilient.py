from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import structlog

from ..core.constants import (
    DEFAULT_STORE_READ_ATTEMPTS,
    DEFAULT_STORE_RETRY_DELAY_SECONDS,
    DEFAULT_STORE_TIMEOUT_SECONDS,
)
from ..core.exceptions import StoreUnavailable
from .document_store import Document, DocumentStore

T = TypeVar("T")

log = structlog.get_logger(__name__)


class ResilientDocumentStore(DocumentStore):
    """Decorator adding a bounded timeout to every call and bounded retries to reads.

    Writes are attempted once: a write that timed out may still have been applied,
    so retrying it blindly is left to the caller.
    """

    def __init__(
        self,
        inner: DocumentStore,
        *,
        timeout: float = DEFAULT_STORE_TIMEOUT_SECONDS,
        read_attempts: int = DEFAULT_STORE_READ_ATTEMPTS,
        retry_delay: float = DEFAULT_STORE_RETRY_DELAY_SECONDS,
    ):
        self._inner = inner
        self._timeout = float(timeout)
        self._read_attempts = max(int(read_attempts), 1)
        self._retry_delay = float(retry_delay)

    async def _call(self, what: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(f"Temporarily unable to record time ({what} timed out)") from exc
        except OSError as exc:
            raise StoreUnavailable(f"Temporarily unable to record time ({what} failed)") from exc

    async def _read(self, what: str, factory: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await self._call(what, factory)
            except StoreUnavailable:
                log.warning("store_read_failed", op=what, attempt=attempt, attempts=self._read_attempts)
                if attempt >= self._read_attempts:
                    raise
            attempt += 1
            await asyncio.sleep(self._retry_delay)

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return await self._read(f"get {collection}", lambda: self._inner.get(collection, doc_id))

    async def query(self, collection: str, filters: Mapping[str, Any]) -> list[Document]:
        return await self._read(f"query {collection}", lambda: self._inner.query(collection, filters))

    async def create(self, collection: str, document: Mapping[str, Any], *, lock_key: Optional[str] = None) -> str:
        return await self._call(
            f"create {collection}",
            lambda: self._inner.create(collection, document, lock_key=lock_key),
        )

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        release_lock: bool = False,
    ) -> bool:
        return await self._call(
            f"update {collection}",
            lambda: self._inner.update(collection, doc_id, fields, release_lock=release_lock),
        )
