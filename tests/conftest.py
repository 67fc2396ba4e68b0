from __future__ import annotations

import asyncio
import copy
import itertools
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

import pytest

from src.timetracker.timetracker.container import build_container
from src.timetracker.timetracker.core.exceptions import DuplicateDocumentError


class MutableClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class InMemoryDocumentStore:
    """Document store with the same lock-key and merge semantics as the MySQL one.

    ``fail_reads`` / ``fail_writes`` (per collection) make the next N calls raise
    ConnectionError; ``delay`` makes every call wait that long first.
    """

    def __init__(self):
        self.docs: dict[str, dict[str, dict[str, Any]]] = {}
        self.locks: dict[tuple[str, str], str] = {}
        self._ids = itertools.count(1)
        self.fail_reads = 0
        self.fail_writes: dict[str, int] = {}
        self.delay = 0.0

    async def _enter(self, collection: Optional[str] = None, *, write: bool = False) -> None:
        await asyncio.sleep(self.delay)
        if write:
            if self.fail_writes.get(collection, 0) > 0:
                self.fail_writes[collection] -= 1
                raise ConnectionError(f"{collection} unreachable")
        elif self.fail_reads > 0:
            self.fail_reads -= 1
            raise ConnectionError("store unreachable")

    async def get(self, collection: str, doc_id: str):
        await self._enter()
        doc = self.docs.get(collection, {}).get(doc_id)
        return {**copy.deepcopy(doc), "id": doc_id} if doc is not None else None

    async def create(self, collection: str, document: Mapping[str, Any], *, lock_key: Optional[str] = None) -> str:
        await self._enter(collection, write=True)
        if lock_key is not None and (collection, lock_key) in self.locks:
            raise DuplicateDocumentError(collection, lock_key)
        doc_id = f"{collection}-{next(self._ids)}"
        self.docs.setdefault(collection, {})[doc_id] = copy.deepcopy(dict(document))
        if lock_key is not None:
            self.locks[(collection, lock_key)] = doc_id
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any], *, release_lock: bool = False) -> bool:
        await self._enter(collection, write=True)
        doc = self.docs.get(collection, {}).get(doc_id)
        if doc is None:
            return False
        for name, value in copy.deepcopy(dict(fields)).items():
            if value is None:
                doc.pop(name, None)
            else:
                doc[name] = value
        if release_lock:
            for key in [k for k, v in self.locks.items() if k[0] == collection and v == doc_id]:
                del self.locks[key]
        return True

    async def query(self, collection: str, filters: Mapping[str, Any]):
        await self._enter()
        out = []
        for doc_id, doc in self.docs.get(collection, {}).items():
            ok = True
            for name, expected in filters.items():
                if isinstance(expected, (list, tuple)):
                    ok = doc.get(name) in expected
                else:
                    ok = doc.get(name) == expected
                if not ok:
                    break
            if ok:
                out.append({**copy.deepcopy(doc), "id": doc_id})
        return out


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 6, 9, 0, 0)


@pytest.fixture
def clock(fixed_now) -> MutableClock:
    return MutableClock(fixed_now)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def container(store, clock):
    return build_container(
        store=store,
        clock=clock,
        store_timeout=0.5,
        read_attempts=2,
        retry_delay=0.0,
        tick_interval=0.02,
    )


@pytest.fixture
def engine(container):
    return container.session_engine
