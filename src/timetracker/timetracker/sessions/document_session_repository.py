from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any, Mapping, Optional, Sequence

from ..core.constants import SESSIONS_COLLECTION
from ..core.enums import SessionStatus
from ..core.exceptions import AlreadyActive, DuplicateDocumentError
from ..store.document_store import DocumentStore
from .model import WorkSession
from .repository import SessionRepository

_IN_PROGRESS = [SessionStatus.ACTIVE.value, SessionStatus.BREAK.value]


class DocumentSessionRepository(SessionRepository):
    def __init__(self, store: DocumentStore, *, collection: str = SESSIONS_COLLECTION):
        self._store = store
        self._collection = collection

    async def get(self, session_id: str) -> Optional[WorkSession]:
        doc = await self._store.get(self._collection, session_id)
        return WorkSession.from_document(doc) if doc else None

    async def list_for_user_and_date(self, user_id: str, work_date: date) -> Sequence[WorkSession]:
        docs = await self._store.query(self._collection, {"userId": user_id, "date": work_date.isoformat()})
        return [WorkSession.from_document(d) for d in docs]

    async def find_in_progress(self, user_id: str, work_date: Optional[date] = None) -> Optional[WorkSession]:
        filters: dict[str, Any] = {"userId": user_id, "status": _IN_PROGRESS}
        if work_date is not None:
            filters["date"] = work_date.isoformat()
        docs = await self._store.query(self._collection, filters)
        if not docs:
            return None
        return WorkSession.from_document(docs[-1])

    async def create(self, session: WorkSession) -> WorkSession:
        try:
            session_id = await self._store.create(
                self._collection,
                session.to_document(),
                lock_key=session.lock_key,
            )
        except DuplicateDocumentError as exc:
            raise AlreadyActive("You already have an active timer for today") from exc
        return replace(session, session_id=session_id)

    async def save(self, session: WorkSession, fields: Mapping[str, Any]) -> bool:
        return await self._store.update(
            self._collection,
            str(session.session_id),
            fields,
            release_lock=session.status == SessionStatus.COMPLETED,
        )
