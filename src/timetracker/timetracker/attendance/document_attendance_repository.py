from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Sequence

from ..core.constants import ATTENDANCE_COLLECTION
from ..core.exceptions import DuplicateDocumentError
from ..store.document_store import DocumentStore
from .model import AttendanceSummary
from .repository import AttendanceRepository


class DocumentAttendanceRepository(AttendanceRepository):
    """Attendance summaries keyed permanently on (user, date) through the store's lock key."""

    def __init__(self, store: DocumentStore, *, collection: str = ATTENDANCE_COLLECTION):
        self._store = store
        self._collection = collection

    async def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[AttendanceSummary]:
        docs = await self._store.query(self._collection, {"userId": user_id, "date": work_date.isoformat()})
        if not docs:
            return None
        return AttendanceSummary.from_document(docs[0])

    async def create_if_absent(self, summary: AttendanceSummary) -> Optional[str]:
        try:
            return await self._store.create(
                self._collection,
                summary.to_document(),
                lock_key=f"{summary.user_id}:{summary.work_date.isoformat()}",
            )
        except DuplicateDocumentError:
            return None

    async def update(self, attendance_id: str, fields: Mapping[str, Any]) -> bool:
        return await self._store.update(self._collection, attendance_id, fields)

    async def list_for_user(self, user_id: str) -> Sequence[AttendanceSummary]:
        docs = await self._store.query(self._collection, {"userId": user_id})
        return [AttendanceSummary.from_document(d) for d in docs]

    async def list_for_date(self, work_date: date) -> Sequence[AttendanceSummary]:
        docs = await self._store.query(self._collection, {"date": work_date.isoformat()})
        return [AttendanceSummary.from_document(d) for d in docs]
