from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Protocol, Sequence

from .model import WorkSession


class SessionRepository(Protocol):
    async def get(self, session_id: str) -> Optional[WorkSession]:
        raise NotImplementedError

    async def list_for_user_and_date(self, user_id: str, work_date: date) -> Sequence[WorkSession]:
        raise NotImplementedError

    async def find_in_progress(self, user_id: str, work_date: Optional[date] = None) -> Optional[WorkSession]:
        """Latest running or paused session; any date unless ``work_date`` is given."""

        raise NotImplementedError

    async def create(self, session: WorkSession) -> WorkSession:
        """Insert a new in-progress session.

        Raises AlreadyActive when another in-progress session holds the (user, date) key.
        """

        raise NotImplementedError

    async def save(self, session: WorkSession, fields: Mapping[str, Any]) -> bool:
        """Write ``fields`` of ``session``; releases the (user, date) key once completed."""

        raise NotImplementedError
