from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Protocol, Sequence

from .model import AttendanceSummary


class AttendanceRepository(Protocol):
    async def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[AttendanceSummary]:
        raise NotImplementedError

    async def create_if_absent(self, summary: AttendanceSummary) -> Optional[str]:
        """Create the day's summary; returns None when one already exists."""

        raise NotImplementedError

    async def update(self, attendance_id: str, fields: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    async def list_for_user(self, user_id: str) -> Sequence[AttendanceSummary]:
        raise NotImplementedError

    async def list_for_date(self, work_date: date) -> Sequence[AttendanceSummary]:
        raise NotImplementedError
