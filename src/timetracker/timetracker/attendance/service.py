from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Optional, Sequence

from ..common.datetime_utils import Clock, SystemClock, round2, today_of
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import AttendanceStatus
from .model import AttendanceSummary, DayStats, HoursOverview
from .repository import AttendanceRepository

EXPORT_FIELDS = [
    "date",
    "user_id",
    "clock_in",
    "clock_out",
    "total_hours",
    "breaks",
    "status",
    "work_location",
]


class AttendanceService:
    """Read side of the attendance summaries (dashboards, manager views, exports)."""

    def __init__(self, attendance: AttendanceRepository, *, clock: Optional[Clock] = None):
        self._attendance = attendance
        self._clock = clock or SystemClock()

    def current_date(self) -> date:
        return today_of(self._clock)

    async def history(self, user_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[AttendanceSummary]:
        records = await self._attendance.list_for_user(str(user_id))
        return sorted(records, key=lambda r: r.work_date, reverse=True)[: max(int(limit), 0)]

    async def today(self, user_id: str) -> Optional[AttendanceSummary]:
        return await self._attendance.get_for_user_and_date(str(user_id), self.current_date())

    async def for_date(self, work_date: date, *, status: Optional[AttendanceStatus] = None) -> list[AttendanceSummary]:
        records = await self._attendance.list_for_date(work_date)
        if status is not None:
            records = [r for r in records if r.status == status]
        return sorted(records, key=lambda r: r.clock_in)

    async def day_stats(self, work_date: date, *, employee_count: int) -> DayStats:
        records = await self._attendance.list_for_date(work_date)
        present = sum(1 for r in records if r.status == AttendanceStatus.PRESENT)
        late = sum(1 for r in records if r.status == AttendanceStatus.LATE)
        average = sum(r.total_hours for r in records) / len(records) if records else 0.0
        return DayStats(
            work_date=work_date,
            present=present,
            late=late,
            absent=max(int(employee_count) - len(records), 0),
            average_hours=round2(average),
        )

    async def hours_overview(self, user_id: str) -> HoursOverview:
        records = await self._attendance.list_for_user(str(user_id))
        return summarize_hours(records, today=self.current_date())

    async def export_rows(self, work_date: date) -> list[dict]:
        rows = []
        for r in await self.for_date(work_date):
            rows.append(
                {
                    "date": r.work_date.strftime("%Y-%m-%d"),
                    "user_id": r.user_id,
                    "clock_in": r.clock_in.strftime("%H:%M:%S"),
                    "clock_out": r.clock_out.strftime("%H:%M:%S") if r.clock_out else "-",
                    "total_hours": f"{r.total_hours:.2f}",
                    "breaks": len(r.breaks),
                    "status": r.status.value,
                    "work_location": r.work_location.value,
                }
            )
        return rows


def summarize_hours(records: Sequence[AttendanceSummary], *, today: date) -> HoursOverview:
    """Week (starting Sunday) and month totals plus the share of 'present' days."""
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    week = sum(r.total_hours for r in records if week_start <= r.work_date <= today)
    month = sum(r.total_hours for r in records if (r.work_date.year, r.work_date.month) == (today.year, today.month))
    rate = 0
    if records:
        present = sum(1 for r in records if r.status == AttendanceStatus.PRESENT)
        rate = math.floor(present * 100 / len(records) + 0.5)
    return HoursOverview(week_hours=round2(week), month_hours=round2(month), attendance_rate=rate)
