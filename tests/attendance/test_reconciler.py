from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Mapping, Optional

import pytest

from src.timetracker.timetracker.attendance.model import AttendanceSummary
from src.timetracker.timetracker.attendance.reconciler import AttendanceReconciler, worked_hours
from src.timetracker.timetracker.core.enums import AttendanceStatus, BreakReason, SessionStatus, WorkLocation
from src.timetracker.timetracker.core.exceptions import ReconciliationFailed, StoreUnavailable
from src.timetracker.timetracker.sessions.model import BreakInterval, WorkSession


class InMemoryAttendance:
    def __init__(self):
        self.by_id: dict[str, AttendanceSummary] = {}
        self.updates: list[tuple[str, dict]] = []
        self.down = False
        self.lose_updates = False

    def _check(self):
        if self.down:
            raise StoreUnavailable("store down")

    async def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[AttendanceSummary]:
        self._check()
        for r in self.by_id.values():
            if r.user_id == user_id and r.work_date == work_date:
                return r
        return None

    async def create_if_absent(self, summary: AttendanceSummary) -> Optional[str]:
        self._check()
        if await self.get_for_user_and_date(summary.user_id, summary.work_date):
            return None
        attendance_id = f"a{len(self.by_id) + 1}"
        self.by_id[attendance_id] = replace(summary, attendance_id=attendance_id)
        return attendance_id

    async def update(self, attendance_id: str, fields: Mapping[str, Any]) -> bool:
        self._check()
        if self.lose_updates:
            return False
        self.updates.append((attendance_id, dict(fields)))
        return True


def _completed_session(**overrides) -> WorkSession:
    lunch = BreakInterval(
        start_time=datetime(2024, 3, 6, 12, 0),
        end_time=datetime(2024, 3, 6, 12, 45),
        reason=BreakReason.LUNCH,
        duration_seconds=2700,
    )
    values = dict(
        session_id="s1",
        user_id="u1",
        work_date=date(2024, 3, 6),
        start_time=datetime(2024, 3, 6, 9, 0),
        end_time=datetime(2024, 3, 6, 17, 30),
        work_location=WorkLocation.OFFICE,
        status=SessionStatus.COMPLETED,
        break_intervals=(lunch,),
        total_break_seconds=2700,
    )
    values.update(overrides)
    return WorkSession(**values)


def test_worked_hours_subtracts_breaks_and_rounds():
    assert worked_hours(_completed_session()) == 7.75
    # 18 seconds = 0.005h, rounds half-up
    short = _completed_session(end_time=datetime(2024, 3, 6, 9, 0, 18), break_intervals=(), total_break_seconds=0)
    assert worked_hours(short) == 0.01


def test_worked_hours_is_never_negative():
    s = _completed_session(end_time=datetime(2024, 3, 6, 9, 10), total_break_seconds=3600)
    assert worked_hours(s) == 0.0


def test_ensure_summary_keeps_existing_record():
    repo = InMemoryAttendance()
    reconciler = AttendanceReconciler(repo)
    first = _completed_session(status=SessionStatus.ACTIVE, end_time=None)
    later = replace(first, session_id="s2", start_time=datetime(2024, 3, 6, 14, 0))

    asyncio.run(reconciler.ensure_summary(first))
    asyncio.run(reconciler.ensure_summary(later))

    assert len(repo.by_id) == 1
    summary = repo.by_id["a1"]
    assert summary.status == AttendanceStatus.PRESENT
    assert summary.clock_in == datetime(2024, 3, 6, 9, 0)
    assert summary.total_hours == 0.0


def test_reconcile_updates_existing_summary():
    repo = InMemoryAttendance()
    reconciler = AttendanceReconciler(repo)
    session = _completed_session()
    asyncio.run(reconciler.ensure_summary(session))

    summary = asyncio.run(reconciler.reconcile(session))

    assert summary.total_hours == 7.75
    assert summary.clock_out == datetime(2024, 3, 6, 17, 30)
    assert summary.breaks == session.break_intervals
    attendance_id, fields = repo.updates[-1]
    assert attendance_id == "a1"
    assert fields["clockOut"] == "2024-03-06T17:30:00"
    assert fields["totalHours"] == 7.75
    assert fields["breaks"][0]["durationSeconds"] == 2700


def test_reconcile_creates_missing_summary():
    repo = InMemoryAttendance()
    summary = asyncio.run(AttendanceReconciler(repo).reconcile(_completed_session()))

    assert summary.attendance_id == "a1"
    assert summary.status == AttendanceStatus.PRESENT
    assert summary.total_hours == 7.75


def test_reconcile_store_failure_is_reported_as_reconciliation_failed():
    repo = InMemoryAttendance()
    repo.down = True

    with pytest.raises(ReconciliationFailed) as excinfo:
        asyncio.run(AttendanceReconciler(repo).reconcile(_completed_session()))
    assert excinfo.value.retryable


def test_reconcile_lost_update_fails():
    repo = InMemoryAttendance()
    repo.lose_updates = True

    with pytest.raises(ReconciliationFailed):
        asyncio.run(AttendanceReconciler(repo).reconcile(_completed_session()))
