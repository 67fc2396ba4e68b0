from __future__ import annotations

from typing import Any

import structlog

from ..common.datetime_utils import round2, to_iso
from ..core.enums import AttendanceStatus
from ..core.exceptions import ReconciliationFailed, StoreUnavailable
from ..sessions.model import WorkSession
from .model import AttendanceSummary
from .repository import AttendanceRepository

log = structlog.get_logger(__name__)


def worked_hours(session: WorkSession) -> float:
    """(clockOut - clockIn - breaks) in hours, 2 decimals, not below 0."""
    if session.end_time is None:
        return 0.0
    elapsed = (session.end_time - session.start_time).total_seconds() / 3600
    hours = elapsed - int(session.total_break_seconds) / 3600
    return round2(max(hours, 0.0))


class AttendanceReconciler:
    """One-way projection of a session onto the day's attendance summary.

    The summary is updated field by field with last-write-wins semantics; a second
    session on the same day overwrites clockOut/totalHours/breaks instead of adding up.
    """

    def __init__(self, attendance: AttendanceRepository):
        self._attendance = attendance

    @staticmethod
    def _opening_summary(session: WorkSession) -> AttendanceSummary:
        return AttendanceSummary(
            attendance_id=None,
            user_id=session.user_id,
            work_date=session.work_date,
            clock_in=session.start_time,
            status=AttendanceStatus.PRESENT,
            work_location=session.work_location,
            total_hours=0.0,
        )

    async def ensure_summary(self, session: WorkSession) -> None:
        """Create today's 'present' record at clock-in, leaving an existing one untouched."""
        created_id = await self._attendance.create_if_absent(self._opening_summary(session))
        if created_id:
            log.info("attendance_opened", user_id=session.user_id, date=session.work_date.isoformat())

    async def reconcile(self, session: WorkSession) -> AttendanceSummary:
        closed = session.closed_breaks
        fields: dict[str, Any] = {
            "clockOut": to_iso(session.end_time),
            "totalHours": worked_hours(session),
            "breaks": [b.to_document() for b in closed],
        }

        try:
            summary = await self._attendance.get_for_user_and_date(session.user_id, session.work_date)
            if summary is None:
                # Normally created at clock-in; the record may be missing if that write failed.
                log.warning("attendance_missing_on_reconcile", user_id=session.user_id, date=session.work_date.isoformat())
                await self._attendance.create_if_absent(self._opening_summary(session))
                summary = await self._attendance.get_for_user_and_date(session.user_id, session.work_date)
            if summary is None or not summary.attendance_id:
                raise ReconciliationFailed("Attendance record could not be created")

            ok = await self._attendance.update(summary.attendance_id, fields)
        except StoreUnavailable as exc:
            raise ReconciliationFailed(
                "Clocked out, but today's attendance record could not be updated yet"
            ) from exc

        if not ok:
            raise ReconciliationFailed("Attendance record disappeared before it could be updated")

        log.info(
            "attendance_reconciled",
            user_id=session.user_id,
            date=session.work_date.isoformat(),
            total_hours=fields["totalHours"],
            breaks=len(closed),
        )
        return AttendanceSummary(
            attendance_id=summary.attendance_id,
            user_id=summary.user_id,
            work_date=summary.work_date,
            clock_in=summary.clock_in,
            status=summary.status,
            work_location=summary.work_location,
            total_hours=fields["totalHours"],
            breaks=closed,
            clock_out=session.end_time,
        )
