from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import from_iso, to_iso
from ..core.enums import AttendanceStatus, WorkLocation
from ..sessions.model import BreakInterval


@dataclass(frozen=True)
class AttendanceSummary:
    """Domain entity: the reconciled daily attendance record of a user."""

    attendance_id: Optional[str]
    user_id: str
    work_date: date
    clock_in: datetime
    status: AttendanceStatus
    work_location: WorkLocation
    total_hours: float = 0.0
    breaks: tuple[BreakInterval, ...] = field(default_factory=tuple)
    clock_out: Optional[datetime] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "date": self.work_date.isoformat(),
            "clockIn": to_iso(self.clock_in),
            "clockOut": to_iso(self.clock_out),
            "totalHours": float(self.total_hours),
            "breaks": [b.to_document() for b in self.breaks],
            "status": self.status.value,
            "workLocation": self.work_location.value,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "AttendanceSummary":
        return cls(
            attendance_id=doc.get("id"),
            user_id=str(doc["userId"]),
            work_date=date.fromisoformat(doc["date"]),
            clock_in=from_iso(doc["clockIn"]),
            clock_out=from_iso(doc.get("clockOut")),
            total_hours=float(doc.get("totalHours") or 0.0),
            breaks=tuple(BreakInterval.from_document(b) for b in doc.get("breaks") or []),
            status=AttendanceStatus(doc.get("status") or AttendanceStatus.PRESENT.value),
            work_location=WorkLocation(doc.get("workLocation") or WorkLocation.OFFICE.value),
        )


@dataclass(frozen=True)
class DayStats:
    """Read-model for the manager/admin daily overview."""

    work_date: date
    present: int
    late: int
    absent: int
    average_hours: float


@dataclass(frozen=True)
class HoursOverview:
    week_hours: float
    month_hours: float
    attendance_rate: int
