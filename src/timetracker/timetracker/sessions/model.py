from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Mapping, Optional

from ..common.datetime_utils import from_iso, to_iso, whole_seconds_between
from ..core.enums import BreakReason, SessionStatus, WorkLocation


@dataclass(frozen=True)
class BreakInterval:
    """A sub-period of a session during which work time does not accrue."""

    start_time: datetime
    reason: BreakReason
    end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def close(self, at: datetime) -> "BreakInterval":
        return replace(self, end_time=at, duration_seconds=max(whole_seconds_between(self.start_time, at), 0))

    def to_document(self) -> dict[str, Any]:
        return {
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
            "reason": self.reason.value,
            "durationSeconds": self.duration_seconds,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "BreakInterval":
        duration = doc.get("durationSeconds")
        return cls(
            start_time=from_iso(doc["startTime"]),
            end_time=from_iso(doc.get("endTime")),
            reason=BreakReason(doc.get("reason") or BreakReason.OTHER.value),
            duration_seconds=int(duration) if duration is not None else None,
        )


@dataclass(frozen=True)
class WorkSession:
    """Domain entity: one tracked work period of a user on a calendar day.

    Instances are immutable; every transition returns a new WorkSession.
    """

    session_id: Optional[str]
    user_id: str
    work_date: date
    start_time: datetime
    work_location: WorkLocation
    status: SessionStatus
    break_intervals: tuple[BreakInterval, ...] = field(default_factory=tuple)
    total_break_seconds: int = 0
    end_time: Optional[datetime] = None

    @property
    def open_break(self) -> Optional[BreakInterval]:
        for interval in self.break_intervals:
            if interval.is_open:
                return interval
        return None

    @property
    def closed_breaks(self) -> tuple[BreakInterval, ...]:
        return tuple(b for b in self.break_intervals if not b.is_open)

    @property
    def lock_key(self) -> str:
        return f"{self.user_id}:{self.work_date.isoformat()}"

    def closed_break_seconds(self) -> int:
        return sum(int(b.duration_seconds or 0) for b in self.closed_breaks)

    def to_document(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "date": self.work_date.isoformat(),
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
            "breakIntervals": [b.to_document() for b in self.break_intervals],
            "totalBreakSeconds": int(self.total_break_seconds),
            "workLocation": self.work_location.value,
            "status": self.status.value,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "WorkSession":
        return cls(
            session_id=doc.get("id"),
            user_id=str(doc["userId"]),
            work_date=date.fromisoformat(doc["date"]),
            start_time=from_iso(doc["startTime"]),
            end_time=from_iso(doc.get("endTime")),
            break_intervals=tuple(BreakInterval.from_document(b) for b in doc.get("breakIntervals") or []),
            total_break_seconds=int(doc.get("totalBreakSeconds") or 0),
            work_location=WorkLocation(doc.get("workLocation") or WorkLocation.OFFICE.value),
            status=SessionStatus(doc.get("status") or SessionStatus.ACTIVE.value),
        )


@dataclass(frozen=True)
class StopResult:
    """Outcome of clocking out.

    ``errors`` holds failures that happened after the session was completed
    locally (store write, reconciliation). They are queued for retry and do not
    undo the transition.
    """

    session: WorkSession
    elapsed_ms: int
    errors: tuple[Exception, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.errors)
