from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles used for read access to other users' records."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class SessionStatus(str, Enum):
    """Work session states.

    NOT_STARTED is only reported for a user with no session loaded; it is never persisted.
    """

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    BREAK = "break"
    COMPLETED = "completed"

    @property
    def in_progress(self) -> bool:
        return self in (SessionStatus.ACTIVE, SessionStatus.BREAK)


class BreakReason(str, Enum):
    LUNCH = "lunch"
    COFFEE = "coffee"
    PERSONAL = "personal"
    MEETING = "meeting"
    RESTROOM = "restroom"
    OTHER = "other"


class WorkLocation(str, Enum):
    OFFICE = "office"
    HOME = "home"
    CLIENT_SITE = "client-site"
    CO_WORKING = "co-working"
    OTHER = "other"


class AttendanceStatus(str, Enum):
    """Daily attendance classification stored on the summary document."""

    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    HALF_DAY = "half-day"
