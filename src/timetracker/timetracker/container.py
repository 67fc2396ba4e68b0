from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.document_attendance_repository import DocumentAttendanceRepository
from .attendance.reconciler import AttendanceReconciler
from .attendance.service import AttendanceService
from .common.datetime_utils import Clock, SystemClock
from .core.constants import (
    DEFAULT_STORE_READ_ATTEMPTS,
    DEFAULT_STORE_RETRY_DELAY_SECONDS,
    DEFAULT_STORE_TIMEOUT_SECONDS,
    DEFAULT_TICK_INTERVAL_SECONDS,
)
from .database.connection import DBConfig, DatabaseConnection
from .sessions.document_session_repository import DocumentSessionRepository
from .sessions.outbox import PendingWrites
from .sessions.service import SessionEngine
from .store.document_store import DocumentStore
from .store.mysql_document_store import MySQLDocumentStore
from .store.resilient import ResilientDocumentStore


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]
    store: DocumentStore

    sessions_repo: DocumentSessionRepository
    attendance_repo: DocumentAttendanceRepository

    reconciler: AttendanceReconciler
    session_engine: SessionEngine
    attendance_service: AttendanceService


def build_container(
    *,
    db_config: Optional[dict] = None,
    store: Optional[DocumentStore] = None,
    clock: Optional[Clock] = None,
    store_timeout: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    read_attempts: int = DEFAULT_STORE_READ_ATTEMPTS,
    retry_delay: float = DEFAULT_STORE_RETRY_DELAY_SECONDS,
    tick_interval: float = DEFAULT_TICK_INTERVAL_SECONDS,
) -> Container:
    """Wire the object graph.

    ``store`` replaces the MySQL-backed store (tests, other backends); it still
    gets the timeout/retry wrapper.
    """
    conn = None
    if store is None:
        if db_config is None:
            raise ValueError("db_config is required when no store is given")
        conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
        store = MySQLDocumentStore(conn)

    resilient = ResilientDocumentStore(
        store,
        timeout=store_timeout,
        read_attempts=read_attempts,
        retry_delay=retry_delay,
    )
    clock = clock or SystemClock()

    sessions_repo = DocumentSessionRepository(resilient)
    attendance_repo = DocumentAttendanceRepository(resilient)
    reconciler = AttendanceReconciler(attendance_repo)
    session_engine = SessionEngine(
        sessions_repo,
        reconciler,
        clock=clock,
        pending=PendingWrites(),
        tick_interval=tick_interval,
    )
    attendance_service = AttendanceService(attendance_repo, clock=clock)

    return Container(
        conn=conn,
        store=resilient,
        sessions_repo=sessions_repo,
        attendance_repo=attendance_repo,
        reconciler=reconciler,
        session_engine=session_engine,
        attendance_service=attendance_service,
    )
