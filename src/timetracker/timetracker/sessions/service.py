from __future__ import annotations

import math
import threading
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import timedelta
from typing import AsyncIterator, Callable, Iterable, Optional, Union

import structlog

from ..attendance.reconciler import AttendanceReconciler
from ..common.datetime_utils import Clock, SystemClock, format_hms, millis_between, today_of, whole_seconds_between
from ..common.validators import parse_choice, require_non_empty
from ..core.constants import ATTENDANCE_COLLECTION, DEFAULT_TICK_INTERVAL_SECONDS, SESSIONS_COLLECTION
from ..core.enums import BreakReason, SessionStatus, WorkLocation
from ..core.exceptions import (
    AlreadyActive,
    InvalidTransition,
    NoActiveSession,
    OperationInProgress,
    ReconciliationFailed,
    StoreUnavailable,
)
from .model import BreakInterval, StopResult, WorkSession
from .outbox import PendingWrites
from .repository import SessionRepository
from .ticker import ElapsedCallback, TickScheduler

log = structlog.get_logger(__name__)


class SessionEngine:
    """Use case: clock in, breaks, clock out for one client.

    State machine (Completed is terminal)::

        NotStarted --start_session--> Active
        Active --start_break--> Break --end_break--> Active
        Active|Break --stop_session--> Completed

    Transitions re-read the in-progress session from the store before mutating it.
    ``get_elapsed`` and the tick schedulers only look at the last loaded copy.

    One engine may serve several event loops (one per worker thread), so the
    per-user in-flight set is guarded by a thread lock. Tick schedulers belong to
    the loop that subscribed.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        reconciler: AttendanceReconciler,
        *,
        clock: Optional[Clock] = None,
        pending: Optional[PendingWrites] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL_SECONDS,
    ):
        self._sessions = sessions
        self._reconciler = reconciler
        self._clock = clock or SystemClock()
        self._pending = pending or PendingWrites()
        self._tick_interval = float(tick_interval)
        self._loaded: dict[str, WorkSession] = {}
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()
        self._tickers: dict[str, TickScheduler] = {}

    @property
    def pending(self) -> PendingWrites:
        return self._pending

    @staticmethod
    def _user(user_id: Union[str, int]) -> str:
        return require_non_empty(str(user_id) if user_id is not None else "", "User ID")

    @asynccontextmanager
    async def _transition(self, user_id: str, op: str) -> AsyncIterator[None]:
        with self._in_flight_lock:
            if user_id in self._in_flight:
                raise OperationInProgress("Please wait for the previous action to finish")
            self._in_flight.add(user_id)
        try:
            yield
        except Exception as exc:
            log.warning("session_transition_failed", user_id=user_id, op=op, error=str(exc), error_type=type(exc).__name__)
            raise
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(user_id)

    async def _settle_pending(self, user_id: str) -> None:
        # Queued attendance writes never block a transition.
        if not self._pending.pending_for(user_id, SESSIONS_COLLECTION):
            return
        await self._pending.flush()
        if self._pending.pending_for(user_id, SESSIONS_COLLECTION):
            raise StoreUnavailable("Temporarily unable to record time: earlier changes are still being saved")

    async def _fresh_in_progress(self, user_id: str) -> Optional[WorkSession]:
        cached = self._loaded.get(user_id)
        if cached is not None and cached.session_id and cached.status.in_progress:
            current = await self._sessions.get(cached.session_id)
            if current is not None and current.status.in_progress:
                return current
            if current is not None:
                self._loaded[user_id] = current
        return await self._sessions.find_in_progress(user_id)

    async def _persist(self, session: WorkSession, names: Iterable[str]) -> None:
        doc = session.to_document()
        ok = await self._sessions.save(session, {name: doc[name] for name in names})
        if not ok:
            raise NoActiveSession("Your work session could not be found. Reload and try again")

    def _queue(self, user_id: str, collection: str, description: str, run: Callable) -> None:
        self._pending.add(user_id, collection, description, run)

    async def start_session(
        self,
        user_id: Union[str, int],
        work_location: Union[WorkLocation, str] = WorkLocation.OFFICE,
    ) -> WorkSession:
        user_id = self._user(user_id)
        location = parse_choice(work_location, WorkLocation, "Work location", default=WorkLocation.OFFICE)

        async with self._transition(user_id, "start_session"):
            await self._settle_pending(user_id)
            now = self._clock.now()

            existing = await self._fresh_in_progress(user_id)
            if existing is not None:
                self._loaded[user_id] = existing
                if existing.work_date != now.date():
                    raise AlreadyActive(
                        f"Your timer from {existing.work_date.isoformat()} is still running. Clock out first"
                    )
                raise AlreadyActive("You already have an active timer for today")

            session = await self._sessions.create(
                WorkSession(
                    session_id=None,
                    user_id=user_id,
                    work_date=now.date(),
                    start_time=now,
                    work_location=location,
                    status=SessionStatus.ACTIVE,
                )
            )
            self._loaded[user_id] = session
            log.info("session_started", user_id=user_id, session_id=session.session_id, location=location.value)

            try:
                await self._reconciler.ensure_summary(session)
            except StoreUnavailable:
                self._queue(
                    user_id,
                    ATTENDANCE_COLLECTION,
                    "open attendance record",
                    lambda s=session: self._reconciler.ensure_summary(s),
                )

            self._sync_ticker(user_id)
            return session

    async def start_break(self, user_id: Union[str, int], reason: Union[BreakReason, str] = BreakReason.OTHER) -> WorkSession:
        user_id = self._user(user_id)
        reason = parse_choice(reason, BreakReason, "Break reason", default=BreakReason.OTHER)

        async with self._transition(user_id, "start_break"):
            await self._settle_pending(user_id)
            session = await self._fresh_in_progress(user_id)
            if session is None:
                raise NoActiveSession("Clock in before starting a break")
            self._loaded[user_id] = session
            if session.status != SessionStatus.ACTIVE:
                raise InvalidTransition("You are already on a break")

            interval = BreakInterval(start_time=self._clock.now(), reason=reason)
            updated = replace(
                session,
                status=SessionStatus.BREAK,
                break_intervals=session.break_intervals + (interval,),
            )
            await self._persist(updated, ("breakIntervals", "status"))
            self._loaded[user_id] = updated
            log.info("break_started", user_id=user_id, session_id=updated.session_id, reason=reason.value)
            self._sync_ticker(user_id)
            return updated

    async def end_break(self, user_id: Union[str, int]) -> WorkSession:
        user_id = self._user(user_id)

        async with self._transition(user_id, "end_break"):
            await self._settle_pending(user_id)
            session = await self._fresh_in_progress(user_id)
            if session is None:
                raise NoActiveSession("There is no work session in progress")
            self._loaded[user_id] = session
            open_break = session.open_break
            if session.status != SessionStatus.BREAK or open_break is None:
                raise InvalidTransition("You are not on a break")

            updated = self._close_break(session, open_break)
            updated = replace(updated, status=SessionStatus.ACTIVE)
            await self._persist(updated, ("breakIntervals", "totalBreakSeconds", "status"))
            self._loaded[user_id] = updated
            log.info(
                "break_ended",
                user_id=user_id,
                session_id=updated.session_id,
                total_break_seconds=updated.total_break_seconds,
            )
            self._sync_ticker(user_id)
            return updated

    def _close_break(self, session: WorkSession, open_break: BreakInterval) -> WorkSession:
        closed = open_break.close(self._clock.now())
        intervals = tuple(closed if b is open_break else b for b in session.break_intervals)
        updated = replace(session, break_intervals=intervals)
        # Recomputed from the closed intervals, never carried over from a read.
        return replace(updated, total_break_seconds=updated.closed_break_seconds())

    async def stop_session(self, user_id: Union[str, int]) -> StopResult:
        user_id = self._user(user_id)

        async with self._transition(user_id, "stop_session"):
            await self._settle_pending(user_id)
            session = await self._fresh_in_progress(user_id)
            if session is None:
                raise NoActiveSession("There is no active work session to stop")

            if session.open_break is not None:
                session = self._close_break(session, session.open_break)
            now = self._clock.now()
            completed = replace(session, end_time=now, status=SessionStatus.COMPLETED)
            elapsed_ms = max(millis_between(completed.start_time, now) - completed.total_break_seconds * 1000, 0)

            # The local transition stands whatever happens to the writes below.
            self._loaded[user_id] = completed
            self._sync_ticker(user_id)
            errors: list[Exception] = []

            names = ("endTime", "status", "breakIntervals", "totalBreakSeconds")
            try:
                await self._persist(completed, names)
            except StoreUnavailable as exc:
                errors.append(exc)
                self._queue(
                    user_id, SESSIONS_COLLECTION, "save clock-out", lambda s=completed: self._persist(s, names)
                )

            try:
                await self._reconciler.reconcile(completed)
            except ReconciliationFailed as exc:
                errors.append(exc)
                self._queue(
                    user_id,
                    ATTENDANCE_COLLECTION,
                    "reconcile attendance",
                    lambda s=completed: self._reconciler.reconcile(s),
                )

            log.info(
                "session_stopped",
                user_id=user_id,
                session_id=completed.session_id,
                elapsed_ms=elapsed_ms,
                total_break_seconds=completed.total_break_seconds,
                partial=bool(errors),
            )
            return StopResult(session=completed, elapsed_ms=elapsed_ms, errors=tuple(errors))

    async def load_today(self, user_id: Union[str, int]) -> Optional[WorkSession]:
        """Load the session a view should show: the one in progress, else today's latest."""
        user_id = self._user(user_id)
        if len(self._pending):
            await self._pending.flush()
        if self._pending.pending_for(user_id, SESSIONS_COLLECTION):
            # Local state is ahead of the store until the queued writes land.
            return self._loaded.get(user_id)

        current = await self._fresh_in_progress(user_id)
        if current is None:
            todays = await self._sessions.list_for_user_and_date(user_id, today_of(self._clock))
            current = todays[-1] if todays else None

        if current is None:
            self._loaded.pop(user_id, None)
        else:
            self._loaded[user_id] = current
        self._sync_ticker(user_id)
        return current

    async def retry_pending(self) -> int:
        return await self._pending.flush()

    def loaded(self, user_id: Union[str, int]) -> Optional[WorkSession]:
        return self._loaded.get(str(user_id))

    def current_status(self, user_id: Union[str, int]) -> SessionStatus:
        session = self._loaded.get(str(user_id))
        return session.status if session is not None else SessionStatus.NOT_STARTED

    def get_elapsed(self, user_id: Union[str, int]) -> int:
        """Worked seconds for display; frozen on breaks and after clock-out."""
        session = self._loaded.get(str(user_id))
        if session is None:
            return 0

        if session.status == SessionStatus.COMPLETED and session.end_time is not None:
            now = session.end_time
        else:
            now = self._clock.now()

        span = now - session.start_time
        open_break = session.open_break
        if session.status == SessionStatus.BREAK and open_break is not None:
            # Subtracting the growing open break keeps the value still while on break.
            span -= max(now - open_break.start_time, timedelta(0))
        elapsed = math.floor(span.total_seconds()) - int(session.total_break_seconds)
        return max(elapsed, 0)

    def current_break_seconds(self, user_id: Union[str, int]) -> int:
        session = self._loaded.get(str(user_id))
        if session is None or session.status != SessionStatus.BREAK or session.open_break is None:
            return 0
        return max(whole_seconds_between(session.open_break.start_time, self._clock.now()), 0)

    def display_elapsed(self, user_id: Union[str, int]) -> str:
        return format_hms(self.get_elapsed(user_id))

    def subscribe_elapsed(self, user_id: Union[str, int], callback: ElapsedCallback) -> Callable[[], None]:
        """Watch the display string of a user's elapsed time.

        Must be called from inside the running event loop. All subscribers of a
        user share one TickScheduler; it ticks only while the session is in
        progress. After the returned ``unsubscribe`` returns, ``callback`` is never
        called again.
        """
        user_id = self._user(user_id)
        ticker = self._tickers.get(user_id)
        if ticker is None:
            ticker = TickScheduler(
                lambda: self.display_elapsed(user_id),
                interval=self._tick_interval,
                name=f"elapsed:{user_id}",
            )
            self._tickers[user_id] = ticker

        unsubscribe_one = ticker.subscribe(callback)
        if self.current_status(user_id).in_progress:
            ticker.start()
        else:
            callback(self.display_elapsed(user_id))

        def unsubscribe() -> None:
            unsubscribe_one()
            if not ticker.has_subscribers and self._tickers.get(user_id) is ticker:
                del self._tickers[user_id]

        return unsubscribe

    def _sync_ticker(self, user_id: str) -> None:
        ticker = self._tickers.get(user_id)
        if ticker is None:
            return
        if self.current_status(user_id).in_progress:
            ticker.start()
        else:
            ticker.stop()
            ticker.publish()

    def close(self) -> None:
        """Cancel every tick scheduler (application/view teardown)."""
        for ticker in self._tickers.values():
            ticker.close()
        self._tickers.clear()
