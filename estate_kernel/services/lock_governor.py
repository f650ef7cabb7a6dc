"""
LockGovernor -- period closing per business unit.

Responsibility:
    Owns the lock state of each (business unit, year, month):
    OPEN -> CLOSED -> TEMPORARILY_OPEN -> CLOSED.  Every mutation path
    (import commit, manual create/update/delete, restore) asks
    ``is_writable`` / ``assert_writable`` before touching a record.

Architecture position:
    Kernel > Services.  Flush-only; never commits.

Invariants enforced:
    - A closed, non-reopened period accepts no mutation.
    - Closing writes a ``close`` journal entry; reopening writes an unlock
      history row and no journal entry.
    - A reopening with a duration reads as closed once it expires.

Failure modes:
    - InvalidPeriodError, AlreadyClosedError, PeriodNotClosedError,
      JustificationRequiredError, ReopenNotAllowedError, PeriodLockedError.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from estate_kernel.domain.clock import Clock, SystemClock, ensure_utc
from estate_kernel.domain.journal import JournalDetails
from estate_kernel.domain.periods import (
    ClosedPeriodInfo,
    ClosingPolicy,
    PeriodKey,
    PeriodState,
    PeriodUnlockInfo,
    UpcomingClosing,
    closing_date,
)
from estate_kernel.exceptions import (
    AlreadyClosedError,
    JustificationRequiredError,
    PeriodLockedError,
    PeriodNotClosedError,
    ReopenNotAllowedError,
)
from estate_kernel.logging_config import get_logger
from estate_kernel.models.closed_period import ClosedPeriod, PeriodUnlock
from estate_kernel.models.journal import JournalAction
from estate_kernel.services.journal_service import JournalService

logger = get_logger("services.lock_governor")

AUTO_CLOSE_ACTOR = "system:auto-close"


class LockGovernor:
    """
    Period lock service.

    Contract:
        Methods take (business_unit_id, year, month); invalid months or
        years raise InvalidPeriodError before any query.  Returns frozen
        DTOs, never ORM rows.
    """

    def __init__(
        self,
        session: Session,
        journal: JournalService,
        clock: Clock | None = None,
        policy: ClosingPolicy | None = None,
    ):
        self._session = session
        self._journal = journal
        self._clock = clock or SystemClock()
        self._policy = policy or ClosingPolicy()

    @property
    def policy(self) -> ClosingPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _get_row(self, business_unit_id: str, period: PeriodKey, lock: bool = False) -> ClosedPeriod | None:
        stmt = select(ClosedPeriod).where(
            ClosedPeriod.business_unit_id == business_unit_id,
            ClosedPeriod.year == period.year,
            ClosedPeriod.month == period.month,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(stmt).scalar_one_or_none()

    def _state_of(self, row: ClosedPeriod | None) -> PeriodState:
        if row is None:
            return PeriodState.OPEN
        if not row.temporarily_reopened:
            return PeriodState.CLOSED
        expires_at = ensure_utc(row.reopen_expires_at)
        if expires_at is not None and self._clock.now() >= expires_at:
            return PeriodState.CLOSED
        return PeriodState.TEMPORARILY_OPEN

    def period_state(self, business_unit_id: str, year: int, month: int) -> PeriodState:
        period = PeriodKey(year, month)
        return self._state_of(self._get_row(business_unit_id, period))

    def is_writable(self, business_unit_id: str, year: int, month: int) -> bool:
        """True iff the period is open or temporarily reopened (not expired)."""
        return self.period_state(business_unit_id, year, month).is_writable

    def assert_writable(self, business_unit_id: str, year: int, month: int) -> None:
        """Raise PeriodLockedError if the period is closed."""
        if not self.is_writable(business_unit_id, year, month):
            logger.warning(
                "period_locked_rejection",
                extra={
                    "business_unit_id": business_unit_id,
                    "period": f"{year:04d}-{month:02d}",
                },
            )
            raise PeriodLockedError(business_unit_id, year, month)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def close_period(
        self,
        business_unit_id: str,
        year: int,
        month: int,
        justification: str | None,
        actor_id: str,
    ) -> ClosedPeriodInfo:
        """
        Close a period (OPEN or TEMPORARILY_OPEN -> CLOSED).

        Appends a ``close`` journal entry.
        """
        period = PeriodKey(year, month)
        if self._policy.justification_required and not (justification and justification.strip()):
            raise JustificationRequiredError("close a period")

        row = self._get_row(business_unit_id, period, lock=True)
        if self._state_of(row) is PeriodState.CLOSED:
            raise AlreadyClosedError(business_unit_id, year, month)

        now = self._clock.now()
        if row is None:
            row = ClosedPeriod(
                business_unit_id=business_unit_id,
                year=year,
                month=month,
                closed_at=now,
                closed_by_id=actor_id,
                justification=justification,
                created_by_id=actor_id,
            )
            self._session.add(row)
        else:
            row.closed_at = now
            row.closed_by_id = actor_id
            row.justification = justification
            row.temporarily_reopened = False
            row.reopen_expires_at = None
            row.updated_by_id = actor_id
        self._session.flush()

        self._journal.record(
            JournalAction.CLOSE,
            ClosedPeriod.__tablename__,
            actor_id=actor_id,
            rows_affected=1,
            details=JournalDetails(
                business_unit_id=business_unit_id,
                entity_id=str(row.id),
                justification=justification,
                extra={"year": year, "month": month},
            ),
        )
        logger.info(
            "period_closed",
            extra={
                "business_unit_id": business_unit_id,
                "period": period.code,
                "actor_id": actor_id,
            },
        )
        return self._to_info(row)

    def reopen_temporarily(
        self,
        business_unit_id: str,
        year: int,
        month: int,
        actor_id: str,
        justification: str | None = None,
        duration_hours: int | None = None,
    ) -> ClosedPeriodInfo:
        """
        Reopen a closed period (CLOSED -> TEMPORARILY_OPEN).

        No journal entry; an unlock history row records who reopened and why.
        """
        period = PeriodKey(year, month)
        if not self._policy.allow_reopen:
            raise ReopenNotAllowedError(business_unit_id, year, month)

        row = self._get_row(business_unit_id, period, lock=True)
        if row is None or self._state_of(row) is not PeriodState.CLOSED:
            raise PeriodNotClosedError(business_unit_id, year, month)

        if duration_hours is None:
            duration_hours = self._policy.default_reopen_hours
        now = self._clock.now()
        row.temporarily_reopened = True
        row.reopened_at = now
        row.reopened_by_id = actor_id
        row.reopen_expires_at = now + timedelta(hours=duration_hours) if duration_hours else None
        row.updated_by_id = actor_id
        row.unlocks.append(
            PeriodUnlock(
                unlocked_at=now,
                actor_id=actor_id,
                justification=justification,
                duration_hours=duration_hours,
                created_by_id=actor_id,
            )
        )
        self._session.flush()

        logger.info(
            "period_reopened",
            extra={
                "business_unit_id": business_unit_id,
                "period": period.code,
                "actor_id": actor_id,
                "duration_hours": duration_hours,
            },
        )
        return self._to_info(row)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_closed_periods(self, business_unit_id: str | None = None) -> list[ClosedPeriodInfo]:
        """Every lock row (closed or temporarily reopened), oldest period first."""
        stmt = select(ClosedPeriod).order_by(
            ClosedPeriod.business_unit_id, ClosedPeriod.year, ClosedPeriod.month
        )
        if business_unit_id is not None:
            stmt = stmt.where(ClosedPeriod.business_unit_id == business_unit_id)
        return [self._to_info(row) for row in self._session.execute(stmt).scalars()]

    def unlock_history(self, business_unit_id: str, year: int, month: int) -> list[PeriodUnlockInfo]:
        period = PeriodKey(year, month)
        row = self._get_row(business_unit_id, period)
        if row is None:
            return []
        return [
            PeriodUnlockInfo(
                business_unit_id=business_unit_id,
                period=period,
                unlocked_at=ensure_utc(u.unlocked_at),
                actor_id=u.actor_id,
                justification=u.justification,
                duration_hours=u.duration_hours,
            )
            for u in row.unlocks
        ]

    # ------------------------------------------------------------------
    # Automatic closing
    # ------------------------------------------------------------------

    def close_elapsed_periods(
        self,
        business_unit_id: str,
        actor_id: str = AUTO_CLOSE_ACTOR,
    ) -> list[ClosedPeriodInfo]:
        """
        Close the previous month once its closing day is reached.

        Periods that were ever closed (including temporarily reopened ones)
        are left alone.
        """
        if not self._policy.auto_close:
            return []
        today = self._clock.today()
        period = PeriodKey.of(today).previous()
        if today < closing_date(period, self._policy.auto_close_day):
            return []
        if self._get_row(business_unit_id, period) is not None:
            return []
        info = self.close_period(
            business_unit_id,
            period.year,
            period.month,
            justification=f"Automatic closing on {today.isoformat()}",
            actor_id=actor_id,
        )
        logger.info(
            "period_auto_closed",
            extra={"business_unit_id": business_unit_id, "period": period.code},
        )
        return [info]

    def upcoming_closings(self, business_unit_id: str) -> list[UpcomingClosing]:
        """Automatic closings due within ``notice_days`` whose period is still open."""
        if not (self._policy.auto_close and self._policy.notify):
            return []
        today = self._clock.today()
        current = PeriodKey.of(today)
        result: list[UpcomingClosing] = []
        for period in (current.previous(), current):
            closes_on = closing_date(period, self._policy.auto_close_day)
            days_remaining = (closes_on - today).days
            if not 0 <= days_remaining <= self._policy.notice_days:
                continue
            if self._get_row(business_unit_id, period) is not None:
                continue
            result.append(
                UpcomingClosing(
                    business_unit_id=business_unit_id,
                    period=period,
                    closes_on=closes_on,
                    days_remaining=days_remaining,
                )
            )
        return result

    def _to_info(self, row: ClosedPeriod) -> ClosedPeriodInfo:
        return ClosedPeriodInfo(
            business_unit_id=row.business_unit_id,
            period=PeriodKey(row.year, row.month),
            state=self._state_of(row),
            closed_at=ensure_utc(row.closed_at),
            closed_by_id=row.closed_by_id,
            justification=row.justification,
            reopened_at=ensure_utc(row.reopened_at),
            reopened_by_id=row.reopened_by_id,
            reopen_expires_at=ensure_utc(row.reopen_expires_at),
        )
