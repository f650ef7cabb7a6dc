"""
Accounting period value objects.

A period is one calendar month; locks are held per (business unit, period).
ZERO I/O.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from estate_kernel.exceptions import InvalidPeriodError

MIN_YEAR = 1900
MAX_YEAR = 2100


class PeriodState(str, Enum):
    """Lock state of a (business unit, year, month) key.

    Transitions: OPEN -> CLOSED -> TEMPORARILY_OPEN -> CLOSED.
    """

    OPEN = "open"
    CLOSED = "closed"
    TEMPORARILY_OPEN = "temporarily_open"

    @property
    def is_writable(self) -> bool:
        return self is not PeriodState.CLOSED


@dataclass(frozen=True, order=True)
class PeriodKey:
    """Calendar month identifying an accounting period."""

    year: int
    month: int

    def __post_init__(self) -> None:
        validate_period(self.year, self.month)

    @classmethod
    def of(cls, value: date) -> PeriodKey:
        return cls(value.year, value.month)

    @property
    def code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def previous(self) -> PeriodKey:
        if self.month == 1:
            return PeriodKey(self.year - 1, 12)
        return PeriodKey(self.year, self.month - 1)

    def next(self) -> PeriodKey:
        if self.month == 12:
            return PeriodKey(self.year + 1, 1)
        return PeriodKey(self.year, self.month + 1)

    def __str__(self) -> str:
        return self.code


def validate_period(year: int, month: int) -> None:
    """Raise InvalidPeriodError unless 1 <= month <= 12 and the year is plausible."""
    if isinstance(year, bool) or isinstance(month, bool):
        raise InvalidPeriodError(year, month)
    if not isinstance(year, int) or not isinstance(month, int):
        raise InvalidPeriodError(year, month)
    if not 1 <= month <= 12 or not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriodError(year, month)


@dataclass(frozen=True)
class ClosingPolicy:
    """
    Period closing rules of a deployment.

    ``auto_close_day`` is the day of month on which the previous month
    closes automatically; it is clamped to the month's length.
    """

    auto_close: bool = True
    auto_close_day: int = 15
    allow_reopen: bool = True
    justification_required: bool = True
    notify: bool = True
    notice_days: int = 3
    default_reopen_hours: int | None = None


@dataclass(frozen=True)
class ClosedPeriodInfo:
    """Read-only view of a period lock."""

    business_unit_id: str
    period: PeriodKey
    state: PeriodState
    closed_at: datetime
    closed_by_id: str
    justification: str | None = None
    reopened_at: datetime | None = None
    reopened_by_id: str | None = None
    reopen_expires_at: datetime | None = None


@dataclass(frozen=True)
class PeriodUnlockInfo:
    """One temporary reopening."""

    business_unit_id: str
    period: PeriodKey
    unlocked_at: datetime
    actor_id: str
    justification: str | None = None
    duration_hours: int | None = None


@dataclass(frozen=True)
class UpcomingClosing:
    """Automatic closing due soon, for notification."""

    business_unit_id: str
    period: PeriodKey
    closes_on: date
    days_remaining: int


def closing_date(period: PeriodKey, day: int) -> date:
    """Date on which ``period`` closes: ``day`` of the following month."""
    following = period.next()
    last_day = calendar.monthrange(following.year, following.month)[1]
    return date(following.year, following.month, min(max(day, 1), last_day))
