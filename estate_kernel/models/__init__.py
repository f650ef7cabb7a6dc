"""ORM models owned by the kernel: closed periods and journal entries."""

from estate_kernel.models.closed_period import ClosedPeriod, PeriodUnlock
from estate_kernel.models.journal import JournalAction, JournalEntryModel

__all__ = [
    "ClosedPeriod",
    "JournalAction",
    "JournalEntryModel",
    "PeriodUnlock",
]
