"""Services for the estate kernel (write side)."""

from estate_kernel.services.journal_service import InverseMutator, JournalService
from estate_kernel.services.lock_governor import LockGovernor
from estate_kernel.services.sequence_service import SequenceService

__all__ = [
    "InverseMutator",
    "JournalService",
    "LockGovernor",
    "SequenceService",
]
