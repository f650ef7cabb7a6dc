"""
Module: estate_kernel.models.journal
Responsibility: ORM persistence for the append-only audit journal.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only; ORM listeners (db/immutability.py) reject any
      UPDATE or DELETE.
    - seq is unique and monotonically increasing (SequenceService); it is
      the public journal entry id.
    - hash = H(seq | action | table | payload_hash | prev_hash).

Audit relevance:
    JournalEntry IS the audit trail of the import core: imports, manual
    create/update/delete, period closing, validation runs, cancellations
    and restores.  Undo is a new ``restore`` row pointing at the entry it
    reverses, never an edit.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, BigInteger, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from estate_kernel.db.base import Base


class JournalAction(str, Enum):
    """Kinds of journaled mutation."""

    IMPORT = "import"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CLOSE = "close"
    VALIDATE = "validate"
    CANCEL = "cancel"
    RESTORE = "restore"


RESTORABLE_ACTIONS = frozenset({JournalAction.CREATE, JournalAction.UPDATE, JournalAction.DELETE})


class JournalEntryModel(Base):
    """
    One immutable journal entry.

    ``details`` holds business_unit_id, entity_id, changed_field,
    old_value, new_value, justification, source_file and import_file_id.
    ``errors``/``warnings`` hold messages capped by configuration; the
    counts are exact.  ``business_unit_id`` and ``entity_id`` are copied out
    of ``details`` into indexed columns for lookups.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        Index("idx_journal_action", "action"),
        Index("idx_journal_table", "table_name"),
        Index("idx_journal_unit", "business_unit_id"),
        Index("idx_journal_occurred", "occurred_at"),
        Index("idx_journal_restores", "restores_entry_id"),
        Index("idx_journal_entity", "table_name", "entity_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    business_unit_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rows_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    details: Mapped[dict] = mapped_column(JSON, nullable=False)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    restores_entry_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<JournalEntry #{self.seq} {self.action} on {self.table_name}>"
