"""
Module: estate_kernel.models.closed_period
Responsibility: ORM persistence for period locks per business unit, and the
    history of temporary reopenings.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One ClosedPeriod row per (business_unit_id, year, month).
    - A missing row means the period is open.

Audit relevance:
    Closing emits a ``close`` journal entry (LockGovernor).  Reopenings do
    not journal; each one leaves a PeriodUnlock row instead, and the
    mutation that follows carries its own justification in the journal.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from estate_kernel.db.base import TrackedBase, UUIDString


class ClosedPeriod(TrackedBase):
    """
    Closed accounting month of one business unit.

    Contract:
        ``temporarily_reopened`` flips the lock off without deleting the
        row; closing again flips it back.  ``reopen_expires_at`` bounds a
        reopening in time when set.
    """

    __tablename__ = "closed_periods"

    __table_args__ = (
        UniqueConstraint("business_unit_id", "year", "month", name="uq_closed_period_key"),
        Index("idx_closed_period_unit", "business_unit_id"),
    )

    business_unit_id: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_by_id: Mapped[str] = mapped_column(String(100), nullable=False)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    temporarily_reopened: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reopened_by_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reopen_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    unlocks: Mapped[list["PeriodUnlock"]] = relationship(
        "PeriodUnlock",
        back_populates="closed_period",
        order_by="PeriodUnlock.unlocked_at",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        state = "reopened" if self.temporarily_reopened else "closed"
        return f"<ClosedPeriod {self.business_unit_id} {self.year}-{self.month:02d}: {state}>"


class PeriodUnlock(TrackedBase):
    """One temporary reopening of a closed period."""

    __tablename__ = "period_unlocks"

    closed_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("closed_periods.id", ondelete="CASCADE"),
        nullable=False,
    )
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)

    closed_period: Mapped[ClosedPeriod] = relationship("ClosedPeriod", back_populates="unlocks")
