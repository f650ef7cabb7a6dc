"""
SequenceService -- gap-free journal ids from locked counter rows.

Responsibility:
    Allocates strictly increasing integers per named counter.  The counter
    row is read ``FOR UPDATE`` (a no-op on SQLite, where the database lock
    serializes writers) and incremented in the caller's transaction, so a
    rolled-back import gives its ids back.

Failure modes:
    - A concurrent first use of the same counter collides on the unique
      name; the loser rolls back its savepoint and increments the winner's
      row.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from estate_kernel.db.base import Base
from estate_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Last value handed out for one named sequence."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """Transactional counters. Never calls ``session.commit()``."""

    JOURNAL_ENTRY = "journal_entry"

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str) -> SequenceCounter | None:
        """Insert the counter at 0; None if another transaction just did."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=sequence_name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Return the next value (starting at 1) of ``sequence_name``."""
        counter = self._locked(sequence_name)
        if counter is None:
            counter = self._create(sequence_name) or self._locked(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None if the counter was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
