"""
SQLAlchemy-backed record store.

Every write runs inside its own SAVEPOINT so a constraint failure only
rolls back that row.  ``atomic()`` opens the outer SAVEPOINT of a batch.
IntegrityError maps to StorageConstraintError; OperationalError (lost
connection, locked database) maps to StorageUnavailableError.  Flushes,
never commits.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from estate_ingestion.domain.types import DomainRecord
from estate_ingestion.models.records import PropertyRecordModel
from estate_ingestion.storage.base import StoredRecord, batch_conflicts
from estate_kernel.domain.periods import PeriodKey
from estate_kernel.exceptions import (
    RecordNotFoundError,
    StorageConstraintError,
    StorageUnavailableError,
)
from estate_kernel.logging_config import get_logger

logger = get_logger("ingestion.sql_store")

_KEY_CHUNK = 500


def _to_stored(model: PropertyRecordModel) -> StoredRecord:
    period = PeriodKey(model.period_year, model.period_month) if model.period_year else None
    return StoredRecord(
        id=model.id,
        table=model.table_name,
        business_unit_id=model.business_unit_id,
        natural_key=model.natural_key,
        period=period,
        values=dict(model.values or {}),
        import_file_id=model.import_file_id,
    )


class SqlRecordStore:
    """RecordStore over the ``property_records`` table."""

    supports_transactions = True

    def __init__(self, session: Session):
        self._session = session

    @contextmanager
    def _guard(self, table: str) -> Iterator[None]:
        try:
            with self._session.begin_nested():
                yield
        except IntegrityError as exc:
            logger.warning(
                "storage_constraint_violation",
                extra={"table": table, "reason": str(exc.orig)},
            )
            raise StorageConstraintError(table, str(exc.orig)) from exc
        except OperationalError as exc:
            logger.error("storage_unavailable", extra={"table": table, "reason": str(exc.orig)})
            raise StorageUnavailableError(str(exc.orig)) from exc

    @contextmanager
    def atomic(self) -> Iterator[None]:
        try:
            with self._session.begin_nested():
                yield
        except OperationalError as exc:
            raise StorageUnavailableError(str(exc.orig)) from exc

    def _get_model(self, table: str, record_id: UUID) -> PropertyRecordModel | None:
        return self._session.execute(
            select(PropertyRecordModel).where(
                PropertyRecordModel.id == record_id,
                PropertyRecordModel.table_name == table,
            )
        ).scalar_one_or_none()

    def get(self, table: str, record_id: UUID) -> StoredRecord | None:
        model = self._get_model(table, record_id)
        return _to_stored(model) if model else None

    def list_records(self, table: str, business_unit_id: str | None = None) -> list[StoredRecord]:
        stmt = select(PropertyRecordModel).where(PropertyRecordModel.table_name == table)
        if business_unit_id is not None:
            stmt = stmt.where(PropertyRecordModel.business_unit_id == business_unit_id)
        stmt = stmt.order_by(
            PropertyRecordModel.period_year,
            PropertyRecordModel.period_month,
            PropertyRecordModel.natural_key,
        )
        return [_to_stored(m) for m in self._session.execute(stmt).scalars()]

    def exists(self, table: str, business_unit_id: str, natural_key: str) -> bool:
        found = self._session.execute(
            select(PropertyRecordModel.id).where(
                PropertyRecordModel.table_name == table,
                PropertyRecordModel.business_unit_id == business_unit_id,
                PropertyRecordModel.natural_key == natural_key,
            ).limit(1)
        ).first()
        return found is not None

    def find_conflicts(self, records: Sequence[DomainRecord]) -> dict[UUID, str]:
        stored: set[tuple[str, str, str, int, int]] = set()
        groups: dict[tuple[str, str], list[str]] = {}
        for record in records:
            groups.setdefault((record.table, record.business_unit_id), []).append(record.natural_key)
        for (table, unit), keys in groups.items():
            unique_keys = sorted(set(keys))
            for start in range(0, len(unique_keys), _KEY_CHUNK):
                chunk = unique_keys[start:start + _KEY_CHUNK]
                rows = self._session.execute(
                    select(
                        PropertyRecordModel.natural_key,
                        PropertyRecordModel.period_year,
                        PropertyRecordModel.period_month,
                    ).where(
                        PropertyRecordModel.table_name == table,
                        PropertyRecordModel.business_unit_id == unit,
                        PropertyRecordModel.natural_key.in_(chunk),
                    )
                )
                stored.update((table, unit, nk, y, m) for nk, y, m in rows)
        return batch_conflicts(records, stored)

    def insert(self, record: StoredRecord, actor_id: str) -> StoredRecord:
        _, _, _, year, month = record.unique_key
        model = PropertyRecordModel(
            id=record.id,
            table_name=record.table,
            business_unit_id=record.business_unit_id,
            natural_key=record.natural_key,
            period_year=year,
            period_month=month,
            import_file_id=record.import_file_id,
            values=dict(record.values),
            created_by_id=actor_id,
        )
        with self._guard(record.table):
            self._session.add(model)
            self._session.flush()
        return _to_stored(model)

    def update(self, record: StoredRecord, actor_id: str) -> StoredRecord:
        model = self._get_model(record.table, record.id)
        if model is None:
            raise RecordNotFoundError(record.table, str(record.id))
        _, _, _, year, month = record.unique_key
        with self._guard(record.table):
            model.values = dict(record.values)
            model.natural_key = record.natural_key
            model.period_year = year
            model.period_month = month
            model.updated_by_id = actor_id
            self._session.flush()
        return _to_stored(model)

    def delete(self, table: str, record_id: UUID) -> StoredRecord:
        model = self._get_model(table, record_id)
        if model is None:
            raise RecordNotFoundError(table, str(record_id))
        snapshot = _to_stored(model)
        with self._guard(table):
            self._session.delete(model)
            self._session.flush()
        return snapshot
