"""
In-memory record store.

Non-transactional: ``atomic()`` cannot roll anything back, so the commit
engine compensates applied rows itself on a fatal failure.  Used by tests
and by dry runs of the command-line runner.
"""

from __future__ import annotations

from contextlib import nullcontext
from typing import Any, ContextManager, Sequence
from uuid import UUID

from estate_ingestion.domain.types import DomainRecord
from estate_ingestion.storage.base import StoredRecord, batch_conflicts
from estate_kernel.exceptions import RecordNotFoundError, StorageConstraintError


class MemoryRecordStore:
    """RecordStore backed by dicts; enforces the same uniqueness key as SQL."""

    supports_transactions = False

    def __init__(self) -> None:
        self._records: dict[tuple[str, UUID], StoredRecord] = {}
        self._keys: dict[tuple[str, str, str, int, int], UUID] = {}

    def atomic(self) -> ContextManager[Any]:
        return nullcontext()

    def get(self, table: str, record_id: UUID) -> StoredRecord | None:
        return self._records.get((table, record_id))

    def list_records(self, table: str, business_unit_id: str | None = None) -> list[StoredRecord]:
        return [
            r for (t, _), r in self._records.items()
            if t == table and (business_unit_id is None or r.business_unit_id == business_unit_id)
        ]

    def exists(self, table: str, business_unit_id: str, natural_key: str) -> bool:
        return any(
            key[0] == table and key[1] == business_unit_id and key[2] == natural_key
            for key in self._keys
        )

    def find_conflicts(self, records: Sequence[DomainRecord]) -> dict[UUID, str]:
        return batch_conflicts(records, set(self._keys))

    def insert(self, record: StoredRecord, actor_id: str) -> StoredRecord:
        if (record.table, record.id) in self._records:
            raise StorageConstraintError(record.table, f"duplicate id {record.id}")
        if record.unique_key in self._keys:
            raise StorageConstraintError(
                record.table, f"duplicate key '{record.natural_key}'"
            )
        self._records[(record.table, record.id)] = record
        self._keys[record.unique_key] = record.id
        return record

    def update(self, record: StoredRecord, actor_id: str) -> StoredRecord:
        current = self.get(record.table, record.id)
        if current is None:
            raise RecordNotFoundError(record.table, str(record.id))
        holder = self._keys.get(record.unique_key)
        if holder is not None and holder != record.id:
            raise StorageConstraintError(
                record.table, f"duplicate key '{record.natural_key}'"
            )
        self._keys.pop(current.unique_key, None)
        self._keys[record.unique_key] = record.id
        self._records[(record.table, record.id)] = record
        return record

    def delete(self, table: str, record_id: UUID) -> StoredRecord:
        current = self._records.pop((table, record_id), None)
        if current is None:
            raise RecordNotFoundError(table, str(record_id))
        self._keys.pop(current.unique_key, None)
        return current

    def __len__(self) -> int:
        return len(self._records)
