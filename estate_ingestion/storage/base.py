"""
Record store capability.

Contract:
    The commit engine only talks to a RecordStore: per-table insert,
    update, delete and lookup, constraint pre-check, and an ``atomic()``
    scope for multi-row commits.  Stores raise StorageConstraintError for
    a rejected row and StorageUnavailableError when the backend is gone.
    A store whose ``supports_transactions`` is False cannot roll back
    ``atomic()``; the engine compensates instead.

Architecture: estate_ingestion/storage. No kernel services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ContextManager, Protocol, Sequence, runtime_checkable
from uuid import UUID

from estate_ingestion.domain.types import DomainRecord
from estate_kernel.domain.periods import PeriodKey


@dataclass(frozen=True)
class StoredRecord:
    """Persisted shape of a domain record. ``values`` is JSON-safe."""

    id: UUID
    table: str
    business_unit_id: str
    natural_key: str
    period: PeriodKey | None
    values: dict[str, Any] = field(default_factory=dict)
    import_file_id: UUID | None = None

    @classmethod
    def from_domain(cls, record: DomainRecord, import_file_id: UUID | None = None) -> StoredRecord:
        return cls(
            id=record.id,
            table=record.table,
            business_unit_id=record.business_unit_id,
            natural_key=record.natural_key,
            period=record.period,
            values=record.storage_values(),
            import_file_id=import_file_id,
        )

    @property
    def unique_key(self) -> tuple[str, str, str, int, int]:
        year, month = (self.period.year, self.period.month) if self.period else (0, 0)
        return (self.table, self.business_unit_id, self.natural_key, year, month)

    def rekeyed(
        self, values: dict[str, Any], natural_key: str, period: PeriodKey | None
    ) -> StoredRecord:
        """Same record with new values and the key and period derived from them."""
        return StoredRecord(
            id=self.id,
            table=self.table,
            business_unit_id=self.business_unit_id,
            natural_key=natural_key,
            period=period,
            values=dict(values),
            import_file_id=self.import_file_id,
        )

    def to_snapshot(self) -> dict[str, Any]:
        """JSON form captured as the journal's old/new value."""
        return {
            "id": str(self.id),
            "table": self.table,
            "business_unit_id": self.business_unit_id,
            "natural_key": self.natural_key,
            "period": self.period.code if self.period else None,
            "values": dict(self.values),
            "import_file_id": str(self.import_file_id) if self.import_file_id else None,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> StoredRecord:
        period = None
        if data.get("period"):
            year, month = data["period"].split("-")
            period = PeriodKey(int(year), int(month))
        return cls(
            id=UUID(data["id"]),
            table=data["table"],
            business_unit_id=data["business_unit_id"],
            natural_key=data["natural_key"],
            period=period,
            values=dict(data.get("values") or {}),
            import_file_id=UUID(data["import_file_id"]) if data.get("import_file_id") else None,
        )


@runtime_checkable
class RecordStore(Protocol):
    """Storage capability used by the commit engine."""

    supports_transactions: bool

    def atomic(self) -> ContextManager[Any]:
        """Scope whose writes land together or not at all (when transactional)."""
        ...

    def get(self, table: str, record_id: UUID) -> StoredRecord | None:
        ...

    def list_records(self, table: str, business_unit_id: str | None = None) -> list[StoredRecord]:
        ...

    def exists(self, table: str, business_unit_id: str, natural_key: str) -> bool:
        """True if any period holds a record with this natural key."""
        ...

    def find_conflicts(self, records: Sequence[DomainRecord]) -> dict[UUID, str]:
        """Record id -> reason, for records that would violate uniqueness."""
        ...

    def insert(self, record: StoredRecord, actor_id: str) -> StoredRecord:
        ...

    def update(self, record: StoredRecord, actor_id: str) -> StoredRecord:
        """Replace values, natural key and period of an existing record."""
        ...

    def delete(self, table: str, record_id: UUID) -> StoredRecord:
        ...


def unique_key_of(record: DomainRecord) -> tuple[str, str, str, int, int]:
    year, month = (record.period.year, record.period.month) if record.period else (0, 0)
    return (record.table, record.business_unit_id, record.natural_key, year, month)


def batch_conflicts(
    records: Sequence[DomainRecord],
    stored_keys: set[tuple[str, str, str, int, int]],
) -> dict[UUID, str]:
    """Conflicts against ``stored_keys`` and earlier records of the same batch."""
    conflicts: dict[UUID, str] = {}
    seen: dict[tuple, int] = {}
    for record in records:
        key = unique_key_of(record)
        if key in stored_keys:
            conflicts[record.id] = f"'{record.natural_key}' already exists in {record.table}"
        elif key in seen:
            conflicts[record.id] = (
                f"'{record.natural_key}' duplicates row {seen[key] + 1} of this batch"
            )
        else:
            seen[key] = record.row_index
    return conflicts
