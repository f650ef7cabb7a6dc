"""
Journal DTOs: immutable views of journal entries, query filters and
aggregate statistics.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from estate_kernel.models.journal import JournalAction


@dataclass(frozen=True)
class JournalDetails:
    """Context of a journaled mutation. Values are JSON-safe."""

    business_unit_id: str | None = None
    entity_id: str | None = None
    changed_field: str | None = None
    old_value: Any = None
    new_value: Any = None
    justification: str | None = None
    source_file: str | None = None
    import_file_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "business_unit_id": self.business_unit_id,
            "entity_id": self.entity_id,
            "changed_field": self.changed_field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "justification": self.justification,
            "source_file": self.source_file,
            "import_file_id": self.import_file_id,
        }
        data = {k: v for k, v in data.items() if v is not None}
        if self.extra:
            data["extra"] = dict(self.extra)
        return data

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> JournalDetails:
        data = dict(data or {})
        extra = data.pop("extra", None) or {}
        known = {k: data.get(k) for k in (
            "business_unit_id", "entity_id", "changed_field", "old_value",
            "new_value", "justification", "source_file", "import_file_id",
        )}
        return cls(**known, extra=extra)


@dataclass(frozen=True)
class JournalEntry:
    """Immutable snapshot of one journal entry; ``id`` is the monotonic seq."""

    id: int
    timestamp: datetime
    actor_id: str
    action: JournalAction
    table: str
    rows_affected: int
    details: JournalDetails
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    error_count: int = 0
    warning_count: int = 0
    quality_score: float | None = None
    restores_entry_id: int | None = None

    @property
    def business_unit_id(self) -> str | None:
        return self.details.business_unit_id

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0


@dataclass(frozen=True)
class JournalFilter:
    """
    Journal query filter. Every field is optional; set fields are ANDed.

    ``search`` matches case-insensitively against the table, the action
    and the serialized details.
    """

    business_unit_id: str | None = None
    actor_id: str | None = None
    actions: frozenset[JournalAction] | None = None
    tables: frozenset[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    with_errors: bool | None = None
    search: str | None = None


@dataclass(frozen=True)
class JournalStats:
    """Aggregates over a filtered set of journal entries."""

    total_entries: int
    errors_total: int
    warnings_total: int
    mean_quality_score: float | None
    by_action: dict[str, int]
    by_table: dict[str, int]
    period_start: datetime | None = None
    period_end: datetime | None = None
