"""
estate_ingestion.domain.types -- Pure frozen dataclasses for the import system.

ZERO I/O. Imports only from estate_kernel/domain and estate_kernel/exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable
from uuid import UUID

from estate_kernel.domain.periods import PeriodKey
from estate_kernel.exceptions import UnknownTargetFieldError

if TYPE_CHECKING:
    from estate_ingestion.domain.rules import BusinessRule


# =============================================================================
# Enums
# =============================================================================


class ImportCategory(str, Enum):
    """Import domains; each tags one CategorySchema."""

    RENT_ROLL = "rent_roll"
    RENTS = "rents"
    FOOT_TRAFFIC = "foot_traffic"
    REVENUE = "revenue"
    CHARGES = "charges"
    LEASE = "lease"
    WORKS = "works"
    BUDGET = "budget"
    VALUATION = "valuation"
    SURFACES = "surfaces"
    ENERGY = "energy"
    SATISFACTION = "satisfaction"


class FieldType(str, Enum):
    """Target data type of a schema field."""

    STRING = "string"
    CODE = "code"  # trimmed, upper-cased identifier
    INTEGER = "integer"
    DECIMAL = "decimal"
    MONEY = "money"
    DATE = "date"
    BOOLEAN = "boolean"
    ENUM = "enum"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ImportStatus(str, Enum):
    """Outcome of one commit."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class QualityGrade(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


def grade_for(score: float | None) -> QualityGrade:
    """excellent >= 95, good >= 85, fair >= 70, else poor."""
    if score is None:
        return QualityGrade.POOR
    if score >= 95:
        return QualityGrade.EXCELLENT
    if score >= 85:
        return QualityGrade.GOOD
    if score >= 70:
        return QualityGrade.FAIR
    return QualityGrade.POOR


# =============================================================================
# Schema
# =============================================================================


@dataclass(frozen=True)
class FieldSpec:
    """
    One target field of a category.

    ``aliases`` are alternative header names matched after normalization.
    ``choice_aliases`` maps an alternative spelling to a canonical choice
    for enum fields.  ``precision`` is the number of decimal places kept
    for decimal and money fields.
    """

    name: str
    data_type: FieldType
    required: bool = False
    label: str = ""
    aliases: tuple[str, ...] = ()
    choices: tuple[str, ...] = ()
    choice_aliases: tuple[tuple[str, str], ...] = ()
    precision: int | None = None
    default: Any = None
    validators: tuple[BusinessRule, ...] = ()

    @property
    def display_name(self) -> str:
        return self.label or self.name

    @property
    def scale(self) -> int | None:
        if self.precision is not None:
            return self.precision
        if self.data_type is FieldType.MONEY:
            return 2
        return None


@dataclass(frozen=True)
class PeriodSource:
    """
    Where a record's accounting period comes from.

    Either a date field, or a year field with an optional month field
    (``default_month`` when the month is absent).
    """

    date_field: str | None = None
    year_field: str | None = None
    month_field: str | None = None
    default_month: int = 12


@dataclass(frozen=True)
class CategorySchema:
    """Closed per-category schema. ``table`` is the persisted table name."""

    category: ImportCategory
    label: str
    table: str
    fields: tuple[FieldSpec, ...]
    natural_key: tuple[str, ...] = ()
    period: PeriodSource | None = None

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise UnknownTargetFieldError(name, self.category.value)

    def has_field(self, name: str) -> bool:
        return any(spec.name == name for spec in self.fields)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    @property
    def required_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.required)


# =============================================================================
# Mapping and validation results
# =============================================================================


@dataclass(frozen=True)
class ColumnMapping:
    """Source column -> target field (None = ignored column)."""

    source_column: str
    target_field: str | None = None

    @property
    def is_mapped(self) -> bool:
        return self.target_field is not None


@dataclass(frozen=True)
class RowIssue:
    """One problem found on one row. ``row_index`` is 0-based."""

    row_index: int
    column: str
    message: str
    severity: Severity
    code: str

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


ReferenceChecker = Callable[[str, str, str], bool]
"""(table, business_unit_id, natural_key) -> whether the record exists."""


@dataclass(frozen=True)
class ValidationContext:
    """Optional collaborators for context-dependent rules."""

    business_unit_id: str | None = None
    reference_exists: ReferenceChecker | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating a RawTable against a schema.

    Rows with warnings only count as valid.  ``rejected_rows`` holds the
    indices of rows with at least one error.
    """

    is_valid: bool
    valid_row_count: int
    total_row_count: int
    errors: tuple[RowIssue, ...]
    warnings: tuple[RowIssue, ...]
    quality_score: float
    rejected_rows: frozenset[int] = frozenset()
    has_required_field_violation: bool = False

    @property
    def quality_grade(self) -> QualityGrade:
        return grade_for(self.quality_score)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def overridable(self) -> bool:
        """Errors may be skipped by a confirmed partial commit."""
        return not self.has_required_field_violation and self.valid_row_count > 0


# =============================================================================
# Records
# =============================================================================


def to_json_safe(value: Any) -> Any:
    """Decimal -> str, date/datetime -> ISO string, UUID -> str."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value


@dataclass(frozen=True)
class DomainRecord:
    """Typed, normalized record ready for storage."""

    id: UUID
    table: str
    business_unit_id: str
    natural_key: str
    period: PeriodKey | None
    values: dict[str, Any]
    row_index: int

    def storage_values(self) -> dict[str, Any]:
        return {k: to_json_safe(v) for k, v in self.values.items()}


# =============================================================================
# Import files
# =============================================================================


@dataclass(frozen=True)
class ImportFolder:
    id: UUID
    name: str
    business_unit_id: str | None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ImportFile:
    """Immutable record of one commit run."""

    id: UUID
    name: str
    category: ImportCategory
    business_unit_id: str
    imported_at: datetime
    status: ImportStatus
    rows_affected: int
    quality_score: float | None
    error_summary: str | None
    folder_id: UUID | None = None
    source_format: str | None = None
    size_bytes: int = 0
    version: int = 1
    created_by_id: str | None = None
    deleted_at: datetime | None = None
    deleted_by_id: str | None = None

    @property
    def quality_grade(self) -> QualityGrade:
        return grade_for(self.quality_score)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class CommitOutcome:
    """
    Result of CommitEngine.commit.

    ``issues`` carries the per-row storage failures (STORAGE_CONSTRAINT)
    that degraded the status.
    """

    import_file: ImportFile
    status: ImportStatus
    rows_affected: int
    rows_rejected: int
    journal_entry_id: int
    error_summary: str | None = None
    issues: tuple[RowIssue, ...] = ()
    record_ids: tuple[UUID, ...] = ()
    cancelled: bool = False
