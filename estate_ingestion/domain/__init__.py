"""
estate_ingestion.domain -- Pure types, schemas, rules and transforms.

ZERO I/O. Imports only from estate_kernel/domain/ and estate_kernel/exceptions.
"""

from estate_ingestion.domain.types import (
    CategorySchema,
    ColumnMapping,
    CommitOutcome,
    DomainRecord,
    FieldSpec,
    FieldType,
    ImportCategory,
    ImportFile,
    ImportFolder,
    ImportStatus,
    QualityGrade,
    RowIssue,
    Severity,
    ValidationResult,
)

__all__ = [
    "CategorySchema",
    "ColumnMapping",
    "CommitOutcome",
    "DomainRecord",
    "FieldSpec",
    "FieldType",
    "ImportCategory",
    "ImportFile",
    "ImportFolder",
    "ImportStatus",
    "QualityGrade",
    "RowIssue",
    "Severity",
    "ValidationResult",
]
