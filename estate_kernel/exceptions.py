"""
Typed exception hierarchy for the property import core.

Every error is a typed class with a machine-readable ``code`` and the
structured data needed to act on it. Callers catch by type and read
attributes; they never parse messages.

    try:
        engine.commit(request)
    except PeriodLockedError as e:
        governor.reopen_temporarily(e.business_unit_id, e.year, e.month, actor_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    EstateKernelError (base)
    |
    +-- ParseError
    |   +-- UnsupportedFormatError
    |   +-- EmptyFileError
    |   +-- FileTooLargeError
    |
    +-- MappingError
    |   +-- UnknownCategoryError
    |   +-- UnknownSourceColumnError
    |   +-- UnknownTargetFieldError
    |   +-- DuplicateTargetFieldError
    |   +-- RecordTransformError
    |
    +-- PipelineError
    |   +-- NoActiveSessionError
    |   +-- SessionStageError
    |
    +-- CommitError
    |   +-- CommitRefusedError
    |   +-- RecordNotFoundError
    |   +-- InvalidFieldValueError
    |
    +-- StorageError
    |   +-- StorageConstraintError
    |   +-- StorageUnavailableError
    |
    +-- PeriodError
    |   +-- PeriodLockedError
    |   +-- AlreadyClosedError
    |   +-- PeriodNotClosedError
    |   +-- InvalidPeriodError
    |   +-- JustificationRequiredError
    |   +-- ReopenNotAllowedError
    |
    +-- JournalError
    |   +-- JournalEntryNotFoundError
    |   +-- NotRestorableError
    |   +-- AlreadyRestoredError
    |   +-- AuditChainBrokenError
    |
    +-- ImportFileError
    |   +-- ImportFileNotFoundError
    |   +-- FolderNotFoundError
    |   +-- FolderNotEmptyError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                      | When Raised
-----------|---------------------------|---------------------------------------------
Parse      | UNSUPPORTED_FORMAT        | Byte signature matches no supported format
           | EMPTY_FILE                | No data rows after the header
           | FILE_TOO_LARGE            | Byte size or row count above the limit
-----------|---------------------------|---------------------------------------------
Mapping    | UNKNOWN_CATEGORY          | Category has no schema
           | UNKNOWN_SOURCE_COLUMN     | Override names a column not in the file
           | UNKNOWN_TARGET_FIELD      | Override names a field not in the schema
           | DUPLICATE_TARGET_FIELD    | Field already mapped from another column
           | RECORD_TRANSFORM_FAILED   | A row handed to the transformer is invalid
-----------|---------------------------|---------------------------------------------
Pipeline   | NO_ACTIVE_SESSION         | Operation needs an import session
           | INVALID_SESSION_STAGE     | Operation not allowed in the current stage
-----------|---------------------------|---------------------------------------------
Commit     | COMMIT_REFUSED            | Blocking errors without override
           | RECORD_NOT_FOUND          | Mutation targets an unknown record
           | INVALID_FIELD_VALUE       | Edited value does not fit the field type
-----------|---------------------------|---------------------------------------------
Storage    | STORAGE_CONSTRAINT        | Uniqueness or reference violation on a row
           | STORAGE_UNAVAILABLE       | Record store cannot be reached
-----------|---------------------------|---------------------------------------------
Period     | PERIOD_LOCKED             | Mutation targets a closed period
           | PERIOD_ALREADY_CLOSED     | Close requested on a closed period
           | PERIOD_NOT_CLOSED         | Reopen requested on an open period
           | INVALID_PERIOD            | Month outside 1..12 or year out of range
           | JUSTIFICATION_REQUIRED    | Close without a justification
           | REOPEN_NOT_ALLOWED        | Reopening disabled by configuration
-----------|---------------------------|---------------------------------------------
Journal    | JOURNAL_ENTRY_NOT_FOUND   | Unknown journal entry id
           | NOT_RESTORABLE            | Entry action has no inverse
           | ALREADY_RESTORED          | Entry already undone by a restore entry
           | AUDIT_CHAIN_BROKEN        | Hash chain validation failed
-----------|---------------------------|---------------------------------------------
Files      | IMPORT_FILE_NOT_FOUND     | Unknown import file id
           | FOLDER_NOT_FOUND          | Unknown folder id
           | FOLDER_NOT_EMPTY          | Folder still holds import files
-----------|---------------------------|---------------------------------------------
Immutable  | IMMUTABILITY_VIOLATION    | Update/delete of an append-only row
"""

from __future__ import annotations

from typing import Any


class EstateKernelError(Exception):
    """Base exception for all property import core errors."""

    code: str = "ESTATE_KERNEL_ERROR"


# Parse errors


class ParseError(EstateKernelError):
    """Base exception for file parsing errors."""

    code: str = "PARSE_ERROR"


class UnsupportedFormatError(ParseError):
    """File bytes match none of the supported formats."""

    code: str = "UNSUPPORTED_FORMAT"

    def __init__(self, reason: str, file_name: str | None = None):
        self.reason = reason
        self.file_name = file_name
        label = f" {file_name!r}" if file_name else ""
        super().__init__(f"Unsupported file format{label}: {reason}")


class EmptyFileError(ParseError):
    """File parsed but holds no data rows."""

    code: str = "EMPTY_FILE"

    def __init__(self, file_name: str | None = None):
        self.file_name = file_name
        label = f" {file_name!r}" if file_name else ""
        super().__init__(f"File{label} contains no data rows")


class FileTooLargeError(ParseError):
    """File exceeds the configured byte or row limit."""

    code: str = "FILE_TOO_LARGE"

    def __init__(self, measure: str, actual: int, limit: int):
        self.measure = measure
        self.actual = actual
        self.limit = limit
        super().__init__(f"File too large: {actual} {measure} (limit {limit})")


# Mapping errors


class MappingError(EstateKernelError):
    """Base exception for column mapping errors."""

    code: str = "MAPPING_ERROR"


class UnknownCategoryError(MappingError):
    """Import category has no registered schema."""

    code: str = "UNKNOWN_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unknown import category: {category!r}")


class UnknownSourceColumnError(MappingError):
    """Mapping override names a column absent from the parsed file."""

    code: str = "UNKNOWN_SOURCE_COLUMN"

    def __init__(self, source_column: str):
        self.source_column = source_column
        super().__init__(f"Column {source_column!r} is not present in the file")


class UnknownTargetFieldError(MappingError):
    """Mapping override names a field absent from the category schema."""

    code: str = "UNKNOWN_TARGET_FIELD"

    def __init__(self, target_field: str, category: str):
        self.target_field = target_field
        self.category = category
        super().__init__(f"Field {target_field!r} does not exist in category {category!r}")


class DuplicateTargetFieldError(MappingError):
    """Target field is already mapped from another source column."""

    code: str = "DUPLICATE_TARGET_FIELD"

    def __init__(self, target_field: str, existing_column: str):
        self.target_field = target_field
        self.existing_column = existing_column
        super().__init__(
            f"Field {target_field!r} is already mapped from column {existing_column!r}"
        )


class RecordTransformError(MappingError):
    """A row handed to the transformer does not coerce."""

    code: str = "RECORD_TRANSFORM_FAILED"

    def __init__(self, row_index: int, field_name: str, reason: str):
        self.row_index = row_index
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Row {row_index + 1}, field {field_name!r}: {reason}")


# Pipeline errors


class PipelineError(EstateKernelError):
    """Base exception for import pipeline state errors."""

    code: str = "PIPELINE_ERROR"


class NoActiveSessionError(PipelineError):
    """Operation requires an import session and none is in flight."""

    code: str = "NO_ACTIVE_SESSION"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: no import in progress")


class SessionStageError(PipelineError):
    """Operation is not allowed in the session's current stage."""

    code: str = "INVALID_SESSION_STAGE"

    def __init__(self, operation: str, stage: str, allowed: tuple[str, ...]):
        self.operation = operation
        self.stage = stage
        self.allowed = allowed
        super().__init__(
            f"Cannot {operation} during stage {stage!r} (allowed: {', '.join(allowed)})"
        )


# Commit errors


class CommitError(EstateKernelError):
    """Base exception for commit errors."""

    code: str = "COMMIT_ERROR"


class CommitRefusedError(CommitError):
    """Commit refused because validation reported blocking errors."""

    code: str = "COMMIT_REFUSED"

    def __init__(self, reason: str, error_count: int, overridable: bool):
        self.reason = reason
        self.error_count = error_count
        self.overridable = overridable
        super().__init__(f"Commit refused: {reason}")


class RecordNotFoundError(CommitError):
    """Mutation targets a record the store does not hold."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, table: str, entity_id: str):
        self.table = table
        self.entity_id = entity_id
        super().__init__(f"No record {entity_id} in table {table!r}")


class InvalidFieldValueError(CommitError):
    """A single-record edit carries a value the field cannot hold."""

    code: str = "INVALID_FIELD_VALUE"

    def __init__(self, table: str, field_name: str, reason: str):
        self.table = table
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Field {field_name!r} of {table!r}: {reason}")


# Storage errors


class StorageError(EstateKernelError):
    """Base exception for record store errors."""

    code: str = "STORAGE_ERROR"


class StorageConstraintError(StorageError):
    """A single row violates a storage-level constraint."""

    code: str = "STORAGE_CONSTRAINT"

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Constraint violation on {table!r}: {reason}")


class StorageUnavailableError(StorageError):
    """The record store cannot accept writes."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Storage unavailable: {reason}")


# Period errors


class PeriodError(EstateKernelError):
    """Base exception for period lock errors."""

    code: str = "PERIOD_ERROR"


class PeriodLockedError(PeriodError):
    """Mutation targets a closed, non-reopened period."""

    code: str = "PERIOD_LOCKED"

    def __init__(
        self,
        business_unit_id: str,
        year: int,
        month: int,
        import_file: Any | None = None,
    ):
        self.business_unit_id = business_unit_id
        self.year = year
        self.month = month
        self.import_file = import_file
        super().__init__(
            f"Period {year}-{month:02d} is closed for business unit {business_unit_id}"
        )


class AlreadyClosedError(PeriodError):
    """Period is already closed."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, business_unit_id: str, year: int, month: int):
        self.business_unit_id = business_unit_id
        self.year = year
        self.month = month
        super().__init__(
            f"Period {year}-{month:02d} of {business_unit_id} is already closed"
        )


class PeriodNotClosedError(PeriodError):
    """Reopen requested for a period that is not closed."""

    code: str = "PERIOD_NOT_CLOSED"

    def __init__(self, business_unit_id: str, year: int, month: int):
        self.business_unit_id = business_unit_id
        self.year = year
        self.month = month
        super().__init__(
            f"Period {year}-{month:02d} of {business_unit_id} is not closed"
        )


class InvalidPeriodError(PeriodError):
    """Year or month outside the accepted range."""

    code: str = "INVALID_PERIOD"

    def __init__(self, year: int, month: int):
        self.year = year
        self.month = month
        super().__init__(f"Invalid period: year={year}, month={month}")


class JustificationRequiredError(PeriodError):
    """Closing requires a justification by configuration."""

    code: str = "JUSTIFICATION_REQUIRED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"A justification is required to {operation}")


class ReopenNotAllowedError(PeriodError):
    """Temporary reopening is disabled by configuration."""

    code: str = "REOPEN_NOT_ALLOWED"

    def __init__(self, business_unit_id: str, year: int, month: int):
        self.business_unit_id = business_unit_id
        self.year = year
        self.month = month
        super().__init__(
            f"Reopening period {year}-{month:02d} of {business_unit_id} is not allowed"
        )


# Journal errors


class JournalError(EstateKernelError):
    """Base exception for audit journal errors."""

    code: str = "JOURNAL_ERROR"


class JournalEntryNotFoundError(JournalError):
    """Journal entry id does not exist."""

    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: int):
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} not found")


class NotRestorableError(JournalError):
    """Journal entry describes an action that has no inverse."""

    code: str = "NOT_RESTORABLE"

    def __init__(self, entry_id: int, action: str):
        self.entry_id = entry_id
        self.action = action
        super().__init__(f"Journal entry {entry_id} ({action}) cannot be restored")


class AlreadyRestoredError(JournalError):
    """Journal entry was already undone."""

    code: str = "ALREADY_RESTORED"

    def __init__(self, entry_id: int, restore_entry_id: int):
        self.entry_id = entry_id
        self.restore_entry_id = restore_entry_id
        super().__init__(
            f"Journal entry {entry_id} was already restored by entry {restore_entry_id}"
        )


class AuditChainBrokenError(JournalError):
    """Journal hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_id: int, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Journal chain broken at entry {entry_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Import file errors


class ImportFileError(EstateKernelError):
    """Base exception for import file and folder errors."""

    code: str = "IMPORT_FILE_ERROR"


class ImportFileNotFoundError(ImportFileError):
    """Import file id does not exist."""

    code: str = "IMPORT_FILE_NOT_FOUND"

    def __init__(self, import_file_id: str):
        self.import_file_id = import_file_id
        super().__init__(f"Import file {import_file_id} not found")


class FolderNotFoundError(ImportFileError):
    """Folder id does not exist."""

    code: str = "FOLDER_NOT_FOUND"

    def __init__(self, folder_id: str):
        self.folder_id = folder_id
        super().__init__(f"Folder {folder_id} not found")


class FolderNotEmptyError(ImportFileError):
    """Folder still holds import files."""

    code: str = "FOLDER_NOT_EMPTY"

    def __init__(self, folder_id: str, file_count: int):
        self.folder_id = folder_id
        self.file_count = file_count
        super().__init__(f"Folder {folder_id} still holds {file_count} import file(s)")


# Immutability errors


class ImmutabilityError(EstateKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
