"""
CommitEngine -- lock-gated, journaled writes of property records.

Responsibility:
    Commits a transformed batch (one ImportFile and one ``import`` journal
    entry per call, whatever the outcome), and performs the single-record
    create / update / delete mutations and their inverses for restore.

Architecture position:
    Ingestion > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - No write before the lock gate: every record period is checked with
      LockGovernor.is_writable.
    - Old values are captured here, at every mutation site, never by the
      caller.
    - Transactional stores: the batch runs in one outer SAVEPOINT with a
      SAVEPOINT per row.  Other stores are compensated on fatal failure.

Failure modes:
    - CommitRefusedError before any write.
    - FolderNotFoundError before any write.
    - PeriodLockedError after the failure ImportFile and its journal entry.
    - StorageUnavailableError is not raised from ``commit``: it becomes a
      ``failure`` outcome.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from estate_ingestion.domain.categories import get_schema, schema_for_table
from estate_ingestion.domain.transformer import natural_key_of, normalize_value, resolve_period
from estate_ingestion.domain.types import (
    CategorySchema,
    CommitOutcome,
    DomainRecord,
    ImportCategory,
    ImportStatus,
    RowIssue,
    Severity,
    ValidationResult,
    to_json_safe,
)
from estate_ingestion.mapping.engine import coerce_cell
from estate_ingestion.services.import_file_service import ImportFileService
from estate_ingestion.storage.base import RecordStore, StoredRecord
from estate_kernel.domain.clock import Clock, SystemClock
from estate_kernel.domain.journal import JournalDetails, JournalEntry
from estate_kernel.domain.periods import PeriodKey
from estate_kernel.exceptions import (
    CommitRefusedError,
    InvalidFieldValueError,
    NotRestorableError,
    PeriodLockedError,
    RecordNotFoundError,
    StorageConstraintError,
    StorageUnavailableError,
    UnknownCategoryError,
)
from estate_kernel.logging_config import get_logger
from estate_kernel.models.journal import JournalAction
from estate_kernel.services.journal_service import JournalService
from estate_kernel.services.lock_governor import LockGovernor

logger = get_logger("ingestion.commit_engine")

DEFAULT_BATCH_SIZE = 100

ProgressCallback = Callable[[int], None]


class CancellationToken:
    """Cooperative, thread-safe cancel flag checked between row batches."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class CommitRequest:
    """
    One batch to commit.

    ``total_rows`` is the number of source rows (defaults to the
    validation's row count); status is ``success`` only when all of them
    were written.
    """

    file_name: str
    category: ImportCategory
    business_unit_id: str
    actor_id: str
    records: tuple[DomainRecord, ...]
    validation: ValidationResult
    confirm_partial: bool = False
    folder_id: UUID | None = None
    source_format: str | None = None
    size_bytes: int = 0
    total_rows: int | None = None


def _typed_values(values: dict[str, Any], schema: CategorySchema) -> dict[str, Any]:
    """Stored (JSON-safe) values coerced back to their field types."""
    typed: dict[str, Any] = {}
    for name, value in values.items():
        if not schema.has_field(name):
            typed[name] = value
            continue
        result = coerce_cell(value, schema.field(name))
        typed[name] = result.value if result.success else value
    return typed


def _status_for(written: int, total: int) -> ImportStatus:
    if written == 0:
        return ImportStatus.FAILURE
    if written >= total:
        return ImportStatus.SUCCESS
    return ImportStatus.PARTIAL


class CommitEngine:
    """Applies batches and single-record mutations through a RecordStore."""

    def __init__(
        self,
        session: Session,
        store: RecordStore,
        journal: JournalService,
        governor: LockGovernor,
        import_files: ImportFileService | None = None,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._session = session
        self._store = store
        self._journal = journal
        self._governor = governor
        self._clock = clock or SystemClock()
        self._import_files = import_files or ImportFileService(session, journal, self._clock)
        self._batch_size = max(1, batch_size)

    @property
    def store(self) -> RecordStore:
        return self._store

    # ------------------------------------------------------------------
    # Batch commit
    # ------------------------------------------------------------------

    def commit(
        self,
        request: CommitRequest,
        *,
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> CommitOutcome:
        """
        Commit ``request.records``.

        Preconditions:
            - No required-field violation; an invalid validation needs
              ``confirm_partial``.

        Postconditions:
            - Exactly one ImportFile and one ``import`` journal entry with
              the same rows_affected (also when PeriodLockedError is raised).
        """
        validation = request.validation
        self._refuse_if_needed(request)
        if request.folder_id is not None:
            self._import_files.get_folder(request.folder_id)

        table = get_schema(request.category).table
        import_file_id = uuid4()
        total_rows = request.total_rows if request.total_rows is not None else validation.total_row_count

        locked = self._locked_periods(request)
        if locked:
            first = locked[0]
            summary = "Closed period: " + ", ".join(p.code for p in locked)
            import_file, _ = self._finish(
                request, table, import_file_id, ImportStatus.FAILURE, 0, summary,
                errors=[summary],
            )
            logger.warning(
                "commit_rejected_period_locked",
                extra={
                    "business_unit_id": request.business_unit_id,
                    "periods": [p.code for p in locked],
                    "import_file_id": str(import_file_id),
                },
            )
            raise PeriodLockedError(
                request.business_unit_id, first.year, first.month, import_file=import_file
            )

        conflicts = self._store.find_conflicts(request.records)
        issues = [
            RowIssue(
                row_index=r.row_index,
                column=r.table,
                message=f"Row {r.row_index + 1}: {conflicts[r.id]}",
                severity=Severity.ERROR,
                code="STORAGE_CONSTRAINT",
            )
            for r in request.records if r.id in conflicts
        ]
        to_apply = [r for r in request.records if r.id not in conflicts]

        applied: list[DomainRecord] = []
        cancelled = False
        fatal: str | None = None
        try:
            with self._store.atomic():
                for start in range(0, len(to_apply), self._batch_size):
                    if cancel_token is not None and cancel_token.is_cancelled:
                        cancelled = True
                        break
                    for record in to_apply[start:start + self._batch_size]:
                        try:
                            self._store.insert(
                                StoredRecord.from_domain(record, import_file_id), request.actor_id
                            )
                        except StorageConstraintError as exc:
                            issues.append(RowIssue(
                                row_index=record.row_index,
                                column=record.table,
                                message=f"Row {record.row_index + 1}: {exc.reason}",
                                severity=Severity.ERROR,
                                code="STORAGE_CONSTRAINT",
                            ))
                            continue
                        applied.append(record)
                    if progress is not None:
                        progress(round(100 * min(start + self._batch_size, len(to_apply)) / len(to_apply)))
        except StorageUnavailableError as exc:
            fatal = exc.reason
            if not self._store.supports_transactions:
                self._compensate(applied)
            logger.error(
                "commit_storage_unavailable",
                extra={"reason": fatal, "rolled_back_rows": len(applied)},
            )
            applied = []

        if progress is not None and not to_apply and not cancelled:
            progress(100)

        written = len(applied)
        status = _status_for(written, total_rows)
        summary = self._summary(validation, issues, written, total_rows, cancelled, fatal)
        errors = [i.message for i in validation.errors] + [i.message for i in issues]
        if fatal:
            errors.append(f"Storage unavailable: {fatal}")

        import_file, entry = self._finish(
            request, table, import_file_id, status, written, summary,
            errors=errors, cancelled=cancelled,
        )
        logger.info(
            "commit_completed",
            extra={
                "import_file_id": str(import_file.id),
                "status": status.value,
                "rows_affected": written,
                "rows_rejected": total_rows - written,
                "cancelled": cancelled,
            },
        )
        return CommitOutcome(
            import_file=import_file,
            status=status,
            rows_affected=written,
            rows_rejected=max(total_rows - written, 0),
            journal_entry_id=entry.id,
            error_summary=summary,
            issues=tuple(issues),
            record_ids=tuple(r.id for r in applied),
            cancelled=cancelled,
        )

    def _refuse_if_needed(self, request: CommitRequest) -> None:
        validation = request.validation
        refusal: CommitRefusedError | None = None
        if validation.has_required_field_violation:
            refusal = CommitRefusedError(
                "required fields are not mapped", validation.error_count, overridable=False
            )
        elif not validation.is_valid and not request.confirm_partial:
            refusal = CommitRefusedError(
                "validation reported errors; confirm a partial import to skip the rejected rows",
                validation.error_count,
                overridable=validation.overridable,
            )
        if refusal is not None:
            # Nothing is journaled for a refusal; this line is its only trace.
            logger.warning(
                "commit_refused",
                extra={
                    "category": request.category.value,
                    "business_unit_id": request.business_unit_id,
                    "file_name": request.file_name,
                    "error_count": validation.error_count,
                    "overridable": refusal.overridable,
                },
            )
            raise refusal

    def _locked_periods(self, request: CommitRequest) -> list[PeriodKey]:
        periods = sorted({r.period for r in request.records if r.period is not None})
        return [
            p for p in periods
            if not self._governor.is_writable(request.business_unit_id, p.year, p.month)
        ]

    def _compensate(self, applied: list[DomainRecord]) -> None:
        for record in reversed(applied):
            self._store.delete(record.table, record.id)
        logger.warning("commit_compensated", extra={"rows": len(applied)})

    @staticmethod
    def _summary(
        validation: ValidationResult,
        issues: list[RowIssue],
        written: int,
        total: int,
        cancelled: bool,
        fatal: str | None,
    ) -> str | None:
        if fatal:
            return f"Storage unavailable, nothing imported: {fatal}"
        parts = []
        if validation.rejected_rows:
            parts.append(f"{len(validation.rejected_rows)} row(s) rejected by validation")
        if issues:
            parts.append(f"{len(issues)} row(s) rejected by storage constraints")
        if cancelled:
            parts.append(f"cancelled after {written} row(s)")
        if not parts and written < total:
            parts.append(f"{total - written} row(s) not imported")
        return "; ".join(parts) or None

    def _finish(
        self,
        request: CommitRequest,
        table: str,
        import_file_id: UUID,
        status: ImportStatus,
        written: int,
        summary: str | None,
        *,
        errors: list[str],
        cancelled: bool = False,
    ):
        import_file = self._import_files.record_import(
            name=request.file_name,
            category=request.category,
            business_unit_id=request.business_unit_id,
            status=status,
            rows_affected=written,
            actor_id=request.actor_id,
            quality_score=request.validation.quality_score,
            error_summary=summary,
            folder_id=request.folder_id,
            source_format=request.source_format,
            size_bytes=request.size_bytes,
            import_file_id=import_file_id,
        )
        entry = self._journal.record(
            JournalAction.IMPORT,
            table,
            actor_id=request.actor_id,
            rows_affected=written,
            details=JournalDetails(
                business_unit_id=request.business_unit_id,
                source_file=request.file_name,
                import_file_id=str(import_file.id),
                extra={
                    "category": request.category.value,
                    "status": status.value,
                    "cancelled": cancelled,
                },
            ),
            errors=errors,
            warnings=[w.message for w in request.validation.warnings],
            quality_score=request.validation.quality_score,
        )
        return import_file, entry

    # ------------------------------------------------------------------
    # Single-record mutations
    # ------------------------------------------------------------------

    def _require(self, table: str, record_id: UUID) -> StoredRecord:
        record = self._store.get(table, record_id)
        if record is None:
            raise RecordNotFoundError(table, str(record_id))
        return record

    def _gate(self, business_unit_id: str, period: PeriodKey | None) -> None:
        if period is not None:
            self._governor.assert_writable(business_unit_id, period.year, period.month)

    def _rekey(self, current: StoredRecord, values: dict[str, Any]) -> StoredRecord:
        """
        ``current`` with ``values``, its natural key and period recomputed.

        Both the period the record leaves and the one it lands in must be
        writable.
        """
        schema = schema_for_table(current.table)
        typed = _typed_values(values, schema)
        period = resolve_period(typed, schema, current.period)
        updated = current.rekeyed(
            values, natural_key_of(typed, schema, str(current.id)), period
        )
        self._gate(current.business_unit_id, current.period)
        if updated.period != current.period:
            self._gate(current.business_unit_id, updated.period)
        return updated

    def create_record(
        self,
        table: str,
        business_unit_id: str,
        values: dict[str, Any],
        *,
        actor_id: str,
        period: PeriodKey | None = None,
        justification: str | None = None,
        record_id: UUID | None = None,
    ) -> StoredRecord:
        """
        Insert one record and journal a ``create`` entry.

        A period carried by the values (year/month or date field) wins over
        ``period``, which is the fallback for categories without one.
        """
        schema = schema_for_table(table)
        period = resolve_period(_typed_values(values, schema), schema, period)
        self._gate(business_unit_id, period)
        rid = record_id or uuid4()
        record = StoredRecord(
            id=rid,
            table=table,
            business_unit_id=business_unit_id,
            natural_key=natural_key_of(values, schema, str(rid)),
            period=period,
            values=to_json_safe(dict(values)),
        )
        stored = self._store.insert(record, actor_id)
        self._journal.record(
            JournalAction.CREATE,
            table,
            actor_id=actor_id,
            rows_affected=1,
            details=JournalDetails(
                business_unit_id=business_unit_id,
                entity_id=str(stored.id),
                new_value=stored.to_snapshot(),
                justification=justification,
            ),
        )
        logger.info("record_created", extra={"table": table, "entity_id": str(stored.id)})
        return stored

    def update_record(
        self,
        table: str,
        record_id: UUID,
        field_name: str,
        new_value: Any,
        *,
        actor_id: str,
        justification: str | None = None,
    ) -> StoredRecord:
        """
        Change one field and journal an ``update`` entry with its old value.

        The value is coerced and normalized like an imported cell.  Editing
        a key or period field moves the record; the target period goes
        through the lock gate too.

        Raises:
            InvalidFieldValueError: the value does not coerce, or blanks a
                required field.
            PeriodLockedError: the current or the resulting period is closed.
        """
        spec = schema_for_table(table).field(field_name)
        current = self._require(table, record_id)
        self._gate(current.business_unit_id, current.period)

        coerced = coerce_cell(new_value, spec)
        if not coerced.success:
            raise InvalidFieldValueError(table, field_name, coerced.message)
        value = normalize_value(coerced.value, spec)
        if value is None:
            value = spec.default
        if value is None and spec.required:
            raise InvalidFieldValueError(table, field_name, "required value is missing")

        old_value = current.values.get(field_name)
        safe_value = to_json_safe(value)
        values = dict(current.values)
        if safe_value is None:
            values.pop(field_name, None)
        else:
            values[field_name] = safe_value
        stored = self._store.update(self._rekey(current, values), actor_id)
        self._journal.record(
            JournalAction.UPDATE,
            table,
            actor_id=actor_id,
            rows_affected=1,
            details=JournalDetails(
                business_unit_id=current.business_unit_id,
                entity_id=str(record_id),
                changed_field=field_name,
                old_value=old_value,
                new_value=safe_value,
                justification=justification,
            ),
        )
        logger.info(
            "record_updated",
            extra={"table": table, "entity_id": str(record_id), "field": field_name},
        )
        return stored

    def delete_record(
        self,
        table: str,
        record_id: UUID,
        *,
        actor_id: str,
        justification: str | None = None,
    ) -> StoredRecord:
        """Delete one record; the journal keeps its full snapshot as old value."""
        current = self._require(table, record_id)
        self._gate(current.business_unit_id, current.period)
        self._store.delete(table, record_id)
        self._journal.record(
            JournalAction.DELETE,
            table,
            actor_id=actor_id,
            rows_affected=1,
            details=JournalDetails(
                business_unit_id=current.business_unit_id,
                entity_id=str(record_id),
                old_value=current.to_snapshot(),
                justification=justification,
            ),
        )
        logger.info("record_deleted", extra={"table": table, "entity_id": str(record_id)})
        return current

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def apply_inverse(
        self,
        entry: JournalEntry,
        *,
        actor_id: str,
        justification: str | None = None,
    ) -> JournalEntry:
        """
        Undo a create/update/delete entry and journal one ``restore`` entry.

        The inverse goes through the lock gate like any other mutation.
        """
        details = entry.details
        try:
            schema_for_table(entry.table)
        except UnknownCategoryError as exc:
            raise NotRestorableError(entry.id, entry.action.value) from exc
        if details.entity_id is None:
            raise NotRestorableError(entry.id, entry.action.value)
        record_id = UUID(details.entity_id)

        if entry.action is JournalAction.CREATE:
            current = self._require(entry.table, record_id)
            self._gate(current.business_unit_id, current.period)
            self._store.delete(entry.table, record_id)
            restored = JournalDetails(
                business_unit_id=current.business_unit_id,
                entity_id=details.entity_id,
                old_value=current.to_snapshot(),
                justification=justification,
            )
        elif entry.action is JournalAction.UPDATE:
            current = self._require(entry.table, record_id)
            values = dict(current.values)
            if details.old_value is None:
                values.pop(details.changed_field, None)
            else:
                values[details.changed_field] = details.old_value
            self._store.update(self._rekey(current, values), actor_id)
            restored = JournalDetails(
                business_unit_id=current.business_unit_id,
                entity_id=details.entity_id,
                changed_field=details.changed_field,
                old_value=current.values.get(details.changed_field),
                new_value=details.old_value,
                justification=justification,
            )
        elif entry.action is JournalAction.DELETE:
            if not isinstance(details.old_value, dict):
                raise NotRestorableError(entry.id, entry.action.value)
            snapshot = StoredRecord.from_snapshot(details.old_value)
            self._gate(snapshot.business_unit_id, snapshot.period)
            self._store.insert(snapshot, actor_id)
            restored = JournalDetails(
                business_unit_id=snapshot.business_unit_id,
                entity_id=details.entity_id,
                new_value=snapshot.to_snapshot(),
                justification=justification,
            )
        else:
            raise NotRestorableError(entry.id, entry.action.value)

        return self._journal.record(
            JournalAction.RESTORE,
            entry.table,
            actor_id=actor_id,
            rows_affected=1,
            details=restored,
            restores_entry_id=entry.id,
        )
