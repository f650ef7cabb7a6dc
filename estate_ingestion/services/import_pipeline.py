"""
Import pipeline: upload -> mapping -> validation -> importing -> done.

Client-visible state machine over one in-flight ImportSession.  Parsing,
mapping, validation and transformation are pure; the commit goes through
the CommitEngine.  Listeners subscribe to ProgressEvent / CompletionEvent.
Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Union
from uuid import UUID, uuid4

from estate_ingestion.adapters import parse_table
from estate_ingestion.adapters.base import ParseOptions, RawTable, SourceFormat
from estate_ingestion.domain.categories import get_schema
from estate_ingestion.domain.transformer import transform_rows
from estate_ingestion.domain.types import (
    ColumnMapping,
    CommitOutcome,
    DomainRecord,
    ImportCategory,
    ImportStatus,
    ValidationContext,
    ValidationResult,
)
from estate_ingestion.domain.validators import DEFAULT_CHUNK_SIZE, validate_table
from estate_ingestion.mapping.resolver import resolve_mapping, set_mapping
from estate_ingestion.services.commit_engine import (
    CancellationToken,
    CommitEngine,
    CommitRequest,
)
from estate_kernel.domain.clock import Clock, SystemClock
from estate_kernel.domain.journal import JournalDetails
from estate_kernel.domain.periods import PeriodKey
from estate_kernel.exceptions import (
    CommitRefusedError,
    NoActiveSessionError,
    PeriodLockedError,
    RecordTransformError,
    SessionStageError,
)
from estate_kernel.logging_config import LogContext, get_logger
from estate_kernel.models.journal import JournalAction
from estate_kernel.services.journal_service import JournalService

logger = get_logger("ingestion.pipeline")

PIPELINE_ACTOR = "system:pipeline"


class ImportStage(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    VALIDATION = "validation"
    IMPORTING = "importing"
    DONE = "done"


@dataclass
class ImportSession:
    """The one in-flight import; mutated in place by the pipeline."""

    id: UUID
    file_name: str
    category: ImportCategory
    raw_table: RawTable
    mapping: tuple[ColumnMapping, ...]
    business_unit_id: str | None = None
    stage: ImportStage = ImportStage.UPLOAD
    validation: ValidationResult | None = None
    transformed_records: tuple[DomainRecord, ...] = ()
    progress_percent: int = 0
    terminal_error: str | None = None
    outcome: CommitOutcome | None = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    cancel_requested_by: str | None = None

    @property
    def source_format(self) -> SourceFormat:
        return self.raw_table.source_format


@dataclass(frozen=True)
class ProgressEvent:
    stage: ImportStage
    progress_percent: int


@dataclass(frozen=True)
class CompletionEvent:
    status: str
    rows_affected: int
    error_summary: str | None


PipelineEvent = Union[ProgressEvent, CompletionEvent]
Listener = Callable[[PipelineEvent], None]


class ImportPipeline:
    """Drives one ImportSession through its stages."""

    def __init__(
        self,
        engine: CommitEngine,
        journal: JournalService,
        clock: Clock | None = None,
        parse_options: ParseOptions | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._engine = engine
        self._journal = journal
        self._clock = clock or SystemClock()
        self._parse_options = parse_options or ParseOptions()
        self._chunk_size = chunk_size
        self._session: ImportSession | None = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: PipelineEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _progress(self, stage: ImportStage) -> Callable[[int], None]:
        def report(percent: int) -> None:
            session = self._require("report progress")
            session.progress_percent = percent
            self._emit(ProgressEvent(stage, percent))

        return report

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def session(self) -> ImportSession | None:
        return self._session

    @property
    def stage(self) -> ImportStage:
        return self._session.stage if self._session else ImportStage.UPLOAD

    def _require(self, operation: str, *stages: ImportStage) -> ImportSession:
        if self._session is None:
            raise NoActiveSessionError(operation)
        if stages and self._session.stage not in stages:
            raise SessionStageError(
                operation, self._session.stage.value, tuple(s.value for s in stages)
            )
        return self._session

    def reset(self) -> None:
        self._session = None

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def start_import(
        self,
        file_bytes: bytes,
        category: ImportCategory,
        *,
        file_name: str,
        declared_format: SourceFormat | None = None,
        business_unit_id: str | None = None,
    ) -> ImportSession:
        """
        Parse the upload and open a session in stage ``mapping``.

        Parse errors propagate and leave no session behind.
        """
        schema = get_schema(category)
        table = parse_table(
            file_bytes,
            declared_format=declared_format,
            file_name=file_name,
            options=self._parse_options,
        )
        session = ImportSession(
            id=uuid4(),
            file_name=file_name,
            category=category,
            raw_table=table,
            mapping=resolve_mapping(table.columns, schema),
            business_unit_id=business_unit_id,
            stage=ImportStage.MAPPING,
        )
        self._session = session
        logger.info(
            "import_session_started",
            extra={
                "session_id": str(session.id),
                "file_name": file_name,
                "category": category.value,
                "row_count": table.row_count,
                "mapped_columns": sum(1 for m in session.mapping if m.is_mapped),
            },
        )
        return session

    def set_category(self, category: ImportCategory) -> ImportSession:
        """Switch category and re-resolve the mapping from the headers."""
        session = self._require("change the category", ImportStage.MAPPING)
        schema = get_schema(category)
        session.category = category
        session.mapping = resolve_mapping(session.raw_table.columns, schema)
        return session

    def set_mapping(self, source_column: str, target_field: str | None) -> ImportSession:
        session = self._require("change the mapping", ImportStage.MAPPING)
        session.mapping = set_mapping(
            session.mapping, source_column, target_field, get_schema(session.category)
        )
        return session

    def validate(self, actor_id: str = PIPELINE_ACTOR) -> ValidationResult:
        """Validate every row; stage ``mapping`` -> ``validation``."""
        session = self._require("validate", ImportStage.MAPPING)
        schema = get_schema(session.category)
        context = ValidationContext(
            business_unit_id=session.business_unit_id,
            reference_exists=self._engine.store.exists,
        )
        with LogContext.bind(session_id=str(session.id), actor_id=actor_id):
            result = validate_table(
                session.raw_table,
                session.mapping,
                schema,
                context=context,
                chunk_size=self._chunk_size,
                on_progress=self._progress(ImportStage.VALIDATION),
            )
            session.validation = result
            session.stage = ImportStage.VALIDATION
            self._journal.record(
                JournalAction.VALIDATE,
                schema.table,
                actor_id=actor_id,
                rows_affected=0,
                details=JournalDetails(
                    business_unit_id=session.business_unit_id,
                    source_file=session.file_name,
                    extra={
                        "category": session.category.value,
                        "valid_row_count": result.valid_row_count,
                        "total_row_count": result.total_row_count,
                    },
                ),
                errors=[i.message for i in result.errors],
                warnings=[i.message for i in result.warnings],
                quality_score=result.quality_score,
            )
            logger.info(
                "import_validated",
                extra={
                    "is_valid": result.is_valid,
                    "error_count": result.error_count,
                    "warning_count": result.warning_count,
                    "quality_score": result.quality_score,
                },
            )
        return result

    def return_to_mapping(self) -> ImportSession:
        session = self._require("return to mapping", ImportStage.VALIDATION)
        session.stage = ImportStage.MAPPING
        session.validation = None
        session.progress_percent = 0
        return session

    def commit(
        self,
        *,
        actor_id: str,
        business_unit_id: str | None = None,
        folder_id: UUID | None = None,
        confirm_partial: bool = False,
        period: PeriodKey | None = None,
    ) -> CommitOutcome:
        """
        Transform the valid rows and commit them.

        Stage ``validation`` -> ``importing`` -> ``done``.  A refused commit,
        a transform failure, a locked period or any other failure returns
        the session to ``validation`` with ``terminal_error`` set.  A
        ``success`` outcome discards the session once the CompletionEvent
        has been emitted; partial, failed and cancelled runs stay in
        ``done`` until ``reset()``.
        """
        session = self._require("commit", ImportStage.VALIDATION)
        validation = session.validation
        if validation is None:
            raise SessionStageError(
                "commit without a validation result",
                session.stage.value,
                (ImportStage.VALIDATION.value,),
            )
        unit = business_unit_id or session.business_unit_id
        if unit is None:
            raise ValueError("business_unit_id is required to commit")
        session.business_unit_id = unit
        schema = get_schema(session.category)
        default_period = period or PeriodKey.of(self._clock.today())

        session.stage = ImportStage.IMPORTING
        session.progress_percent = 0
        session.terminal_error = None
        session.cancel_token = CancellationToken()
        session.cancel_requested_by = None

        with LogContext.bind(session_id=str(session.id), actor_id=actor_id, business_unit_id=unit):
            try:
                session.transformed_records = transform_rows(
                    session.raw_table,
                    session.mapping,
                    schema,
                    business_unit_id=unit,
                    batch_key=str(session.id),
                    default_period=default_period,
                    skip_rows=validation.rejected_rows,
                )
                outcome = self._engine.commit(
                    CommitRequest(
                        file_name=session.file_name,
                        category=session.category,
                        business_unit_id=unit,
                        actor_id=actor_id,
                        records=session.transformed_records,
                        validation=validation,
                        confirm_partial=confirm_partial,
                        folder_id=folder_id,
                        source_format=session.source_format.value,
                        size_bytes=session.raw_table.size_bytes,
                        total_rows=validation.total_row_count,
                    ),
                    progress=self._progress(ImportStage.IMPORTING),
                    cancel_token=session.cancel_token,
                )
            except (CommitRefusedError, RecordTransformError, PeriodLockedError) as exc:
                session.stage = ImportStage.VALIDATION
                session.terminal_error = str(exc)
                logger.warning(
                    "import_commit_interrupted",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                raise
            except Exception as exc:
                session.stage = ImportStage.VALIDATION
                session.terminal_error = str(exc)
                logger.error(
                    "import_commit_failed",
                    extra={"error_code": getattr(exc, "code", None), "reason": str(exc)},
                    exc_info=True,
                )
                raise

            if outcome.cancelled:
                self._record_cancel(session, session.cancel_requested_by or actor_id, outcome)

        session.outcome = outcome
        session.stage = ImportStage.DONE
        session.progress_percent = 100
        self._emit(CompletionEvent(outcome.status.value, outcome.rows_affected, outcome.error_summary))
        if outcome.status is ImportStatus.SUCCESS and self._session is session:
            self._session = None
        return outcome

    def cancel(self, actor_id: str) -> None:
        """
        Cancel the session.

        During a commit this only raises the cooperative flag: rows already
        written are kept and the commit records the cancellation when it
        stops.  In any other stage the session is discarded.
        """
        session = self._require("cancel")
        if session.stage is ImportStage.IMPORTING:
            session.cancel_requested_by = actor_id
            session.cancel_token.cancel()
            logger.info("import_cancel_requested", extra={"session_id": str(session.id)})
            return
        self._record_cancel(session, actor_id, None)
        self._session = None

    def _record_cancel(
        self,
        session: ImportSession,
        actor_id: str,
        outcome: CommitOutcome | None,
    ) -> None:
        details = JournalDetails(
            business_unit_id=session.business_unit_id,
            source_file=session.file_name,
            import_file_id=str(outcome.import_file.id) if outcome else None,
            extra={"category": session.category.value, "stage": session.stage.value},
        )
        self._journal.record(
            JournalAction.CANCEL,
            get_schema(session.category).table,
            actor_id=actor_id,
            rows_affected=outcome.rows_affected if outcome else 0,
            details=details,
        )
        logger.info(
            "import_cancelled",
            extra={
                "session_id": str(session.id),
                "stage": session.stage.value,
                "rows_kept": outcome.rows_affected if outcome else 0,
            },
        )
