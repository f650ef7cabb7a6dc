"""
JournalService -- append-only audit journal with hash chain.

Responsibility:
    Records one immutable entry per mutation (import, create, update,
    delete, close, validate, cancel, restore), answers filtered queries and
    aggregate statistics, and implements ``restore`` as a forward-only
    compensating entry.

Architecture position:
    Kernel > Services.  Flushes within the caller's transaction and never
    commits.  Restore delegates the inverse mutation to an injected mutator
    (the ingestion CommitEngine) so the lock governor still applies.

Invariants enforced:
    - Entry ids are allocated by SequenceService (strictly increasing).
    - hash = H(seq | action | table | payload_hash | prev_hash).
    - No update or delete API exists; ORM listeners reject both.
    - An entry is restored at most once.

Failure modes:
    - JournalEntryNotFoundError, NotRestorableError, AlreadyRestoredError.
    - AuditChainBrokenError from validate_chain().
    - Storage errors propagate: a non-audited mutation is worse than a
      failed one.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from estate_kernel.domain.clock import Clock, SystemClock, ensure_utc
from estate_kernel.domain.journal import (
    JournalDetails,
    JournalEntry,
    JournalFilter,
    JournalStats,
)
from estate_kernel.exceptions import (
    AlreadyRestoredError,
    AuditChainBrokenError,
    JournalEntryNotFoundError,
    NotRestorableError,
)
from estate_kernel.logging_config import get_logger
from estate_kernel.models.journal import (
    RESTORABLE_ACTIONS,
    JournalAction,
    JournalEntryModel,
)
from estate_kernel.services.sequence_service import SequenceService
from estate_kernel.utils.hashing import hash_journal_link, hash_payload

logger = get_logger("services.journal")

DEFAULT_ISSUE_LIMIT = 50


class InverseMutator(Protocol):
    """Applies the inverse of a create/update/delete entry and journals it."""

    def apply_inverse(
        self,
        entry: JournalEntry,
        *,
        actor_id: str,
        justification: str | None = None,
    ) -> JournalEntry:
        ...


def _to_dto(model: JournalEntryModel) -> JournalEntry:
    return JournalEntry(
        id=model.seq,
        timestamp=ensure_utc(model.occurred_at),
        actor_id=model.actor_id,
        action=JournalAction(model.action),
        table=model.table_name,
        rows_affected=model.rows_affected,
        details=JournalDetails.from_json(model.details),
        errors=tuple(model.errors or ()),
        warnings=tuple(model.warnings or ()),
        error_count=model.error_count,
        warning_count=model.warning_count,
        quality_score=model.quality_score,
        restores_entry_id=model.restores_entry_id,
    )


class JournalService:
    """Append-only journal: write path, query path, aggregates and restore."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        issue_limit: int = DEFAULT_ISSUE_LIMIT,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._issue_limit = issue_limit
        self._sequence = SequenceService(session)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def record(
        self,
        action: JournalAction,
        table: str,
        *,
        actor_id: str,
        rows_affected: int = 0,
        details: JournalDetails | None = None,
        errors: Sequence[str] = (),
        warnings: Sequence[str] = (),
        error_count: int | None = None,
        warning_count: int | None = None,
        quality_score: float | None = None,
        restores_entry_id: int | None = None,
    ) -> JournalEntry:
        """
        Append one entry and return it.

        Postconditions:
            - The entry has an id greater than every existing entry id.
            - Its hash links to the previous entry's hash.
        """
        details = details or JournalDetails()
        seq = self._sequence.next_value(SequenceService.JOURNAL_ENTRY)
        prev_hash = self._get_last_hash()
        occurred_at = self._clock.now()

        details_json = details.to_json()
        kept_errors = list(errors)[: self._issue_limit]
        kept_warnings = list(warnings)[: self._issue_limit]
        payload_hash = hash_payload(_payload(
            occurred_at, actor_id, details.business_unit_id, rows_affected,
            details_json, kept_errors, kept_warnings, quality_score, restores_entry_id,
        ))

        model = JournalEntryModel(
            seq=seq,
            occurred_at=occurred_at,
            actor_id=actor_id,
            action=action.value,
            table_name=table,
            business_unit_id=details.business_unit_id,
            entity_id=details.entity_id,
            rows_affected=rows_affected,
            details=details_json,
            errors=kept_errors or None,
            warnings=kept_warnings or None,
            error_count=len(errors) if error_count is None else error_count,
            warning_count=len(warnings) if warning_count is None else warning_count,
            quality_score=quality_score,
            restores_entry_id=restores_entry_id,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_journal_link(seq, action.value, table, payload_hash, prev_hash),
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "journal_entry_recorded",
            extra={
                "entry_id": seq,
                "action": action.value,
                "table": table,
                "rows_affected": rows_affected,
            },
        )
        return _to_dto(model)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(JournalEntryModel.hash).order_by(JournalEntryModel.seq.desc()).limit(1)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Query path
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: int) -> JournalEntry:
        """Return entry ``entry_id`` or raise JournalEntryNotFoundError."""
        model = self._session.execute(
            select(JournalEntryModel).where(JournalEntryModel.seq == entry_id)
        ).scalar_one_or_none()
        if model is None:
            raise JournalEntryNotFoundError(entry_id)
        return _to_dto(model)

    def list_entries(
        self,
        filters: JournalFilter | None = None,
        *,
        limit: int | None = None,
    ) -> list[JournalEntry]:
        """Entries matching ``filters``, newest first."""
        entries = self._query(filters)
        if limit is not None:
            entries = entries[:limit]
        return entries

    def get_stats(self, filters: JournalFilter | None = None) -> JournalStats:
        """Counts by action and table, issue totals and mean quality score."""
        entries = self._query(filters)
        scores = [e.quality_score for e in entries if e.quality_score is not None]
        timestamps = [e.timestamp for e in entries]
        return JournalStats(
            total_entries=len(entries),
            errors_total=sum(e.error_count for e in entries),
            warnings_total=sum(e.warning_count for e in entries),
            mean_quality_score=(sum(scores) / len(scores)) if scores else None,
            by_action=dict(Counter(e.action.value for e in entries)),
            by_table=dict(Counter(e.table for e in entries)),
            period_start=min(timestamps) if timestamps else None,
            period_end=max(timestamps) if timestamps else None,
        )

    def entity_history(self, table: str, entity_id: str) -> list[JournalEntry]:
        """Every entry touching one entity, oldest first."""
        rows = self._session.execute(
            select(JournalEntryModel)
            .where(
                JournalEntryModel.table_name == table,
                JournalEntryModel.entity_id == str(entity_id),
            )
            .order_by(JournalEntryModel.seq)
        ).scalars()
        return [_to_dto(m) for m in rows]

    def find_restore_of(self, entry_id: int) -> JournalEntry | None:
        """The restore entry that undid ``entry_id``, if any."""
        model = self._session.execute(
            select(JournalEntryModel).where(
                JournalEntryModel.restores_entry_id == entry_id,
                JournalEntryModel.action == JournalAction.RESTORE.value,
            )
        ).scalars().first()
        return _to_dto(model) if model else None

    def _query(self, filters: JournalFilter | None) -> list[JournalEntry]:
        f = filters or JournalFilter()
        stmt = select(JournalEntryModel).order_by(JournalEntryModel.seq.desc())
        if f.business_unit_id is not None:
            stmt = stmt.where(JournalEntryModel.business_unit_id == f.business_unit_id)
        if f.actor_id is not None:
            stmt = stmt.where(JournalEntryModel.actor_id == f.actor_id)
        if f.actions:
            stmt = stmt.where(JournalEntryModel.action.in_([a.value for a in f.actions]))
        if f.tables:
            stmt = stmt.where(JournalEntryModel.table_name.in_(sorted(f.tables)))
        if f.date_from is not None:
            stmt = stmt.where(JournalEntryModel.occurred_at >= ensure_utc(f.date_from))
        if f.date_to is not None:
            stmt = stmt.where(JournalEntryModel.occurred_at <= ensure_utc(f.date_to))
        if f.with_errors is True:
            stmt = stmt.where(JournalEntryModel.error_count > 0)
        elif f.with_errors is False:
            stmt = stmt.where(JournalEntryModel.error_count == 0)

        models = list(self._session.execute(stmt).scalars())
        if f.search:
            needle = f.search.strip().lower()
            models = [m for m in models if needle in _search_text(m)]
        return [_to_dto(m) for m in models]

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(
        self,
        entry_id: int,
        actor_id: str,
        mutator: InverseMutator,
        justification: str | None = None,
    ) -> JournalEntry:
        """
        Undo entry ``entry_id`` with a new ``restore`` entry.

        The inverse mutation goes through ``mutator`` (the commit engine), so
        it is lock-gated like any other write.  The original entry is left
        untouched.
        """
        original = self.get_entry(entry_id)
        if original.action not in RESTORABLE_ACTIONS:
            raise NotRestorableError(entry_id, original.action.value)
        previous = self.find_restore_of(entry_id)
        if previous is not None:
            raise AlreadyRestoredError(entry_id, previous.id)

        restore_entry = mutator.apply_inverse(
            original, actor_id=actor_id, justification=justification
        )
        logger.info(
            "journal_entry_restored",
            extra={"entry_id": entry_id, "restore_entry_id": restore_entry.id},
        )
        return restore_entry

    # ------------------------------------------------------------------
    # Chain validation
    # ------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """Recompute every hash; raise AuditChainBrokenError on mismatch."""
        models = self._session.execute(
            select(JournalEntryModel).order_by(JournalEntryModel.seq)
        ).scalars().all()

        prev: str | None = None
        for model in models:
            if model.prev_hash != prev:
                logger.critical("journal_chain_broken", extra={"entry_id": model.seq})
                raise AuditChainBrokenError(model.seq, prev or "None", model.prev_hash or "None")
            payload_hash = hash_payload(_payload(
                ensure_utc(model.occurred_at), model.actor_id, model.business_unit_id,
                model.rows_affected, model.details, list(model.errors or ()),
                list(model.warnings or ()), model.quality_score, model.restores_entry_id,
            ))
            if model.payload_hash != payload_hash:
                logger.critical("journal_payload_tampered", extra={"entry_id": model.seq})
                raise AuditChainBrokenError(model.seq, payload_hash, model.payload_hash)
            expected = hash_journal_link(
                model.seq, model.action, model.table_name, model.payload_hash, model.prev_hash
            )
            if model.hash != expected:
                logger.critical("journal_chain_broken", extra={"entry_id": model.seq})
                raise AuditChainBrokenError(model.seq, expected, model.hash)
            prev = model.hash

        logger.info("journal_chain_valid", extra={"entry_count": len(models)})
        return True


def _payload(
    occurred_at: Any,
    actor_id: str,
    business_unit_id: str | None,
    rows_affected: int,
    details: dict,
    errors: list,
    warnings: list,
    quality_score: float | None,
    restores_entry_id: int | None,
) -> dict[str, Any]:
    return {
        "occurred_at": occurred_at,
        "actor_id": actor_id,
        "business_unit_id": business_unit_id,
        "rows_affected": rows_affected,
        "details": details,
        "errors": errors,
        "warnings": warnings,
        "quality_score": quality_score,
        "restores_entry_id": restores_entry_id,
    }


def _search_text(model: JournalEntryModel) -> str:
    details: Any = model.details or {}
    return " ".join(
        (model.table_name, model.action, json.dumps(details, ensure_ascii=False, default=str))
    ).lower()
