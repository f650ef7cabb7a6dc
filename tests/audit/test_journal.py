"""
Journal: append path, filters, statistics, entity history, restore and
hash chain validation.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from estate_kernel.domain.journal import JournalDetails, JournalFilter
from estate_kernel.domain.periods import PeriodKey
from estate_kernel.exceptions import (
    AlreadyRestoredError,
    AuditChainBrokenError,
    ImmutabilityViolationError,
    JournalEntryNotFoundError,
    NotRestorableError,
    PeriodLockedError,
)
from estate_kernel.models.journal import JournalAction, JournalEntryModel
from estate_kernel.services.journal_service import JournalService
from estate_kernel.services.sequence_service import SequenceService

UNIT = "BU-1"
JANUARY = PeriodKey(2024, 1)
LOT = {"lot_reference": "B1", "tenant_name": "Opticien", "surface_gla": Decimal("55.50")}


def _record(journal, action=JournalAction.IMPORT, table="rent_roll", **kwargs):
    kwargs.setdefault("actor_id", "tester")
    return journal.record(action, table, **kwargs)


def _only(journal, action):
    return journal.list_entries(JournalFilter(actions=frozenset({action})))


class TestRecord:

    def test_ids_strictly_increase(self, journal):
        ids = [_record(journal).id for _ in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_entry_fields(self, journal, deterministic_clock):
        entry = _record(
            journal,
            actor_id="manager",
            rows_affected=12,
            details=JournalDetails(business_unit_id=UNIT, source_file="loyers.csv"),
            errors=["Row 3: bad"],
            warnings=["Row 4: odd", "Row 5: odd"],
            quality_score=91.5,
        )
        assert entry.timestamp == deterministic_clock.now()
        assert entry.actor_id == "manager"
        assert entry.business_unit_id == UNIT
        assert entry.rows_affected == 12
        assert entry.error_count == 1
        assert entry.warning_count == 2
        assert entry.has_errors
        assert journal.get_entry(entry.id) == entry

    def test_issue_messages_capped_counts_exact(self, session, deterministic_clock):
        journal = JournalService(session, deterministic_clock, issue_limit=2)
        entry = _record(journal, errors=[f"Row {i}: bad" for i in range(1, 6)])
        assert entry.errors == ("Row 1: bad", "Row 2: bad")
        assert entry.error_count == 5

    def test_unknown_entry(self, journal):
        with pytest.raises(JournalEntryNotFoundError):
            journal.get_entry(999)

    def test_entries_cannot_be_modified(self, session, journal):
        entry = _record(journal)
        model = session.execute(
            select(JournalEntryModel).where(JournalEntryModel.seq == entry.id)
        ).scalar_one()
        model.rows_affected = 999
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_entries_cannot_be_deleted(self, session, journal):
        entry = _record(journal)
        model = session.execute(
            select(JournalEntryModel).where(JournalEntryModel.seq == entry.id)
        ).scalar_one()
        session.delete(model)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestQueries:

    @pytest.fixture
    def populated(self, journal, deterministic_clock):
        _record(journal, actor_id="alice", details=JournalDetails(business_unit_id=UNIT, source_file="loyers_mars.csv"),
                quality_score=100.0)
        deterministic_clock.advance(3600)
        _record(journal, JournalAction.VALIDATE, "rents", actor_id="bob",
                details=JournalDetails(business_unit_id=UNIT), errors=["Row 1: bad"], quality_score=50.0)
        deterministic_clock.advance(3600)
        _record(journal, JournalAction.CLOSE, "closed_periods", actor_id="alice",
                details=JournalDetails(business_unit_id="BU-2"))
        return journal

    def test_newest_first(self, populated):
        assert [e.action for e in populated.list_entries()] == [
            JournalAction.CLOSE, JournalAction.VALIDATE, JournalAction.IMPORT,
        ]

    def test_limit(self, populated):
        assert len(populated.list_entries(limit=2)) == 2

    @pytest.mark.parametrize(
        "filters, expected",
        [
            (JournalFilter(business_unit_id=UNIT), [JournalAction.VALIDATE, JournalAction.IMPORT]),
            (JournalFilter(actor_id="alice"), [JournalAction.CLOSE, JournalAction.IMPORT]),
            (JournalFilter(tables=frozenset({"rents"})), [JournalAction.VALIDATE]),
            (JournalFilter(with_errors=True), [JournalAction.VALIDATE]),
            (JournalFilter(with_errors=False), [JournalAction.CLOSE, JournalAction.IMPORT]),
            (JournalFilter(search="MARS"), [JournalAction.IMPORT]),
            (JournalFilter(search="closed_periods"), [JournalAction.CLOSE]),
            (
                JournalFilter(actor_id="alice", business_unit_id=UNIT),
                [JournalAction.IMPORT],
            ),
        ],
    )
    def test_filters(self, populated, filters, expected):
        assert [e.action for e in populated.list_entries(filters)] == expected

    def test_date_range(self, populated, deterministic_clock):
        start = deterministic_clock.now() - timedelta(hours=1)
        entries = populated.list_entries(JournalFilter(date_from=start, date_to=start))
        assert [e.action for e in entries] == [JournalAction.VALIDATE]

    def test_stats(self, populated, deterministic_clock):
        stats = populated.get_stats()
        assert stats.total_entries == 3
        assert stats.errors_total == 1
        assert stats.warnings_total == 0
        assert stats.mean_quality_score == 75.0
        assert stats.by_action == {"import": 1, "validate": 1, "close": 1}
        assert stats.by_table == {"rent_roll": 1, "rents": 1, "closed_periods": 1}
        assert stats.period_end == deterministic_clock.now()
        assert stats.period_start == deterministic_clock.now() - timedelta(hours=2)

    def test_stats_of_empty_selection(self, populated):
        stats = populated.get_stats(JournalFilter(actor_id="nobody"))
        assert stats.total_entries == 0
        assert stats.mean_quality_score is None
        assert stats.period_start is None


class TestEntityHistory:

    def test_history_oldest_first(self, commit_engine, journal):
        record = commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        commit_engine.update_record("rent_roll", record.id, "tenant_name", "Krys", actor_id="manager")
        commit_engine.delete_record("rent_roll", record.id, actor_id="manager")
        other = commit_engine.create_record(
            "rent_roll", UNIT, {**LOT, "lot_reference": "B2"}, actor_id="manager", period=JANUARY
        )

        history = journal.entity_history("rent_roll", str(record.id))
        assert [e.action for e in history] == [
            JournalAction.CREATE, JournalAction.UPDATE, JournalAction.DELETE,
        ]
        assert journal.entity_history("rent_roll", str(other.id))[0].action is JournalAction.CREATE

    def test_entity_id_is_a_column(self, session, journal):
        entry = _record(journal, action=JournalAction.CREATE, details=JournalDetails(entity_id="E-1"))
        _record(journal, action=JournalAction.CREATE, details=JournalDetails(entity_id="E-2"))
        _record(journal, action=JournalAction.IMPORT)

        stored = session.execute(
            select(JournalEntryModel.entity_id).order_by(JournalEntryModel.seq)
        ).scalars().all()
        assert stored == ["E-1", "E-2", None]
        assert [e.id for e in journal.entity_history("rent_roll", "E-1")] == [entry.id]

    def test_history_reads_the_column_not_the_details(self, session, journal):
        entry = _record(journal, action=JournalAction.CREATE, details=JournalDetails(entity_id="E-1"))
        session.execute(
            update(JournalEntryModel.__table__)
            .where(JournalEntryModel.__table__.c.seq == entry.id)
            .values(details={"entity_id": "E-9"})
        )
        session.expire_all()

        assert [e.id for e in journal.entity_history("rent_roll", "E-1")] == [entry.id]
        assert journal.entity_history("rent_roll", "E-9") == []

    def test_history_is_scoped_to_the_table(self, journal):
        _record(journal, action=JournalAction.CREATE, table="rents", details=JournalDetails(entity_id="E-1"))
        assert journal.entity_history("rent_roll", "E-1") == []


class TestRestore:

    def test_restore_create_deletes_record(self, commit_engine, journal, sql_store):
        record = commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        (created,) = _only(journal, JournalAction.CREATE)

        restore = journal.restore(created.id, "auditor", commit_engine, "entered twice")

        assert sql_store.get("rent_roll", record.id) is None
        assert restore.action is JournalAction.RESTORE
        assert restore.restores_entry_id == created.id
        assert restore.actor_id == "auditor"
        assert restore.details.justification == "entered twice"
        assert journal.find_restore_of(created.id) == restore
        # the original entry is untouched
        assert journal.get_entry(created.id) == created

    def test_restore_update_puts_old_value_back(self, commit_engine, journal, sql_store):
        record = commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        commit_engine.update_record("rent_roll", record.id, "tenant_name", "Krys", actor_id="manager")
        (updated,) = _only(journal, JournalAction.UPDATE)

        restore = journal.restore(updated.id, "auditor", commit_engine)

        assert sql_store.get("rent_roll", record.id).values["tenant_name"] == "Opticien"
        assert restore.details.old_value == "Krys"
        assert restore.details.new_value == "Opticien"

    def test_restore_update_of_previously_absent_field(self, commit_engine, journal, sql_store):
        record = commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        commit_engine.update_record("rent_roll", record.id, "activity_code", "RETAIL", actor_id="manager")
        (updated,) = _only(journal, JournalAction.UPDATE)

        journal.restore(updated.id, "auditor", commit_engine)
        assert "activity_code" not in sql_store.get("rent_roll", record.id).values

    def test_restore_delete_reinserts_snapshot(self, commit_engine, journal, sql_store):
        record = commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        commit_engine.delete_record("rent_roll", record.id, actor_id="manager")
        (deleted,) = _only(journal, JournalAction.DELETE)

        journal.restore(deleted.id, "auditor", commit_engine)

        restored = sql_store.get("rent_roll", record.id)
        assert restored.values == record.values
        assert restored.period == JANUARY

    def test_restored_at_most_once(self, commit_engine, journal):
        commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        (created,) = _only(journal, JournalAction.CREATE)
        first = journal.restore(created.id, "auditor", commit_engine)

        with pytest.raises(AlreadyRestoredError) as exc_info:
            journal.restore(created.id, "auditor", commit_engine)
        assert exc_info.value.code == "ALREADY_RESTORED"
        assert len(_only(journal, JournalAction.RESTORE)) == 1
        assert journal.find_restore_of(created.id).id == first.id

    @pytest.mark.parametrize("action", [JournalAction.IMPORT, JournalAction.CLOSE, JournalAction.VALIDATE])
    def test_non_restorable_actions(self, commit_engine, journal, action):
        entry = _record(journal, action)
        with pytest.raises(NotRestorableError):
            journal.restore(entry.id, "auditor", commit_engine)

    def test_restore_is_lock_gated(self, commit_engine, journal, governor):
        commit_engine.create_record("rent_roll", UNIT, LOT, actor_id="manager", period=JANUARY)
        (created,) = _only(journal, JournalAction.CREATE)
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")

        with pytest.raises(PeriodLockedError):
            journal.restore(created.id, "auditor", commit_engine)
        assert journal.find_restore_of(created.id) is None


class TestChainValidation:

    def test_valid_chain(self, journal, captured_logs):
        for _ in range(4):
            _record(journal, details=JournalDetails(business_unit_id=UNIT), quality_score=87.5)
        assert journal.validate_chain()
        assert any(r["message"] == "journal_chain_valid" for r in captured_logs())

    def test_empty_journal_is_valid(self, journal):
        assert journal.validate_chain()

    def test_chain_survives_reload(self, session, journal):
        for _ in range(3):
            _record(journal, details=JournalDetails(business_unit_id=UNIT), errors=["Row 1: bad"])
        session.expire_all()
        assert journal.validate_chain()

    def test_tampered_payload_detected(self, session, journal, captured_logs):
        entries = [_record(journal) for _ in range(3)]
        session.execute(
            update(JournalEntryModel.__table__)
            .where(JournalEntryModel.__table__.c.seq == entries[1].id)
            .values(rows_affected=999)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            journal.validate_chain()
        assert exc_info.value.code == "AUDIT_CHAIN_BROKEN"
        assert any(r["message"] == "journal_payload_tampered" for r in captured_logs())

    def test_broken_link_detected(self, session, journal, captured_logs):
        entries = [_record(journal) for _ in range(3)]
        session.execute(
            update(JournalEntryModel.__table__)
            .where(JournalEntryModel.__table__.c.seq == entries[2].id)
            .values(prev_hash="0" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            journal.validate_chain()
        assert any(r["message"] == "journal_chain_broken" for r in captured_logs())


class TestSequence:

    def test_counters_are_independent(self, session):
        sequences = SequenceService(session)
        assert sequences.current_value("other") is None
        assert [sequences.next_value("other") for _ in range(3)] == [1, 2, 3]
        assert sequences.current_value("other") == 3
        assert sequences.next_value("another") == 1

    def test_journal_ids_follow_the_counter(self, session, journal):
        entry = _record(journal)
        assert SequenceService(session).current_value(SequenceService.JOURNAL_ENTRY) == entry.id
