"""
LockGovernor: closing, temporary reopening, expiry, automatic closing and
notices.
"""

from datetime import date, datetime, timezone

import pytest

from estate_kernel.domain.journal import JournalFilter
from estate_kernel.domain.periods import ClosingPolicy, PeriodKey, PeriodState
from estate_kernel.exceptions import (
    AlreadyClosedError,
    InvalidPeriodError,
    JustificationRequiredError,
    PeriodLockedError,
    PeriodNotClosedError,
    ReopenNotAllowedError,
)
from estate_kernel.models.journal import JournalAction
from estate_kernel.services.lock_governor import AUTO_CLOSE_ACTOR, LockGovernor

UNIT = "BU-1"


def _at(year, month, day, hour=12):
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


class TestClose:

    def test_open_by_default(self, governor):
        assert governor.period_state(UNIT, 2024, 1) is PeriodState.OPEN
        assert governor.is_writable(UNIT, 2024, 1)
        governor.assert_writable(UNIT, 2024, 1)

    def test_close_locks_period(self, governor):
        info = governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")

        assert info.state is PeriodState.CLOSED
        assert info.period == PeriodKey(2024, 1)
        assert info.closed_by_id == "controller"
        assert not governor.is_writable(UNIT, 2024, 1)
        with pytest.raises(PeriodLockedError) as exc_info:
            governor.assert_writable(UNIT, 2024, 1)
        assert exc_info.value.code == "PERIOD_LOCKED"

    def test_lock_is_per_unit_and_month(self, governor):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        assert governor.is_writable("BU-2", 2024, 1)
        assert governor.is_writable(UNIT, 2024, 2)

    def test_close_is_journaled(self, governor, journal):
        governor.close_period(UNIT, 2024, 3, "Quarter closing", "controller")

        (entry,) = journal.list_entries(JournalFilter(actions=frozenset({JournalAction.CLOSE})))
        assert entry.table == "closed_periods"
        assert entry.actor_id == "controller"
        assert entry.business_unit_id == UNIT
        assert entry.details.justification == "Quarter closing"
        assert entry.details.extra == {"year": 2024, "month": 3}

    def test_close_twice(self, governor):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        with pytest.raises(AlreadyClosedError):
            governor.close_period(UNIT, 2024, 1, "again", "controller")

    @pytest.mark.parametrize("justification", [None, "", "   "])
    def test_justification_required(self, governor, justification):
        with pytest.raises(JustificationRequiredError):
            governor.close_period(UNIT, 2024, 1, justification, "controller")

    def test_justification_optional_by_policy(self, session, journal, deterministic_clock):
        governor = LockGovernor(
            session, journal, deterministic_clock, ClosingPolicy(justification_required=False)
        )
        assert governor.close_period(UNIT, 2024, 1, None, "controller").state is PeriodState.CLOSED

    @pytest.mark.parametrize("year, month", [(2024, 0), (2024, 13), (1800, 1), (2024, True)])
    def test_invalid_period(self, governor, year, month):
        with pytest.raises(InvalidPeriodError):
            governor.period_state(UNIT, year, month)


class TestReopen:

    def test_reopen_makes_writable(self, governor, journal):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        info = governor.reopen_temporarily(UNIT, 2024, 1, "controller", "late invoice")

        assert info.state is PeriodState.TEMPORARILY_OPEN
        assert info.reopened_by_id == "controller"
        assert info.reopen_expires_at is None
        assert governor.is_writable(UNIT, 2024, 1)
        # reopening is recorded in the unlock history, not in the journal
        assert journal.get_stats().by_action == {"close": 1}

    def test_unlock_history(self, governor, deterministic_clock):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        governor.reopen_temporarily(UNIT, 2024, 1, "controller", "late invoice", duration_hours=24)

        (unlock,) = governor.unlock_history(UNIT, 2024, 1)
        assert unlock.actor_id == "controller"
        assert unlock.justification == "late invoice"
        assert unlock.duration_hours == 24
        assert unlock.unlocked_at == deterministic_clock.now()
        assert governor.unlock_history(UNIT, 2024, 2) == []

    def test_reopening_expires(self, governor, deterministic_clock):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        info = governor.reopen_temporarily(UNIT, 2024, 1, "controller", duration_hours=2)
        assert info.reopen_expires_at == _at(2024, 1, 1, 14)

        deterministic_clock.advance(2 * 3600 - 1)
        assert governor.is_writable(UNIT, 2024, 1)
        deterministic_clock.advance(1)
        assert governor.period_state(UNIT, 2024, 1) is PeriodState.CLOSED

    def test_default_duration_from_policy(self, session, journal, deterministic_clock):
        governor = LockGovernor(
            session, journal, deterministic_clock, ClosingPolicy(default_reopen_hours=48)
        )
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        info = governor.reopen_temporarily(UNIT, 2024, 1, "controller")
        assert info.reopen_expires_at == _at(2024, 1, 3)

    def test_reopen_open_period(self, governor):
        with pytest.raises(PeriodNotClosedError):
            governor.reopen_temporarily(UNIT, 2024, 1, "controller")

    def test_reopen_twice(self, governor):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        governor.reopen_temporarily(UNIT, 2024, 1, "controller")
        with pytest.raises(PeriodNotClosedError):
            governor.reopen_temporarily(UNIT, 2024, 1, "controller")

    def test_reopen_forbidden_by_policy(self, session, journal, deterministic_clock):
        governor = LockGovernor(session, journal, deterministic_clock, ClosingPolicy(allow_reopen=False))
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        with pytest.raises(ReopenNotAllowedError):
            governor.reopen_temporarily(UNIT, 2024, 1, "controller")

    def test_reclose_reopened_period(self, governor, journal):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        governor.reopen_temporarily(UNIT, 2024, 1, "controller")
        info = governor.close_period(UNIT, 2024, 1, "Corrections done", "auditor")

        assert info.state is PeriodState.CLOSED
        assert info.closed_by_id == "auditor"
        assert info.reopen_expires_at is None
        assert journal.get_stats().by_action == {"close": 2}
        assert len(governor.list_closed_periods(UNIT)) == 1

    def test_list_closed_periods(self, governor):
        governor.close_period(UNIT, 2024, 2, "Month-end closing", "controller")
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        governor.close_period("BU-2", 2024, 1, "Month-end closing", "controller")
        assert [i.period.code for i in governor.list_closed_periods(UNIT)] == ["2024-01", "2024-02"]
        assert len(governor.list_closed_periods()) == 3


class TestAutomaticClosing:

    def test_closes_previous_month_on_closing_day(self, governor, deterministic_clock):
        deterministic_clock.set_time(_at(2024, 2, 15))
        (info,) = governor.close_elapsed_periods(UNIT)

        assert info.period == PeriodKey(2024, 1)
        assert info.closed_by_id == AUTO_CLOSE_ACTOR
        assert info.justification == "Automatic closing on 2024-02-15"
        assert not governor.is_writable(UNIT, 2024, 1)
        assert governor.is_writable(UNIT, 2024, 2)

    def test_nothing_before_closing_day(self, governor, deterministic_clock):
        deterministic_clock.set_time(_at(2024, 2, 14))
        assert governor.close_elapsed_periods(UNIT) == []
        assert governor.is_writable(UNIT, 2024, 1)

    def test_idempotent(self, governor, deterministic_clock):
        deterministic_clock.set_time(_at(2024, 2, 20))
        governor.close_elapsed_periods(UNIT)
        assert governor.close_elapsed_periods(UNIT) == []

    def test_reopened_period_left_alone(self, governor, deterministic_clock):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        governor.reopen_temporarily(UNIT, 2024, 1, "controller")
        deterministic_clock.set_time(_at(2024, 2, 20))
        assert governor.close_elapsed_periods(UNIT) == []
        assert governor.period_state(UNIT, 2024, 1) is PeriodState.TEMPORARILY_OPEN

    def test_disabled_by_policy(self, session, journal, deterministic_clock):
        governor = LockGovernor(session, journal, deterministic_clock, ClosingPolicy(auto_close=False))
        deterministic_clock.set_time(_at(2024, 2, 20))
        assert governor.close_elapsed_periods(UNIT) == []

    def test_closing_day_clamped_to_month_length(self, session, journal, deterministic_clock):
        governor = LockGovernor(session, journal, deterministic_clock, ClosingPolicy(auto_close_day=31))
        deterministic_clock.set_time(_at(2024, 2, 29))
        (info,) = governor.close_elapsed_periods(UNIT)
        assert info.period == PeriodKey(2024, 1)


class TestUpcomingClosings:

    def test_notice_within_window(self, governor, deterministic_clock):
        deterministic_clock.set_time(_at(2024, 2, 12))
        (notice,) = governor.upcoming_closings(UNIT)
        assert notice.period == PeriodKey(2024, 1)
        assert notice.closes_on == date(2024, 2, 15)
        assert notice.days_remaining == 3

    def test_no_notice_outside_window(self, governor, deterministic_clock):
        deterministic_clock.set_time(_at(2024, 2, 11))
        assert governor.upcoming_closings(UNIT) == []

    def test_closing_day_itself(self, governor, deterministic_clock):
        deterministic_clock.set_time(_at(2024, 2, 15))
        (notice,) = governor.upcoming_closings(UNIT)
        assert notice.days_remaining == 0

    def test_already_closed_period_not_announced(self, governor, deterministic_clock):
        governor.close_period(UNIT, 2024, 1, "Month-end closing", "controller")
        deterministic_clock.set_time(_at(2024, 2, 13))
        assert governor.upcoming_closings(UNIT) == []

    def test_notifications_disabled(self, session, journal, deterministic_clock):
        governor = LockGovernor(session, journal, deterministic_clock, ClosingPolicy(notify=False))
        deterministic_clock.set_time(_at(2024, 2, 13))
        assert governor.upcoming_closings(UNIT) == []
