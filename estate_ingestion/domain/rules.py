"""
Business rules evaluated on coerced field values.

Each rule is bound to a field through ``FieldSpec.validators`` and carries
its own severity.  ``check`` returns a message when the rule is violated,
None otherwise; absent (None) values are never checked.

Architecture: estate_ingestion/domain. ZERO I/O. Context-dependent rules
(``references``) ask a checker supplied through ValidationContext and are
skipped when none is given.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping

from estate_ingestion.domain.types import Severity, ValidationContext


class BusinessRule:
    """Base class; subclasses set ``code`` and implement ``check``."""

    code: str = "RULE"
    severity: Severity = Severity.ERROR

    def check(
        self,
        field_name: str,
        value: Any,
        row: Mapping[str, Any],
        context: ValidationContext | None,
    ) -> str | None:
        raise NotImplementedError


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _comparable(value: Any) -> Any:
    return _as_date(value) or value


@dataclass(frozen=True)
class NonNegative(BusinessRule):
    severity: Severity = Severity.ERROR
    code = "RULE_NON_NEGATIVE"

    def check(self, field_name, value, row, context):
        if isinstance(value, (int, Decimal)) and value < 0:
            return f"'{field_name}' must not be negative (got {value})"
        return None


@dataclass(frozen=True)
class InRange(BusinessRule):
    minimum: Decimal | int | None = None
    maximum: Decimal | int | None = None
    severity: Severity = Severity.ERROR
    code = "RULE_OUT_OF_RANGE"

    def check(self, field_name, value, row, context):
        if not isinstance(value, (int, Decimal)):
            return None
        if self.minimum is not None and value < self.minimum:
            return f"'{field_name}' must be at least {self.minimum} (got {value})"
        if self.maximum is not None and value > self.maximum:
            return f"'{field_name}' must be at most {self.maximum} (got {value})"
        return None


@dataclass(frozen=True)
class AfterField(BusinessRule):
    other: str = ""
    severity: Severity = Severity.ERROR
    code = "RULE_NOT_AFTER"

    def check(self, field_name, value, row, context):
        other = row.get(self.other)
        if other is None:
            return None
        if _comparable(value) <= _comparable(other):
            return f"'{field_name}' must be after '{self.other}'"
        return None


@dataclass(frozen=True)
class BetweenFields(BusinessRule):
    start: str = ""
    end: str = ""
    severity: Severity = Severity.WARNING
    code = "RULE_NOT_BETWEEN"

    def check(self, field_name, value, row, context):
        start, end = row.get(self.start), row.get(self.end)
        v = _comparable(value)
        if start is not None and v < _comparable(start):
            return f"'{field_name}' is before '{self.start}'"
        if end is not None and v > _comparable(end):
            return f"'{field_name}' is after '{self.end}'"
        return None


@dataclass(frozen=True)
class NotGreaterThanField(BusinessRule):
    other: str = ""
    severity: Severity = Severity.WARNING
    code = "RULE_EXCEEDS_FIELD"

    def check(self, field_name, value, row, context):
        other = row.get(self.other)
        if other is None or not isinstance(value, (int, Decimal)):
            return None
        if value > other:
            return f"'{field_name}' ({value}) exceeds '{self.other}' ({other})"
        return None


@dataclass(frozen=True)
class PlausibleDate(BusinessRule):
    min_year: int = 1900
    max_year: int = 2100
    severity: Severity = Severity.ERROR
    code = "RULE_IMPLAUSIBLE_DATE"

    def check(self, field_name, value, row, context):
        d = _as_date(value)
        if d is not None and not self.min_year <= d.year <= self.max_year:
            return f"'{field_name}' year {d.year} is outside {self.min_year}-{self.max_year}"
        return None


@dataclass(frozen=True)
class References(BusinessRule):
    table: str = ""
    severity: Severity = Severity.WARNING
    code = "RULE_UNKNOWN_REFERENCE"

    def check(self, field_name, value, row, context):
        if context is None or context.reference_exists is None or not context.business_unit_id:
            return None
        key = str(value).strip().upper() if isinstance(value, str) else str(value)
        if not context.reference_exists(self.table, context.business_unit_id, key):
            return f"'{field_name}' {value!r} has no matching {self.table} record"
        return None


# Factory functions, used by the category registry.


def non_negative(severity: Severity = Severity.ERROR) -> BusinessRule:
    return NonNegative(severity=severity)


def in_range(minimum=None, maximum=None, severity: Severity = Severity.ERROR) -> BusinessRule:
    return InRange(minimum=minimum, maximum=maximum, severity=severity)


def after_field(other: str, severity: Severity = Severity.ERROR) -> BusinessRule:
    return AfterField(other=other, severity=severity)


def between_fields(start: str, end: str, severity: Severity = Severity.WARNING) -> BusinessRule:
    return BetweenFields(start=start, end=end, severity=severity)


def not_greater_than_field(other: str, severity: Severity = Severity.WARNING) -> BusinessRule:
    return NotGreaterThanField(other=other, severity=severity)


def plausible_date(severity: Severity = Severity.ERROR) -> BusinessRule:
    return PlausibleDate(severity=severity)


def references(table: str, severity: Severity = Severity.WARNING) -> BusinessRule:
    return References(table=table, severity=severity)
