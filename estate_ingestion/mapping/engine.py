"""
Coercion engine: raw cell value -> typed value for one FieldSpec.

Spreadsheet exports from French-locale tools write ``1 234,56 €`` and
``31/12/2024``; XLSX cells arrive already typed.  ``coerce_cell`` accepts
both.  Blank cells coerce to None; whether that is an error is the
validator's decision.  ZERO I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from estate_ingestion.domain.types import FieldSpec, FieldType
from estate_ingestion.mapping.resolver import normalize_header

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")
_SPACES = re.compile(r"[\s\u00a0\u202f]")
_SYMBOLS = re.compile(r"[€$%]|EUR\b", re.IGNORECASE)
_TRUE = frozenset({"true", "yes", "oui", "vrai", "1", "y", "o"})
_FALSE = frozenset({"false", "no", "non", "faux", "0", "n"})


@dataclass(frozen=True)
class CoercionResult:
    """Result of coercing one cell. ``value`` is None for blank cells."""

    success: bool
    value: Any = None
    code: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, value: Any) -> CoercionResult:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, code: str, message: str) -> CoercionResult:
        return cls(success=False, code=code, message=message)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_decimal(value: Any) -> Decimal:
    """
    Parse a locale-formatted number.

    Spaces (including NBSP and narrow NBSP) and currency/percent symbols
    are dropped.  With both separators present the last one is the
    decimal mark; a lone comma is a decimal comma; repeated separators of
    one kind are thousands separators.

    Raises:
        InvalidOperation: not a finite number.
    """
    if isinstance(value, bool):
        raise InvalidOperation(f"boolean {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        s = _SYMBOLS.sub("", _SPACES.sub("", str(value)))
        negative = s.startswith("(") and s.endswith(")")
        if negative:
            s = s[1:-1]
        if "," in s and "." in s:
            if s.rfind(",") > s.rfind("."):
                s = s.replace(".", "").replace(",", ".")
            else:
                s = s.replace(",", "")
        elif s.count(",") == 1:
            s = s.replace(",", ".")
        elif s.count(",") > 1:
            s = s.replace(",", "")
        elif s.count(".") > 1:
            s = s.replace(".", "")
        result = Decimal(s)
        if negative:
            result = -result
    if not result.is_finite():
        raise InvalidOperation(f"non-finite {value!r}")
    return result


def parse_date(value: Any) -> date:
    """Raises ValueError when no accepted format matches."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return datetime.fromisoformat(s.replace("Z", "+00:00")).date()


def _text(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def coerce_cell(value: Any, spec: FieldSpec) -> CoercionResult:
    """Coerce ``value`` to ``spec.data_type``. Pure function."""
    if is_blank(value):
        return CoercionResult.ok(None)

    t = spec.data_type

    if t in (FieldType.STRING, FieldType.CODE):
        return CoercionResult.ok(_text(value))

    if t is FieldType.INTEGER:
        try:
            number = parse_decimal(value)
        except (InvalidOperation, ValueError):
            return CoercionResult.fail("INVALID_INTEGER", f"'{value}' is not an integer")
        if number != number.to_integral_value():
            return CoercionResult.fail("INVALID_INTEGER", f"'{value}' is not a whole number")
        return CoercionResult.ok(int(number))

    if t in (FieldType.DECIMAL, FieldType.MONEY):
        try:
            return CoercionResult.ok(parse_decimal(value))
        except (InvalidOperation, ValueError):
            return CoercionResult.fail("INVALID_DECIMAL", f"'{value}' is not a number")

    if t is FieldType.DATE:
        try:
            return CoercionResult.ok(parse_date(value))
        except (ValueError, TypeError):
            return CoercionResult.fail("INVALID_DATE", f"'{value}' is not a recognised date")

    if t is FieldType.BOOLEAN:
        if isinstance(value, bool):
            return CoercionResult.ok(value)
        low = _text(value).lower()
        if low in _TRUE:
            return CoercionResult.ok(True)
        if low in _FALSE:
            return CoercionResult.ok(False)
        return CoercionResult.fail("INVALID_BOOLEAN", f"'{value}' is not a yes/no value")

    if t is FieldType.ENUM:
        key = normalize_header(_text(value))
        for choice in spec.choices:
            if normalize_header(choice) == key:
                return CoercionResult.ok(choice)
        for alias, choice in spec.choice_aliases:
            if normalize_header(alias) == key:
                return CoercionResult.ok(choice)
        return CoercionResult.fail(
            "INVALID_CHOICE",
            f"'{value}' is not one of {', '.join(spec.choices)}",
        )

    return CoercionResult.fail("UNSUPPORTED_TYPE", f"unsupported field type {t}")
