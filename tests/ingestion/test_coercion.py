"""Cell coercion: locale numbers, dates, booleans, enums."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

import pytest

from estate_ingestion.domain.categories import RENT_ROLL, RENTS
from estate_ingestion.domain.types import FieldSpec, FieldType
from estate_ingestion.mapping.engine import coerce_cell, parse_date, parse_decimal

INTEGER = FieldSpec("n", FieldType.INTEGER)
DECIMAL = FieldSpec("x", FieldType.DECIMAL)
MONEY = FieldSpec("m", FieldType.MONEY)
DATE = FieldSpec("d", FieldType.DATE)
BOOLEAN = FieldSpec("b", FieldType.BOOLEAN)
CODE = FieldSpec("c", FieldType.CODE)


class TestParseDecimal:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1 234,56 €", Decimal("1234.56")),
            ("1 234,56", Decimal("1234.56")),
            ("1 234,5", Decimal("1234.5")),
            ("1.234,56", Decimal("1234.56")),
            ("1,234.56", Decimal("1234.56")),
            ("1,234,567", Decimal("1234567")),
            ("1.234.567", Decimal("1234567")),
            ("12,5", Decimal("12.5")),
            ("12.5", Decimal("12.5")),
            ("(12)", Decimal("-12")),
            ("-3", Decimal("-3")),
            ("5,5 %", Decimal("5.5")),
            ("100 EUR", Decimal("100")),
            (42, Decimal(42)),
            (0.1, Decimal("0.1")),
        ],
    )
    def test_locale_formats(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", True, "1,2.3.4x"])
    def test_rejected(self, raw):
        with pytest.raises((InvalidOperation, ValueError)):
            parse_decimal(raw)


class TestParseDate:

    @pytest.mark.parametrize(
        "raw",
        ["31/12/2024", "2024-12-31", "31-12-2024", "31.12.2024", "2024/12/31", "2024-12-31T08:30:00Z"],
    )
    def test_accepted_formats(self, raw):
        assert parse_date(raw) == date(2024, 12, 31)

    def test_native_values(self):
        assert parse_date(datetime(2024, 3, 1, 10, 0)) == date(2024, 3, 1)
        assert parse_date(date(2024, 3, 1)) == date(2024, 3, 1)

    def test_day_first(self):
        assert parse_date("01/02/2024") == date(2024, 2, 1)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_date("31/02/2024")


class TestCoerceCell:

    @pytest.mark.parametrize("blank", [None, "", "   "])
    def test_blank_coerces_to_none(self, blank):
        result = coerce_cell(blank, INTEGER)
        assert result.success
        assert result.value is None

    def test_integer(self):
        assert coerce_cell("1 200", INTEGER).value == 1200
        assert coerce_cell(12.0, INTEGER).value == 12

    def test_integer_rejects_fraction(self):
        result = coerce_cell("12,5", INTEGER)
        assert not result.success
        assert result.code == "INVALID_INTEGER"

    def test_decimal_failure_message(self):
        result = coerce_cell("n/a", DECIMAL)
        assert not result.success
        assert result.code == "INVALID_DECIMAL"
        assert result.message == "'n/a' is not a number"

    def test_money(self):
        assert coerce_cell("2 500,00 €", MONEY).value == Decimal("2500.00")

    def test_date_failure(self):
        result = coerce_cell("tomorrow", DATE)
        assert result.code == "INVALID_DATE"

    @pytest.mark.parametrize("raw", ["oui", "Yes", "VRAI", "1", True])
    def test_boolean_true(self, raw):
        assert coerce_cell(raw, BOOLEAN).value is True

    @pytest.mark.parametrize("raw", ["non", "No", "faux", "0", False])
    def test_boolean_false(self, raw):
        assert coerce_cell(raw, BOOLEAN).value is False

    def test_boolean_invalid(self):
        assert coerce_cell("peut-être", BOOLEAN).code == "INVALID_BOOLEAN"

    def test_code_keeps_text(self):
        assert coerce_cell(" a-12 ", CODE).value == "a-12"
        assert coerce_cell(101.0, CODE).value == "101"

    def test_enum_canonical_and_alias(self):
        spec = RENT_ROLL.field("occupancy_status")
        assert coerce_cell("Vacant", spec).value == "vacant"
        assert coerce_cell("Occupé", spec).value == "occupied"
        assert coerce_cell("en travaux", spec).value == "under_works"
        assert coerce_cell("pre let", spec).value == "pre_let"

    def test_enum_invalid(self):
        spec = RENTS.field("status")
        result = coerce_cell("perhaps", spec)
        assert result.code == "INVALID_CHOICE"
        assert "paid, partial, unpaid" in result.message
