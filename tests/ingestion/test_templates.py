"""Import templates: workbook layout, example rows and category detection."""

from io import BytesIO

import openpyxl
import pytest

from estate_ingestion.adapters import ParseOptions, parse_table
from estate_ingestion.adapters.templates import (
    DATA_SHEET,
    EXAMPLE_SHEET,
    INSTRUCTIONS_SHEET,
    detect_category,
    generate_template_workbook,
    template_bytes,
    template_headers,
)
from estate_ingestion.domain.categories import CATEGORY_SCHEMAS, RENT_ROLL, RENTS
from estate_ingestion.domain.types import ImportCategory
from estate_ingestion.domain.validators import validate_table
from estate_ingestion.mapping.resolver import resolve_mapping, unmapped_required_fields
from estate_kernel.exceptions import EmptyFileError, UnknownCategoryError

ALL_CATEGORIES = list(CATEGORY_SCHEMAS)


class TestTemplateWorkbook:

    def test_sheets_and_required_markers(self):
        wb = generate_template_workbook(ImportCategory.RENT_ROLL)
        assert wb.sheetnames == [DATA_SHEET, INSTRUCTIONS_SHEET, EXAMPLE_SHEET]
        assert wb.active.title == DATA_SHEET

        headers = [c.value for c in wb[DATA_SHEET][1]]
        assert headers == template_headers(RENT_ROLL)
        assert "lot_reference *" in headers
        assert "minimum_guaranteed_rent" in headers
        assert wb[DATA_SHEET].max_row == 1

    def test_headers_carry_labels(self):
        wb = generate_template_workbook("rent_roll")
        first = wb[DATA_SHEET]["A1"]
        assert first.comment is not None
        assert first.comment.text.startswith("Lot reference:")

    def test_instructions_list_every_field(self):
        wb = generate_template_workbook(ImportCategory.RENT_ROLL)
        rows = list(wb[INSTRUCTIONS_SHEET].iter_rows(min_row=5, values_only=True))
        assert [r[0] for r in rows] == list(RENT_ROLL.field_names)
        by_name = {r[0]: r for r in rows}
        assert by_name["lot_reference"][1] == "Lot reference"
        assert by_name["lot_reference"][3] == "yes"
        assert by_name["lease_end"][3] == "no"
        assert by_name["occupancy_status"][4] == "occupied, vacant, under_works, pre_let"

    def test_blank_data_sheet_is_not_importable(self):
        with pytest.raises(EmptyFileError):
            parse_table(template_bytes(ImportCategory.RENTS), file_name="rents.xlsx")

    def test_unknown_category(self):
        with pytest.raises(UnknownCategoryError):
            generate_template_workbook("parking")

    @pytest.mark.parametrize("category", ALL_CATEGORIES, ids=lambda c: c.value)
    def test_example_row_maps_and_validates(self, category):
        schema = CATEGORY_SCHEMAS[category]
        table = parse_table(
            template_bytes(category),
            file_name="template.xlsx",
            options=ParseOptions(sheet=EXAMPLE_SHEET),
        )
        mapping = resolve_mapping(table.columns, schema)

        assert all(m.is_mapped for m in mapping)
        assert unmapped_required_fields(mapping, schema) == ()
        result = validate_table(table, mapping, schema)
        assert result.is_valid, result.errors
        assert result.total_row_count == 1

    def test_saved_workbook_reopens(self):
        wb = openpyxl.load_workbook(BytesIO(template_bytes(ImportCategory.RENTS)))
        example = wb[EXAMPLE_SHEET]
        row = [c.value for c in example[2]]
        assert row[:3] == ["A101", 2024, 1]


class TestDetectCategory:

    @pytest.mark.parametrize("category", ALL_CATEGORIES, ids=lambda c: c.value)
    def test_own_template_headers(self, category):
        assert detect_category(template_headers(CATEGORY_SCHEMAS[category])) is category

    def test_french_export_headers(self):
        assert detect_category(["Lot", "Locataire", "Surface", "Loyer"]) is ImportCategory.RENT_ROLL

    def test_labels_are_recognised(self):
        headers = [spec.display_name for spec in RENTS.fields]
        assert detect_category(headers) is ImportCategory.RENTS

    def test_required_markers_ignored(self):
        assert detect_category(["Lot *", "Annee *", "Mois *"]) is ImportCategory.RENTS

    def test_below_threshold(self):
        assert detect_category(["Lot", "Locataire"]) is None

    @pytest.mark.parametrize("headers", [[], ["", "*"], ["foo", "bar"]])
    def test_nothing_recognised(self, headers):
        assert detect_category(headers) is None
