"""
Import templates: blank XLSX workbooks built from a CategorySchema, and
category detection from an uploaded file's headers.

The data sheet comes first so the XLSX adapter reads it by default.  Its
headers are field names, with REQUIRED_MARKER appended to required ones;
the marker normalizes away when headers are resolved.  An Instructions
sheet lists label, type, requirement and choices per field, and an Example
sheet repeats the headers over one row that passes validation.
"""

from __future__ import annotations

import io
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

import openpyxl
from openpyxl.comments import Comment
from openpyxl.styles import Font

from estate_ingestion.domain.categories import CATEGORY_SCHEMAS, get_schema
from estate_ingestion.domain.rules import AfterField, BetweenFields, InRange
from estate_ingestion.domain.types import (
    CategorySchema,
    FieldSpec,
    FieldType,
    ImportCategory,
)
from estate_ingestion.mapping.resolver import normalize_header

REQUIRED_MARKER = " *"
DATA_SHEET = "Data"
INSTRUCTIONS_SHEET = "Instructions"
EXAMPLE_SHEET = "Example"

# Share of a category's required fields that must appear among the headers.
DETECTION_THRESHOLD = 0.7

_TYPE_HINTS = {
    FieldType.STRING: "Text",
    FieldType.CODE: "Code (upper-cased)",
    FieldType.INTEGER: "Whole number",
    FieldType.DECIMAL: "Number",
    FieldType.MONEY: "Amount",
    FieldType.DATE: "Date (DD/MM/YYYY)",
    FieldType.BOOLEAN: "Yes / No",
    FieldType.ENUM: "One of the choices",
}

_BOLD = Font(bold=True)


def template_headers(schema: CategorySchema) -> list[str]:
    return [
        spec.name + REQUIRED_MARKER if spec.required else spec.name
        for spec in schema.fields
    ]


def _number(spec: FieldSpec, preferred: int) -> int:
    for rule in spec.validators:
        if isinstance(rule, InRange):
            if rule.minimum is not None and preferred < rule.minimum:
                preferred = int(rule.minimum)
            if rule.maximum is not None and preferred > rule.maximum:
                preferred = int(rule.maximum)
    return preferred


def _example_value(spec: FieldSpec, schema: CategorySchema) -> Any:
    period = schema.period
    t = spec.data_type
    if period is not None and spec.name == period.year_field:
        return 2024
    if period is not None and spec.name == period.month_field:
        return 1
    if t is FieldType.STRING:
        return spec.default or f"{spec.display_name} example"
    if t is FieldType.CODE:
        return "A101"
    if t is FieldType.INTEGER:
        return _number(spec, 100)
    if t in (FieldType.DECIMAL, FieldType.MONEY):
        value = Decimal(_number(spec, 100))
        scale = spec.scale
        return value.quantize(Decimal(1).scaleb(-scale)) if scale else value
    if t is FieldType.DATE:
        if any(isinstance(rule, AfterField) for rule in spec.validators):
            return date(2026, 12, 31)
        if any(isinstance(rule, BetweenFields) for rule in spec.validators):
            return date(2025, 6, 30)
        return date(2024, 1, 1)
    if t is FieldType.BOOLEAN:
        return True
    if t is FieldType.ENUM:
        return spec.default if spec.default in spec.choices else spec.choices[0]
    return None


def example_row(schema: CategorySchema) -> list[Any]:
    """One value per field, in schema order."""
    return [_example_value(spec, schema) for spec in schema.fields]


def _write_headers(sheet: Any, schema: CategorySchema, annotate: bool) -> None:
    sheet.append(template_headers(schema))
    for cell, spec in zip(sheet[1], schema.fields):
        cell.font = _BOLD
        if annotate:
            cell.comment = Comment(f"{spec.display_name}: {_TYPE_HINTS[spec.data_type]}", "estate")
        sheet.column_dimensions[cell.column_letter].width = max(14, len(str(cell.value)) + 4)


def _write_instructions(sheet: Any, schema: CategorySchema) -> None:
    sheet.append([f"Import template: {schema.label}"])
    sheet["A1"].font = _BOLD
    sheet.append(["Columns marked * are required. Fill the Data sheet, one row per record."])
    sheet.append([])
    sheet.append(["Column", "Label", "Type", "Required", "Choices"])
    for cell in sheet[4]:
        cell.font = _BOLD
    for spec in schema.fields:
        sheet.append([
            spec.name,
            spec.display_name,
            _TYPE_HINTS[spec.data_type],
            "yes" if spec.required else "no",
            ", ".join(spec.choices),
        ])
    for letter, width in zip("ABCDE", (28, 30, 22, 10, 40)):
        sheet.column_dimensions[letter].width = width


def generate_template_workbook(category: ImportCategory | str) -> openpyxl.Workbook:
    """
    Blank import workbook for ``category``.

    Raises UnknownCategoryError for an unknown category.
    """
    schema = get_schema(category)
    wb = openpyxl.Workbook()
    data = wb.active
    data.title = DATA_SHEET
    _write_headers(data, schema, annotate=True)
    data.freeze_panes = "A2"

    _write_instructions(wb.create_sheet(INSTRUCTIONS_SHEET), schema)

    example = wb.create_sheet(EXAMPLE_SHEET)
    _write_headers(example, schema, annotate=False)
    example.append(example_row(schema))
    return wb


def template_bytes(category: ImportCategory | str) -> bytes:
    buffer = io.BytesIO()
    generate_template_workbook(category).save(buffer)
    return buffer.getvalue()


def _field_keys(spec: FieldSpec) -> set[str]:
    keys = {normalize_header(spec.name), *(normalize_header(a) for a in spec.aliases)}
    if spec.label:
        keys.add(normalize_header(spec.label))
    return keys


def detect_category(headers: Sequence[str]) -> ImportCategory | None:
    """
    Guess the category of a file from its headers.

    A category qualifies when at least DETECTION_THRESHOLD of its required
    fields match a header (by name, label or alias; required markers are
    ignored).  Among qualifying categories the one covering the most
    required fields wins, then the one claiming the most headers, then
    the one whose field names appear verbatim.  None when nothing qualifies.
    """
    keys = {normalize_header(h) for h in headers} - {""}
    if not keys:
        return None

    best: tuple[float, float, int] | None = None
    found: ImportCategory | None = None
    for category, schema in CATEGORY_SCHEMAS.items():
        required = schema.required_fields
        if not required:
            continue
        covered = sum(1 for spec in required if _field_keys(spec) & keys)
        ratio = covered / len(required)
        if ratio < DETECTION_THRESHOLD:
            continue
        claimed = set().union(*(_field_keys(spec) for spec in schema.fields)) & keys
        named = sum(1 for spec in schema.fields if normalize_header(spec.name) in keys)
        score = (ratio, len(claimed) / len(keys), named)
        if best is None or score > best:
            best, found = score, category
    return found
