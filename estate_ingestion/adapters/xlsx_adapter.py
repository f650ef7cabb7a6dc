"""
XLSX table adapter.

Loads the workbook with openpyxl in read-only, data-only mode (formulas
read as their cached values).  The first non-blank row of the sheet is the
header; integral floats are read back as ints, strings are stripped and
dates stay native ``datetime`` values for the coercion layer.
"""

from __future__ import annotations

import io
import zipfile
from typing import Any

import openpyxl

from estate_ingestion.adapters.base import (
    ParseOptions,
    RawTable,
    SourceFormat,
    build_rows,
    is_blank,
    normalize_headers,
    trim_trailing_blank,
)
from estate_kernel.exceptions import EmptyFileError, UnsupportedFormatError


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


class XlsxTableAdapter:
    """Read one worksheet of an .xlsx workbook into a RawTable."""

    source_format = SourceFormat.XLSX

    def parse(self, data: bytes, options: ParseOptions, file_name: str | None = None) -> RawTable:
        try:
            wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
            raise UnsupportedFormatError(f"unreadable workbook: {exc}", file_name) from exc

        try:
            sheet = self._get_sheet(wb, options, file_name)
            values = (
                [_cell_value(v) for v in row]
                for row in sheet.iter_rows(values_only=True)
            )
            header: list[Any] | None = None
            for cells in values:
                if not all(is_blank(c) for c in cells):
                    header = trim_trailing_blank(cells)
                    break
            if header is None:
                raise EmptyFileError(file_name)

            columns = normalize_headers(header)
            rows = build_rows(values, len(columns), options.max_rows)
        finally:
            wb.close()

        if not rows:
            raise EmptyFileError(file_name)

        return RawTable(
            columns=columns,
            rows=rows,
            source_format=SourceFormat.XLSX,
            file_name=file_name,
            size_bytes=len(data),
        )

    def _get_sheet(self, wb: Any, options: ParseOptions, file_name: str | None) -> Any:
        sheet_ref = options.sheet
        try:
            if sheet_ref is None:
                return wb.active if wb.active is not None else wb.worksheets[0]
            if isinstance(sheet_ref, int):
                return wb.worksheets[sheet_ref]
            return wb[sheet_ref]
        except (IndexError, KeyError) as exc:
            raise UnsupportedFormatError(f"worksheet {sheet_ref!r} not found", file_name) from exc
