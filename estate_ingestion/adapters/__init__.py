"""
Tabular parser: bytes of an uploaded file -> RawTable.

``sniff_format`` decides the format from the byte signature; ``parse_table``
enforces the size limits and dispatches to the matching adapter.
"""

from __future__ import annotations

from estate_ingestion.adapters.base import (
    ParseOptions,
    RawTable,
    SourceFormat,
    TableAdapter,
)
from estate_ingestion.adapters.csv_adapter import CsvTableAdapter
from estate_ingestion.adapters.json_adapter import JsonTableAdapter
from estate_ingestion.adapters.xlsx_adapter import XlsxTableAdapter
from estate_kernel.exceptions import (
    EmptyFileError,
    FileTooLargeError,
    UnsupportedFormatError,
)
from estate_kernel.logging_config import get_logger

logger = get_logger("ingestion.parser")

_ZIP_SIGNATURE = b"PK\x03\x04"
_REJECTED_SIGNATURES = (
    (b"%PDF", "PDF documents are not supported"),
    (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1", "legacy .xls workbooks are not supported; save as .xlsx"),
    (b"\x89PNG", "images are not supported"),
    (b"\xff\xd8\xff", "images are not supported"),
    (b"GIF8", "images are not supported"),
)
_UTF8_BOM = b"\xef\xbb\xbf"

ADAPTERS: dict[SourceFormat, TableAdapter] = {
    SourceFormat.CSV: CsvTableAdapter(),
    SourceFormat.JSON: JsonTableAdapter(),
    SourceFormat.XLSX: XlsxTableAdapter(),
}


def sniff_format(data: bytes, file_name: str | None = None) -> SourceFormat:
    """
    Detect the format from the leading bytes.

    Raises EmptyFileError for empty or whitespace-only input and
    UnsupportedFormatError for known binary formats and NUL-bearing bytes.
    """
    if data.startswith(_ZIP_SIGNATURE):
        return SourceFormat.XLSX
    for signature, reason in _REJECTED_SIGNATURES:
        if data.startswith(signature):
            raise UnsupportedFormatError(reason, file_name)
    if b"\x00" in data:
        raise UnsupportedFormatError("binary content", file_name)

    stripped = data[len(_UTF8_BOM):] if data.startswith(_UTF8_BOM) else data
    stripped = stripped.lstrip()
    if not stripped:
        raise EmptyFileError(file_name)
    if stripped[:1] in (b"[", b"{"):
        return SourceFormat.JSON
    return SourceFormat.CSV


def parse_table(
    data: bytes,
    *,
    declared_format: SourceFormat | str | None = None,
    file_name: str | None = None,
    options: ParseOptions | None = None,
) -> RawTable:
    """
    Parse an uploaded file into a RawTable.

    A declared format is honoured, but a binary declaration must match a
    binary signature and vice versa.
    """
    options = options or ParseOptions()
    if len(data) > options.max_file_bytes:
        raise FileTooLargeError("bytes", len(data), options.max_file_bytes)
    if not data:
        raise EmptyFileError(file_name)

    sniffed = sniff_format(data, file_name)
    fmt = sniffed
    if declared_format is not None:
        try:
            declared = SourceFormat(declared_format)
        except ValueError as exc:
            raise UnsupportedFormatError(f"unknown format {declared_format!r}", file_name) from exc
        if declared.is_binary != sniffed.is_binary:
            raise UnsupportedFormatError(
                f"content does not look like {declared.value}", file_name
            )
        fmt = declared

    table = ADAPTERS[fmt].parse(data, options, file_name)
    logger.info(
        "table_parsed",
        extra={
            "file_name": file_name,
            "source_format": fmt.value,
            "column_count": len(table.columns),
            "row_count": table.row_count,
        },
    )
    return table


__all__ = [
    "ADAPTERS",
    "CsvTableAdapter",
    "JsonTableAdapter",
    "ParseOptions",
    "RawTable",
    "SourceFormat",
    "TableAdapter",
    "XlsxTableAdapter",
    "parse_table",
    "sniff_format",
]
