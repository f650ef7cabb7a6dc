"""
CSV table adapter.

Decodes UTF-8 (BOM stripped via utf-8-sig) and falls back to cp1252, the
encoding of most spreadsheet exports from French-locale tools.  The
delimiter is sniffed among the configured candidates by counting them in
the header line; quoted fields are handled by the csv module.
"""

from __future__ import annotations

import csv
import io

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

_ENCODINGS = ("utf-8-sig", "cp1252")


def decode_text(data: bytes, file_name: str | None = None) -> tuple[str, str]:
    """Return (text, encoding). Raises UnsupportedFormatError when nothing decodes."""
    for encoding in _ENCODINGS:
        try:
            return data.decode(encoding), encoding
        except UnicodeDecodeError:
            continue
    raise UnsupportedFormatError("text is neither UTF-8 nor cp1252", file_name)


def sniff_delimiter(text: str, candidates: tuple[str, ...]) -> str:
    """Most frequent candidate in the first non-blank line; ties go to the earlier candidate."""
    header_line = next((line for line in text.splitlines() if line.strip()), "")
    best = candidates[0] if candidates else ","
    best_count = 0
    for delimiter in candidates:
        count = header_line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


class CsvTableAdapter:
    """Read delimited text into a RawTable."""

    source_format = SourceFormat.CSV

    def parse(self, data: bytes, options: ParseOptions, file_name: str | None = None) -> RawTable:
        text, encoding = decode_text(data, file_name)
        delimiter = options.delimiter or sniff_delimiter(text, options.csv_delimiters)

        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
        try:
            header: list[str] | None = None
            for cells in reader:
                if not all(is_blank(c) for c in cells):
                    header = trim_trailing_blank(cells)
                    break
            if header is None:
                raise EmptyFileError(file_name)

            columns = normalize_headers(header)
            rows = build_rows(reader, len(columns), options.max_rows)
        except csv.Error as exc:
            raise UnsupportedFormatError(f"malformed CSV: {exc}", file_name) from exc

        if not rows:
            raise EmptyFileError(file_name)

        return RawTable(
            columns=columns,
            rows=rows,
            source_format=SourceFormat.CSV,
            file_name=file_name,
            size_bytes=len(data),
            detected_delimiter=delimiter,
            encoding=encoding,
        )
