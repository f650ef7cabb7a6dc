"""
Table adapter protocol and the RawTable DTO.

Contract:
    TableAdapter.parse() turns a whole uploaded file (bytes) into a RawTable:
    the header row becomes ``columns``; every other non-blank row becomes a
    dict keyed by column position.  Missing trailing cells read as ``""``,
    extra cells are ignored.

Architecture: estate_ingestion/adapters. Pure; no DB or kernel services.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Protocol, Sequence, runtime_checkable

from estate_kernel.exceptions import FileTooLargeError

DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_ROWS = 50_000
DEFAULT_CSV_DELIMITERS = (";", ",", "\t", "|")


class SourceFormat(str, Enum):
    """Supported upload formats."""

    CSV = "csv"
    JSON = "json"
    XLSX = "xlsx"

    @property
    def is_binary(self) -> bool:
        return self is SourceFormat.XLSX


@dataclass(frozen=True)
class ParseOptions:
    """
    Parser limits and format hints.

    ``delimiter`` forces the CSV delimiter; otherwise it is sniffed among
    ``csv_delimiters``.  ``sheet`` picks an XLSX worksheet by index or name
    (active sheet by default).
    """

    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_rows: int = DEFAULT_MAX_ROWS
    csv_delimiters: tuple[str, ...] = DEFAULT_CSV_DELIMITERS
    delimiter: str | None = None
    sheet: int | str | None = None


@dataclass(frozen=True)
class RawTable:
    """Parsed upload. Transient; never persisted. Do not mutate ``rows``."""

    columns: tuple[str, ...]
    rows: tuple[dict[int, Any], ...]
    source_format: SourceFormat
    file_name: str | None = None
    size_bytes: int = 0
    detected_delimiter: str | None = None
    encoding: str | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_index(self, column: str) -> int:
        return self.columns.index(column)

    def cell(self, row_index: int, column: str) -> Any:
        return self.rows[row_index].get(self.column_index(column), "")

    def preview(self, n: int = 5) -> list[dict[str, Any]]:
        """First ``n`` rows keyed by column name."""
        return [
            {name: row.get(i, "") for i, name in enumerate(self.columns)}
            for row in self.rows[:n]
        ]


@runtime_checkable
class TableAdapter(Protocol):
    """Reads one source format into a RawTable."""

    source_format: SourceFormat

    def parse(self, data: bytes, options: ParseOptions, file_name: str | None = None) -> RawTable:
        ...


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def normalize_headers(cells: Sequence[Any]) -> tuple[str, ...]:
    """Blank headers become ``Column_N`` (1-based); duplicates get ``_1``, ``_2``."""
    headers: list[str] = []
    for i, value in enumerate(cells):
        key = " ".join(str(value).split()) if not is_blank(value) else ""
        key = key or f"Column_{i + 1}"
        base = key
        cnt = 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    return tuple(headers)


def trim_trailing_blank(cells: Sequence[Any]) -> list[Any]:
    values = list(cells)
    while values and is_blank(values[-1]):
        values.pop()
    return values


def build_rows(
    raw_rows: Iterable[Sequence[Any]],
    width: int,
    max_rows: int,
) -> tuple[dict[int, Any], ...]:
    """
    Align data rows to ``width`` columns and drop fully blank rows.

    Raises FileTooLargeError once more than ``max_rows`` data rows are seen.
    """
    rows: list[dict[int, Any]] = []
    for cells in raw_rows:
        values = list(cells[:width])
        if all(is_blank(v) for v in values):
            continue
        values.extend([""] * (width - len(values)))
        rows.append({i: ("" if v is None else v) for i, v in enumerate(values)})
        if len(rows) > max_rows:
            raise FileTooLargeError("rows", len(rows), max_rows)
    return tuple(rows)
