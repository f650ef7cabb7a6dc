"""
JSON table adapter.

Accepts an array of objects, an object wrapping that array under ``data``
or ``results``, or a single object (one row).  Columns are the union of
keys in first-seen order; non-object array items are skipped and nested
values are kept as-is.
"""

from __future__ import annotations

import json
from typing import Any

from estate_ingestion.adapters.base import ParseOptions, RawTable, SourceFormat, build_rows
from estate_ingestion.adapters.csv_adapter import decode_text
from estate_kernel.exceptions import EmptyFileError, UnsupportedFormatError

_WRAPPER_KEYS = ("data", "results")


def _records(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            return [payload]
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def _all_keys(records: list[dict[str, Any]]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for record in records:
        for key in record:
            seen.setdefault(str(key), None)
    return tuple(seen)


class JsonTableAdapter:
    """Read a JSON document into a RawTable."""

    source_format = SourceFormat.JSON

    def parse(self, data: bytes, options: ParseOptions, file_name: str | None = None) -> RawTable:
        text, encoding = decode_text(data, file_name)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise UnsupportedFormatError(f"invalid JSON: {exc.msg}", file_name) from exc

        records = _records(payload)
        columns = _all_keys(records)
        if not columns:
            raise EmptyFileError(file_name)

        keyed = ({str(k): v for k, v in record.items()} for record in records)
        rows = build_rows(
            ([record.get(key, "") for key in columns] for record in keyed),
            len(columns),
            options.max_rows,
        )
        if not rows:
            raise EmptyFileError(file_name)

        return RawTable(
            columns=columns,
            rows=rows,
            source_format=SourceFormat.JSON,
            file_name=file_name,
            size_bytes=len(data),
            encoding=encoding,
        )
