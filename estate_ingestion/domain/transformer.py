"""
Transformer: validated rows -> DomainRecord.

Deterministic and side-effect free: the same table, mapping, schema and
batch key always produce the same record sequence, ids included (uuid5
over batch key, table and row index).  ZERO I/O.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence
from uuid import NAMESPACE_URL, UUID, uuid5

from estate_ingestion.adapters.base import RawTable
from estate_ingestion.domain.types import (
    CategorySchema,
    ColumnMapping,
    DomainRecord,
    FieldSpec,
    FieldType,
    to_json_safe,
)
from estate_ingestion.domain.validators import coerce_row, mapped_columns
from estate_kernel.domain.periods import PeriodKey
from estate_kernel.exceptions import InvalidPeriodError, RecordTransformError

RECORD_NAMESPACE = uuid5(NAMESPACE_URL, "urn:estate-import-core:records")


def record_id(batch_key: str, table: str, row_index: int) -> UUID:
    return uuid5(RECORD_NAMESPACE, f"{batch_key}:{table}:{row_index}")


def normalize_value(value: Any, spec: FieldSpec) -> Any:
    """Collapse whitespace, upper-case codes, quantize decimals ROUND_HALF_UP."""
    if value is None:
        return None
    if spec.data_type is FieldType.STRING:
        return " ".join(str(value).split())
    if spec.data_type is FieldType.CODE:
        return " ".join(str(value).split()).upper()
    if spec.data_type in (FieldType.DECIMAL, FieldType.MONEY) and spec.scale is not None:
        quantum = Decimal(1).scaleb(-spec.scale)
        return Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    return value


def natural_key_of(values: dict[str, Any], schema: CategorySchema, fallback: str) -> str:
    if not schema.natural_key:
        return fallback
    parts = []
    for name in schema.natural_key:
        part = to_json_safe(values.get(name))
        parts.append("" if part is None else str(part).upper())
    return "|".join(parts)


def resolve_period(
    values: dict[str, Any],
    schema: CategorySchema,
    default_period: PeriodKey | None,
) -> PeriodKey | None:
    source = schema.period
    if source is not None:
        if source.date_field and values.get(source.date_field) is not None:
            return PeriodKey.of(values[source.date_field])
        if source.year_field and values.get(source.year_field) is not None:
            month = values.get(source.month_field) if source.month_field else None
            return PeriodKey(values[source.year_field], month or source.default_month)
    return default_period


def transform_rows(
    table: RawTable,
    mapping: Sequence[ColumnMapping],
    schema: CategorySchema,
    *,
    business_unit_id: str,
    batch_key: str,
    default_period: PeriodKey | None = None,
    skip_rows: Iterable[int] = (),
) -> tuple[DomainRecord, ...]:
    """
    Transform every row not in ``skip_rows``.

    Raises:
        RecordTransformError: a row fed to it does not coerce, misses a
            required value or yields an invalid period.
    """
    skipped = frozenset(skip_rows)
    columns = mapped_columns(table, mapping, schema)
    records: list[DomainRecord] = []

    for i, row in enumerate(table.rows):
        if i in skipped:
            continue
        raw_values, issues = coerce_row(row, i, columns, schema)
        if issues:
            first = issues[0]
            raise RecordTransformError(i, first.column, first.message)

        values: dict[str, Any] = {}
        for spec in schema.fields:
            value = normalize_value(raw_values.get(spec.name), spec)
            if value is None:
                value = spec.default
            if value is None:
                if spec.required:
                    raise RecordTransformError(i, spec.name, "required value is missing")
                continue
            values[spec.name] = value

        rid = record_id(batch_key, schema.table, i)
        try:
            period = resolve_period(values, schema, default_period)
        except InvalidPeriodError as exc:
            raise RecordTransformError(i, "period", str(exc)) from exc

        records.append(DomainRecord(
            id=rid,
            table=schema.table,
            business_unit_id=business_unit_id,
            natural_key=natural_key_of(values, schema, str(rid)),
            period=period,
            values=values,
            row_index=i,
        ))

    return tuple(records)
