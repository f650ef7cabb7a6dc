"""
Table validator: RawTable + mapping + schema -> ValidationResult.

Per row: coerce every mapped cell, flag blank required values, run the
field rules, then check batch uniqueness of the natural key.  Required
fields without a source column produce one error per row.

Architecture: estate_ingestion/domain. ZERO I/O. Context-dependent rules
receive a ValidationContext; without one they are skipped.
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

from estate_ingestion.adapters.base import RawTable
from estate_ingestion.domain.types import (
    CategorySchema,
    ColumnMapping,
    RowIssue,
    Severity,
    ValidationContext,
    ValidationResult,
)
from estate_ingestion.mapping.engine import coerce_cell, is_blank
from estate_ingestion.mapping.resolver import target_columns, unmapped_required_fields

DEFAULT_CHUNK_SIZE = 500

ProgressCallback = Callable[[int], None]


def quality_score(valid: int, total: int) -> float:
    """100 * valid / total; 0 for an empty batch."""
    if total <= 0:
        return 0.0
    return 100.0 * valid / total


def mapped_columns(
    table: RawTable,
    mapping: Sequence[ColumnMapping],
    schema: CategorySchema,
) -> dict[str, tuple[int, str]]:
    """target field -> (column index, column name), restricted to schema fields present in the table."""
    result: dict[str, tuple[int, str]] = {}
    for target, column in target_columns(mapping).items():
        if schema.has_field(target) and column in table.columns:
            result[target] = (table.column_index(column), column)
    return result


def coerce_row(
    row: dict[int, Any],
    row_index: int,
    columns: dict[str, tuple[int, str]],
    schema: CategorySchema,
) -> tuple[dict[str, Any], list[RowIssue]]:
    """Coerced values of one row plus its coercion and blank-required errors."""
    values: dict[str, Any] = {}
    issues: list[RowIssue] = []
    for field_name, (index, column) in columns.items():
        spec = schema.field(field_name)
        raw = row.get(index, "")
        if is_blank(raw):
            if spec.required:
                issues.append(RowIssue(
                    row_index=row_index,
                    column=column,
                    message=f"Row {row_index + 1}, column '{column}': "
                            f"required value '{spec.display_name}' is empty",
                    severity=Severity.ERROR,
                    code="MISSING_REQUIRED_VALUE",
                ))
            continue
        result = coerce_cell(raw, spec)
        if not result.success:
            issues.append(RowIssue(
                row_index=row_index,
                column=column,
                message=f"Row {row_index + 1}, column '{column}': {result.message}",
                severity=Severity.ERROR,
                code=result.code or "INVALID_VALUE",
            ))
            continue
        values[field_name] = result.value
    return values, issues


def _rule_issues(
    values: dict[str, Any],
    row_index: int,
    columns: dict[str, tuple[int, str]],
    schema: CategorySchema,
    context: ValidationContext | None,
) -> list[RowIssue]:
    issues: list[RowIssue] = []
    for spec in schema.fields:
        value = values.get(spec.name)
        if value is None:
            continue
        for rule in spec.validators:
            message = rule.check(spec.name, value, values, context)
            if message:
                issues.append(RowIssue(
                    row_index=row_index,
                    column=columns[spec.name][1],
                    message=f"Row {row_index + 1}: {message}",
                    severity=rule.severity,
                    code=rule.code,
                ))
    return issues


def _key_of(values: dict[str, Any], natural_key: tuple[str, ...]) -> tuple | None:
    parts = tuple(values.get(name) for name in natural_key)
    if not natural_key or any(p is None for p in parts):
        return None
    return tuple(p.upper() if isinstance(p, str) else p for p in parts)


def validate_table(
    table: RawTable,
    mapping: Sequence[ColumnMapping],
    schema: CategorySchema,
    *,
    context: ValidationContext | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: ProgressCallback | None = None,
) -> ValidationResult:
    """
    Validate every row of ``table``.

    Postconditions:
        - is_valid iff there are no errors and at least one row.
        - quality_score == 100 * valid_row_count / total_row_count (0 when empty).
        - Every row carries one REQUIRED_FIELD_UNMAPPED error per required
          field without a source column.
    """
    columns = mapped_columns(table, mapping, schema)
    missing = unmapped_required_fields(
        [ColumnMapping(column, target) for target, (_, column) in columns.items()],
        schema,
    )
    total = table.row_count
    chunk_size = max(1, chunk_size)

    errors: list[RowIssue] = []
    warnings: list[RowIssue] = []
    rejected: set[int] = set()
    first_seen: dict[tuple, int] = {}

    for start in range(0, total, chunk_size):
        for i in range(start, min(start + chunk_size, total)):
            issues = [
                RowIssue(
                    row_index=i,
                    column=spec.name,
                    message=f"Row {i + 1}: required field '{spec.display_name}' is not mapped",
                    severity=Severity.ERROR,
                    code="REQUIRED_FIELD_UNMAPPED",
                )
                for spec in missing
            ]
            values, coercion_issues = coerce_row(table.rows[i], i, columns, schema)
            issues.extend(coercion_issues)
            issues.extend(_rule_issues(values, i, columns, schema, context))

            key = _key_of(values, schema.natural_key)
            if key is not None:
                if key in first_seen:
                    issues.append(RowIssue(
                        row_index=i,
                        column=columns[schema.natural_key[0]][1],
                        message=f"Row {i + 1}: duplicates row {first_seen[key] + 1} "
                                f"on {', '.join(schema.natural_key)}",
                        severity=Severity.ERROR,
                        code="DUPLICATE_VALUE_IN_BATCH",
                    ))
                else:
                    first_seen[key] = i

            for issue in issues:
                if issue.is_error:
                    errors.append(issue)
                    rejected.add(i)
                else:
                    warnings.append(issue)

        if on_progress is not None:
            on_progress(round(100 * min(start + chunk_size, total) / total))

    valid = total - len(rejected)
    return ValidationResult(
        is_valid=not errors and total > 0,
        valid_row_count=valid,
        total_row_count=total,
        errors=tuple(errors),
        warnings=tuple(warnings),
        quality_score=quality_score(valid, total),
        rejected_rows=frozenset(rejected),
        has_required_field_violation=bool(missing),
    )
