"""
Mapping resolver: source headers -> schema fields.

Matching is exact on normalized text (accents stripped, lower-cased,
alphanumerics only) against each field's name and declared aliases.
There is no fuzzy matching; ambiguous or unknown headers stay unmapped for
the actor to assign.  ZERO I/O.
"""

from __future__ import annotations

import unicodedata
from typing import Sequence

from estate_ingestion.domain.types import CategorySchema, ColumnMapping, FieldSpec
from estate_kernel.exceptions import (
    DuplicateTargetFieldError,
    UnknownSourceColumnError,
)


def normalize_header(text: object) -> str:
    """'Référence  Lot' -> 'referencelot'."""
    decomposed = unicodedata.normalize("NFKD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(ch for ch in stripped.lower() if ch.isalnum())


def _match_keys(spec: FieldSpec) -> set[str]:
    return {normalize_header(spec.name), *(normalize_header(a) for a in spec.aliases)}


def resolve_mapping(columns: Sequence[str], schema: CategorySchema) -> tuple[ColumnMapping, ...]:
    """
    Propose a mapping for every source column.

    The first matching column claims the field; later columns matching
    the same field stay unmapped.  A header equal to one field's name and
    another field's alias goes to the field it names.
    """
    lookup: dict[str, str] = {}
    for spec in schema.fields:
        lookup.setdefault(normalize_header(spec.name), spec.name)
    for spec in schema.fields:
        for key in _match_keys(spec):
            lookup.setdefault(key, spec.name)

    claimed: set[str] = set()
    result: list[ColumnMapping] = []
    for column in columns:
        target = lookup.get(normalize_header(column))
        if target is not None and target in claimed:
            target = None
        if target is not None:
            claimed.add(target)
        result.append(ColumnMapping(source_column=column, target_field=target))
    return tuple(result)


def set_mapping(
    mapping: Sequence[ColumnMapping],
    source_column: str,
    target_field: str | None,
    schema: CategorySchema,
) -> tuple[ColumnMapping, ...]:
    """
    Return a new mapping with ``source_column`` assigned to ``target_field``.

    Raises:
        UnknownSourceColumnError: column not in the mapping.
        UnknownTargetFieldError: field not in the schema.
        DuplicateTargetFieldError: field already claimed by another column.
    """
    if not any(m.source_column == source_column for m in mapping):
        raise UnknownSourceColumnError(source_column)
    if target_field is not None:
        schema.field(target_field)
        for m in mapping:
            if m.target_field == target_field and m.source_column != source_column:
                raise DuplicateTargetFieldError(target_field, m.source_column)

    return tuple(
        ColumnMapping(source_column=m.source_column, target_field=target_field)
        if m.source_column == source_column
        else m
        for m in mapping
    )


def unmapped_required_fields(
    mapping: Sequence[ColumnMapping],
    schema: CategorySchema,
) -> tuple[FieldSpec, ...]:
    mapped = {m.target_field for m in mapping if m.target_field}
    return tuple(spec for spec in schema.required_fields if spec.name not in mapped)


def mapping_coverage(mapping: Sequence[ColumnMapping], schema: CategorySchema) -> float:
    """Share of schema fields that have a source column, in [0, 1]."""
    if not schema.fields:
        return 0.0
    mapped = {m.target_field for m in mapping if m.target_field}
    return len(mapped & set(schema.field_names)) / len(schema.fields)


def target_columns(mapping: Sequence[ColumnMapping]) -> dict[str, str]:
    """target field -> source column."""
    return {m.target_field: m.source_column for m in mapping if m.target_field}
