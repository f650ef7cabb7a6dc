"""Mapping resolver: header normalization, alias matching, manual overrides."""

import pytest

from estate_ingestion.domain.categories import RENT_ROLL, RENTS, get_schema
from estate_ingestion.domain.types import ColumnMapping, ImportCategory
from estate_ingestion.mapping.resolver import (
    mapping_coverage,
    normalize_header,
    resolve_mapping,
    set_mapping,
    target_columns,
    unmapped_required_fields,
)
from estate_kernel.exceptions import (
    DuplicateTargetFieldError,
    UnknownCategoryError,
    UnknownSourceColumnError,
    UnknownTargetFieldError,
)


def _targets(mapping):
    return {m.source_column: m.target_field for m in mapping}


class TestNormalizeHeader:

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Référence  Lot", "referencelot"),
            ("Surface (m²)", "surfacem2"),
            ("N° lot", "nlot"),
            ("loyer_annuel", "loyerannuel"),
            ("  TENANT ", "tenant"),
        ],
    )
    def test_normalization(self, header, expected):
        assert normalize_header(header) == expected


class TestResolveMapping:

    def test_french_rent_roll_headers(self):
        mapping = resolve_mapping(
            ("N° Lot", "Locataire", "Surface m²", "Loyer", "Date début bail", "Commentaire"),
            RENT_ROLL,
        )
        assert _targets(mapping) == {
            "N° Lot": "lot_reference",
            "Locataire": "tenant_name",
            "Surface m²": "surface_gla",
            "Loyer": "minimum_guaranteed_rent",
            "Date début bail": "lease_start",
            "Commentaire": None,
        }

    def test_field_names_match_directly(self):
        mapping = resolve_mapping(("lot_reference", "tenant_name", "surface_gla"), RENT_ROLL)
        assert all(m.is_mapped for m in mapping)

    def test_first_matching_column_wins(self):
        mapping = resolve_mapping(("Lot", "Ref lot", "Locataire"), RENT_ROLL)
        assert _targets(mapping) == {
            "Lot": "lot_reference",
            "Ref lot": None,
            "Locataire": "tenant_name",
        }

    def test_every_column_gets_an_entry_in_order(self):
        columns = ("x", "Lot", "y")
        mapping = resolve_mapping(columns, RENT_ROLL)
        assert tuple(m.source_column for m in mapping) == columns

    def test_no_fuzzy_matching(self):
        mapping = resolve_mapping(("Locatair", "Surfaces"), RENT_ROLL)
        assert not any(m.is_mapped for m in mapping)

    def test_rents_aliases(self):
        mapping = resolve_mapping(("Lot", "Année", "Mois", "Loyer appelé", "Loyer encaissé"), RENTS)
        assert _targets(mapping) == {
            "Lot": "lot_id",
            "Année": "period_year",
            "Mois": "period_month",
            "Loyer appelé": "rent_called",
            "Loyer encaissé": "rent_collected",
        }


class TestSetMapping:

    def test_assign_unmapped_column(self):
        mapping = resolve_mapping(("Ref", "Locataire"), RENT_ROLL)
        updated = set_mapping(mapping, "Ref", "lot_reference", RENT_ROLL)
        assert _targets(updated)["Ref"] == "lot_reference"
        # Original untouched
        assert _targets(mapping)["Ref"] is None

    def test_clear_mapping(self):
        mapping = resolve_mapping(("Lot", "Locataire"), RENT_ROLL)
        updated = set_mapping(mapping, "Locataire", None, RENT_ROLL)
        assert _targets(updated)["Locataire"] is None

    def test_reassign_same_column_to_same_field(self):
        mapping = resolve_mapping(("Lot",), RENT_ROLL)
        updated = set_mapping(mapping, "Lot", "lot_reference", RENT_ROLL)
        assert updated == mapping

    def test_unknown_source_column(self):
        mapping = resolve_mapping(("Lot",), RENT_ROLL)
        with pytest.raises(UnknownSourceColumnError) as exc_info:
            set_mapping(mapping, "Nope", "tenant_name", RENT_ROLL)
        assert exc_info.value.source_column == "Nope"

    def test_unknown_target_field(self):
        mapping = resolve_mapping(("Lot",), RENT_ROLL)
        with pytest.raises(UnknownTargetFieldError) as exc_info:
            set_mapping(mapping, "Lot", "colour", RENT_ROLL)
        assert exc_info.value.category == "rent_roll"

    def test_duplicate_target_field(self):
        mapping = resolve_mapping(("Lot", "Ref"), RENT_ROLL)
        with pytest.raises(DuplicateTargetFieldError) as exc_info:
            set_mapping(mapping, "Ref", "lot_reference", RENT_ROLL)
        assert exc_info.value.existing_column == "Lot"


class TestMappingHelpers:

    def test_unmapped_required_fields(self):
        mapping = resolve_mapping(("Lot", "Locataire"), RENT_ROLL)
        missing = unmapped_required_fields(mapping, RENT_ROLL)
        assert [spec.name for spec in missing] == ["surface_gla"]

    def test_coverage(self):
        mapping = (ColumnMapping("Lot", "lot_reference"), ColumnMapping("x", None))
        assert mapping_coverage(mapping, RENT_ROLL) == pytest.approx(1 / len(RENT_ROLL.fields))

    def test_target_columns(self):
        mapping = (ColumnMapping("Lot", "lot_reference"), ColumnMapping("x", None))
        assert target_columns(mapping) == {"lot_reference": "Lot"}


class TestSchemaRegistry:

    def test_every_category_has_a_schema(self):
        for category in ImportCategory:
            schema = get_schema(category)
            assert schema.category is category
            assert schema.required_fields

    def test_lookup_by_value(self):
        assert get_schema("rents") is RENTS

    def test_unknown_category(self):
        with pytest.raises(UnknownCategoryError):
            get_schema("parking")

    def test_aliases_do_not_collide_within_a_schema(self):
        for category in ImportCategory:
            schema = get_schema(category)
            seen: dict[str, str] = {}
            for spec in schema.fields:
                for key in {normalize_header(spec.name), *map(normalize_header, spec.aliases)}:
                    assert seen.setdefault(key, spec.name) == spec.name, (category, key)
