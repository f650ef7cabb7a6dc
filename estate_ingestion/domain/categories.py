"""
Category schema registry.

One closed CategorySchema per ImportCategory.  Field names are English
snake_case; the French headers found in property-management exports are
declared as aliases and matched after normalization (see
mapping.resolver.normalize_header).  Adding a category means adding an
enum member and a schema here.
"""

from __future__ import annotations

from estate_ingestion.domain.rules import (
    after_field,
    between_fields,
    in_range,
    non_negative,
    not_greater_than_field,
    plausible_date,
    references,
)
from estate_ingestion.domain.types import (
    CategorySchema,
    FieldSpec,
    FieldType,
    ImportCategory,
    PeriodSource,
    Severity,
)
from estate_kernel.exceptions import UnknownCategoryError

S = FieldType

_YEAR_RANGE = in_range(2000, 2100)
_MONTH_RANGE = in_range(1, 12)
_YEAR_MONTH = PeriodSource(year_field="period_year", month_field="period_month")


def _year(name: str = "period_year", required: bool = True) -> FieldSpec:
    return FieldSpec(
        name, S.INTEGER, required=required, label="Year",
        aliases=("annee", "year", "exercice"), validators=(_YEAR_RANGE,),
    )


def _month(name: str = "period_month", required: bool = True) -> FieldSpec:
    return FieldSpec(
        name, S.INTEGER, required=required, label="Month",
        aliases=("mois", "month"), validators=(_MONTH_RANGE,),
    )


def _lot(required: bool = True, *rules) -> FieldSpec:
    return FieldSpec(
        "lot_id", S.CODE, required=required, label="Lot",
        aliases=("lot", "numero_lot", "n_lot", "ref_lot", "reference_lot"),
        validators=tuple(rules),
    )


def _tenant(required: bool = True) -> FieldSpec:
    return FieldSpec(
        "tenant_name", S.STRING, required=required, label="Tenant",
        aliases=("locataire", "enseigne", "preneur", "tenant"),
    )


RENT_ROLL = CategorySchema(
    category=ImportCategory.RENT_ROLL,
    label="Rent roll",
    table="rent_roll",
    natural_key=("lot_reference",),
    fields=(
        FieldSpec(
            "lot_reference", S.CODE, required=True, label="Lot reference",
            aliases=("lot", "reference_lot", "ref_lot", "numero_lot", "n_lot"),
        ),
        _tenant(),
        FieldSpec(
            "surface_gla", S.DECIMAL, required=True, label="GLA surface",
            aliases=("surface", "surface_gla", "gla", "surface_m2", "surface_utile"),
            precision=2, validators=(non_negative(),),
        ),
        FieldSpec(
            "minimum_guaranteed_rent", S.MONEY, label="Minimum guaranteed rent",
            aliases=("loyer_minimum_garanti", "lmg", "loyer", "loyer_annuel"),
            validators=(non_negative(),),
        ),
        FieldSpec(
            "lease_start", S.DATE, label="Lease start",
            aliases=("date_debut_bail", "debut_bail", "date_effet"),
            validators=(plausible_date(),),
        ),
        FieldSpec(
            "lease_end", S.DATE, label="Lease end",
            aliases=("date_fin_bail", "fin_bail", "echeance"),
            validators=(plausible_date(), after_field("lease_start")),
        ),
        FieldSpec(
            "activity_code", S.CODE, label="Activity",
            aliases=("activite", "code_activite", "secteur"),
        ),
        FieldSpec(
            "occupancy_status", S.ENUM, label="Occupancy",
            aliases=("statut", "occupation", "statut_occupation"),
            choices=("occupied", "vacant", "under_works", "pre_let"),
            choice_aliases=(
                ("occupe", "occupied"),
                ("loue", "occupied"),
                ("vacant", "vacant"),
                ("libre", "vacant"),
                ("en_travaux", "under_works"),
                ("travaux", "under_works"),
                ("pre_loue", "pre_let"),
            ),
            default="occupied",
        ),
    ),
)

RENTS = CategorySchema(
    category=ImportCategory.RENTS,
    label="Rents",
    table="rents",
    natural_key=("lot_id", "period_year", "period_month"),
    period=_YEAR_MONTH,
    fields=(
        _lot(True, references("rent_roll")),
        _year(),
        _month(),
        FieldSpec(
            "rent_called", S.MONEY, label="Rent called",
            aliases=("loyer_appele", "appele", "quittance"),
            validators=(non_negative(),),
        ),
        FieldSpec(
            "rent_collected", S.MONEY, label="Rent collected",
            aliases=("loyer_encaisse", "encaisse", "encaissement"),
            validators=(non_negative(), not_greater_than_field("rent_called")),
        ),
        FieldSpec(
            "charges_called", S.MONEY, label="Charges called",
            aliases=("charges_appelees", "provisions_appelees"),
        ),
        FieldSpec(
            "charges_collected", S.MONEY, label="Charges collected",
            aliases=("charges_encaissees", "provisions_encaissees"),
        ),
        FieldSpec(
            "status", S.ENUM, label="Payment status",
            aliases=("statut", "statut_paiement", "etat"),
            choices=("paid", "partial", "unpaid"),
            choice_aliases=(
                ("paye", "paid"),
                ("regle", "paid"),
                ("partiel", "partial"),
                ("impaye", "unpaid"),
            ),
        ),
    ),
)

FOOT_TRAFFIC = CategorySchema(
    category=ImportCategory.FOOT_TRAFFIC,
    label="Foot traffic",
    table="foot_traffic",
    natural_key=("date", "zone"),
    period=PeriodSource(date_field="date"),
    fields=(
        FieldSpec(
            "date", S.DATE, required=True, label="Date",
            aliases=("jour", "date_comptage"), validators=(plausible_date(),),
        ),
        FieldSpec(
            "total_entries", S.INTEGER, required=True, label="Entries",
            aliases=("entrees", "frequentation", "visiteurs", "nombre_entrees"),
            validators=(non_negative(),),
        ),
        FieldSpec("zone", S.STRING, label="Zone", aliases=("secteur", "porte", "acces")),
    ),
)

REVENUE = CategorySchema(
    category=ImportCategory.REVENUE,
    label="Tenant revenue",
    table="revenue",
    natural_key=("lot_id", "period_year", "period_month"),
    period=_YEAR_MONTH,
    fields=(
        _lot(),
        _tenant(),
        _year(),
        _month(),
        FieldSpec(
            "declared_revenue", S.MONEY, required=True, label="Declared revenue",
            aliases=("chiffre_affaires", "ca", "ca_declare", "ca_ht"),
            validators=(non_negative(Severity.WARNING),),
        ),
    ),
)

CHARGES = CategorySchema(
    category=ImportCategory.CHARGES,
    label="Service charges",
    table="charges",
    natural_key=("period_year", "charge_category"),
    period=PeriodSource(year_field="period_year", default_month=12),
    fields=(
        _year(),
        FieldSpec(
            "charge_category", S.STRING, required=True, label="Charge category",
            aliases=("poste", "nature", "categorie", "poste_charge"),
        ),
        FieldSpec(
            "budget_amount", S.MONEY, label="Budget",
            aliases=("budget", "montant_budget"),
        ),
        FieldSpec(
            "actual_amount", S.MONEY, required=True, label="Actual",
            aliases=("reel", "montant_reel", "realise"),
        ),
        FieldSpec(
            "rebillable_amount", S.MONEY, label="Rebillable",
            aliases=("refacturable", "montant_refacturable"),
            validators=(not_greater_than_field("actual_amount"),),
        ),
    ),
)

LEASE = CategorySchema(
    category=ImportCategory.LEASE,
    label="Leases",
    table="lease",
    natural_key=("lot_id", "start_date"),
    fields=(
        _lot(),
        _tenant(),
        FieldSpec(
            "start_date", S.DATE, required=True, label="Start date",
            aliases=("date_debut", "debut", "date_effet"),
            validators=(plausible_date(),),
        ),
        FieldSpec(
            "end_date", S.DATE, required=True, label="End date",
            aliases=("date_fin", "fin", "echeance"),
            validators=(plausible_date(), after_field("start_date")),
        ),
        FieldSpec(
            "break_date", S.DATE, label="Break date",
            aliases=("date_break", "prochaine_echeance_triennale", "triennale"),
            validators=(between_fields("start_date", "end_date"),),
        ),
        FieldSpec(
            "annual_rent", S.MONEY, required=True, label="Annual rent",
            aliases=("loyer_annuel", "loyer"),
            validators=(non_negative(),),
        ),
    ),
)

WORKS = CategorySchema(
    category=ImportCategory.WORKS,
    label="Works",
    table="works",
    natural_key=("reference",),
    fields=(
        FieldSpec(
            "reference", S.CODE, required=True, label="Reference",
            aliases=("ref", "code", "numero"),
        ),
        FieldSpec(
            "label", S.STRING, required=True, label="Label",
            aliases=("libelle", "intitule", "description"),
        ),
        FieldSpec(
            "category", S.ENUM, required=True, label="Category",
            aliases=("type", "categorie", "nature"),
            choices=("capex", "maintenance", "renovation", "compliance"),
            choice_aliases=(
                ("investissement", "capex"),
                ("entretien", "maintenance"),
                ("renovation", "renovation"),
                ("mise_en_conformite", "compliance"),
                ("conformite", "compliance"),
            ),
        ),
        FieldSpec(
            "budget_amount", S.MONEY, label="Budget",
            aliases=("budget", "montant"), validators=(non_negative(),),
        ),
        FieldSpec(
            "status", S.ENUM, label="Status",
            aliases=("statut", "etat", "avancement"),
            choices=("planned", "in_progress", "completed"),
            choice_aliases=(
                ("prevu", "planned"),
                ("planifie", "planned"),
                ("en_cours", "in_progress"),
                ("termine", "completed"),
                ("realise", "completed"),
            ),
            default="planned",
        ),
    ),
)

BUDGET = CategorySchema(
    category=ImportCategory.BUDGET,
    label="Budget",
    table="budget",
    natural_key=("line_item", "year"),
    period=PeriodSource(year_field="year", default_month=12),
    fields=(
        FieldSpec(
            "line_item", S.STRING, required=True, label="Line item",
            aliases=("poste", "ligne", "libelle", "rubrique"),
        ),
        _year("year"),
        FieldSpec(
            "amount", S.MONEY, required=True, label="Amount",
            aliases=("montant", "budget"),
        ),
    ),
)

VALUATION = CategorySchema(
    category=ImportCategory.VALUATION,
    label="Valuations",
    table="valuation",
    natural_key=("valuation_date",),
    period=PeriodSource(date_field="valuation_date"),
    fields=(
        FieldSpec(
            "valuation_date", S.DATE, required=True, label="Valuation date",
            aliases=("date_expertise", "date_valorisation", "date"),
            validators=(plausible_date(),),
        ),
        FieldSpec(
            "market_value", S.MONEY, required=True, label="Market value",
            aliases=("valeur_venale", "valeur_expertise", "valeur"),
            validators=(non_negative(),),
        ),
        FieldSpec(
            "cap_rate", S.DECIMAL, label="Capitalisation rate",
            aliases=("taux_capitalisation", "taux_rendement", "taux"),
            precision=4, validators=(in_range(0, 20, Severity.WARNING),),
        ),
    ),
)

SURFACES = CategorySchema(
    category=ImportCategory.SURFACES,
    label="Surfaces",
    table="surfaces",
    natural_key=("lot_id", "surface_type"),
    fields=(
        _lot(),
        FieldSpec(
            "surface", S.DECIMAL, required=True, label="Surface",
            aliases=("surface_m2", "superficie", "m2"),
            precision=2, validators=(non_negative(),),
        ),
        FieldSpec(
            "surface_type", S.ENUM, label="Surface type",
            aliases=("type_surface", "type"),
            choices=("gla", "common", "storage"),
            choice_aliases=(
                ("glu", "gla"),
                ("parties_communes", "common"),
                ("commune", "common"),
                ("reserve", "storage"),
                ("stockage", "storage"),
            ),
            default="gla",
        ),
    ),
)

ENERGY = CategorySchema(
    category=ImportCategory.ENERGY,
    label="Energy",
    table="energy",
    natural_key=("period_year", "period_month", "energy_type"),
    period=_YEAR_MONTH,
    fields=(
        _year(),
        _month(),
        FieldSpec(
            "energy_type", S.ENUM, required=True, label="Energy type",
            aliases=("type_energie", "fluide", "energie"),
            choices=("electricity", "gas", "water", "heating", "cooling"),
            choice_aliases=(
                ("electricite", "electricity"),
                ("gaz", "gas"),
                ("eau", "water"),
                ("chauffage", "heating"),
                ("froid", "cooling"),
                ("climatisation", "cooling"),
            ),
        ),
        FieldSpec(
            "consumption", S.DECIMAL, required=True, label="Consumption",
            aliases=("consommation", "conso"),
            precision=3, validators=(non_negative(),),
        ),
        FieldSpec("cost", S.MONEY, label="Cost", aliases=("cout", "montant")),
        FieldSpec("unit", S.STRING, label="Unit", aliases=("unite",), default="kWh"),
    ),
)

SATISFACTION = CategorySchema(
    category=ImportCategory.SATISFACTION,
    label="Satisfaction surveys",
    table="satisfaction",
    natural_key=("survey_date",),
    period=PeriodSource(date_field="survey_date"),
    fields=(
        FieldSpec(
            "survey_date", S.DATE, required=True, label="Survey date",
            aliases=("date_enquete", "date"), validators=(plausible_date(),),
        ),
        FieldSpec(
            "overall_score", S.DECIMAL, required=True, label="Overall score",
            aliases=("score", "note_globale", "satisfaction"),
            precision=1, validators=(in_range(0, 100),),
        ),
        FieldSpec(
            "nps", S.INTEGER, label="NPS",
            aliases=("net_promoter_score",),
            validators=(in_range(-100, 100, Severity.WARNING),),
        ),
        FieldSpec(
            "respondent_count", S.INTEGER, label="Respondents",
            aliases=("repondants", "nombre_repondants"),
            validators=(non_negative(),),
        ),
    ),
)

CATEGORY_SCHEMAS: dict[ImportCategory, CategorySchema] = {
    schema.category: schema
    for schema in (
        RENT_ROLL, RENTS, FOOT_TRAFFIC, REVENUE, CHARGES, LEASE,
        WORKS, BUDGET, VALUATION, SURFACES, ENERGY, SATISFACTION,
    )
}


def get_schema(category: ImportCategory | str) -> CategorySchema:
    """Schema of ``category``; raises UnknownCategoryError."""
    try:
        return CATEGORY_SCHEMAS[ImportCategory(category)]
    except ValueError as exc:
        raise UnknownCategoryError(str(category)) from exc


def schema_for_table(table: str) -> CategorySchema:
    for schema in CATEGORY_SCHEMAS.values():
        if schema.table == table:
            return schema
    raise UnknownCategoryError(table)
