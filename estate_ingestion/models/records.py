"""
Property record ORM model.

Contract:
    One generic table holds the records of every category, discriminated
    by ``table_name``.  ``values`` is JSON-safe (Decimal as str, dates as
    ISO strings).  The uniqueness key is (table, unit, natural key, period).
    ``import_file_id`` has no foreign key: the ImportFile row is written
    after the records it describes.

Architecture: estate_ingestion/models. Imports from estate_kernel.db.base only.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from estate_kernel.db.base import TrackedBase, UUIDString


class PropertyRecordModel(TrackedBase):
    """Durable record of one category row."""

    __tablename__ = "property_records"

    __table_args__ = (
        UniqueConstraint(
            "table_name", "business_unit_id", "natural_key", "period_year", "period_month",
            name="uq_property_record_key",
        ),
        Index("ix_property_records_table_unit", "table_name", "business_unit_id"),
        Index("ix_property_records_import_file", "import_file_id"),
    )

    table_name: Mapped[str] = mapped_column(String(50), nullable=False)
    business_unit_id: Mapped[str] = mapped_column(String(100), nullable=False)
    natural_key: Mapped[str] = mapped_column(String(500), nullable=False)
    # 0 when the record carries no period, so the unique key stays total
    period_year: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    import_file_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    values: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<PropertyRecord {self.table_name}:{self.natural_key}>"
