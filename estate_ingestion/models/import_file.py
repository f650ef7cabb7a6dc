"""
Import file and folder ORM models.

Contract:
    ImportFileModel is written once per commit run, after the commit
    engine finishes.  Content is immutable; soft deletion (deleted_at,
    deleted_by_id) is the only permitted change (db/immutability.py).
    ImportFolderModel groups files per business unit.

Architecture: estate_ingestion/models. Imports from estate_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from estate_kernel.db.base import TrackedBase, UUIDString
from estate_kernel.domain.clock import ensure_utc

if TYPE_CHECKING:
    from estate_ingestion.domain.types import ImportFile, ImportFolder


class ImportFolderModel(TrackedBase):
    """Folder grouping import files."""

    __tablename__ = "import_folders"

    __table_args__ = (Index("ix_import_folders_unit", "business_unit_id"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_unit_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    files: Mapped[list["ImportFileModel"]] = relationship(
        "ImportFileModel",
        back_populates="folder",
    )

    def to_dto(self) -> ImportFolder:
        from estate_ingestion.domain.types import ImportFolder

        return ImportFolder(
            id=self.id,
            name=self.name,
            business_unit_id=self.business_unit_id,
            created_at=ensure_utc(self.created_at),
        )


class ImportFileModel(TrackedBase):
    """One commit run of one uploaded file."""

    __tablename__ = "import_files"

    __table_args__ = (
        Index("ix_import_files_unit", "business_unit_id"),
        Index("ix_import_files_name_category", "name", "category", "business_unit_id"),
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    business_unit_id: Mapped[str] = mapped_column(String(100), nullable=False)
    folder_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("import_folders.id"),
        nullable=True,
    )
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    rows_affected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_format: Mapped[str | None] = mapped_column(String(10), nullable=True)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    folder: Mapped[ImportFolderModel | None] = relationship(
        "ImportFolderModel",
        back_populates="files",
    )

    def to_dto(self) -> ImportFile:
        from estate_ingestion.domain.types import ImportCategory, ImportFile, ImportStatus

        return ImportFile(
            id=self.id,
            name=self.name,
            category=ImportCategory(self.category),
            business_unit_id=self.business_unit_id,
            imported_at=ensure_utc(self.imported_at),
            status=ImportStatus(self.status),
            rows_affected=self.rows_affected,
            quality_score=self.quality_score,
            error_summary=self.error_summary,
            folder_id=self.folder_id,
            source_format=self.source_format,
            size_bytes=self.size_bytes,
            version=self.version,
            created_by_id=self.created_by_id,
            deleted_at=ensure_utc(self.deleted_at),
            deleted_by_id=self.deleted_by_id,
        )
