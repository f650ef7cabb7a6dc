"""
ImportFileService -- import file registry and folders.

Responsibility:
    Writes the one ImportFile row of each commit run (with its version
    number), lists and reads files, soft-deletes them with a journal entry,
    and manages folders.

Architecture position:
    Ingestion > Services.  Flush-only; never commits.

Invariants enforced:
    - version = 1 + number of earlier files with the same name, category
      and business unit.
    - ImportFile content never changes; soft deletion is journaled.
    - A folder is deleted only when no file references it.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from estate_ingestion.domain.types import ImportCategory, ImportFile, ImportFolder, ImportStatus
from estate_ingestion.models.import_file import ImportFileModel, ImportFolderModel
from estate_kernel.domain.clock import Clock, SystemClock
from estate_kernel.domain.journal import JournalDetails
from estate_kernel.exceptions import (
    FolderNotEmptyError,
    FolderNotFoundError,
    ImmutabilityViolationError,
    ImportFileNotFoundError,
)
from estate_kernel.logging_config import get_logger
from estate_kernel.models.journal import JournalAction
from estate_kernel.services.journal_service import JournalService

logger = get_logger("ingestion.import_files")

IMPORT_FILES_TABLE = ImportFileModel.__tablename__


class ImportFileService:
    """Registry of import files and folders."""

    def __init__(self, session: Session, journal: JournalService, clock: Clock | None = None):
        self._session = session
        self._journal = journal
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def record_import(
        self,
        *,
        name: str,
        category: ImportCategory,
        business_unit_id: str,
        status: ImportStatus,
        rows_affected: int,
        actor_id: str,
        quality_score: float | None = None,
        error_summary: str | None = None,
        folder_id: UUID | None = None,
        source_format: str | None = None,
        size_bytes: int = 0,
        import_file_id: UUID | None = None,
    ) -> ImportFile:
        """Write the ImportFile of one commit run."""
        if folder_id is not None:
            self._get_folder(folder_id)

        earlier = self._session.execute(
            select(func.count(ImportFileModel.id)).where(
                ImportFileModel.name == name,
                ImportFileModel.category == category.value,
                ImportFileModel.business_unit_id == business_unit_id,
            )
        ).scalar_one()

        model = ImportFileModel(
            id=import_file_id or uuid4(),
            name=name,
            category=category.value,
            business_unit_id=business_unit_id,
            folder_id=folder_id,
            imported_at=self._clock.now(),
            status=status.value,
            rows_affected=rows_affected,
            quality_score=quality_score,
            error_summary=error_summary,
            source_format=source_format,
            size_bytes=size_bytes,
            version=earlier + 1,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "import_file_recorded",
            extra={
                "import_file_id": str(model.id),
                "file_name": name,
                "status": status.value,
                "rows_affected": rows_affected,
                "version": model.version,
            },
        )
        return model.to_dto()

    def _get_model(self, import_file_id: UUID) -> ImportFileModel:
        model = self._session.get(ImportFileModel, import_file_id)
        if model is None:
            raise ImportFileNotFoundError(str(import_file_id))
        return model

    def get_import_file(self, import_file_id: UUID) -> ImportFile:
        return self._get_model(import_file_id).to_dto()

    def list_import_files(
        self,
        business_unit_id: str | None = None,
        folder_id: UUID | None = None,
        include_deleted: bool = False,
    ) -> list[ImportFile]:
        """Files newest first."""
        stmt = select(ImportFileModel).order_by(
            ImportFileModel.imported_at.desc(), ImportFileModel.version.desc()
        )
        if business_unit_id is not None:
            stmt = stmt.where(ImportFileModel.business_unit_id == business_unit_id)
        if folder_id is not None:
            stmt = stmt.where(ImportFileModel.folder_id == folder_id)
        if not include_deleted:
            stmt = stmt.where(ImportFileModel.deleted_at.is_(None))
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def versions_of(self, import_file_id: UUID) -> list[ImportFile]:
        """Every version of the same (name, category, unit), oldest first."""
        model = self._get_model(import_file_id)
        stmt = (
            select(ImportFileModel)
            .where(
                ImportFileModel.name == model.name,
                ImportFileModel.category == model.category,
                ImportFileModel.business_unit_id == model.business_unit_id,
            )
            .order_by(ImportFileModel.version)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def soft_delete(
        self,
        import_file_id: UUID,
        actor_id: str,
        justification: str | None = None,
    ) -> ImportFile:
        """Mark a file deleted and journal a ``delete`` entry on ``import_files``."""
        model = self._get_model(import_file_id)
        if model.deleted_at is not None:
            raise ImmutabilityViolationError(
                "ImportFile", str(import_file_id), "Import file is already deleted"
            )

        now: datetime = self._clock.now()
        model.deleted_at = now
        model.deleted_by_id = actor_id
        model.updated_by_id = actor_id
        self._session.flush()

        self._journal.record(
            JournalAction.DELETE,
            IMPORT_FILES_TABLE,
            actor_id=actor_id,
            rows_affected=1,
            details=JournalDetails(
                business_unit_id=model.business_unit_id,
                entity_id=str(model.id),
                changed_field="deleted_at",
                new_value=now.isoformat(),
                justification=justification,
                source_file=model.name,
                import_file_id=str(model.id),
            ),
        )
        logger.info(
            "import_file_deleted",
            extra={"import_file_id": str(model.id), "actor_id": actor_id},
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def _get_folder(self, folder_id: UUID) -> ImportFolderModel:
        folder = self._session.get(ImportFolderModel, folder_id)
        if folder is None:
            raise FolderNotFoundError(str(folder_id))
        return folder

    @staticmethod
    def _folder_name(name: str) -> str:
        cleaned = " ".join(name.split())
        if not cleaned:
            raise ValueError("Folder name must not be blank")
        return cleaned

    def get_folder(self, folder_id: UUID) -> ImportFolder:
        """Raises FolderNotFoundError."""
        return self._get_folder(folder_id).to_dto()

    def create_folder(self, name: str, actor_id: str, business_unit_id: str | None = None) -> ImportFolder:
        folder = ImportFolderModel(
            name=self._folder_name(name),
            business_unit_id=business_unit_id,
            created_by_id=actor_id,
        )
        self._session.add(folder)
        self._session.flush()
        logger.info("import_folder_created", extra={"folder_id": str(folder.id), "folder_name": folder.name})
        return folder.to_dto()

    def list_folders(self, business_unit_id: str | None = None) -> list[ImportFolder]:
        stmt = select(ImportFolderModel).order_by(ImportFolderModel.name)
        if business_unit_id is not None:
            stmt = stmt.where(ImportFolderModel.business_unit_id == business_unit_id)
        return [f.to_dto() for f in self._session.execute(stmt).scalars()]

    def delete_folder(self, folder_id: UUID) -> None:
        """Delete an empty folder; soft-deleted files still count."""
        folder = self._get_folder(folder_id)
        file_count = self._session.execute(
            select(func.count(ImportFileModel.id)).where(ImportFileModel.folder_id == folder_id)
        ).scalar_one()
        if file_count:
            raise FolderNotEmptyError(str(folder_id), file_count)
        self._session.delete(folder)
        self._session.flush()
        logger.info("import_folder_deleted", extra={"folder_id": str(folder_id)})

    def rename_folder(self, folder_id: UUID, name: str, actor_id: str) -> ImportFolder:
        """Rename a folder; its files keep pointing at it."""
        folder = self._get_folder(folder_id)
        old_name = folder.name
        folder.name = self._folder_name(name)
        folder.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "import_folder_renamed",
            extra={"folder_id": str(folder_id), "old_name": old_name, "folder_name": folder.name},
        )
        return folder.to_dto()
