"""ORM models owned by ingestion: import files, folders and property records."""

from estate_ingestion.models.import_file import ImportFileModel, ImportFolderModel
from estate_ingestion.models.records import PropertyRecordModel

__all__ = ["ImportFileModel", "ImportFolderModel", "PropertyRecordModel"]
