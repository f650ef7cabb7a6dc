"""Ingestion services: commit engine, import file registry, pipeline."""

from estate_ingestion.services.commit_engine import (
    CancellationToken,
    CommitEngine,
    CommitRequest,
)
from estate_ingestion.services.import_file_service import ImportFileService
from estate_ingestion.services.import_pipeline import (
    CompletionEvent,
    ImportPipeline,
    ImportSession,
    ImportStage,
    ProgressEvent,
)

__all__ = [
    "CancellationToken",
    "CommitEngine",
    "CommitRequest",
    "CompletionEvent",
    "ImportFileService",
    "ImportPipeline",
    "ImportSession",
    "ImportStage",
    "ProgressEvent",
]
