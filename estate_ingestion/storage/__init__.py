"""Record stores used by the commit engine."""

from estate_ingestion.storage.base import RecordStore, StoredRecord
from estate_ingestion.storage.memory_store import MemoryRecordStore
from estate_ingestion.storage.sql_store import SqlRecordStore

__all__ = ["MemoryRecordStore", "RecordStore", "SqlRecordStore", "StoredRecord"]
