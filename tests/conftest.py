"""
Pytest fixtures for the property import core test suite.

Provides:
- An in-memory SQLite engine shared by the session (tables created once)
- Per-test sessions rolled back through an outer transaction
- A deterministic clock and the wired services (journal, lock governor,
  record store, import files, commit engine, pipeline)
- Captured JSON logs
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from estate_ingestion.services.commit_engine import CommitEngine
from estate_ingestion.services.import_file_service import ImportFileService
from estate_ingestion.services.import_pipeline import ImportPipeline
from estate_ingestion.storage.memory_store import MemoryRecordStore
from estate_ingestion.storage.sql_store import SqlRecordStore
from estate_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from estate_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from estate_kernel.domain.clock import DeterministicClock
from estate_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from estate_kernel.services.journal_service import JournalService
from estate_kernel.services.lock_governor import LockGovernor

# Test actor for all test operations
TEST_ACTOR_ID = "tester"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture estate logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, commit_engine):
            commit_engine.commit(request)
            logs = captured_logs()
            assert any(r["message"] == "commit_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("estate")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """In-memory SQLite engine with every table and the immutability listeners."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; a
    ``session.commit()`` inside a test only releases a savepoint, and the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock and services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing (2024-01-01 12:00 UTC)."""
    return DeterministicClock()


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def journal(session, deterministic_clock):
    return JournalService(session, deterministic_clock)


@pytest.fixture
def governor(session, journal, deterministic_clock):
    return LockGovernor(session, journal, deterministic_clock)


@pytest.fixture
def sql_store(session):
    return SqlRecordStore(session)


@pytest.fixture
def memory_store():
    return MemoryRecordStore()


@pytest.fixture
def import_files(session, journal, deterministic_clock):
    return ImportFileService(session, journal, deterministic_clock)


@pytest.fixture
def commit_engine(session, sql_store, journal, governor, import_files, deterministic_clock):
    return CommitEngine(session, sql_store, journal, governor, import_files, deterministic_clock)


@pytest.fixture
def pipeline(commit_engine, journal, deterministic_clock):
    return ImportPipeline(commit_engine, journal, deterministic_clock)
