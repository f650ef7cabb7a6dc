"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
any SQL reaches the database.  The listeners registered here check the
append-only rules and raise ImmutabilityViolationError, aborting the flush.

Protected entities:

Entity          | Rule
----------------|----------------------------------------------------------
JournalEntry    | ALWAYS immutable, never deleted
ImportFile      | Content frozen; only the soft-delete markers
                | (deleted_at, deleted_by_id) and updated_at/updated_by_id
                | may change.  Hard delete is refused.

Usage:

    from estate_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must bypass the rules call ``unregister_immutability_listeners()``
and register again afterwards.
"""

from sqlalchemy import event, inspect

from estate_kernel.exceptions import ImmutabilityViolationError
from estate_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_IMPORT_FILE_MUTABLE_FIELDS = frozenset(
    {"deleted_at", "deleted_by_id", "updated_at", "updated_by_id"}
)


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_journal_entry_update(mapper, connection, target):
    """Journal entries are append-only."""
    _blocked(
        "JournalEntry",
        str(target.seq),
        "UPDATE",
        "Journal entries are immutable and cannot be modified",
    )


def _check_journal_entry_delete(mapper, connection, target):
    _blocked(
        "JournalEntry",
        str(target.seq),
        "DELETE",
        "Journal entries are immutable and cannot be deleted",
    )


def _check_import_file_update(mapper, connection, target):
    """
    Only soft-delete markers and audit timestamps may change on an
    ImportFile.  A file that is already soft-deleted cannot be deleted again
    (deleted_at would change from one value to another).
    """
    insp = inspect(target)
    for attr in insp.attrs:
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key not in _IMPORT_FILE_MUTABLE_FIELDS:
            _blocked(
                "ImportFile",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an import file",
                field=attr.key,
            )
        if attr.key == "deleted_at" and hist.deleted and hist.deleted[0] is not None:
            _blocked(
                "ImportFile",
                str(target.id),
                "UPDATE",
                "Import file is already deleted",
                field=attr.key,
            )


def _check_import_file_delete(mapper, connection, target):
    _blocked(
        "ImportFile",
        str(target.id),
        "DELETE",
        "Import files are soft-deleted only",
    )


def _listeners():
    from estate_ingestion.models.import_file import ImportFileModel
    from estate_kernel.models.journal import JournalEntryModel

    return (
        (JournalEntryModel, "before_update", _check_journal_entry_update),
        (JournalEntryModel, "before_delete", _check_journal_entry_delete),
        (ImportFileModel, "before_update", _check_import_file_update),
        (ImportFileModel, "before_delete", _check_import_file_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability listeners.  Safe to call more than once.

    Call after all models are imported and before any database work.
    """
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners():
    """
    Remove the immutability listeners.

    Only for tests that must violate the rules on purpose.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
    logger.debug("immutability_listeners_unregistered")
