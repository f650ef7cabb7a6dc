"""
Deterministic hashing utilities.

Journal hashing must be reproducible: the same entry content always yields
the same digest, whatever the key order or numeric representation.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Trailing zeros removed so 1.50 and 1.5 hash alike
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """
    Convert data to canonical JSON: sorted keys, no whitespace, stable
    rendering of Decimal, datetime and UUID.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """SHA-256 of the canonical JSON form of ``payload`` (64 hex chars)."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_journal_link(
    seq: int,
    action: str,
    table: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Hash of one journal entry, chained to its predecessor.

    Changing any earlier entry changes every later hash, which makes
    retroactive edits detectable by ``JournalService.validate_chain``.
    """
    components = [
        str(seq),
        action,
        table,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
