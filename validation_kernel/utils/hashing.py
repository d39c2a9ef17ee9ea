"""
Canonical JSON and the SHA-256 digests built on it.

Snapshot hashes, decision-trail hashes and audit-event hashes are all
recomputed during integrity checks, so the byte form fed to SHA-256 must
not depend on dict order, Decimal scale or datetime representation.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from functools import singledispatch
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


@singledispatch
def _to_json(value: Any) -> Any:
    raise TypeError(f"cannot canonicalize {type(value).__name__}")


@_to_json.register
def _(value: Decimal) -> str:
    # Numeric(38, 9) reads back as e.g. 500.000000000
    return str(value.normalize())


@_to_json.register
def _(value: Enum) -> Any:
    return value.value


@_to_json.register
def _(value: date) -> str:
    return value.isoformat()


@_to_json.register
def _(value: datetime) -> str:
    # The same instant must hash the same whatever offset it was read back with
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


@_to_json.register
def _(value: UUID) -> str:
    return str(value)


@_to_json.register
def _(value: bytes) -> str:
    return value.hex()


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, Decimal/Enum/date/UUID/bytes folded to strings."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_to_json)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Link hash of one audit event: key fields plus the predecessor's hash."""
    return _sha256("|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS)))


def hash_validation_entry(entry_fields: dict[str, Any], prev_entry_hash: str | None) -> str:
    """
    Chain hash of one decision-trail entry.

    ``prev_entry_hash`` is the hash of the previous entry of the same
    request (None for the first), so editing, dropping or reordering an
    entry changes every later hash.
    """
    return _sha256(f"{hash_payload(entry_fields)}|{prev_entry_hash or GENESIS}")
