"""Utility modules for the validation kernel."""

from validation_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
    hash_validation_entry,
)

__all__ = [
    "canonicalize_json",
    "hash_audit_event",
    "hash_payload",
    "hash_validation_entry",
]
