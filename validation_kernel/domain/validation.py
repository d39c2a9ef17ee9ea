"""
Validation domain types (``validation_kernel.domain.validation``).

Responsibility
--------------
Pure value objects for the hierarchical validation gate.  Defines the
approval level order, the request lifecycle state machine, decision and
priority vocabularies, and the frozen request / decision records handed
to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Level order is fixed: ``level_1 < level_2 < level_3 < owner``.
* ``VALIDATION_TRANSITIONS`` defines the only valid status changes.
  Terminal states have no outgoing edges.
* A request is created either ``pending`` or ``auto_approved``; no other
  initial status exists.
* ``ValidationRequest.validations`` is ordered by ``sequence`` and only
  ever grows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =========================================================================
# Levels
# =========================================================================


class ValidationLevel(str, Enum):
    """Rungs of the approval ladder, lowest first."""

    LEVEL_1 = "level_1"
    LEVEL_2 = "level_2"
    LEVEL_3 = "level_3"
    OWNER = "owner"


LEVEL_ORDER: tuple[ValidationLevel, ...] = (
    ValidationLevel.LEVEL_1,
    ValidationLevel.LEVEL_2,
    ValidationLevel.LEVEL_3,
    ValidationLevel.OWNER,
)

TOP_LEVEL: ValidationLevel = LEVEL_ORDER[-1]


def level_rank(level: ValidationLevel) -> int:
    """Position of ``level`` in the fixed order (level_1 == 0)."""
    return LEVEL_ORDER.index(ValidationLevel(level))


# =========================================================================
# Status Lifecycle
# =========================================================================


class ValidationStatus(str, Enum):
    """Validation request lifecycle states."""

    PENDING = "pending"
    ESCALATED = "escalated"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"


INITIAL_STATUSES: frozenset[ValidationStatus] = frozenset({
    ValidationStatus.PENDING,
    ValidationStatus.AUTO_APPROVED,
})

VALIDATION_TRANSITIONS: dict[ValidationStatus, frozenset[ValidationStatus]] = {
    ValidationStatus.PENDING: frozenset({
        ValidationStatus.ESCALATED,
        ValidationStatus.APPROVED,
        ValidationStatus.REJECTED,
    }),
    # Escalated -> escalated: a further rung signed off, still not at required level
    ValidationStatus.ESCALATED: frozenset({
        ValidationStatus.ESCALATED,
        ValidationStatus.APPROVED,
        ValidationStatus.REJECTED,
    }),
    ValidationStatus.APPROVED: frozenset(),
    ValidationStatus.REJECTED: frozenset(),
    ValidationStatus.AUTO_APPROVED: frozenset(),
}

OPEN_STATUSES: frozenset[ValidationStatus] = frozenset({
    ValidationStatus.PENDING,
    ValidationStatus.ESCALATED,
})

TERMINAL_STATUSES: frozenset[ValidationStatus] = frozenset({
    ValidationStatus.APPROVED,
    ValidationStatus.REJECTED,
    ValidationStatus.AUTO_APPROVED,
})


class ValidationDecision(str, Enum):
    """Decision a validator can cast."""

    APPROVED = "approved"
    REJECTED = "rejected"


class ValidationPriority(str, Enum):
    """Queue priority of a request."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK: dict[ValidationPriority, int] = {
    ValidationPriority.LOW: 0,
    ValidationPriority.MEDIUM: 1,
    ValidationPriority.HIGH: 2,
    ValidationPriority.URGENT: 3,
}

SYSTEM_VALIDATOR = "SYSTEM"
AUTO_APPROVAL_COMMENT = "auto-approved by configured rule"


# =========================================================================
# Decision Records
# =========================================================================


@dataclass(frozen=True)
class Geolocation:
    """Where a decision was cast.

    ``address`` is filled by best-effort reverse geocoding and may be None
    even when coordinates are present.
    """

    latitude: float
    longitude: float
    accuracy: float | None = None
    address: str | None = None


@dataclass(frozen=True)
class Validation:
    """One entry of the decision trail. Immutable, owned by its request."""

    validation_id: UUID
    request_id: UUID
    sequence: int
    validated_by: str
    decision: ValidationDecision
    level: ValidationLevel
    validated_at: datetime
    comment: str | None = None
    geolocation: Geolocation | None = None
    signature: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    prev_entry_hash: str | None = None
    entry_hash: str | None = None

    @property
    def is_system(self) -> bool:
        return self.validated_by == SYSTEM_VALIDATOR


@dataclass(frozen=True)
class ValidationRequest:
    """Frozen view of a validation request and its decision trail.

    ``snapshot`` is the entity data captured when the request was opened;
    the gate never re-reads the originating entity.
    """

    request_id: UUID
    workspace_id: str
    entity_type: str
    entity_id: str
    snapshot: dict[str, Any]
    status: ValidationStatus
    current_level: ValidationLevel
    required_level: ValidationLevel
    requested_at: datetime
    requested_by: str
    amount: Decimal | None = None
    category: str | None = None
    request_reason: str | None = None
    priority: ValidationPriority = ValidationPriority.MEDIUM
    tags: tuple[str, ...] = ()
    expires_at: datetime | None = None
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    snapshot_hash: str | None = None
    version: int = 1
    validations: tuple[Validation, ...] = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def latest_validation(self) -> Validation | None:
        return self.validations[-1] if self.validations else None

    @property
    def rejection_reason(self) -> str | None:
        """Comment of the rejecting entry, or None if not rejected."""
        if self.status != ValidationStatus.REJECTED or not self.validations:
            return None
        return self.validations[-1].comment

    def is_expired(self, as_of: datetime) -> bool:
        """Advisory only; the gate never enforces ``expires_at``."""
        return self.expires_at is not None and self.expires_at <= as_of
