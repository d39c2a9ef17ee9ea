"""
Module: validation_kernel.models.validation_request
Responsibility: ORM persistence for validation requests and their decision
    trail.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status and level vocabularies: DB check constraints.
    - Optimistic concurrency: ``version`` is the mapper's version_id_col;
      every UPDATE is guarded by ``WHERE version = <loaded>`` and a lost
      race surfaces as StaleDataError.
    - One decision per rung: UNIQUE(request_id, level).  Two validators
      racing on the same rung cannot both land an entry.
    - One decision per validator: UNIQUE(request_id, validated_by).
    - Dense trail ordering: UNIQUE(request_id, sequence).
    - Decision entries are append-only (ORM listeners below).
    - Requests are never deleted (ORM listener below).

Failure modes:
    - StaleDataError / IntegrityError when two writers race on one request
      (mapped to ConcurrentModificationError by the workflow service).
    - ImmutabilityViolationError on entry UPDATE/DELETE or request DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from validation_kernel.db.base import Base, UUIDString
from validation_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from validation_kernel.domain.validation import Validation, ValidationRequest

_LEVELS_SQL = "('level_1', 'level_2', 'level_3', 'owner')"


class ValidationRequestModel(Base):
    """Persistent validation request.

    Contract:
        Status transitions follow VALIDATION_TRANSITIONS; the workflow
        service is the only writer.  Terminal requests are never modified.
    """

    __tablename__ = "validation_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'escalated', 'approved', 'rejected', 'auto_approved')",
            name="ck_validation_requests_valid_status",
        ),
        CheckConstraint(
            f"current_level IN {_LEVELS_SQL}",
            name="ck_validation_requests_current_level",
        ),
        CheckConstraint(
            f"required_level IN {_LEVELS_SQL}",
            name="ck_validation_requests_required_level",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="ck_validation_requests_priority",
        ),
        # Pending queue: workspace + status + level, ordered by priority
        Index(
            "ix_validation_requests_queue",
            "workspace_id", "status", "current_level", "priority_rank",
        ),
        Index(
            "ix_validation_requests_entity",
            "workspace_id", "entity_type", "entity_id",
        ),
        Index(
            "ix_validation_requests_requested_at",
            "workspace_id", "requested_at",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    snapshot_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    requested_by: Mapped[str] = mapped_column(String(100), nullable=False)
    request_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    current_level: Mapped[str] = mapped_column(String(20), nullable=False)
    required_level: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    priority_rank: Mapped[int] = mapped_column(nullable=False, default=1)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    requested_at: Mapped[datetime] = mapped_column(nullable=False)
    escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    entries: Mapped[list["ValidationEntryModel"]] = relationship(
        "ValidationEntryModel",
        back_populates="request",
        primaryjoin="ValidationRequestModel.request_id == ValidationEntryModel.request_id",
        order_by="ValidationEntryModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ValidationRequest {self.request_id} "
            f"{self.entity_type}:{self.entity_id} "
            f"status={self.status} level={self.current_level}/{self.required_level}>"
        )

    def to_dto(self) -> ValidationRequest:
        """Convert ORM model to frozen domain DTO."""
        from validation_kernel.domain.validation import (
            ValidationLevel,
            ValidationPriority,
            ValidationRequest as ValidationRequestDTO,
            ValidationStatus,
        )

        return ValidationRequestDTO(
            request_id=self.request_id,
            workspace_id=self.workspace_id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            snapshot=dict(self.snapshot),
            status=ValidationStatus(self.status),
            current_level=ValidationLevel(self.current_level),
            required_level=ValidationLevel(self.required_level),
            requested_at=self.requested_at,
            requested_by=self.requested_by,
            amount=self.amount,
            category=self.category,
            request_reason=self.request_reason,
            priority=ValidationPriority(self.priority),
            tags=tuple(self.tags or ()),
            expires_at=self.expires_at,
            escalated_at=self.escalated_at,
            resolved_at=self.resolved_at,
            snapshot_hash=self.snapshot_hash,
            version=self.version,
            validations=tuple(e.to_dto() for e in self.entries),
        )


class ValidationEntryModel(Base):
    """Persistent decision-trail entry. Append-only.

    ``entry_hash`` chains to the previous entry of the same request through
    ``prev_entry_hash`` (None for the first entry).
    """

    __tablename__ = "validation_entries"

    __table_args__ = (
        CheckConstraint(
            "decision IN ('approved', 'rejected')",
            name="ck_validation_entries_decision",
        ),
        CheckConstraint(
            f"level IN {_LEVELS_SQL}",
            name="ck_validation_entries_level",
        ),
        UniqueConstraint("request_id", "sequence", name="uq_validation_entries_sequence"),
        UniqueConstraint("request_id", "level", name="uq_validation_entries_level"),
        UniqueConstraint("request_id", "validated_by", name="uq_validation_entries_validator"),
        Index("ix_validation_entries_validator", "validated_by", "validated_at"),
    )

    validation_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("validation_requests.request_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    validated_by: Mapped[str] = mapped_column(String(100), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    validated_at: Mapped[datetime] = mapped_column(nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(nullable=True)
    longitude: Mapped[float | None] = mapped_column(nullable=True)
    accuracy: Mapped[float | None] = mapped_column(nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    prev_entry_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    request: Mapped["ValidationRequestModel"] = relationship(
        "ValidationRequestModel",
        back_populates="entries",
        foreign_keys=[request_id],
        primaryjoin="ValidationEntryModel.request_id == ValidationRequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ValidationEntry #{self.sequence} request={self.request_id} "
            f"{self.level} {self.decision} by {self.validated_by}>"
        )

    def hashed_fields(self) -> dict[str, Any]:
        """Fields covered by ``entry_hash``."""
        return {
            "validation_id": self.validation_id,
            "request_id": self.request_id,
            "sequence": self.sequence,
            "validated_by": self.validated_by,
            "decision": self.decision,
            "level": self.level,
            "validated_at": self.validated_at,
            "comment": self.comment,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "address": self.address,
            "signature": self.signature,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }

    def to_dto(self) -> Validation:
        """Convert ORM model to frozen domain DTO."""
        from validation_kernel.domain.validation import (
            Geolocation,
            Validation as ValidationDTO,
            ValidationDecision,
            ValidationLevel,
        )

        geolocation = None
        if self.latitude is not None and self.longitude is not None:
            geolocation = Geolocation(
                latitude=self.latitude,
                longitude=self.longitude,
                accuracy=self.accuracy,
                address=self.address,
            )

        return ValidationDTO(
            validation_id=self.validation_id,
            request_id=self.request_id,
            sequence=self.sequence,
            validated_by=self.validated_by,
            decision=ValidationDecision(self.decision),
            level=ValidationLevel(self.level),
            validated_at=self.validated_at,
            comment=self.comment,
            geolocation=geolocation,
            signature=self.signature,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            prev_entry_hash=self.prev_entry_hash,
            entry_hash=self.entry_hash,
        )


# =============================================================================
# ORM-Level Immutability (Append-Only Trail, Undeletable Requests)
# =============================================================================


@event.listens_for(ValidationEntryModel, "before_update")
def prevent_entry_update(mapper, connection, target):
    """Prevent updates to decision-trail entries."""
    raise ImmutabilityViolationError(
        entity_type="ValidationEntry",
        entity_id=str(target.validation_id),
        reason="Validation entries are immutable -- cannot modify",
    )


@event.listens_for(ValidationEntryModel, "before_delete")
def prevent_entry_delete(mapper, connection, target):
    """Prevent deletion of decision-trail entries."""
    raise ImmutabilityViolationError(
        entity_type="ValidationEntry",
        entity_id=str(target.validation_id),
        reason="Validation entries are immutable -- cannot delete",
    )


@event.listens_for(ValidationRequestModel, "before_delete")
def prevent_request_delete(mapper, connection, target):
    """Validation requests are retained forever."""
    raise ImmutabilityViolationError(
        entity_type="ValidationRequest",
        entity_id=str(target.request_id),
        reason="Validation requests cannot be deleted",
    )
