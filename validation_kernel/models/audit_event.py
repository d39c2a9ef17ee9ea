"""
The global audit log, one row per threshold change or request transition.

Rows are numbered by ``SequenceService`` and chained:

    hash = H(entity_type | entity_id | action | payload_hash | prev_hash)

with ``prev_hash`` empty only on the very first row.  ``AuditorService``
writes and verifies the chain; this module only maps the table and refuses
ORM updates and deletes.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from validation_kernel.db.base import Base, UUIDString
from validation_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    THRESHOLD_CREATED = "threshold_created"
    THRESHOLD_UPDATED = "threshold_updated"
    THRESHOLD_DELETED = "threshold_deleted"

    VALIDATION_REQUESTED = "validation_requested"
    VALIDATION_AUTO_APPROVED = "validation_auto_approved"
    VALIDATION_ESCALATED = "validation_escalated"
    VALIDATION_APPROVED = "validation_approved"
    VALIDATION_REJECTED = "validation_rejected"
    VALIDATION_TAMPER_DETECTED = "validation_tamper_detected"


class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_subject", "entity_type", "entity_id"),
        Index("ix_audit_events_action", "action"),
        Index("ix_audit_events_occurred_at", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)

    # ValidationThreshold | ValidationRequest
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} {self.entity_type}:{self.entity_id}>"


def _refuse(verb: str):
    def listener(mapper, connection, target: AuditEvent) -> None:
        raise ImmutabilityViolationError("AuditEvent", str(target.id), f"audit events cannot be {verb}")

    return listener


event.listen(AuditEvent, "before_update", _refuse("modified"))
event.listen(AuditEvent, "before_delete", _refuse("deleted"))
