"""
AuditorService -- the global, hash-chained audit log.

Every threshold change and every request transition appends one
``AuditEvent``.  Events are numbered by ``SequenceService`` and each one
carries the hash of its predecessor:

    hash = H(entity_type | entity_id | action | H(payload) | prev_hash)

so editing, dropping or reordering any stored event is caught by
``validate_chain``.  Events are append-only (ORM listeners on the model).

The service never commits; the caller owns the transaction.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from validation_kernel.domain.clock import Clock, SystemClock
from validation_kernel.exceptions import AuditChainBrokenError
from validation_kernel.logging_config import get_logger
from validation_kernel.models.audit_event import AuditAction, AuditEvent
from validation_kernel.services.sequence_service import SequenceService
from validation_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")

THRESHOLD_ENTITY = "ValidationThreshold"
REQUEST_ENTITY = "ValidationRequest"


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditTraceEntry":
        return cls(
            seq=event.seq,
            action=AuditAction(event.action),
            occurred_at=event.occurred_at,
            actor_id=event.actor_id,
            payload=event.payload or {},
            hash=event.hash,
        )


@dataclass(frozen=True)
class AuditTrace:
    """Audit events of one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _expected_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        event.entity_type, str(event.entity_id), event.action, event.payload_hash, event.prev_hash,
    )


def _find_break(events: Sequence[AuditEvent]) -> tuple[AuditEvent, str, str] | None:
    """First (event, expected, actual) mismatch along the chain, or None."""
    prev_hash: str | None = None
    for event in events:
        if event.prev_hash != prev_hash:
            return event, prev_hash or "None", event.prev_hash or "None"
        expected = _expected_hash(event)
        if event.hash != expected:
            return event, expected, event.hash
        prev_hash = event.hash
    return None


class AuditorService:
    """Appends audit events and checks the chain."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def _append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: str,
        payload: dict[str, Any],
    ) -> AuditEvent:
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._session.scalars(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).first()
        payload_hash = hash_payload(payload)

        event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_event(entity_type, str(entity_id), action.value, payload_hash, prev_hash),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={"entity_type": entity_type, "entity_id": str(entity_id), "action": action.value, "seq": seq},
        )
        return event

    # ------------------------------------------------------------------
    # Thresholds
    # ------------------------------------------------------------------

    def record_threshold_created(
        self,
        threshold_id: UUID,
        workspace_id: str,
        entity_type: str,
        category: str | None,
        ladder: dict[str, Any],
        actor_id: str,
        cloned_from: UUID | None = None,
    ) -> AuditEvent:
        payload: dict[str, Any] = {
            "workspace_id": workspace_id,
            "entity_type": entity_type,
            "category": category,
            "ladder": ladder,
        }
        if cloned_from is not None:
            payload["cloned_from"] = str(cloned_from)
        return self._append(THRESHOLD_ENTITY, threshold_id, AuditAction.THRESHOLD_CREATED, actor_id, payload)

    def record_threshold_updated(
        self,
        threshold_id: UUID,
        before: dict[str, Any],
        after: dict[str, Any],
        actor_id: str,
    ) -> AuditEvent:
        return self._append(
            THRESHOLD_ENTITY, threshold_id, AuditAction.THRESHOLD_UPDATED, actor_id,
            {"before": before, "after": after},
        )

    def record_threshold_deleted(self, threshold_id: UUID, ladder: dict[str, Any], actor_id: str) -> AuditEvent:
        return self._append(
            THRESHOLD_ENTITY, threshold_id, AuditAction.THRESHOLD_DELETED, actor_id, {"ladder": ladder},
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def record_validation_requested(
        self,
        request_id: UUID,
        entity_type: str,
        entity_id: str,
        amount: Decimal | None,
        required_level: str,
        snapshot_hash: str,
        actor_id: str,
        auto_approved: bool = False,
    ) -> AuditEvent:
        """A new request, or its immediate auto-approval."""
        action = AuditAction.VALIDATION_AUTO_APPROVED if auto_approved else AuditAction.VALIDATION_REQUESTED
        return self._append(
            REQUEST_ENTITY, request_id, action, actor_id,
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "amount": None if amount is None else str(amount.normalize()),
                "required_level": required_level,
                "snapshot_hash": snapshot_hash,
            },
        )

    def record_validation_decision(
        self,
        request_id: UUID,
        action: AuditAction,
        level: str,
        decision: str,
        new_status: str,
        new_level: str,
        entry_hash: str,
        actor_id: str,
    ) -> AuditEvent:
        return self._append(
            REQUEST_ENTITY, request_id, action, actor_id,
            {
                "level": level,
                "decision": decision,
                "new_status": new_status,
                "new_level": new_level,
                "entry_hash": entry_hash,
            },
        )

    def record_tamper_detected(self, request_id: UUID, reason: str, actor_id: str) -> AuditEvent:
        return self._append(
            REQUEST_ENTITY, request_id, AuditAction.VALIDATION_TAMPER_DETECTED, actor_id, {"reason": reason},
        )

    # ------------------------------------------------------------------
    # Verification and queries
    # ------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """True if every event hashes correctly and links to its predecessor.

        Raises AuditChainBrokenError at the first bad event.
        """
        events = self._session.scalars(select(AuditEvent).order_by(AuditEvent.seq)).all()
        broken = _find_break(events)
        if broken is not None:
            event, expected, actual = broken
            logger.critical("audit_chain_broken", extra={"seq": event.seq})
            raise AuditChainBrokenError(str(event.id), expected, actual)

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.scalars(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        )
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(AuditTraceEntry.from_event(e) for e in events),
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Newest first."""
        return list(
            self._session.scalars(select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit))
        )
