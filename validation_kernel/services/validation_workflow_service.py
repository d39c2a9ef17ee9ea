"""
validation_kernel.services.validation_workflow_service -- Hierarchical validation gate.

Responsibility:
    Opens validation requests against the threshold ladder (auto-approving
    trivial amounts), records validator decisions level by level, and
    answers queue, history, statistics and integrity queries.

Architecture position:
    Kernel > Services -- imperative shell.  Routing decisions are delegated
    to the pure ``validation_engines.routing`` functions; persistence goes
    through the ORM models; every transition is audited through
    AuditorService and handed to the injected TransitionDispatcher.

Invariants enforced:
    - Requests always enter review at ``level_1``.
    - Exactly one synthetic SYSTEM entry on an auto-approved request, and no
      entry can ever follow it (terminal).
    - Any rejection is terminal.
    - Decisions are validated against a fresh database read of the request,
      never the identity-map copy.
    - One decision per level and per validator on a request (DB unique
      constraints), and the request row is written with a version guard.
      A lost race raises ConcurrentModificationError and appends nothing.
    - Decision entries are hash-chained within the request; the request's
      immutable fields are covered by ``snapshot_hash``.

Failure modes:
    - InvalidRequestError on malformed input (negative amount, blank ids,
      snapshot that is not JSON-serializable, unknown decision).
    - RequestNotFoundError, AlreadyProcessedError, LevelMismatchError,
      DuplicateDecisionError on decision preconditions.
    - ConcurrentModificationError when another writer committed first.
    - TamperDetectedError from ``verify_request_integrity``.

Transaction boundaries:
    Flushes only.  The caller (normally ValidationGateway) commits or rolls
    back.  Notifications are queued on the session and delivered only
    after commit.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from validation_engines.routing import plan_request, resolve_decision
from validation_engines.statistics import DecisionSample, build_validator_stats
from validation_kernel.domain.capabilities import (
    ReverseGeocoder,
    ThresholdStore,
    TransitionDispatcher,
)
from validation_kernel.domain.clock import Clock, SystemClock
from validation_kernel.domain.statistics import ValidatorStats
from validation_kernel.domain.validation import (
    AUTO_APPROVAL_COMMENT,
    PRIORITY_RANK,
    SYSTEM_VALIDATOR,
    TERMINAL_STATUSES,
    Geolocation,
    ValidationDecision,
    ValidationLevel,
    ValidationPriority,
    ValidationRequest,
    ValidationStatus,
)
from validation_kernel.exceptions import (
    AlreadyProcessedError,
    ConcurrentModificationError,
    DuplicateDecisionError,
    InvalidRequestError,
    LevelMismatchError,
    RequestNotFoundError,
    TamperDetectedError,
)
from validation_kernel.logging_config import LogContext, get_logger
from validation_kernel.models.audit_event import AuditAction
from validation_kernel.models.validation_request import (
    ValidationEntryModel,
    ValidationRequestModel,
)
from validation_kernel.selectors.validation_selector import ValidationSelector
from validation_kernel.services.auditor_service import AuditorService
from validation_kernel.utils.hashing import (
    canonicalize_json,
    hash_payload,
    hash_validation_entry,
)

logger = get_logger("services.validation_workflow")

_DECISION_ACTIONS = {
    ValidationStatus.ESCALATED: AuditAction.VALIDATION_ESCALATED,
    ValidationStatus.APPROVED: AuditAction.VALIDATION_APPROVED,
    ValidationStatus.REJECTED: AuditAction.VALIDATION_REJECTED,
}


def _require_text(field_name: str, value: str | None) -> str:
    if value is None or not str(value).strip():
        raise InvalidRequestError(field_name, "must be a non-empty string")
    return str(value)


def _parse_amount(amount: Any) -> Decimal | None:
    if amount is None:
        return None
    if isinstance(amount, (bool, float)):
        raise InvalidRequestError("amount", f"must be a Decimal, int or str, got {type(amount).__name__}")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise InvalidRequestError("amount", f"not a number: {amount!r}") from exc
    if not value.is_finite():
        raise InvalidRequestError("amount", "must be finite")
    if value < 0:
        raise InvalidRequestError("amount", "must not be negative")
    return value


def _as_utc(field_name: str, value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        raise InvalidRequestError(field_name, "must be timezone-aware")
    return value.astimezone(UTC)


def _copy_snapshot(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    """Deep copy through canonical JSON, so the stored form is what gets hashed."""
    if not isinstance(snapshot, Mapping):
        raise InvalidRequestError("snapshot", "must be a mapping")
    try:
        return json.loads(canonicalize_json(dict(snapshot)))
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError("snapshot", str(exc)) from exc


def compute_snapshot_hash(model: ValidationRequestModel) -> str:
    """Hash of every field of a request that must never change after creation."""
    return hash_payload({
        "request_id": model.request_id,
        "workspace_id": model.workspace_id,
        "entity_type": model.entity_type,
        "entity_id": model.entity_id,
        "category": model.category,
        "snapshot": model.snapshot,
        "amount": model.amount,
        "requested_by": model.requested_by,
        "request_reason": model.request_reason,
        "required_level": model.required_level,
        "priority": model.priority,
        "tags": list(model.tags or ()),
        "expires_at": model.expires_at,
        "requested_at": model.requested_at,
    })


class ValidationWorkflowService:
    """
    The validation gate.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT enforce ``expires_at``; expiry is advisory.
        - Does NOT resolve who may act at a level; authorization belongs to
          the host application.
    """

    def __init__(
        self,
        session: Session,
        thresholds: ThresholdStore,
        auditor: AuditorService,
        clock: Clock | None = None,
        geocoder: ReverseGeocoder | None = None,
        dispatcher: TransitionDispatcher | None = None,
    ) -> None:
        self._session = session
        self._thresholds = thresholds
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._geocoder = geocoder
        self._dispatcher = dispatcher
        self._selector = ValidationSelector(session)

    # ------------------------------------------------------------------
    # Opening a gate
    # ------------------------------------------------------------------

    def create_validation_request(
        self,
        workspace_id: str,
        entity_type: str,
        entity_id: str,
        snapshot: Mapping[str, Any],
        *,
        amount: Decimal | int | str | None = None,
        reason: str | None = None,
        priority: ValidationPriority | str = ValidationPriority.MEDIUM,
        tags: Iterable[str] = (),
        requested_by: str = SYSTEM_VALIDATOR,
        category: str | None = None,
        expires_at: datetime | None = None,
    ) -> ValidationRequest:
        """
        Open a validation request for an entity.

        The ladder for (workspace, entity type, category) decides the
        outcome; a category without its own ladder falls back to the
        category-less ladder of the entity type.  Without any ladder the
        request needs a single level_1 approval.

        Returns:
            The request, either ``pending`` at level_1 or ``auto_approved``.

        Raises:
            InvalidRequestError: malformed input.
        """
        workspace_id = _require_text("workspace_id", workspace_id)
        entity_type = _require_text("entity_type", entity_type)
        entity_id = _require_text("entity_id", entity_id)
        requested_by = _require_text("requested_by", requested_by)
        value = _parse_amount(amount)
        stored_snapshot = _copy_snapshot(snapshot)
        expires_at = _as_utc("expires_at", expires_at)
        try:
            priority = ValidationPriority(priority)
        except ValueError as exc:
            raise InvalidRequestError("priority", f"unknown priority {priority!r}") from exc
        tag_list = [str(t) for t in tags]

        with LogContext.bind(
            workspace_id=workspace_id,
            actor_id=requested_by,
            entity_type=entity_type,
        ):
            threshold = self._thresholds.get_threshold(workspace_id, entity_type, category)
            if threshold is None and category is not None:
                threshold = self._thresholds.get_threshold(workspace_id, entity_type, None)
            ladder = threshold.ladder if threshold is not None else None

            plan = plan_request(ladder, value)
            now = self._clock.now()

            model = ValidationRequestModel(
                request_id=uuid4(),
                workspace_id=workspace_id,
                entity_type=entity_type,
                entity_id=entity_id,
                category=category,
                snapshot=stored_snapshot,
                amount=value,
                requested_by=requested_by,
                request_reason=reason,
                status=plan.status.value,
                current_level=plan.current_level.value,
                required_level=plan.required_level.value,
                priority=priority.value,
                priority_rank=PRIORITY_RANK[priority],
                tags=tag_list,
                expires_at=expires_at,
                requested_at=now,
                resolved_at=now if plan.auto_approved else None,
                updated_at=now,
            )
            model.snapshot_hash = compute_snapshot_hash(model)

            if plan.auto_approved:
                self._append_entry(
                    model,
                    validated_by=SYSTEM_VALIDATOR,
                    decision=ValidationDecision.APPROVED,
                    level=plan.current_level,
                    validated_at=now,
                    comment=AUTO_APPROVAL_COMMENT,
                )

            self._session.add(model)
            self._session.flush()

            self._auditor.record_validation_requested(
                request_id=model.request_id,
                entity_type=entity_type,
                entity_id=entity_id,
                amount=value,
                required_level=plan.required_level.value,
                snapshot_hash=model.snapshot_hash,
                actor_id=requested_by,
                auto_approved=plan.auto_approved,
            )

            request = model.to_dto()
            self._dispatch(request)

            logger.info(
                "validation_request_created",
                extra={
                    "request_id": str(request.request_id),
                    "entity_id": entity_id,
                    "amount": str(value) if value is not None else None,
                    "status": request.status.value,
                    "required_level": request.required_level.value,
                    "threshold_id": str(threshold.threshold_id) if threshold else None,
                    "routing_reason": plan.reason,
                },
            )
            return request

    # ------------------------------------------------------------------
    # Deciding
    # ------------------------------------------------------------------

    def process_validation(
        self,
        request_id: UUID,
        validated_by: str,
        decision: ValidationDecision | str,
        *,
        comment: str | None = None,
        geolocation: Geolocation | None = None,
        signature: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        expected_level: ValidationLevel | str | None = None,
    ) -> ValidationRequest:
        """
        Record one validator decision at the request's current level.

        ``expected_level`` pins the level the caller believes it is acting
        on; when the request has moved on the decision is refused instead
        of being applied at another level.

        Raises:
            InvalidRequestError: unknown decision or level, blank validator.
            RequestNotFoundError: unknown request.
            AlreadyProcessedError: request is terminal.
            LevelMismatchError: ``expected_level`` differs from the current level.
            DuplicateDecisionError: validator already decided on the request.
            ConcurrentModificationError: another writer committed first.
        """
        validated_by = _require_text("validated_by", validated_by)
        try:
            decision = ValidationDecision(decision)
        except ValueError as exc:
            raise InvalidRequestError("decision", f"unknown decision {decision!r}") from exc
        if expected_level is not None:
            try:
                expected_level = ValidationLevel(expected_level)
            except ValueError as exc:
                raise InvalidRequestError(
                    "expected_level", f"unknown level {expected_level!r}"
                ) from exc

        with LogContext.bind(request_id=str(request_id), actor_id=validated_by):
            model = self._load_fresh(request_id)
            status = ValidationStatus(model.status)
            current = ValidationLevel(model.current_level)

            if status in TERMINAL_STATUSES:
                raise AlreadyProcessedError(str(request_id), status.value)
            if expected_level is not None and expected_level != current:
                raise LevelMismatchError(
                    str(request_id), status.value, expected_level.value, current.value,
                )
            if any(e.validated_by == validated_by for e in model.entries):
                raise DuplicateDecisionError(str(request_id), status.value, validated_by)

            outcome = resolve_decision(
                status, current, ValidationLevel(model.required_level), decision,
            )

            if geolocation is not None and geolocation.address is None:
                geolocation = Geolocation(
                    latitude=geolocation.latitude,
                    longitude=geolocation.longitude,
                    accuracy=geolocation.accuracy,
                    address=self._reverse_geocode(geolocation.latitude, geolocation.longitude),
                )

            now = self._clock.now()
            loaded_version = model.version
            entry = self._append_entry(
                model,
                validated_by=validated_by,
                decision=decision,
                level=outcome.decided_level,
                validated_at=now,
                comment=comment,
                geolocation=geolocation,
                signature=signature,
                ip_address=ip_address,
                user_agent=user_agent,
            )

            model.status = outcome.status.value
            model.current_level = outcome.current_level.value
            model.updated_at = now
            if outcome.escalated:
                model.escalated_at = now
            if outcome.is_terminal:
                model.resolved_at = now

            try:
                self._session.flush()
            except (StaleDataError, IntegrityError) as exc:
                logger.warning(
                    "validation_decision_conflict",
                    extra={
                        "decided_level": outcome.decided_level.value,
                        "expected_version": loaded_version,
                        "error": type(exc).__name__,
                    },
                )
                raise ConcurrentModificationError(
                    "ValidationRequest", str(request_id), loaded_version,
                ) from exc

            self._auditor.record_validation_decision(
                request_id=model.request_id,
                action=_DECISION_ACTIONS[outcome.status],
                level=outcome.decided_level.value,
                decision=decision.value,
                new_status=outcome.status.value,
                new_level=outcome.current_level.value,
                entry_hash=entry.entry_hash,
                actor_id=validated_by,
            )

            request = model.to_dto()
            self._dispatch(request)

            logger.info(
                "validation_decision_recorded",
                extra={
                    "decision": decision.value,
                    "decided_level": outcome.decided_level.value,
                    "status": outcome.status.value,
                    "current_level": outcome.current_level.value,
                    "required_level": model.required_level,
                    "sequence": entry.sequence,
                },
            )
            return request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID) -> ValidationRequest:
        request = self._selector.get(request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    def get_pending_validations(
        self,
        workspace_id: str,
        validator_level: ValidationLevel | str,
        exclude_expired_as_of: datetime | None = None,
    ) -> list[ValidationRequest]:
        """Open requests waiting at ``validator_level``, most urgent first, then oldest."""
        return self._selector.pending_for_level(
            workspace_id,
            ValidationLevel(validator_level),
            exclude_expired_as_of=exclude_expired_as_of,
        )

    def get_validation_history(
        self,
        entity_type: str,
        entity_id: str,
        workspace_id: str | None = None,
    ) -> list[ValidationRequest]:
        return self._selector.history_for_entity(entity_type, entity_id, workspace_id)

    def get_validator_stats(
        self,
        workspace_id: str,
        validator_id: str,
        start: datetime,
        end: datetime,
    ) -> ValidatorStats:
        """Decisions by ``validator_id`` with ``start <= validated_at <= end``."""
        rows = self._selector.decisions_by_validator(workspace_id, validator_id, start, end)
        samples = [
            DecisionSample(
                request_id=row.request_id,
                validation_id=row.validation_id,
                entity_type=row.entity_type,
                decision=ValidationDecision(row.decision),
                requested_at=row.requested_at,
                validated_at=row.validated_at,
            )
            for row in rows
        ]
        return build_validator_stats(validator_id, workspace_id, start, end, samples)

    @staticmethod
    def rejection_reason(request: ValidationRequest) -> str | None:
        """Comment of the rejecting entry, None unless the request was rejected."""
        return request.rejection_reason

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def verify_request_integrity(
        self,
        request_id: UUID,
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> bool:
        """
        Recompute the snapshot hash and the decision-trail chain.

        A mismatch is audited as VALIDATION_TAMPER_DETECTED before raising.

        Raises:
            RequestNotFoundError: unknown request.
            TamperDetectedError: a stored field or entry no longer matches
                its hash, or the trail has a gap.
        """
        model = self._load_fresh(request_id)
        reason = self._find_tampering(model)
        if reason is None:
            logger.info(
                "validation_request_integrity_verified",
                extra={"request_id": str(request_id), "entries": len(model.entries)},
            )
            return True

        logger.critical(
            "validation_request_tampered",
            extra={"request_id": str(request_id), "reason": reason},
        )
        self._auditor.record_tamper_detected(model.request_id, reason, actor_id)
        raise TamperDetectedError(str(request_id), reason)

    @staticmethod
    def _find_tampering(model: ValidationRequestModel) -> str | None:
        if compute_snapshot_hash(model) != model.snapshot_hash:
            return "snapshot hash mismatch"

        prev_hash: str | None = None
        for expected_sequence, entry in enumerate(model.entries, start=1):
            if entry.sequence != expected_sequence:
                return f"entry sequence gap at {expected_sequence}"
            if entry.prev_entry_hash != prev_hash:
                return f"entry {entry.sequence} does not link to its predecessor"
            if hash_validation_entry(entry.hashed_fields(), prev_hash) != entry.entry_hash:
                return f"entry {entry.sequence} hash mismatch"
            prev_hash = entry.entry_hash
        return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_fresh(self, request_id: UUID) -> ValidationRequestModel:
        model = self._session.execute(
            select(ValidationRequestModel)
            .where(ValidationRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return model

    def _append_entry(
        self,
        model: ValidationRequestModel,
        *,
        validated_by: str,
        decision: ValidationDecision,
        level: ValidationLevel,
        validated_at: datetime,
        comment: str | None = None,
        geolocation: Geolocation | None = None,
        signature: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ValidationEntryModel:
        previous = model.entries[-1] if model.entries else None
        entry = ValidationEntryModel(
            validation_id=uuid4(),
            request_id=model.request_id,
            sequence=len(model.entries) + 1,
            validated_by=validated_by,
            decision=decision.value,
            level=level.value,
            validated_at=validated_at,
            comment=comment,
            latitude=geolocation.latitude if geolocation else None,
            longitude=geolocation.longitude if geolocation else None,
            accuracy=geolocation.accuracy if geolocation else None,
            address=geolocation.address if geolocation else None,
            signature=signature,
            ip_address=ip_address,
            user_agent=user_agent,
            prev_entry_hash=previous.entry_hash if previous else None,
        )
        entry.entry_hash = hash_validation_entry(entry.hashed_fields(), entry.prev_entry_hash)
        model.entries.append(entry)
        return entry

    def _reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        if self._geocoder is None:
            return None
        try:
            return self._geocoder(latitude, longitude)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "reverse_geocode_failed",
                extra={"latitude": latitude, "longitude": longitude, "error": str(exc)},
            )
            return None

    def _dispatch(self, request: ValidationRequest) -> None:
        if self._dispatcher is not None:
            self._dispatcher.dispatch(self._session, request, request.latest_validation)
