"""
validation_services.gateway -- In-process boundary of the validation gate.

Responsibility:
    Composes the kernel services for one unit of work, owns the
    transaction (commit on success, rollback on error), and retries a
    decision that lost an optimistic-concurrency race.

Architecture position:
    Services -- the only place kernel services are constructed and wired.
    Entity services (sales, stock, expenses, ...) call this class; they
    never build kernel services themselves.

Invariants enforced:
    - One transaction per call.  A failed call leaves nothing behind,
      except a detected tamper, whose audit event is committed before the
      error propagates.
    - A retried decision is pinned to the level observed on the first
      attempt, so it surfaces AlreadyProcessedError / LevelMismatchError
      instead of being applied at a level the validator never saw.
    - Only ConcurrentModificationError is retried.

Usage:
    gateway = ValidationGateway.from_settings(get_settings(), get_default_ladders())
    request = gateway.create_validation_request("ws-1", "expense", "EXP-9", {...},
                                                amount=Decimal("75000"))
    gateway.process_validation(request.request_id, "alice", "approved")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from validation_config.schema import LadderDefaults, Settings
from validation_kernel.db.engine import build_engine, create_tables
from validation_kernel.domain.capabilities import (
    NotificationSink,
    ReverseGeocoder,
    TransitionDispatcher,
)
from validation_kernel.domain.clock import Clock, SystemClock
from validation_kernel.domain.statistics import ThresholdUsageStats, ValidatorStats
from validation_kernel.domain.thresholds import (
    ThresholdLadder,
    ThresholdViolation,
    ValidationThreshold,
)
from validation_kernel.domain.validation import (
    SYSTEM_VALIDATOR,
    Geolocation,
    ValidationDecision,
    ValidationLevel,
    ValidationPriority,
    ValidationRequest,
)
from validation_kernel.exceptions import (
    ConcurrentModificationError,
    TamperDetectedError,
)
from validation_kernel.logging_config import LogContext, configure_logging, get_logger
from validation_kernel.services.auditor_service import (
    REQUEST_ENTITY,
    AuditorService,
    AuditTrace,
)
from validation_kernel.services.threshold_service import ThresholdCache, ThresholdService
from validation_kernel.services.validation_workflow_service import ValidationWorkflowService
from validation_services.geocoding import CoordinateGeocoder, NominatimGeocoder
from validation_services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
)

logger = get_logger("services.gateway")


@dataclass(frozen=True)
class UnitOfWork:
    """Kernel services bound to one session."""

    session: Session
    auditor: AuditorService
    thresholds: ThresholdService
    workflow: ValidationWorkflowService


def build_geocoder(settings: Settings) -> ReverseGeocoder | None:
    kind = settings.geocoder.kind
    if kind == "none":
        return None
    if kind == "nominatim":
        return NominatimGeocoder(
            settings.geocoder.base_url,
            timeout=settings.geocoder.timeout_seconds,
            user_agent=settings.geocoder.user_agent,
        )
    return CoordinateGeocoder()


class ValidationGateway:
    """
    Transactional facade over the threshold store and the workflow engine.

    Non-goals:
        - Does NOT authorize callers; whoever reaches the gateway may act.
        - Does NOT hold sessions between calls.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Clock | None = None,
        geocoder: ReverseGeocoder | None = None,
        dispatcher: TransitionDispatcher | None = None,
        threshold_cache: ThresholdCache | None = None,
        defaults: Mapping[str, ThresholdLadder] | None = None,
        max_retries: int = 1,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._geocoder = geocoder
        self._dispatcher = dispatcher
        self._threshold_cache = threshold_cache
        self._defaults = dict(defaults or {})
        self._max_retries = max(0, max_retries)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        defaults: LadderDefaults | None = None,
        *,
        clock: Clock | None = None,
        sinks: Iterable[NotificationSink] | None = None,
        geocoder: ReverseGeocoder | None = None,
        create_schema: bool = False,
    ) -> ValidationGateway:
        """Wire a gateway from parsed settings.

        ``sinks`` defaults to a single LoggingNotificationSink.
        """
        configure_logging(level=logging.getLevelName(settings.logging.level.upper()))

        db = settings.database
        engine = build_engine(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
        )
        if create_schema:
            create_tables(engine)

        dispatcher = NotificationDispatcher(
            [LoggingNotificationSink()] if sinks is None else sinks,
            max_workers=settings.notifications.max_workers,
            enabled=settings.notifications.enabled,
        )
        return cls(
            sessionmaker(bind=engine, expire_on_commit=False),
            clock=clock,
            geocoder=geocoder if geocoder is not None else build_geocoder(settings),
            dispatcher=dispatcher,
            threshold_cache=ThresholdCache() if settings.threshold_cache_enabled else None,
            defaults=defaults.as_mapping() if defaults is not None else None,
            max_retries=settings.gateway.max_retries,
        )

    @property
    def dispatcher(self) -> TransitionDispatcher | None:
        return self._dispatcher

    @property
    def threshold_cache(self) -> ThresholdCache | None:
        return self._threshold_cache

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _build(self, session: Session) -> UnitOfWork:
        auditor = AuditorService(session, self._clock)
        thresholds = ThresholdService(
            session,
            auditor,
            self._clock,
            cache=self._threshold_cache,
            defaults=self._defaults,
        )
        workflow = ValidationWorkflowService(
            session,
            thresholds,
            auditor,
            self._clock,
            geocoder=self._geocoder,
            dispatcher=self._dispatcher,
        )
        return UnitOfWork(session, auditor, thresholds, workflow)

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """Services over a fresh session; commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield self._build(session)
            session.commit()
        except TamperDetectedError:
            # Keep the tamper audit record
            session.commit()
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Threshold configuration
    # ------------------------------------------------------------------

    def create_threshold(
        self,
        workspace_id: str,
        entity_type: str,
        level1: Decimal | int | str,
        level2: Decimal | int | str,
        level3: Decimal | int | str,
        **options: Any,
    ) -> ValidationThreshold:
        with LogContext.bind(workspace_id=workspace_id), self.unit_of_work() as uow:
            return uow.thresholds.create_threshold(
                workspace_id, entity_type, level1, level2, level3, **options,
            )

    def update_threshold(self, threshold_id: UUID, **changes: Any) -> ValidationThreshold:
        with self.unit_of_work() as uow:
            return uow.thresholds.update_threshold(threshold_id, **changes)

    def delete_threshold(self, threshold_id: UUID, actor_id: str = SYSTEM_VALIDATOR) -> None:
        with self.unit_of_work() as uow:
            uow.thresholds.delete_threshold(threshold_id, actor_id=actor_id)

    def clone_threshold(
        self,
        source_id: UUID,
        new_category: str | None,
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> ValidationThreshold:
        with self.unit_of_work() as uow:
            return uow.thresholds.clone_threshold(source_id, new_category, actor_id=actor_id)

    def get_threshold(
        self,
        workspace_id: str,
        entity_type: str,
        category: str | None = None,
    ) -> ValidationThreshold | None:
        with self.unit_of_work() as uow:
            return uow.thresholds.get_threshold(workspace_id, entity_type, category)

    def get_threshold_by_id(self, threshold_id: UUID) -> ValidationThreshold:
        with self.unit_of_work() as uow:
            return uow.thresholds.get_threshold_by_id(threshold_id)

    def list_thresholds(
        self,
        workspace_id: str,
        entity_type: str | None = None,
    ) -> list[ValidationThreshold]:
        with self.unit_of_work() as uow:
            return uow.thresholds.list_thresholds(workspace_id, entity_type)

    def get_or_create_default(self, workspace_id: str, entity_type: str) -> ValidationThreshold:
        with LogContext.bind(workspace_id=workspace_id), self.unit_of_work() as uow:
            return uow.thresholds.get_or_create_default(workspace_id, entity_type)

    def validate_workspace_thresholds(self, workspace_id: str) -> list[ThresholdViolation]:
        with self.unit_of_work() as uow:
            return uow.thresholds.validate_workspace_thresholds(workspace_id)

    def get_threshold_usage_stats(
        self,
        workspace_id: str,
        start: datetime,
        end: datetime,
    ) -> ThresholdUsageStats:
        with self.unit_of_work() as uow:
            return uow.thresholds.get_threshold_usage_stats(workspace_id, start, end)

    # ------------------------------------------------------------------
    # Workflow
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
        with self.unit_of_work() as uow:
            return uow.workflow.create_validation_request(
                workspace_id,
                entity_type,
                entity_id,
                snapshot,
                amount=amount,
                reason=reason,
                priority=priority,
                tags=tags,
                requested_by=requested_by,
                category=category,
                expires_at=expires_at,
            )

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
        """Record a decision, retrying a lost race at the level first observed."""
        pinned = expected_level
        attempt = 0
        while True:
            try:
                with self.unit_of_work() as uow:
                    if pinned is None:
                        pinned = uow.workflow.get_request(request_id).current_level
                    return uow.workflow.process_validation(
                        request_id,
                        validated_by,
                        decision,
                        comment=comment,
                        geolocation=geolocation,
                        signature=signature,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        expected_level=pinned,
                    )
            except ConcurrentModificationError:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.info(
                    "validation_decision_retry",
                    extra={
                        "request_id": str(request_id),
                        "attempt": attempt,
                        "expected_level": ValidationLevel(pinned).value,
                    },
                )

    def get_request(self, request_id: UUID) -> ValidationRequest:
        with self.unit_of_work() as uow:
            return uow.workflow.get_request(request_id)

    def get_pending_validations(
        self,
        workspace_id: str,
        validator_level: ValidationLevel | str,
        exclude_expired_as_of: datetime | None = None,
    ) -> list[ValidationRequest]:
        with self.unit_of_work() as uow:
            return uow.workflow.get_pending_validations(
                workspace_id, validator_level, exclude_expired_as_of,
            )

    def get_validation_history(
        self,
        entity_type: str,
        entity_id: str,
        workspace_id: str | None = None,
    ) -> list[ValidationRequest]:
        with self.unit_of_work() as uow:
            return uow.workflow.get_validation_history(entity_type, entity_id, workspace_id)

    def get_validator_stats(
        self,
        workspace_id: str,
        validator_id: str,
        start: datetime,
        end: datetime,
    ) -> ValidatorStats:
        with self.unit_of_work() as uow:
            return uow.workflow.get_validator_stats(workspace_id, validator_id, start, end)

    def verify_request_integrity(self, request_id: UUID) -> bool:
        with self.unit_of_work() as uow:
            return uow.workflow.verify_request_integrity(request_id)

    def get_audit_trace(self, request_id: UUID) -> AuditTrace:
        with self.unit_of_work() as uow:
            return uow.auditor.get_trace(REQUEST_ENTITY, request_id)

    def validate_audit_chain(self) -> bool:
        with self.unit_of_work() as uow:
            return uow.auditor.validate_chain()
