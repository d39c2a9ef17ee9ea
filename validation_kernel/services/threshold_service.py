"""
validation_kernel.services.threshold_service -- Threshold ladder configuration store.

Responsibility:
    CRUD over threshold ladders keyed by (workspace_id, entity_type,
    category), materialization of built-in default ladders, diagnostic
    re-validation of stored rows, and threshold usage statistics.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/
    and the pure ladder/statistics engines.

Invariants enforced:
    - Ladder ordering ``0 <= auto_approve_below < level1 < level2 < level3``
      checked on every create and update against the full resulting ladder.
      A rejected write leaves the stored row unchanged.  Never checked on
      read.
    - Exact-key lookups: a category-less lookup never falls back to a
      category-specific row and vice versa.
    - Key uniqueness (service check + DB unique constraint).
    - Cache coherence: a key written in the current transaction bypasses the
      cache until the transaction ends; commit and rollback both evict it.
      A read that overlaps a committed write never caches the older row.

Failure modes:
    - InvalidThresholdsError on an invalid ladder.
    - ConfigConflictError on a duplicate key (including a concurrent insert).
    - ThresholdNotFoundError for an unknown threshold id, or when no
      default ladder exists for an entity type.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from validation_engines.ladder import check_ladder
from validation_engines.statistics import RequestSample, build_usage_stats
from validation_kernel.domain.clock import Clock, SystemClock
from validation_kernel.domain.statistics import ThresholdUsageStats
from validation_kernel.domain.thresholds import (
    ThresholdLadder,
    ThresholdViolation,
    ValidationThreshold,
)
from validation_kernel.domain.validation import (
    SYSTEM_VALIDATOR,
    ValidationLevel,
    ValidationStatus,
)
from validation_kernel.exceptions import (
    ConfigConflictError,
    InvalidThresholdsError,
    ThresholdNotFoundError,
)
from validation_kernel.logging_config import get_logger
from validation_kernel.models.threshold import ValidationThresholdModel, category_key
from validation_kernel.selectors.validation_selector import ValidationSelector
from validation_kernel.services.auditor_service import AuditorService

logger = get_logger("services.threshold")

FALLBACK_LADDER_KEY = "default"

ThresholdKey = tuple[str, str, str | None]

_DIRTY_KEYS = "validation_kernel.threshold_dirty_keys"
_CACHE_LISTENERS = "validation_kernel.threshold_cache_listeners"


def _as_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidThresholdsError([f"{field_name} must be a number, got {value!r}"])
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidThresholdsError(
            [f"{field_name} must be a number, got {value!r}"]
        ) from exc
    if not result.is_finite():
        raise InvalidThresholdsError([f"{field_name} must be finite, got {value!r}"])
    return result


def _ladder_payload(ladder: ThresholdLadder) -> dict[str, Any]:
    return {
        "level1": str(ladder.level1),
        "level2": str(ladder.level2),
        "level3": str(ladder.level3),
        "auto_approve_below": str(ladder.auto_approve_below),
        "require_all_levels": ladder.require_all_levels,
    }


class ThresholdCache:
    """Process-wide read-through cache of thresholds by key.

    Stores misses too, so an unconfigured entity type does not hit the
    database on every request.  Shared between sessions; thread-safe.

    Every ``invalidate`` bumps the key's generation.  A reader passes the
    generation it saw at ``lookup`` back to ``store``; if a writer
    invalidated the key in between, the row it loaded may predate that
    write and is dropped instead of cached.
    """

    _MISS = object()

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[ThresholdKey, ValidationThreshold | None] = {}
        self._generations: dict[ThresholdKey, int] = {}
        self._epoch = 0
        self.hits = 0
        self.misses = 0

    def _generation(self, key: ThresholdKey) -> tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def lookup(self, key: ThresholdKey) -> tuple[bool, ValidationThreshold | None, tuple[int, int]]:
        """``(hit, value, generation)``; pass ``generation`` to ``store`` on a miss."""
        with self._lock:
            value = self._entries.get(key, self._MISS)
            if value is self._MISS:
                self.misses += 1
                return False, None, self._generation(key)
            self.hits += 1
            return True, value, self._generation(key)

    def store(
        self,
        key: ThresholdKey,
        value: ValidationThreshold | None,
        generation: tuple[int, int],
    ) -> bool:
        """Cache ``value`` unless ``key`` was invalidated since ``generation``."""
        with self._lock:
            if self._generation(key) != generation:
                return False
            self._entries[key] = value
            return True

    def invalidate(self, key: ThresholdKey) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ThresholdService:
    """Threshold ladder store.

    Does NOT call ``session.commit()``; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        cache: ThresholdCache | None = None,
        defaults: Mapping[str, ThresholdLadder] | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._cache = cache
        self._defaults = dict(defaults or {})
        self._selector = ValidationSelector(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_threshold(
        self,
        workspace_id: str,
        entity_type: str,
        level1: Decimal | int | str,
        level2: Decimal | int | str,
        level3: Decimal | int | str,
        *,
        category: str | None = None,
        require_all_levels: bool = False,
        auto_approve_below: Decimal | int | str = Decimal("0"),
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> ValidationThreshold:
        """Store a new ladder for an exact (workspace, entity type, category) key.

        Raises:
            InvalidThresholdsError: the ladder violates the ordering invariant.
            ConfigConflictError: a ladder already exists for the key.
        """
        ladder = ThresholdLadder(
            level1=_as_decimal(level1, "level1"),
            level2=_as_decimal(level2, "level2"),
            level3=_as_decimal(level3, "level3"),
            auto_approve_below=_as_decimal(auto_approve_below, "auto_approve_below"),
            require_all_levels=bool(require_all_levels),
        )
        return self._insert(workspace_id, entity_type, category, ladder, actor_id)

    def update_threshold(
        self,
        threshold_id: UUID,
        *,
        level1: Decimal | int | str | None = None,
        level2: Decimal | int | str | None = None,
        level3: Decimal | int | str | None = None,
        require_all_levels: bool | None = None,
        auto_approve_below: Decimal | int | str | None = None,
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> ValidationThreshold:
        """Apply a partial change after validating the full resulting ladder.

        Raises:
            ThresholdNotFoundError: unknown ``threshold_id``.
            InvalidThresholdsError: the resulting ladder is invalid; nothing
                is written.
        """
        model = self._load_model(threshold_id)
        before = model.to_dto().ladder
        after = before.with_changes(
            level1=None if level1 is None else _as_decimal(level1, "level1"),
            level2=None if level2 is None else _as_decimal(level2, "level2"),
            level3=None if level3 is None else _as_decimal(level3, "level3"),
            auto_approve_below=(
                None if auto_approve_below is None
                else _as_decimal(auto_approve_below, "auto_approve_below")
            ),
            require_all_levels=require_all_levels,
        )

        violations = check_ladder(after)
        if violations:
            logger.warning(
                "threshold_update_rejected",
                extra={"threshold_id": str(threshold_id), "violations": violations},
            )
            raise InvalidThresholdsError(violations)

        if after == before:
            return model.to_dto()

        model.level1_threshold = after.level1
        model.level2_threshold = after.level2
        model.level3_threshold = after.level3
        model.auto_approve_below = after.auto_approve_below
        model.require_all_levels = after.require_all_levels
        model.updated_at = self._clock.now()
        self._session.flush()

        self._auditor.record_threshold_updated(
            threshold_id=model.threshold_id,
            before=_ladder_payload(before),
            after=_ladder_payload(after),
            actor_id=actor_id,
        )
        self._mark_dirty((model.workspace_id, model.entity_type, model.category))

        logger.info(
            "threshold_updated",
            extra={
                "threshold_id": str(model.threshold_id),
                "workspace_id": model.workspace_id,
                "entity_type": model.entity_type,
                "category": model.category,
            },
        )
        return model.to_dto()

    def delete_threshold(
        self,
        threshold_id: UUID,
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> None:
        """Remove a ladder.  Requests already opened keep their required level."""
        model = self._load_model(threshold_id)
        dto = model.to_dto()

        self._session.delete(model)
        self._session.flush()

        self._auditor.record_threshold_deleted(
            threshold_id=dto.threshold_id,
            ladder=_ladder_payload(dto.ladder),
            actor_id=actor_id,
        )
        self._mark_dirty(dto.key)

        logger.info(
            "threshold_deleted",
            extra={
                "threshold_id": str(dto.threshold_id),
                "workspace_id": dto.workspace_id,
                "entity_type": dto.entity_type,
                "category": dto.category,
            },
        )

    def get_or_create_default(
        self,
        workspace_id: str,
        entity_type: str,
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> ValidationThreshold:
        """Existing category-less ladder, or the built-in default for the type.

        Unknown entity types get the ``default`` ladder.

        Raises:
            ThresholdNotFoundError: no built-in ladder for the type and no
                ``default`` ladder configured.
        """
        existing = self.get_threshold(workspace_id, entity_type)
        if existing is not None:
            return existing

        ladder = self._defaults.get(entity_type) or self._defaults.get(FALLBACK_LADDER_KEY)
        if ladder is None:
            raise ThresholdNotFoundError(f"default ladder for {entity_type}")

        logger.info(
            "threshold_default_materialized",
            extra={"workspace_id": workspace_id, "entity_type": entity_type},
        )
        return self._insert(workspace_id, entity_type, None, ladder, actor_id)

    def clone_threshold(
        self,
        source_id: UUID,
        new_category: str | None,
        actor_id: str = SYSTEM_VALIDATOR,
    ) -> ValidationThreshold:
        """Copy a ladder under a new category of the same entity type.

        Raises:
            ThresholdNotFoundError: unknown ``source_id``.
            ConfigConflictError: the target key already exists.
        """
        source = self._load_model(source_id).to_dto()
        return self._insert(
            source.workspace_id,
            source.entity_type,
            new_category,
            source.ladder,
            actor_id,
            cloned_from=source.threshold_id,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_threshold(
        self,
        workspace_id: str,
        entity_type: str,
        category: str | None = None,
    ) -> ValidationThreshold | None:
        """Exact-key lookup; never falls back across categories."""
        key: ThresholdKey = (workspace_id, entity_type, category)
        use_cache = self._cache is not None and key not in self._dirty_keys()

        if use_cache:
            hit, value, generation = self._cache.lookup(key)
            if hit:
                return value

        model = self._load_by_key(workspace_id, entity_type, category)
        dto = model.to_dto() if model else None

        if use_cache:
            self._cache.store(key, dto, generation)
        return dto

    def get_threshold_by_id(self, threshold_id: UUID) -> ValidationThreshold:
        return self._load_model(threshold_id).to_dto()

    def list_thresholds(
        self,
        workspace_id: str,
        entity_type: str | None = None,
    ) -> list[ValidationThreshold]:
        """Ladders of a workspace ordered by entity type then category."""
        stmt = select(ValidationThresholdModel).where(
            ValidationThresholdModel.workspace_id == workspace_id,
        )
        if entity_type is not None:
            stmt = stmt.where(ValidationThresholdModel.entity_type == entity_type)
        stmt = stmt.order_by(
            ValidationThresholdModel.entity_type,
            ValidationThresholdModel.category_key,
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def validate_workspace_thresholds(self, workspace_id: str) -> list[ThresholdViolation]:
        """Stored ladders that no longer satisfy the ordering invariant.

        Diagnostic only: finds rows changed outside this service.
        """
        results: list[ThresholdViolation] = []
        for threshold in self.list_thresholds(workspace_id):
            violations = check_ladder(threshold.ladder)
            if violations:
                results.append(ThresholdViolation(threshold=threshold, violations=tuple(violations)))

        if results:
            logger.warning(
                "threshold_violations_found",
                extra={
                    "workspace_id": workspace_id,
                    "violations": [r.message for r in results],
                },
            )
        return results

    def get_threshold_usage_stats(
        self,
        workspace_id: str,
        start: datetime,
        end: datetime,
    ) -> ThresholdUsageStats:
        """How requests opened in ``[start, end]`` resolved, per entity type."""
        samples = [
            RequestSample(
                entity_type=row.entity_type,
                status=ValidationStatus(row.status),
                required_level=ValidationLevel(row.required_level),
            )
            for row in self._selector.request_outcomes(workspace_id, start, end)
        ]
        return build_usage_stats(workspace_id, start, end, samples)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(
        self,
        workspace_id: str,
        entity_type: str,
        category: str | None,
        ladder: ThresholdLadder,
        actor_id: str,
        cloned_from: UUID | None = None,
    ) -> ValidationThreshold:
        violations = check_ladder(ladder)
        if violations:
            logger.warning(
                "threshold_create_rejected",
                extra={
                    "workspace_id": workspace_id,
                    "entity_type": entity_type,
                    "violations": violations,
                },
            )
            raise InvalidThresholdsError(violations)

        if self._load_by_key(workspace_id, entity_type, category) is not None:
            raise ConfigConflictError(workspace_id, entity_type, category)

        now = self._clock.now()
        model = ValidationThresholdModel(
            threshold_id=uuid4(),
            workspace_id=workspace_id,
            entity_type=entity_type,
            category=category,
            category_key=category_key(category),
            level1_threshold=ladder.level1,
            level2_threshold=ladder.level2,
            level3_threshold=ladder.level3,
            auto_approve_below=ladder.auto_approve_below,
            require_all_levels=ladder.require_all_levels,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        try:
            self._session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent insert of the same key
            raise ConfigConflictError(workspace_id, entity_type, category) from exc

        self._auditor.record_threshold_created(
            threshold_id=model.threshold_id,
            workspace_id=workspace_id,
            entity_type=entity_type,
            category=category,
            ladder=_ladder_payload(ladder),
            actor_id=actor_id,
            cloned_from=cloned_from,
        )
        self._mark_dirty((workspace_id, entity_type, category))

        logger.info(
            "threshold_created",
            extra={
                "threshold_id": str(model.threshold_id),
                "workspace_id": workspace_id,
                "entity_type": entity_type,
                "category": category,
                "cloned_from": str(cloned_from) if cloned_from else None,
            },
        )
        return model.to_dto()

    def _load_model(self, threshold_id: UUID) -> ValidationThresholdModel:
        model = self._session.execute(
            select(ValidationThresholdModel).where(
                ValidationThresholdModel.threshold_id == threshold_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise ThresholdNotFoundError(str(threshold_id))
        return model

    def _load_by_key(
        self,
        workspace_id: str,
        entity_type: str,
        category: str | None,
    ) -> ValidationThresholdModel | None:
        return self._session.execute(
            select(ValidationThresholdModel).where(
                ValidationThresholdModel.workspace_id == workspace_id,
                ValidationThresholdModel.entity_type == entity_type,
                ValidationThresholdModel.category_key == category_key(category),
            )
        ).scalar_one_or_none()

    def _dirty_keys(self) -> set[ThresholdKey]:
        return self._session.info.get(_DIRTY_KEYS, set())

    def _mark_dirty(self, key: ThresholdKey) -> None:
        """Bypass the cache for ``key`` until this transaction ends, then evict it."""
        if self._cache is None:
            return
        self._cache.invalidate(key)

        info = self._session.info
        listening = info.setdefault(_CACHE_LISTENERS, set())
        if id(self._cache) not in listening:
            listening.add(id(self._cache))
            cache = self._cache

            def _evict(session: Session) -> None:
                # Savepoint boundaries fire these events too
                if session.in_nested_transaction():
                    return
                for dirty in session.info.pop(_DIRTY_KEYS, ()):
                    cache.invalidate(dirty)

            event.listen(self._session, "after_commit", _evict)
            event.listen(self._session, "after_rollback", _evict)

        info.setdefault(_DIRTY_KEYS, set()).add(key)
