"""
validation_engines.statistics -- Pure aggregation of workflow history.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Selectors fetch the rows;
    this module only counts.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from validation_kernel.domain.statistics import (
    DecisionCounts,
    LevelUsage,
    ResponseTime,
    ThresholdUsageStats,
    ValidatorStats,
)
from validation_kernel.domain.validation import (
    ValidationDecision,
    ValidationLevel,
    ValidationStatus,
)

_ZERO = Decimal("0")

_LEVEL_FIELD = {
    ValidationLevel.LEVEL_1: "level_1",
    ValidationLevel.LEVEL_2: "level_2",
    ValidationLevel.LEVEL_3: "level_3",
    ValidationLevel.OWNER: "owner",
}


@dataclass(frozen=True)
class DecisionSample:
    """One decision authored by a validator, joined with its request."""

    request_id: UUID
    validation_id: UUID
    entity_type: str
    decision: ValidationDecision
    requested_at: datetime
    validated_at: datetime


@dataclass(frozen=True)
class RequestSample:
    """Resolution shape of one request."""

    entity_type: str
    status: ValidationStatus
    required_level: ValidationLevel


def build_validator_stats(
    validator_id: str,
    workspace_id: str,
    period_start: datetime,
    period_end: datetime,
    samples: Iterable[DecisionSample],
) -> ValidatorStats:
    """Counts, response times and per-entity-type breakdown for one validator."""
    samples = list(samples)

    approved = 0
    rejected = 0
    by_type: dict[str, tuple[int, int]] = {}
    response_times: list[ResponseTime] = []

    for sample in samples:
        is_approval = ValidationDecision(sample.decision) == ValidationDecision.APPROVED
        if is_approval:
            approved += 1
        else:
            rejected += 1
        a, r = by_type.get(sample.entity_type, (0, 0))
        by_type[sample.entity_type] = (a + 1, r) if is_approval else (a, r + 1)
        response_times.append(
            ResponseTime(
                request_id=sample.request_id,
                validation_id=sample.validation_id,
                entity_type=sample.entity_type,
                requested_at=sample.requested_at,
                validated_at=sample.validated_at,
            )
        )

    total = len(samples)
    avg = (
        sum((rt.hours for rt in response_times), _ZERO) / Decimal(total)
        if total
        else _ZERO
    )

    return ValidatorStats(
        validator_id=validator_id,
        workspace_id=workspace_id,
        period_start=period_start,
        period_end=period_end,
        total_processed=total,
        approved=approved,
        rejected=rejected,
        avg_response_hours=avg,
        response_times=tuple(response_times),
        by_entity_type={
            entity_type: DecisionCounts(approved=a, rejected=r)
            for entity_type, (a, r) in sorted(by_type.items())
        },
    )


def build_usage_stats(
    workspace_id: str,
    period_start: datetime,
    period_end: datetime,
    samples: Iterable[RequestSample],
) -> ThresholdUsageStats:
    """How requests resolved per entity type: auto-approved or by required level.

    The auto-approval rate is a percentage (0..100).
    """
    counters: dict[str, dict[str, int]] = {}
    total = 0
    auto = 0

    for sample in samples:
        total += 1
        bucket = counters.setdefault(sample.entity_type, dict.fromkeys(
            ("auto_approved", *_LEVEL_FIELD.values()), 0,
        ))
        if ValidationStatus(sample.status) == ValidationStatus.AUTO_APPROVED:
            bucket["auto_approved"] += 1
            auto += 1
        else:
            bucket[_LEVEL_FIELD[ValidationLevel(sample.required_level)]] += 1

    rate = Decimal(auto) * 100 / Decimal(total) if total else _ZERO

    return ThresholdUsageStats(
        workspace_id=workspace_id,
        period_start=period_start,
        period_end=period_end,
        total_requests=total,
        auto_approved=auto,
        auto_approval_rate=rate,
        by_entity_type={
            entity_type: LevelUsage(**bucket)
            for entity_type, bucket in sorted(counters.items())
        },
    )
