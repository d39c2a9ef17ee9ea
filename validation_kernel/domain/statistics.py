"""Result records for validator workload and threshold usage queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class DecisionCounts:
    approved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.approved + self.rejected


@dataclass(frozen=True)
class ResponseTime:
    """Time between a request being opened and one validator's decision."""

    request_id: UUID
    validation_id: UUID
    entity_type: str
    requested_at: datetime
    validated_at: datetime

    @property
    def hours(self) -> Decimal:
        seconds = Decimal(str((self.validated_at - self.requested_at).total_seconds()))
        return seconds / Decimal(3600)


@dataclass(frozen=True)
class ValidatorStats:
    """Decisions authored by one validator in a period."""

    validator_id: str
    workspace_id: str
    period_start: datetime
    period_end: datetime
    total_processed: int
    approved: int
    rejected: int
    avg_response_hours: Decimal
    response_times: tuple[ResponseTime, ...] = ()
    by_entity_type: dict[str, DecisionCounts] = field(default_factory=dict)

    @property
    def approval_rate(self) -> Decimal:
        if self.total_processed == 0:
            return Decimal("0")
        return Decimal(self.approved) * 100 / Decimal(self.total_processed)


@dataclass(frozen=True)
class LevelUsage:
    """How requests of one entity type resolved: auto-approval or required level."""

    auto_approved: int = 0
    level_1: int = 0
    level_2: int = 0
    level_3: int = 0
    owner: int = 0

    @property
    def total(self) -> int:
        return self.auto_approved + self.level_1 + self.level_2 + self.level_3 + self.owner


@dataclass(frozen=True)
class ThresholdUsageStats:
    workspace_id: str
    period_start: datetime
    period_end: datetime
    total_requests: int
    auto_approved: int
    auto_approval_rate: Decimal
    by_entity_type: dict[str, LevelUsage] = field(default_factory=dict)
