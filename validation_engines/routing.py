"""
validation_engines.routing -- Pure level routing for validation requests.

Responsibility:
    Decide, from a threshold ladder and an amount, whether a request is
    auto-approved and which level must sign off last; and, for a decision
    cast at the current level, which status and level the request moves to.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import validation_kernel/domain/ types.

Invariants enforced:
    - Fixed level order ``level_1 < level_2 < level_3 < owner``.
    - Review always enters at ``level_1`` whatever the required level.
    - A rejection at any level is terminal.
    - ``require_all_levels`` forces the required level to the top of the
      order; it never changes how a decision is resolved.
    - Only transitions listed in ``VALIDATION_TRANSITIONS`` are produced.

Failure modes:
    - ValueError if ``resolve_decision`` is asked to move a request out of
      a terminal status (the caller checks status first).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from validation_engines.tracer import traced_engine
from validation_kernel.domain.thresholds import ThresholdLadder
from validation_kernel.domain.validation import (
    LEVEL_ORDER,
    TOP_LEVEL,
    VALIDATION_TRANSITIONS,
    ValidationDecision,
    ValidationLevel,
    ValidationStatus,
    level_rank,
)

ENTRY_LEVEL = ValidationLevel.LEVEL_1


@dataclass(frozen=True)
class RoutingPlan:
    """How a new request is opened."""

    status: ValidationStatus
    current_level: ValidationLevel
    required_level: ValidationLevel
    reason: str

    @property
    def auto_approved(self) -> bool:
        return self.status == ValidationStatus.AUTO_APPROVED


@dataclass(frozen=True)
class DecisionOutcome:
    """Where a request lands after one decision."""

    status: ValidationStatus
    current_level: ValidationLevel
    decided_level: ValidationLevel

    @property
    def escalated(self) -> bool:
        return self.status == ValidationStatus.ESCALATED

    @property
    def is_terminal(self) -> bool:
        return not VALIDATION_TRANSITIONS[self.status]


def should_auto_approve(ladder: ThresholdLadder | None, amount: Decimal | None) -> bool:
    """True only when a ladder exists and ``amount`` is strictly below its floor."""
    if ladder is None or amount is None:
        return False
    return amount < ladder.auto_approve_below


def compute_required_level(
    ladder: ThresholdLadder | None,
    amount: Decimal | None,
) -> ValidationLevel:
    """Last level that must approve.

    First rung whose upper bound is >= ``amount``; ``owner`` above level3.
    No ladder or no amount means a single level_1 sign-off, unless the
    ladder demands every level.
    """
    if ladder is None:
        return ValidationLevel.LEVEL_1
    if ladder.require_all_levels:
        return TOP_LEVEL
    if amount is None or amount <= ladder.level1:
        return ValidationLevel.LEVEL_1
    if amount <= ladder.level2:
        return ValidationLevel.LEVEL_2
    if amount <= ladder.level3:
        return ValidationLevel.LEVEL_3
    return ValidationLevel.OWNER


@traced_engine("routing", "1.0", fingerprint_fields=("amount",))
def plan_request(ladder: ThresholdLadder | None, amount: Decimal | None) -> RoutingPlan:
    """Opening status and levels for a new request."""
    if should_auto_approve(ladder, amount):
        return RoutingPlan(
            status=ValidationStatus.AUTO_APPROVED,
            current_level=ENTRY_LEVEL,
            required_level=ENTRY_LEVEL,
            reason=f"{amount} below auto-approval floor {ladder.auto_approve_below}",
        )

    required = compute_required_level(ladder, amount)
    if ladder is None:
        reason = "no threshold configured"
    elif ladder.require_all_levels:
        reason = "every level required"
    else:
        reason = f"amount {amount} routes to {required.value}"
    return RoutingPlan(
        status=ValidationStatus.PENDING,
        current_level=ENTRY_LEVEL,
        required_level=required,
        reason=reason,
    )


def next_level(level: ValidationLevel) -> ValidationLevel | None:
    """Level after ``level`` in the fixed order, or None at the top."""
    rank = level_rank(level)
    if rank + 1 >= len(LEVEL_ORDER):
        return None
    return LEVEL_ORDER[rank + 1]


@traced_engine(
    "routing", "1.0",
    fingerprint_fields=("status", "current_level", "required_level", "decision"),
)
def resolve_decision(
    status: ValidationStatus,
    current_level: ValidationLevel,
    required_level: ValidationLevel,
    decision: ValidationDecision,
) -> DecisionOutcome:
    """Apply one decision cast at ``current_level``."""
    status = ValidationStatus(status)
    decision = ValidationDecision(decision)

    if decision == ValidationDecision.REJECTED:
        new_status = ValidationStatus.REJECTED
        new_level = current_level
    elif level_rank(current_level) < level_rank(required_level):
        new_status = ValidationStatus.ESCALATED
        new_level = next_level(current_level)
    else:
        new_status = ValidationStatus.APPROVED
        new_level = current_level

    if new_status not in VALIDATION_TRANSITIONS[status]:
        raise ValueError(f"Invalid transition {status.value} -> {new_status.value}")

    return DecisionOutcome(
        status=new_status,
        current_level=ValidationLevel(new_level),
        decided_level=ValidationLevel(current_level),
    )
