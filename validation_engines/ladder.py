"""
validation_engines.ladder -- Threshold ladder invariant checks.

Responsibility:
    Report every way a ladder breaks
    ``0 <= auto_approve_below < level1 < level2 < level3``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import validation_kernel/domain/ types.

Invariants enforced:
    - Bounds are non-negative.
    - Rungs strictly increase.
    - The auto-approval floor sits strictly below the first rung.
    - Purity: no clock access, no I/O, no database.
"""

from __future__ import annotations

from decimal import Decimal

from validation_kernel.domain.thresholds import ThresholdLadder

_ZERO = Decimal("0")


def check_ladder(ladder: ThresholdLadder) -> list[str]:
    """Return the list of invariant violations; empty when the ladder is valid.

    Never clamps or repairs the ladder.
    """
    violations: list[str] = []

    bounds = {
        "level1": ladder.level1,
        "level2": ladder.level2,
        "level3": ladder.level3,
        "auto_approve_below": ladder.auto_approve_below,
    }
    negative = [name for name, value in bounds.items() if value < _ZERO]
    if negative:
        violations.append(f"thresholds must be non-negative: {', '.join(negative)}")

    if not (ladder.level1 < ladder.level2 < ladder.level3):
        violations.append(
            "thresholds must be strictly increasing: level1 < level2 < level3 "
            f"(got {ladder.level1}, {ladder.level2}, {ladder.level3})"
        )

    if ladder.auto_approve_below >= ladder.level1:
        violations.append(
            "auto_approve_below must be lower than level1 "
            f"(got {ladder.auto_approve_below} >= {ladder.level1})"
        )

    return violations


def is_valid_ladder(ladder: ThresholdLadder) -> bool:
    return not check_ladder(ladder)
