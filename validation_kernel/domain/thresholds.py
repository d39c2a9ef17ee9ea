"""
Threshold ladder domain types (``validation_kernel.domain.thresholds``).

A ladder is three ascending upper bounds (level_1, level_2, level_3) plus
an auto-approval floor.  Amounts above ``level3`` route to ``owner``.

Invariant: ``0 <= auto_approve_below < level1 < level2 < level3``.  Checked
by ``validation_engines.ladder`` at write time only.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ThresholdLadder:
    """The numeric part of a threshold configuration."""

    level1: Decimal
    level2: Decimal
    level3: Decimal
    auto_approve_below: Decimal = Decimal("0")
    require_all_levels: bool = False

    def with_changes(self, **changes) -> ThresholdLadder:
        """Return a copy with non-None ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


@dataclass(frozen=True)
class ValidationThreshold:
    """A stored ladder keyed by (workspace_id, entity_type, category)."""

    threshold_id: UUID
    workspace_id: str
    entity_type: str
    ladder: ThresholdLadder
    category: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.workspace_id, self.entity_type, self.category)

    @property
    def label(self) -> str:
        return f"{self.entity_type} ({self.category})" if self.category else self.entity_type


@dataclass(frozen=True)
class ThresholdViolation:
    """A stored configuration that no longer satisfies the ladder invariant."""

    threshold: ValidationThreshold
    violations: tuple[str, ...]

    @property
    def message(self) -> str:
        return f"{self.threshold.label}: " + "; ".join(self.violations)
