"""
Module: validation_kernel.models.threshold
Responsibility: ORM persistence for threshold ladders.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Key uniqueness: UNIQUE(workspace_id, entity_type, category_key).
      ``category_key`` is the category or "" so that a category-less row
      and a category-specific row are distinct keys while two category-less
      rows still collide (NULLs never collide in a UNIQUE index).

    The ladder ordering invariant is deliberately NOT a CHECK constraint:
    ThresholdService enforces it at write time, and
    ``validate_workspace_thresholds`` exists to find rows edited out of band.

Failure modes:
    - IntegrityError on a concurrent duplicate key insert (mapped to
      ConfigConflictError by ThresholdService).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from validation_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from validation_kernel.domain.thresholds import ValidationThreshold


def category_key(category: str | None) -> str:
    """Storage key for an optional category."""
    return category or ""


class ValidationThresholdModel(Base):
    """Persistent threshold ladder for one (workspace, entity type, category)."""

    __tablename__ = "validation_thresholds"

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "entity_type", "category_key",
            name="uq_validation_thresholds_key",
        ),
        Index("ix_validation_thresholds_workspace", "workspace_id", "entity_type"),
    )

    threshold_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    level1_threshold: Mapped[Decimal] = mapped_column(nullable=False)
    level2_threshold: Mapped[Decimal] = mapped_column(nullable=False)
    level3_threshold: Mapped[Decimal] = mapped_column(nullable=False)
    auto_approve_below: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    require_all_levels: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ValidationThreshold {self.workspace_id}/{self.entity_type}"
            f"{'/' + self.category if self.category else ''} "
            f"{self.auto_approve_below}<{self.level1_threshold}"
            f"<{self.level2_threshold}<{self.level3_threshold}>"
        )

    def to_dto(self) -> ValidationThreshold:
        """Convert ORM model to frozen domain DTO."""
        from validation_kernel.domain.thresholds import (
            ThresholdLadder,
            ValidationThreshold as ValidationThresholdDTO,
        )

        return ValidationThresholdDTO(
            threshold_id=self.threshold_id,
            workspace_id=self.workspace_id,
            entity_type=self.entity_type,
            category=self.category,
            ladder=ThresholdLadder(
                level1=self.level1_threshold,
                level2=self.level2_threshold,
                level3=self.level3_threshold,
                auto_approve_below=self.auto_approve_below,
                require_all_levels=self.require_all_levels,
            ),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
