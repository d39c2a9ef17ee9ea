"""
Module: validation_kernel.selectors.validation_selector
Responsibility: Read-only queries over validation requests and their
    decision trail: the pending queue, entity history, and the rows behind
    validator and threshold-usage statistics.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Read-only: no mutation of queried data.
    - Filters are built from typed fields into SQLAlchemy clauses; no query
      text is ever assembled from caller strings.
    - Deterministic ordering on every list query.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, func, or_, select

from validation_kernel.domain.validation import (
    OPEN_STATUSES,
    ValidationLevel,
    ValidationRequest,
    ValidationStatus,
)
from validation_kernel.models.validation_request import (
    ValidationEntryModel,
    ValidationRequestModel,
)
from validation_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ValidationRequestFilter:
    """Typed predicate over validation requests.  Unset fields do not filter."""

    workspace_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    category: str | None = None
    statuses: frozenset[ValidationStatus] | None = None
    current_level: ValidationLevel | None = None
    required_level: ValidationLevel | None = None
    requested_by: str | None = None
    requested_from: datetime | None = None
    requested_to: datetime | None = None
    exclude_expired_as_of: datetime | None = None

    def to_clauses(self) -> list[ColumnElement[bool]]:
        m = ValidationRequestModel
        clauses: list[ColumnElement[bool]] = []
        if self.workspace_id is not None:
            clauses.append(m.workspace_id == self.workspace_id)
        if self.entity_type is not None:
            clauses.append(m.entity_type == self.entity_type)
        if self.entity_id is not None:
            clauses.append(m.entity_id == self.entity_id)
        if self.category is not None:
            clauses.append(m.category == self.category)
        if self.statuses is not None:
            clauses.append(m.status.in_(sorted(ValidationStatus(s).value for s in self.statuses)))
        if self.current_level is not None:
            clauses.append(m.current_level == ValidationLevel(self.current_level).value)
        if self.required_level is not None:
            clauses.append(m.required_level == ValidationLevel(self.required_level).value)
        if self.requested_by is not None:
            clauses.append(m.requested_by == self.requested_by)
        if self.requested_from is not None:
            clauses.append(m.requested_at >= self.requested_from)
        if self.requested_to is not None:
            clauses.append(m.requested_at <= self.requested_to)
        if self.exclude_expired_as_of is not None:
            clauses.append(
                or_(m.expires_at.is_(None), m.expires_at > self.exclude_expired_as_of)
            )
        return clauses


@dataclass(frozen=True)
class DecisionRow:
    """One decision joined with the request it was cast on."""

    request_id: UUID
    validation_id: UUID
    entity_type: str
    decision: str
    requested_at: datetime
    validated_at: datetime


@dataclass(frozen=True)
class RequestOutcomeRow:
    entity_type: str
    status: str
    required_level: str


class ValidationSelector(BaseSelector[ValidationRequestModel]):
    """Read side of the validation workflow."""

    def get(self, request_id: UUID) -> ValidationRequest | None:
        model = self.session.execute(
            select(ValidationRequestModel).where(
                ValidationRequestModel.request_id == request_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def find(
        self,
        request_filter: ValidationRequestFilter,
        limit: int | None = None,
    ) -> list[ValidationRequest]:
        """Requests matching ``request_filter``, oldest first."""
        stmt = (
            select(ValidationRequestModel)
            .where(*request_filter.to_clauses())
            .order_by(ValidationRequestModel.requested_at, ValidationRequestModel.request_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def pending_for_level(
        self,
        workspace_id: str,
        level: ValidationLevel,
        exclude_expired_as_of: datetime | None = None,
    ) -> list[ValidationRequest]:
        """Open requests awaiting ``level``: most urgent first, then oldest first."""
        request_filter = ValidationRequestFilter(
            workspace_id=workspace_id,
            statuses=OPEN_STATUSES,
            current_level=level,
            exclude_expired_as_of=exclude_expired_as_of,
        )
        stmt = (
            select(ValidationRequestModel)
            .where(*request_filter.to_clauses())
            .order_by(
                ValidationRequestModel.priority_rank.desc(),
                ValidationRequestModel.requested_at.asc(),
                ValidationRequestModel.request_id,
            )
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def history_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        workspace_id: str | None = None,
    ) -> list[ValidationRequest]:
        """Every request ever opened against the entity, oldest first."""
        return self.find(
            ValidationRequestFilter(
                workspace_id=workspace_id,
                entity_type=entity_type,
                entity_id=entity_id,
            )
        )

    def decisions_by_validator(
        self,
        workspace_id: str,
        validator_id: str,
        start: datetime,
        end: datetime,
    ) -> list[DecisionRow]:
        """Decisions authored by ``validator_id`` with ``start <= validated_at <= end``."""
        e = ValidationEntryModel
        r = ValidationRequestModel
        rows = self.session.execute(
            select(
                e.request_id,
                e.validation_id,
                r.entity_type,
                e.decision,
                r.requested_at,
                e.validated_at,
            )
            .join(r, r.request_id == e.request_id)
            .where(
                r.workspace_id == workspace_id,
                e.validated_by == validator_id,
                e.validated_at >= start,
                e.validated_at <= end,
            )
            .order_by(e.validated_at, e.validation_id)
        ).all()
        return [
            DecisionRow(
                request_id=row.request_id,
                validation_id=row.validation_id,
                entity_type=row.entity_type,
                decision=row.decision,
                requested_at=row.requested_at,
                validated_at=row.validated_at,
            )
            for row in rows
        ]

    def request_outcomes(
        self,
        workspace_id: str,
        start: datetime,
        end: datetime,
    ) -> list[RequestOutcomeRow]:
        """Status and required level of every request opened in the period."""
        r = ValidationRequestModel
        rows = self.session.execute(
            select(r.entity_type, r.status, r.required_level)
            .where(
                r.workspace_id == workspace_id,
                r.requested_at >= start,
                r.requested_at <= end,
            )
            .order_by(r.requested_at, r.request_id)
        ).all()
        return [
            RequestOutcomeRow(
                entity_type=row.entity_type,
                status=row.status,
                required_level=row.required_level,
            )
            for row in rows
        ]

    def count_open(self, workspace_id: str, levels: Iterable[ValidationLevel] | None = None) -> int:
        """Number of open requests, optionally restricted to some levels."""
        stmt = select(func.count(ValidationRequestModel.id)).where(
            ValidationRequestModel.workspace_id == workspace_id,
            ValidationRequestModel.status.in_(sorted(s.value for s in OPEN_STATUSES)),
        )
        if levels is not None:
            stmt = stmt.where(
                ValidationRequestModel.current_level.in_(
                    sorted(ValidationLevel(lv).value for lv in levels)
                )
            )
        return self.session.execute(stmt).scalar_one()
