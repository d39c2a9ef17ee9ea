"""Tests for the read-only validation request queries."""

from datetime import timedelta
from uuid import uuid4

from validation_kernel.domain.validation import ValidationLevel, ValidationStatus
from validation_kernel.selectors.validation_selector import (
    ValidationRequestFilter,
    ValidationSelector,
)

WORKSPACE = "ws-test"


def seed(workflow_service, deterministic_clock):
    """Four expense requests an hour apart plus one invoice."""
    created = []
    for entity_id, amount in [("E-1", "5"), ("E-2", "500"), ("E-3", "5000"), ("E-4", "50")]:
        created.append(
            workflow_service.create_validation_request(
                WORKSPACE, "expense", entity_id, {}, amount=amount, requested_by="bob",
            )
        )
        deterministic_clock.advance(hours=1)
    created.append(
        workflow_service.create_validation_request(
            WORKSPACE, "invoice", "I-1", {}, amount="10", category="services", requested_by="carol",
        )
    )
    return created


class TestFind:

    def test_empty_filter_returns_all_oldest_first(self, session, workflow_service, expense_ladder, deterministic_clock):
        created = seed(workflow_service, deterministic_clock)
        found = ValidationSelector(session).find(ValidationRequestFilter())
        assert [r.request_id for r in found] == [r.request_id for r in created]

    def test_filters_combine(self, session, workflow_service, expense_ladder, deterministic_clock):
        seed(workflow_service, deterministic_clock)
        selector = ValidationSelector(session)

        pending_expenses = selector.find(ValidationRequestFilter(
            workspace_id=WORKSPACE,
            entity_type="expense",
            statuses=frozenset({ValidationStatus.PENDING}),
        ))
        assert {r.entity_id for r in pending_expenses} == {"E-2", "E-3", "E-4"}

        level_2 = selector.find(ValidationRequestFilter(required_level=ValidationLevel.LEVEL_2))
        assert [r.entity_id for r in level_2] == ["E-2"]

        by_carol = selector.find(ValidationRequestFilter(requested_by="carol", category="services"))
        assert [r.entity_id for r in by_carol] == ["I-1"]

    def test_requested_window(self, session, workflow_service, expense_ladder, deterministic_clock):
        start = deterministic_clock.now()
        seed(workflow_service, deterministic_clock)

        found = ValidationSelector(session).find(ValidationRequestFilter(
            requested_from=start + timedelta(hours=1),
            requested_to=start + timedelta(hours=2),
        ))
        assert [r.entity_id for r in found] == ["E-2", "E-3"]

    def test_limit(self, session, workflow_service, expense_ladder, deterministic_clock):
        seed(workflow_service, deterministic_clock)
        assert len(ValidationSelector(session).find(ValidationRequestFilter(), limit=2)) == 2


class TestCounts:

    def test_count_open(self, session, workflow_service, expense_ladder, deterministic_clock):
        created = seed(workflow_service, deterministic_clock)
        workflow_service.process_validation(created[1].request_id, "alice", "approved")
        selector = ValidationSelector(session)

        # E-1 auto-approved; E-2 escalated to level_2; E-3, E-4, I-1 at level_1
        assert selector.count_open(WORKSPACE) == 4
        assert selector.count_open(WORKSPACE, [ValidationLevel.LEVEL_2]) == 1
        assert selector.count_open("elsewhere") == 0

    def test_get_missing_returns_none(self, session):
        assert ValidationSelector(session).get(uuid4()) is None
