"""
End-to-end validation scenarios through the gateway.

Ladder used by scenarios A-C (workspace ``ws-test``, entity type ``expense``):
    auto-approve below 5,000 | level_1 <= 50,000 | level_2 <= 200,000
    | level_3 <= 1,000,000 | owner above

A: 3,000 is auto-approved with a single SYSTEM entry.
B: 75,000 needs level_2; level_1 approves (escalated), level_2 approves.
C: as B, but level_2 rejects; the rejection is final.
D: require_all_levels with no auto-approval floor; 3,000 walks all four levels.
"""

from decimal import Decimal

import pytest

from validation_kernel.domain.validation import (
    SYSTEM_VALIDATOR,
    ValidationLevel,
    ValidationStatus,
)
from validation_kernel.exceptions import AlreadyProcessedError
from validation_kernel.models.audit_event import AuditAction

WORKSPACE = "ws-test"

L1 = ValidationLevel.LEVEL_1
L2 = ValidationLevel.LEVEL_2
L3 = ValidationLevel.LEVEL_3
OWNER = ValidationLevel.OWNER


@pytest.fixture
def scenario_ladder(gateway):
    return gateway.create_threshold(
        WORKSPACE, "expense",
        Decimal("50000"), Decimal("200000"), Decimal("1000000"),
        auto_approve_below=Decimal("5000"),
    )


def open_expense(gateway, amount, entity_id="EXP-001"):
    return gateway.create_validation_request(
        WORKSPACE, "expense", entity_id,
        {"employee": "E-17", "total": amount, "currency": "EUR"},
        amount=Decimal(amount),
        requested_by="employee-17",
    )


class TestScenarioA:
    """Small expense below the auto-approval floor."""

    def test_auto_approved(self, gateway, scenario_ladder):
        request = open_expense(gateway, "3000")

        assert request.status == ValidationStatus.AUTO_APPROVED
        assert [v.validated_by for v in request.validations] == [SYSTEM_VALIDATOR]

        stored = gateway.get_request(request.request_id)
        assert stored.status == ValidationStatus.AUTO_APPROVED
        assert gateway.get_pending_validations(WORKSPACE, L1) == []
        assert gateway.get_audit_trace(request.request_id).actions == (
            AuditAction.VALIDATION_AUTO_APPROVED,
        )


class TestScenarioB:
    """Mid-size expense approved at level_2."""

    def test_escalate_then_approve(self, gateway, scenario_ladder, deterministic_clock):
        request = open_expense(gateway, "75000")
        assert request.required_level == L2
        assert request.current_level == L1
        assert [r.request_id for r in gateway.get_pending_validations(WORKSPACE, L1)] == [
            request.request_id,
        ]

        deterministic_clock.advance(hours=1)
        escalated = gateway.process_validation(request.request_id, "team-lead", "approved")
        assert escalated.status == ValidationStatus.ESCALATED
        assert escalated.current_level == L2
        assert gateway.get_pending_validations(WORKSPACE, L1) == []
        assert len(gateway.get_pending_validations(WORKSPACE, L2)) == 1

        deterministic_clock.advance(hours=1)
        approved = gateway.process_validation(request.request_id, "director", "approved")
        assert approved.status == ValidationStatus.APPROVED
        assert [(v.level, v.validated_by) for v in approved.validations] == [
            (L1, "team-lead"),
            (L2, "director"),
        ]
        assert gateway.get_pending_validations(WORKSPACE, L2) == []
        assert gateway.verify_request_integrity(request.request_id)


class TestScenarioC:
    """Mid-size expense rejected at level_2."""

    def test_rejection_is_final(self, gateway, scenario_ladder):
        request = open_expense(gateway, "75000")
        gateway.process_validation(request.request_id, "team-lead", "approved")

        rejected = gateway.process_validation(
            request.request_id, "director", "rejected", comment="over budget",
        )
        assert rejected.status == ValidationStatus.REJECTED
        assert rejected.rejection_reason == "over budget"

        with pytest.raises(AlreadyProcessedError):
            gateway.process_validation(request.request_id, "cfo", "approved")

        trace = gateway.get_audit_trace(request.request_id)
        assert trace.actions == (
            AuditAction.VALIDATION_REQUESTED,
            AuditAction.VALIDATION_ESCALATED,
            AuditAction.VALIDATION_REJECTED,
        )
        assert len(gateway.get_request(request.request_id).validations) == 2


class TestScenarioD:
    """Every level must sign, whatever the amount."""

    def test_four_approvals_required(self, gateway):
        gateway.create_threshold(
            WORKSPACE, "expense",
            Decimal("50000"), Decimal("200000"), Decimal("1000000"),
            auto_approve_below=Decimal("0"),
            require_all_levels=True,
        )
        request = open_expense(gateway, "3000")
        assert request.status == ValidationStatus.PENDING
        assert request.required_level == OWNER

        validators = ["lead", "manager", "director", "owner"]
        statuses = []
        for validator in validators:
            statuses.append(gateway.process_validation(request.request_id, validator, "approved").status)

        assert statuses == [
            ValidationStatus.ESCALATED,
            ValidationStatus.ESCALATED,
            ValidationStatus.ESCALATED,
            ValidationStatus.APPROVED,
        ]
        final = gateway.get_request(request.request_id)
        assert [v.level for v in final.validations] == [L1, L2, L3, OWNER]
        assert final.current_level == OWNER
        assert gateway.validate_audit_chain()
