"""
Tests for pure level routing.

Covers:
- should_auto_approve: strict floor, no ladder, no amount
- compute_required_level: inclusive rung bounds, owner above level3, require_all_levels
- plan_request: opening status and entry level
- resolve_decision: escalation one rung at a time, approval at required level,
  rejection terminal at any level, refusal to leave terminal states
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from validation_engines.routing import (
    ENTRY_LEVEL,
    compute_required_level,
    next_level,
    plan_request,
    resolve_decision,
    should_auto_approve,
)
from validation_kernel.domain.thresholds import ThresholdLadder
from validation_kernel.domain.validation import (
    LEVEL_ORDER,
    TERMINAL_STATUSES,
    VALIDATION_TRANSITIONS,
    ValidationDecision,
    ValidationLevel,
    ValidationStatus,
    level_rank,
)

L1 = ValidationLevel.LEVEL_1
L2 = ValidationLevel.LEVEL_2
L3 = ValidationLevel.LEVEL_3
OWNER = ValidationLevel.OWNER

LADDER = ThresholdLadder(
    level1=Decimal("50000"),
    level2=Decimal("200000"),
    level3=Decimal("1000000"),
    auto_approve_below=Decimal("5000"),
)

amounts = st.decimals(min_value=0, max_value=10**8, places=2, allow_nan=False, allow_infinity=False)
levels = st.sampled_from(LEVEL_ORDER)


class TestAutoApproval:

    def test_below_floor(self):
        assert should_auto_approve(LADDER, Decimal("4999.99"))

    def test_floor_itself_is_not_auto_approved(self):
        assert not should_auto_approve(LADDER, Decimal("5000"))

    def test_no_ladder_never_auto_approves(self):
        assert not should_auto_approve(None, Decimal("0"))

    def test_no_amount_never_auto_approves(self):
        assert not should_auto_approve(LADDER, None)

    def test_zero_floor_disables_auto_approval(self):
        ladder = LADDER.with_changes(auto_approve_below=Decimal("0"))
        assert not should_auto_approve(ladder, Decimal("0"))


class TestRequiredLevel:

    @pytest.mark.parametrize("amount,expected", [
        ("0", L1),
        ("50000", L1),
        ("50000.01", L2),
        ("200000", L2),
        ("200000.01", L3),
        ("1000000", L3),
        ("1000000.01", OWNER),
    ])
    def test_rung_bounds_inclusive(self, amount, expected):
        assert compute_required_level(LADDER, Decimal(amount)) == expected

    def test_no_ladder_is_level_1(self):
        assert compute_required_level(None, Decimal("99999999")) == L1

    def test_no_amount_is_level_1(self):
        assert compute_required_level(LADDER, None) == L1

    def test_require_all_levels_forces_owner(self):
        ladder = LADDER.with_changes(require_all_levels=True)
        assert compute_required_level(ladder, Decimal("1")) == OWNER
        assert compute_required_level(ladder, None) == OWNER

    @given(a=amounts, b=amounts)
    def test_monotone_in_amount(self, a, b):
        lo, hi = sorted((a, b))
        assert level_rank(compute_required_level(LADDER, lo)) <= level_rank(
            compute_required_level(LADDER, hi)
        )


class TestPlanRequest:

    def test_auto_approved_plan(self):
        plan = plan_request(LADDER, Decimal("3000"))
        assert plan.auto_approved
        assert plan.status == ValidationStatus.AUTO_APPROVED
        assert plan.required_level == L1

    def test_pending_plan_enters_at_level_1(self):
        plan = plan_request(LADDER, Decimal("75000"))
        assert plan.status == ValidationStatus.PENDING
        assert plan.current_level == ENTRY_LEVEL == L1
        assert plan.required_level == L2

    def test_auto_approval_wins_over_require_all_levels(self):
        ladder = LADDER.with_changes(require_all_levels=True)
        assert plan_request(ladder, Decimal("3000")).auto_approved

    def test_require_all_levels_without_floor(self):
        ladder = LADDER.with_changes(require_all_levels=True, auto_approve_below=Decimal("0"))
        plan = plan_request(ladder, Decimal("3000"))
        assert plan.status == ValidationStatus.PENDING
        assert plan.required_level == OWNER

    def test_no_ladder_reason(self):
        assert plan_request(None, Decimal("1")).reason == "no threshold configured"

    @given(amount=amounts)
    def test_plan_status_is_initial(self, amount):
        plan = plan_request(LADDER, amount)
        assert plan.current_level == L1
        assert plan.auto_approved == (amount < LADDER.auto_approve_below)


class TestNextLevel:

    def test_walks_order(self):
        assert [next_level(level) for level in LEVEL_ORDER] == [L2, L3, OWNER, None]


class TestResolveDecision:

    def test_approval_below_required_escalates(self):
        outcome = resolve_decision(ValidationStatus.PENDING, L1, L2, ValidationDecision.APPROVED)
        assert outcome.status == ValidationStatus.ESCALATED
        assert outcome.current_level == L2
        assert outcome.decided_level == L1
        assert outcome.escalated
        assert not outcome.is_terminal

    def test_approval_at_required_level_approves(self):
        outcome = resolve_decision(ValidationStatus.ESCALATED, L2, L2, ValidationDecision.APPROVED)
        assert outcome.status == ValidationStatus.APPROVED
        assert outcome.current_level == L2
        assert outcome.is_terminal

    @pytest.mark.parametrize("level", LEVEL_ORDER)
    def test_rejection_terminal_at_any_level(self, level):
        outcome = resolve_decision(ValidationStatus.ESCALATED, level, OWNER, ValidationDecision.REJECTED)
        assert outcome.status == ValidationStatus.REJECTED
        assert outcome.current_level == level
        assert outcome.is_terminal

    def test_accepts_string_values(self):
        outcome = resolve_decision("pending", L1, L1, "approved")
        assert outcome.status == ValidationStatus.APPROVED

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    def test_terminal_status_refused(self, status):
        with pytest.raises(ValueError, match="Invalid transition"):
            resolve_decision(status, L1, L1, ValidationDecision.APPROVED)

    def test_owner_walk_takes_four_approvals(self):
        status, level = ValidationStatus.PENDING, L1
        steps = 0
        while status not in TERMINAL_STATUSES:
            outcome = resolve_decision(status, level, OWNER, ValidationDecision.APPROVED)
            status, level = outcome.status, outcome.current_level
            steps += 1
        assert steps == 4
        assert (status, level) == (ValidationStatus.APPROVED, OWNER)

    @given(
        current=levels,
        required=levels,
        decision=st.sampled_from(list(ValidationDecision)),
        status=st.sampled_from([ValidationStatus.PENDING, ValidationStatus.ESCALATED]),
    )
    def test_outcome_is_a_listed_transition(self, current, required, decision, status):
        outcome = resolve_decision(status, current, required, decision)
        assert outcome.status in VALIDATION_TRANSITIONS[status]
        assert level_rank(outcome.current_level) - level_rank(current) in (0, 1)
