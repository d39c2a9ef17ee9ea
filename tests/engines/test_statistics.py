"""Tests for the pure statistics aggregation engine."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from validation_engines.statistics import (
    DecisionSample,
    RequestSample,
    build_usage_stats,
    build_validator_stats,
)
from validation_kernel.domain.statistics import DecisionCounts, LevelUsage
from validation_kernel.domain.validation import (
    ValidationDecision,
    ValidationLevel,
    ValidationStatus,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 1, 31, tzinfo=timezone.utc)


def decision(entity_type, outcome, hours):
    return DecisionSample(
        request_id=uuid4(),
        validation_id=uuid4(),
        entity_type=entity_type,
        decision=outcome,
        requested_at=START,
        validated_at=START + timedelta(hours=hours),
    )


class TestValidatorStats:

    def test_counts_and_average(self):
        stats = build_validator_stats("alice", "ws", START, END, [
            decision("expense", ValidationDecision.APPROVED, 1),
            decision("expense", ValidationDecision.REJECTED, 2),
            decision("invoice", ValidationDecision.APPROVED, 6),
        ])

        assert stats.total_processed == 3
        assert stats.approved == 2
        assert stats.rejected == 1
        assert stats.avg_response_hours == Decimal("3")
        assert len(stats.response_times) == 3
        assert stats.by_entity_type == {
            "expense": DecisionCounts(approved=1, rejected=1),
            "invoice": DecisionCounts(approved=1, rejected=0),
        }

    def test_empty_period(self):
        stats = build_validator_stats("alice", "ws", START, END, [])
        assert stats.total_processed == 0
        assert stats.avg_response_hours == Decimal("0")
        assert stats.approval_rate == Decimal("0")
        assert stats.by_entity_type == {}

    def test_accepts_string_decisions(self):
        stats = build_validator_stats("alice", "ws", START, END, [
            decision("expense", "rejected", 1),
        ])
        assert stats.rejected == 1


class TestUsageStats:

    def test_buckets_by_required_level(self):
        stats = build_usage_stats("ws", START, END, [
            RequestSample("expense", ValidationStatus.AUTO_APPROVED, ValidationLevel.LEVEL_1),
            RequestSample("expense", ValidationStatus.APPROVED, ValidationLevel.LEVEL_2),
            RequestSample("expense", ValidationStatus.PENDING, ValidationLevel.LEVEL_2),
            RequestSample("invoice", ValidationStatus.REJECTED, ValidationLevel.OWNER),
        ])

        assert stats.total_requests == 4
        assert stats.auto_approved == 1
        assert stats.auto_approval_rate == Decimal("25")
        assert stats.by_entity_type["expense"] == LevelUsage(auto_approved=1, level_2=2)
        assert stats.by_entity_type["invoice"] == LevelUsage(owner=1)
        assert list(stats.by_entity_type) == ["expense", "invoice"]

    def test_empty(self):
        stats = build_usage_stats("ws", START, END, [])
        assert stats.total_requests == 0
        assert stats.auto_approval_rate == Decimal("0")
