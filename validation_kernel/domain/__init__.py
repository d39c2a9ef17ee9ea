"""
Pure domain layer.

Immutable value objects for the validation gate with NO dependencies on
the ORM, the database, the clock or any I/O.  ``capabilities`` declares the
protocols of injected collaborators.
"""

from validation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from validation_kernel.domain.statistics import (
    DecisionCounts,
    LevelUsage,
    ResponseTime,
    ThresholdUsageStats,
    ValidatorStats,
)
from validation_kernel.domain.thresholds import (
    ThresholdLadder,
    ThresholdViolation,
    ValidationThreshold,
)
from validation_kernel.domain.validation import (
    AUTO_APPROVAL_COMMENT,
    LEVEL_ORDER,
    OPEN_STATUSES,
    PRIORITY_RANK,
    SYSTEM_VALIDATOR,
    TERMINAL_STATUSES,
    TOP_LEVEL,
    VALIDATION_TRANSITIONS,
    Geolocation,
    Validation,
    ValidationDecision,
    ValidationLevel,
    ValidationPriority,
    ValidationRequest,
    ValidationStatus,
    level_rank,
)

__all__ = [
    "AUTO_APPROVAL_COMMENT",
    "Clock",
    "DecisionCounts",
    "DeterministicClock",
    "Geolocation",
    "LEVEL_ORDER",
    "LevelUsage",
    "OPEN_STATUSES",
    "PRIORITY_RANK",
    "ResponseTime",
    "SYSTEM_VALIDATOR",
    "SystemClock",
    "TERMINAL_STATUSES",
    "TOP_LEVEL",
    "ThresholdLadder",
    "ThresholdUsageStats",
    "ThresholdViolation",
    "VALIDATION_TRANSITIONS",
    "Validation",
    "ValidationDecision",
    "ValidationLevel",
    "ValidationPriority",
    "ValidationRequest",
    "ValidationStatus",
    "ValidationThreshold",
    "ValidatorStats",
    "level_rank",
]
