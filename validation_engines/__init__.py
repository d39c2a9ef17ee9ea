"""
Module: validation_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    the kernel services: ladder invariant checks, level routing and
    statistics aggregation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import validation_kernel/domain/ (and sibling engine modules).
    MUST NOT import validation_services.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps are passed in.
    - Decimal-only arithmetic for amounts and bounds.
    - Determinism: identical inputs always produce identical outputs.
"""

from validation_engines.ladder import check_ladder, is_valid_ladder
from validation_engines.routing import (
    ENTRY_LEVEL,
    DecisionOutcome,
    RoutingPlan,
    compute_required_level,
    next_level,
    plan_request,
    resolve_decision,
    should_auto_approve,
)
from validation_engines.statistics import (
    DecisionSample,
    RequestSample,
    build_usage_stats,
    build_validator_stats,
)
from validation_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "ENTRY_LEVEL",
    "DecisionOutcome",
    "DecisionSample",
    "RequestSample",
    "RoutingPlan",
    "build_usage_stats",
    "build_validator_stats",
    "check_ladder",
    "compute_input_fingerprint",
    "compute_required_level",
    "is_valid_ladder",
    "next_level",
    "plan_request",
    "resolve_decision",
    "should_auto_approve",
    "traced_engine",
]
