"""Services for the validation kernel (write side)."""

from validation_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from validation_kernel.services.sequence_service import SequenceService
from validation_kernel.services.threshold_service import ThresholdCache, ThresholdService
from validation_kernel.services.validation_workflow_service import (
    ValidationWorkflowService,
    compute_snapshot_hash,
)

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "SequenceService",
    "ThresholdCache",
    "ThresholdService",
    "ValidationWorkflowService",
    "compute_snapshot_hash",
]
