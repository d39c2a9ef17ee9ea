"""ORM models for the validation kernel."""

from validation_kernel.models.audit_event import AuditAction, AuditEvent
from validation_kernel.models.sequence_counter import SequenceCounter
from validation_kernel.models.threshold import ValidationThresholdModel, category_key
from validation_kernel.models.validation_request import (
    ValidationEntryModel,
    ValidationRequestModel,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "SequenceCounter",
    "ValidationEntryModel",
    "ValidationRequestModel",
    "ValidationThresholdModel",
    "category_key",
]
