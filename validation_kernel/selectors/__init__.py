"""Read-only selectors for the validation kernel."""

from validation_kernel.selectors.base import BaseSelector
from validation_kernel.selectors.validation_selector import (
    DecisionRow,
    RequestOutcomeRow,
    ValidationRequestFilter,
    ValidationSelector,
)

__all__ = [
    "BaseSelector",
    "DecisionRow",
    "RequestOutcomeRow",
    "ValidationRequestFilter",
    "ValidationSelector",
]
