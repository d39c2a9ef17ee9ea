"""
Pluggable capabilities injected into the workflow engine.

Nothing here is called at import time, and no implementation lives in the
kernel: concrete geocoders and notification delivery are provided by
``validation_services`` (or by the host application).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from validation_kernel.domain.thresholds import ValidationThreshold
from validation_kernel.domain.validation import Validation, ValidationRequest

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


@runtime_checkable
class ReverseGeocoder(Protocol):
    """``(latitude, longitude) -> address``.

    May return None when no address is known.  May raise; the engine
    treats any failure as "no address" and keeps the raw coordinates.
    """

    def __call__(self, latitude: float, longitude: float) -> str | None:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Receives every status transition.

    ``latest_validation`` is None only for a freshly opened pending request.
    """

    def __call__(
        self,
        request: ValidationRequest,
        latest_validation: Validation | None,
    ) -> None:
        ...


class TransitionDispatcher(Protocol):
    """Hands a transition to notification sinks without blocking the write.

    Implementations must not deliver before the session commits and must
    drop the notice if the session rolls back.
    """

    def dispatch(
        self,
        session: Session,
        request: ValidationRequest,
        latest_validation: Validation | None,
    ) -> None:
        ...


class ThresholdStore(Protocol):
    """Read side of the threshold configuration store used by the engine."""

    def get_threshold(
        self,
        workspace_id: str,
        entity_type: str,
        category: str | None = None,
    ) -> ValidationThreshold | None:
        ...
