"""
validation_services -- Package init and public API.

Responsibility:
    Composition over the validation kernel: the transactional gateway used
    by entity services, post-commit notification dispatch, and the
    reverse-geocoder implementations.

Architecture position:
    Services -- top layer.

    Dependency direction:
        validation_services/ -> validation_config/, validation_kernel/, validation_engines/
        validation_kernel/   -> validation_services/ (FORBIDDEN)
        validation_engines/  -> validation_services/ (FORBIDDEN)
"""

from validation_services.gateway import UnitOfWork, ValidationGateway, build_geocoder
from validation_services.geocoding import CoordinateGeocoder, NominatimGeocoder
from validation_services.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
)

__all__ = [
    "CoordinateGeocoder",
    "LoggingNotificationSink",
    "NominatimGeocoder",
    "NotificationDispatcher",
    "UnitOfWork",
    "ValidationGateway",
    "build_geocoder",
]
