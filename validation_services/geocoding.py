"""
validation_services.geocoding -- Reverse-geocoder implementations.

Both classes satisfy the kernel's ``ReverseGeocoder`` protocol
``(latitude, longitude) -> str | None``.  The workflow engine treats any
exception as "no address", so these may raise freely; the HTTP geocoder is
nevertheless bounded by a timeout so a slow lookup cannot stall a decision
for long.
"""

from __future__ import annotations

from typing import Any

import httpx

from validation_kernel.logging_config import get_logger

logger = get_logger("services.geocoding")


class CoordinateGeocoder:
    """Offline fallback: the address is the coordinates themselves."""

    def __call__(self, latitude: float, longitude: float) -> str | None:
        return f"{latitude:.6f}, {longitude:.6f}"


class NominatimGeocoder:
    """
    Reverse geocoding against a Nominatim-compatible HTTP endpoint.

    ``client`` may be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise one is created with ``timeout``.
    """

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        *,
        timeout: float = 2.0,
        user_agent: str = "validation-workflow",
        client: httpx.Client | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
        )

    def __call__(self, latitude: float, longitude: float) -> str | None:
        resp = self._client.get(
            f"{self._base_url}/reverse",
            params={"format": "jsonv2", "lat": latitude, "lon": longitude},
        )
        resp.raise_for_status()
        body: dict[str, Any] = resp.json()
        address = body.get("display_name")
        if not address:
            logger.debug(
                "reverse_geocode_no_match",
                extra={"latitude": latitude, "longitude": longitude},
            )
            return None
        return str(address)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> NominatimGeocoder:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
