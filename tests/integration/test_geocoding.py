"""
Reverse geocoding.

The HTTP geocoder is exercised against httpx.MockTransport; the workflow
is checked to store whatever address the geocoder returns and to carry on
without one when the lookup fails.
"""

from decimal import Decimal

import httpx
import pytest

from validation_kernel.domain.validation import Geolocation
from validation_kernel.services.validation_workflow_service import ValidationWorkflowService
from validation_services.geocoding import CoordinateGeocoder, NominatimGeocoder

WORKSPACE = "ws-test"
BASE_URL = "https://geo.example.test"


def mock_geocoder(handler):
    client = httpx.Client(
        transport=httpx.MockTransport(handler),
        headers={"User-Agent": "validation-tests"},
    )
    return NominatimGeocoder(BASE_URL, client=client)


class TestNominatimGeocoder:

    def test_returns_display_name(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"display_name": "Alexanderplatz, Berlin"})

        geocoder = mock_geocoder(handler)
        assert geocoder(52.52, 13.405) == "Alexanderplatz, Berlin"

        request = seen[0]
        assert request.url.path == "/reverse"
        assert request.url.params["format"] == "jsonv2"
        assert request.url.params["lat"] == "52.52"
        assert request.url.params["lon"] == "13.405"
        assert request.headers["User-Agent"] == "validation-tests"

    def test_no_match_returns_none(self, captured_logs):
        geocoder = mock_geocoder(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))
        assert geocoder(0.0, 0.0) is None
        assert any(r["message"] == "reverse_geocode_no_match" for r in captured_logs())

    def test_server_error_raises(self):
        geocoder = mock_geocoder(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            geocoder(52.52, 13.405)

    def test_injected_client_not_closed(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        with NominatimGeocoder(BASE_URL, client=client):
            pass
        assert not client.is_closed
        client.close()

    def test_owned_client_closed(self):
        geocoder = NominatimGeocoder(BASE_URL)
        geocoder.close()
        assert geocoder._client.is_closed


class TestCoordinateGeocoder:

    def test_formats_coordinates(self):
        assert CoordinateGeocoder()(52.52, 13.405) == "52.520000, 13.405000"
        assert CoordinateGeocoder()(-33.8688, 151.2093) == "-33.868800, 151.209300"


class TestWorkflowGeolocation:

    @pytest.fixture
    def ladder(self, threshold_service):
        return threshold_service.create_threshold(
            WORKSPACE, "expense", Decimal("100"), Decimal("1000"), Decimal("10000"),
        )

    def workflow(self, session, threshold_service, auditor_service, clock, geocoder):
        return ValidationWorkflowService(
            session, threshold_service, auditor_service, clock, geocoder=geocoder,
        )

    def test_address_from_http_geocoder(self, session, threshold_service, auditor_service, deterministic_clock, ladder):
        geocoder = mock_geocoder(lambda request: httpx.Response(200, json={"display_name": "Berlin"}))
        workflow = self.workflow(session, threshold_service, auditor_service, deterministic_clock, geocoder)

        request = workflow.create_validation_request(WORKSPACE, "expense", "EXP-1", {}, amount="50")
        decided = workflow.process_validation(
            request.request_id, "alice", "approved",
            geolocation=Geolocation(latitude=52.52, longitude=13.405, accuracy=12.5),
        )

        location = decided.latest_validation.geolocation
        assert location.address == "Berlin"
        assert location.accuracy == 12.5

    def test_failed_lookup_keeps_decision(
        self, session, threshold_service, auditor_service, deterministic_clock, ladder, captured_logs,
    ):
        geocoder = mock_geocoder(lambda request: httpx.Response(500))
        workflow = self.workflow(session, threshold_service, auditor_service, deterministic_clock, geocoder)

        request = workflow.create_validation_request(WORKSPACE, "expense", "EXP-1", {}, amount="50")
        decided = workflow.process_validation(
            request.request_id, "alice", "approved",
            geolocation=Geolocation(latitude=52.52, longitude=13.405),
        )

        location = decided.latest_validation.geolocation
        assert location.latitude == 52.52
        assert location.address is None
        assert any(r["message"] == "reverse_geocode_failed" for r in captured_logs())
