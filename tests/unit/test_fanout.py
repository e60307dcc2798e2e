"""Tests for the fan-out coordinator and payload builders."""

import asyncio
from collections.abc import Mapping
from datetime import date
from typing import Any

import pytest

from tripgen.gateway.client import Operation, OperationResult
from tripgen.models.common import ErrorKind
from tripgen.models.request import FlightPreferences, GenerationRequest, PreferenceProfile
from tripgen.orchestration.fanout import (
    FLIGHT_PAYLOAD_KEYS,
    FanOutCall,
    FanOutCoordinator,
    build_flight_payload,
    build_ground_transport_payload,
    build_search_payload,
    compute_trip_days,
    extract_list,
)
from tripgen.tools.executor import GenerationError, OperationCancelledError


def scripted_call(outcomes: Mapping[Operation, Any]):
    """Call function returning or raising per operation, recording the order of calls."""
    started: list[Operation] = []

    async def call(operation: Operation, payload: Mapping[str, Any]) -> OperationResult:
        started.append(operation)
        await asyncio.sleep(0)
        outcome = outcomes[operation]
        if isinstance(outcome, BaseException):
            raise outcome
        return OperationResult(success=True, data=outcome)

    call.started = started  # type: ignore[attr-defined]
    return call


def flight_request(**overrides: Any) -> GenerationRequest:
    data: dict[str, Any] = {
        "destination": "Tokyo",
        "departure": "Osaka",
        "departure_airport_code": "KIX",
        "destination_airport_code": "HND",
        "start_date": date(2025, 12, 1),
        "end_date": date(2025, 12, 7),
        "special_requests": "window seat",
        "user_info": {"uid": "user_1", "email": "a@example.com"},
    }
    data.update(overrides)
    return GenerationRequest.model_validate(data)


class TestHelpers:
    """Trip length and response-shape helpers."""

    def test_trip_days_is_inclusive(self) -> None:
        assert compute_trip_days(date(2025, 12, 1), date(2025, 12, 7)) == 7
        assert compute_trip_days(date(2025, 12, 1), date(2025, 12, 1)) == 1

    def test_extract_list_accepts_both_shapes(self) -> None:
        assert extract_list({"hotels": [1, 2]}, "hotels") == [1, 2]
        assert extract_list({"data": {"hotels": [3]}}, "hotels") == [3]

    @pytest.mark.parametrize("data", [None, [], "hotels", {"hotels": "nope"}, {"data": None}])
    def test_extract_list_defaults_to_empty(self, data) -> None:
        assert extract_list(data, "hotels") == []


class TestPayloads:
    """Payload builders."""

    def test_flight_payload_has_exactly_the_flight_fields(self) -> None:
        payload = build_flight_payload(flight_request())

        assert set(payload) == FLIGHT_PAYLOAD_KEYS
        assert payload == {
            "departureAirportCode": "KIX",
            "destinationAirportCode": "HND",
            "departureDate": "2025-12-01",
            "returnDate": "2025-12-07",
            "cabinClass": "ECONOMY",
            "preferredAirlines": [],
            "stops": "ANY",
        }

    @pytest.mark.parametrize(
        "cabin,stops,expected_cabin,expected_stops",
        [
            ("business", "non-stop", "BUSINESS", "NONSTOP"),
            ("premium-economy", "one-stop", "PREMIUM-ECONOMY", "ONE_OR_FEWER"),
            ("first", "any", "FIRST", "ANY"),
        ],
    )
    def test_flight_preferences_are_mapped(
        self, cabin: str, stops: str, expected_cabin: str, expected_stops: str
    ) -> None:
        request = flight_request(
            flight_preferences=FlightPreferences.model_validate(
                {"class": cabin, "stopPreference": stops, "preferredAirlines": ["NH"]}
            )
        )
        payload = build_flight_payload(request)

        assert payload["cabinClass"] == expected_cabin
        assert payload["stops"] == expected_stops
        assert payload["preferredAirlines"] == ["NH"]

    def test_search_payload_carries_trip_context(self) -> None:
        payload = build_search_payload(
            flight_request(must_include=["sushi"]), PreferenceProfile(travel_style="luxury"), 7
        )

        assert payload["destination"] == "Tokyo"
        assert payload["startDate"] == "2025-12-01"
        assert payload["endDate"] == "2025-12-07"
        assert payload["days"] == 7
        assert payload["tripType"] == "leisure"
        assert payload["mustInclude"] == ["sushi"]
        assert payload["specialRequests"] == "window seat"
        assert payload["preferenceProfile"] == {"travelStyle": "luxury"}
        assert payload["userInfo"]["uid"] == "user_1"

    def test_ground_transport_payload(self) -> None:
        payload = build_ground_transport_payload(flight_request(), "train")
        assert payload == {
            "destination": "Tokyo",
            "startDate": "2025-12-01",
            "endDate": "2025-12-07",
            "origin": "Osaka",
            "transportType": "train",
        }


class TestFanOutCoordinator:
    """Best-effort settlement."""

    @pytest.mark.asyncio
    async def test_all_calls_start_before_any_settles(self) -> None:
        call = scripted_call(
            {
                Operation.search_accommodations: {"hotels": []},
                Operation.search_activities: {"activities": []},
            }
        )
        outcome = await FanOutCoordinator(call).run(
            [
                FanOutCall("accommodations", Operation.search_accommodations, {}),
                FanOutCall("activities", Operation.search_activities, {}),
            ]
        )

        assert call.started == [Operation.search_accommodations, Operation.search_activities]
        assert outcome.succeeded("accommodations")
        assert outcome.data("activities") == {"activities": []}
        assert outcome.degraded == {}

    @pytest.mark.asyncio
    async def test_optional_failure_degrades(self) -> None:
        call = scripted_call(
            {
                Operation.search_accommodations: GenerationError(ErrorKind.network, "hotels down"),
                Operation.search_activities: {"activities": [1]},
            }
        )
        outcome = await FanOutCoordinator(call).run(
            [
                FanOutCall("accommodations", Operation.search_accommodations, {}),
                FanOutCall("activities", Operation.search_activities, {}),
            ]
        )

        assert outcome.degraded == {"accommodations": "hotels down"}
        assert outcome.data("accommodations") is None
        assert not outcome.succeeded("accommodations")
        assert outcome.data("activities") == {"activities": [1]}

    @pytest.mark.asyncio
    async def test_required_failure_is_wrapped_as_ai_failure(self) -> None:
        call = scripted_call(
            {
                Operation.generate_full_itinerary: GenerationError(ErrorKind.network, "model busy"),
                Operation.search_accommodations: {"hotels": []},
            }
        )

        with pytest.raises(GenerationError) as exc_info:
            await FanOutCoordinator(call).run(
                [
                    FanOutCall("ai", Operation.generate_full_itinerary, {}, required=True),
                    FanOutCall("accommodations", Operation.search_accommodations, {}),
                ]
            )

        assert exc_info.value.kind == ErrorKind.server
        assert exc_info.value.message == "AI generation failed: model busy"

    @pytest.mark.asyncio
    async def test_fatal_failure_on_optional_call_aborts(self) -> None:
        call = scripted_call(
            {
                Operation.generate_full_itinerary: {"aiOutput": {}},
                Operation.search_activities: GenerationError(
                    ErrorKind.quota_exceeded, "quota-exceeded"
                ),
            }
        )

        with pytest.raises(GenerationError) as exc_info:
            await FanOutCoordinator(call).run(
                [
                    FanOutCall("ai", Operation.generate_full_itinerary, {}, required=True),
                    FanOutCall("activities", Operation.search_activities, {}),
                ]
            )

        assert exc_info.value.kind == ErrorKind.quota_exceeded

    @pytest.mark.asyncio
    async def test_optional_timeout_degrades(self) -> None:
        call = scripted_call(
            {
                Operation.search_accommodations: GenerationError(
                    ErrorKind.timeout, "Request timed out."
                ),
                Operation.search_activities: {"activities": [1]},
            }
        )
        outcome = await FanOutCoordinator(call).run(
            [
                FanOutCall("accommodations", Operation.search_accommodations, {}),
                FanOutCall("activities", Operation.search_activities, {}),
            ]
        )

        assert outcome.degraded == {"accommodations": "Request timed out."}
        assert outcome.data("activities") == {"activities": [1]}

    @pytest.mark.asyncio
    async def test_required_timeout_keeps_its_kind(self) -> None:
        call = scripted_call(
            {
                Operation.generate_full_itinerary: GenerationError(
                    ErrorKind.timeout, "Request timed out."
                ),
                Operation.search_accommodations: {"hotels": []},
            }
        )

        with pytest.raises(GenerationError) as exc_info:
            await FanOutCoordinator(call).run(
                [
                    FanOutCall("ai", Operation.generate_full_itinerary, {}, required=True),
                    FanOutCall("accommodations", Operation.search_accommodations, {}),
                ]
            )

        assert exc_info.value.kind == ErrorKind.timeout
        assert exc_info.value.message == "Request timed out."

    @pytest.mark.asyncio
    async def test_cancellation_aborts_batch(self) -> None:
        call = scripted_call(
            {
                Operation.search_accommodations: OperationCancelledError(),
                Operation.search_activities: {"activities": []},
            }
        )

        with pytest.raises(OperationCancelledError):
            await FanOutCoordinator(call).run(
                [
                    FanOutCall("accommodations", Operation.search_accommodations, {}),
                    FanOutCall("activities", Operation.search_activities, {}),
                ]
            )
