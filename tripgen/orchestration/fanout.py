"""Fan-out coordinator - concurrent independent remote calls.

Tolerance policy is best-effort: every call settles independently. A call marked
`required` (the primary AI call) fails the generation; any other call that exhausts
its retries or hits a deadline degrades to an empty slice. Fatal classifications
(permission denied, quota exceeded) and cancellation abort the whole batch regardless.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from tripgen.gateway.client import Operation, OperationResult
from tripgen.models.common import ErrorKind
from tripgen.models.request import GenerationRequest, PreferenceProfile
from tripgen.tools.executor import GenerationError, OperationCancelledError

logger = logging.getLogger(__name__)

CallFn = Callable[[Operation, Mapping[str, Any]], Awaitable[OperationResult]]

FLIGHT_PAYLOAD_KEYS = frozenset(
    {
        "departureAirportCode",
        "destinationAirportCode",
        "departureDate",
        "returnDate",
        "cabinClass",
        "preferredAirlines",
        "stops",
    }
)

STOPS_BY_PREFERENCE = {"non-stop": "NONSTOP", "one-stop": "ONE_OR_FEWER"}


def compute_trip_days(start: date, end: date) -> int:
    """Whole days in the trip, inclusive of both endpoints."""
    return (end - start).days + 1


def extract_list(data: Any, key: str) -> list[Any]:
    """Pull a list out of `{key: [...]}` or `{data: {key: [...]}}`; [] otherwise."""
    if not isinstance(data, Mapping):
        return []
    value = data.get(key)
    if isinstance(value, list):
        return value
    nested = data.get("data")
    if isinstance(nested, Mapping) and isinstance(nested.get(key), list):
        return list(nested[key])
    return []


def build_search_payload(
    request: GenerationRequest,
    profile: PreferenceProfile,
    trip_days: int,
) -> dict[str, Any]:
    """Payload shared by accommodation and activity searches."""
    assert request.start_date is not None and request.end_date is not None
    return {
        "destination": request.destination,
        "departure": request.departure or "",
        "startDate": request.start_date.isoformat(),
        "endDate": request.end_date.isoformat(),
        # searchActivities enriches this many places
        "days": trip_days,
        "preferenceProfile": profile.model_dump(mode="json", by_alias=True, exclude_none=True),
        "userInfo": (
            request.user_info.model_dump(mode="json", by_alias=True) if request.user_info else None
        ),
        "tripType": request.trip_type.value,
        "mustInclude": list(request.must_include),
        "mustAvoid": list(request.must_avoid),
        "specialRequests": request.special_requests or "",
    }


def build_flight_payload(request: GenerationRequest) -> dict[str, Any]:
    """Flight search payload; carries only flight fields, never trip or user data."""
    assert request.start_date is not None and request.end_date is not None
    preferences = request.flight_preferences

    cabin_class = "ECONOMY"
    stops = "ANY"
    preferred_airlines: list[str] = []
    if preferences is not None:
        if preferences.cabin_class:
            cabin_class = _enum_text(preferences.cabin_class).upper()
        stops = STOPS_BY_PREFERENCE.get(_enum_text(preferences.stop_preference), "ANY")
        preferred_airlines = list(preferences.preferred_airlines)

    return {
        "departureAirportCode": request.departure_airport_code,
        "destinationAirportCode": request.destination_airport_code,
        "departureDate": request.start_date.isoformat(),
        "returnDate": request.end_date.isoformat(),
        "cabinClass": cabin_class,
        "preferredAirlines": preferred_airlines,
        "stops": stops,
    }


def build_ground_transport_payload(
    request: GenerationRequest,
    transport_type: Any,
) -> dict[str, Any]:
    """Payload for ground-transportation advice (non-flight trips with a known origin)."""
    assert request.start_date is not None and request.end_date is not None
    return {
        "destination": request.destination,
        "startDate": request.start_date.isoformat(),
        "endDate": request.end_date.isoformat(),
        "origin": request.departure,
        "transportType": transport_type,
    }


def _enum_text(value: Any) -> str:
    if value is None:
        return ""
    return str(getattr(value, "value", value))


@dataclass(frozen=True)
class FanOutCall:
    """One independent remote call in a fan-out batch."""

    name: str
    operation: Operation
    payload: Mapping[str, Any]
    required: bool = False


@dataclass
class FanOutOutcome:
    """Settled results of a fan-out batch, keyed by call name."""

    results: dict[str, OperationResult] = field(default_factory=dict)
    degraded: dict[str, str] = field(default_factory=dict)

    def data(self, name: str) -> Any:
        result = self.results.get(name)
        return result.data if result is not None else None

    def succeeded(self, name: str) -> bool:
        return name in self.results


class FanOutCoordinator:
    """Issues independent calls concurrently and collects settled outcomes."""

    def __init__(self, call: CallFn) -> None:
        """Initialize coordinator.

        Args:
            call: Retrying call function (operation, payload) -> OperationResult
        """
        self._call = call

    async def run(self, calls: list[FanOutCall]) -> FanOutOutcome:
        """Run all calls concurrently; see module docstring for tolerance policy.

        Raises:
            OperationCancelledError: Generation was cancelled while calls were in flight
            GenerationError: A required call failed, or any call failed fatally
        """
        settled = await asyncio.gather(
            *(self._call(c.operation, c.payload) for c in calls),
            return_exceptions=True,
        )

        # Cancellation wins over any other failure in the batch
        for result in settled:
            if isinstance(result, OperationCancelledError):
                raise result

        outcome = FanOutOutcome()
        for entry, result in zip(calls, settled):
            if isinstance(result, OperationResult):
                outcome.results[entry.name] = result
                continue

            if not isinstance(result, Exception):
                # asyncio.CancelledError and other BaseExceptions propagate
                raise result

            if isinstance(result, GenerationError) and result.is_fatal:
                raise result
            if entry.required:
                if isinstance(result, GenerationError) and result.kind == ErrorKind.timeout:
                    raise result
                raise GenerationError(
                    ErrorKind.server,
                    f"AI generation failed: {result}",
                    code=getattr(result, "code", None),
                    cause=result,
                ) from result

            logger.warning(
                f"[fanout] {entry.operation.value} failed, continuing without it: {result}",
                extra={"structured": {"call": entry.name, "error": str(result)}},
            )
            outcome.degraded[entry.name] = str(result)

        logger.info(
            f"[fanout] settled {len(calls)} calls "
            f"({len(outcome.results)} ok, {len(outcome.degraded)} degraded)"
        )
        return outcome
