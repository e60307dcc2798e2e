"""Shared pytest fixtures for all test suites."""

import asyncio
import copy
import inspect
import json
import random
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

import pytest

from tripgen.gateway.client import RemoteOperationGateway
from tripgen.models.request import GenerationRequest
from tripgen.orchestration.orchestrator import ItineraryOrchestrator
from tripgen.orchestration.strategies import (
    AIFirstStrategy,
    ContentFirstStrategy,
    GenerationStrategy,
)
from tripgen.tools.executor import RetryExecutor, RetryPolicy

TEST_DOB = "1995-08-20"


class FakeTransport:
    """In-memory transport.

    Each operation maps to a response, an exception, a (possibly async) callable taking
    the payload, or a list of those consumed in order (the last entry repeats).
    """

    def __init__(self, responses: Mapping[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def invoke(self, operation: str, payload: Mapping[str, Any]) -> Any:
        self.calls.append((operation, copy.deepcopy(dict(payload))))
        await asyncio.sleep(0)

        handler = self.responses.get(operation, {"success": True, "data": {}})
        if isinstance(handler, list):
            handler = handler.pop(0) if len(handler) > 1 else handler[0]
        if callable(handler):
            handler = handler(payload)
        if inspect.isawaitable(handler):
            handler = await handler
        if isinstance(handler, BaseException):
            raise handler
        return handler

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.calls if name == operation]

    @property
    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


class SleepRecorder:
    """Injectable sleep that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


def activity_results() -> dict[str, Any]:
    return {
        "activities": [
            {
                "id": "act_1",
                "name": "Senso-ji Temple",
                "phone": "+81 3-3842-0181",
                "category": "attraction",
                "rating": 4.6,
                "userRatingsTotal": 81234,
                "placeId": "place_sensoji",
                "location": {
                    "name": "Asakusa",
                    "address": "2-3-1 Asakusa, Taito City",
                    "coordinates": {"lat": 35.7148, "lng": 139.7967},
                },
            },
            {
                "id": "act_2",
                "name": "teamLab Planets",
                "website": "https://www.teamlab.art/e/planets/",
                "price_level": 3,
                "category": "museum",
                "location": {"address": "6-1-16 Toyosu, Koto City"},
            },
            # No phone, website or price tier: never scheduled
            {"id": "act_3", "name": "Unlisted Viewpoint", "category": "park"},
        ],
        "restaurants": [
            {
                "id": "rest_1",
                "name": "Sushi Dai",
                "phone": "+81 3-3547-6797",
                "price_level": 2,
                "category": "sushi",
            },
            {"id": "rest_2", "name": "Ichiran Shibuya", "price_level": 0, "category": "ramen"},
        ],
    }


def ai_output(days: int = 7) -> dict[str, Any]:
    daily_plans = []
    for day in range(1, days + 1):
        daily_plans.append(
            {
                "day": day,
                "date": f"2025-12-{day:02d}",
                "theme": f"Theme {day}",
                "activities": [
                    {
                        "name": "Senso-ji Temple" if day == 1 else f"Hidden Spot {day}",
                        "type": "attraction",
                        "insider_tip": "Go early",
                        "best_time": "morning",
                        "duration": "2 hours",
                        "cost_estimate": "Free",
                    }
                ],
                "meals": [
                    {
                        "meal": "dinner",
                        "name": "Sushi Dai" if day == 1 else f"Izakaya {day}",
                        "cuisine": "Japanese",
                        "price_range": "$$",
                    }
                ],
            }
        )
    return {
        "travel_agent_summary": "A week of temples, sushi and neon.",
        "trip_narrative": "Tokyo in December.",
        "cultural_context": {"etiquette": "Bow slightly"},
        "daily_plans": daily_plans,
        "budget_estimate": {
            "total": 2100,
            "per_person": 1050,
            "currency": "USD",
            "breakdown": {"activities": 600, "food": 900, "transportation": 600},
        },
    }


def default_responses(ai_days: int = 7) -> dict[str, Any]:
    return {
        "searchAccommodations": {
            "success": True,
            "data": {"hotels": [{"id": "hotel_1", "name": "Park Hyatt Tokyo"}]},
        },
        "searchActivities": {"success": True, "data": activity_results()},
        "searchFlights": {
            "success": True,
            "data": {"flights": [{"id": "flight_1", "airline": "NH", "price": 820}]},
        },
        "generateItineraryContent": {
            "success": True,
            "data": {
                "assistant": json.dumps(
                    {"transportation": {"mode": "train", "tips": ["Get a Suica card"]}}
                )
            },
        },
        "generateFullItinerary": {"success": True, "data": {"aiOutput": ai_output(ai_days)}},
        "generateGroundTransportationAdvice": {
            "success": True,
            "data": {"transportation": {"mode": "train", "estimatedDuration": "2h 15m"}},
        },
        "saveItinerary": {"success": True, "data": {"id": "saved_doc_1"}},
    }


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_request() -> Callable[..., GenerationRequest]:
    """Factory for a valid Tokyo request; keyword overrides use field names."""

    def factory(**overrides: Any) -> GenerationRequest:
        data: dict[str, Any] = {
            "destination": "Tokyo, Japan",
            "departure": "Osaka",
            "start_date": date(2025, 12, 1),
            "end_date": date(2025, 12, 7),
            "trip_type": "leisure",
            "user_info": {
                "uid": "user_123",
                "username": "traveler",
                "gender": "Female",
                "dob": TEST_DOB,
                "email": "traveler@example.com",
            },
        }
        data.update(overrides)
        return GenerationRequest.model_validate(data)

    return factory


@pytest.fixture
def make_orchestrator(
    sleep_recorder: SleepRecorder,
) -> Callable[..., ItineraryOrchestrator]:
    """Factory for an orchestrator wired to a fake transport with instant sleeps."""

    def factory(
        transport: FakeTransport,
        strategy: str = "ai_first",
        max_attempts: int = 3,
        sleep_fn: Any = None,
    ) -> ItineraryOrchestrator:
        chosen: GenerationStrategy = (
            AIFirstStrategy() if strategy == "ai_first" else ContentFirstStrategy()
        )
        return ItineraryOrchestrator(
            gateway=RemoteOperationGateway(transport),
            strategy=chosen,
            policy=RetryPolicy(max_attempts=max_attempts, base_delay_ms=1000, jitter_max_ms=0),
            executor=RetryExecutor(sleep_fn=sleep_fn or sleep_recorder, rng=random.Random(7)),
        )

    return factory


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for a fake transport; keyword overrides replace per-operation responses."""

    def factory(ai_days: int = 7, **overrides: Any) -> FakeTransport:
        responses = default_responses(ai_days)
        responses.update(overrides)
        return FakeTransport(responses)

    return factory


@pytest.fixture
def activity_search_results() -> dict[str, Any]:
    return activity_results()


@pytest.fixture
def ai_output_data() -> dict[str, Any]:
    return ai_output()
