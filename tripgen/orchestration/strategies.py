"""Generation strategies.

Two architectures share one interface:

content_first: search → synthesize days from search results → AI narration → save
ai_first:      AI itinerary + searches in one fan-out → verify places → transform → save
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from tripgen.config import StrategyName
from tripgen.gateway.client import Operation
from tripgen.models.common import ErrorKind, ProgressStage
from tripgen.models.itinerary import AssembledItinerary, GenerationResult
from tripgen.models.request import GenerationRequest, PreferenceProfile
from tripgen.orchestration.ai_transform import (
    cost_breakdown,
    extract_ai_place_names,
    parse_ai_output,
    transform_days,
    verify_places,
)
from tripgen.orchestration.assembler import assemble_itinerary, calculate_age, to_legacy_document
from tripgen.orchestration.day_plans import enriched_pools, fill_missing_days, synthesize_day_plans
from tripgen.orchestration.fanout import (
    CallFn,
    FanOutCall,
    FanOutCoordinator,
    build_flight_payload,
    build_ground_transport_payload,
    build_search_payload,
    extract_list,
)
from tripgen.orchestration.persistence import PersistenceWriter
from tripgen.orchestration.progress import (
    AI_FIRST_STEPS,
    CONTENT_FIRST_STEPS,
    ProgressStep,
    ProgressTracker,
)
from tripgen.orchestration.transport import (
    apply_profile_defaults,
    raw_travel_mode,
    resolve_include_flights,
    should_search_flights,
)
from tripgen.tools.executor import CancellationToken, GenerationError

logger = logging.getLogger(__name__)

DEFAULT_GROUP_SIZE = 2


@dataclass
class GenerationContext:
    """Everything one strategy run needs; built fresh per invocation."""

    request: GenerationRequest
    user_id: str
    generation_id: str
    trip_days: int
    token: CancellationToken
    progress: ProgressTracker
    call: CallFn
    persistence: PersistenceWriter
    started_at: float

    @property
    def start_date(self) -> date:
        assert self.request.start_date is not None
        return self.request.start_date

    @property
    def end_date(self) -> date:
        assert self.request.end_date is not None
        return self.request.end_date

    def advance(self, stage: ProgressStage) -> None:
        """Move progress forward unless the run was cancelled."""
        self.token.throw_if_cancelled()
        self.progress.advance(stage)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


def parse_assistant_json(assistant: Any) -> dict[str, Any] | None:
    """Decode an assistant payload that should hold a JSON object; None if it does not."""
    if isinstance(assistant, Mapping):
        return dict(assistant)
    if not isinstance(assistant, str) or not assistant.strip():
        return None
    try:
        parsed = json.loads(assistant)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse assistant JSON: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None


def _mappings(items: list[Any]) -> list[dict[str, Any]]:
    return [dict(item) for item in items if isinstance(item, Mapping)]


def _profile_payload(profile: PreferenceProfile) -> dict[str, Any]:
    return profile.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenerationStrategy(ABC):
    """One way of turning a validated request into a saved itinerary."""

    name: StrategyName
    steps: tuple[ProgressStep, ...]

    @abstractmethod
    async def run(self, ctx: GenerationContext) -> GenerationResult:
        """Run the generation.

        Raises:
            OperationCancelledError: The run was cancelled
            GenerationError: A required step failed
        """

    async def persist(
        self,
        ctx: GenerationContext,
        itinerary: AssembledItinerary,
        data: Any,
    ) -> GenerationResult:
        """Save the legacy projection; a failed save is reported, not raised."""
        ctx.advance(ProgressStage.saving)
        document = to_legacy_document(itinerary)
        outcome = await ctx.persistence.save(document, ctx.token)
        ctx.advance(ProgressStage.done)

        return GenerationResult(
            id=ctx.generation_id,
            success=True,
            data=data,
            save_error=outcome.error,
            saved_doc_id=outcome.saved_id,
            itinerary=document,
        )


class ContentFirstStrategy(GenerationStrategy):
    """Search first, then build days from results and ask the AI to narrate."""

    name: StrategyName = "content_first"
    steps = CONTENT_FIRST_STEPS

    async def run(self, ctx: GenerationContext) -> GenerationResult:
        request = ctx.request
        selected = request.selected_profile()
        profile = apply_profile_defaults(selected)
        search_flights = should_search_flights(resolve_include_flights(selected), request)

        ctx.advance(ProgressStage.searching)
        search_payload = build_search_payload(request, profile, ctx.trip_days)
        calls = [
            FanOutCall("accommodations", Operation.search_accommodations, search_payload),
            FanOutCall("activities", Operation.search_activities, search_payload),
        ]
        if search_flights:
            calls.append(
                FanOutCall("flights", Operation.search_flights, build_flight_payload(request))
            )

        coordinator = FanOutCoordinator(ctx.call)
        outcome = await coordinator.run(calls)
        ctx.token.throw_if_cancelled()

        accommodations = _mappings(extract_list(outcome.data("accommodations"), "hotels"))
        activities = extract_list(outcome.data("activities"), "activities")
        restaurants = extract_list(outcome.data("activities"), "restaurants")
        flights = _mappings(extract_list(outcome.data("flights"), "flights"))
        logger.info(
            f"[{ctx.generation_id}] search results: {len(accommodations)} stays, "
            f"{len(activities)} activities, {len(restaurants)} restaurants, {len(flights)} flights"
        )
        if not activities:
            logger.warning(f"[{ctx.generation_id}] searchActivities returned no activities")

        ctx.advance(ProgressStage.activities)
        plans = synthesize_day_plans(
            activities, restaurants, ctx.start_date, ctx.trip_days, request.destination
        )

        transportation: dict[str, Any] | None = None
        assistant: str | None = None
        if search_flights:
            # Flight trips are saved from search results without AI narration
            data: Any = {
                "flights": flights,
                "accommodations": accommodations,
                "activities": activities,
                "transportationType": "flight",
            }
        else:
            ctx.advance(ProgressStage.ai_generation)
            ai_outcome = await coordinator.run(
                [
                    FanOutCall(
                        "content",
                        Operation.generate_itinerary_content,
                        self._content_payload(ctx, profile),
                        required=True,
                    )
                ]
            )
            ctx.token.throw_if_cancelled()
            data = ai_outcome.data("content")
            raw_assistant = data.get("assistant") if isinstance(data, Mapping) else None
            if not raw_assistant:
                raise GenerationError(
                    ErrorKind.server, "AI generation failed to return assistant response"
                )
            assistant = (
                raw_assistant if isinstance(raw_assistant, str) else json.dumps(raw_assistant)
            )
            parsed = parse_assistant_json(raw_assistant)
            raw_transport = parsed.get("transportation") if parsed else None
            transportation = raw_transport if isinstance(raw_transport, dict) else None

        metadata = {
            "generatedBy": self.name,
            "processingTimeMs": ctx.elapsed_ms(),
            "degraded": sorted(outcome.degraded),
            "filtering": self._filtering_summary(request, activities, restaurants),
        }
        itinerary = assemble_itinerary(
            generation_id=ctx.generation_id,
            user_id=ctx.user_id,
            architecture=self.name,
            destination=request.destination,
            departure=request.departure or "",
            start_date=ctx.start_date,
            end_date=ctx.end_date,
            daily_plans=plans,
            user_info=request.user_info,
            flights=flights,
            accommodations=accommodations,
            transportation=transportation,
            alternative_activities=_mappings(activities),
            alternative_restaurants=_mappings(restaurants),
            metadata=metadata,
            assistant=assistant,
        )
        return await self.persist(ctx, itinerary, data)

    def _content_payload(
        self, ctx: GenerationContext, profile: PreferenceProfile
    ) -> dict[str, Any]:
        request = ctx.request
        return {
            "destination": request.destination,
            "startDate": ctx.start_date.isoformat(),
            "endDate": ctx.end_date.isoformat(),
            "origin": request.departure or "",
            "originAirportCode": request.departure_airport_code or None,
            "destinationAirportCode": request.destination_airport_code or None,
            # The raw mode, not the normalized one; the backend words advice per mode
            "transportType": raw_travel_mode(profile),
            "preferenceProfile": _profile_payload(profile),
            "generationId": ctx.generation_id,
            "mustInclude": list(request.must_include),
            "mustAvoid": list(request.must_avoid),
            "specialRequests": request.special_requests or "",
            "tripType": request.trip_type.value,
        }

    @staticmethod
    def _filtering_summary(
        request: GenerationRequest,
        activities: list[Any],
        restaurants: list[Any],
    ) -> dict[str, Any]:
        names = [
            str(item.get("name", "")).lower()
            for item in [*activities, *restaurants]
            if isinstance(item, Mapping)
        ]
        found = [term for term in request.must_include if any(term.lower() in n for n in names)]
        return {
            "specialRequestsUsed": bool(request.special_requests),
            "mustIncludeTermsFound": found,
            "mustIncludeMatchesCount": len(found),
        }


class AIFirstStrategy(GenerationStrategy):
    """Generate the itinerary with AI, then ground it in search results."""

    name: StrategyName = "ai_first"
    steps = AI_FIRST_STEPS

    async def run(self, ctx: GenerationContext) -> GenerationResult:
        request = ctx.request
        selected = request.selected_profile()
        profile = apply_profile_defaults(selected)
        search_flights = should_search_flights(resolve_include_flights(selected), request)

        ctx.advance(ProgressStage.ai_generation)
        search_payload = build_search_payload(request, profile, ctx.trip_days)
        calls = [
            FanOutCall(
                "ai",
                Operation.generate_full_itinerary,
                self._ai_payload(ctx, profile),
                required=True,
            ),
            FanOutCall("accommodations", Operation.search_accommodations, search_payload),
            FanOutCall("activities", Operation.search_activities, search_payload),
        ]
        if search_flights:
            calls.append(
                FanOutCall("flights", Operation.search_flights, build_flight_payload(request))
            )
        elif request.departure:
            calls.append(
                FanOutCall(
                    "transportation",
                    Operation.generate_ground_transportation_advice,
                    build_ground_transport_payload(request, raw_travel_mode(profile)),
                )
            )

        outcome = await FanOutCoordinator(ctx.call).run(calls)
        ctx.token.throw_if_cancelled()

        ai_output = parse_ai_output(outcome.data("ai"))
        accommodations = _mappings(extract_list(outcome.data("accommodations"), "hotels"))
        activities = extract_list(outcome.data("activities"), "activities")
        restaurants = extract_list(outcome.data("activities"), "restaurants")
        flights = _mappings(extract_list(outcome.data("flights"), "flights"))
        transportation = self._transportation_advice(outcome.data("transportation"))

        ctx.advance(ProgressStage.activities)
        enriched_activities, enriched_restaurants = enriched_pools(
            activities, restaurants, ctx.trip_days
        )
        place_names = extract_ai_place_names(ai_output)
        verified = verify_places(
            place_names, [*enriched_activities, *enriched_restaurants], request.destination
        )
        plans = fill_missing_days(
            transform_days(ai_output, verified, ctx.start_date),
            enriched_activities,
            enriched_restaurants,
            ctx.start_date,
            ctx.trip_days,
            request.destination,
        )

        verified_count = sum(1 for place in verified if place.verified)
        metadata = {
            "generatedBy": "ai-first-v1",
            "transformVersion": "1.1.0",
            "version": "v2",
            "aiFirstArchitecture": True,
            "culturalContext": ai_output.cultural_context,
            "travelAgentSummary": ai_output.travel_agent_summary,
            "tripNarrative": ai_output.trip_narrative,
            "processingTimeMs": ctx.elapsed_ms(),
            "degraded": sorted(outcome.degraded),
            "verificationStats": {
                "totalPlaces": len(place_names),
                "verified": verified_count,
                "notFound": len(place_names) - verified_count,
            },
        }
        itinerary = assemble_itinerary(
            generation_id=ctx.generation_id,
            user_id=ctx.user_id,
            architecture=self.name,
            destination=request.destination,
            departure=request.departure or "",
            start_date=ctx.start_date,
            end_date=ctx.end_date,
            daily_plans=plans,
            user_info=request.user_info,
            description=(
                ai_output.travel_agent_summary
                or ai_output.trip_narrative
                or f"AI-generated itinerary for {request.destination}"
            ),
            flights=flights,
            accommodations=accommodations,
            transportation=transportation,
            metadata=metadata,
            cost_breakdown=cost_breakdown(ai_output),
        )

        data = {
            "aiOutput": ai_output.model_dump(mode="json"),
            "verifiedPlaces": [place.model_dump(mode="json") for place in verified],
            "flights": flights,
            "accommodations": accommodations,
            "aiFirstArchitecture": True,
        }
        return await self.persist(ctx, itinerary, data)

    def _ai_payload(self, ctx: GenerationContext, profile: PreferenceProfile) -> dict[str, Any]:
        request = ctx.request
        info = request.user_info
        return {
            "destination": request.destination,
            "destinationLatLng": (
                request.destination_lat_lng.model_dump(mode="json")
                if request.destination_lat_lng
                else None
            ),
            "origin": request.departure or "",
            "startDate": ctx.start_date.isoformat(),
            "endDate": ctx.end_date.isoformat(),
            "preferenceProfile": _profile_payload(profile),
            "mustInclude": list(request.must_include),
            "mustAvoid": list(request.must_avoid),
            "specialRequests": request.special_requests or "",
            "groupSize": request.group_size or DEFAULT_GROUP_SIZE,
            "tripType": request.trip_type.value,
            "userInfo": {
                "uid": ctx.user_id,
                "displayName": info.username if info else "",
                "age": calculate_age(info.dob) if info and info.dob else None,
            },
        }

    @staticmethod
    def _transportation_advice(data: Any) -> dict[str, Any] | None:
        """Advice from data.transportation, or from the assistant JSON."""
        if not isinstance(data, Mapping):
            return None
        if isinstance(data.get("transportation"), Mapping):
            return dict(data["transportation"])
        parsed = parse_assistant_json(data.get("assistant"))
        if parsed is None:
            return None
        inner = parsed.get("transportation")
        return dict(inner) if isinstance(inner, Mapping) else parsed
