"""AI-first output transform.

Turns the structured output of generateFullItinerary into day plans:
- AI place names are checked against enriched search results (case-insensitive)
- Matches carry real place metadata; everything else gets a maps search link
- best_time / meal type are mapped to concrete clock times
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from tripgen.models.ai_output import AIActivity, AIDay, AIGeneratedOutput, AIMeal, VerifiedPlace
from tripgen.models.common import Coordinates, ErrorKind
from tripgen.models.itinerary import DayPlan, MealTiming, PlannedActivity, PlannedMeal, Restaurant
from tripgen.tools.executor import GenerationError

logger = logging.getLogger(__name__)

MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query={query}"
MAPS_PLACE_URL = "https://www.google.com/maps/place/?q=place_id:{place_id}"

TIME_WINDOWS = {
    "morning": ("09:00", "12:00"),
    "late morning": ("10:00", "12:30"),
    "afternoon": ("14:00", "17:00"),
    "late afternoon": ("15:00", "18:00"),
    "evening": ("19:00", "22:00"),
    "night": ("20:00", "23:00"),
}

MEAL_TIMES = {
    "breakfast": "08:30",
    "lunch": "12:30",
    "dinner": "19:30",
    "snack": "15:00",
}
DEFAULT_MEAL_TIME = "12:00"

CATEGORY_BY_TYPE = {
    "museum": "museum",
    "attraction": "attraction",
    "walking": "walking_tour",
    "experience": "experience",
    "shopping": "shopping",
    "park": "outdoor",
    "beach": "outdoor",
    "tour": "tour",
    "nightlife": "nightlife",
    "restaurant": "dining",
}
DEFAULT_CATEGORY = "attraction"


def parse_ai_output(data: Any) -> AIGeneratedOutput:
    """Validate the raw generateFullItinerary payload.

    The output is normally nested under `aiOutput`; a bare output is accepted too.

    Raises:
        GenerationError: Payload is missing or does not match the expected shape
    """
    if isinstance(data, Mapping) and isinstance(data.get("aiOutput"), Mapping):
        data = data["aiOutput"]
    if not isinstance(data, Mapping) or "daily_plans" not in data:
        raise GenerationError(ErrorKind.server, "AI generation failed to return output")
    try:
        return AIGeneratedOutput.model_validate(data)
    except ValidationError as e:
        raise GenerationError(
            ErrorKind.server, f"AI generation failed: invalid output ({e.error_count()} errors)"
        ) from e


def maps_search_url(name: str, destination: str) -> str:
    return MAPS_SEARCH_URL.format(query=quote(f"{name} {destination}", safe=""))


def time_window(best_time: str) -> tuple[str | None, str | None]:
    """Start/end clock times for a best_time label, or (None, None) if unknown."""
    return TIME_WINDOWS.get((best_time or "").strip().lower(), (None, None))


def meal_time(meal: str) -> str:
    return MEAL_TIMES.get((meal or "").strip().lower(), DEFAULT_MEAL_TIME)


def infer_category(activity_type: str) -> str:
    return CATEGORY_BY_TYPE.get((activity_type or "").strip().lower(), DEFAULT_CATEGORY)


def extract_ai_place_names(output: AIGeneratedOutput) -> list[str]:
    """Unique activity and meal names in first-seen order."""
    seen: set[str] = set()
    names: list[str] = []
    for day in output.daily_plans:
        for name in [a.name for a in day.activities] + [m.name for m in day.meals]:
            if name and name not in seen:
                seen.add(name)
                names.append(name)
    return names


def _place_index(search_results: Iterable[Any]) -> dict[str, Mapping[str, Any]]:
    index: dict[str, Mapping[str, Any]] = {}
    for item in search_results:
        if isinstance(item, Mapping) and item.get("name"):
            index.setdefault(str(item["name"]).strip().lower(), item)
    return index


def _address(item: Mapping[str, Any]) -> str | None:
    location = item.get("location")
    if isinstance(location, Mapping):
        return location.get("address") or location.get("name")
    if isinstance(location, str):
        return location
    return item.get("formatted_address") or item.get("vicinity")


def _coordinates(item: Mapping[str, Any]) -> dict[str, float] | None:
    location = item.get("location")
    raw = location.get("coordinates") if isinstance(location, Mapping) else item.get("coordinates")
    if isinstance(raw, Mapping) and "lat" in raw and "lng" in raw:
        try:
            return {"lat": float(raw["lat"]), "lng": float(raw["lng"])}
        except (TypeError, ValueError):
            return None
    return None


def verify_places(
    names: list[str],
    search_results: Iterable[Any],
    destination: str,
) -> list[VerifiedPlace]:
    """Match AI place names against search results by case-insensitive name."""
    index = _place_index(search_results)
    verified: list[VerifiedPlace] = []
    for name in names:
        match = index.get(name.strip().lower())
        if match is None:
            verified.append(
                VerifiedPlace(
                    original_name=name,
                    name=name,
                    verified=False,
                    verification_confidence="ai_generated",
                    google_maps_url=maps_search_url(name, destination),
                )
            )
            continue

        place_id = match.get("placeId") or match.get("place_id")
        verified.append(
            VerifiedPlace(
                original_name=name,
                name=str(match["name"]),
                verified=True,
                verification_confidence="high",
                place_id=place_id,
                formatted_address=_address(match),
                rating=match.get("rating"),
                user_ratings_total=match.get("userRatingsTotal") or match.get("user_ratings_total"),
                phone=match.get("phone"),
                website=match.get("website"),
                coordinates=_coordinates(match),
                google_maps_url=(
                    MAPS_PLACE_URL.format(place_id=place_id)
                    if place_id
                    else maps_search_url(name, destination)
                ),
            )
        )

    matched = sum(1 for p in verified if p.verified)
    logger.info(f"Verified {matched}/{len(verified)} AI places against search results")
    return verified


def _as_coordinates(raw: dict[str, float] | None) -> Coordinates | None:
    return Coordinates(**raw) if raw else None


def transform_activity(
    activity: AIActivity,
    places: Mapping[str, VerifiedPlace],
    day: int,
    index: int,
) -> PlannedActivity:
    start, end = time_window(activity.best_time)
    place = places.get(activity.name)
    planned = PlannedActivity(
        id=f"activity_{day}_{index}",
        name=place.name if place else activity.name,
        description=activity.insider_tip or None,
        insider_tip=activity.insider_tip or None,
        category=infer_category(activity.type),
        duration=activity.duration or None,
        start_time=start,
        end_time=end,
        estimated_cost=activity.cost_estimate,
        google_maps_url=place.google_maps_url if place else None,
    )
    if place and place.verified:
        planned.location = place.formatted_address
        planned.rating = place.rating
        planned.user_ratings_total = place.user_ratings_total
        planned.place_id = place.place_id
        planned.phone = place.phone
        planned.website = place.website
        planned.coordinates = _as_coordinates(place.coordinates)
    return planned


def transform_meal(
    meal: AIMeal,
    places: Mapping[str, VerifiedPlace],
    day: int,
    index: int,
) -> PlannedMeal:
    place = places.get(meal.name)
    restaurant = Restaurant(
        name=place.name if place else meal.name,
        description=meal.insider_tip or None,
        cuisine=meal.cuisine or None,
        dietary_fit=meal.dietary_fit,
        insider_tip=meal.insider_tip or None,
        estimated_cost=meal.price_range or None,
        google_maps_url=place.google_maps_url if place else None,
    )
    if place and place.verified:
        restaurant.location = place.formatted_address
        restaurant.rating = place.rating
        restaurant.user_ratings_total = place.user_ratings_total
        restaurant.place_id = place.place_id
        restaurant.phone = place.phone
        restaurant.website = place.website
        restaurant.coordinates = _as_coordinates(place.coordinates)

    meal_type = meal.meal or "lunch"
    time = meal_time(meal_type)
    return PlannedMeal(
        id=f"meal_{day}_{index}",
        name=meal_type[:1].upper() + meal_type[1:],
        type=meal_type,
        time=time,
        timing=MealTiming(time=time),
        cost=meal.price_range or None,
        restaurant=restaurant,
    )


def _day_date(day: AIDay, start_date: date) -> date:
    if day.date:
        try:
            return date.fromisoformat(day.date[:10])
        except ValueError:
            logger.debug(f"Ignoring unparseable AI date {day.date!r} for day {day.day}")
    return start_date + timedelta(days=day.day - 1)


def transform_days(
    output: AIGeneratedOutput,
    places: list[VerifiedPlace],
    start_date: date,
) -> list[DayPlan]:
    """Convert AI days to DayPlans; days with a non-positive number are skipped."""
    by_name = {p.original_name: p for p in places}
    plans: list[DayPlan] = []
    for day in output.daily_plans:
        if day.day < 1:
            logger.warning(f"Skipping AI day with invalid number {day.day}")
            continue
        plans.append(
            DayPlan(
                day=day.day,
                date=_day_date(day, start_date),
                title=f"Day {day.day}: {day.theme}" if day.theme else f"Day {day.day}",
                theme=day.theme or None,
                activities=[
                    transform_activity(a, by_name, day.day, i) for i, a in enumerate(day.activities)
                ],
                meals=[transform_meal(m, by_name, day.day, i) for i, m in enumerate(day.meals)],
            )
        )
    return plans


def cost_breakdown(output: AIGeneratedOutput) -> dict[str, Any] | None:
    estimate = output.budget_estimate
    if estimate is None:
        return None
    return {
        "total": estimate.total,
        "perPerson": estimate.per_person,
        "currency": estimate.currency,
        "byCategory": dict(estimate.breakdown),
    }
