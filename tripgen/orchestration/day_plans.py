"""Day-plan synthesizer - distributes search results across trip days.

Assignment policy:
1. Keep only enriched items (phone, website, or a known price tier)
2. Day i (0-based) gets enriched_activities[i % n] and enriched_restaurants[i % m]
3. Pools shorter than the trip repeat cyclically; empty pools leave the day empty
"""

import logging
import math
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any

from tripgen.models.common import Coordinates, Cost
from tripgen.models.itinerary import DayPlan, MealTiming, PlannedActivity, PlannedMeal, Restaurant

logger = logging.getLogger(__name__)

# Enrichment target of searchActivities is min(trip_days, 6) places
MAX_ENRICHED_EXPECTED = 6

PRICE_BY_LEVEL = {0: 0, 1: 15, 2: 35, 3: 65, 4: 100}
DEFAULT_PRICE = 25

# Checked in order; first keyword found in the category wins
PRICE_BY_KEYWORD: list[tuple[tuple[str, ...], int]] = [
    (("museum", "gallery"), 20),
    (("park", "beach"), 0),
    (("restaurant", "food"), 40),
    (("theater", "show"), 75),
    (("tour", "attraction"), 30),
]

ACTIVITY_START = "10:00"
ACTIVITY_END = "16:00"
DINNER_TIME = "19:00"


def is_enriched(item: Mapping[str, Any]) -> bool:
    """Item carries phone, website, or a known price tier."""
    return bool(item.get("phone") or item.get("website") or item.get("price_level") is not None)


def estimate_price(item: Mapping[str, Any], default_category: str) -> int:
    """Estimated cost in USD from price tier, falling back to category keywords."""
    level = item.get("price_level")
    if isinstance(level, (int, float)) and not isinstance(level, bool):
        if not math.isfinite(level) or level != int(level):
            return DEFAULT_PRICE
        return PRICE_BY_LEVEL.get(int(level), DEFAULT_PRICE)

    category = str(item.get("category") or item.get("type") or default_category).lower()
    for keywords, price in PRICE_BY_KEYWORD:
        if any(keyword in category for keyword in keywords):
            return price
    return DEFAULT_PRICE


def report_enrichment(kind: str, enriched: int, total: int, trip_days: int) -> None:
    """Emit operational diagnostics when enrichment falls short."""
    expected = min(trip_days, MAX_ENRICHED_EXPECTED)
    if enriched == 0:
        logger.warning(
            f"No enriched {kind} found ({total} returned); search enrichment may have failed",
            extra={"structured": {"kind": kind, "enriched": 0, "total": total}},
        )
    if enriched < expected:
        logger.warning(
            f"Only {enriched} enriched {kind} for a {trip_days}-day trip, "
            f"expected at least {expected}",
            extra={
                "structured": {
                    "kind": kind,
                    "enriched": enriched,
                    "expected": expected,
                    "trip_days": trip_days,
                }
            },
        )


def _location_text(item: Mapping[str, Any], fallback: str) -> str:
    location = item.get("location")
    if isinstance(location, Mapping):
        return str(location.get("name") or location.get("address") or fallback)
    if isinstance(location, str) and location:
        return location
    return fallback


def _coordinates(item: Mapping[str, Any]) -> Coordinates | None:
    location = item.get("location")
    raw = location.get("coordinates") if isinstance(location, Mapping) else None
    if isinstance(raw, Mapping) and "lat" in raw and "lng" in raw:
        try:
            return Coordinates(lat=float(raw["lat"]), lng=float(raw["lng"]))
        except (TypeError, ValueError):
            return None
    return None


def build_activity(item: Mapping[str, Any], day_index: int, destination: str) -> PlannedActivity:
    """Activity slot built from an activity search result."""
    return PlannedActivity(
        id=str(item.get("id") or f"activity_{day_index}"),
        name=str(item.get("name") or "Explore Local Area"),
        description=item.get("description") or f"Discover {destination}",
        location=_location_text(item, destination),
        start_time=ACTIVITY_START,
        end_time=ACTIVITY_END,
        category=str(item.get("category") or "sightseeing"),
        estimated_cost=Cost(amount=estimate_price(item, "sightseeing")),
        phone=item.get("phone"),
        website=item.get("website"),
        rating=item.get("rating"),
        user_ratings_total=item.get("userRatingsTotal") or item.get("user_ratings_total"),
        place_id=item.get("placeId") or item.get("place_id"),
        coordinates=_coordinates(item),
    )


def build_dinner(item: Mapping[str, Any], day_index: int, destination: str) -> PlannedMeal:
    """Dinner slot built from a restaurant search result."""
    category = str(item.get("category") or "restaurant")
    return PlannedMeal(
        id=str(item.get("id") or f"meal_{day_index}"),
        name="Dinner",
        type="dinner",
        time=DINNER_TIME,
        timing=MealTiming(time=DINNER_TIME),
        cost=Cost(amount=estimate_price(item, "restaurant")),
        restaurant=Restaurant(
            id=str(item.get("id") or f"restaurant_{day_index}"),
            name=str(item.get("name") or "Local Restaurant"),
            description=item.get("description") or f"Dine in {destination}",
            location=_location_text(item, destination),
            category=category,
            cuisine=category,
            phone=item.get("phone"),
            website=item.get("website"),
            rating=item.get("rating"),
            user_ratings_total=item.get("userRatingsTotal") or item.get("user_ratings_total"),
            place_id=item.get("placeId") or item.get("place_id"),
            coordinates=_coordinates(item),
        ),
    )


def _pick(pool: list[Mapping[str, Any]], index: int) -> Mapping[str, Any] | None:
    if not pool:
        return None
    return pool[index % max(1, len(pool))]


def synthesize_day(
    day_index: int,
    start_date: date,
    activities: list[Mapping[str, Any]],
    restaurants: list[Mapping[str, Any]],
    destination: str,
) -> DayPlan:
    """Plan for one day from already-enriched pools."""
    activity = _pick(activities, day_index)
    restaurant = _pick(restaurants, day_index)
    return DayPlan(
        day=day_index + 1,
        date=start_date + timedelta(days=day_index),
        activities=[build_activity(activity, day_index, destination)] if activity else [],
        meals=[build_dinner(restaurant, day_index, destination)] if restaurant else [],
    )


def enriched_pools(
    activities: list[Any],
    restaurants: list[Any],
    trip_days: int,
) -> tuple[list[Mapping[str, Any]], list[Mapping[str, Any]]]:
    """Filter raw search results down to enriched items and report shortfalls."""
    enriched_activities = [a for a in activities if isinstance(a, Mapping) and is_enriched(a)]
    enriched_restaurants = [r for r in restaurants if isinstance(r, Mapping) and is_enriched(r)]

    logger.info(
        f"Enriched activities: {len(enriched_activities)}/{len(activities)}, "
        f"restaurants: {len(enriched_restaurants)}/{len(restaurants)}"
    )
    report_enrichment("activities", len(enriched_activities), len(activities), trip_days)
    report_enrichment("restaurants", len(enriched_restaurants), len(restaurants), trip_days)
    return enriched_activities, enriched_restaurants


def synthesize_day_plans(
    activities: list[Any],
    restaurants: list[Any],
    start_date: date,
    trip_days: int,
    destination: str,
) -> list[DayPlan]:
    """Distribute enriched search results across every day of the trip."""
    enriched_activities, enriched_restaurants = enriched_pools(activities, restaurants, trip_days)
    return [
        synthesize_day(i, start_date, enriched_activities, enriched_restaurants, destination)
        for i in range(max(0, trip_days))
    ]


def fill_missing_days(
    plans: list[DayPlan],
    activities: list[Mapping[str, Any]],
    restaurants: list[Mapping[str, Any]],
    start_date: date,
    trip_days: int,
    destination: str,
) -> list[DayPlan]:
    """Pad a plan list to the trip length with cyclically assigned search results.

    Days already present (by day number) are kept; plans past the trip end are dropped.
    `activities`/`restaurants` are expected to be enriched pools.
    """
    by_day = {plan.day: plan for plan in plans if 1 <= plan.day <= trip_days}
    missing = [d for d in range(1, trip_days + 1) if d not in by_day]
    if missing:
        logger.warning(f"Filling {len(missing)} day(s) missing from generated plan: {missing}")
    for day in missing:
        by_day[day] = synthesize_day(day - 1, start_date, activities, restaurants, destination)
    return [by_day[d] for d in range(1, trip_days + 1)]
