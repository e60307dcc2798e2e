"""Itinerary assembler - one canonical record, one legacy projection.

The assembler is the only place that knows the persisted document shape. Every
strategy builds an AssembledItinerary; `to_legacy_document` projects it into the
camelCase document older readers expect (flights and accommodations duplicated at
the root, under response.data.itinerary and under response.data.recommendations).
"""

import math
import random
import string
import time
from collections.abc import Mapping
from datetime import UTC, date, datetime, time as dt_time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticUndefined

from tripgen.models.itinerary import AssembledItinerary, DayPlan
from tripgen.models.request import UserInfo

DEFAULT_ACTIVITY_NAME = "Explore Local Area"
DEFAULT_RESTAURANT_NAME = "Local Restaurant"

AGE_RANGE_LOWER = 18
AGE_RANGE_UPPER = 100

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_generation_id(now_ms: int | None = None, rng: random.Random | None = None) -> str:
    """Generation id of the form gen_<epoch ms>_<9 base36 chars>."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join((rng or random).choices(_ID_ALPHABET, k=9))
    return f"gen_{now_ms}_{suffix}"


def calculate_age(dob: str | date | None, today: date | None = None) -> int:
    """Whole years between dob and today.

    Absent or unparseable dates, and dates in the future, give 0.
    """
    if not dob:
        return 0
    if isinstance(dob, datetime):
        born = dob.date()
    elif isinstance(dob, date):
        born = dob
    else:
        try:
            born = date.fromisoformat(str(dob).strip()[:10])
        except ValueError:
            return 0

    today = today or date.today()
    if born > today:
        return 0
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return max(age, 0)


def _summarize(label: str, names: list[str]) -> str:
    unique = list(dict.fromkeys(names))
    if not unique:
        return ""
    text = f" {label} {', '.join(unique[:3])}"
    if len(unique) > 3:
        text += f" and {len(unique) - 3} more"
    return text + "."


def describe_daily_plans(plans: list[DayPlan], destination: str) -> str:
    """Human summary built from the first activity and first meal of each day."""
    if not plans:
        return f"AI-generated itinerary for {destination}"

    activities: list[str] = []
    restaurants: list[str] = []
    for plan in plans:
        if plan.activities and plan.activities[0].name not in ("", DEFAULT_ACTIVITY_NAME):
            activities.append(plan.activities[0].name)
        if plan.meals:
            name = plan.meals[0].restaurant.name
            if name and name != DEFAULT_RESTAURANT_NAME:
                restaurants.append(name)

    description = f"AI-generated {len(plans)}-day itinerary for {destination}."
    description += _summarize("Experience", activities)
    description += _summarize("Dine at", restaurants)
    return description


def extract_place_names(plans: list[DayPlan]) -> list[str]:
    """Activity names then restaurant names, day by day."""
    names: list[str] = []
    for plan in plans:
        names.extend(a.name for a in plan.activities if a.name)
        names.extend(m.restaurant.name for m in plan.meals if m.restaurant.name)
    return names


def assemble_itinerary(
    *,
    generation_id: str,
    user_id: str,
    architecture: str,
    destination: str,
    start_date: date,
    end_date: date,
    daily_plans: list[DayPlan],
    user_info: UserInfo | None,
    description: str | None = None,
    departure: str = "",
    flights: list[dict[str, Any]] | None = None,
    accommodations: list[dict[str, Any]] | None = None,
    transportation: dict[str, Any] | None = None,
    alternative_activities: list[dict[str, Any]] | None = None,
    alternative_restaurants: list[dict[str, Any]] | None = None,
    metadata: dict[str, Any] | None = None,
    cost_breakdown: dict[str, Any] | None = None,
    assistant: str | None = None,
    today: date | None = None,
) -> AssembledItinerary:
    """Build the canonical itinerary record once all upstream data is available."""
    info = user_info or UserInfo()
    now = datetime.now(UTC)
    return AssembledItinerary(
        id=generation_id,
        user_id=user_id,
        architecture=architecture,
        destination=destination,
        departure=departure,
        start_date=start_date,
        end_date=end_date,
        description=description or describe_daily_plans(daily_plans, destination),
        age=calculate_age(info.dob, today=today),
        daily_plans=daily_plans,
        flights=list(flights or []),
        accommodations=list(accommodations or []),
        place_names=extract_place_names(daily_plans),
        user_info=info.model_copy(update={"uid": user_id}),
        transportation=transportation,
        alternative_activities=list(alternative_activities or []),
        alternative_restaurants=list(alternative_restaurants or []),
        metadata={"generationId": generation_id, **(metadata or {})},
        cost_breakdown=cost_breakdown,
        assistant=assistant,
        created_at=now,
        updated_at=now,
    )


def _epoch_ms(day: date) -> int:
    return int(datetime.combine(day, dt_time.min, tzinfo=UTC).timestamp() * 1000)


def _legacy_user_info(info: UserInfo) -> dict[str, Any]:
    return {
        "username": info.username or "Anonymous",
        "gender": info.gender or "Any",
        "dob": info.dob or "",
        "uid": info.uid,
        "email": info.email or "",
        "status": info.status or "Any",
        "sexualOrientation": info.sexual_orientation or "Any",
        "blocked": list(info.blocked),
    }


def to_legacy_document(itinerary: AssembledItinerary) -> dict[str, Any]:
    """Project the canonical record into the persisted camelCase document."""
    plans = [plan.model_dump(mode="json", by_alias=True) for plan in itinerary.daily_plans]
    flights = list(itinerary.flights)
    accommodations = list(itinerary.accommodations)
    info = itinerary.user_info

    document = {
        "id": itinerary.id,
        "userId": itinerary.user_id,
        "destination": itinerary.destination,
        "title": itinerary.title,
        "description": itinerary.description,
        "startDate": itinerary.start_date,
        "endDate": itinerary.end_date,
        "startDay": _epoch_ms(itinerary.start_date),
        "endDay": _epoch_ms(itinerary.end_date),
        "lowerRange": AGE_RANGE_LOWER,
        "upperRange": AGE_RANGE_UPPER,
        "gender": info.gender or "No Preference",
        "sexualOrientation": info.sexual_orientation or "No Preference",
        "status": info.status or "No Preference",
        "likes": [],
        "age": itinerary.age,
        "activities": list(itinerary.place_names),
        "ai_status": itinerary.ai_status,
        "createdAt": itinerary.created_at,
        "updatedAt": itinerary.updated_at,
        "userInfo": _legacy_user_info(info),
        "dailyPlans": plans,
        "days": plans,
        "flights": flights,
        "accommodations": accommodations,
        "externalData": {"hotelRecommendations": accommodations},
        "response": {
            "success": True,
            "data": {
                "itinerary": {
                    "id": itinerary.id,
                    "destination": itinerary.destination,
                    "departure": itinerary.departure,
                    "startDate": itinerary.start_date,
                    "endDate": itinerary.end_date,
                    "dailyPlans": plans,
                    "days": plans,
                    "flights": flights,
                    "accommodations": accommodations,
                },
                "transportation": itinerary.transportation,
                "metadata": {"architecture": itinerary.architecture, **itinerary.metadata},
                "recommendations": {
                    "accommodations": accommodations,
                    "flights": flights,
                    "transportation": itinerary.transportation,
                    "alternativeActivities": list(itinerary.alternative_activities),
                    "alternativeRestaurants": list(itinerary.alternative_restaurants),
                },
                "costBreakdown": itinerary.cost_breakdown,
                "assistant": itinerary.assistant,
            },
        },
    }
    return null_fill(document)


def null_fill(value: Any) -> Any:
    """Recursively convert a value into plain JSON-safe data.

    Unset markers and NaN become None, dates become ISO strings, enums their values
    and models their camelCase dumps.
    """
    if value is None or value is PydanticUndefined:
        return None
    if isinstance(value, BaseModel):
        return null_fill(value.model_dump(by_alias=True))
    if isinstance(value, Enum):
        return null_fill(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, Mapping):
        return {str(k): null_fill(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [null_fill(v) for v in value]
    return value
