"""Transport resolver - decides whether a trip needs flight search."""

import json
import logging
from typing import Any

from tripgen.models.common import TransportMode
from tripgen.models.request import (
    BudgetRange,
    GenerationRequest,
    PreferenceProfile,
    Transportation,
)

logger = logging.getLogger(__name__)

AIR_MODES = frozenset({"airplane", "flight", "flights", "air"})

DEFAULT_PRIMARY_MODE = "driving"
DEFAULT_TRAVEL_STYLE = "mid-range"


def apply_profile_defaults(profile: PreferenceProfile | None) -> PreferenceProfile:
    """Fill an absent or partial profile with conservative defaults.

    Defaults are ground transport, a mid-range budget and no flights. Values the user
    set explicitly are never overridden. The input profile is not modified.
    """
    if profile is None:
        return PreferenceProfile(
            travel_style=DEFAULT_TRAVEL_STYLE,
            budget_range=BudgetRange(),
            activities=[],
            transportation=Transportation(
                primary_mode=DEFAULT_PRIMARY_MODE, include_flights=False
            ),
        )

    filled = profile.model_copy(deep=True)
    if not filled.travel_style:
        filled.travel_style = DEFAULT_TRAVEL_STYLE
    if filled.budget_range is None:
        filled.budget_range = BudgetRange()
    if filled.activities is None:
        filled.activities = []

    transportation = filled.transportation or Transportation()
    if transportation.primary_mode is None or transportation.primary_mode == "":
        transportation.primary_mode = DEFAULT_PRIMARY_MODE
    if transportation.include_flights is None:
        transportation.include_flights = False
    filled.transportation = transportation
    return filled


def stringify_mode(raw: Any) -> str:
    """Coerce a travel-mode value of any shape to a lower-cased string."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw.strip().lower()
    if isinstance(raw, (dict, list)):
        try:
            return json.dumps(raw, sort_keys=True).lower()
        except (TypeError, ValueError):
            return str(raw).lower()
    return str(raw).strip().lower()


def normalize_travel_mode(raw: Any) -> TransportMode:
    """Map a raw travel mode onto the closed TransportMode enum."""
    return TransportMode.air if stringify_mode(raw) in AIR_MODES else TransportMode.ground


def raw_travel_mode(profile: PreferenceProfile | None) -> Any:
    if profile is None or profile.transportation is None:
        return DEFAULT_PRIMARY_MODE
    mode = profile.transportation.primary_mode
    return DEFAULT_PRIMARY_MODE if mode is None or mode == "" else mode


def resolve_include_flights(profile: PreferenceProfile | None) -> bool:
    """True when the profile asks for air travel.

    Either the explicit `include_flights` flag is set, or the normalized travel mode
    is one of airplane/flight/flights/air.
    """
    profile = apply_profile_defaults(profile)
    assert profile.transportation is not None
    if profile.transportation.include_flights is True:
        return True
    return normalize_travel_mode(profile.transportation.primary_mode) == TransportMode.air


def should_search_flights(include_flights: bool, request: GenerationRequest) -> bool:
    """Flights are searched only for air travel with both airport codes present."""
    if not include_flights:
        return False
    if not (request.departure_airport_code or "").strip():
        logger.debug("Skipping flight search: departure airport code missing")
        return False
    if not (request.destination_airport_code or "").strip():
        logger.debug("Skipping flight search: destination airport code missing")
        return False
    return True
