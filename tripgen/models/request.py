"""Request models - user input and travel preferences."""

from datetime import date
from typing import Any

from pydantic import ConfigDict, Field

from tripgen.models.common import CabinClass, Coordinates, StopPreference, TripType, WireModel


class UserInfo(WireModel):
    """Identity and demographic fields copied onto the saved itinerary."""

    uid: str = ""
    username: str = ""
    gender: str = ""
    dob: str = ""
    status: str = ""
    sexual_orientation: str = ""
    email: str = ""
    blocked: list[str] = Field(default_factory=list)


class FlightPreferences(WireModel):
    """Flight search preferences (only relevant for air travel)."""

    cabin_class: CabinClass | str | None = Field(default=None, alias="class")
    stop_preference: StopPreference | str | None = None
    preferred_airlines: list[str] = Field(default_factory=list)


class Budget(WireModel):
    """Total trip budget."""

    total: float
    currency: str = "USD"


class BudgetRange(WireModel):
    """Budget range in USD."""

    min: float = 50
    max: float = 250
    currency: str = "USD"


class Transportation(WireModel):
    """Transportation preferences.

    `primary_mode` is kept as received; upstream profiles have been seen with numbers
    and objects in this field, so it is normalized by the transport resolver.
    """

    model_config = ConfigDict(extra="allow")

    primary_mode: Any = None
    max_walking_distance: int | None = None
    include_flights: bool | None = None


class PreferenceProfile(WireModel):
    """Travel preference profile (partial profiles are allowed)."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str | None = None
    is_default: bool | None = None
    travel_style: str | None = None
    budget_range: BudgetRange | None = None
    activities: list[str] | None = None
    food_preferences: dict[str, Any] | None = None
    accommodation: dict[str, Any] | None = None
    transportation: Transportation | None = None
    group_size: dict[str, Any] | None = None
    accessibility: dict[str, Any] | None = None


class GenerationRequest(WireModel):
    """A single "plan my trip" request.

    Required fields are optional at the model level so that missing values are
    reported as validation errors by the orchestrator rather than parse errors.
    """

    destination: str = ""
    destination_airport_code: str | None = None
    destination_lat_lng: Coordinates | None = None
    departure: str | None = None
    departure_airport_code: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget: Budget | None = None
    group_size: int | None = None
    trip_type: TripType = TripType.leisure
    preference_profile_id: str = ""
    special_requests: str = ""
    must_include: list[str] = Field(default_factory=list)
    must_avoid: list[str] = Field(default_factory=list)
    flight_preferences: FlightPreferences | None = None
    user_info: UserInfo | None = None
    travel_preferences: PreferenceProfile | None = None
    preference_profile: PreferenceProfile | None = None

    def selected_profile(self) -> PreferenceProfile | None:
        """Profile used for generation; travel_preferences wins when both are set."""
        return self.travel_preferences or self.preference_profile
