"""AI output models - structured day-by-day output of generateFullItinerary."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AIActivity(BaseModel):
    """Activity proposed by the AI model."""

    model_config = ConfigDict(extra="allow")

    name: str
    type: str = ""
    insider_tip: str = ""
    best_time: str = ""
    duration: str = ""
    cost_estimate: str | None = None


class AIMeal(BaseModel):
    """Meal proposed by the AI model."""

    model_config = ConfigDict(extra="allow")

    meal: str = "lunch"
    name: str
    cuisine: str = ""
    dietary_fit: str | None = None
    insider_tip: str = ""
    price_range: str = ""
    reservation_needed: bool | None = None


class AIDay(BaseModel):
    """One day of AI output."""

    model_config = ConfigDict(extra="allow")

    day: int
    date: str | None = None
    theme: str = ""
    activities: list[AIActivity] = Field(default_factory=list)
    meals: list[AIMeal] = Field(default_factory=list)


class AIBudgetEstimate(BaseModel):
    """Budget estimate from the AI model."""

    total: float
    per_person: float
    currency: str = "USD"
    breakdown: dict[str, float] = Field(default_factory=dict)


class AIGeneratedOutput(BaseModel):
    """Full AI output."""

    model_config = ConfigDict(extra="allow")

    travel_agent_summary: str = ""
    trip_narrative: str | None = None
    cultural_context: dict[str, Any] = Field(default_factory=dict)
    daily_plans: list[AIDay] = Field(default_factory=list)
    budget_estimate: AIBudgetEstimate | None = None
    packing_tips: list[str] | None = None
    best_time_to_visit: str | None = None


class VerifiedPlace(BaseModel):
    """Place reference after verification against search results."""

    original_name: str
    name: str
    verified: bool
    verification_confidence: str
    place_id: str | None = None
    formatted_address: str | None = None
    rating: float | None = None
    user_ratings_total: int | None = None
    phone: str | None = None
    website: str | None = None
    coordinates: dict[str, float] | None = None
    google_maps_url: str | None = None
