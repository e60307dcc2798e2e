"""Itinerary models - day plans and the assembled record."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from tripgen.models.common import Coordinates, Cost, ErrorKind, ProgressStage, WireModel
from tripgen.models.request import UserInfo


class GenerationProgress(BaseModel):
    """Current stage of a generation, for UI consumption."""

    stage: ProgressStage
    percent: int = Field(..., ge=0, le=100)
    message: str | None = None


class PlannedActivity(WireModel):
    """Single activity slot in a day plan."""

    id: str
    name: str
    description: str | None = None
    category: str = "sightseeing"
    location: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    duration: str | None = None
    estimated_cost: Cost | str | float | None = None
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    user_ratings_total: int | None = None
    place_id: str | None = None
    coordinates: Coordinates | None = None
    insider_tip: str | None = None
    google_maps_url: str | None = None


class Restaurant(WireModel):
    """Restaurant attached to a meal."""

    id: str | None = None
    name: str
    description: str | None = None
    location: str | None = None
    category: str | None = None
    cuisine: str | None = None
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    user_ratings_total: int | None = None
    place_id: str | None = None
    coordinates: Coordinates | None = None
    estimated_cost: Cost | str | float | None = None
    dietary_fit: str | None = None
    insider_tip: str | None = None
    google_maps_url: str | None = None


class MealTiming(WireModel):
    """Meal time wrapper kept for older consumers."""

    time: str


class PlannedMeal(WireModel):
    """Meal slot in a day plan."""

    id: str | None = None
    name: str
    type: str
    time: str
    timing: MealTiming | None = None
    cost: Cost | str | None = None
    restaurant: Restaurant


class DayPlan(WireModel):
    """Plan for a single calendar day."""

    day: int = Field(..., ge=1)
    date: date
    title: str | None = None
    theme: str | None = None
    activities: list[PlannedActivity] = Field(default_factory=list)
    meals: list[PlannedMeal] = Field(default_factory=list)


class AssembledItinerary(BaseModel):
    """Canonical itinerary record, built once all upstream data is available."""

    id: str
    user_id: str
    architecture: str
    destination: str
    departure: str = ""
    start_date: date
    end_date: date
    title: str = ""
    description: str
    age: int = 0
    daily_plans: list[DayPlan]
    flights: list[dict[str, Any]] = Field(default_factory=list)
    accommodations: list[dict[str, Any]] = Field(default_factory=list)
    place_names: list[str] = Field(default_factory=list)
    user_info: UserInfo
    transportation: dict[str, Any] | None = None
    alternative_activities: list[dict[str, Any]] = Field(default_factory=list)
    alternative_restaurants: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    cost_breakdown: dict[str, Any] | None = None
    assistant: str | None = None
    ai_status: str = "completed"
    created_at: datetime
    updated_at: datetime


class GenerationResult(BaseModel):
    """Structured outcome returned to the caller; never an exception."""

    id: str | None = None
    success: bool
    data: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    save_error: str | None = None
    saved_doc_id: str | None = None
    itinerary: dict[str, Any] | None = None
