"""Models package - re-exports for convenience."""

from tripgen.models.ai_output import (
    AIActivity,
    AIBudgetEstimate,
    AIDay,
    AIGeneratedOutput,
    AIMeal,
    VerifiedPlace,
)
from tripgen.models.common import (
    CabinClass,
    Coordinates,
    Cost,
    ErrorKind,
    ProgressStage,
    StopPreference,
    TransportMode,
    TripType,
)
from tripgen.models.itinerary import (
    AssembledItinerary,
    DayPlan,
    GenerationProgress,
    GenerationResult,
    MealTiming,
    PlannedActivity,
    PlannedMeal,
    Restaurant,
)
from tripgen.models.request import (
    Budget,
    BudgetRange,
    FlightPreferences,
    GenerationRequest,
    PreferenceProfile,
    Transportation,
    UserInfo,
)

__all__ = [
    # Common
    "CabinClass",
    "Coordinates",
    "Cost",
    "ErrorKind",
    "ProgressStage",
    "StopPreference",
    "TransportMode",
    "TripType",
    # Request
    "Budget",
    "BudgetRange",
    "FlightPreferences",
    "GenerationRequest",
    "PreferenceProfile",
    "Transportation",
    "UserInfo",
    # Itinerary
    "AssembledItinerary",
    "DayPlan",
    "GenerationProgress",
    "GenerationResult",
    "MealTiming",
    "PlannedActivity",
    "PlannedMeal",
    "Restaurant",
    # AI output
    "AIActivity",
    "AIBudgetEstimate",
    "AIDay",
    "AIGeneratedOutput",
    "AIMeal",
    "VerifiedPlace",
]
