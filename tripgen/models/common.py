"""Common types and enums shared across all models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with remote operations (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorKind(str, Enum):
    """Generation error classification."""

    validation = "validation"
    permission_denied = "permission_denied"
    quota_exceeded = "quota_exceeded"
    network = "network"
    server = "server"
    timeout = "timeout"
    unknown = "unknown"


# Kinds that abort a generation even when raised by an optional call
FATAL_ERROR_KINDS = frozenset(
    {ErrorKind.validation, ErrorKind.permission_denied, ErrorKind.quota_exceeded}
)

# Kinds the retry executor gives up on after a single attempt
NON_RETRYABLE_ERROR_KINDS = FATAL_ERROR_KINDS | {ErrorKind.timeout}


class ProgressStage(str, Enum):
    """Generation stage exposed to the UI."""

    initializing = "initializing"
    searching = "searching"
    activities = "activities"
    ai_generation = "ai_generation"
    saving = "saving"
    done = "done"


class TripType(str, Enum):
    """Trip purpose."""

    leisure = "leisure"
    business = "business"
    adventure = "adventure"
    romantic = "romantic"
    family = "family"
    bachelor = "bachelor"
    bachelorette = "bachelorette"


class TransportMode(str, Enum):
    """Normalized travel mode."""

    air = "air"
    ground = "ground"


class CabinClass(str, Enum):
    """Flight cabin class."""

    economy = "economy"
    premium_economy = "premium-economy"
    business = "business"
    first = "first"


class StopPreference(str, Enum):
    """Tolerated number of stops."""

    non_stop = "non-stop"
    one_stop = "one-stop"
    any = "any"


class Coordinates(WireModel):
    """Geographic coordinates (WGS84)."""

    lat: float
    lng: float


class Cost(WireModel):
    """Estimated monetary amount."""

    amount: float
    currency: str = "USD"
