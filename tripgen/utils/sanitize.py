"""Input sanitization for generation requests.

Strips markup, script schemes and control characters from free text, enforces length
and list-size limits, and upper-cases airport codes. The caller's request object is
never modified; a sanitized copy is returned.
"""

import re
from dataclasses import dataclass

from tripgen.models.request import (
    FlightPreferences,
    GenerationRequest,
    PreferenceProfile,
    UserInfo,
)

_TAG_RE = re.compile(r"<[^>]*>")
_SCHEME_RE = re.compile(r"(javascript|data|vbscript):", re.IGNORECASE)
_HANDLER_RE = re.compile(r"on(load|error)=", re.IGNORECASE)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE_RE = re.compile(r"\s+")
# Letters, digits, whitespace and common place-name punctuation
_LOCATION_DISALLOWED_RE = re.compile(r"[^\w\s\-'.,()&]|_")

LOCATION_MAX_LENGTH = 100
AIRPORT_CODE_MAX_LENGTH = 10
PROFILE_ID_MAX_LENGTH = 100
AIRLINE_MAX_ITEMS = 10
AIRLINE_MAX_LENGTH = 50


@dataclass(frozen=True)
class SanitizationLimits:
    """Length and size limits for user-supplied text."""

    special_requests: int = 500
    must_include_tag: int = 80
    must_avoid_tag: int = 80
    max_tags: int = 10


def sanitize_string(value: object, max_length: int | None = None) -> str:
    """Remove markup and control characters and collapse whitespace."""
    if not isinstance(value, str):
        return ""

    cleaned = _TAG_RE.sub("", value)
    cleaned = _SCHEME_RE.sub("", cleaned)
    cleaned = _HANDLER_RE.sub("", cleaned)
    cleaned = _CONTROL_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length].strip()
    return cleaned


def sanitize_string_list(values: object, max_items: int, max_item_length: int) -> list[str]:
    """Sanitize each item, drop empties and case-insensitive duplicates, keep order."""
    if not isinstance(values, list):
        return []

    seen: set[str] = set()
    result: list[str] = []
    for item in values:
        if len(result) >= max_items:
            break
        cleaned = sanitize_string(item, max_item_length)
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            result.append(cleaned)
    return result


def sanitize_location(value: object) -> str:
    """Sanitize a city or place name, preserving international characters."""
    if not isinstance(value, str):
        return ""

    cleaned = _TAG_RE.sub("", value)
    cleaned = re.sub(r"(javascript|data):", "", cleaned, flags=re.IGNORECASE)
    cleaned = _LOCATION_DISALLOWED_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:LOCATION_MAX_LENGTH]


def sanitize_airport_code(value: object) -> str:
    """Sanitize and upper-case an IATA code."""
    if not value or not isinstance(value, str):
        return ""
    return sanitize_string(value, AIRPORT_CODE_MAX_LENGTH).upper()


def sanitize_user_info(user_info: UserInfo | None) -> UserInfo | None:
    if user_info is None:
        return None
    return UserInfo(
        uid=sanitize_string(user_info.uid),
        username=sanitize_string(user_info.username),
        gender=sanitize_string(user_info.gender),
        dob=user_info.dob,
        status=sanitize_string(user_info.status),
        sexual_orientation=sanitize_string(user_info.sexual_orientation),
        email=sanitize_string(user_info.email),
        blocked=[item for item in (sanitize_string(b) for b in user_info.blocked) if item],
    )


def sanitize_request(
    request: GenerationRequest,
    limits: SanitizationLimits | None = None,
) -> GenerationRequest:
    """Return a sanitized copy of the request.

    Dates, trip type, budget and the preference profile are passed through; they are
    validated elsewhere. Group size is clamped to 1-50.
    """
    limits = limits or SanitizationLimits()

    flight_preferences = None
    if request.flight_preferences is not None:
        flight_preferences = FlightPreferences(
            cabin_class=request.flight_preferences.cabin_class,
            stop_preference=request.flight_preferences.stop_preference,
            preferred_airlines=sanitize_string_list(
                request.flight_preferences.preferred_airlines,
                AIRLINE_MAX_ITEMS,
                AIRLINE_MAX_LENGTH,
            ),
        )

    group_size = None
    if request.group_size:
        group_size = max(1, min(50, int(request.group_size)))

    return request.model_copy(
        update={
            "destination": sanitize_location(request.destination),
            "destination_airport_code": sanitize_airport_code(request.destination_airport_code),
            "departure": sanitize_location(request.departure or ""),
            "departure_airport_code": sanitize_airport_code(request.departure_airport_code),
            "preference_profile_id": sanitize_string(
                request.preference_profile_id, PROFILE_ID_MAX_LENGTH
            ),
            "special_requests": sanitize_string(
                request.special_requests, limits.special_requests
            ),
            "must_include": sanitize_string_list(
                request.must_include, limits.max_tags, limits.must_include_tag
            ),
            "must_avoid": sanitize_string_list(
                request.must_avoid, limits.max_tags, limits.must_avoid_tag
            ),
            "group_size": group_size,
            "flight_preferences": flight_preferences,
            "user_info": sanitize_user_info(request.user_info),
            "travel_preferences": _copy_profile(request.travel_preferences),
            "preference_profile": _copy_profile(request.preference_profile),
        }
    )


def _copy_profile(profile: PreferenceProfile | None) -> PreferenceProfile | None:
    return profile.model_copy(deep=True) if profile is not None else None
