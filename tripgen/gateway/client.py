"""Remote operation gateway - the only boundary to the backend.

Remote operations follow the callable-function protocol: the request body is
`{"data": payload}` and a successful response body is `{"result": {...}}`, where the
result is itself `{success, data?, error?}`. Errors are reported as
`{"error": {"status": "PERMISSION_DENIED", "message": "..."}}`.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Remote operation names."""

    search_accommodations = "searchAccommodations"
    search_activities = "searchActivities"
    search_flights = "searchFlights"
    generate_itinerary_content = "generateItineraryContent"
    generate_full_itinerary = "generateFullItinerary"
    generate_ground_transportation_advice = "generateGroundTransportationAdvice"
    save_itinerary = "saveItinerary"


class RemoteOperationError(Exception):
    """A remote operation reported failure."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class OperationResult(BaseModel):
    """Normalized `{success, data, error}` response."""

    success: bool
    data: Any = None
    error: str | None = None


class RemoteTransport(Protocol):
    """Protocol for transport implementations."""

    async def invoke(self, operation: str, payload: Mapping[str, Any]) -> Any:
        """Send one request and return the decoded response body.

        Args:
            operation: Remote operation name
            payload: JSON-serializable request payload

        Returns:
            Raw response, expected to be a `{success, data, error}` mapping
        """
        ...


def status_to_code(status: str) -> str:
    """PERMISSION_DENIED -> permission-denied."""
    return status.strip().lower().replace("_", "-")


class HttpTransport:
    """httpx-backed transport for callable functions."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 120.0,
        auth_token: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize transport.

        Args:
            base_url: Functions base URL; the operation name is appended
            timeout_seconds: Request timeout
            auth_token: Bearer token of the signed-in user (resolved by the caller)
            client: Optional httpx client (for testing with mocks)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.auth_token = auth_token
        self._client = client

    async def invoke(self, operation: str, payload: Mapping[str, Any]) -> Any:
        """POST payload to the operation endpoint and unwrap the result."""
        url = f"{self.base_url}/{operation}"
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self.timeout_seconds)
            close_client = True

        try:
            response = await client.post(url, json={"data": payload}, headers=headers)
            body = _decode_body(response)

            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                code = status_to_code(str(error.get("status") or "internal"))
                message = error.get("message") or f"{operation} failed"
                raise RemoteOperationError(f"{code}: {message}", code=code)

            if response.is_error:
                raise RemoteOperationError(
                    f"{operation} failed with HTTP {response.status_code}",
                    code=str(response.status_code),
                )

            if isinstance(body, dict) and "result" in body:
                return body["result"]
            return body
        finally:
            if close_client:
                await client.aclose()


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class RemoteOperationGateway:
    """Uniform call surface: operation name + payload -> normalized result."""

    def __init__(self, transport: RemoteTransport) -> None:
        self._transport = transport

    async def call(self, operation: Operation | str, payload: Mapping[str, Any]) -> OperationResult:
        """Invoke a remote operation.

        Raises:
            RemoteOperationError: The remote side answered `success: false`, or the
                response did not have the expected shape
        """
        name = operation.value if isinstance(operation, Operation) else operation
        raw = await self._transport.invoke(name, payload)

        if not isinstance(raw, Mapping):
            raise RemoteOperationError(f"{name} returned an unexpected response")

        error = raw.get("error") or raw.get("message")
        result = OperationResult(
            success=bool(raw.get("success")),
            data=raw.get("data"),
            error=str(error) if error else None,
        )
        if not result.success:
            raise RemoteOperationError(result.error or f"{name} failed")

        logger.debug(
            f"[gateway] {name} succeeded",
            extra={"structured": {"operation": name, "has_data": result.data is not None}},
        )
        return result
