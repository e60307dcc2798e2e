"""Persistence writer - saves the assembled legacy document."""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from tripgen.gateway.client import Operation, OperationResult
from tripgen.tools.executor import CancellationToken, OperationCancelledError

logger = logging.getLogger(__name__)

SaveCallFn = Callable[[Operation, Mapping[str, Any]], Awaitable[OperationResult]]


@dataclass(frozen=True)
class SaveOutcome:
    saved_id: str | None = None
    error: str | None = None

    @property
    def saved(self) -> bool:
        return self.error is None


class PersistenceWriter:
    """Writes a document through saveItinerary.

    A failed save never fails the generation; it is reported back as a SaveOutcome
    error. Cancellation is the exception and propagates to the caller.
    """

    def __init__(self, call: SaveCallFn) -> None:
        self._call = call

    async def save(self, document: Mapping[str, Any], token: CancellationToken) -> SaveOutcome:
        """Persist `document`.

        Raises:
            OperationCancelledError: Token was cancelled before or during the save
        """
        token.throw_if_cancelled()
        try:
            result = await self._call(Operation.save_itinerary, {"itinerary": document})
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to save itinerary {document.get('id')}: {e}",
                extra={"structured": {"generation_id": document.get("id"), "error": str(e)}},
            )
            return SaveOutcome(error=str(e) or "Failed to save")

        saved_id = document.get("id")
        if isinstance(result.data, Mapping) and result.data.get("id"):
            saved_id = str(result.data["id"])
        logger.info(f"Saved itinerary {saved_id}")
        return SaveOutcome(saved_id=saved_id)
