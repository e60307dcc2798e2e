"""Progress state machine for a single generation."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from tripgen.models.common import ProgressStage
from tripgen.models.itinerary import GenerationProgress

logger = logging.getLogger(__name__)

ProgressListener = Callable[[GenerationProgress], None]


@dataclass(frozen=True)
class ProgressStep:
    stage: ProgressStage
    percent: int
    message: str


CONTENT_FIRST_STEPS: tuple[ProgressStep, ...] = (
    ProgressStep(ProgressStage.initializing, 10, "Preparing your trip..."),
    ProgressStep(ProgressStage.searching, 30, "Searching flights, stays and activities..."),
    ProgressStep(ProgressStage.activities, 50, "Planning your days..."),
    ProgressStep(ProgressStage.ai_generation, 75, "Generating your itinerary..."),
    ProgressStep(ProgressStage.saving, 90, "Saving your itinerary..."),
    ProgressStep(ProgressStage.done, 100, "Your itinerary is ready!"),
)

AI_FIRST_STEPS: tuple[ProgressStep, ...] = (
    ProgressStep(ProgressStage.initializing, 5, "Preparing your trip..."),
    ProgressStep(ProgressStage.ai_generation, 25, "Generating your itinerary..."),
    ProgressStep(ProgressStage.activities, 50, "Verifying places..."),
    ProgressStep(ProgressStage.saving, 90, "Saving your itinerary..."),
    ProgressStep(ProgressStage.done, 100, "Your itinerary is ready!"),
)


class ProgressTracker:
    """Tracks the current step; steps only move forward until reset."""

    def __init__(
        self,
        steps: tuple[ProgressStep, ...],
        listener: ProgressListener | None = None,
    ) -> None:
        if not steps:
            raise ValueError("steps must not be empty")
        self._steps = steps
        self._index = {step.stage: i for i, step in enumerate(steps)}
        self._position = 0
        self._listener = listener

    @property
    def current(self) -> GenerationProgress:
        step = self._steps[self._position]
        return GenerationProgress(stage=step.stage, percent=step.percent, message=step.message)

    def advance(self, stage: ProgressStage) -> GenerationProgress:
        """Move to `stage`.

        Raises:
            ValueError: Stage is unknown to this tracker or earlier than the current one
        """
        if stage not in self._index:
            raise ValueError(f"Unknown progress stage: {stage.value}")
        target = self._index[stage]
        if target < self._position:
            current = self._steps[self._position].stage
            raise ValueError(f"Progress cannot move back from {current.value} to {stage.value}")

        self._position = target
        progress = self.current
        logger.debug(f"Progress: {progress.stage.value} ({progress.percent}%)")
        self._notify(progress)
        return progress

    def reset(self) -> GenerationProgress:
        self._position = 0
        progress = self.current
        self._notify(progress)
        return progress

    def _notify(self, progress: GenerationProgress) -> None:
        if self._listener is not None:
            self._listener(progress)
