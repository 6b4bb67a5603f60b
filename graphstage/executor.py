"""
StageExecutor - run an ExecutablePipeline against a substrate.

Execution flow:
1. For each stage, in order:
   a. Emit a ProgressEvent (callback + log line)
   b. Submit the stage and block until the substrate reports back
   c. On success, release the previous stage's intermediate output
   d. On failure, stop; later stages are marked skipped
2. Return an ExecutionResult carrying one StageOutcome per stage

Nothing is undone on failure: completed stages stay completed and
intermediates that were never consumed are left where they are.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from graphstage.errors import ExecutionError
from graphstage.locations import LocationPool
from graphstage.schemas import (
    ExecutablePipeline,
    ExecutableStage,
    ProgressEvent,
    StageOutcome,
    StageStatus,
)
from graphstage.substrate import Storage, Substrate

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[ProgressEvent], None]


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class ExecutionResult:
    """Result of executing a pipeline."""

    def __init__(
        self,
        success: bool,
        outcomes: list[StageOutcome],
        error: Optional[ExecutionError] = None,
    ):
        self.success = success
        self.outcomes = outcomes
        self.error = error

    @property
    def failed_stage(self) -> Optional[int]:
        """Index of the failing stage, None on success."""
        return self.error.stage_index if self.error is not None else None

    @property
    def completed(self) -> list[StageOutcome]:
        return [o for o in self.outcomes if o.status == StageStatus.COMPLETED]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "error": self.error.to_dict() if self.error is not None else None,
        }


class StageExecutor:
    """
    Runs stages strictly in order.

    Usage:
        executor = StageExecutor(substrate, storage, on_progress=print)
        result = executor.execute(pipeline)
        if not result.success:
            print(result.error)
    """

    def __init__(
        self,
        substrate: Substrate,
        storage: Storage,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            substrate: Where stages are submitted
            storage: Used to delete consumed intermediate locations
            on_progress: Called with a ProgressEvent before each submission
        """
        self._substrate = substrate
        self._on_progress = on_progress
        self._locations = LocationPool(storage)

    def execute(self, pipeline: ExecutablePipeline) -> ExecutionResult:
        """
        Execute every stage of the pipeline.

        Returns:
            ExecutionResult; a failing stage is reported there, never raised
        """
        outcomes: list[StageOutcome] = []
        stage_count = len(pipeline)

        for stage in pipeline.stages:
            self._notify(ProgressEvent(stage.index, stage_count, stage.name))

            started_at = _utcnow()
            error = self._submit(stage)
            completed_at = _utcnow()

            if error is not None:
                logger.error(
                    f"Stage {stage.index + 1}/{stage_count} failed: {stage.name}: {error}",
                    extra={"stage": stage.name, "event": "stage_failed",
                           "metadata": {"stage_index": stage.index}},
                )
                outcomes.append(StageOutcome(
                    stage_index=stage.index,
                    name=stage.name,
                    status=StageStatus.FAILED,
                    started_at=started_at,
                    completed_at=completed_at,
                    error=error.to_dict(),
                ))
                outcomes.extend(
                    StageOutcome(stage_index=s.index, name=s.name, status=StageStatus.SKIPPED)
                    for s in pipeline.stages[stage.index + 1:]
                )
                return ExecutionResult(success=False, outcomes=outcomes, error=error)

            outcome = StageOutcome(
                stage_index=stage.index,
                name=stage.name,
                status=StageStatus.COMPLETED,
                started_at=started_at,
                completed_at=completed_at,
            )
            outcomes.append(outcome)
            logger.info(
                f"Stage {stage.index + 1}/{stage_count} completed: {stage.name} ({outcome.duration_ms}ms)",
                extra={"stage": stage.name, "event": "stage_completed",
                       "metadata": {"stage_index": stage.index, "duration_ms": outcome.duration_ms}},
            )

            if stage.input_is_intermediate:
                self._locations.release(stage.input_location)

        return ExecutionResult(success=True, outcomes=outcomes)

    def _notify(self, event: ProgressEvent) -> None:
        logger.info(
            f"Executing stage {event.stage_index + 1} out of {event.stage_count}: {event.stage_name}",
            extra={"stage": event.stage_name, "event": "stage_started", "metadata": event.to_dict()},
        )
        if self._on_progress is None:
            return
        try:
            self._on_progress(event)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}", exc_info=True)

    def _submit(self, stage: ExecutableStage) -> Optional[ExecutionError]:
        try:
            ok = self._substrate.submit(stage)
        except Exception as e:
            return ExecutionError(stage.index, str(e) or type(e).__name__, cause=e)
        if not ok:
            return ExecutionError(stage.index, "substrate reported failure")
        return None
