"""
Outcome schemas - tracking stage execution.

StageOutcome records the result of submitting one stage to the substrate.
ProgressEvent is emitted by the executor right before each submission.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class StageStatus(str, Enum):
    """Status of a stage execution."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ProgressEvent:
    """
    Structured progress notification.

    Attributes:
        stage_index: 0-based index of the stage about to be submitted
        stage_count: Total number of stages in the pipeline
        stage_name: Name of the stage (MapSequence[...])
    """
    stage_index: int
    stage_count: int
    stage_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_index": self.stage_index,
            "stage_count": self.stage_count,
            "stage_name": self.stage_name,
        }


@dataclass(frozen=True)
class StageOutcome:
    """
    The outcome of executing a single stage.

    Attributes:
        stage_index: 0-based index of the stage
        name: Stage name
        status: Execution status
        started_at: When the stage was submitted (null if never submitted)
        completed_at: When the substrate reported back (null if never submitted)
        error: Error details if status is failed
    """
    stage_index: int
    name: str
    status: StageStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[dict[str, Any]] = None

    def __post_init__(self):
        if self.status in (StageStatus.PENDING, StageStatus.SKIPPED):
            if self.started_at is not None or self.completed_at is not None:
                raise ValueError(f"{self.status.value} stages should not have timestamps")
        elif self.started_at is None or self.completed_at is None:
            raise ValueError(f"{self.status.value} stages must have started_at and completed_at")
        if self.status == StageStatus.FAILED and self.error is None:
            raise ValueError("Failed stages must carry error details")

    @property
    def duration_ms(self) -> Optional[int]:
        """Calculate execution duration in milliseconds if both timestamps present."""
        if self.started_at and self.completed_at:
            delta = self.completed_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "stage_index": self.stage_index,
            "name": self.name,
            "status": self.status.value,
        }
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        if self.error is not None:
            result["error"] = self.error
        return result
