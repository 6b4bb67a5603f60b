"""
Error classes for graphstage compilation and execution.

The taxonomy separates planning failures from execution failures:
- PlanningError: raised while building or composing a pipeline. Nothing has
  been submitted to the substrate yet. Fix the operation sequence or the
  configuration and compile again.
- ExecutionError: a stage failed inside the substrate. Stages that already
  completed are not undone. Re-run the whole pipeline to retry.

Build-time and compose-time errors are exceptions. The executor reports
ExecutionError as a value on ExecutionResult instead of raising it.
"""

from typing import Any, Optional


# compile_and_run() status codes
EXIT_OK = 0
EXIT_EXECUTION_ERROR = 1
EXIT_PLANNING_ERROR = 2


class GraphStageError(Exception):
    """Base exception for graphstage."""
    pass


class PlanningError(GraphStageError):
    """
    Failure detected before any stage was submitted.

    Subclasses are raised synchronously by the builder and the composer.
    """
    pass


class SchemaMismatch(PlanningError):
    """
    An operation's required input schema disagrees with the running schema.

    Raised by StageBuilder.append() at the moment the operation is appended,
    never deferred to execution.
    """

    def __init__(self, message: str, expected: Any = None, actual: Any = None, op: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.op = op
        super().__init__(message)


class DescriptorError(SchemaMismatch):
    """
    An operation descriptor was built with invalid parameters.

    Examples:
    - config value that is neither str nor bytes
    - unsupported element class for a filter
    - property filter values of mixed types
    """
    pass


class UnsupportedFormat(PlanningError):
    """A configured source or sink format is outside the supported set."""

    def __init__(self, format_name: Any, role: str, supported: Any = ()):
        self.format = format_name
        self.role = role
        self.supported = tuple(sorted(supported))
        super().__init__(
            f"{format_name!r} is not a supported {role} format "
            f"(supported: {', '.join(self.supported)})"
        )


class CompositionFailure(PlanningError):
    """
    Any other failure while allocating storage for a pipeline.

    Allocated intermediate locations have been rolled back by the time this
    reaches the caller.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class ExecutionError(GraphStageError):
    """
    A stage failed inside the batch-execution substrate.

    Attributes:
        stage_index: 0-based index of the failing stage
        cause: The underlying substrate error (None when submit() returned False)
    """

    def __init__(self, stage_index: int, message: str, cause: Optional[BaseException] = None):
        self.stage_index = stage_index
        self.cause = cause
        super().__init__(f"Stage {stage_index} failed: {message}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "stage_index": self.stage_index,
            "message": str(self),
            "cause": {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            } if self.cause is not None else None,
        }
