"""
graphstage.schemas - Data structures for the compilation pipeline.

OperationDescriptor -> StagePlan -> ExecutablePipeline -> StageOutcome

Lifecycle:
1. OperationDescriptor: one requested graph operation, immutable once built
2. StagePlan: fused map-only operations plus an optional grouping step
3. ExecutablePipeline: StagePlans wired to source, sink and intermediate locations
4. StageOutcome: result of submitting one stage to the substrate
"""

from .records import (
    RecordType,
    RecordSchema,
    GRAPH_SCHEMA,
    HOLDER_SCHEMA,
    TEXT_COUNT_SCHEMA,
    TEXT_SCHEMA,
)
from .ops import Op, OpKind
from .op_descriptor import OperationDescriptor
from .stage_plan import StagePlan, MAP_SEQUENCE_KEY
from .pipeline import ExecutableStage, ExecutablePipeline
from .outcome import StageOutcome, StageStatus, ProgressEvent

__all__ = [
    # Records
    "RecordType",
    "RecordSchema",
    "GRAPH_SCHEMA",
    "HOLDER_SCHEMA",
    "TEXT_COUNT_SCHEMA",
    "TEXT_SCHEMA",
    # Ops
    "Op",
    "OpKind",
    "OperationDescriptor",
    # Stages
    "StagePlan",
    "MAP_SEQUENCE_KEY",
    "ExecutableStage",
    "ExecutablePipeline",
    # Outcomes
    "StageOutcome",
    "StageStatus",
    "ProgressEvent",
]
