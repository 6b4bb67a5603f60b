"""
StageBuilder - fuse operation descriptors into stage plans.

Consecutive map-only operations share one stage: they are applied per
record, in append order, without any shuffle between them. A grouping
operation needs every record sharing a key co-located, so it closes the
open stage (its map side runs last in the stage's map sequence, its reduce
side after the shuffle) and a fresh stage is opened.

Usage:
    builder = StageBuilder()
    builder.append(catalog.property_filter("vertex", "age", ">", [30]))
    builder.append(catalog.group_count("vertex", "{it.name}"))
    plans = builder.flush()   # [MapSequence[property_filter, group_count]]
"""

import logging
from typing import Optional

from graphstage.errors import SchemaMismatch
from graphstage.schemas import (
    GRAPH_SCHEMA,
    OperationDescriptor,
    OpKind,
    RecordSchema,
    StagePlan,
)

logger = logging.getLogger(__name__)


class StageBuilder:
    """
    Accumulates descriptors for one compilation.

    The builder is an explicit mutable object: create one per compilation
    (or reuse it after flush(), which resets it).
    """

    def __init__(self, initial_schema: RecordSchema = GRAPH_SCHEMA):
        self._initial_schema = initial_schema
        self._reset()

    def _reset(self) -> None:
        self._completed: list[StagePlan] = []
        self._open_sequence: list[OperationDescriptor] = []
        self._running_schema = self._initial_schema

    @property
    def running_schema(self) -> RecordSchema:
        """Schema the next appended operation must accept."""
        return self._running_schema

    @property
    def pending(self) -> int:
        """Number of map-only operations in the open stage."""
        return len(self._open_sequence)

    @property
    def stage_count(self) -> int:
        """Number of stages closed so far (the open stage is not counted)."""
        return len(self._completed)

    def append(self, descriptor: OperationDescriptor) -> None:
        """
        Append one operation.

        Args:
            descriptor: The operation to append

        Raises:
            SchemaMismatch: If the operation's input schema differs from the
                running schema. The builder is left unchanged.
            TypeError: If the descriptor's kind is not a known OpKind
        """
        if descriptor.input_schema != self._running_schema:
            raise SchemaMismatch(
                f"Op '{descriptor.name}' expects {descriptor.input_schema} input "
                f"but the pipeline produces {self._running_schema} at this point",
                expected=descriptor.input_schema,
                actual=self._running_schema,
                op=descriptor.name,
            )

        if descriptor.kind == OpKind.MAP_ONLY:
            self._open_sequence.append(descriptor)
            self._running_schema = descriptor.output_schema
        elif descriptor.kind == OpKind.GROUPING_MAP_REDUCE:
            self._close_stage(descriptor)
        else:
            raise TypeError(f"Unknown operation kind: {descriptor.kind!r}")

    def _close_stage(self, grouping_op: OperationDescriptor) -> None:
        combine_op: Optional[OperationDescriptor] = grouping_op if grouping_op.combinable else None
        plan = StagePlan(
            map_only_sequence=tuple(self._open_sequence),
            grouping_op=grouping_op,
            combine_op=combine_op,
            map_output_schema=grouping_op.map_output_schema,
            final_output_schema=grouping_op.output_schema,
        )
        self._completed.append(plan)
        logger.debug(f"Closed stage {len(self._completed) - 1}: {plan.name}")

        self._open_sequence = []
        self._running_schema = grouping_op.output_schema

    def flush(self) -> list[StagePlan]:
        """
        Close the open stage (if it holds any operation) and return every plan.

        Returns:
            Stage plans in execution order. The builder is reset and reusable.
        """
        if self._open_sequence:
            plan = StagePlan(
                map_only_sequence=tuple(self._open_sequence),
                map_output_schema=self._running_schema,
                final_output_schema=self._running_schema,
            )
            self._completed.append(plan)
            logger.debug(f"Closed stage {len(self._completed) - 1}: {plan.name}")

        plans = self._completed
        self._reset()
        return plans
