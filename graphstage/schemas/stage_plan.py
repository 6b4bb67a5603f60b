"""
StagePlan schema - one batch stage produced by the StageBuilder.

A stage applies a fused sequence of map-only operations to each record, in
append order, optionally followed by one grouping operation whose map side
runs last in the sequence and whose reduce side runs after the shuffle.

The ordered sequence is encoded into the stage configuration so the
executing stage applies the operations in exactly that order:

    graphstage.mapsequence.classes = "filter,property_filter,group_count"
    graphstage.filter.closure-0     = "{it.age > 30}"
    graphstage.propertyfilter.key-1 = "name"
    ...

Each operation's keys carry a "-<position>" suffix so two instances of the
same operation in one stage never collide.
"""

from dataclasses import dataclass
from typing import Any, Optional

from .op_descriptor import ConfigValue, OperationDescriptor
from .ops import OpKind
from .records import GRAPH_SCHEMA, RecordSchema


MAP_SEQUENCE_KEY = "graphstage.mapsequence.classes"
REDUCE_KEY = "graphstage.mapsequence.reduce"
COMBINE_KEY = "graphstage.mapsequence.combine"
MAP_OUTPUT_KEY_KEY = "graphstage.map.output.key"
MAP_OUTPUT_VALUE_KEY = "graphstage.map.output.value"
OUTPUT_KEY_KEY = "graphstage.output.key"
OUTPUT_VALUE_KEY = "graphstage.output.value"


def indexed_key(key: str, position: int) -> str:
    """Return the position-suffixed form of an operation config key."""
    return f"{key}-{position}"


@dataclass(frozen=True)
class StagePlan:
    """
    A closed stage: fused map-only operations plus an optional grouping step.

    Attributes:
        map_only_sequence: Map-only operations in append order
        grouping_op: The grouping operation that closed the stage, if any
        combine_op: Pre-aggregation for grouping_op (same operation), if supplied
        map_output_schema: Schema written by the map side
        final_output_schema: Schema written by the stage
    """
    map_only_sequence: tuple[OperationDescriptor, ...] = ()
    grouping_op: Optional[OperationDescriptor] = None
    combine_op: Optional[OperationDescriptor] = None
    map_output_schema: RecordSchema = GRAPH_SCHEMA
    final_output_schema: RecordSchema = GRAPH_SCHEMA

    def __post_init__(self):
        object.__setattr__(self, "map_only_sequence", tuple(self.map_only_sequence))
        if not self.map_only_sequence and self.grouping_op is None:
            raise ValueError("A stage needs at least one map-only operation or a grouping operation")

        for descriptor in self.map_only_sequence:
            if descriptor.kind != OpKind.MAP_ONLY:
                raise ValueError(
                    f"'{descriptor.name}' is {descriptor.kind.value} and cannot be fused into a map sequence"
                )

        if self.grouping_op is not None and self.grouping_op.kind != OpKind.GROUPING_MAP_REDUCE:
            raise ValueError(f"'{self.grouping_op.name}' is not a grouping operation")

        if self.combine_op is not None:
            if self.grouping_op is None:
                raise ValueError("combine_op is only valid when grouping_op is present")
            if self.combine_op.op != self.grouping_op.op or not self.grouping_op.combinable:
                raise ValueError(
                    f"combine_op '{self.combine_op.name}' must be the combiner of "
                    f"grouping_op '{self.grouping_op.name}'"
                )

    @property
    def operations(self) -> tuple[OperationDescriptor, ...]:
        """Every operation of the stage in application order."""
        if self.grouping_op is None:
            return self.map_only_sequence
        return self.map_only_sequence + (self.grouping_op,)

    @property
    def input_schema(self) -> RecordSchema:
        """Schema consumed by the stage's first operation."""
        return self.operations[0].input_schema

    @property
    def name(self) -> str:
        """Human-readable stage name, e.g. MapSequence[filter, group_count]."""
        return f"MapSequence[{', '.join(d.name for d in self.operations)}]"

    def stage_configuration(self) -> dict[str, ConfigValue]:
        """
        Encode the ordered operation sequence as a flat configuration mapping.

        Returns:
            A new dict; callers may merge into it freely.
        """
        configuration: dict[str, ConfigValue] = {
            MAP_SEQUENCE_KEY: ",".join(d.name for d in self.operations),
            MAP_OUTPUT_KEY_KEY: self.map_output_schema.key.value,
            MAP_OUTPUT_VALUE_KEY: self.map_output_schema.value.value,
            OUTPUT_KEY_KEY: self.final_output_schema.key.value,
            OUTPUT_VALUE_KEY: self.final_output_schema.value.value,
        }
        for position, descriptor in enumerate(self.operations):
            for key, value in descriptor.config.items():
                configuration[indexed_key(key, position)] = value
        if self.grouping_op is not None:
            configuration[REDUCE_KEY] = self.grouping_op.name
        if self.combine_op is not None:
            configuration[COMBINE_KEY] = self.combine_op.name
        return configuration

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "name": self.name,
            "map_only_sequence": [d.to_dict() for d in self.map_only_sequence],
            **({"grouping_op": self.grouping_op.to_dict()} if self.grouping_op else {}),
            **({"combine_op": self.combine_op.name} if self.combine_op else {}),
            "map_output_schema": self.map_output_schema.to_dict(),
            "final_output_schema": self.final_output_schema.to_dict(),
        }
