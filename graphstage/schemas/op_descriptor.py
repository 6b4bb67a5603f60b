"""
OperationDescriptor schema - one requested step of a graph pipeline.

A descriptor is produced by the operation catalog when a client appends an
operation, and consumed by the StageBuilder. It is immutable once built:
the configuration mapping is copied and exposed read-only.

Configuration values cross the boundary to the substrate as plain strings or
bytes, so they are validated here, at construction time, rather than when the
stage runs.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from graphstage.errors import DescriptorError

from .ops import Op, OpKind
from .records import RecordSchema, GRAPH_SCHEMA


ConfigValue = Union[str, bytes]


def _freeze_config(op: Op, config: Mapping[str, Any]) -> Mapping[str, ConfigValue]:
    """Validate and copy an operation configuration into a read-only mapping."""
    frozen: dict[str, ConfigValue] = {}
    for key, value in config.items():
        if not isinstance(key, str) or not key:
            raise DescriptorError(
                f"Op '{op.value}': config keys must be non-empty strings, got {key!r}",
                op=op.value,
            )
        if not isinstance(value, (str, bytes)):
            raise DescriptorError(
                f"Op '{op.value}': config value for '{key}' must be str or bytes, "
                f"got {type(value).__name__}",
                op=op.value,
            )
        frozen[key] = value
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class OperationDescriptor:
    """
    Immutable description of one graph operation.

    Attributes:
        op: The catalog operation
        kind: Fusability class (must agree with op.kind)
        config: Operation parameters, str -> str|bytes, keys unprefixed by position
        input_schema: Record schema the operation requires as input
        output_schema: Record schema the operation emits (reduce output for grouping ops)
        map_output_schema: Map-side schema of a grouping op (defaults to output_schema)
        combinable: True if the op supplies a combiner for its reduction
    """
    op: Op
    kind: OpKind
    config: Mapping[str, ConfigValue] = field(default_factory=dict)
    input_schema: RecordSchema = GRAPH_SCHEMA
    output_schema: RecordSchema = GRAPH_SCHEMA
    map_output_schema: Optional[RecordSchema] = None
    combinable: bool = False

    def __post_init__(self):
        if not isinstance(self.op, Op):
            raise DescriptorError(f"op must be an Op, got {self.op!r}")
        if self.kind != self.op.kind:
            raise DescriptorError(
                f"Op '{self.op.value}' is {self.op.kind.value}, not {self.kind}",
                op=self.op.value,
            )
        if self.combinable and self.kind != OpKind.GROUPING_MAP_REDUCE:
            raise DescriptorError(
                f"Op '{self.op.value}': only grouping operations can supply a combiner",
                op=self.op.value,
            )
        object.__setattr__(self, "config", _freeze_config(self.op, self.config))
        if self.map_output_schema is None:
            object.__setattr__(self, "map_output_schema", self.output_schema)
        elif self.kind == OpKind.MAP_ONLY and self.map_output_schema != self.output_schema:
            raise DescriptorError(
                f"Op '{self.op.value}': map-only operations emit a single schema",
                op=self.op.value,
            )

    @property
    def name(self) -> str:
        return self.op.value

    @property
    def is_grouping(self) -> bool:
        return self.kind == OpKind.GROUPING_MAP_REDUCE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output (bytes values are shown as hex)."""
        return {
            "op": self.op.value,
            "kind": self.kind.value,
            "config": {
                k: (v.hex() if isinstance(v, bytes) else v)
                for k, v in self.config.items()
            },
            "input_schema": self.input_schema.to_dict(),
            "output_schema": self.output_schema.to_dict(),
            **({"map_output_schema": self.map_output_schema.to_dict()}
               if self.is_grouping else {}),
            **({"combinable": True} if self.combinable else {}),
        }
