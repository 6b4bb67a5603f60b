"""
ExecutablePipeline schema - a composed, ready-to-execute stage chain.

Created by the PipelineComposer from an ordered list of StagePlans. Every
stage has its input and output wired:
- first stage reads the configured source
- last stage writes the configured graph sink or statistics sink
- adjacent stages share one intermediate location owned by the pipeline
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .op_descriptor import ConfigValue
from .stage_plan import StagePlan


@dataclass(frozen=True)
class ExecutableStage:
    """
    A stage with its storage wiring and per-stage configuration.

    Attributes:
        index: 0-based position in the pipeline
        plan: The StagePlan this stage executes
        input_location: Location the stage reads
        output_location: Location the stage writes
        input_format: Storage format of input_location
        output_format: Storage format of output_location
        configuration: Read-only copy of the stage configuration plus pass-through properties
        input_is_intermediate: True if input_location is owned by the pipeline
        output_is_intermediate: True if output_location is owned by the pipeline
    """
    index: int
    plan: StagePlan
    input_location: str
    output_location: str
    input_format: str
    output_format: str
    configuration: Mapping[str, ConfigValue] = field(default_factory=dict)
    input_is_intermediate: bool = False
    output_is_intermediate: bool = False

    def __post_init__(self):
        object.__setattr__(self, "configuration", MappingProxyType(dict(self.configuration)))

    @property
    def name(self) -> str:
        return self.plan.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "index": self.index,
            "name": self.name,
            "input": {
                "location": self.input_location,
                "format": self.input_format,
                **({"intermediate": True} if self.input_is_intermediate else {}),
            },
            "output": {
                "location": self.output_location,
                "format": self.output_format,
                **({"intermediate": True} if self.output_is_intermediate else {}),
            },
            "plan": self.plan.to_dict(),
        }


@dataclass(frozen=True)
class ExecutablePipeline:
    """
    An ordered chain of ExecutableStages.

    Attributes:
        stages: Stages in execution order
        intermediates: Intermediate locations allocated for this pipeline, in order
        derivation: True if the terminal output is another graph dataset
    """
    stages: tuple[ExecutableStage, ...] = field(default_factory=tuple)
    intermediates: tuple[str, ...] = field(default_factory=tuple)
    derivation: bool = True

    def __post_init__(self):
        if len(self.stages) > 1 and len(self.intermediates) != len(self.stages) - 1:
            raise ValueError(
                f"A pipeline of {len(self.stages)} stages needs {len(self.stages) - 1} "
                f"intermediate locations, got {len(self.intermediates)}"
            )

    def __len__(self) -> int:
        return len(self.stages)

    @property
    def is_empty(self) -> bool:
        return not self.stages

    @property
    def sink_location(self) -> str | None:
        """Location written by the terminal stage, None for an empty pipeline."""
        if not self.stages:
            return None
        return self.stages[-1].output_location

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "derivation": self.derivation,
            "intermediates": list(self.intermediates),
            "stages": [s.to_dict() for s in self.stages],
        }
