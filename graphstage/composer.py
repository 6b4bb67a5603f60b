"""
PipelineComposer - wire stage plans to storage.

Given the ordered plans from a StageBuilder, the composer:
1. Checks the source format (before anything is allocated)
2. Allocates one intermediate location per adjacent stage pair
3. Wires the first stage to the source and the last stage to the graph sink
   (derivation pipelines) or the statistics sink (everything else)
4. Gives every stage its own read-only copy of the stage configuration
   merged with the pass-through properties

If anything fails after the first allocation, every allocated location is
released before the error propagates.
"""

import logging
from typing import TYPE_CHECKING, Callable, Mapping, Optional, Sequence

from graphstage.errors import CompositionFailure, GraphStageError, UnsupportedFormat
from graphstage.locations import LocationPool
from graphstage.schemas import (
    GRAPH_SCHEMA,
    ExecutablePipeline,
    ExecutableStage,
    StagePlan,
)
from graphstage.substrate import Storage

if TYPE_CHECKING:
    from graphstage.config import GraphStageConfig

logger = logging.getLogger(__name__)


SUPPORTED_SOURCE_FORMATS = frozenset({"graphson", "sequence-file", "rexster", "titan-cassandra"})
SUPPORTED_GRAPH_SINK_FORMATS = frozenset({"graphson", "sequence-file", "titan-cassandra", "noop"})
SUPPORTED_STATISTICS_SINK_FORMATS = frozenset({"text", "sequence-file", "noop"})

# Formats addressed by a storage path; the others are services
FILE_FORMATS = frozenset({"graphson", "sequence-file", "text"})

INTERMEDIATE_FORMAT = "sequence-file"


def _check_format(format_name: Optional[str], role: str, supported: frozenset) -> str:
    normalized = format_name.strip().lower() if isinstance(format_name, str) else format_name
    if normalized not in supported:
        raise UnsupportedFormat(format_name, role, supported)
    return normalized


def is_derivation(plans: Sequence[StagePlan]) -> bool:
    """True if every stage emits graph elements, i.e. the result is another graph."""
    return all(plan.final_output_schema == GRAPH_SCHEMA for plan in plans)


class PipelineComposer:
    """
    Composes StagePlans into an ExecutablePipeline.

    Usage:
        composer = PipelineComposer(storage, intermediate_root="/tmp/graphstage")
        pipeline = composer.compose(
            plans,
            source_location="data/graph.json", source_format="graphson",
            sink_location_graph="out/graph", sink_location_stats="out/stats",
            sink_format_graph="graphson", sink_format_stats="text",
        )
    """

    def __init__(
        self,
        storage: Storage,
        intermediate_root: str = "",
        name_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            storage: Storage used to roll back intermediate locations
            intermediate_root: Directory under which intermediates are allocated
            name_factory: Unique-name factory for intermediates (default: uuid4)
        """
        self._storage = storage
        self._intermediate_root = intermediate_root
        self._name_factory = name_factory

    def compose(
        self,
        plans: Sequence[StagePlan],
        source_location: Optional[str],
        source_format: str,
        sink_location_graph: Optional[str],
        sink_location_stats: Optional[str],
        sink_format_graph: str,
        sink_format_stats: str,
        properties: Optional[Mapping[str, str]] = None,
    ) -> ExecutablePipeline:
        """
        Wire plans to source, sinks and intermediate locations.

        Args:
            plans: Stage plans in execution order
            source_location: Location of the input graph (ignored by service formats)
            source_format: One of SUPPORTED_SOURCE_FORMATS
            sink_location_graph: Output location of a derivation pipeline
            sink_location_stats: Output location of a statistics pipeline
            sink_format_graph: One of SUPPORTED_GRAPH_SINK_FORMATS
            sink_format_stats: One of SUPPORTED_STATISTICS_SINK_FORMATS
            properties: Pass-through entries copied into every stage configuration

        Returns:
            The ExecutablePipeline (empty if plans is empty)

        Raises:
            UnsupportedFormat: If a source or sink format is not supported
            CompositionFailure: If a location is missing or allocation fails
        """
        if not plans:
            return ExecutablePipeline()

        source_format = _check_format(source_format, "source", SUPPORTED_SOURCE_FORMATS)
        if source_format in FILE_FORMATS and not source_location:
            raise CompositionFailure(f"Source format '{source_format}' requires a source location")

        derivation = is_derivation(plans)
        properties = dict(properties or {})
        pool = LocationPool(self._storage, self._intermediate_root, self._name_factory)

        try:
            stages = self._wire(
                plans,
                pool,
                source_location or "",
                source_format,
                sink_location_graph if derivation else sink_location_stats,
                sink_format_graph if derivation else sink_format_stats,
                "graph sink" if derivation else "statistics sink",
                SUPPORTED_GRAPH_SINK_FORMATS if derivation else SUPPORTED_STATISTICS_SINK_FORMATS,
                properties,
            )
        except GraphStageError:
            self._rollback(pool)
            raise
        except Exception as e:
            self._rollback(pool)
            raise CompositionFailure(f"Failed to compose pipeline: {e}", cause=e) from e

        pipeline = ExecutablePipeline(
            stages=tuple(stages),
            intermediates=pool.held,
            derivation=derivation,
        )
        logger.info(
            f"Composed {len(pipeline)} stage(s), {len(pipeline.intermediates)} intermediate location(s)",
            extra={"event": "pipeline_composed", "metadata": {
                "stages": [s.name for s in pipeline.stages],
                "derivation": derivation,
            }},
        )
        return pipeline

    def _wire(
        self,
        plans: Sequence[StagePlan],
        pool: LocationPool,
        source_location: str,
        source_format: str,
        sink_location: Optional[str],
        sink_format: str,
        sink_role: str,
        supported_sinks: frozenset,
        properties: dict[str, str],
    ) -> list[ExecutableStage]:
        last = len(plans) - 1
        stages: list[ExecutableStage] = []
        input_location, input_format = source_location, source_format

        for index, plan in enumerate(plans):
            if index < last:
                output_location = pool.acquire()
                output_format = INTERMEDIATE_FORMAT
            else:
                output_format = _check_format(sink_format, sink_role, supported_sinks)
                if output_format in FILE_FORMATS and not sink_location:
                    raise CompositionFailure(f"{sink_role.capitalize()} format '{output_format}' requires a location")
                output_location = sink_location or ""

            configuration = plan.stage_configuration()
            configuration.update(properties)

            stages.append(ExecutableStage(
                index=index,
                plan=plan,
                input_location=input_location,
                output_location=output_location,
                input_format=input_format,
                output_format=output_format,
                configuration=configuration,
                input_is_intermediate=index > 0,
                output_is_intermediate=index < last,
            ))
            input_location, input_format = output_location, INTERMEDIATE_FORMAT

        return stages

    def _rollback(self, pool: LocationPool) -> None:
        held = pool.held
        errors = pool.release_all()
        if held:
            logger.warning(
                f"Rolled back {len(held)} intermediate location(s) ({len(errors)} cleanup error(s))",
                extra={"event": "composition_rollback", "metadata": {"locations": list(held)}},
            )

    def compose_from_config(self, plans: Sequence[StagePlan], config: "GraphStageConfig") -> ExecutablePipeline:
        """Compose using the formats, locations and properties of a GraphStageConfig."""
        return self.compose(
            plans,
            source_location=config.get_source_location(),
            source_format=config.get_source_format(),
            sink_location_graph=config.get_graph_sink_location(),
            sink_location_stats=config.get_statistics_sink_location(),
            sink_format_graph=config.get_graph_sink_format(),
            sink_format_stats=config.get_statistics_sink_format(),
            properties=config.get_properties(),
        )
