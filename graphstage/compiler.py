"""
Compiler - the caller surface of graphstage.

Collects graph operations through a fluent append API, lowers them into
stage plans, composes the plans into an executable pipeline and runs it.

Usage:
    config = load_config("graphstage.yaml")
    compiler = Compiler(config, storage=LocalStorage(), substrate=my_cluster)
    compiler.vertices_vertices("OUT", ["knows"]).property_filter("vertex", "age", ">", [30])
    status = compiler.compile_and_run()   # 0 ok, 1 execution failure, 2 planning failure

The compiler is scoped to one pipeline. Operations are validated as they
are appended: a schema mismatch raises immediately and the operation is
not recorded.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from graphstage import catalog
from graphstage.builder import StageBuilder
from graphstage.composer import PipelineComposer
from graphstage.config import GraphStageConfig
from graphstage.errors import (
    EXIT_EXECUTION_ERROR,
    EXIT_OK,
    EXIT_PLANNING_ERROR,
    CompositionFailure,
    GraphStageError,
    PlanningError,
)
from graphstage.executor import ExecutionResult, ProgressCallback, StageExecutor
from graphstage.locations import LocationPool
from graphstage.schemas import ExecutablePipeline, OperationDescriptor, StagePlan
from graphstage.substrate import LocalStorage, Storage, Substrate

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """
    Terminal result of Compiler.run().

    Attributes:
        status: EXIT_OK, EXIT_EXECUTION_ERROR or EXIT_PLANNING_ERROR
        pipeline: The composed pipeline (None if planning failed)
        result: The executor result (None if nothing was executed)
        failure: "planning", "execution" or None
        error: The error that ended the run, if any
    """
    status: int
    pipeline: Optional[ExecutablePipeline] = None
    result: Optional[ExecutionResult] = None
    failure: Optional[str] = None
    error: Optional[GraphStageError] = None

    @property
    def success(self) -> bool:
        return self.status == EXIT_OK

    @property
    def stage_index(self) -> Optional[int]:
        """Index of the failing stage for execution failures."""
        return self.result.failed_stage if self.result is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "failure": self.failure,
            "stage_index": self.stage_index,
            "error": str(self.error) if self.error is not None else None,
            "stages": len(self.pipeline) if self.pipeline is not None else 0,
            "outcomes": [o.to_dict() for o in self.result.outcomes] if self.result else [],
        }


class Compiler:
    """
    Builds and runs one graph pipeline.

    Every append method validates its parameters, checks the operation's
    input schema against the pipeline so far and returns the compiler for
    chaining.
    """

    def __init__(
        self,
        config: GraphStageConfig,
        storage: Optional[Storage] = None,
        substrate: Optional[Substrate] = None,
        on_progress: Optional[ProgressCallback] = None,
        name_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            config: Source, sink, intermediate and property settings
            storage: Storage for rollback, cleanup and overwrite (default: LocalStorage)
            substrate: Where stages run; required by run()
            on_progress: Progress callback passed to the executor
            name_factory: Unique-name factory for intermediate locations
        """
        self._config = config
        self._storage = storage or LocalStorage()
        self._substrate = substrate
        self._on_progress = on_progress
        self._name_factory = name_factory
        self._descriptors: list[OperationDescriptor] = []
        self._builder = StageBuilder()

    @property
    def descriptors(self) -> tuple[OperationDescriptor, ...]:
        return tuple(self._descriptors)

    def append(self, descriptor: OperationDescriptor) -> "Compiler":
        """
        Append a prebuilt operation.

        Raises:
            SchemaMismatch: If the operation cannot consume the current schema
        """
        self._builder.append(descriptor)
        self._descriptors.append(descriptor)
        return self

    # -------------------------------------------------------------------------
    # Transforms
    # -------------------------------------------------------------------------

    def transform(self, element: str, closure: catalog.Closure) -> "Compiler":
        return self.append(catalog.transform(element, closure))

    def identity(self) -> "Compiler":
        return self.append(catalog.identity())

    def vertex_map(self, ids: Iterable[int]) -> "Compiler":
        return self.append(catalog.vertex_map(ids))

    def vertices_map(self) -> "Compiler":
        return self.append(catalog.vertices_map())

    def edges_map(self) -> "Compiler":
        return self.append(catalog.edges_map())

    def vertices_vertices(self, direction: str, labels: Iterable[str] = ()) -> "Compiler":
        return self.append(catalog.vertices_vertices(direction, labels))

    def vertices_edges(self, direction: str, labels: Iterable[str] = ()) -> "Compiler":
        return self.append(catalog.vertices_edges(direction, labels))

    def edges_vertices(self, direction: str) -> "Compiler":
        return self.append(catalog.edges_vertices(direction))

    def property_map(self, element: str, key: str) -> "Compiler":
        return self.append(catalog.property_map(element, key))

    def path_map(self, element: str) -> "Compiler":
        return self.append(catalog.path_map(element))

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def filter(self, element: str, closure: catalog.Closure) -> "Compiler":
        return self.append(catalog.filter_map(element, closure))

    def property_filter(
        self, element: str, key: str, compare: str, values: Iterable[Any], null_wildcard: bool = False
    ) -> "Compiler":
        return self.append(catalog.property_filter(element, key, compare, values, null_wildcard))

    def interval_filter(
        self, element: str, key: str, start: Any, end: Any, null_wildcard: bool = False
    ) -> "Compiler":
        return self.append(catalog.interval_filter(element, key, start, end, null_wildcard))

    def back_filter(self, element: str, step: int) -> "Compiler":
        return self.append(catalog.back_filter(element, step))

    def duplicate_filter(self, element: str) -> "Compiler":
        return self.append(catalog.duplicate_filter(element))

    # -------------------------------------------------------------------------
    # Side effects and statistics
    # -------------------------------------------------------------------------

    def side_effect(self, element: str, closure: catalog.Closure) -> "Compiler":
        return self.append(catalog.side_effect(element, closure))

    def link(self, step: int, direction: str, label: str, merge_weight_key: Optional[str] = None) -> "Compiler":
        return self.append(catalog.link(step, direction, label, merge_weight_key))

    def commit_edges(self, action: str) -> "Compiler":
        return self.append(catalog.commit_edges(action))

    def commit_vertices(self, action: str) -> "Compiler":
        return self.append(catalog.commit_vertices(action))

    def value_distribution(self, element: str, property: str) -> "Compiler":
        return self.append(catalog.value_distribution(element, property))

    def group_count(
        self, element: str, key_closure: catalog.Closure, value_closure: Optional[catalog.Closure] = None
    ) -> "Compiler":
        return self.append(catalog.group_count(element, key_closure, value_closure))

    def count(self, element: str) -> "Compiler":
        return self.append(catalog.count(element))

    # -------------------------------------------------------------------------
    # Compilation
    # -------------------------------------------------------------------------

    def plans(self) -> list[StagePlan]:
        """Stage plans for the operations appended so far (does not consume them)."""
        builder = StageBuilder()
        for descriptor in self._descriptors:
            builder.append(descriptor)
        return builder.flush()

    def compile(self) -> ExecutablePipeline:
        """
        Lower the appended operations into an executable pipeline.

        Raises:
            PlanningError: If the pipeline cannot be composed
        """
        plans = self.plans()
        composer = PipelineComposer(
            self._storage,
            intermediate_root=self._config.get_intermediate_root(),
            name_factory=self._name_factory,
        )
        pipeline = composer.compose_from_config(plans, self._config)
        logger.info(f"Compiled to {len(pipeline)} stage(s)")
        return pipeline

    def _prepare_sink(self, pipeline: ExecutablePipeline) -> None:
        sink = pipeline.sink_location
        if not self._config.get_overwrite() or not sink:
            return
        try:
            if self._storage.exists(sink):
                self._storage.delete(sink, recursive=True)
                logger.info(f"Deleted existing output location: {sink}")
        except Exception as e:
            pool = LocationPool(self._storage)
            for location in pipeline.intermediates:
                pool.release(location)
            raise CompositionFailure(f"Failed to delete existing output location {sink}: {e}", cause=e) from e

    def run(self) -> RunReport:
        """
        Compile and execute the pipeline.

        Returns:
            RunReport; planning and execution failures are reported there

        Raises:
            ValueError: If the compiler has no substrate
        """
        if self._substrate is None:
            raise ValueError("A substrate is required to run a pipeline")

        logger.info(f"Generating stage chain: {self._config.name}")
        try:
            pipeline = self.compile()
            if not pipeline.is_empty:
                self._prepare_sink(pipeline)
        except PlanningError as e:
            logger.error(
                f"Planning failed: {e}",
                extra={"event": "planning_failed", "metadata": {"error_type": type(e).__name__}},
            )
            return RunReport(status=EXIT_PLANNING_ERROR, failure="planning", error=e)

        if pipeline.is_empty:
            logger.info("No operations to run")
            return RunReport(status=EXIT_OK, pipeline=pipeline)

        executor = StageExecutor(self._substrate, self._storage, on_progress=self._on_progress)
        result = executor.execute(pipeline)
        if not result.success:
            return RunReport(
                status=EXIT_EXECUTION_ERROR,
                pipeline=pipeline,
                result=result,
                failure="execution",
                error=result.error,
            )

        logger.info(f"Pipeline completed: {len(pipeline)} stage(s)")
        return RunReport(status=EXIT_OK, pipeline=pipeline, result=result)

    def compile_and_run(self) -> int:
        """
        Run the pipeline and return its status code.

        Returns:
            0 on success, 1 on an execution failure, 2 on a planning failure

        Raises:
            ValueError: If the compiler has no substrate; this is a caller
                error, not a pipeline status
        """
        return self.run().status
