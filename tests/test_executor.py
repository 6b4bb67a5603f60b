"""Tests for StageExecutor.

Stages run strictly in order; each consumed intermediate is deleted once the
stage reading it has completed; a failure stops the chain and leaves
unconsumed intermediates in place.
"""

import logging

import pytest

from graphstage import catalog
from graphstage.builder import StageBuilder
from graphstage.composer import PipelineComposer
from graphstage.executor import StageExecutor
from graphstage.schemas import ExecutablePipeline, StageStatus
from graphstage.substrate import NoOpSubstrate


@pytest.fixture
def pipeline(storage, name_factory):
    """Three stages chained through /work/tmp-0 and /work/tmp-1."""
    builder = StageBuilder()
    for descriptor in (
        catalog.vertices_vertices("OUT"),
        catalog.back_filter("vertex", 1),
        catalog.identity(),
    ):
        builder.append(descriptor)
    composer = PipelineComposer(storage, intermediate_root="/work", name_factory=name_factory)
    return composer.compose(
        builder.flush(),
        source_location="/data/graph.json",
        source_format="graphson",
        sink_location_graph="/out/graph",
        sink_location_stats="/out/stats",
        sink_format_graph="graphson",
        sink_format_stats="text",
    )


class TestSuccessfulRun:
    def test_stages_run_in_order(self, pipeline, storage, make_substrate):
        substrate = make_substrate()
        result = StageExecutor(substrate, storage).execute(pipeline)

        assert result.success
        assert result.error is None
        assert result.failed_stage is None
        assert [s.index for s in substrate.submitted] == [0, 1, 2]
        assert [o.status for o in result.outcomes] == [StageStatus.COMPLETED] * 3

    def test_intermediates_deleted_after_consumer(self, pipeline, storage, make_substrate):
        substrate = make_substrate()
        StageExecutor(substrate, storage).execute(pipeline)

        # tmp-0 still exists while stage 1 (its consumer) runs
        assert "/work/tmp-0" in substrate.existing_at_submit[1]
        # and is gone before stage 2 starts
        assert "/work/tmp-0" not in substrate.existing_at_submit[2]
        assert storage.deleted == ["/work/tmp-0", "/work/tmp-1"]
        assert not any(storage.exists(loc) for loc in pipeline.intermediates)
        assert storage.exists("/out/graph")

    def test_empty_pipeline(self, storage, make_substrate):
        substrate = make_substrate()
        result = StageExecutor(substrate, storage).execute(ExecutablePipeline())
        assert result.success
        assert result.outcomes == []
        assert substrate.submitted == []

    def test_noop_substrate(self, pipeline, storage):
        substrate = NoOpSubstrate(storage)
        result = StageExecutor(substrate, storage).execute(pipeline)
        assert result.success
        assert len(substrate.submitted) == 3
        assert storage.exists("/out/graph")


class TestFailure:
    def test_false_result_stops_chain(self, pipeline, storage, make_substrate):
        substrate = make_substrate(fail_at=1)
        result = StageExecutor(substrate, storage).execute(pipeline)

        assert not result.success
        assert result.failed_stage == 1
        assert result.error.cause is None
        assert len(substrate.submitted) == 2
        assert [o.status for o in result.outcomes] == [
            StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.SKIPPED,
        ]

    def test_raised_error_reported_with_cause(self, pipeline, storage, make_substrate):
        result = StageExecutor(make_substrate(raise_at=0), storage).execute(pipeline)

        assert result.failed_stage == 0
        assert isinstance(result.error.cause, RuntimeError)
        assert "cluster unavailable" in str(result.error)
        assert result.outcomes[0].error["stage_index"] == 0

    def test_unconsumed_intermediates_left_in_place(self, pipeline, storage, make_substrate):
        StageExecutor(make_substrate(fail_at=1), storage).execute(pipeline)

        assert storage.exists("/work/tmp-0")
        assert storage.deleted == []

    def test_cleanup_failure_does_not_fail_run(self, pipeline, storage, make_substrate, monkeypatch):
        def broken_delete(location, recursive=True):
            raise OSError("permission denied")

        monkeypatch.setattr(storage, "delete", broken_delete)
        result = StageExecutor(make_substrate(), storage).execute(pipeline)
        assert result.success


class TestProgress:
    def test_progress_events(self, pipeline, storage, make_substrate):
        events = []
        StageExecutor(make_substrate(), storage, on_progress=events.append).execute(pipeline)

        assert [(e.stage_index, e.stage_count) for e in events] == [(0, 3), (1, 3), (2, 3)]
        assert events[0].stage_name == "MapSequence[vertices_vertices]"

    def test_callback_errors_ignored(self, pipeline, storage, make_substrate, caplog):
        def broken(event):
            raise RuntimeError("ui closed")

        with caplog.at_level(logging.WARNING, logger="graphstage"):
            result = StageExecutor(make_substrate(), storage, on_progress=broken).execute(pipeline)

        assert result.success
        assert "Progress callback failed" in caplog.text

    def test_stage_started_logged(self, pipeline, storage, make_substrate, caplog):
        with caplog.at_level(logging.INFO, logger="graphstage"):
            StageExecutor(make_substrate(), storage).execute(pipeline)

        started = [r for r in caplog.records if getattr(r, "event", None) == "stage_started"]
        assert len(started) == 3
        assert started[0].metadata["stage_count"] == 3

    def test_result_to_dict(self, pipeline, storage, make_substrate):
        result = StageExecutor(make_substrate(fail_at=2), storage).execute(pipeline)
        data = result.to_dict()
        assert data["success"] is False
        assert data["error"]["stage_index"] == 2
        assert [o["status"] for o in data["outcomes"]] == ["completed", "completed", "failed"]
