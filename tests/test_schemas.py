"""Tests for graphstage schemas.

Covers the data model from operation descriptors to stage outcomes:
OperationDescriptor -> StagePlan -> ExecutablePipeline -> StageOutcome
"""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from graphstage.errors import DescriptorError
from graphstage.schemas import (
    GRAPH_SCHEMA,
    HOLDER_SCHEMA,
    MAP_SEQUENCE_KEY,
    TEXT_COUNT_SCHEMA,
    ExecutablePipeline,
    ExecutableStage,
    Op,
    OperationDescriptor,
    OpKind,
    ProgressEvent,
    RecordSchema,
    RecordType,
    StageOutcome,
    StagePlan,
    StageStatus,
)
from graphstage.schemas.stage_plan import COMBINE_KEY, REDUCE_KEY


def _map_only(op=Op.FILTER, **config):
    return OperationDescriptor(op=op, kind=OpKind.MAP_ONLY, config=config)


def _grouping(op=Op.GROUP_COUNT, combinable=True):
    return OperationDescriptor(
        op=op,
        kind=OpKind.GROUPING_MAP_REDUCE,
        output_schema=TEXT_COUNT_SCHEMA,
        map_output_schema=TEXT_COUNT_SCHEMA,
        combinable=combinable,
    )


# =============================================================================
# RECORDS AND OPS
# =============================================================================


class TestRecordSchema:
    def test_str(self):
        assert str(GRAPH_SCHEMA) == "(null, vertex)"

    def test_round_trip(self):
        assert RecordSchema.from_dict(HOLDER_SCHEMA.to_dict()) == HOLDER_SCHEMA

    def test_equality_by_value(self):
        assert RecordSchema(RecordType.NULL, RecordType.VERTEX) == GRAPH_SCHEMA


class TestOp:
    def test_grouping_ops(self):
        assert Op.GROUP_COUNT.kind == OpKind.GROUPING_MAP_REDUCE
        assert Op.VERTICES_VERTICES.kind == OpKind.GROUPING_MAP_REDUCE
        assert Op.LINK.kind == OpKind.GROUPING_MAP_REDUCE

    def test_map_only_ops(self):
        assert Op.FILTER.kind == OpKind.MAP_ONLY
        assert Op.EDGES_VERTICES.kind == OpKind.MAP_ONLY
        assert Op.COMMIT_EDGES.kind == OpKind.MAP_ONLY

    def test_namespace(self):
        assert Op.PROPERTY_FILTER.namespace == "graphstage.propertyfilter"

    def test_from_string(self):
        assert Op.from_string("back_filter") == Op.BACK_FILTER

    def test_from_string_unknown(self):
        with pytest.raises(ValueError, match="Unknown op 'teleport'"):
            Op.from_string("teleport")


# =============================================================================
# OPERATION DESCRIPTOR
# =============================================================================


class TestOperationDescriptor:
    """Descriptors are validated at construction and immutable afterwards."""

    def test_config_is_read_only(self):
        descriptor = _map_only(**{"graphstage.filter.closure": "{it}"})
        with pytest.raises(TypeError):
            descriptor.config["graphstage.filter.closure"] = "{false}"

    def test_config_is_copied(self):
        config = {"k": "v"}
        descriptor = OperationDescriptor(op=Op.FILTER, kind=OpKind.MAP_ONLY, config=config)
        config["k"] = "changed"
        assert descriptor.config["k"] == "v"

    def test_fields_are_frozen(self):
        descriptor = _map_only()
        with pytest.raises(dataclasses.FrozenInstanceError):
            descriptor.combinable = True

    def test_bytes_values_allowed(self):
        descriptor = _map_only(**{"graphstage.filter.closure": b"\x01\x02"})
        assert descriptor.to_dict()["config"]["graphstage.filter.closure"] == "0102"

    def test_non_string_value_rejected(self):
        with pytest.raises(DescriptorError, match="must be str or bytes"):
            _map_only(**{"graphstage.filter.step": 3})

    def test_empty_key_rejected(self):
        with pytest.raises(DescriptorError):
            OperationDescriptor(op=Op.FILTER, kind=OpKind.MAP_ONLY, config={"": "x"})

    def test_kind_must_match_op(self):
        with pytest.raises(DescriptorError, match="grouping_map_reduce"):
            OperationDescriptor(op=Op.GROUP_COUNT, kind=OpKind.MAP_ONLY)

    def test_map_only_cannot_combine(self):
        with pytest.raises(DescriptorError, match="combiner"):
            OperationDescriptor(op=Op.FILTER, kind=OpKind.MAP_ONLY, combinable=True)

    def test_map_output_defaults_to_output(self):
        descriptor = OperationDescriptor(op=Op.COUNT, kind=OpKind.GROUPING_MAP_REDUCE, output_schema=TEXT_COUNT_SCHEMA)
        assert descriptor.map_output_schema == TEXT_COUNT_SCHEMA

    def test_map_only_single_schema(self):
        with pytest.raises(DescriptorError):
            OperationDescriptor(op=Op.FILTER, kind=OpKind.MAP_ONLY, map_output_schema=HOLDER_SCHEMA)

    def test_properties(self):
        assert _grouping().is_grouping
        assert not _map_only().is_grouping
        assert _map_only().name == "filter"


# =============================================================================
# STAGE PLAN
# =============================================================================


class TestStagePlan:
    def test_empty_plan_rejected(self):
        with pytest.raises(ValueError, match="at least one"):
            StagePlan()

    def test_grouping_op_in_sequence_rejected(self):
        with pytest.raises(ValueError, match="cannot be fused"):
            StagePlan(map_only_sequence=(_grouping(),))

    def test_map_only_grouping_op_rejected(self):
        with pytest.raises(ValueError, match="not a grouping operation"):
            StagePlan(grouping_op=_map_only())

    def test_combine_op_requires_grouping_op(self):
        with pytest.raises(ValueError, match="only valid"):
            StagePlan(map_only_sequence=(_map_only(),), combine_op=_grouping())

    def test_combine_op_must_match(self):
        with pytest.raises(ValueError, match="must be the combiner"):
            StagePlan(grouping_op=_grouping(Op.GROUP_COUNT), combine_op=_grouping(Op.VALUE_DISTRIBUTION))

    def test_combine_op_requires_combinable(self):
        grouping = _grouping(combinable=False)
        with pytest.raises(ValueError):
            StagePlan(grouping_op=grouping, combine_op=grouping)

    def test_name_lists_grouping_op_last(self):
        plan = StagePlan(
            map_only_sequence=(_map_only(Op.IDENTITY), _map_only(Op.FILTER)),
            grouping_op=_grouping(),
        )
        assert plan.name == "MapSequence[identity, filter, group_count]"

    def test_stage_configuration_is_ordered_and_indexed(self):
        grouping = _grouping()
        plan = StagePlan(
            map_only_sequence=(
                _map_only(Op.FILTER, **{"graphstage.filter.closure": "{a}"}),
                _map_only(Op.FILTER, **{"graphstage.filter.closure": "{b}"}),
            ),
            grouping_op=grouping,
            combine_op=grouping,
            map_output_schema=TEXT_COUNT_SCHEMA,
            final_output_schema=TEXT_COUNT_SCHEMA,
        )
        config = plan.stage_configuration()
        assert config[MAP_SEQUENCE_KEY] == "filter,filter,group_count"
        assert config["graphstage.filter.closure-0"] == "{a}"
        assert config["graphstage.filter.closure-1"] == "{b}"
        assert config[REDUCE_KEY] == "group_count"
        assert config[COMBINE_KEY] == "group_count"
        assert config["graphstage.output.key"] == "text"

    def test_stage_configuration_returns_new_dict(self):
        plan = StagePlan(map_only_sequence=(_map_only(),))
        plan.stage_configuration()["extra"] = "x"
        assert "extra" not in plan.stage_configuration()

    def test_input_schema(self):
        assert StagePlan(map_only_sequence=(_map_only(),)).input_schema == GRAPH_SCHEMA


# =============================================================================
# PIPELINE
# =============================================================================


class TestExecutablePipeline:
    def _stage(self, index, **kwargs):
        return ExecutableStage(
            index=index,
            plan=StagePlan(map_only_sequence=(_map_only(),)),
            input_location="in",
            output_location="out",
            input_format="graphson",
            output_format="graphson",
            **kwargs,
        )

    def test_empty(self):
        pipeline = ExecutablePipeline()
        assert pipeline.is_empty
        assert len(pipeline) == 0
        assert pipeline.sink_location is None

    def test_intermediate_count_enforced(self):
        with pytest.raises(ValueError, match="needs 1 intermediate"):
            ExecutablePipeline(stages=(self._stage(0), self._stage(1)))

    def test_stage_configuration_is_read_only_copy(self):
        config = {"a": "1"}
        stage = self._stage(0, configuration=config)
        config["a"] = "2"
        assert stage.configuration["a"] == "1"
        with pytest.raises(TypeError):
            stage.configuration["a"] = "3"

    def test_to_dict(self):
        pipeline = ExecutablePipeline(stages=(self._stage(0),))
        data = pipeline.to_dict()
        assert data["derivation"] is True
        assert data["stages"][0]["name"] == "MapSequence[filter]"
        assert data["stages"][0]["output"] == {"location": "out", "format": "graphson"}


# =============================================================================
# OUTCOMES
# =============================================================================


class TestStageOutcome:
    def test_completed_requires_timestamps(self):
        with pytest.raises(ValueError, match="must have started_at"):
            StageOutcome(stage_index=0, name="s", status=StageStatus.COMPLETED)

    def test_skipped_rejects_timestamps(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValueError, match="should not have timestamps"):
            StageOutcome(stage_index=0, name="s", status=StageStatus.SKIPPED, started_at=now)

    def test_failed_requires_error(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValueError, match="error details"):
            StageOutcome(stage_index=0, name="s", status=StageStatus.FAILED, started_at=now, completed_at=now)

    def test_duration(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        outcome = StageOutcome(
            stage_index=0,
            name="s",
            status=StageStatus.COMPLETED,
            started_at=start,
            completed_at=start + timedelta(seconds=2),
        )
        assert outcome.duration_ms == 2000
        assert outcome.to_dict()["status"] == "completed"

    def test_progress_event_to_dict(self):
        event = ProgressEvent(1, 3, "MapSequence[filter]")
        assert event.to_dict() == {"stage_index": 1, "stage_count": 3, "stage_name": "MapSequence[filter]"}
