"""Shared fixtures for graphstage tests."""

import copy
import itertools
from typing import Optional

import pytest
import yaml

from graphstage.config import load_config
from graphstage.schemas import ExecutableStage
from graphstage.substrate import InMemoryStorage, Substrate


BASE_CONFIG = {
    "pipeline": {"name": "test-pipeline"},
    "graph": {
        "input": {"format": "graphson", "location": "/data/graph.json"},
        "output": {"format": "graphson", "location": "/out/graph"},
    },
    "statistics": {
        "output": {"format": "text", "location": "/out/stats"},
    },
    "intermediate": {"root": "/work"},
    "logging": {"console": False},
}


def _merge(base: dict, overrides: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class RecordingSubstrate(Substrate):
    """Substrate that records submissions and fails on request."""

    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        fail_at: Optional[int] = None,
        raise_at: Optional[int] = None,
    ):
        self.storage = storage
        self.fail_at = fail_at
        self.raise_at = raise_at
        self.submitted: list[ExecutableStage] = []
        self.existing_at_submit: list[frozenset] = []

    def submit(self, stage: ExecutableStage) -> bool:
        self.submitted.append(stage)
        if self.storage is not None:
            self.existing_at_submit.append(self.storage.locations)
        if stage.index == self.raise_at:
            raise RuntimeError("cluster unavailable")
        if stage.index == self.fail_at:
            return False
        if self.storage is not None:
            self.storage.add(stage.output_location)
        return True


@pytest.fixture
def write_config(tmp_path):
    """Factory writing a graphstage.yaml with the given section overrides."""

    def _write(**overrides):
        path = tmp_path / "graphstage.yaml"
        path.write_text(yaml.safe_dump(_merge(BASE_CONFIG, overrides)))
        return path

    return _write


@pytest.fixture
def config(write_config):
    """A valid configuration: graphson source, graphson/text sinks, /work intermediates."""
    return load_config(write_config())


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def name_factory():
    """Deterministic intermediate names: tmp-0, tmp-1, ..."""
    counter = itertools.count()
    return lambda: f"tmp-{next(counter)}"


@pytest.fixture
def make_substrate(storage):
    """Factory for RecordingSubstrate bound to the storage fixture."""

    def _make(**kwargs):
        return RecordingSubstrate(storage, **kwargs)

    return _make
