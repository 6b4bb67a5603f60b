"""
Batch-execution substrate and storage interfaces.

graphstage never runs graph operations itself. A Substrate receives one
ExecutableStage at a time and blocks until the cluster reports it finished.
Storage answers existence checks and deletes locations (intermediate
cleanup, rollback and sink overwrite).

Implementations provided here:
- LocalStorage: local filesystem paths
- InMemoryStorage: a set of location strings, for tests and dry runs
- NoOpSubstrate: submits nothing, marks each stage's output as present
"""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from graphstage.schemas import ExecutableStage

logger = logging.getLogger(__name__)


class Substrate(ABC):
    """
    Abstract batch-execution substrate.

    submit() blocks until the stage completes. Returning False or raising
    both mean the stage failed.
    """

    @abstractmethod
    def submit(self, stage: ExecutableStage) -> bool:
        """
        Run one stage to completion.

        Args:
            stage: The stage with its locations, formats and configuration

        Returns:
            True if the stage completed successfully
        """
        pass


class Storage(ABC):
    """Abstract storage for source, sink and intermediate locations."""

    @abstractmethod
    def exists(self, location: str) -> bool:
        pass

    @abstractmethod
    def delete(self, location: str, recursive: bool = True) -> None:
        """
        Delete a location.

        Raises:
            OSError: If the location cannot be deleted
        """
        pass


class LocalStorage(Storage):
    """Storage backed by the local filesystem."""

    def exists(self, location: str) -> bool:
        return Path(location).exists()

    def delete(self, location: str, recursive: bool = True) -> None:
        path = Path(location)
        if path.is_dir() and not path.is_symlink():
            if recursive:
                shutil.rmtree(path)
            else:
                path.rmdir()
        elif path.exists() or path.is_symlink():
            path.unlink()


class InMemoryStorage(Storage):
    """
    Storage that tracks locations as strings.

    A location exists if it was added, or if anything below it was added
    ("a/b" exists once "a/b/part-0" was added).
    """

    def __init__(self, locations: Optional[Iterable[str]] = None):
        self._locations: set[str] = set(locations or ())
        self.deleted: list[str] = []

    def add(self, location: str) -> None:
        self._locations.add(location)

    def _children(self, location: str) -> set[str]:
        prefix = location.rstrip("/") + "/"
        return {loc for loc in self._locations if loc.startswith(prefix)}

    def exists(self, location: str) -> bool:
        return location in self._locations or bool(self._children(location))

    def delete(self, location: str, recursive: bool = True) -> None:
        children = self._children(location)
        if children and not recursive:
            raise OSError(f"Location is not empty: {location}")
        self._locations.discard(location)
        self._locations.difference_update(children)
        self.deleted.append(location)

    @property
    def locations(self) -> frozenset[str]:
        return frozenset(self._locations)


class NoOpSubstrate(Substrate):
    """
    Substrate for dry runs and tests.

    Logs every stage and, when given a storage, marks the stage's output
    location as present so downstream cleanup sees a real artifact.
    """

    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self._storage = storage
        self.submitted: list[ExecutableStage] = []

    def submit(self, stage: ExecutableStage) -> bool:
        logger.info(
            f"[noop] {stage.name}: {stage.input_location} ({stage.input_format}) -> "
            f"{stage.output_location} ({stage.output_format})"
        )
        self.submitted.append(stage)
        if self._storage is not None:
            self._storage.add(stage.output_location)
        return True
