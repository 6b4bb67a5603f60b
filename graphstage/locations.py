"""
LocationPool - allocation and release of intermediate storage locations.

Each intermediate location is a fresh UUID-named path under a root, so two
pipelines never share one. The pool remembers everything it handed out
until it is released; release errors are logged and collected, never
raised, so they cannot hide the error that triggered a rollback.
"""

import logging
import posixpath
import uuid
from typing import Callable, Optional

from graphstage.substrate import Storage

logger = logging.getLogger(__name__)


def _uuid_name() -> str:
    return str(uuid.uuid4())


class LocationPool:
    """
    Hands out intermediate locations and releases them.

    Usage:
        pool = LocationPool(storage, "/tmp/graphstage")
        location = pool.acquire()
        ...
        errors = pool.release_all()
    """

    def __init__(
        self,
        storage: Storage,
        root: str = "",
        name_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            storage: Storage used to check and delete released locations
            root: Directory under which locations are created ("" for relative names)
            name_factory: Returns a unique location name (default: uuid4)
        """
        self._storage = storage
        self._root = root
        self._name_factory = name_factory or _uuid_name
        self._held: list[str] = []

    @property
    def held(self) -> tuple[str, ...]:
        """Locations acquired and not yet released, in acquisition order."""
        return tuple(self._held)

    def acquire(self) -> str:
        name = self._name_factory()
        location = posixpath.join(self._root, name) if self._root else name
        if location in self._held:
            raise ValueError(f"Location factory returned a duplicate name: {location}")
        self._held.append(location)
        logger.debug(f"Allocated intermediate location: {location}")
        return location

    def release(self, location: str) -> Optional[Exception]:
        """
        Delete a location if it exists.

        Returns:
            The deletion error, or None if the location is gone
        """
        if location in self._held:
            self._held.remove(location)
        try:
            if self._storage.exists(location):
                self._storage.delete(location, recursive=True)
                logger.debug(f"Deleted intermediate location: {location}")
        except Exception as e:
            logger.warning(
                f"Failed to delete intermediate location {location}: {e}",
                extra={"event": "cleanup_failed", "metadata": {"location": location}},
            )
            return e
        return None

    def release_all(self) -> list[Exception]:
        """
        Release every held location.

        Returns:
            Errors from individual deletions (empty if all succeeded)
        """
        errors = []
        for location in list(self._held):
            error = self.release(location)
            if error is not None:
                errors.append(error)
        return errors
