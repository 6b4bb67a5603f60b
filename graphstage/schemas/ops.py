"""
Op enum defining the graph operation catalog for graphstage.

Operations are categorized by whether they need cross-record grouping:
- map_only: applied record by record, fusable into the open stage
- grouping_map_reduce: needs every record sharing a key co-located before
  the reduce side runs, forcing a stage boundary

The set of operations is closed. The stage builder matches exhaustively on
OpKind rather than inspecting operation implementations at runtime.
"""

from enum import Enum


class OpKind(str, Enum):
    """Fusability class of an operation."""
    MAP_ONLY = "map_only"
    GROUPING_MAP_REDUCE = "grouping_map_reduce"


class Op(str, Enum):
    """
    Enumeration of all graph operations graphstage can compile.

    Naming convention: the snake_case name used by pipeline scripts.
    The value doubles as the operation's configuration-key namespace
    (see namespace).
    """
    # Transforms
    TRANSFORM = "transform"
    IDENTITY = "identity"
    VERTEX_MAP = "vertex_map"
    VERTICES_MAP = "vertices_map"
    EDGES_MAP = "edges_map"
    VERTICES_VERTICES = "vertices_vertices"
    VERTICES_EDGES = "vertices_edges"
    EDGES_VERTICES = "edges_vertices"
    PROPERTY_MAP = "property_map"
    PATH_MAP = "path_map"

    # Filters
    FILTER = "filter"
    PROPERTY_FILTER = "property_filter"
    INTERVAL_FILTER = "interval_filter"
    BACK_FILTER = "back_filter"
    DUPLICATE_FILTER = "duplicate_filter"

    # Side effects
    SIDE_EFFECT = "side_effect"
    LINK = "link"
    COMMIT_EDGES = "commit_edges"
    COMMIT_VERTICES = "commit_vertices"
    VALUE_DISTRIBUTION = "value_distribution"
    GROUP_COUNT = "group_count"

    # Extra
    COUNT = "count"

    @property
    def kind(self) -> OpKind:
        """Get the fusability class of this operation."""
        if self in _GROUPING_OPS:
            return OpKind.GROUPING_MAP_REDUCE
        return OpKind.MAP_ONLY

    @property
    def namespace(self) -> str:
        """Configuration-key namespace owned by this operation."""
        return f"graphstage.{self.value.replace('_', '')}"

    @classmethod
    def from_string(cls, value: str) -> "Op":
        """
        Parse an Op from its string value.

        Args:
            value: The operation name (e.g., "property_filter")

        Returns:
            The corresponding Op enum member

        Raises:
            ValueError: If the value is not a valid operation
        """
        try:
            return cls(value)
        except ValueError:
            valid_ops = ", ".join(op.value for op in cls)
            raise ValueError(f"Unknown op '{value}'. Valid ops: {valid_ops}")


_GROUPING_OPS = frozenset({
    Op.VERTICES_VERTICES,
    Op.VERTICES_EDGES,
    Op.BACK_FILTER,
    Op.LINK,
    Op.COMMIT_VERTICES,
    Op.VALUE_DISTRIBUTION,
    Op.GROUP_COUNT,
    Op.COUNT,
})
