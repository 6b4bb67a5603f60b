"""
Operation catalog - factories for every graph operation graphstage compiles.

Each factory validates its parameters and returns an OperationDescriptor
carrying:
- the operation's configuration, under its own key namespace
- the record schema it requires and the schema(s) it emits
- whether it supplies a combiner

What an operation computes is up to the stage implementation on the
substrate; the compiler only needs this metadata to decide fusion and to
propagate schemas.

Usage:
    from graphstage import catalog

    descriptor = catalog.property_filter("vertex", "age", ">", [30])
    descriptor = catalog.build("group_count", element="vertex", key_closure="{it.name}")
"""

from typing import Any, Callable, Iterable, Optional, Union

from graphstage.errors import DescriptorError
from graphstage.schemas import (
    GRAPH_SCHEMA,
    HOLDER_SCHEMA,
    TEXT_COUNT_SCHEMA,
    TEXT_SCHEMA,
    Op,
    OperationDescriptor,
    RecordSchema,
    RecordType,
)


ELEMENT_CLASSES = ("vertex", "edge")
DIRECTIONS = ("OUT", "IN", "BOTH")
ACTIONS = ("KEEP", "DROP")

# Comparison symbol -> canonical name
COMPARES = {
    "=": "EQUAL",
    "==": "EQUAL",
    "!=": "NOT_EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_EQUAL",
    "<": "LESS_THAN",
    "<=": "LESS_THAN_EQUAL",
}

# Written for link() when duplicate edges are not merged
NO_WEIGHT_KEY = "_"

COUNT_MAP_SCHEMA = RecordSchema(RecordType.INT, RecordType.LONG)
COUNT_SCHEMA = RecordSchema(RecordType.INT, RecordType.TEXT)

Closure = Union[str, bytes]


# =============================================================================
# PARAMETER HELPERS
# =============================================================================


def _key(op: Op, name: str) -> str:
    return f"{op.namespace}.{name}"


def _element(op: Op, element: str) -> str:
    value = str(element).lower()
    if value not in ELEMENT_CLASSES:
        raise DescriptorError(
            f"Op '{op.value}': unsupported element class: {element!r} "
            f"(expected one of {', '.join(ELEMENT_CLASSES)})",
            op=op.value,
        )
    return value


def _direction(op: Op, direction: str) -> str:
    value = str(direction).upper()
    if value not in DIRECTIONS:
        raise DescriptorError(
            f"Op '{op.value}': unknown direction: {direction!r}", op=op.value
        )
    return value


def _closure(op: Op, closure: Closure, name: str = "closure") -> Closure:
    if not isinstance(closure, (str, bytes)) or not closure:
        raise DescriptorError(
            f"Op '{op.value}': {name} must be a non-empty string or bytes", op=op.value
        )
    return closure


def _as_list(values: Any) -> list[Any]:
    # a lone string is one value, not a sequence of characters
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        return [values]
    return list(values)


def _strings(values: Any) -> str:
    return ",".join(str(v) for v in _as_list(values))


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _value_class(op: Op, value: Any) -> str:
    # bool first: it is an int subclass
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (int, float)):
        return "number"
    raise DescriptorError(
        f"Op '{op.value}': unknown value class: {type(value).__name__}", op=op.value
    )


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return _bool(value)
    return str(value)


def _format_bound(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(float(value))
    return _format_value(value)


def _map_only(op: Op, config: dict[str, Any], output_schema: RecordSchema = GRAPH_SCHEMA) -> OperationDescriptor:
    return OperationDescriptor(
        op=op,
        kind=op.kind,
        config=config,
        input_schema=GRAPH_SCHEMA,
        output_schema=output_schema,
    )


def _grouping(
    op: Op,
    config: dict[str, Any],
    map_output_schema: RecordSchema = HOLDER_SCHEMA,
    output_schema: RecordSchema = GRAPH_SCHEMA,
    combinable: bool = False,
) -> OperationDescriptor:
    return OperationDescriptor(
        op=op,
        kind=op.kind,
        config=config,
        input_schema=GRAPH_SCHEMA,
        output_schema=output_schema,
        map_output_schema=map_output_schema,
        combinable=combinable,
    )


# =============================================================================
# TRANSFORMS
# =============================================================================


def transform(element: str, closure: Closure) -> OperationDescriptor:
    """Apply a closure to every element of the given class."""
    op = Op.TRANSFORM
    return _map_only(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "closure"): _closure(op, closure),
    })


def identity() -> OperationDescriptor:
    return _map_only(Op.IDENTITY, {})


def vertex_map(ids: Iterable[int]) -> OperationDescriptor:
    """Start the traversal at the vertices with the given ids."""
    op = Op.VERTEX_MAP
    id_list = _as_list(ids)
    for vid in id_list:
        if isinstance(vid, bool) or not isinstance(vid, int):
            raise DescriptorError(f"Op '{op.value}': vertex ids must be integers, got {vid!r}", op=op.value)
    return _map_only(op, {_key(op, "ids"): _strings(id_list)})


def vertices_map() -> OperationDescriptor:
    return _map_only(Op.VERTICES_MAP, {})


def edges_map() -> OperationDescriptor:
    return _map_only(Op.EDGES_MAP, {})


def vertices_vertices(direction: str, labels: Iterable[str] = ()) -> OperationDescriptor:
    """Step from vertices to adjacent vertices (needs grouping by target id)."""
    op = Op.VERTICES_VERTICES
    return _grouping(op, {
        _key(op, "direction"): _direction(op, direction),
        _key(op, "labels"): _strings(labels),
    })


def vertices_edges(direction: str, labels: Iterable[str] = ()) -> OperationDescriptor:
    """Step from vertices to incident edges (needs grouping by edge owner)."""
    op = Op.VERTICES_EDGES
    return _grouping(op, {
        _key(op, "direction"): _direction(op, direction),
        _key(op, "labels"): _strings(labels),
    })


def edges_vertices(direction: str) -> OperationDescriptor:
    op = Op.EDGES_VERTICES
    return _map_only(op, {_key(op, "direction"): _direction(op, direction)})


def property_map(element: str, key: str) -> OperationDescriptor:
    """Emit the value of a property as text."""
    op = Op.PROPERTY_MAP
    if not key:
        raise DescriptorError(f"Op '{op.value}': property key is required", op=op.value)
    return _map_only(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "key"): str(key),
    }, output_schema=TEXT_SCHEMA)


def path_map(element: str) -> OperationDescriptor:
    """Emit the traversal path of every element as text."""
    op = Op.PATH_MAP
    return _map_only(op, {_key(op, "class"): _element(op, element)}, output_schema=TEXT_SCHEMA)


# =============================================================================
# FILTERS
# =============================================================================


def filter_map(element: str, closure: Closure) -> OperationDescriptor:
    """Keep elements for which the closure returns true."""
    op = Op.FILTER
    return _map_only(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "closure"): _closure(op, closure),
    })


def property_filter(
    element: str,
    key: str,
    compare: str,
    values: Iterable[Any],
    null_wildcard: bool = False,
) -> OperationDescriptor:
    """
    Keep elements whose property compares true against any of the values.

    Args:
        element: "vertex" or "edge"
        key: Property key
        compare: Comparison symbol or name (">", "GREATER_THAN", ...)
        values: A single value or a non-empty list of str, bool or numbers,
            all of one class
        null_wildcard: Treat a missing property as matching

    Raises:
        DescriptorError: If the values are empty or of mixed/unknown classes
    """
    op = Op.PROPERTY_FILTER
    value_list = _as_list(values)
    if not value_list:
        raise DescriptorError(f"Op '{op.value}': at least one value is required", op=op.value)

    value_class = _value_class(op, value_list[0])
    for value in value_list[1:]:
        if _value_class(op, value) != value_class:
            raise DescriptorError(
                f"Op '{op.value}': values must share one class, got {value_class} and "
                f"{_value_class(op, value)}",
                op=op.value,
            )

    compare_name = COMPARES.get(compare, compare)
    if compare_name not in COMPARES.values():
        raise DescriptorError(f"Op '{op.value}': unknown comparison: {compare!r}", op=op.value)

    return _map_only(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "key"): str(key),
        _key(op, "compare"): compare_name,
        _key(op, "values"): _strings(_format_value(v) for v in value_list),
        _key(op, "valueClass"): value_class,
        _key(op, "nullWildcard"): _bool(null_wildcard),
    })


def interval_filter(
    element: str,
    key: str,
    start: Any,
    end: Any,
    null_wildcard: bool = False,
) -> OperationDescriptor:
    """Keep elements whose property lies in [start, end)."""
    op = Op.INTERVAL_FILTER
    value_class = _value_class(op, start)
    if _value_class(op, end) != value_class:
        raise DescriptorError(
            f"Op '{op.value}': start and end must share one class", op=op.value
        )
    return _map_only(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "key"): str(key),
        _key(op, "valueClass"): value_class,
        _key(op, "startValue"): _format_bound(start),
        _key(op, "endValue"): _format_bound(end),
        _key(op, "nullWildcard"): _bool(null_wildcard),
    })


def back_filter(element: str, step: int) -> OperationDescriptor:
    """Jump back to the elements seen `step` steps earlier."""
    op = Op.BACK_FILTER
    if isinstance(step, bool) or not isinstance(step, int) or step < 0:
        raise DescriptorError(f"Op '{op.value}': step must be a non-negative integer", op=op.value)
    return _grouping(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "step"): str(step),
    })


def duplicate_filter(element: str) -> OperationDescriptor:
    op = Op.DUPLICATE_FILTER
    return _map_only(op, {_key(op, "class"): _element(op, element)})


# =============================================================================
# SIDE EFFECTS
# =============================================================================


def side_effect(element: str, closure: Closure) -> OperationDescriptor:
    op = Op.SIDE_EFFECT
    return _map_only(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "closure"): _closure(op, closure),
    })


def link(step: int, direction: str, label: str, merge_weight_key: Optional[str] = None) -> OperationDescriptor:
    """
    Create edges between the current elements and those seen `step` steps earlier.

    Without merge_weight_key duplicate edges are kept; with it they are merged
    and their count is written to that property.
    """
    op = Op.LINK
    if isinstance(step, bool) or not isinstance(step, int) or step < 0:
        raise DescriptorError(f"Op '{op.value}': step must be a non-negative integer", op=op.value)
    if not label:
        raise DescriptorError(f"Op '{op.value}': label is required", op=op.value)
    return _grouping(op, {
        _key(op, "step"): str(step),
        _key(op, "direction"): _direction(op, direction),
        _key(op, "label"): str(label),
        _key(op, "mergeDuplicates"): _bool(merge_weight_key is not None),
        _key(op, "mergeWeightKey"): NO_WEIGHT_KEY if merge_weight_key is None else str(merge_weight_key),
    })


def _action(op: Op, action: str) -> str:
    value = str(action).upper()
    if value not in ACTIONS:
        raise DescriptorError(f"Op '{op.value}': unknown action: {action!r}", op=op.value)
    return value


def commit_edges(action: str) -> OperationDescriptor:
    op = Op.COMMIT_EDGES
    return _map_only(op, {_key(op, "action"): _action(op, action)})


def commit_vertices(action: str) -> OperationDescriptor:
    op = Op.COMMIT_VERTICES
    return _grouping(op, {_key(op, "action"): _action(op, action)})


def value_distribution(element: str, property: str) -> OperationDescriptor:
    """Count elements per distinct value of a property."""
    op = Op.VALUE_DISTRIBUTION
    if not property:
        raise DescriptorError(f"Op '{op.value}': property is required", op=op.value)
    return _grouping(op, {
        _key(op, "class"): _element(op, element),
        _key(op, "property"): str(property),
    }, map_output_schema=TEXT_COUNT_SCHEMA, output_schema=TEXT_COUNT_SCHEMA, combinable=True)


def group_count(element: str, key_closure: Closure, value_closure: Optional[Closure] = None) -> OperationDescriptor:
    """Sum closure-computed values per closure-computed key."""
    op = Op.GROUP_COUNT
    config = {
        _key(op, "class"): _element(op, element),
        _key(op, "keyFunction"): _closure(op, key_closure, "key_closure"),
    }
    if value_closure is not None:
        config[_key(op, "valueFunction")] = _closure(op, value_closure, "value_closure")
    return _grouping(op, config, map_output_schema=TEXT_COUNT_SCHEMA,
                     output_schema=TEXT_COUNT_SCHEMA, combinable=True)


def count(element: str) -> OperationDescriptor:
    """Count the elements of a class."""
    op = Op.COUNT
    return _grouping(op, {_key(op, "class"): _element(op, element)},
                     map_output_schema=COUNT_MAP_SCHEMA, output_schema=COUNT_SCHEMA)


# =============================================================================
# LOOKUP
# =============================================================================


FACTORIES: dict[Op, Callable[..., OperationDescriptor]] = {
    Op.TRANSFORM: transform,
    Op.IDENTITY: identity,
    Op.VERTEX_MAP: vertex_map,
    Op.VERTICES_MAP: vertices_map,
    Op.EDGES_MAP: edges_map,
    Op.VERTICES_VERTICES: vertices_vertices,
    Op.VERTICES_EDGES: vertices_edges,
    Op.EDGES_VERTICES: edges_vertices,
    Op.PROPERTY_MAP: property_map,
    Op.PATH_MAP: path_map,
    Op.FILTER: filter_map,
    Op.PROPERTY_FILTER: property_filter,
    Op.INTERVAL_FILTER: interval_filter,
    Op.BACK_FILTER: back_filter,
    Op.DUPLICATE_FILTER: duplicate_filter,
    Op.SIDE_EFFECT: side_effect,
    Op.LINK: link,
    Op.COMMIT_EDGES: commit_edges,
    Op.COMMIT_VERTICES: commit_vertices,
    Op.VALUE_DISTRIBUTION: value_distribution,
    Op.GROUP_COUNT: group_count,
    Op.COUNT: count,
}


def build(op: Op | str, **params: Any) -> OperationDescriptor:
    """
    Build a descriptor by operation name.

    Args:
        op: Op member or its string value
        **params: Factory keyword arguments

    Returns:
        The OperationDescriptor

    Raises:
        ValueError: If the operation name is unknown
        TypeError: If params do not match the factory signature
        DescriptorError: If params fail validation
    """
    if not isinstance(op, Op):
        op = Op.from_string(op)
    return FACTORIES[op](**params)
