"""
Record schemas - the key/value types flowing between operations.

Every operation declares the key/value pair it consumes and the pair it
emits. Stages are chained by matching these schemas: the schema emitted by
one stage's last operation must be the schema the next stage reads.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RecordType(str, Enum):
    """Key or value type of a record written between map, reduce and storage."""
    NULL = "null"
    VERTEX = "vertex"
    HOLDER = "holder"
    LONG = "long"
    INT = "int"
    TEXT = "text"


@dataclass(frozen=True)
class RecordSchema:
    """
    A (key, value) record type pair.

    Attributes:
        key: Type of the record key
        value: Type of the record value
    """
    key: RecordType
    value: RecordType

    def __str__(self) -> str:
        return f"({self.key.value}, {self.value.value})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {"key": self.key.value, "value": self.value.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecordSchema":
        """Deserialize from dictionary."""
        return cls(key=RecordType(data["key"]), value=RecordType(data["value"]))


# The default graph-element schema: one vertex (with its edges) per record.
# A pipeline whose stages all emit this schema produces another graph.
GRAPH_SCHEMA = RecordSchema(RecordType.NULL, RecordType.VERTEX)

# Map-side schema of the vertex-centric grouping operations (id -> holder)
HOLDER_SCHEMA = RecordSchema(RecordType.LONG, RecordType.HOLDER)

# Grouped counts keyed by text
TEXT_COUNT_SCHEMA = RecordSchema(RecordType.TEXT, RecordType.LONG)

# Text side-effect output
TEXT_SCHEMA = RecordSchema(RecordType.NULL, RecordType.TEXT)
