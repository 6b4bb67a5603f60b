"""
Pipeline scripts - declarative operation lists.

A script is a YAML or JSON list of operations, applied in order:

    - op: vertices_vertices
      params: {direction: OUT, labels: [knows]}
    - op: property_filter
      params: {element: vertex, key: age, compare: ">", values: [30]}
    - op: group_count
      params: {element: vertex, key_closure: "{it.name}"}
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from graphstage import catalog
from graphstage.compiler import Compiler
from graphstage.errors import DescriptorError
from graphstage.schemas import OperationDescriptor


class ScriptError(Exception):
    """Pipeline script is missing, malformed or names an invalid operation."""
    pass


def load_script(script_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load a pipeline script from a .yaml/.yml or .json file.

    Returns:
        List of {"op": str, "params": dict} entries

    Raises:
        ScriptError: If the file is missing or not a list of operation entries
    """
    path = Path(script_path)
    if not path.exists():
        raise ScriptError(f"Script not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except UnicodeDecodeError as e:
        raise ScriptError(f"Script {path} is not valid UTF-8: {e}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ScriptError(f"Invalid script syntax in {path}: {e}")

    if data is None:
        return []
    if not isinstance(data, list):
        raise ScriptError(f"Script must be a list of operations, got {type(data).__name__}")

    entries = []
    for position, entry in enumerate(data):
        if not isinstance(entry, dict) or "op" not in entry:
            raise ScriptError(f"Entry {position}: expected a mapping with an 'op' key")
        params = entry.get("params") or {}
        if not isinstance(params, dict):
            raise ScriptError(f"Entry {position} ({entry['op']}): 'params' must be a mapping")
        entries.append({"op": str(entry["op"]), "params": params})
    return entries


def build_descriptor(entry: Dict[str, Any], position: int = 0) -> OperationDescriptor:
    """Build one descriptor from a script entry, mapping failures to ScriptError."""
    try:
        return catalog.build(entry["op"], **entry["params"])
    except (DescriptorError, ValueError, TypeError) as e:
        raise ScriptError(f"Entry {position} ({entry['op']}): {e}")


def apply_script(compiler: Compiler, entries: List[Dict[str, Any]]) -> Compiler:
    """
    Append every script entry to a compiler.

    Raises:
        ScriptError: For unknown operations or invalid parameters
        SchemaMismatch: If an operation cannot consume the schema before it
    """
    for position, entry in enumerate(entries):
        compiler.append(build_descriptor(entry, position))
    return compiler
