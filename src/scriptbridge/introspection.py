"""
Introspection API for a bridge's registered functions.

Gives tools (editors, command palettes, the command line) programmatic access
to what a bridge exposes: names, signatures, defaults, last executed values,
documentation and provenance flags.

Usage:
    from scriptbridge.introspection import (
        get_api_reference,
        get_function_info,
        list_functions,
        describe_function,
    )

    info = get_function_info(bridge, "set_i1")
    print(info["signature"])  # "void set_i1(int)"

    for name in list_functions(bridge):
        print(name)
"""

from typing import Any, Dict, List, Optional
import json

from .types import INSTANCE_TABLE
from .runtime.context import ScriptBridge


def list_functions(bridge: ScriptBridge, include_instances: bool = False) -> List[str]:
    """
    Names of all registered functions, sorted.

    Per-instance methods live under the instance table and are left out
    unless `include_instances` is set.
    """
    prefix = f"{INSTANCE_TABLE}."
    return [
        name for name in bridge.registry.names()
        if include_instances or not name.startswith(prefix)
    ]


def get_function_info(bridge: ScriptBridge, name: str) -> Optional[Dict[str, Any]]:
    """
    Get information about a registered function.

    Args:
        bridge: The bridge to query
        name: Dotted script name

    Returns:
        Dictionary with signature, parameters, doc and provenance flags.
        Returns None if the function is not registered.
    """
    entry = bridge.registry.get_function(name)
    if entry is None:
        return None
    params = []
    for i, binding in enumerate(entry.params):
        params.append({
            "name": f"arg{i + 1}",
            "type": binding.describe(),
            "default": binding.format_value(entry.defaults[i]),
            "last": binding.format_value(entry.last_exec[i]),
        })
    return {
        "name": entry.name,
        "signature": entry.signature,
        "returns": entry.returns.describe(),
        "params": params,
        "doc": entry.doc,
        "exempt": entry.exempt,
        "undoable": entry.undoable,
    }


def get_api_reference(bridge: ScriptBridge, include_instances: bool = False) -> Dict[str, Any]:
    """
    Complete reference of a bridge's functions, suitable for JSON export.
    """
    from . import __version__

    return {
        "version": __version__,
        "functions": {
            name: get_function_info(bridge, name)
            for name in list_functions(bridge, include_instances)
        },
        "provenance": {
            "enabled": bridge.provenance.enabled,
            "reentry_exception": bridge.provenance.reentry_exception,
            "records": len(bridge.provenance),
            "cursor": bridge.provenance.cursor,
        },
    }


def describe_function(bridge: ScriptBridge, name: str) -> str:
    """
    Get a human-readable description of a function.

    Returns:
        Formatted description string
    """
    if name not in bridge.registry:
        return f"Unknown function: {name}"

    doc, lines = bridge.describe(name)
    out = [lines[0], f"  {doc or 'No description available'}"]
    out.extend(f"  {line}" for line in lines[1:])
    if bridge.registry.get(name).exempt:
        out.append("  (not recorded for undo/redo)")
    return "\n".join(out)


def get_api_as_json(bridge: ScriptBridge) -> str:
    """Get the API reference as a JSON string."""
    return json.dumps(get_api_reference(bridge), indent=2)
