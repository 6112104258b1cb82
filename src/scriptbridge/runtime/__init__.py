"""
Bridge runtime - native function dispatch with undo/redo provenance.

This module provides:
- FunctionRegistry: Registered native functions and their stack dispatchers
- InstanceRegistry: Stable handles for native objects exposed to scripts
- ProvenanceLedger: Undo/redo history with its reentrancy guard
- ScriptBridge: Context object wiring all of the above to one script state
- run_script: Line-oriented call script runner
"""

from .values import (
    SignatureInfo,
    binding_for,
    bindings_from_signature,
    pull_params,
    push_params,
    to_script,
    format_params,
    format_call,
    format_signature,
)

from .instances import (
    InstanceRegistry,
)

from .provenance import (
    LedgerState,
    ReentrancyGuard,
    NOOP_UNDO,
    UndoRedoRecord,
    ProvenanceLedger,
)

from .registry import (
    FunctionEntry,
    FunctionRegistry,
    MemberRegistry,
)

from .context import (
    DELETE_INSTANCE,
    ScriptBridge,
    method_name,
    script_method,
)

from .script import (
    ScriptCall,
    ScriptResult,
    parse_call,
    parse_script,
    run_script,
)

__all__ = [
    # Values
    "SignatureInfo",
    "binding_for",
    "bindings_from_signature",
    "pull_params",
    "push_params",
    "to_script",
    "format_params",
    "format_call",
    "format_signature",
    # Instances
    "InstanceRegistry",
    # Provenance
    "LedgerState",
    "ReentrancyGuard",
    "NOOP_UNDO",
    "UndoRedoRecord",
    "ProvenanceLedger",
    # Registry
    "FunctionEntry",
    "FunctionRegistry",
    "MemberRegistry",
    # Context
    "DELETE_INSTANCE",
    "ScriptBridge",
    "method_name",
    "script_method",
    # Scripts
    "ScriptCall",
    "ScriptResult",
    "parse_call",
    "parse_script",
    "run_script",
]
