"""
scriptbridge - expose native Python functions to an embedded script runtime
with transactional undo/redo provenance.

This package provides:
- Marshaling: Type bindings between native values and the script stack
- Registry: Named native functions callable from scripts
- Instances: Stable handles for native objects exposed to scripts
- Provenance: Undo/redo history of script-driven calls

Usage:
    from scriptbridge import ScriptBridge

    class Model:
        def __init__(self):
            self.i1 = 0

        def set_i1(self, value: int) -> None:
            self.i1 = value

    model = Model()
    bridge = ScriptBridge()
    bridge.register("set_i1", model.set_i1, doc="Set i1.")

    bridge.exec("set_i1", 1)
    bridge.exec("set_i1", 2)
    bridge.undo()          # model.i1 == 1
    bridge.redo()          # model.i1 == 2
"""

__version__ = "0.1.0"

from .errors import (
    ErrorKind,
    BridgeError,
    MarshalTypeError,
    ArityError,
    ScriptSyntaxError,
    UnknownFunctionError,
    DuplicateNameError,
    SignatureTooLargeError,
    UnsupportedTypeError,
    ReentryError,
    InvalidUndoRedoError,
    InvalidUndoError,
    InvalidRedoError,
    UnknownHandleError,
    ConfigError,
    CallResult,
)

from .state import (
    ScriptState,
    Table,
    Userdata,
    ScriptFunction,
    table_from_python,
    table_to_python,
)

from .types import (
    TypeBinding,
    InstanceHandle,
    NO_INSTANCE,
    VOID,
    BOOL,
    INT,
    UINT,
    FLOAT,
    DOUBLE,
    STRING,
    TABLE,
    OPAQUE,
    INSTANCE,
    list_of,
    enum_of,
)

from .config import (
    BridgeConfig,
    CONFIG_ENV_VAR,
    DEFAULT_MAX_PARAMS,
)

from .runtime import (
    FunctionEntry,
    FunctionRegistry,
    InstanceRegistry,
    ProvenanceLedger,
    UndoRedoRecord,
    ScriptBridge,
    script_method,
    run_script,
)

__all__ = [
    "__version__",
    # Errors
    "ErrorKind",
    "BridgeError",
    "MarshalTypeError",
    "ArityError",
    "ScriptSyntaxError",
    "UnknownFunctionError",
    "DuplicateNameError",
    "SignatureTooLargeError",
    "UnsupportedTypeError",
    "ReentryError",
    "InvalidUndoRedoError",
    "InvalidUndoError",
    "InvalidRedoError",
    "UnknownHandleError",
    "ConfigError",
    "CallResult",
    # State
    "ScriptState",
    "Table",
    "Userdata",
    "ScriptFunction",
    "table_from_python",
    "table_to_python",
    # Types
    "TypeBinding",
    "InstanceHandle",
    "NO_INSTANCE",
    "VOID",
    "BOOL",
    "INT",
    "UINT",
    "FLOAT",
    "DOUBLE",
    "STRING",
    "TABLE",
    "OPAQUE",
    "INSTANCE",
    "list_of",
    "enum_of",
    # Config
    "BridgeConfig",
    "CONFIG_ENV_VAR",
    "DEFAULT_MAX_PARAMS",
    # Runtime
    "FunctionEntry",
    "FunctionRegistry",
    "InstanceRegistry",
    "ProvenanceLedger",
    "UndoRedoRecord",
    "ScriptBridge",
    "script_method",
    "run_script",
]
