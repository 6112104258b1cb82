"""
Bridge context: the single object that owns a script state and everything
wired to it.

Tracks:
- The script state (stack and globals)
- Function and instance registries
- The provenance ledger and its reentrancy guard
- Per-instance method groups for exposed native objects

Independent bridges share nothing, so several can coexist (e.g. under test).
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import inspect
import logging

from ..config import BridgeConfig
from ..errors import BridgeError, CallResult
from ..state import ScriptState, Table
from ..types import (
    INSTANCE,
    INSTANCE_ID_FIELD,
    InstanceHandle,
    instance_path,
)
from .instances import InstanceRegistry
from .provenance import ProvenanceLedger
from .registry import FunctionEntry, FunctionRegistry, MemberRegistry
from .values import bindings_from_signature

logger = logging.getLogger(__name__)

DELETE_INSTANCE = "delete_instance"
CLASS_NAME_FIELD = "_class"


def method_name(handle: InstanceHandle, method: str) -> str:
    """Script name of a method on an exposed instance."""
    return f"{instance_path(handle.id)}.{method}"


def script_method(func: Callable = None, *, doc: str = "", exempt: bool = False,
                  undoable: bool = True):
    """
    Mark a method to be exposed on instances created through register_class.

    Usage:
        class Renderer:
            @script_method(doc="Set the sample rate modifier.")
            def set_sample_rate(self, rate: float) -> None:
                ...
    """
    def mark(f: Callable) -> Callable:
        f._script_method = {"doc": doc or (inspect.getdoc(f) or ""),
                            "exempt": exempt, "undoable": undoable}
        return f

    if func is not None:
        return mark(func)
    return mark


class ScriptBridge:
    """
    Exposes native functions to the script runtime with undo/redo provenance.

    Usage:
        bridge = ScriptBridge()
        bridge.register("set_i1", obj.set_i1, doc="Set i1.")
        bridge.exec("set_i1", 42)
        bridge.undo()
    """

    def __init__(self, config: Optional[BridgeConfig] = None, state: Optional[ScriptState] = None):
        self.config = config or BridgeConfig()
        self.state = state or ScriptState()
        self.instances = InstanceRegistry()
        self.registry = FunctionRegistry(self.state, max_params=self.config.max_params)
        self.provenance = ProvenanceLedger(
            self.registry.replay,
            enabled=self.config.provenance_enabled,
            reentry_exception=self.config.reentry_exception,
            history_limit=self.config.history_limit,
            formatter=self._format_record,
        )
        self.registry.ledger = self.provenance
        self._members: Dict[int, MemberRegistry] = {}
        self._register_provenance_functions()
        self._register_instance_functions()

    # --- Setup ---

    def _register_provenance_functions(self) -> None:
        reg = self.registry.register
        reg("provenance.undo", self.provenance.issue_undo,
            doc="Undoes last script call.", exempt=True)
        reg("provenance.redo", self.provenance.issue_redo,
            doc="Redoes the last undo call.", exempt=True)
        reg("provenance.enable", self.provenance.set_enabled,
            doc="Enable/Disable provenance. This is not an undo-able action "
                "and will clear your provenance history if disabled.",
            exempt=True)
        reg("provenance.clear", self.provenance.clear,
            doc="Clears all provenance and undo/redo stacks. This is not an "
                "undo-able action.",
            exempt=True)
        reg("provenance.enableReentryException", self.provenance.set_reentry_exception,
            doc="Enables/Disables the provenance reentry exception. Disable "
                "this to allow functions registered with the bridge to call "
                "other registered functions.",
            exempt=True)

    def _register_instance_functions(self) -> None:
        self.registry.register(
            DELETE_INSTANCE, self._delete_instance, [INSTANCE],
            doc="Deletes a class instance. Deleting an already deleted "
                "instance does nothing. This is not an undo-able action.",
            undoable=False,
            log_filter=lambda args: self.instances.is_live(args[0]),
        )

    def _format_record(self, name: str, params: Tuple[Any, ...]) -> str:
        entry = self.registry.get_function(name)
        if entry is None:
            return f"{name}({', '.join(repr(p) for p in params)})"
        return entry.format_call(params)

    # --- Registration API ---

    def register(self, name: str, implementation: Callable[..., Any],
                 params: Optional[Sequence[Any]] = None,
                 defaults: Optional[Sequence[Any]] = None,
                 doc: str = "", exempt: bool = False, **kwargs: Any) -> FunctionEntry:
        """Register a native callable; see FunctionRegistry.register."""
        return self.registry.register(name, implementation, params, defaults, doc, exempt, **kwargs)

    def unregister(self, name: str) -> None:
        self.registry.unregister(name)

    def set_exempt(self, name: str, exempt: bool) -> None:
        self.registry.set_exempt(name, exempt)

    def describe(self, name: str) -> Tuple[str, List[str]]:
        """Doc string and signature lines of a registered function."""
        return self.registry.describe(name)

    # --- Calls ---

    def exec(self, name: str, *args: Any) -> Any:
        """Call a registered function with script values; returns the first result."""
        return self.registry.invoke(name, *args)

    def call(self, name: str, *args: Any) -> Any:
        """Call a registered function with native values."""
        return self.registry.call_native(name, args)

    def pcall(self, name: str, *args: Any) -> CallResult:
        """Protected exec: errors are returned instead of raised."""
        try:
            return CallResult.success(self.exec(name, *args))
        except BridgeError as exc:
            return CallResult.failure(exc)

    def undo(self) -> None:
        self.exec("provenance.undo")

    def redo(self) -> None:
        self.exec("provenance.redo")

    # --- Instances ---

    def register_class(self, name: str, factory: Callable[..., Any], doc: str = "") -> FunctionEntry:
        """
        Expose a native class to script code as `<name>.new(...)`.

        The constructor's parameters are taken from `factory`. Each created
        object gets a handle and an instance table whose fields are the
        object's @script_method methods.
        """
        info = bindings_from_signature(factory, f"{name}.new")

        def construct(*args: Any) -> InstanceHandle:
            return self.expose(factory(*args), class_name=name)

        return self.registry.register(
            f"{name}.new", construct, info.params, info.defaults,
            doc=doc or f"Creates a new {name} instance.",
            exempt=True, returns=INSTANCE,
        )

    def expose(self, obj: Any, class_name: str = "") -> InstanceHandle:
        """Give a native object a handle and publish its script methods."""
        handle = self.instances.handle_for(obj)
        if not handle.is_sentinel:
            return handle
        handle = self.instances.register(obj)
        meta = Table({INSTANCE_ID_FIELD: handle.id, CLASS_NAME_FIELD: class_name or type(obj).__name__})
        self.state.set_global(instance_path(handle.id), Table(metatable=meta))

        members = MemberRegistry(self.registry)
        for attr in dir(type(obj)):
            options = getattr(getattr(type(obj), attr, None), "_script_method", None)
            if options is None:
                continue
            members.register(
                method_name(handle, attr), getattr(obj, attr),
                doc=options["doc"], exempt=options["exempt"],
                undoable=options["undoable"],
            )
        self._members[handle.id] = members
        logger.debug("exposed %s as %s with %d method(s)", type(obj).__name__, handle, len(members))
        return handle

    def _delete_instance(self, handle: InstanceHandle) -> None:
        if not self.instances.is_live(handle):
            return
        members = self._members.pop(handle.id, None)
        if members is not None:
            members.unregister_all()
        self.state.set_global(instance_path(handle.id), None)
        self.instances.retire(handle)

    def delete_instance(self, handle: InstanceHandle) -> None:
        """Delete an instance through the script runtime (recorded when live)."""
        self.call(DELETE_INSTANCE, handle)

    def resolve(self, handle: InstanceHandle) -> Optional[Any]:
        return self.instances.resolve(handle)

    def instance_handle(self, value: Any) -> InstanceHandle:
        """Handle for a script value (an instance table, marker table or nil)."""
        with self.state.balanced(0):
            self.state.push(value)
            try:
                return INSTANCE.get(self.state, -1)
            finally:
                self.state.pop(1)
