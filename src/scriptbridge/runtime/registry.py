"""
Function registry for the script bridge.

Maps dotted script names to native callables. Each registered function is
installed in the script globals as a ScriptFunction that reads its arguments
off the stack through the entry's bindings, runs the native callable, and
pushes the result back.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..errors import (
    BridgeError,
    error_arity,
    error_bad_return,
    error_duplicate_name,
    error_signature_too_large,
    error_unknown_function,
)
from ..config import DEFAULT_MAX_PARAMS
from ..state import ScriptFunction, ScriptState, type_name_of
from ..types import TypeBinding, VOID, is_void
from .values import (
    binding_for,
    bindings_from_signature,
    format_call,
    format_params,
    format_signature,
    pull_params,
    push_params,
    to_script,
)

logger = logging.getLogger(__name__)


@dataclass
class FunctionEntry:
    """
    A registered native function with its bindings and parameter snapshots.
    """
    name: str
    implementation: Callable[..., Any]
    params: Tuple[TypeBinding, ...]
    returns: TypeBinding
    defaults: Tuple[Any, ...]
    doc: str = ""
    exempt: bool = False
    undoable: bool = True
    log_filter: Optional[Callable[[Tuple[Any, ...]], bool]] = None
    last_exec: Tuple[Any, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.last_exec:
            self.last_exec = self.snapshot(self.defaults)

    @property
    def arity(self) -> int:
        return len(self.params)

    @property
    def signature(self) -> str:
        """Signature string such as `void set_i1(int)`."""
        return format_signature(self.name, self.params, self.returns)

    def format_call(self, values: Sequence[Any]) -> str:
        return format_call(self.name, self.params, values)

    def snapshot(self, values: Sequence[Any]) -> Tuple[Any, ...]:
        """Parameter values copied so native code cannot mutate them later."""
        return tuple(b.snapshot(v) for b, v in zip(self.params, values))


class FunctionRegistry:
    """
    Registry of script-callable native functions.

    The optional `ledger` is consulted around every call to decide whether it
    is recorded for undo/redo.
    """

    def __init__(self, state: ScriptState, max_params: int = DEFAULT_MAX_PARAMS,
                 ledger=None):
        self.state = state
        self.max_params = max_params
        self.ledger = ledger
        self._functions: Dict[str, FunctionEntry] = {}

    # --- Lookup ---

    def get(self, name: str) -> FunctionEntry:
        """Look up an entry, raising UnknownFunctionError if absent."""
        entry = self._functions.get(name)
        if entry is None:
            raise error_unknown_function(name)
        return entry

    def get_function(self, name: str) -> Optional[FunctionEntry]:
        """Look up an entry by name."""
        return self._functions.get(name)

    def names(self) -> List[str]:
        return sorted(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def __iter__(self):
        return iter(self._functions.values())

    # --- Registration ---

    def register(
        self,
        name: str,
        implementation: Callable[..., Any],
        params: Optional[Sequence[Any]] = None,
        defaults: Optional[Sequence[Any]] = None,
        doc: str = "",
        exempt: bool = False,
        *,
        returns: Any = None,
        undoable: bool = True,
        log_filter: Optional[Callable[[Tuple[Any, ...]], bool]] = None,
    ) -> FunctionEntry:
        """
        Register a native callable under a dotted script name.

        Args:
            name: Script name, e.g. "renderer.set_rotation"
            implementation: Free function or bound method
            params: Explicit parameter bindings (or annotations); derived from
                the callable's annotations when omitted
            defaults: Default parameter values; derived when omitted
            doc: Description shown by describe()
            exempt: Exclude calls from provenance
            returns: Explicit return binding (with explicit params only)
            undoable: False records calls with a no-op undo
            log_filter: Pre-call predicate on the arguments; False skips recording

        Returns:
            The new FunctionEntry
        """
        if name in self._functions:
            raise error_duplicate_name(name)
        existing = self.state.get_global(name)
        if existing is not None:
            raise error_duplicate_name(
                name, hint=f"the script global '{name}' already holds a {type_name_of(existing)}")

        if params is None:
            info = bindings_from_signature(implementation, name)
            param_bindings = info.params
            return_binding = info.returns if returns is None else binding_for(returns, f"return of '{name}'")
            native_defaults = info.defaults
        else:
            param_bindings = tuple(binding_for(p, f"parameter {i + 1} of '{name}'")
                                   for i, p in enumerate(params))
            return_binding = VOID if returns is None else binding_for(returns, f"return of '{name}'")
            native_defaults = tuple(b.default() for b in param_bindings)

        if len(param_bindings) > self.max_params:
            raise error_signature_too_large(name, len(param_bindings), self.max_params)

        if defaults is None:
            defaults = native_defaults
        elif len(defaults) != len(param_bindings):
            raise error_arity(f"{name} defaults", len(param_bindings), len(defaults))

        entry = FunctionEntry(
            name=name,
            implementation=implementation,
            params=param_bindings,
            returns=return_binding,
            defaults=tuple(defaults),
            doc=doc,
            exempt=exempt,
            undoable=undoable,
            log_filter=log_filter,
        )

        try:
            self.state.set_global(name, ScriptFunction(name, self._make_dispatcher(entry)))
        except TypeError as exc:
            raise error_duplicate_name(name, hint=str(exc)) from exc

        self._functions[name] = entry
        logger.debug("registered %s", entry.signature)
        return entry

    def unregister(self, name: str) -> None:
        """Remove a function from the registry and the script globals."""
        self.get(name)
        del self._functions[name]
        self.state.set_global(name, None)
        logger.debug("unregistered %s", name)

    def set_exempt(self, name: str, exempt: bool) -> None:
        """Include or exclude a function from provenance for later calls."""
        self.get(name).exempt = exempt

    # --- Calls ---

    def _make_dispatcher(self, entry: FunctionEntry) -> Callable[[ScriptState], int]:
        def dispatch(state: ScriptState) -> int:
            return self._dispatch(entry, state)
        return dispatch

    def _dispatch(self, entry: FunctionEntry, state: ScriptState) -> int:
        nargs = state.top()
        if nargs != entry.arity:
            raise error_arity(entry.name, entry.arity, nargs)
        args = pull_params(state, entry.params)
        value = self._execute(entry, args, state)
        if is_void(entry.returns):
            return 0
        with state.balanced(1):
            state.push(value)
        return 1

    def _execute(self, entry: FunctionEntry, args: Tuple[Any, ...], state: ScriptState) -> Any:
        # Recorded parameters must not alias the objects handed to native code.
        snapshot = entry.snapshot(args)
        ledger = self.ledger
        record = ledger is not None and ledger.admit(entry, args)
        if record:
            with ledger.guard.logging():
                result = entry.implementation(*args)
        else:
            result = entry.implementation(*args)
        value = self._convert_result(entry, state, result)
        if record:
            ledger.notify_call(entry, snapshot)
        entry.last_exec = snapshot
        return value

    def _convert_result(self, entry: FunctionEntry, state: ScriptState, result: Any) -> Any:
        """Script representation of a native result, checked before the call is committed."""
        if is_void(entry.returns):
            return None
        top = state.top()
        try:
            return to_script(state, entry.returns, result)
        except BridgeError:
            state.set_top(top)
            raise
        except (TypeError, ValueError, OverflowError, AttributeError) as exc:
            state.set_top(top)
            raise error_bad_return(entry.name, entry.returns.name, result) from exc

    def invoke(self, name: str, *raw_args: Any) -> Any:
        """
        Call a registered function with script values, as script code would.

        Returns the script representation of the result, or None for void.
        """
        self.get(name)
        results = self.state.call(name, *raw_args)
        return results[0] if results else None

    def call_native(self, name: str, args: Sequence[Any]) -> Any:
        """
        Call a registered function with native values through the runtime.

        Arguments are pushed through the entry's bindings, so the call takes
        the same path as one issued from script code.
        """
        entry = self.get(name)
        if len(args) != entry.arity:
            raise error_arity(name, entry.arity, len(args))
        top = self.state.top()
        try:
            nargs = push_params(self.state, entry.params, args)
        except Exception:
            self.state.set_top(top)
            raise
        results = self.state.call_stack(name, nargs)
        return results[0] if results else None

    def replay(self, name: str, params: Sequence[Any]) -> Any:
        """Re-issue a recorded call with a fresh copy of its parameters."""
        return self.call_native(name, self.get(name).snapshot(params))

    # --- Description ---

    def describe(self, name: str) -> Tuple[str, List[str]]:
        """
        Documentation and signature lines for a function.

        The first line is the full signature; one line per parameter follows
        with its default and last executed value.
        """
        entry = self.get(name)
        lines = [entry.signature]
        for i, binding in enumerate(entry.params):
            default = binding.format_value(entry.defaults[i])
            last = binding.format_value(entry.last_exec[i])
            lines.append(f"arg{i + 1}: {binding.describe()} = {default} (last: {last})")
        return entry.doc, lines

    def format_last_exec(self, name: str) -> str:
        entry = self.get(name)
        return format_params(entry.params, entry.last_exec)


class MemberRegistry:
    """
    Registers a group of functions and removes them together.

    Typically used for the bound methods of one native object.
    """

    def __init__(self, registry: FunctionRegistry):
        self.registry = registry
        self._names: List[str] = []

    def register(self, name: str, implementation: Callable[..., Any], *args: Any,
                 **kwargs: Any) -> FunctionEntry:
        entry = self.registry.register(name, implementation, *args, **kwargs)
        self._names.append(name)
        return entry

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def unregister_all(self) -> None:
        """Unregister every function this group registered that still exists."""
        for name in reversed(self._names):
            if name in self.registry:
                self.registry.unregister(name)
        self._names.clear()

    def __len__(self) -> int:
        return len(self._names)
