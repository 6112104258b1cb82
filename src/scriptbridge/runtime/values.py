"""
Marshaling helpers for moving parameter lists across the script boundary.

Bindings are chosen once, when a function is registered, from the static
annotations of the native callable. After that every call reads and writes
the stack purely through those bindings.
"""

import collections.abc
import enum
import inspect
import typing
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..errors import error_unsupported_type
from ..types import (
    TypeBinding,
    InstanceHandle,
    VOID, BOOL, INT, DOUBLE, STRING, TABLE, INSTANCE,
    list_of, enum_of,
)
from ..state import ScriptState, Table


_SCALAR_BINDINGS = {
    bool: BOOL,
    int: INT,
    float: DOUBLE,
    str: STRING,
    Table: TABLE,
    InstanceHandle: INSTANCE,
}

_SEQUENCE_ORIGINS = (list, tuple, collections.abc.Sequence)


def binding_for(annotation: Any, where: str = "annotation") -> TypeBinding:
    """
    Select the binding for a static annotation.

    Accepts a TypeBinding unchanged, the scalar types bool/int/float/str,
    Table, InstanceHandle, Enum subclasses, List[T]/list[T]/Sequence[T] and
    None for void.
    """
    if isinstance(annotation, TypeBinding):
        return annotation
    if annotation is None or annotation is type(None):
        return VOID
    if annotation in _SCALAR_BINDINGS:
        return _SCALAR_BINDINGS[annotation]
    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        return enum_of(annotation)

    origin = typing.get_origin(annotation)
    if origin in _SEQUENCE_ORIGINS:
        args = typing.get_args(annotation)
        if len(args) == 1 or (origin is tuple and len(args) == 2 and args[1] is Ellipsis):
            return list_of(binding_for(args[0], where))
    raise error_unsupported_type(annotation, where)


@dataclass
class SignatureInfo:
    """Bindings and defaults derived from a native callable."""
    params: Tuple[TypeBinding, ...]
    returns: TypeBinding
    defaults: Tuple[Any, ...]


def bindings_from_signature(fn: Callable[..., Any], name: str = None) -> SignatureInfo:
    """
    Derive parameter/return bindings and defaults from a callable.

    Parameters without a native default take their binding's default().
    Bound methods exclude `self` automatically; classes are read from their
    constructor.
    """
    label = name or getattr(fn, "__name__", repr(fn))
    sig = inspect.signature(fn)
    try:
        hints = typing.get_type_hints(fn.__init__ if inspect.isclass(fn) else fn)
    except (NameError, TypeError):
        hints = {}

    params: List[TypeBinding] = []
    defaults: List[Any] = []
    for param in sig.parameters.values():
        if param.kind not in (inspect.Parameter.POSITIONAL_ONLY,
                              inspect.Parameter.POSITIONAL_OR_KEYWORD):
            raise error_unsupported_type(param.kind.description, f"parameter '{param.name}' of '{label}'")
        annotation = hints.get(param.name, param.annotation)
        if annotation is inspect.Parameter.empty:
            raise error_unsupported_type(
                "missing annotation", f"parameter '{param.name}' of '{label}'")
        binding = binding_for(annotation, f"parameter '{param.name}' of '{label}'")
        params.append(binding)
        defaults.append(binding.default() if param.default is inspect.Parameter.empty
                        else param.default)

    ret = hints.get("return", sig.return_annotation)
    returns = VOID if ret is inspect.Signature.empty else binding_for(ret, f"return of '{label}'")
    return SignatureInfo(tuple(params), returns, tuple(defaults))


def pull_params(state: ScriptState, bindings: Sequence[TypeBinding], first: int = 1) -> Tuple[Any, ...]:
    """Read one native value per binding starting at stack position `first`."""
    return tuple(b.get(state, first + i) for i, b in enumerate(bindings))


def push_params(state: ScriptState, bindings: Sequence[TypeBinding], values: Sequence[Any]) -> int:
    """Push native values through their bindings; returns the count pushed."""
    start = state.top()
    for binding, value in zip(bindings, values):
        binding.push(state, value)
    return state.top() - start


def to_script(state: ScriptState, binding: TypeBinding, value: Any) -> Any:
    """Convert one native value to its script representation."""
    with state.balanced(0):
        binding.push(state, value)
        result = state.get(-1)
        state.pop(1)
    return result


def format_params(bindings: Sequence[TypeBinding], values: Optional[Sequence[Any]]) -> str:
    """Render a parameter list as `a, b, c` using each binding's formatter."""
    if values is None:
        return ""
    return ", ".join(b.format_value(v) for b, v in zip(bindings, values))


def format_call(name: str, bindings: Sequence[TypeBinding], values: Optional[Sequence[Any]]) -> str:
    """Render a call as `name(a, b, c)`."""
    return f"{name}({format_params(bindings, values)})"


def format_signature(name: str, params: Sequence[TypeBinding], returns: TypeBinding) -> str:
    """Render a signature as `ret name(type, type)`."""
    return f"{returns.describe()} {name}({', '.join(p.describe() for p in params)})"
