"""
Script state model for the bridge.

Provides the black-box surface the marshaling layer reads and writes:
- ScriptState: value stack with call frames, globals, call-by-name
- Table: associative table whose sequence part is keyed 1, 2, 3, ...
- Userdata: box for opaque native references
- ScriptFunction: native function callable from script code

Values on the stack are restricted to the runtime's dynamic types: nil
(None), boolean, number (a single float representation), string, table,
userdata and function.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from .errors import error_number_overflow, error_unknown_function, error_unpushable


def _normalize_key(key: Any) -> Any:
    """Integral float keys address the same slot as their int value."""
    if isinstance(key, float) and key.is_integer():
        return int(key)
    return key


def to_script_value(value: Any) -> Any:
    """Convert a Python value to the runtime's representation."""
    if value is None or isinstance(value, (bool, str, Table, Userdata, ScriptFunction)):
        return value
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            raise error_number_overflow(value) from None
    raise error_unpushable(value)


class Table:
    """
    A script-side table.

    Reading a missing key yields None (nil). Assigning None removes the key.
    """

    def __init__(self, items: Optional[Dict[Any, Any]] = None, metatable: "Table" = None):
        self._data: Dict[Any, Any] = {}
        self.metatable = metatable
        for key, value in (items or {}).items():
            self[key] = value

    @classmethod
    def from_sequence(cls, values: Iterable[Any]) -> "Table":
        """Build a table with values at keys 1..n."""
        table = cls()
        for index, value in enumerate(values, start=1):
            table[index] = value
        return table

    def __getitem__(self, key: Any) -> Any:
        return self._data.get(_normalize_key(key))

    def __setitem__(self, key: Any, value: Any) -> None:
        if key is None:
            raise KeyError("table index is nil")
        key = _normalize_key(key)
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = to_script_value(value)

    def __delitem__(self, key: Any) -> None:
        self._data.pop(_normalize_key(key), None)

    def __contains__(self, key: Any) -> bool:
        return _normalize_key(key) in self._data

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __len__(self) -> int:
        """Length of the contiguous sequence part (the border)."""
        n = 0
        while (n + 1) in self._data:
            n += 1
        return n

    def get(self, key: Any, default: Any = None) -> Any:
        return self._data.get(_normalize_key(key), default)

    def keys(self):
        return self._data.keys()

    def items(self):
        return self._data.items()

    def copy(self, _memo: Optional[Dict[int, "Table"]] = None) -> "Table":
        """
        Copy this table and every table nested in it.

        Metatables and non-table values are shared; cycles are preserved.
        """
        memo = {} if _memo is None else _memo
        if id(self) in memo:
            return memo[id(self)]
        clone = Table(metatable=self.metatable)
        memo[id(self)] = clone
        for key, value in self._data.items():
            clone._data[key] = value.copy(memo) if isinstance(value, Table) else value
        return clone

    def sequence(self) -> List[Any]:
        """Values at keys 1, 2, 3, ... up to the first missing key."""
        return [self._data[i] for i in range(1, len(self) + 1)]

    def __repr__(self) -> str:
        return f"Table({self._data!r})"


class Userdata:
    """Opaque box carrying a native reference through the script runtime."""

    __slots__ = ("value", "metatable")

    def __init__(self, value: Any, metatable: Table = None):
        self.value = value
        self.metatable = metatable

    def __repr__(self) -> str:
        return f"Userdata({type(self.value).__name__})"


@dataclass
class ScriptFunction:
    """
    A native function visible to script code.

    `fn` receives the ScriptState with its arguments at positions 1..top()
    and returns the number of results it pushed.
    """
    name: str
    fn: Callable[["ScriptState"], int]

    def __repr__(self) -> str:
        return f"ScriptFunction({self.name!r})"


def type_name_of(value: Any) -> str:
    """Dynamic type name of a script value."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Table):
        return "table"
    if isinstance(value, Userdata):
        return "userdata"
    if isinstance(value, ScriptFunction):
        return "function"
    return type(value).__name__


class ScriptState:
    """
    Stack-based calling convention of the embedded runtime.

    Positions are 1-based relative to the current call frame; negative
    positions count back from the top (-1 is the top). Reading a position
    outside the frame yields None.
    """

    def __init__(self):
        self._stack: List[Any] = []
        self._base: int = 0
        self.globals = Table()
        self.call_depth: int = 0

    # --- Stack access ---

    def push(self, value: Any) -> None:
        """Push a value onto the top of the stack."""
        self._stack.append(to_script_value(value))

    def _index(self, pos: int) -> Optional[int]:
        if pos > 0:
            index = self._base + pos - 1
        elif pos < 0:
            index = len(self._stack) + pos
        else:
            return None
        if self._base <= index < len(self._stack):
            return index
        return None

    def get(self, pos: int) -> Any:
        """Read the value at a stack position (None if out of range)."""
        index = self._index(pos)
        return None if index is None else self._stack[index]

    def type_name(self, pos: int) -> str:
        return type_name_of(self.get(pos))

    def absolute(self, pos: int) -> int:
        """Convert a relative position to a frame-absolute one."""
        if pos < 0:
            return self.top() + pos + 1
        return pos

    def top(self) -> int:
        """Number of values in the current frame."""
        return len(self._stack) - self._base

    def set_top(self, n: int) -> None:
        """Truncate or nil-extend the current frame to exactly n values."""
        if n < 0:
            raise ValueError("stack top cannot be negative")
        current = self.top()
        if n < current:
            del self._stack[self._base + n:]
        else:
            self._stack.extend([None] * (n - current))

    def pop(self, n: int = 1) -> None:
        self.set_top(max(0, self.top() - n))

    @contextmanager
    def balanced(self, delta: int = 0):
        """
        Assert the stack height changes by exactly `delta` over the block.

        Usage:
            with state.balanced(1):
                binding.push(state, value)
        """
        start = self.top()
        yield self
        if self.top() != start + delta:
            raise RuntimeError(f"unbalanced stack: expected {start + delta}, got {self.top()}")

    # --- Globals ---

    def get_global(self, path: str) -> Any:
        """Look up a dotted path in the globals table."""
        current: Any = self.globals
        for part in path.split("."):
            if not isinstance(current, Table):
                return None
            current = current[part]
        return current

    def set_global(self, path: str, value: Any) -> None:
        """
        Assign a dotted path, creating intermediate tables.

        Raises TypeError when an intermediate segment holds a non-table value.
        """
        parts = path.split(".")
        current = self.globals
        for part in parts[:-1]:
            child = current[part]
            if child is None:
                if value is None:
                    return
                child = Table()
                current[part] = child
            elif not isinstance(child, Table):
                raise TypeError(f"'{part}' in '{path}' is a {type_name_of(child)}, not a table")
            current = child
        current[parts[-1]] = value

    # --- Calls ---

    def _resolve_function(self, target: Union[str, ScriptFunction]) -> ScriptFunction:
        fn = self.get_global(target) if isinstance(target, str) else target
        if not isinstance(fn, ScriptFunction):
            raise error_unknown_function(target if isinstance(target, str) else repr(target))
        return fn

    def call_stack(self, target: Union[str, ScriptFunction], nargs: int) -> List[Any]:
        """
        Call a function with the top `nargs` values as its arguments.

        The arguments are consumed; the results are returned as a list and the
        caller's frame is restored to its height before the arguments.
        """
        if nargs > self.top():
            raise ValueError(f"call needs {nargs} arguments, frame holds {self.top()}")
        fn = self._resolve_function(target)
        saved_base = self._base
        frame_start = len(self._stack) - nargs
        self._base = frame_start
        self.call_depth += 1
        try:
            nresults = fn.fn(self) or 0
            results = self._stack[len(self._stack) - nresults:] if nresults else []
        finally:
            del self._stack[frame_start:]
            self._base = saved_base
            self.call_depth -= 1
        return list(results)

    def call(self, target: Union[str, ScriptFunction], *args: Any) -> List[Any]:
        """Call a function by dotted name (or reference) with the given values."""
        fn = self._resolve_function(target)
        top = self.top()
        try:
            for arg in args:
                self.push(arg)
        except Exception:
            self.set_top(top)
            raise
        return self.call_stack(fn, len(args))


def table_from_python(data: Any) -> Any:
    """Convert nested Python containers into script tables."""
    if isinstance(data, (list, tuple)):
        return Table.from_sequence(table_from_python(v) for v in data)
    if isinstance(data, dict):
        return Table({k: table_from_python(v) for k, v in data.items()})
    return data


def table_to_python(value: Any) -> Any:
    """Convert script tables back into Python lists (sequences) or dicts."""
    if not isinstance(value, Table):
        return value
    keys = list(value.keys())
    n = len(value)
    if n == len(keys):
        return [table_to_python(v) for v in value.sequence()]
    return {k: table_to_python(v) for k, v in value.items()}

