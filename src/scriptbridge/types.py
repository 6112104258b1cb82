"""
Type bindings between native values and the script stack.

Each binding converts one native type:
    get(state, pos)   read and validate the stack value at `pos`
    push(state, v)    push the script representation of `v`
    default()         the value a fresh parameter starts with
    describe()        type name used in signatures

Numbers travel through the runtime as a single float representation and are
narrowed here: `int` truncates toward zero, `unsigned int` rejects negatives,
`float` rounds to 32-bit precision. Booleans are never accepted as numbers.

Composite bindings (list<T>) recurse over an element binding.
"""

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Type as PyType

from .errors import error_bad_value, error_wrong_type
from .state import ScriptState, Table, Userdata, type_name_of


# Marker field on the table that stands in for a deleted or absent instance.
DEFAULT_INSTANCE_FIELD = "_DefaultInstance_"
# Metatable field holding an instance's global id.
INSTANCE_ID_FIELD = "_instance_id"
# Globals table holding live instance tables.
INSTANCE_TABLE = "_instances"
INSTANCE_PREFIX = "inst_"


def instance_path(handle_id: int) -> str:
    """Dotted globals path of an instance table."""
    return f"{INSTANCE_TABLE}.{INSTANCE_PREFIX}{handle_id}"


@dataclass(frozen=True, order=True)
class InstanceHandle:
    """
    Stable integer handle for a native object exposed to script code.

    Handle -1 is reserved as the "no instance / already deleted" sentinel.
    """
    id: int

    @property
    def is_sentinel(self) -> bool:
        return self.id == NO_INSTANCE_ID

    def __str__(self) -> str:
        return instance_path(self.id)


NO_INSTANCE_ID = -1
NO_INSTANCE = InstanceHandle(NO_INSTANCE_ID)


# =============================================================================
# Binding Classes
# =============================================================================

@dataclass(frozen=True)
class TypeBinding(ABC):
    """Base class for all type bindings."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The type name for signatures and errors."""
        pass

    @abstractmethod
    def get(self, state: ScriptState, pos: int) -> Any:
        """Read the native value at a stack position."""
        pass

    @abstractmethod
    def push(self, state: ScriptState, value: Any) -> None:
        """Push a native value onto the stack."""
        pass

    @abstractmethod
    def default(self) -> Any:
        """Default native value."""
        pass

    def describe(self) -> str:
        return self.name

    def format_value(self, value: Any) -> str:
        """Human-readable rendering of a native value."""
        return str(value)

    def snapshot(self, value: Any) -> Any:
        """Copy of a native value that later native mutation cannot reach."""
        return value

    def _check(self, state: ScriptState, pos: int, expected: str) -> Any:
        value = state.get(pos)
        actual = type_name_of(value)
        if actual != expected:
            raise error_wrong_type(self.name, actual, state.absolute(pos))
        return value

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class VoidBinding(TypeBinding):
    """Return type of functions that produce nothing; pushes no value."""

    @property
    def name(self) -> str:
        return "void"

    def get(self, state: ScriptState, pos: int) -> Any:
        return None

    def push(self, state: ScriptState, value: Any) -> None:
        pass

    def default(self) -> Any:
        return None


@dataclass(frozen=True)
class BoolBinding(TypeBinding):
    """Strict boolean; numbers and strings are rejected."""

    @property
    def name(self) -> str:
        return "bool"

    def get(self, state: ScriptState, pos: int) -> bool:
        return bool(self._check(state, pos, "boolean"))

    def push(self, state: ScriptState, value: bool) -> None:
        state.push(bool(value))

    def default(self) -> bool:
        return False

    def format_value(self, value: Any) -> str:
        return "true" if value else "false"


@dataclass(frozen=True)
class IntBinding(TypeBinding):
    """Integer narrowed from the runtime number (truncating toward zero)."""
    _name: str = "int"
    signed: bool = True

    @property
    def name(self) -> str:
        return self._name

    def get(self, state: ScriptState, pos: int) -> int:
        number = self._check(state, pos, "number")
        if number != number or number in (float("inf"), float("-inf")):
            raise error_bad_value(self.name, number, state.absolute(pos))
        value = int(number)
        if not self.signed and value < 0:
            raise error_bad_value(self.name, number, state.absolute(pos),
                                  hint="value must be non-negative")
        return value

    def push(self, state: ScriptState, value: int) -> None:
        state.push(int(value))

    def default(self) -> int:
        return 0


@dataclass(frozen=True)
class FloatBinding(TypeBinding):
    """Floating point; single precision when `bits` is 32."""
    _name: str = "double"
    bits: int = 64
    precision: int = 4

    @property
    def name(self) -> str:
        return self._name

    def _narrow(self, value: float) -> float:
        if self.bits == 32:
            return struct.unpack("f", struct.pack("f", value))[0]
        return float(value)

    def get(self, state: ScriptState, pos: int) -> float:
        return self._narrow(self._check(state, pos, "number"))

    def push(self, state: ScriptState, value: float) -> None:
        state.push(float(value))

    def default(self) -> float:
        return 0.0

    def format_value(self, value: Any) -> str:
        return f"{value:.{self.precision}g}"


@dataclass(frozen=True)
class StringBinding(TypeBinding):
    """Strict string; numbers are not converted."""

    @property
    def name(self) -> str:
        return "string"

    def get(self, state: ScriptState, pos: int) -> str:
        return self._check(state, pos, "string")

    def push(self, state: ScriptState, value: str) -> None:
        state.push(str(value))

    def default(self) -> str:
        return ""

    def format_value(self, value: Any) -> str:
        return f"'{value}'"


@dataclass(frozen=True)
class TableBinding(TypeBinding):
    """Passes a script table through untouched."""

    @property
    def name(self) -> str:
        return "table"

    def get(self, state: ScriptState, pos: int) -> Table:
        return self._check(state, pos, "table")

    def push(self, state: ScriptState, value: Table) -> None:
        state.push(value)

    def default(self) -> Table:
        return Table()

    def snapshot(self, value: Table) -> Table:
        return value.copy() if isinstance(value, Table) else value

    def format_value(self, value: Any) -> str:
        return f"table with {len(list(value.keys()))} entries"


@dataclass(frozen=True)
class SequenceBinding(TypeBinding):
    """
    list<T> over an element binding.

    Reading walks keys 1, 2, 3, ... and stops at the first missing key, so a
    sparse table truncates to its contiguous prefix.
    """
    element: TypeBinding

    @property
    def name(self) -> str:
        return f"list<{self.element.name}>"

    def get(self, state: ScriptState, pos: int) -> List[Any]:
        table = self._check(state, pos, "table")
        result = []
        index = 1
        while True:
            item = table[index]
            if item is None:
                break
            state.push(item)
            try:
                result.append(self.element.get(state, -1))
            finally:
                state.pop(1)
            index += 1
        return result

    def push(self, state: ScriptState, value: List[Any]) -> None:
        table = Table()
        for index, item in enumerate(value, start=1):
            with state.balanced(0):
                self.element.push(state, item)
                table[index] = state.get(-1)
                state.pop(1)
        state.push(table)

    def default(self) -> List[Any]:
        return []

    def snapshot(self, value: List[Any]) -> List[Any]:
        return [self.element.snapshot(v) for v in value]

    def format_value(self, value: Any) -> str:
        return "{" + ", ".join(self.element.format_value(v) for v in value) + "}"


@dataclass(frozen=True)
class EnumBinding(TypeBinding):
    """Enumeration passed as its integer value."""
    enum_type: PyType[Enum]

    @property
    def name(self) -> str:
        return self.enum_type.__name__

    def get(self, state: ScriptState, pos: int) -> Enum:
        number = self._check(state, pos, "number")
        try:
            return self.enum_type(int(number))
        except (ValueError, OverflowError):
            raise error_bad_value(self.name, number, state.absolute(pos)) from None

    def push(self, state: ScriptState, value: Enum) -> None:
        state.push(float(value.value))

    def default(self) -> Enum:
        try:
            return self.enum_type(0)
        except ValueError:
            return next(iter(self.enum_type))

    def format_value(self, value: Any) -> str:
        return str(int(value.value))


@dataclass(frozen=True)
class OpaqueBinding(TypeBinding):
    """Arbitrary native reference boxed as userdata."""

    @property
    def name(self) -> str:
        return "opaque"

    def get(self, state: ScriptState, pos: int) -> Any:
        return self._check(state, pos, "userdata").value

    def push(self, state: ScriptState, value: Any) -> None:
        state.push(Userdata(value))

    def default(self) -> Any:
        return None

    def format_value(self, value: Any) -> str:
        return f"<{type(value).__name__}>"


@dataclass(frozen=True)
class InstanceBinding(TypeBinding):
    """
    Instance handle, represented in script code by the instance's table.

    nil and the default-marker table read as NO_INSTANCE, so deleting an
    already deleted instance is harmless. Writing a sentinel or retired handle
    produces a fresh marker table.
    """

    @property
    def name(self) -> str:
        return "instance"

    def get(self, state: ScriptState, pos: int) -> InstanceHandle:
        value = state.get(pos)
        if value is None:
            return NO_INSTANCE
        table = self._check(state, pos, "table")
        if table[DEFAULT_INSTANCE_FIELD]:
            return NO_INSTANCE
        meta = table.metatable
        handle_id = meta[INSTANCE_ID_FIELD] if isinstance(meta, Table) else None
        if handle_id is None:
            raise error_bad_value(self.name, table, state.absolute(pos),
                                  hint="table is not an instance table")
        return InstanceHandle(int(handle_id))

    def push(self, state: ScriptState, value: InstanceHandle) -> None:
        table = None
        if value is not None and not value.is_sentinel:
            table = state.get_global(instance_path(value.id))
        if not isinstance(table, Table):
            table = Table({DEFAULT_INSTANCE_FIELD: True})
        state.push(table)

    def default(self) -> InstanceHandle:
        return NO_INSTANCE

    def format_value(self, value: Any) -> str:
        return str(value)


# =============================================================================
# Built-in Binding Instances
# =============================================================================

VOID = VoidBinding()
BOOL = BoolBinding()
INT = IntBinding()
UINT = IntBinding("unsigned int", signed=False)
FLOAT = FloatBinding("float", bits=32, precision=2)
DOUBLE = FloatBinding("double", bits=64, precision=4)
STRING = StringBinding()
TABLE = TableBinding()
OPAQUE = OpaqueBinding()
INSTANCE = InstanceBinding()


def list_of(element: TypeBinding) -> SequenceBinding:
    """Create a list<T> binding."""
    return SequenceBinding(element)


def enum_of(enum_type: PyType[Enum]) -> EnumBinding:
    """Create an enumeration binding."""
    return EnumBinding(enum_type)


def is_void(binding: Optional[TypeBinding]) -> bool:
    return binding is None or isinstance(binding, VoidBinding)
