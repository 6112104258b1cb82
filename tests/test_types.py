"""
Tests for type bindings and signature-derived marshaling.
"""

import pytest
from enum import Enum
from typing import List, Sequence

from scriptbridge.errors import MarshalTypeError, UnsupportedTypeError
from scriptbridge.state import ScriptState, Table, Userdata
from scriptbridge.types import (
    BOOL, DOUBLE, FLOAT, INSTANCE, INT, OPAQUE, STRING, TABLE, UINT, VOID,
    DEFAULT_INSTANCE_FIELD, INSTANCE_ID_FIELD,
    InstanceHandle, NO_INSTANCE,
    enum_of, instance_path, list_of,
)
from scriptbridge.runtime.values import (
    binding_for,
    bindings_from_signature,
    format_signature,
    pull_params,
    push_params,
    to_script,
)


class Mode(Enum):
    OFF = 0
    ON = 1


def read(binding, value):
    """Push a script value and read it back through a binding."""
    state = ScriptState()
    state.push(value)
    result = binding.get(state, 1)
    assert state.top() == 1
    return result


# --- Scalar Binding Tests ---

class TestScalarBindings:
    """Test numeric, boolean and string bindings."""

    def test_int_truncates(self):
        """int narrows toward zero."""
        assert read(INT, 3.7) == 3
        assert read(INT, -3.7) == -3
        assert isinstance(read(INT, 2.0), int)

    def test_int_rejects_non_numbers(self):
        """Strings and booleans are not numbers."""
        with pytest.raises(MarshalTypeError):
            read(INT, "3")
        with pytest.raises(MarshalTypeError):
            read(INT, True)
        with pytest.raises(MarshalTypeError):
            read(INT, None)

    def test_int_rejects_nan(self):
        """NaN cannot be narrowed to an integer."""
        with pytest.raises(MarshalTypeError):
            read(INT, float("nan"))

    def test_unsigned_rejects_negative(self):
        """unsigned int rejects negative numbers."""
        assert read(UINT, 5) == 5
        with pytest.raises(MarshalTypeError):
            read(UINT, -1)

    def test_float_is_single_precision(self):
        """float narrows to 32 bits; double does not."""
        assert read(FLOAT, 0.1) == pytest.approx(0.1, rel=1e-6)
        assert read(FLOAT, 0.1) != 0.1
        assert read(DOUBLE, 0.1) == 0.1

    def test_bool_strict(self):
        """bool accepts only booleans."""
        assert read(BOOL, True) is True
        assert read(BOOL, False) is False
        with pytest.raises(MarshalTypeError):
            read(BOOL, 1)

    def test_string_strict(self):
        """Numbers are not converted to strings."""
        assert read(STRING, "abc") == "abc"
        with pytest.raises(MarshalTypeError):
            read(STRING, 5)

    def test_error_names_position(self):
        """Type errors report the argument position."""
        state = ScriptState()
        state.push(1)
        state.push("x")
        with pytest.raises(MarshalTypeError, match="#2"):
            INT.get(state, 2)

    def test_defaults(self):
        """Each binding has a default value."""
        assert INT.default() == 0
        assert DOUBLE.default() == 0.0
        assert BOOL.default() is False
        assert STRING.default() == ""
        assert VOID.default() is None

    def test_format_value(self):
        """Values are formatted per binding."""
        assert FLOAT.format_value(1.23456) == "1.2"
        assert DOUBLE.format_value(1.23456) == "1.235"
        assert BOOL.format_value(True) == "true"
        assert STRING.format_value("x") == "'x'"
        assert INT.format_value(7) == "7"


# --- Composite Binding Tests ---

class TestCompositeBindings:
    """Test table, sequence, enum and opaque bindings."""

    def test_table_passthrough(self):
        """Tables are passed through untouched."""
        t = Table({"a": 1})
        assert read(TABLE, t) is t

    def test_sequence(self):
        """list<int> reads keys 1..n."""
        assert read(list_of(INT), Table.from_sequence([1, 2, 3])) == [1, 2, 3]

    def test_sparse_sequence_truncates(self):
        """Reading stops at the first missing key."""
        t = Table({1: 1, 2: 2, 4: 4})
        assert read(list_of(INT), t) == [1, 2]

    def test_sequence_element_type(self):
        """Elements are checked by the element binding."""
        with pytest.raises(MarshalTypeError):
            read(list_of(INT), Table.from_sequence([1, "x"]))

    def test_sequence_error_leaves_stack(self):
        """A failing element read does not leak stack values."""
        state = ScriptState()
        state.push(Table.from_sequence([1, "x"]))
        with pytest.raises(MarshalTypeError):
            list_of(INT).get(state, 1)
        assert state.top() == 1

    def test_nested_sequence(self):
        """list<list<double>> recurses."""
        t = Table.from_sequence([Table.from_sequence([1.5]), Table.from_sequence([2.5, 3.5])])
        assert read(list_of(list_of(DOUBLE)), t) == [[1.5], [2.5, 3.5]]

    def test_sequence_push(self):
        """Pushing a list produces a sequence table."""
        state = ScriptState()
        value = to_script(state, list_of(INT), [4, 5])
        assert isinstance(value, Table)
        assert value.sequence() == [4.0, 5.0]
        assert list_of(INT).name == "list<int>"

    def test_enum(self):
        """Enums travel as their integer value."""
        binding = enum_of(Mode)
        assert read(binding, 1) is Mode.ON
        assert binding.default() is Mode.OFF
        with pytest.raises(MarshalTypeError):
            read(binding, 5)

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_enum_non_finite(self, value):
        """Non-finite numbers are not enum values."""
        with pytest.raises(MarshalTypeError):
            read(enum_of(Mode), value)

    def test_int_push_overflow(self):
        """Integers outside the float range cannot be pushed."""
        state = ScriptState()
        with pytest.raises(MarshalTypeError, match="too large"):
            INT.push(state, 10 ** 400)
        assert state.top() == 0

    def test_snapshots(self):
        """Snapshots copy containers and keep opaque references."""
        values = [1.0, 2.0]
        copy = list_of(DOUBLE).snapshot(values)
        values.append(3.0)
        assert copy == [1.0, 2.0]

        nested = [[1], [2]]
        copy = list_of(list_of(INT)).snapshot(nested)
        nested[0].append(5)
        assert copy == [[1], [2]]

        t = Table({"a": 1})
        assert TABLE.snapshot(t) is not t
        obj = object()
        assert OPAQUE.snapshot(obj) is obj
        assert INT.snapshot(4) == 4

    def test_opaque(self):
        """Opaque values are boxed as userdata."""
        obj = object()
        state = ScriptState()
        OPAQUE.push(state, obj)
        assert isinstance(state.get(1), Userdata)
        assert OPAQUE.get(state, 1) is obj


# --- Instance Binding Tests ---

class TestInstanceBinding:
    """Test instance handle marshaling."""

    def test_nil_reads_sentinel(self):
        """nil reads as the sentinel handle."""
        assert read(INSTANCE, None) == NO_INSTANCE

    def test_marker_reads_sentinel(self):
        """The default-marker table reads as the sentinel handle."""
        assert read(INSTANCE, Table({DEFAULT_INSTANCE_FIELD: True})) == NO_INSTANCE

    def test_instance_table(self):
        """The id is read from the instance table's metatable."""
        t = Table(metatable=Table({INSTANCE_ID_FIELD: 3}))
        assert read(INSTANCE, t) == InstanceHandle(3)

    def test_plain_table_rejected(self):
        """A table without an instance id is not an instance."""
        with pytest.raises(MarshalTypeError):
            read(INSTANCE, Table({"a": 1}))

    def test_push_live_handle(self):
        """A live handle pushes its instance table."""
        state = ScriptState()
        t = Table(metatable=Table({INSTANCE_ID_FIELD: 0}))
        state.set_global(instance_path(0), t)
        assert to_script(state, INSTANCE, InstanceHandle(0)) is t

    def test_push_sentinel_or_missing(self):
        """Sentinel and missing handles push a marker table."""
        state = ScriptState()
        for handle in (NO_INSTANCE, InstanceHandle(9)):
            value = to_script(state, INSTANCE, handle)
            assert value[DEFAULT_INSTANCE_FIELD] is True

    def test_handle_str(self):
        """Handles render as their instance path."""
        assert str(InstanceHandle(2)) == "_instances.inst_2"
        assert NO_INSTANCE.is_sentinel


# --- Signature Tests ---

class TestSignatures:
    """Test bindings derived from annotations."""

    def test_binding_for_scalars(self):
        """Python types map to their bindings."""
        assert binding_for(int) == INT
        assert binding_for(float) == DOUBLE
        assert binding_for(bool) == BOOL
        assert binding_for(str) == STRING
        assert binding_for(None) == VOID
        assert binding_for(FLOAT) is FLOAT

    def test_binding_for_generics(self):
        """List[T] and Sequence[T] map to list<T>."""
        assert binding_for(List[int]) == list_of(INT)
        assert binding_for(Sequence[float]) == list_of(DOUBLE)
        assert binding_for(Mode) == enum_of(Mode)

    def test_binding_for_unsupported(self):
        """Types without a binding are rejected."""
        with pytest.raises(UnsupportedTypeError):
            binding_for(dict)

    def test_from_signature(self):
        """Parameters, defaults and return come from the callable."""
        def f(a: int, b: float = 2.5, c: str = "x") -> bool:
            return True

        info = bindings_from_signature(f)
        assert info.params == (INT, DOUBLE, STRING)
        assert info.defaults == (0, 2.5, "x")
        assert info.returns == BOOL

    def test_unannotated_rejected(self):
        """Every parameter needs an annotation."""
        def f(a):
            pass

        with pytest.raises(UnsupportedTypeError):
            bindings_from_signature(f)

    def test_varargs_rejected(self):
        """Only positional parameters are supported."""
        def f(*args: int):
            pass

        with pytest.raises(UnsupportedTypeError):
            bindings_from_signature(f)

    def test_class_signature(self):
        """Classes are described by their constructor."""
        class Point:
            def __init__(self, x: float, y: float = 1.0):
                pass

        info = bindings_from_signature(Point)
        assert info.params == (DOUBLE, DOUBLE)
        assert info.defaults == (0.0, 1.0)

    def test_format_signature(self):
        """Signatures render as `ret name(types)`."""
        assert format_signature("set_i1", (INT,), VOID) == "void set_i1(int)"

    def test_push_and_pull_params(self):
        """A parameter list survives the stack."""
        state = ScriptState()
        bindings = (INT, STRING, list_of(DOUBLE))
        assert push_params(state, bindings, (3, "s", [1.5])) == 3
        assert pull_params(state, bindings) == (3, "s", [1.5])
