"""
Tests for the script state model (stack, frames, globals, tables).
"""

import pytest

from scriptbridge.errors import MarshalTypeError, UnknownFunctionError
from scriptbridge.state import (
    ScriptFunction,
    ScriptState,
    Table,
    Userdata,
    table_from_python,
    table_to_python,
    type_name_of,
)


# --- Stack Tests ---

class TestStack:
    """Test stack access and frame positions."""

    def test_push_numbers_as_float(self):
        """Integers are stored in the single numeric representation."""
        state = ScriptState()
        state.push(3)
        assert state.get(1) == 3.0
        assert isinstance(state.get(1), float)

    def test_push_bool_not_number(self):
        """Booleans keep their own dynamic type."""
        state = ScriptState()
        state.push(True)
        assert state.get(1) is True
        assert state.type_name(1) == "boolean"

    def test_push_unsupported_object(self):
        """Arbitrary Python objects cannot be pushed."""
        state = ScriptState()
        with pytest.raises(MarshalTypeError):
            state.push(object())

    def test_negative_positions(self):
        """Negative positions count back from the top."""
        state = ScriptState()
        state.push("a")
        state.push("b")
        assert state.get(-1) == "b"
        assert state.get(-2) == "a"
        assert state.absolute(-1) == 2

    def test_out_of_range_is_nil(self):
        """Positions outside the frame read as nil."""
        state = ScriptState()
        state.push(1)
        assert state.get(0) is None
        assert state.get(2) is None
        assert state.get(-2) is None
        assert state.type_name(5) == "nil"

    def test_set_top_and_pop(self):
        """set_top truncates or nil-extends the frame."""
        state = ScriptState()
        state.push(1)
        state.set_top(3)
        assert state.top() == 3
        assert state.get(3) is None
        state.pop(2)
        assert state.top() == 1
        state.pop(5)
        assert state.top() == 0

    def test_balanced(self):
        """balanced() checks the stack delta of a block."""
        state = ScriptState()
        with state.balanced(1):
            state.push(1)
        with pytest.raises(RuntimeError, match="unbalanced stack"):
            with state.balanced(0):
                state.push(2)


# --- Globals Tests ---

class TestGlobals:
    """Test dotted global paths."""

    def test_set_creates_intermediate_tables(self):
        """Setting a dotted path creates the tables along it."""
        state = ScriptState()
        state.set_global("a.b.c", 1)
        assert isinstance(state.get_global("a"), Table)
        assert state.get_global("a.b.c") == 1.0

    def test_missing_path_is_nil(self):
        """Missing paths read as nil."""
        state = ScriptState()
        assert state.get_global("x.y") is None

    def test_set_nil_removes(self):
        """Assigning nil removes the last segment."""
        state = ScriptState()
        state.set_global("a.b", 1)
        state.set_global("a.b", None)
        assert state.get_global("a.b") is None
        state.set_global("missing.path", None)
        assert state.get_global("missing") is None

    def test_non_table_segment(self):
        """A non-table intermediate segment is an error."""
        state = ScriptState()
        state.set_global("x", 5)
        with pytest.raises(TypeError):
            state.set_global("x.y", 1)


# --- Call Tests ---

class TestCalls:
    """Test calling native functions through the state."""

    def make_add(self, seen):
        def add(state):
            seen.append(state.top())
            state.push(state.get(1) + state.get(2))
            return 1
        return ScriptFunction("math.add", add)

    def test_call_by_name(self):
        """Arguments open a new frame and results are returned."""
        seen = []
        state = ScriptState()
        state.set_global("math.add", self.make_add(seen))
        assert state.call("math.add", 1, 2) == [3.0]
        assert seen == [2]
        assert state.top() == 0

    def test_call_restores_caller_frame(self):
        """The caller's values are untouched by a call."""
        state = ScriptState()
        state.set_global("math.add", self.make_add([]))
        state.push("keep")
        state.push(4)
        state.push(5)
        assert state.call_stack("math.add", 2) == [9.0]
        assert state.top() == 1
        assert state.get(1) == "keep"

    def test_call_unknown(self):
        """Calling a missing global fails."""
        state = ScriptState()
        with pytest.raises(UnknownFunctionError):
            state.call("nope")

    def test_call_non_function(self):
        """Calling a global that is not a function fails."""
        state = ScriptState()
        state.set_global("value", 1)
        with pytest.raises(UnknownFunctionError):
            state.call("value")

    def test_frame_dropped_on_error(self):
        """A raising function leaves the caller's stack intact."""
        def boom(state):
            state.push(1)
            raise RuntimeError("boom")

        state = ScriptState()
        state.set_global("boom", ScriptFunction("boom", boom))
        with pytest.raises(RuntimeError):
            state.call("boom", 1, 2)
        assert state.top() == 0
        assert state.call_depth == 0

    def test_unpushable_argument_leaves_stack(self):
        """An argument that cannot be pushed drops the ones already pushed."""
        seen = []
        state = ScriptState()
        state.set_global("math.add", self.make_add(seen))
        state.push("keep")
        with pytest.raises(MarshalTypeError):
            state.call("math.add", 1, object())
        assert state.top() == 1
        assert state.get(1) == "keep"
        assert seen == []

    def test_oversized_integer_argument(self):
        """Integers beyond the float range are rejected without leaking values."""
        state = ScriptState()
        state.set_global("math.add", self.make_add([]))
        with pytest.raises(MarshalTypeError, match="too large"):
            state.call("math.add", 1, 10 ** 400)
        assert state.top() == 0


# --- Table Tests ---

class TestTable:
    """Test script tables."""

    def test_integral_float_keys(self):
        """1.0 and 1 address the same slot."""
        t = Table()
        t[1.0] = "a"
        assert t[1] == "a"
        assert 1 in t

    def test_nil_assignment_removes(self):
        """Assigning nil removes a key."""
        t = Table({"a": 1})
        t["a"] = None
        assert "a" not in t
        assert t["a"] is None

    def test_nil_key(self):
        """nil cannot be used as a key."""
        t = Table()
        with pytest.raises(KeyError):
            t[None] = 1

    def test_sequence_prefix(self):
        """sequence() stops at the first missing key."""
        t = Table({1: "a", 2: "b", 4: "d"})
        assert len(t) == 2
        assert t.sequence() == ["a", "b"]

    def test_from_sequence(self):
        """from_sequence() fills keys 1..n."""
        t = Table.from_sequence([10, 20, 30])
        assert t[1] == 10.0
        assert t[3] == 30.0
        assert len(t) == 3

    def test_copy_is_deep(self):
        """copy() duplicates nested tables and shares metatables."""
        meta = Table()
        inner = Table.from_sequence([1, 2])
        t = Table({"inner": inner}, metatable=meta)
        clone = t.copy()
        inner[3] = 3
        assert len(clone["inner"]) == 2
        assert clone["inner"] is not inner
        assert clone.metatable is meta

    def test_copy_keeps_cycles(self):
        """A table that contains itself copies to one that contains itself."""
        t = Table()
        t["self"] = t
        clone = t.copy()
        assert clone["self"] is clone

    def test_python_conversion(self):
        """Nested lists and dicts convert to tables and back."""
        t = table_from_python([1, [2, 3], {"k": "v"}])
        assert isinstance(t[2], Table)
        assert table_to_python(t) == [1.0, [2.0, 3.0], {"k": "v"}]

    def test_type_names(self):
        """Dynamic type names of script values."""
        assert type_name_of(None) == "nil"
        assert type_name_of(1.0) == "number"
        assert type_name_of(False) == "boolean"
        assert type_name_of("s") == "string"
        assert type_name_of(Table()) == "table"
        assert type_name_of(Userdata(object())) == "userdata"
        assert type_name_of(ScriptFunction("f", lambda s: 0)) == "function"
