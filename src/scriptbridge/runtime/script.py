"""
Call script runner.

A call script is a plain text file with one bridge call per line:

    # comments start with '#' or '--'
    set_i1(1)
    set_points([1.5, 2.5, 3.5])
    a = A.new(0)
    a.set_i1(42)
    delete_instance(a)
    provenance.undo()

Arguments are literals (numbers, strings, true/false/nil, lists and dicts,
which become tables) or names bound by an earlier `var = ...` line. A call
whose first name segment is a variable holding an instance table is routed to
that instance's method.
"""

import ast
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import error_script_syntax
from ..state import Table, table_from_python
from .context import ScriptBridge, method_name

logger = logging.getLogger(__name__)

COMMENT_PREFIXES = ("#", "--")

_KEYWORD_LITERALS = {"nil": None, "true": True, "false": False}


@dataclass(frozen=True)
class VariableRef:
    """Argument naming a variable bound by an earlier line."""
    name: str


@dataclass
class ScriptCall:
    """One parsed call line."""
    function: str
    args: List[Any]
    target: Optional[str] = None
    line: int = 0

    def __str__(self) -> str:
        args = ", ".join(a.name if isinstance(a, VariableRef) else repr(a) for a in self.args)
        prefix = f"{self.target} = " if self.target else ""
        return f"{prefix}{self.function}({args})"


@dataclass
class ScriptResult:
    """Outcome of running a call script."""
    calls: List[Tuple[ScriptCall, Any]] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)


def _dotted_name(node: ast.AST, line: int) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_dotted_name(node.value, line)}.{node.attr}"
    raise error_script_syntax("callee must be a dotted name", line)


def _argument(node: ast.AST, line: int) -> Any:
    if isinstance(node, ast.Name):
        if node.id in _KEYWORD_LITERALS:
            return _KEYWORD_LITERALS[node.id]
        return VariableRef(node.id)
    try:
        value = ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        raise error_script_syntax(
            f"unsupported argument '{ast.unparse(node)}'", line) from None
    _check_literal(value, line)
    return value


def _check_literal(value: Any, line: int) -> None:
    """Reject literals with no table form: nil keys and oversized integers."""
    if isinstance(value, dict):
        for key, item in value.items():
            if key is None:
                raise error_script_syntax("table keys cannot be nil", line)
            _check_literal(key, line)
            _check_literal(item, line)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            _check_literal(item, line)
    elif isinstance(value, int) and not isinstance(value, bool):
        try:
            float(value)
        except OverflowError:
            raise error_script_syntax("integer literal is too large", line) from None


def parse_call(text: str, line: int = 0) -> Optional[ScriptCall]:
    """
    Parse one script line.

    Returns None for blank and comment lines.
    """
    stripped = text.strip()
    if not stripped or stripped.startswith(COMMENT_PREFIXES):
        return None
    try:
        module = ast.parse(stripped, mode="exec")
    except SyntaxError as exc:
        raise error_script_syntax(f"invalid syntax: {exc.msg}", line) from None
    if len(module.body) != 1:
        raise error_script_syntax("expected exactly one call", line)

    stmt = module.body[0]
    target = None
    if isinstance(stmt, ast.Assign):
        if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
            raise error_script_syntax("assignment target must be a single name", line)
        target = stmt.targets[0].id
        call = stmt.value
    elif isinstance(stmt, ast.Expr):
        call = stmt.value
    else:
        raise error_script_syntax("expected a call", line)

    if not isinstance(call, ast.Call):
        raise error_script_syntax("expected a call", line)
    if call.keywords:
        raise error_script_syntax("keyword arguments are not supported", line)

    return ScriptCall(
        function=_dotted_name(call.func, line),
        args=[_argument(a, line) for a in call.args],
        target=target,
        line=line,
    )


def parse_script(source: str) -> List[ScriptCall]:
    """Parse every call line of a script."""
    calls = []
    for lineno, text in enumerate(source.splitlines(), start=1):
        call = parse_call(text, lineno)
        if call is not None:
            calls.append(call)
    return calls


def _resolve_function(bridge: ScriptBridge, call: ScriptCall, variables: Dict[str, Any]) -> str:
    head, _, rest = call.function.partition(".")
    if rest and isinstance(variables.get(head), Table):
        return method_name(bridge.instance_handle(variables[head]), rest)
    return call.function


def _resolve_args(call: ScriptCall, variables: Dict[str, Any]) -> List[Any]:
    args = []
    for arg in call.args:
        if isinstance(arg, VariableRef):
            if arg.name not in variables:
                raise error_script_syntax(f"undefined variable '{arg.name}'", call.line)
            args.append(variables[arg.name])
        else:
            args.append(table_from_python(arg))
    return args


def run_script(bridge: ScriptBridge, source: str) -> ScriptResult:
    """
    Run a call script against a bridge, line by line.

    The first failing call raises; calls before it keep their effects.
    """
    result = ScriptResult()
    for call in parse_script(source):
        name = _resolve_function(bridge, call, result.variables)
        value = bridge.exec(name, *_resolve_args(call, result.variables))
        logger.debug("line %d: %s -> %r", call.line, call, value)
        if call.target:
            result.variables[call.target] = value
        result.calls.append((call, value))
    return result
