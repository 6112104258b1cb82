"""
Bridge-specific exceptions and error handling.

Error code ranges:
- E1xx: Marshaling errors (malformed script-side calls)
- E2xx: Registration and lookup errors
- E3xx: Provenance errors (reentry, undo/redo)
- E4xx: Instance handle errors
- E5xx: Configuration errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(Enum):
    """Kinds of bridge errors, valued by their stable code."""
    MARSHAL_TYPE = "E101"
    ARITY = "E102"
    SCRIPT_SYNTAX = "E103"
    UNKNOWN_FUNCTION = "E201"
    DUPLICATE_NAME = "E202"
    SIGNATURE_TOO_LARGE = "E203"
    UNSUPPORTED_TYPE = "E204"
    REENTRY = "E301"
    INVALID_UNDO = "E302"
    INVALID_REDO = "E303"
    UNKNOWN_HANDLE = "E401"
    CONFIG = "E501"

    @property
    def code(self) -> str:
        return self.value


class BridgeError(Exception):
    """Base exception for scripting bridge errors."""

    kind: ErrorKind = ErrorKind.MARSHAL_TYPE

    def __init__(self, message: str, hints: Optional[List[str]] = None,
                 cause: Optional[BaseException] = None):
        self.message = message
        self.hints = list(hints or [])
        self.cause = cause
        super().__init__(message)

    def format(self) -> str:
        """Format the error for display."""
        parts = [f"error[{self.kind.code}]: {self.message}"]
        for hint in self.hints:
            parts.append(f"    = hint: {hint}")
        if self.cause is not None:
            parts.append(f"    caused by: {type(self.cause).__name__}: {self.cause}")
        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        return {
            "code": self.kind.code,
            "kind": self.kind.name,
            "message": self.message,
            "hints": self.hints,
            "cause": str(self.cause) if self.cause is not None else None,
        }

    def __str__(self) -> str:
        return self.format()


class MarshalTypeError(BridgeError):
    """A script value had the wrong dynamic type for its binding (E101)."""
    kind = ErrorKind.MARSHAL_TYPE


class ArityError(BridgeError):
    """Argument count did not match the registered signature (E102)."""
    kind = ErrorKind.ARITY


class ScriptSyntaxError(BridgeError):
    """A call script line could not be parsed or evaluated (E103)."""
    kind = ErrorKind.SCRIPT_SYNTAX


class UnknownFunctionError(BridgeError):
    """No function registered under the requested name (E201)."""
    kind = ErrorKind.UNKNOWN_FUNCTION


class DuplicateNameError(BridgeError):
    """A function is already registered under the requested name (E202)."""
    kind = ErrorKind.DUPLICATE_NAME


class SignatureTooLargeError(BridgeError):
    """More parameters than the configured maximum (E203)."""
    kind = ErrorKind.SIGNATURE_TOO_LARGE


class UnsupportedTypeError(BridgeError):
    """No type binding exists for a parameter or return annotation (E204)."""
    kind = ErrorKind.UNSUPPORTED_TYPE


class ReentryError(BridgeError):
    """A logged call was issued from inside another logged call (E301)."""
    kind = ErrorKind.REENTRY


class InvalidUndoRedoError(BridgeError):
    """Common base for undo and redo failures."""


class InvalidUndoError(InvalidUndoRedoError):
    """Nothing to undo, or the undo replay failed (E302)."""
    kind = ErrorKind.INVALID_UNDO


class InvalidRedoError(InvalidUndoRedoError):
    """Nothing to redo, or the redo replay failed (E303)."""
    kind = ErrorKind.INVALID_REDO


class UnknownHandleError(BridgeError):
    """An instance handle that was never issued (E401)."""
    kind = ErrorKind.UNKNOWN_HANDLE


class ConfigError(BridgeError):
    """Invalid bridge configuration (E501)."""
    kind = ErrorKind.CONFIG


@dataclass
class CallResult:
    """
    Explicit outcome of a protected call.

    Carries either the returned value or the error, so callers can branch on
    `kind` instead of catching exceptions.
    """
    ok: bool
    value: Any = None
    error: Optional[BridgeError] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def success(cls, value: Any = None) -> "CallResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: BridgeError) -> "CallResult":
        return cls(ok=False, error=error)

    @property
    def kind(self) -> Optional[ErrorKind]:
        """The error kind, or None on success."""
        return self.error.kind if self.error is not None else None

    @property
    def cause(self) -> Optional[BaseException]:
        return self.error.cause if self.error is not None else None

    def unwrap(self) -> Any:
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value


# --- Marshaling error codes ---

def error_wrong_type(expected: str, actual: str, position: int) -> MarshalTypeError:
    """E101: Stack value has the wrong dynamic type."""
    return MarshalTypeError(
        f"bad argument #{position}: expected {expected}, got {actual}",
    )


def error_bad_value(expected: str, value: Any, position: int,
                    hint: str = None) -> MarshalTypeError:
    """E101: Stack value has the right type but cannot be narrowed."""
    return MarshalTypeError(
        f"bad argument #{position}: {value!r} is not a valid {expected}",
        hints=[hint] if hint else None,
    )


def error_unpushable(value: Any) -> MarshalTypeError:
    """E101: Python object has no script representation."""
    return MarshalTypeError(
        f"cannot push value of type '{type(value).__name__}' onto the script stack",
        hints=["register a type binding for this value or wrap it as userdata"],
    )


def error_number_overflow(value: int) -> MarshalTypeError:
    """E101: Integer too large for the script number type."""
    return MarshalTypeError(
        f"integer of {value.bit_length()} bits is too large for a script number")


def error_bad_return(name: str, expected: str, value: Any) -> MarshalTypeError:
    """E101: Native function returned a value its return binding cannot push."""
    return MarshalTypeError(
        f"'{name}' returned {value!r}, which is not a valid {expected}",
        hints=["check the return annotation of the native function"],
    )


def error_arity(name: str, expected: int, actual: int) -> ArityError:
    """E102: Argument count mismatch."""
    plural = "s" if expected != 1 else ""
    return ArityError(
        f"'{name}' expects {expected} argument{plural}, got {actual}",
    )


def error_script_syntax(message: str, line: int) -> ScriptSyntaxError:
    """E103: Malformed call script line."""
    return ScriptSyntaxError(
        f"line {line}: {message}",
        hints=["each line must be `name(arg, ...)` or `var = name(arg, ...)`"],
    )


# --- Registration error codes ---

def error_unknown_function(name: str) -> UnknownFunctionError:
    """E201: Function not registered."""
    return UnknownFunctionError(f"unknown function '{name}'")


def error_duplicate_name(name: str, hint: str = None) -> DuplicateNameError:
    """E202: Function name already in use."""
    return DuplicateNameError(
        f"'{name}' is already registered",
        hints=[hint] if hint else ["unregister the existing function first"],
    )


def error_signature_too_large(name: str, count: int, limit: int) -> SignatureTooLargeError:
    """E203: Too many parameters."""
    return SignatureTooLargeError(
        f"'{name}' has {count} parameters, the maximum is {limit}",
        hints=["raise max_params in the bridge configuration"],
    )


def error_unsupported_type(annotation: Any, where: str) -> UnsupportedTypeError:
    """E204: No type binding for an annotation."""
    if isinstance(annotation, str):
        type_name = annotation
    else:
        type_name = getattr(annotation, "__name__", repr(annotation))
    return UnsupportedTypeError(
        f"no type binding for '{type_name}' ({where})",
        hints=["pass explicit bindings with params=[...] or returns=..."],
    )


# --- Provenance error codes ---

def error_reentry(name: str) -> ReentryError:
    """E301: Nested logged call."""
    return ReentryError(
        f"provenance reentry not allowed: '{name}' called from inside another registered function",
        hints=["consider disabling provenance.enableReentryException"],
    )


def error_invalid_undo(message: str, cause: BaseException = None) -> InvalidUndoError:
    """E302: Undo boundary violation or replay failure."""
    return InvalidUndoError(message, cause=cause)


def error_invalid_redo(message: str, cause: BaseException = None) -> InvalidRedoError:
    """E303: Redo boundary violation or replay failure."""
    return InvalidRedoError(message, cause=cause)


# --- Instance error codes ---

def error_unknown_handle(handle_id: int) -> UnknownHandleError:
    """E401: Handle was never issued."""
    return UnknownHandleError(f"instance handle {handle_id} was never issued")


# --- Configuration error codes ---

def error_config(message: str, hint: str = None) -> ConfigError:
    """E501: Invalid configuration."""
    return ConfigError(message, hints=[hint] if hint else None)
