"""
Provenance tracking for script-driven calls.

Every non-exempt call is recorded with the parameters that were current
before it (undo) and the parameters it was made with (redo). The ledger keeps
a cursor separating undoable history from available redo records:

    records:  [r0, r1, r2, r3]
    cursor:            ^ 2      r0, r1 undoable; r2, r3 redoable

A new recorded call discards everything at or after the cursor.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Tuple
import json
import logging

from ..errors import (
    BridgeError, CallResult,
    error_invalid_undo, error_invalid_redo, error_reentry,
)
from ..types import InstanceHandle

logger = logging.getLogger(__name__)


class LedgerState(Enum):
    """Reentrancy guard states."""
    IDLE = "idle"
    LOGGING = "logging"
    REPLAYING = "replaying"


class ReentrancyGuard:
    """
    Tracks whether a logged call or a replay is in flight.

    Owned by a single bridge; only one call runs at a time, so no locking.
    """

    def __init__(self):
        self.state = LedgerState.IDLE

    @contextmanager
    def _enter(self, state: LedgerState):
        previous = self.state
        self.state = state
        try:
            yield self
        finally:
            self.state = previous

    def logging(self):
        """Mark a logged native body as running."""
        return self._enter(LedgerState.LOGGING)

    def replaying(self):
        """Mark an undo/redo replay as running."""
        return self._enter(LedgerState.REPLAYING)

    @property
    def is_logging(self) -> bool:
        return self.state is LedgerState.LOGGING

    @property
    def is_replaying(self) -> bool:
        return self.state is LedgerState.REPLAYING


class _NoopUndo:
    """Undo slot of records that cannot be undone (instance deletion)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOOP_UNDO"


NOOP_UNDO = _NoopUndo()


def _serialize(value: Any) -> Any:
    """Convert native parameter values to JSON-compatible types."""
    if isinstance(value, InstanceHandle):
        return {"instance": value.id}
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, 'tolist'):  # numpy arrays
        return value.tolist()
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return repr(value)


@dataclass(frozen=True)
class UndoRedoRecord:
    """
    One recorded call.

    `undo_params` is NOOP_UNDO for calls that cannot be undone.
    """
    function: str
    undo_params: Any
    redo_params: Tuple[Any, ...]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def undoable(self) -> bool:
        return self.undo_params is not NOOP_UNDO

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "function": self.function,
            "undo": _serialize(self.undo_params) if self.undoable else None,
            "redo": _serialize(self.redo_params),
            "timestamp": self.timestamp,
        }


class ProvenanceLedger:
    """
    Undo/redo history of recorded calls.

    `replay(name, params)` re-issues a call through the script runtime; it is
    supplied by the owning bridge and runs with logging suppressed.
    """

    def __init__(self, replay: Callable[[str, Tuple[Any, ...]], Any],
                 enabled: bool = True, reentry_exception: bool = True,
                 history_limit: int = 0, formatter: Callable[[str, Any], str] = None):
        self._replay_call = replay
        self._records: List[UndoRedoRecord] = []
        self._cursor = 0
        self._enabled = enabled
        self.reentry_exception = reentry_exception
        self.history_limit = history_limit
        self.guard = ReentrancyGuard()
        self._formatter = formatter

    # --- Inspection ---

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def records(self) -> Tuple[UndoRedoRecord, ...]:
        return tuple(self._records)

    @property
    def state(self) -> LedgerState:
        return self.guard.state

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    # --- Recording ---

    def _reentry_allowed(self, name: str) -> bool:
        """Apply the reentry policy to a call made while logging."""
        if self.reentry_exception:
            raise error_reentry(name)
        logger.warning("skipping provenance for '%s': called from inside a logged call", name)
        return False

    def admit(self, entry, args: Tuple[Any, ...]) -> bool:
        """
        Decide, before a call runs, whether it will be recorded.

        Raises ReentryError for a nested call while reentry exceptions are on.
        """
        if not self._enabled:
            return False
        if self.guard.is_logging:
            return self._reentry_allowed(entry.name)
        if self.guard.is_replaying or entry.exempt:
            return False
        if entry.log_filter is not None and not entry.log_filter(args):
            return False
        return True

    def notify_call(self, entry, args: Tuple[Any, ...]) -> None:
        """
        Record a completed call.

        Must run before `entry.last_exec` is updated, since the pre-call
        snapshot becomes the undo parameters.
        """
        if self.guard.is_logging and not self._reentry_allowed(entry.name):
            return
        with self.guard.logging():
            del self._records[self._cursor:]
            undo = tuple(entry.last_exec) if entry.undoable else NOOP_UNDO
            self._records.append(UndoRedoRecord(entry.name, undo, tuple(args)))
            self._cursor += 1
            if self.history_limit and len(self._records) > self.history_limit:
                dropped = len(self._records) - self.history_limit
                del self._records[:dropped]
                self._cursor -= dropped
        logger.debug("recorded %s (cursor=%d)", entry.name, self._cursor)

    # --- Undo / Redo ---

    def _replay(self, record: UndoRedoRecord, params: Tuple[Any, ...], make_error) -> None:
        with self.guard.replaying():
            try:
                self._replay_call(record.function, params)
            except Exception as exc:
                raise make_error(f"replay of '{record.function}' failed", cause=exc) from exc

    def issue_undo(self) -> None:
        """Undo the call just before the cursor."""
        if self._cursor == 0:
            raise error_invalid_undo("undo cursor at bottom of history")
        record = self._records[self._cursor - 1]
        if record.undoable:
            self._replay(record, record.undo_params, error_invalid_undo)
        self._cursor -= 1
        logger.debug("undo %s (cursor=%d)", record.function, self._cursor)

    def issue_redo(self) -> None:
        """Redo the call at the cursor."""
        if self._cursor == len(self._records):
            raise error_invalid_redo("redo cursor at top of history")
        record = self._records[self._cursor]
        self._replay(record, record.redo_params, error_invalid_redo)
        self._cursor += 1
        logger.debug("redo %s (cursor=%d)", record.function, self._cursor)

    def try_undo(self) -> CallResult:
        """Undo, reporting failure as a CallResult instead of raising."""
        try:
            self.issue_undo()
        except BridgeError as exc:
            return CallResult.failure(exc)
        return CallResult.success()

    def try_redo(self) -> CallResult:
        """Redo, reporting failure as a CallResult instead of raising."""
        try:
            self.issue_redo()
        except BridgeError as exc:
            return CallResult.failure(exc)
        return CallResult.success()

    # --- Management ---

    def clear(self) -> None:
        """Drop all records. Not undoable."""
        self._records.clear()
        self._cursor = 0
        logger.debug("provenance cleared")

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable recording; disabling clears the history."""
        if not enabled and self._enabled:
            self.clear()
        self._enabled = enabled

    def set_reentry_exception(self, enable: bool) -> None:
        """Choose between raising and silently skipping on reentry."""
        self.reentry_exception = enable

    # --- Export ---

    def history(self) -> List[str]:
        """Recorded calls rendered as `name(args)`, oldest first."""
        lines = []
        for record in self._records:
            if self._formatter is not None:
                lines.append(self._formatter(record.function, record.redo_params))
            else:
                args = ", ".join(repr(v) for v in record.redo_params)
                lines.append(f"{record.function}({args})")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self._enabled,
            "cursor": self._cursor,
            "records": [r.to_dict() for r in self._records],
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)
