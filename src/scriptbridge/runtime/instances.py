"""
Instance registry: stable integer handles for native objects.

Handles come from a monotonic counter and are never reused. Retiring a handle
drops the native reference; afterwards the handle resolves to None, the same
as the NO_INSTANCE sentinel, so repeated deletes are no-ops.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional, Set

from ..errors import error_unknown_handle
from ..types import InstanceHandle, NO_INSTANCE

logger = logging.getLogger(__name__)


class InstanceRegistry:
    """Arena mapping handle ids to the native objects they own."""

    def __init__(self, first_id: int = 0):
        self._counter = itertools.count(first_id)
        self._objects: Dict[int, Any] = {}
        self._by_identity: Dict[int, int] = {}
        self._retired: Set[int] = set()

    def register(self, obj: Any) -> InstanceHandle:
        """Bind a native object to the next unused handle."""
        handle_id = next(self._counter)
        self._objects[handle_id] = obj
        self._by_identity[id(obj)] = handle_id
        logger.debug("registered instance %d (%s)", handle_id, type(obj).__name__)
        return InstanceHandle(handle_id)

    def _was_issued(self, handle: InstanceHandle) -> bool:
        return handle.id in self._objects or handle.id in self._retired

    def resolve(self, handle: InstanceHandle) -> Optional[Any]:
        """
        Native object for a handle.

        The sentinel and retired handles resolve to None; a handle that was
        never issued raises UnknownHandleError.
        """
        if handle.is_sentinel:
            return None
        if not self._was_issued(handle):
            raise error_unknown_handle(handle.id)
        return self._objects.get(handle.id)

    def retire(self, handle: InstanceHandle) -> bool:
        """
        Permanently invalidate a handle.

        Returns True if the handle was live, False for the sentinel or an
        already retired handle.
        """
        if handle.is_sentinel or handle.id in self._retired:
            return False
        if handle.id not in self._objects:
            raise error_unknown_handle(handle.id)
        obj = self._objects.pop(handle.id)
        self._by_identity.pop(id(obj), None)
        self._retired.add(handle.id)
        logger.debug("retired instance %d", handle.id)
        return True

    def is_live(self, handle: Optional[InstanceHandle]) -> bool:
        return handle is not None and handle.id in self._objects

    def handle_for(self, obj: Any) -> InstanceHandle:
        """Handle of a registered object, or NO_INSTANCE."""
        handle_id = self._by_identity.get(id(obj))
        return NO_INSTANCE if handle_id is None else InstanceHandle(handle_id)

    def live_handles(self) -> List[InstanceHandle]:
        return [InstanceHandle(i) for i in sorted(self._objects)]

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, handle: InstanceHandle) -> bool:
        return self.is_live(handle)
