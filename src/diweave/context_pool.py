from __future__ import annotations

import logging
import threading

from diweave.defaults import DEFAULT_POOL_CAPACITY
from diweave.resolution_context import ResolutionContext

logger = logging.getLogger(__name__)


class ContextPool:
    """Bounded free list of reusable resolution contexts.

    ``acquire`` hands out a reset context, reusing an idle one when available.
    ``release`` resets the context and keeps it only while fewer than
    ``capacity`` contexts are idle. A lock guards the free list, so concurrent
    callers never receive the same context.
    """

    __slots__ = ("_capacity", "_created", "_free", "_lock")

    def __init__(self, capacity: int = DEFAULT_POOL_CAPACITY) -> None:
        if capacity < 0:
            msg = f"Pool capacity must be zero or positive, got {capacity}."
            raise ValueError(msg)
        self._capacity = capacity
        self._free: list[ResolutionContext] = []
        self._lock = threading.Lock()
        self._created = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def created(self) -> int:
        """Number of contexts this pool has had to allocate."""
        return self._created

    def acquire(self) -> ResolutionContext:
        with self._lock:
            if self._free:
                return self._free.pop()
            self._created += 1
        return ResolutionContext()

    def release(self, context: ResolutionContext) -> None:
        context.reset()
        with self._lock:
            if len(self._free) < self._capacity:
                self._free.append(context)
                return
        logger.debug("Context pool at capacity %d, discarding %r", self._capacity, context)

    def __len__(self) -> int:
        return len(self._free)
