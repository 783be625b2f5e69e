from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

from diweave.bindings import BindingSlot
from diweave.exceptions import DIWeaveCircularDependencyError
from diweave.identifiers import Identifier

logger = logging.getLogger(__name__)

# The context of the resolution tree running in the current thread or task.
# Nested ``resolve`` calls made by factories join the tree through it.
active_context: ContextVar[ResolutionContext | None] = ContextVar(
    "diweave_active_context",
    default=None,
)


class ResolutionContext:
    """Per-tree state for one top-level resolution.

    Tracks the identifiers currently being constructed (an insertion-ordered
    dict used as an ordered set, so membership is O(1) and the traversal order
    is kept for diagnostics) and the instances of per-request bindings built
    within the tree. The readable path is only materialized when a cycle is
    reported.
    """

    __slots__ = ("_in_progress", "_per_request")

    def __init__(self) -> None:
        self._in_progress: dict[Identifier, None] = {}
        self._per_request: dict[BindingSlot, Any] = {}

    def enter(self, identifier: Identifier) -> None:
        """Mark ``identifier`` as being constructed.

        Raises:
            DIWeaveCircularDependencyError: If it is already being constructed.

        """
        in_progress = self._in_progress
        if identifier in in_progress:
            path = self.path
            cycle = path[path.index(identifier) :]
            logger.debug("Circular dependency on %s via %s", identifier, path)
            raise DIWeaveCircularDependencyError(identifier, cycle, path)
        in_progress[identifier] = None

    def exit(self, identifier: Identifier) -> None:
        self._in_progress.pop(identifier, None)

    def is_resolving(self, identifier: Identifier) -> bool:
        return identifier in self._in_progress

    @property
    def path(self) -> tuple[Identifier, ...]:
        """The in-progress identifiers in traversal order, outermost first."""
        return tuple(self._in_progress)

    @property
    def depth(self) -> int:
        return len(self._in_progress)

    def get_instance(self, slot: BindingSlot, default: Any = None) -> Any:
        return self._per_request.get(slot, default)

    def store_instance(self, slot: BindingSlot, instance: Any) -> None:
        self._per_request[slot] = instance

    @property
    def instance_count(self) -> int:
        return len(self._per_request)

    def reset(self) -> None:
        """Clear all per-tree state so the context can serve a new tree."""
        self._in_progress.clear()
        self._per_request.clear()

    def __repr__(self) -> str:
        return (
            f"ResolutionContext(depth={len(self._in_progress)}, "
            f"per_request={len(self._per_request)})"
        )
