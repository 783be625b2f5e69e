from __future__ import annotations

from enum import Enum


class LockMode(Enum):
    """Select locking behavior for singleton population.

    Use these values for the engine-level ``lock_mode``. Child scopes inherit
    the mode of their parent unless one is passed to ``create_child``.
    """

    THREAD = "thread"
    """Guard each singleton binding with a ``threading.Lock`` so its factory runs once.

    A thread that would wait on a singleton held by a thread already waiting
    on it raises ``DIWeaveCircularDependencyError`` instead of blocking.
    """

    NONE = "none"
    """Run singleton factories without locking; the first published instance wins."""
