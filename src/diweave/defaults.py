from diweave.bindings import Lifetime
from diweave.lock_mode import LockMode

DEFAULT_LIFETIME = Lifetime.SINGLETON
"""Lifetime used by builder registrations that never pick one."""

DEFAULT_LOCK_MODE = LockMode.THREAD

DEFAULT_POOL_CAPACITY = 16
"""Maximum number of idle resolution contexts an engine keeps for reuse."""
