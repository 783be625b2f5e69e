from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol

from diweave.bindings import Binding, BindingSlot, Lifetime
from diweave.context_pool import ContextPool
from diweave.defaults import DEFAULT_LOCK_MODE, DEFAULT_POOL_CAPACITY
from diweave.exceptions import (
    DIWeaveCircularDependencyError,
    DIWeaveError,
    DIWeaveFactoryError,
    DIWeaveInvalidRegistrationError,
    DIWeaveNotRegisteredError,
)
from diweave.identifiers import Identifier
from diweave.lock_mode import LockMode
from diweave.registry import BindingRegistry
from diweave.resolution_context import ResolutionContext, active_context

if TYPE_CHECKING:
    from diweave.builder import Builder

logger = logging.getLogger(__name__)
_MISSING: Any = object()


class Resolver(Protocol):
    """What a binding factory receives to resolve its own dependencies."""

    def resolve(self, identifier: Identifier) -> Any: ...

    def resolve_all(self, identifier: Identifier) -> list[Any]: ...

    def resolve_keyed(self, identifier: Identifier, key: str) -> Any: ...


class Engine:
    """Resolve identifiers into fully-wired instances.

    An engine owns one frozen registry layer, a singleton cache and a pool of
    resolution contexts. Child engines created with ``create_child`` add their
    own layer on top and keep their own caches; they never mutate the parent.

    Resolution runs through three tiers. A cached singleton for the identifier
    is returned straight from a dict. Transient bindings marked as leaves are
    built without touching a resolution context. Everything else joins the
    resolution tree active in the current thread (or starts one with a pooled
    context), which is where cycles are detected and per-request instances are
    shared.

    Factories receive the engine as their resolver. Singletons are built by the
    engine whose layer holds their binding, so a parent singleton resolved
    through a child is the parent's one instance and only sees parent bindings.
    Transient and per-request bindings are built by the requesting engine, so
    their dependencies see child overrides.
    """

    __slots__ = (
        "_instances",
        "_lock_holders",
        "_lock_mode",
        "_lock_waiters",
        "_parent",
        "_pool",
        "_registry",
        "_singleton_locks",
        "_singleton_locks_lock",
        "_singletons",
    )

    def __init__(
        self,
        registry: BindingRegistry | None = None,
        *,
        parent: Engine | None = None,
        lock_mode: LockMode = DEFAULT_LOCK_MODE,
        pool_capacity: int = DEFAULT_POOL_CAPACITY,
    ) -> None:
        """Initialize an engine over a registry layer.

        Args:
            registry: Bindings owned by this engine. It is frozen here. When
                ``parent`` is given, the registry must be layered over the
                parent's registry.
            parent: Engine this one falls back to for unknown identifiers.
            lock_mode: How singleton population is guarded against races.
            pool_capacity: Maximum number of idle contexts kept for reuse.

        """
        parent_registry = parent._registry if parent is not None else None
        if registry is None:
            registry = BindingRegistry(parent=parent_registry)
        elif registry.parent is not parent_registry:
            msg = "The registry of a child engine must be layered over its parent's registry."
            raise DIWeaveInvalidRegistrationError(msg)

        self._registry = registry.freeze()
        self._parent = parent
        self._lock_mode = lock_mode
        self._pool = ContextPool(pool_capacity)
        # Tier 1 index: identifier -> singleton built for its default binding.
        self._singletons: dict[Identifier, Any] = {}
        # Every singleton built by this engine, by binding slot.
        self._instances: dict[BindingSlot, Any] = {}
        self._singleton_locks: dict[BindingSlot, threading.Lock] = {}
        # Guards the lock table and the wait-for graph below.
        self._singleton_locks_lock = threading.Lock()
        # slot -> (thread id, identifier) of the thread building that singleton.
        self._lock_holders: dict[BindingSlot, tuple[int, Identifier]] = {}
        # thread id -> (slot, identifier) the thread is blocked on.
        self._lock_waiters: dict[int, tuple[BindingSlot, Identifier]] = {}

        logger.debug(
            "Engine ready with %d local bindings (child=%s, lock_mode=%s)",
            len(registry),
            parent is not None,
            lock_mode.value,
        )

    @property
    def parent(self) -> Engine | None:
        return self._parent

    @property
    def registry(self) -> BindingRegistry:
        return self._registry

    @property
    def pool(self) -> ContextPool:
        return self._pool

    @property
    def lock_mode(self) -> LockMode:
        return self._lock_mode

    # region Resolution
    def resolve(self, identifier: Identifier) -> Any:
        """Resolve an identifier to an instance.

        When several bindings are registered for the identifier, the last one
        registered on the nearest layer wins.

        Raises:
            DIWeaveNotRegisteredError: No binding is reachable for the identifier.
            DIWeaveCircularDependencyError: The identifier is already being built
                in the current resolution tree, or building its singleton would
                wait on a thread that is itself waiting on this one.
            DIWeaveFactoryError: The factory raised.

        """
        instance = self._singletons.get(identifier, _MISSING)
        if instance is not _MISSING:
            return instance

        owner, bindings = self._lookup(identifier)
        if not bindings:
            raise DIWeaveNotRegisteredError(identifier)
        binding = bindings[-1]
        instance = self._resolve_binding(owner, identifier, binding)
        if binding.lifetime is Lifetime.SINGLETON:
            instance = owner._singletons.setdefault(identifier, instance)
            if owner is not self:
                # Frozen layers: the nearest binding for this identifier never changes.
                self._singletons.setdefault(identifier, instance)
        return instance

    def resolve_all(self, identifier: Identifier) -> list[Any]:
        """Resolve every binding registered for an identifier, in registration order.

        Returns an empty list when nothing is registered. All elements are built
        within one resolution tree, each following its own lifetime.
        """
        owner, bindings = self._lookup(identifier)
        if not bindings:
            return []
        if active_context.get() is not None:
            return [self._resolve_binding(owner, identifier, binding) for binding in bindings]

        context = self._pool.acquire()
        reset_token = active_context.set(context)
        try:
            return [self._resolve_binding(owner, identifier, binding) for binding in bindings]
        finally:
            active_context.reset(reset_token)
            self._pool.release(context)

    def resolve_keyed(self, identifier: Identifier, key: str) -> Any:
        """Resolve the binding registered for ``identifier`` under ``key``.

        Raises:
            DIWeaveNotRegisteredError: No binding carries that key.

        """
        return self.resolve(identifier.with_key(key))

    def is_registered(self, identifier: Identifier) -> bool:
        """Check whether any binding is reachable for the identifier."""
        return identifier in self._registry

    def _lookup(self, identifier: Identifier) -> tuple[Engine, tuple[Binding, ...]]:
        engine: Engine | None = self
        while engine is not None:
            bindings = engine._registry.get_local(identifier)
            if bindings:
                return engine, bindings
            engine = engine._parent
        return self, ()

    def _resolve_binding(self, owner: Engine, identifier: Identifier, binding: Binding) -> Any:
        lifetime = binding.lifetime
        if lifetime is Lifetime.SINGLETON:
            instance = owner._instances.get(binding.slot, _MISSING)
            if instance is not _MISSING:
                return instance
        elif lifetime is Lifetime.TRANSIENT and binding.is_leaf:
            return self._invoke(binding, identifier)

        context = active_context.get()
        if context is not None:
            return self._construct(owner, identifier, binding, context)

        context = self._pool.acquire()
        reset_token = active_context.set(context)
        try:
            return self._construct(owner, identifier, binding, context)
        finally:
            active_context.reset(reset_token)
            self._pool.release(context)

    def _construct(
        self,
        owner: Engine,
        identifier: Identifier,
        binding: Binding,
        context: ResolutionContext,
    ) -> Any:
        lifetime = binding.lifetime
        if lifetime is Lifetime.PER_REQUEST:
            instance = context.get_instance(binding.slot, _MISSING)
            if instance is not _MISSING:
                return instance

        context.enter(identifier)
        try:
            if lifetime is Lifetime.SINGLETON:
                return owner._build_singleton(identifier, binding, context)
            instance = self._invoke(binding, identifier)
            if lifetime is Lifetime.PER_REQUEST:
                context.store_instance(binding.slot, instance)
            return instance
        finally:
            context.exit(identifier)

    def _build_singleton(
        self,
        identifier: Identifier,
        binding: Binding,
        context: ResolutionContext,
    ) -> Any:
        instances = self._instances
        slot = binding.slot
        if self._lock_mode is LockMode.NONE:
            # First writer wins; a losing instance is dropped.
            return instances.setdefault(slot, self._invoke(binding, identifier))

        lock = self._acquire_singleton_lock(slot, identifier, context)
        try:
            instance = instances.get(slot, _MISSING)
            if instance is _MISSING:
                instance = self._invoke(binding, identifier)
                instances[slot] = instance
            return instance
        finally:
            with self._singleton_locks_lock:
                del self._lock_holders[slot]
            lock.release()

    def _invoke(self, binding: Binding, identifier: Identifier) -> Any:
        try:
            return binding.factory(self)
        except DIWeaveError:
            raise
        except Exception as exc:
            logger.debug("Factory for %s failed", identifier, exc_info=True)
            raise DIWeaveFactoryError(binding, identifier, exc) from exc

    def _acquire_singleton_lock(
        self,
        slot: BindingSlot,
        identifier: Identifier,
        context: ResolutionContext,
    ) -> threading.Lock:
        """Acquire the lock guarding one singleton binding.

        Before blocking, follows the chain of threads waiting on each other's
        singletons. If the chain leads back to the current thread, waiting
        would never end, so a circular dependency error is raised instead.
        """
        thread_id = threading.get_ident()
        with self._singleton_locks_lock:
            lock = self._singleton_locks.get(slot)
            if lock is None:
                lock = threading.Lock()
                self._singleton_locks[slot] = lock
            self._raise_on_lock_cycle(slot, identifier, thread_id, context)
            if lock.acquire(blocking=False):
                self._lock_holders[slot] = (thread_id, identifier)
                return lock
            self._lock_waiters[thread_id] = (slot, identifier)

        lock.acquire()
        with self._singleton_locks_lock:
            del self._lock_waiters[thread_id]
            self._lock_holders[slot] = (thread_id, identifier)
        return lock

    def _raise_on_lock_cycle(
        self,
        slot: BindingSlot,
        identifier: Identifier,
        thread_id: int,
        context: ResolutionContext,
    ) -> None:
        # Caller holds ``_singleton_locks_lock``.
        cycle = [identifier]
        seen: set[int] = set()
        holder = self._lock_holders.get(slot)
        while holder is not None:
            holder_thread_id = holder[0]
            if holder_thread_id == thread_id:
                logger.debug("Singleton lock cycle on %s via %s", identifier, cycle)
                raise DIWeaveCircularDependencyError(identifier, tuple(cycle), context.path)
            if holder_thread_id in seen:
                return
            seen.add(holder_thread_id)
            waiting = self._lock_waiters.get(holder_thread_id)
            if waiting is None:
                return
            waited_slot, waited_identifier = waiting
            cycle.append(waited_identifier)
            holder = self._lock_holders.get(waited_slot)

    # endregion Resolution

    # region Scopes
    def create_child(
        self,
        bindings: Iterable[Binding] = (),
        *,
        lock_mode: LockMode | None = None,
        pool_capacity: int | None = None,
    ) -> Engine:
        """Create a child scope layered over this engine.

        The child starts with an empty singleton cache and its own context
        pool. ``bindings`` become the child's local layer and shadow this
        engine's bindings for the same identifiers, in the child and its
        descendants only. Discarding the child has no effect on this engine.

        Examples:
            .. code-block:: python

                request_scope = engine.create_child(
                    [Binding(identifier=REQUEST_ID, factory=lambda _: "req-1", is_leaf=True)],
                )
                handler = request_scope.resolve(HANDLER)

        """
        child = Engine(
            BindingRegistry(bindings, parent=self._registry),
            parent=self,
            lock_mode=self._lock_mode if lock_mode is None else lock_mode,
            pool_capacity=self._pool.capacity if pool_capacity is None else pool_capacity,
        )
        return child

    def builder(self) -> Builder:
        """Return a builder pre-seeded with every binding reachable from this engine.

        Building it produces a new, independent root engine; this engine is
        left untouched. Layers are flattened root first, so for ``resolve`` a
        child binding still wins over its parent's, while ``resolve_all`` in
        the new engine sees both.
        """
        from diweave.builder import Builder  # noqa: PLC0415

        chain: list[Engine] = []
        engine: Engine | None = self
        while engine is not None:
            chain.append(engine)
            engine = engine._parent

        builder = Builder(lock_mode=self._lock_mode, pool_capacity=self._pool.capacity)
        for engine in reversed(chain):
            builder.add_bindings(engine._registry)
        return builder

    # endregion Scopes

    def __repr__(self) -> str:
        depth = 0
        engine = self._parent
        while engine is not None:
            depth += 1
            engine = engine._parent
        return f"Engine(bindings={len(self._registry)}, depth={depth})"
