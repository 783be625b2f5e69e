from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from enum import Enum
from typing import Any

from typing_extensions import Self

from diweave.autowire import ParameterResolver, ResolverGenerator
from diweave.bindings import Binding, Lifetime
from diweave.defaults import DEFAULT_LIFETIME, DEFAULT_LOCK_MODE, DEFAULT_POOL_CAPACITY
from diweave.engine import Engine
from diweave.exceptions import DIWeaveInvalidRegistrationError
from diweave.factories import (
    ArgsTypeFactory,
    InstanceFactory,
    NoArgsCallableFactory,
    ParameterResolverFn,
    TypeFactory,
)
from diweave.identifiers import Identifier
from diweave.lock_mode import LockMode
from diweave.registry import BindingRegistry
from diweave.validators import RegistrationValidator

logger = logging.getLogger(__name__)


class _RegistrationKind(Enum):
    TYPE = "type"
    INSTANCE = "instance"
    FACTORY = "factory"


class RegistrationBuilder:
    """Describe one registration through chained calls.

    The binding is only materialized when the owning ``Builder`` builds, so
    calls can be chained in any order.

    Examples:
        .. code-block:: python

            builder.register_type(ConsoleLogger).as_self().as_(LOGGER).single_instance()
            builder.register(lambda r: Service(r.resolve(LOGGER))).as_(SERVICE)

    """

    def __init__(
        self,
        *,
        kind: _RegistrationKind,
        target: Any,
        lifetime: Lifetime,
        validator: RegistrationValidator,
        resolver_generator: ResolverGenerator,
    ) -> None:
        self._kind = kind
        self._target = target
        self._lifetime = lifetime
        self._validator = validator
        self._resolver_generator = resolver_generator
        self._identifiers: list[Identifier] = []
        self._key: str | None = None
        self._mapping: dict[str, ParameterResolverFn] | None = None
        self._resolvers: tuple[ParameterResolverFn, ...] | None = None

    # region Identifiers
    def as_(self, identifier: Identifier | type[Any] | str) -> Self:
        """Make the registration reachable under ``identifier``.

        Classes and strings are turned into identifiers with
        ``Identifier.for_type``. May be called several times to register
        aliases; the first identifier is the primary one.
        """
        if not isinstance(identifier, Identifier):
            identifier = Identifier.for_type(identifier)
        if identifier not in self._identifiers:
            self._identifiers.append(identifier)
        return self

    def as_self(self) -> Self:
        """Make the registration reachable under the identifier of its own type."""
        if self._kind is _RegistrationKind.FACTORY:
            msg = f"as_self() needs a type or an instance registration, not factory {self._target!r}."
            raise DIWeaveInvalidRegistrationError(msg)
        return self.as_(self._own_type())

    def keyed(self, key: str) -> Self:
        """Register under ``key``; the binding is then only reachable with ``resolve_keyed``."""
        self._key = key
        return self

    # endregion Identifiers

    # region Lifetimes
    def single_instance(self) -> Self:
        return self.with_lifetime(Lifetime.SINGLETON)

    def instance_per_request(self) -> Self:
        return self.with_lifetime(Lifetime.PER_REQUEST)

    def instance_per_dependency(self) -> Self:
        return self.with_lifetime(Lifetime.TRANSIENT)

    def with_lifetime(self, lifetime: Lifetime) -> Self:
        if self._kind is _RegistrationKind.INSTANCE and lifetime is not Lifetime.SINGLETON:
            msg = "Instance registrations are always singletons."
            raise DIWeaveInvalidRegistrationError(msg)
        self._lifetime = lifetime
        return self

    # endregion Lifetimes

    def autowire(
        self,
        *,
        mapping: Mapping[str, ParameterResolverFn] | None = None,
        resolvers: Sequence[ParameterResolverFn] | None = None,
    ) -> Self:
        """Choose how constructor arguments are produced for a type registration.

        Args:
            mapping: Keyword arguments by parameter name, each produced by a
                callable receiving the resolver.
            resolvers: Positional arguments in parameter order, each produced
                by a callable receiving the resolver.

        Without arguments, resolvers are generated from the constructor's type
        annotations, which is also what happens when ``autowire`` is never
        called.
        """
        if self._kind is not _RegistrationKind.TYPE:
            msg = "autowire() is only available for register_type registrations."
            raise DIWeaveInvalidRegistrationError(msg)
        if mapping is not None and resolvers is not None:
            msg = "Provide either `mapping` or `resolvers`, not both."
            raise DIWeaveInvalidRegistrationError(msg)
        for parameter_resolver in (*(mapping or {}).values(), *(resolvers or ())):
            if not callable(parameter_resolver):
                msg = f"Parameter resolvers must be callables, got {parameter_resolver!r}."
                raise DIWeaveInvalidRegistrationError(msg)

        self._mapping = dict(mapping) if mapping is not None else None
        self._resolvers = tuple(resolvers) if resolvers is not None else None
        return self

    def to_binding(self) -> Binding:
        """Materialize the registration as an immutable binding."""
        identifiers = list(self._identifiers)
        if not identifiers:
            if self._kind is _RegistrationKind.FACTORY:
                msg = f"Factory registration {self._target!r} needs as_(identifier)."
                raise DIWeaveInvalidRegistrationError(msg)
            identifiers.append(Identifier.for_type(self._own_type()))

        factory, is_leaf = self._build_factory()
        return Binding(
            identifier=identifiers[0],
            aliases=tuple(identifiers[1:]),
            factory=factory,
            lifetime=self._lifetime,
            key=self._key,
            is_leaf=is_leaf,
        )

    def _build_factory(self) -> tuple[Callable[[Any], Any], bool]:
        if self._kind is _RegistrationKind.INSTANCE:
            return InstanceFactory(self._target), True

        if self._kind is _RegistrationKind.FACTORY:
            if self._validator.factory_takes_resolver(self._target):
                return self._target, False
            return NoArgsCallableFactory(self._target), True

        concrete_type = self._target
        if self._mapping is not None:
            if not self._mapping:
                return TypeFactory(concrete_type), True
            return ArgsTypeFactory(concrete_type, keywords=self._mapping), False
        if self._resolvers is not None:
            if not self._resolvers:
                return TypeFactory(concrete_type), True
            return ArgsTypeFactory(concrete_type, positional=self._resolvers), False

        generated = self._resolver_generator.for_type(concrete_type)
        if not generated:
            return TypeFactory(concrete_type), True
        return self._generated_factory(concrete_type, generated), False

    def _generated_factory(
        self,
        concrete_type: type[Any],
        generated: tuple[ParameterResolver, ...],
    ) -> ArgsTypeFactory:
        return ArgsTypeFactory(
            concrete_type,
            positional=[resolver for resolver in generated if resolver.positional_only],
            keywords={
                resolver.name: resolver for resolver in generated if not resolver.positional_only
            },
        )

    def _own_type(self) -> Any:
        if self._kind is _RegistrationKind.INSTANCE:
            return type(self._target)
        return self._target


class Builder:
    """Collect registrations and build engines from them.

    Each ``build`` produces a new root engine over a frozen registry, so one
    builder can produce several independent engines.

    Examples:
        .. code-block:: python

            builder = Builder()
            builder.register_type(ConsoleLogger).as_(LOGGER)
            builder.register_type(Service).as_(SERVICE).instance_per_dependency()
            engine = builder.build()

    """

    def __init__(
        self,
        *,
        default_lifetime: Lifetime = DEFAULT_LIFETIME,
        lock_mode: LockMode = DEFAULT_LOCK_MODE,
        pool_capacity: int = DEFAULT_POOL_CAPACITY,
    ) -> None:
        """Initialize a builder.

        Args:
            default_lifetime: Lifetime used by registrations that never pick one.
            lock_mode: Singleton locking strategy of built engines.
            pool_capacity: Context pool capacity of built engines.

        """
        self._default_lifetime = default_lifetime
        self._lock_mode = lock_mode
        self._pool_capacity = pool_capacity
        self._validator = RegistrationValidator()
        self._resolver_generator = ResolverGenerator()
        self._entries: list[Binding | RegistrationBuilder] = []

    # region Registration Methods
    def register_type(self, concrete_type: type[Any]) -> RegistrationBuilder:
        """Register a class; its constructor arguments are autowired by default."""
        self._validator.validate_concrete_type(concrete_type)
        return self._add_registration(_RegistrationKind.TYPE, concrete_type, self._default_lifetime)

    def register_instance(self, instance: Any) -> RegistrationBuilder:
        """Register a pre-built instance. Instance registrations are singletons."""
        return self._add_registration(_RegistrationKind.INSTANCE, instance, Lifetime.SINGLETON)

    def register(self, factory: Callable[..., Any]) -> RegistrationBuilder:
        """Register a factory taking the resolver (or nothing) and returning the instance."""
        self._validator.validate_factory(factory)
        return self._add_registration(_RegistrationKind.FACTORY, factory, self._default_lifetime)

    def bind_value(self, identifier: Identifier, value: Any) -> Self:
        """Shortcut for ``register_instance(value).as_(identifier)``."""
        self.register_instance(value).as_(identifier)
        return self

    def add_bindings(self, bindings: Iterable[Binding]) -> Self:
        """Append ready-made binding records."""
        self._entries.extend(bindings)
        return self

    def module(self, configure: Callable[[Builder], object]) -> Self:
        """Apply a group of registrations defined as a function of the builder."""
        configure(self)
        return self

    # endregion Registration Methods

    def bindings(self) -> list[Binding]:
        """Materialize every registration, in registration order."""
        return [
            entry.to_binding() if isinstance(entry, RegistrationBuilder) else entry
            for entry in self._entries
        ]

    def build(self) -> Engine:
        """Build a new root engine over a frozen registry of the current registrations."""
        registry = BindingRegistry(self.bindings())
        logger.debug("Building engine from %d bindings", len(registry))
        return Engine(
            registry,
            lock_mode=self._lock_mode,
            pool_capacity=self._pool_capacity,
        )

    def build_child(self, parent: Engine) -> Engine:
        """Build a child scope of ``parent`` whose local layer holds these registrations."""
        return parent.create_child(self.bindings())

    def _add_registration(
        self,
        kind: _RegistrationKind,
        target: Any,
        lifetime: Lifetime,
    ) -> RegistrationBuilder:
        registration = RegistrationBuilder(
            kind=kind,
            target=target,
            lifetime=lifetime,
            validator=self._validator,
            resolver_generator=self._resolver_generator,
        )
        self._entries.append(registration)
        return registration

    def __len__(self) -> int:
        return len(self._entries)
