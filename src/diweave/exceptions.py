from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from diweave.bindings import Binding
    from diweave.identifiers import Identifier


class DIWeaveError(Exception):
    """Represent a base class for all diweave-specific failures.

    Catch this type when you want to handle any diweave error path without
    matching each concrete exception class individually.
    """


class DIWeaveInvalidRegistrationError(DIWeaveError):
    """Signal invalid registration configuration.

    Raised by ``Builder`` and ``RegistrationBuilder`` when a registration
    cannot be turned into a binding, for example a ``register_type`` call with
    something that is not a class or an abstract class, or a factory
    registration that never names an identifier.
    """


class DIWeaveRegistryFrozenError(DIWeaveInvalidRegistrationError):
    """Signal a mutation of a registry that has already been frozen.

    Registries are frozen when an engine is built over them. Create a child
    scope with extra bindings instead of mutating a built registry.
    """


class DIWeaveResolverGenerationError(DIWeaveInvalidRegistrationError):
    """Signal that constructor resolvers cannot be generated for a type.

    Common triggers are missing or unresolvable type annotations on required
    constructor parameters.

    Typical fixes include adding concrete parameter annotations or passing
    explicit ``mapping=`` or ``resolvers=`` to ``autowire``.
    """


class DIWeaveNotRegisteredError(DIWeaveError):
    """Signal that no binding is reachable for an identifier.

    Raised by ``resolve`` and ``resolve_keyed`` when neither the engine nor any
    of its ancestors holds a binding for the requested identifier (or for the
    requested key). ``resolve_all`` never raises it.
    """

    def __init__(self, identifier: Identifier) -> None:
        self.identifier = identifier
        super().__init__(f"Identifier {identifier} is not registered")


class DIWeaveCircularDependencyError(DIWeaveError):
    """Signal that an identifier was requested while it was being constructed.

    ``cycle`` holds exactly the identifiers forming the cycle, in traversal
    order, starting with the identifier that was requested twice. ``path``
    holds the whole in-progress chain of the resolution tree at failure time.

    Singleton cycles split across threads (one thread building A and waiting
    on B while another builds B and waits on A) raise it as well; ``cycle``
    then lists the singletons the threads are waiting on, in chain order.
    """

    def __init__(
        self,
        identifier: Identifier,
        cycle: tuple[Identifier, ...],
        path: tuple[Identifier, ...],
    ) -> None:
        self.identifier = identifier
        self.cycle = cycle
        self.path = path
        chain = " -> ".join(str(item) for item in (*cycle, identifier))
        super().__init__(f"Circular dependency detected: {chain}")


class DIWeaveFactoryError(DIWeaveError):
    """Signal that a binding factory raised while building an instance.

    The original exception is kept as ``__cause__`` (and ``original``).
    Errors raised by nested resolutions inside the factory are not wrapped
    again; they reach the caller unchanged.
    """

    def __init__(self, binding: Binding, identifier: Identifier, original: Exception) -> None:
        self.binding = binding
        self.identifier = identifier
        self.original = original
        super().__init__(
            f"Factory for {identifier} raised {type(original).__name__}: {original}",
        )
