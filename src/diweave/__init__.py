from diweave.autowire import Key, ResolverGenerator
from diweave.bindings import Binding, Lifetime
from diweave.builder import Builder, RegistrationBuilder
from diweave.context_pool import ContextPool
from diweave.engine import Engine, Resolver
from diweave.exceptions import (
    DIWeaveCircularDependencyError,
    DIWeaveError,
    DIWeaveFactoryError,
    DIWeaveInvalidRegistrationError,
    DIWeaveNotRegisteredError,
    DIWeaveRegistryFrozenError,
    DIWeaveResolverGenerationError,
)
from diweave.identifiers import Identifier, token
from diweave.lock_mode import LockMode
from diweave.registry import BindingRegistry
from diweave.resolution_context import ResolutionContext

__all__ = [
    "Binding",
    "BindingRegistry",
    "Builder",
    "ContextPool",
    "DIWeaveCircularDependencyError",
    "DIWeaveError",
    "DIWeaveFactoryError",
    "DIWeaveInvalidRegistrationError",
    "DIWeaveNotRegisteredError",
    "DIWeaveRegistryFrozenError",
    "DIWeaveResolverGenerationError",
    "Engine",
    "Identifier",
    "Key",
    "Lifetime",
    "LockMode",
    "RegistrationBuilder",
    "ResolutionContext",
    "Resolver",
    "ResolverGenerator",
    "token",
]
