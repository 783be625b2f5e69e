from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, ClassVar, TypeAlias

from diweave.identifiers import Identifier

if TYPE_CHECKING:
    from diweave.engine import Resolver

Factory: TypeAlias = "Callable[[Resolver], Any]"
"""A callable receiving the resolver and returning the built instance."""

BindingSlot: TypeAlias = int
"""A unique slot number assigned to each binding in registration order."""


class Lifetime(Enum):
    """Defines how instances produced by a binding are shared."""

    SINGLETON = auto()
    """A single instance is created and shared for the lifetime of the owning engine."""

    TRANSIENT = auto()
    """A new instance is created every time the binding is resolved."""

    PER_REQUEST = auto()
    """Instance is shared within one resolution tree, different across top-level calls."""


@dataclass(frozen=True, kw_only=True, eq=False)
class Binding:
    """An immutable rule mapping an identifier to a factory and a lifetime."""

    SLOT_COUNTER: ClassVar[itertools.count[int]] = itertools.count(1)

    identifier: Identifier
    """The identifier this binding satisfies."""
    factory: Factory
    """Builds the instance; receives the resolver used for nested resolutions."""
    lifetime: Lifetime = Lifetime.SINGLETON
    """How built instances are shared."""
    key: str | None = None
    """Optional key; keyed bindings are reachable only through keyed identifiers."""
    aliases: tuple[Identifier, ...] = ()
    """Extra identifiers this binding is also reachable under."""
    is_leaf: bool = False
    """True when the factory never calls back into the resolver."""

    slot: BindingSlot = field(init=False)
    """A unique slot number, used as the cache key for built instances."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "slot", next(self.SLOT_COUNTER))

    @property
    def identifiers(self) -> tuple[Identifier, ...]:
        """All identifiers this binding is indexed under, keyed when ``key`` is set."""
        seen: dict[Identifier, None] = {}
        for identifier in (self.identifier, *self.aliases):
            seen.setdefault(identifier.with_key(self.key), None)
        return tuple(seen)

    def __repr__(self) -> str:
        return (
            f"Binding({self.identifier!s}, lifetime={self.lifetime.name}, "
            f"key={self.key!r}, slot={self.slot})"
        )
