"""Binding factories produced by the registration surface.

Each factory is a small callable object taking the resolver. The constructor
arguments are fixed when the binding is built, so calling a factory involves
no reflection: it only runs the pre-computed resolvers and calls the type.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from diweave.engine import Resolver

ParameterResolverFn = Callable[["Resolver"], Any]
"""Produces one constructor argument from the resolver."""


class InstanceFactory:
    """Factory returning a pre-built instance."""

    __slots__ = ("_instance",)

    def __init__(self, instance: Any) -> None:
        self._instance = instance

    def __call__(self, resolver: Resolver) -> Any:
        return self._instance


class TypeFactory:
    """Factory for types with no dependencies - direct instantiation."""

    __slots__ = ("_type",)

    def __init__(self, t: type) -> None:
        self._type = t

    def __call__(self, resolver: Resolver) -> Any:
        return self._type()


class ArgsTypeFactory:
    """Factory for types with dependencies - uses a pre-computed resolver chain.

    ``positional`` feeds positional arguments in order, ``keywords`` feeds
    keyword arguments by parameter name.
    """

    __slots__ = ("_keywords", "_positional", "_type")

    def __init__(
        self,
        t: type,
        *,
        positional: Sequence[ParameterResolverFn] = (),
        keywords: Mapping[str, ParameterResolverFn] | None = None,
    ) -> None:
        self._type = t
        self._positional = tuple(positional)
        self._keywords = tuple((keywords or {}).items())

    def __call__(self, resolver: Resolver) -> Any:
        args = [parameter_resolver(resolver) for parameter_resolver in self._positional]
        kwargs = {name: parameter_resolver(resolver) for name, parameter_resolver in self._keywords}
        return self._type(*args, **kwargs)


class NoArgsCallableFactory:
    """Adapts a zero-argument callable to the factory signature."""

    __slots__ = ("_callable",)

    def __init__(self, fn: Callable[[], Any]) -> None:
        self._callable = fn

    def __call__(self, resolver: Resolver) -> Any:
        return self._callable()
