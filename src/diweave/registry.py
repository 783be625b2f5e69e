from __future__ import annotations

from collections.abc import Iterable, Iterator

from diweave.bindings import Binding
from diweave.exceptions import DIWeaveRegistryFrozenError
from diweave.identifiers import Identifier

_EMPTY: tuple[Binding, ...] = ()


class BindingRegistry:
    """Holds the bindings of one scope layer, optionally layered over a parent.

    Each identifier maps to the ordered tuple of bindings registered for it.
    A lookup falls through to the parent layer only when this layer holds no
    binding for the identifier, which lets a child layer shadow its parent
    without touching it.
    """

    __slots__ = ("_bindings", "_by_identifier", "_frozen", "_parent")

    def __init__(
        self,
        bindings: Iterable[Binding] = (),
        *,
        parent: BindingRegistry | None = None,
    ) -> None:
        self._parent = parent
        self._bindings: list[Binding] = []
        self._by_identifier: dict[Identifier, tuple[Binding, ...]] = {}
        self._frozen = False
        for binding in bindings:
            self.add(binding)

    @property
    def parent(self) -> BindingRegistry | None:
        return self._parent

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add(self, binding: Binding) -> None:
        """Append a binding under each of its identifiers."""
        if self._frozen:
            msg = f"Cannot add {binding!r}: the registry is frozen."
            raise DIWeaveRegistryFrozenError(msg)
        self._bindings.append(binding)
        for identifier in binding.identifiers:
            self._by_identifier[identifier] = (*self._by_identifier.get(identifier, _EMPTY), binding)

    def freeze(self) -> BindingRegistry:
        """Finalize the layer; later ``add`` calls fail. Returns ``self``."""
        self._frozen = True
        return self

    def get_local(self, identifier: Identifier) -> tuple[Binding, ...]:
        """Get the bindings registered on this layer only."""
        return self._by_identifier.get(identifier, _EMPTY)

    def get(self, identifier: Identifier) -> tuple[Binding, ...]:
        """Get the bindings for an identifier from the nearest layer that has any."""
        layer: BindingRegistry | None = self
        while layer is not None:
            bindings = layer._by_identifier.get(identifier)
            if bindings:
                return bindings
            layer = layer._parent
        return _EMPTY

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, Identifier) and bool(self.get(identifier))

    def identifiers(self) -> list[Identifier]:
        """Get the identifiers registered on this layer, in first-registration order."""
        return list(self._by_identifier)

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)
