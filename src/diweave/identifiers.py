from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any

_TOKEN_COUNTER = itertools.count(1)


@dataclass(frozen=True, slots=True)
class Identifier:
    """Opaque handle naming a requested type, optionally paired with a key.

    Identity and hashing depend only on ``tag`` and ``key``; an identifier
    never compares equal to a plain tuple or any other type. The engine never
    derives tags itself; they come from the registration side, either written
    by hand, created with ``token`` or derived with ``Identifier.for_type``.

    Examples:
        .. code-block:: python

            LOGGER = Identifier("app.Logger")
            PRIMARY_DB = Identifier("app.Database", "primary")

    """

    tag: str
    key: str | None = None

    def with_key(self, key: str | None) -> Identifier:
        """Return the identifier for the same tag under ``key``."""
        if key == self.key:
            return self
        return Identifier(self.tag, key)

    @property
    def unkeyed(self) -> Identifier:
        return self.with_key(None)

    @classmethod
    def for_type(cls, declared_type: Any, key: str | None = None) -> Identifier:
        """Derive a stable identifier for a declared type.

        Classes map to ``module.qualname``; anything else (typing aliases,
        strings) maps to its ``repr``/text. This belongs to the registration
        side and is never called while resolving.
        """
        if isinstance(declared_type, str):
            return cls(declared_type, key)
        module = getattr(declared_type, "__module__", None)
        qualname = getattr(declared_type, "__qualname__", None)
        if module is not None and qualname is not None:
            return cls(f"{module}.{qualname}", key)
        return cls(repr(declared_type), key)

    def __str__(self) -> str:
        if self.key is None:
            return self.tag
        return f"{self.tag}[{self.key}]"


def token(name: str = "token") -> Identifier:
    """Create a fresh identifier that cannot collide with any other token.

    Two calls with the same ``name`` return different identifiers.
    """
    return Identifier(f"{name}#{next(_TOKEN_COUNTER)}")
