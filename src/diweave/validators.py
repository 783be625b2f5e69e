from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

from diweave.exceptions import DIWeaveInvalidRegistrationError


class RegistrationValidator:
    """Validates registrations before they are turned into bindings."""

    def validate_concrete_type(self, concrete_type: object) -> None:
        """Validate that a registered type is instantiable."""
        if not inspect.isclass(concrete_type):
            msg = f"register_type expects a class, got {concrete_type!r}."
            raise DIWeaveInvalidRegistrationError(msg)

        if inspect.isabstract(concrete_type):
            msg = f"Registered type '{concrete_type.__qualname__}' cannot be an abstract class."
            raise DIWeaveInvalidRegistrationError(msg)

    def validate_factory(self, factory: object) -> None:
        if not callable(factory):
            msg = f"register expects a callable factory, got {factory!r}."
            raise DIWeaveInvalidRegistrationError(msg)

    def factory_takes_resolver(self, factory: Callable[..., Any]) -> bool:
        """Tell whether a factory accepts the resolver argument.

        Factories whose signature cannot be read are assumed to take it.
        """
        try:
            parameters = inspect.signature(factory).parameters.values()
        except (TypeError, ValueError):
            return True
        return any(
            parameter.kind
            in (
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
                inspect.Parameter.VAR_POSITIONAL,
            )
            for parameter in parameters
        )
