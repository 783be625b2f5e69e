"""Generate constructor resolvers from type annotations.

This is the registration-side step that turns declared Python types into
identifiers and per-parameter resolver callables. The engine never calls it;
it only ever sees the identifiers and callables produced here.
"""

from __future__ import annotations

import collections.abc
import inspect
from dataclasses import dataclass
from enum import Enum
from inspect import Parameter
from typing import TYPE_CHECKING, Annotated, Any, get_args, get_origin, get_type_hints

from diweave.exceptions import DIWeaveResolverGenerationError
from diweave.identifiers import Identifier

if TYPE_CHECKING:
    from diweave.engine import Resolver

_MISSING_ANNOTATION: Any = object()
_IMPLICIT_FIRST_PARAMETER_NAMES = {"self", "cls"}
_COLLECTION_ORIGINS: tuple[Any, ...] = (
    list,
    collections.abc.Sequence,
    collections.abc.Iterable,
    collections.abc.Collection,
)


@dataclass(frozen=True, slots=True)
class Key:
    """Select a keyed binding for an annotated constructor parameter.

    Examples:
        .. code-block:: python

            class Reports:
                def __init__(self, db: Annotated[Database, Key("replica")]) -> None: ...

    """

    value: str


class ResolveKind(Enum):
    ONE = "one"
    ALL = "all"
    KEYED = "keyed"


@dataclass(frozen=True, slots=True)
class ParameterResolver:
    """Resolves one constructor parameter through the resolver."""

    name: str
    identifier: Identifier
    kind: ResolveKind
    positional_only: bool = False

    def __call__(self, resolver: Resolver) -> Any:
        if self.kind is ResolveKind.ALL:
            return resolver.resolve_all(self.identifier)
        if self.kind is ResolveKind.KEYED:
            return resolver.resolve_keyed(self.identifier.unkeyed, self.identifier.key or "")
        return resolver.resolve(self.identifier)


@dataclass(slots=True)
class ResolverGenerator:
    """Extracts parameter resolvers from constructor annotations.

    ``list[T]``, ``Sequence[T]``, ``Iterable[T]`` and ``tuple[T, ...]``
    parameters resolve every binding of ``T``; ``Annotated[T, Key("k")]``
    resolves the binding keyed ``k``; any other annotation resolves ``T``.
    Parameters with a default value are left to their default.
    """

    def for_type(self, concrete_type: type[Any]) -> tuple[ParameterResolver, ...]:
        """Generate resolvers for the constructor of a class."""
        return self._generate(
            provider=concrete_type.__init__,
            provider_name=concrete_type.__qualname__,
            skip_first_parameter=True,
        )

    def for_callable(self, fn: collections.abc.Callable[..., Any]) -> tuple[ParameterResolver, ...]:
        """Generate resolvers for the parameters of a plain callable."""
        return self._generate(
            provider=fn,
            provider_name=getattr(fn, "__qualname__", repr(fn)),
            skip_first_parameter=False,
        )

    def _generate(
        self,
        *,
        provider: collections.abc.Callable[..., Any],
        provider_name: str,
        skip_first_parameter: bool,
    ) -> tuple[ParameterResolver, ...]:
        parameters = self._provider_parameters(
            provider=provider,
            skip_first_parameter=skip_first_parameter,
        )
        annotations, annotation_error = self._resolved_type_hints(provider)
        resolvers: list[ParameterResolver] = []

        for parameter in parameters:
            if not self._is_required_parameter(parameter):
                continue
            annotation = self._resolve_parameter_annotation(
                parameter=parameter,
                annotations=annotations,
                annotation_error=annotation_error,
                provider_name=provider_name,
            )
            resolvers.append(self._parameter_resolver(parameter, annotation))

        return tuple(resolvers)

    def _parameter_resolver(self, parameter: Parameter, annotation: Any) -> ParameterResolver:
        annotation, key = self._unwrap_annotated(annotation)
        positional_only = parameter.kind is Parameter.POSITIONAL_ONLY

        item_type = self._collection_item_type(annotation)
        if item_type is not _MISSING_ANNOTATION:
            item_type, item_key = self._unwrap_annotated(item_type)
            return ParameterResolver(
                name=parameter.name,
                identifier=Identifier.for_type(item_type, key or item_key),
                kind=ResolveKind.ALL,
                positional_only=positional_only,
            )

        return ParameterResolver(
            name=parameter.name,
            identifier=Identifier.for_type(annotation, key),
            kind=ResolveKind.ONE if key is None else ResolveKind.KEYED,
            positional_only=positional_only,
        )

    def _collection_item_type(self, annotation: Any) -> Any:
        origin = get_origin(annotation)
        args = get_args(annotation)
        if origin in _COLLECTION_ORIGINS and len(args) == 1:
            return args[0]
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:  # noqa: PLR2004
            return args[0]
        return _MISSING_ANNOTATION

    def _unwrap_annotated(self, annotation: Any) -> tuple[Any, str | None]:
        """Strip ``Annotated`` layers, returning the inner type and any ``Key``."""
        key: str | None = None
        while get_origin(annotation) is Annotated:
            args = get_args(annotation)
            for metadata in args[1:]:
                if isinstance(metadata, Key):
                    key = metadata.value
            annotation = args[0]
        return annotation, key

    def _resolve_parameter_annotation(
        self,
        *,
        parameter: Parameter,
        annotations: dict[str, Any],
        annotation_error: Exception | None,
        provider_name: str,
    ) -> Any:
        annotation = annotations.get(parameter.name, _MISSING_ANNOTATION)
        if annotation is not _MISSING_ANNOTATION:
            return annotation

        raw_annotation = parameter.annotation
        if raw_annotation is not Parameter.empty and not isinstance(raw_annotation, str):
            return raw_annotation

        error_message = (
            f"Unable to generate a resolver for required parameter '{parameter.name}' "
            f"of '{provider_name}'. Add a type annotation or pass explicit resolvers."
        )
        if annotation_error is None:
            raise DIWeaveResolverGenerationError(error_message)
        msg = f"{error_message} Original annotation error: {annotation_error}"
        raise DIWeaveResolverGenerationError(msg) from annotation_error

    def _provider_parameters(
        self,
        *,
        provider: collections.abc.Callable[..., Any],
        skip_first_parameter: bool,
    ) -> tuple[Parameter, ...]:
        try:
            parameters = tuple(inspect.signature(provider).parameters.values())
        except (TypeError, ValueError) as error:
            msg = f"Unable to read the signature of {provider!r}."
            raise DIWeaveResolverGenerationError(msg) from error
        if (
            skip_first_parameter
            and parameters
            and parameters[0].name in _IMPLICIT_FIRST_PARAMETER_NAMES
        ):
            return parameters[1:]
        return parameters

    def _resolved_type_hints(
        self,
        provider: collections.abc.Callable[..., Any],
    ) -> tuple[dict[str, Any], Exception | None]:
        try:
            return get_type_hints(provider, include_extras=True), None
        except (AttributeError, NameError, TypeError) as error:
            return {}, error

    def _is_required_parameter(self, parameter: Parameter) -> bool:
        return (
            parameter.default is Parameter.empty
            and parameter.kind is not Parameter.VAR_POSITIONAL
            and parameter.kind is not Parameter.VAR_KEYWORD
        )
