from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from diweave.engine import Engine
from diweave.identifiers import Identifier

logger = logging.getLogger(__name__)


@pytest.fixture()
def diweave_engine() -> Engine:
    """Fixture hook for the plugin-managed test engine.

    Users must override this fixture in their own test suite to provide
    the engine their tests resolve from.

    """
    msg = (
        "The diweave pytest plugin requires overriding the 'diweave_engine' fixture in your "
        "test suite. Define @pytest.fixture() def diweave_engine() -> Engine: ... "
        "and return a built engine."
    )
    raise RuntimeError(msg)


@pytest.fixture()
def diweave_scope(diweave_engine: Engine) -> Iterator[Engine]:
    """Provide a fresh child scope of ``diweave_engine`` for each test.

    Singletons registered on the engine are shared across tests that use the
    same engine; anything the scope builds for itself is dropped after the test.

    Yields:
        A child engine with no local bindings.

    """
    scope = diweave_engine.create_child()
    logger.debug("Opened test scope %r", scope)
    yield scope
    logger.debug("Closed test scope %r", scope)


@pytest.fixture()
def diweave_resolve(diweave_scope: Engine) -> Callable[[Identifier], Any]:
    """Return the ``resolve`` method of the per-test scope."""
    return diweave_scope.resolve
