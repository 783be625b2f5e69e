"""Shared pytest fixtures for diweave tests."""

import pytest

from diweave.builder import Builder
from diweave.identifiers import Identifier
from diweave.lock_mode import LockMode


@pytest.fixture()
def builder() -> Builder:
    """Default builder; registrations are singletons unless stated otherwise."""
    return Builder()


@pytest.fixture()
def builder_no_lock() -> Builder:
    """Builder whose engines publish singletons first-writer-wins, without locks."""
    return Builder(lock_mode=LockMode.NONE)


@pytest.fixture()
def logger_id() -> Identifier:
    return Identifier("Logger")


@pytest.fixture()
def service_id() -> Identifier:
    return Identifier("Service")
