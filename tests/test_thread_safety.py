"""Tests for concurrent resolution from multiple threads."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from diweave.bindings import Binding, Lifetime
from diweave.engine import Engine, Resolver
from diweave.exceptions import DIWeaveCircularDependencyError
from diweave.identifiers import Identifier
from diweave.lock_mode import LockMode
from diweave.registry import BindingRegistry

THREADS = 8
SERVICE = Identifier("Service")
SESSION = Identifier("Session")
HANDLER = Identifier("Handler")


class Service:
    pass


class Session:
    pass


class Handler:
    def __init__(self, first: Session, second: Session) -> None:
        self.first = first
        self.second = second


def _run_concurrently(engine: Engine, identifier: Identifier) -> tuple[list[Any], list[BaseException]]:
    barrier = threading.Barrier(THREADS)
    results: list[Any] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def worker() -> None:
        try:
            barrier.wait()
            instance = engine.resolve(identifier)
            with lock:
                results.append(instance)
        except BaseException as e:  # noqa: BLE001
            with lock:
                errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class TestConcurrentSingletons:
    def test_thread_lock_mode_runs_factory_once(self) -> None:
        """All threads racing on the first access share one instance built once."""
        calls: list[int] = []

        def slow_factory(_: Resolver) -> Service:
            calls.append(1)
            time.sleep(0.01)
            return Service()

        engine = Engine(
            BindingRegistry([Binding(identifier=SERVICE, factory=slow_factory)]),
            lock_mode=LockMode.THREAD,
        )

        results, errors = _run_concurrently(engine, SERVICE)

        assert not errors
        assert len(results) == THREADS
        assert all(instance is results[0] for instance in results)
        assert len(calls) == 1

    def test_no_lock_mode_publishes_one_instance(self) -> None:
        """Without locks the factory may run more than once but one instance wins."""

        def slow_factory(_: Resolver) -> Service:
            time.sleep(0.01)
            return Service()

        engine = Engine(
            BindingRegistry([Binding(identifier=SERVICE, factory=slow_factory)]),
            lock_mode=LockMode.NONE,
        )

        results, errors = _run_concurrently(engine, SERVICE)

        assert not errors
        assert len(results) == THREADS
        assert all(instance is results[0] for instance in results)
        assert engine.resolve(SERVICE) is results[0]

    @pytest.mark.parametrize("lock_mode", [LockMode.THREAD, LockMode.NONE])
    def test_parent_singleton_through_children(self, lock_mode: LockMode) -> None:
        root = Engine(
            BindingRegistry([Binding(identifier=SERVICE, factory=lambda _: Service())]),
            lock_mode=lock_mode,
        )

        def resolve_in_child() -> Service:
            return root.create_child().resolve(SERVICE)

        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            results = list(executor.map(lambda _: resolve_in_child(), range(50)))

        assert all(instance is results[0] for instance in results)
        assert root.resolve(SERVICE) is results[0]


class TestConcurrentResolutionTrees:
    def test_per_request_instances_are_isolated_across_threads(self) -> None:
        engine = Engine(
            BindingRegistry(
                [
                    Binding(
                        identifier=SESSION,
                        factory=lambda _: Session(),
                        lifetime=Lifetime.PER_REQUEST,
                    ),
                    Binding(
                        identifier=HANDLER,
                        factory=lambda r: Handler(r.resolve(SESSION), r.resolve(SESSION)),
                        lifetime=Lifetime.TRANSIENT,
                    ),
                ],
            ),
        )

        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            handlers = list(executor.map(lambda _: engine.resolve(HANDLER), range(100)))

        assert all(handler.first is handler.second for handler in handlers)
        sessions = {id(handler.first) for handler in handlers}
        assert len(sessions) == len(handlers)

    def test_concurrent_trees_do_not_report_false_cycles(self) -> None:
        """Two threads building the same identifier at once are not a cycle."""
        barrier = threading.Barrier(2)

        def waiting_factory(_: Resolver) -> Session:
            barrier.wait(timeout=5)
            return Session()

        engine = Engine(
            BindingRegistry(
                [
                    Binding(
                        identifier=SESSION,
                        factory=waiting_factory,
                        lifetime=Lifetime.TRANSIENT,
                    ),
                ],
            ),
        )

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(engine.resolve, SESSION) for _ in range(2)]
            first, second = (future.result(timeout=10) for future in futures)

        assert first is not second

    def test_pool_stays_within_capacity(self) -> None:
        engine = Engine(
            BindingRegistry(
                [Binding(identifier=SESSION, factory=lambda _: Session(), lifetime=Lifetime.PER_REQUEST)],
            ),
            pool_capacity=2,
        )

        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            list(executor.map(lambda _: engine.resolve(SESSION), range(200)))

        assert len(engine.pool) <= 2


class TestCrossThreadSingletonCycles:
    def test_opposite_ends_of_singleton_cycle_fail_instead_of_hanging(self) -> None:
        """Two threads each holding one singleton of an A -> B -> A cycle both fail fast."""
        a = Identifier("A")
        b = Identifier("B")
        both_building = threading.Barrier(2)
        first_call = {a: True, b: True}

        def factory_for(own: Identifier, dependency: Identifier) -> Any:
            def factory(r: Resolver) -> object:
                if first_call.pop(own, False):
                    both_building.wait(timeout=5)
                return r.resolve(dependency)

            return factory

        engine = Engine(
            BindingRegistry(
                [
                    Binding(identifier=a, factory=factory_for(a, b)),
                    Binding(identifier=b, factory=factory_for(b, a)),
                ],
            ),
            lock_mode=LockMode.THREAD,
        )
        errors: list[BaseException] = []
        results: list[Any] = []
        lock = threading.Lock()

        def worker(identifier: Identifier) -> None:
            try:
                instance = engine.resolve(identifier)
                with lock:
                    results.append(instance)
            except BaseException as e:  # noqa: BLE001
                with lock:
                    errors.append(e)

        threads = [
            threading.Thread(target=worker, args=(identifier,), daemon=True)
            for identifier in (a, b)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert [t.is_alive() for t in threads] == [False, False]
        assert not results
        assert len(errors) == 2
        assert all(isinstance(error, DIWeaveCircularDependencyError) for error in errors)

    def test_engine_recovers_after_cross_thread_cycle(self) -> None:
        """Lock bookkeeping is cleared, so unrelated singletons still build afterwards."""
        a = Identifier("A")
        b = Identifier("B")
        ok = Identifier("Ok")
        both_building = threading.Barrier(2)
        first_call = {a: True, b: True}

        def factory_for(own: Identifier, dependency: Identifier) -> Any:
            def factory(r: Resolver) -> object:
                if first_call.pop(own, False):
                    both_building.wait(timeout=5)
                return r.resolve(dependency)

            return factory

        engine = Engine(
            BindingRegistry(
                [
                    Binding(identifier=a, factory=factory_for(a, b)),
                    Binding(identifier=b, factory=factory_for(b, a)),
                    Binding(identifier=ok, factory=lambda _: Service()),
                ],
            ),
        )

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(engine.resolve, identifier) for identifier in (a, b)]
            for future in futures:
                with pytest.raises(DIWeaveCircularDependencyError):
                    future.result(timeout=5)

        assert isinstance(engine.resolve(ok), Service)
        with pytest.raises(DIWeaveCircularDependencyError):
            engine.resolve(a)
