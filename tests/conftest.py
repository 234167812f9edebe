"""
Shared fixtures: an in-memory resource provider and workload/runner factories
"""
import random
import threading
import pytest
from typing import Any, Dict, List

from fsm_harness.interfaces import IResourceProvider
from fsm_harness.models import WorkloadConfig, WorkerContext
from fsm_harness.fsm_engine.assertions import AssertionPolicy
from fsm_harness.fsm_engine.error_handler import ErrorHandler
from fsm_harness.fsm_engine.transition_table import TransitionTable
from fsm_harness.fsm_engine.worker_log_buffer import WorkerLogBuffer
from fsm_harness.fsm_engine.worker_runner import WorkerRunner
from fsm_harness.utils.valkey_utils import is_node_alive


def noop(handle, ctx):
    pass


class InMemoryCollection:
    """Dictionary-backed stand-in for a collection handle"""

    def __init__(self, name: str):
        self.name = name
        self.docs: Dict[Any, Any] = {}
        self.lock = threading.Lock()


class InMemoryResourceProvider(IResourceProvider):
    def __init__(self):
        self.handles: Dict[str, InMemoryCollection] = {}
        self.acquired: List[str] = []
        self.dropped: List[str] = []
        self.closed = False

    def acquire(self, name: str) -> InMemoryCollection:
        self.acquired.append(name)
        if name not in self.handles:
            self.handles[name] = InMemoryCollection(name)
        return self.handles[name]

    def drop(self, handle: InMemoryCollection) -> None:
        self.dropped.append(handle.name)
        handle.docs.clear()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def provider():
    return InMemoryResourceProvider()


@pytest.fixture
def make_workload():
    """Factory for a three-state workload; any field can be overridden"""
    def factory(**overrides) -> WorkloadConfig:
        fields = dict(
            name='test_workload',
            thread_count=2,
            iterations=5,
            states={'init': noop, 'a': noop, 'b': noop},
            transitions={
                'init': {'a': 0.5, 'b': 0.5},
                'a': {'a': 0.5, 'b': 0.5},
                'b': {'a': 0.5, 'b': 0.5},
            },
        )
        fields.update(overrides)
        return WorkloadConfig(**fields)
    return factory


@pytest.fixture
def make_runner():
    """Factory wiring a WorkerRunner the way the harness engine does"""
    def factory(workload: WorkloadConfig, tid: int = 0, seed: int = 1, handle: Any = None,
                stop_event=None, error_handler=None) -> WorkerRunner:
        context = WorkerContext(
            tid=tid,
            data=dict(workload.data),
            rng=random.Random(f"{seed}-{tid}"),
            resource_name=f"{workload.name}_{tid}",
            asserts=AssertionPolicy(workload.resource_sharing),
            log=WorkerLogBuffer(str(tid)),
        )
        return WorkerRunner(
            workload,
            TransitionTable.build(workload),
            context,
            handle if handle is not None else InMemoryCollection(context.resource_name),
            error_handler or ErrorHandler(),
            stop_event=stop_event,
            seed=f"{seed}-{tid}",
        )
    return factory


@pytest.fixture
def valkey_available():
    """Skip tests that need a Valkey server on 127.0.0.1:6379"""
    if not is_node_alive("127.0.0.1", 6379, timeout=1.0):
        pytest.skip("Valkey server not available on 127.0.0.1:6379")
