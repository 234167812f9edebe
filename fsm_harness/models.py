"""
Core data models for the FSM workload harness
"""
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from .errors import ConfigError


class ResourceSharing(Enum):
    """Ownership model of the resource a workload operates on"""
    EXCLUSIVE = "exclusive"  # one private resource per worker
    SHARED = "shared"  # all workers race on one resource


class WorkerStatus(Enum):
    """Terminal status of a worker"""
    COMPLETED = "completed"
    FATAL = "fatal"
    ABORTED = "aborted"  # stopped by fail-fast after a sibling failed


class ErrorClass(Enum):
    """Classification of a failure raised by a state action"""
    TOLERATED = "tolerated"
    FATAL = "fatal"


StateFn = Callable[[Any, "WorkerContext"], None]
HookFn = Callable[[Any, Dict[str, Any]], None]


@dataclass(frozen=True)
class WorkloadConfig:
    """
    Declarative FSM workload definition.

    `states` maps a state name to its action, called as ``action(handle, ctx)``.
    `transitions` maps a state name to ``{next_state: weight}``; weights of one
    source state must sum to 1.
    """
    name: str
    states: Mapping[str, StateFn]
    transitions: Mapping[str, Mapping[str, float]]
    thread_count: int = 1
    iterations: int = 1
    data: Dict[str, Any] = field(default_factory=dict)
    start_state: str = "init"
    terminal_states: FrozenSet[str] = frozenset()
    resource_sharing: ResourceSharing = ResourceSharing.EXCLUSIVE
    tolerated_codes: FrozenSet[str] = frozenset()
    tolerated_errors: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    non_idempotent_states: FrozenSet[str] = frozenset()
    setup: Optional[HookFn] = None
    teardown: Optional[HookFn] = None
    sync_after_init: bool = False

    def __post_init__(self):
        if isinstance(self.thread_count, bool) or not isinstance(self.thread_count, int) or self.thread_count <= 0:
            raise ConfigError(f"Workload '{self.name}': thread_count must be a positive integer, got {self.thread_count!r}")
        if isinstance(self.iterations, bool) or not isinstance(self.iterations, int) or self.iterations <= 0:
            raise ConfigError(f"Workload '{self.name}': iterations must be a positive integer, got {self.iterations!r}")
        object.__setattr__(self, 'terminal_states', frozenset(self.terminal_states))
        object.__setattr__(self, 'tolerated_codes', frozenset(self.tolerated_codes))
        object.__setattr__(self, 'non_idempotent_states', frozenset(self.non_idempotent_states))
        object.__setattr__(self, 'tolerated_errors', {
            state: frozenset(codes) for state, codes in self.tolerated_errors.items()
        })

    def tolerated_codes_for(self, state: str) -> FrozenSet[str]:
        """Effective tolerated codes for a state: workload-wide codes plus the state's own"""
        return self.tolerated_codes | self.tolerated_errors.get(state, frozenset())


@dataclass
class WorkerContext:
    """Per-worker mutable bag, owned exclusively by its worker"""
    tid: int
    data: Dict[str, Any]
    rng: random.Random
    resource_name: str
    asserts: Any = None  # AssertionPolicy
    log: Any = None  # WorkerLogBuffer
    iteration: int = 0
    state: Optional[str] = None


@dataclass
class WorkerError:
    """Diagnostic record of a failure inside a worker"""
    message: str
    state: str
    iteration: int
    tid: int
    error_code: Optional[str] = None
    error_type: Optional[str] = None
    payload: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'state': self.state,
            'iteration': self.iteration,
            'tid': self.tid,
            'error_code': self.error_code,
            'error_type': self.error_type,
            'payload': repr(self.payload) if self.payload is not None else None,
        }


@dataclass
class RunResult:
    """Outcome of one worker"""
    tid: int
    iterations_completed: int
    status: WorkerStatus
    error: Optional[WorkerError] = None
    tolerated_errors: List[WorkerError] = field(default_factory=list)
    trace: List[str] = field(default_factory=list)
    seed: Optional[str] = None

    @property
    def classification(self) -> Optional[ErrorClass]:
        if self.status == WorkerStatus.FATAL:
            return ErrorClass.FATAL
        if self.tolerated_errors:
            return ErrorClass.TOLERATED
        return None

    @property
    def status_text(self) -> str:
        """`completed`, `aborted` or `fatal:<message>`"""
        if self.status == WorkerStatus.FATAL and self.error:
            return f"fatal:{self.error.message}"
        return self.status.value


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True


@dataclass
class ValkeyConfig:
    """Connection settings for the Valkey resource provider"""
    host: str = "127.0.0.1"
    port: int = 6379
    db: int = 0
    cluster: bool = False
    socket_timeout: float = 10.0
    password: Optional[str] = None


@dataclass
class HarnessConfig:
    """Run-level configuration; workload fields set here override the workload's own"""
    seed: Optional[int] = None
    thread_count: Optional[int] = None
    iterations: Optional[int] = None
    resource_sharing: Optional[ResourceSharing] = None
    fail_fast: bool = False
    sync_iterations: bool = False
    cleanup: bool = True
    log_dir: str = "/tmp/fsm-harness/logs"
    valkey: ValkeyConfig = field(default_factory=ValkeyConfig)
    retry: RetryConfig = field(default_factory=lambda: RetryConfig(max_attempts=3, initial_delay=0.5))


@dataclass
class OverallResult:
    """Aggregated outcome of a workload run"""
    workload_name: str
    seed: int
    success: bool
    start_time: float
    end_time: float
    resource_sharing: ResourceSharing
    worker_results: List[RunResult] = field(default_factory=list)
    error_message: Optional[str] = None
    error_summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def run_id(self) -> str:
        return f"{self.workload_name}-{self.seed}"

    def failed_workers(self) -> List[RunResult]:
        return [r for r in self.worker_results if r.status == WorkerStatus.FATAL]

    def to_report(self) -> Dict[str, Any]:
        """Structured run report: per-worker iterations and status, overall pass/fail"""
        return {
            'workload': self.workload_name,
            'seed': self.seed,
            'resource_sharing': self.resource_sharing.value,
            'passed': self.success,
            'duration': self.end_time - self.start_time,
            'error_message': self.error_message,
            'workers': [
                {
                    'tid': r.tid,
                    'iterations_completed': r.iterations_completed,
                    'status': r.status_text,
                    'classification': r.classification.value if r.classification else None,
                    'tolerated_errors': len(r.tolerated_errors),
                    'error': r.error.to_dict() if r.error else None,
                }
                for r in self.worker_results
            ],
        }
