"""
FSM Engine - Transition selection, worker execution and run coordination
"""
from .transition_table import TransitionTable
from .assertions import AssertionPolicy, AssertionMode, is_enforced
from .error_handler import ErrorHandler, error_code_of
from .worker_runner import WorkerRunner
from .coordinator import ConcurrencyCoordinator
from .run_logger import RunLogger
from .workload_loader import WorkloadLoader, extend_workload, load_harness_config
from .harness_engine import HarnessEngine

__all__ = [
    'HarnessEngine',
    'TransitionTable',
    'AssertionPolicy',
    'AssertionMode',
    'is_enforced',
    'ErrorHandler',
    'error_code_of',
    'WorkerRunner',
    'ConcurrencyCoordinator',
    'RunLogger',
    'WorkloadLoader',
    'extend_workload',
    'load_harness_config',
]
