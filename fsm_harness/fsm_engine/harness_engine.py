"""
Harness Engine - Main pipeline for executing an FSM workload
"""
import time
import random
import logging
import threading
from copy import deepcopy
from typing import Any, Dict, List, Optional

from ..errors import ConfigError
from ..interfaces import IHarnessEngine, IResourceProvider
from ..models import (
    WorkloadConfig, WorkerContext, HarnessConfig, OverallResult, RunResult,
    ResourceSharing, WorkerStatus
)
from .assertions import AssertionPolicy
from .coordinator import ConcurrencyCoordinator
from .error_handler import ErrorHandler, ErrorContext, ErrorCategory, ErrorSeverity
from .run_logger import RunLogger
from .transition_table import TransitionTable
from .worker_log_buffer import WorkerLogBuffer
from .worker_runner import WorkerRunner
from .workload_loader import WorkloadLoader

logger = logging.getLogger(__name__)


def resource_name_for(workload: WorkloadConfig, tid: int) -> str:
    """Exclusive workers get a private resource namespaced by tid; shared workers use the workload name"""
    if workload.resource_sharing == ResourceSharing.EXCLUSIVE:
        return f"{workload.name}_{tid}"
    return workload.name


class HarnessEngine(IHarnessEngine):
    """
    Main orchestrator for a workload run.
    Builds the transition table, binds resources, runs setup hooks, executes the
    workers through the coordinator, runs teardown hooks and aggregates results.
    """

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        resource_provider: Optional[IResourceProvider] = None,
        run_logger: Optional[RunLogger] = None,
    ):
        self.config = config or HarnessConfig()
        self._resource_provider = resource_provider
        self.run_logger = run_logger or RunLogger(self.config.log_dir)
        self.error_handler: Optional[ErrorHandler] = None

        logger.debug("Harness engine initialized")

    @property
    def resource_provider(self) -> IResourceProvider:
        if self._resource_provider is None:
            from ..valkey_client.resource import ValkeyResourceProvider
            self._resource_provider = ValkeyResourceProvider(self.config.valkey)
        return self._resource_provider

    def validate_workload(self, workload: WorkloadConfig) -> bool:
        """Validate a workload definition; raises ConfigError when it is malformed"""
        TransitionTable.build(workload)
        return True

    def execute(self, workload: WorkloadConfig) -> OverallResult:
        """
        Execute a workload end-to-end.

        1. Apply run overrides, build and validate the transition table
           (ConfigError aborts before any worker starts)
        2. Acquire resources and run setup hooks
        3. Run all workers through the coordinator
        4. Run teardown hooks and clean up resources
        """
        seed = self.config.seed if self.config.seed is not None else random.randint(0, 2**32 - 1)
        self.error_handler = ErrorHandler(rng=random.Random(seed))
        start_time = time.time()

        logger.info(f"Starting workload '{workload.name}' with seed {seed}")

        try:
            workload = WorkloadLoader.apply_overrides(workload, self.config)
        except ConfigError as e:
            # Log the workload as declared; the overridden one could not be built
            self.run_logger.log_run_start(workload, seed, self.config)
            return self._abort_on_config_error(workload, seed, start_time, e)

        self.run_logger.log_run_start(workload, seed, self.config)

        try:
            table = TransitionTable.build(workload)
        except ConfigError as e:
            return self._abort_on_config_error(workload, seed, start_time, e)

        handles: Dict[str, Any] = {}
        run_data = deepcopy(workload.data)
        error_message = None
        results: List[RunResult] = []

        try:
            # Step 1: Bind resources
            names = sorted({resource_name_for(workload, tid) for tid in range(workload.thread_count)})
            for name in names:
                ok, handle = self.error_handler.retry_with_backoff(
                    self.resource_provider.acquire,
                    self.config.retry,
                    ErrorCategory.RESOURCE,
                    operation_name=f"acquire resource '{name}'",
                    name=name,
                )
                if not ok:
                    raise RuntimeError(f"Failed to acquire resource '{name}': {handle}")
                handles[name] = handle
                if self.config.cleanup:
                    self.resource_provider.drop(handle)

            # Step 2: Setup hooks, once per distinct resource
            if workload.setup is not None:
                for name in names:
                    logger.info(f"Running setup for resource '{name}'")
                    workload.setup(handles[name], run_data)

            # Step 3: Workers
            runners = self._build_runners(workload, table, handles, run_data, seed)
            coordinator = ConcurrencyCoordinator(
                sync_after_init=workload.sync_after_init,
                sync_iterations=self.config.sync_iterations,
            )
            results = coordinator.execute(runners)
            for result in results:
                self.run_logger.log_worker_result(result)

        except Exception as e:
            error_message = f"Run aborted: {e}"
            self._record_run_error(ErrorCategory.SETUP, str(e), e)

        # Step 4: Teardown and cleanup run even when workers failed
        if handles and workload.teardown is not None:
            for name, handle in handles.items():
                try:
                    workload.teardown(handle, run_data)
                except Exception as e:
                    self._record_run_error(ErrorCategory.TEARDOWN, f"Teardown of '{name}' failed: {e}", e)
                    error_message = error_message or f"Teardown failed: {e}"

        if handles and self.config.cleanup:
            for name, handle in handles.items():
                try:
                    self.resource_provider.drop(handle)
                except Exception as e:
                    logger.warning(f"Failed to clean up resource '{name}': {e}")

        return self._finish(workload, seed, start_time, results, error_message)

    def _build_runners(self, workload: WorkloadConfig, table: TransitionTable, handles: Dict[str, Any],
                       run_data: Dict[str, Any], seed: int) -> List[WorkerRunner]:
        stop_event = threading.Event() if self.config.fail_fast else None
        runners = []
        for tid in range(workload.thread_count):
            name = resource_name_for(workload, tid)
            worker_seed = f"{seed}-{tid}"
            context = WorkerContext(
                tid=tid,
                data=deepcopy(run_data),
                rng=random.Random(worker_seed),
                resource_name=name,
                asserts=AssertionPolicy(workload.resource_sharing),
                log=WorkerLogBuffer(f"{workload.name}/tid-{tid}"),
            )
            runners.append(WorkerRunner(
                workload, table, context, handles[name], self.error_handler,
                stop_event=stop_event, seed=worker_seed,
            ))
        return runners

    def _abort_on_config_error(self, workload: WorkloadConfig, seed: int, start_time: float,
                               error: ConfigError) -> OverallResult:
        self._record_run_error(ErrorCategory.CONFIGURATION, str(error), error)
        return self._finish(workload, seed, start_time, [], f"Configuration error: {error}")

    def _record_run_error(self, category: ErrorCategory, message: str, exception: Exception) -> None:
        self.error_handler.record(ErrorContext(
            category=category,
            severity=ErrorSeverity.FATAL,
            message=message,
            exception=exception,
        ))
        self.run_logger.log_error(message, {'category': category.value, 'type': type(exception).__name__})

    def _finish(self, workload: WorkloadConfig, seed: int, start_time: float,
                results: List[RunResult], error_message: Optional[str]) -> OverallResult:
        success = (
            error_message is None
            and len(results) == workload.thread_count
            and all(r.status == WorkerStatus.COMPLETED for r in results)
        )
        overall = OverallResult(
            workload_name=workload.name,
            seed=seed,
            success=success,
            start_time=start_time,
            end_time=time.time(),
            resource_sharing=workload.resource_sharing,
            worker_results=results,
            error_message=error_message,
            error_summary=self.error_handler.get_error_summary(),
        )
        self.run_logger.log_run_completion(overall)

        for failed in overall.failed_workers():
            logger.error(
                f"tid {failed.tid} failed at state '{failed.error.state}' "
                f"iteration {failed.error.iteration}: {failed.error.message}"
            )
        logger.info(f"Workload '{workload.name}' {'PASSED' if success else 'FAILED'} (seed {seed} reproduces this run)")
        return overall

    def close(self) -> None:
        if self._resource_provider is not None:
            self._resource_provider.close()
