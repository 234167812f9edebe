"""
Concurrency Coordinator - Runs a pool of workers in parallel with buffered logging
"""
import logging
import traceback
from typing import Callable, Dict, List, Optional
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..models import RunResult, WorkerError, WorkerStatus
from .worker_runner import WorkerRunner

logger = logging.getLogger(__name__)


class ConcurrencyCoordinator:
    """
    Executes worker runners on a thread pool and collects every outcome.

    Modes:
    - free-running: each worker runs its whole state machine independently
    - sync_after_init: all workers finish their entry state before any proceeds
    - sync_iterations: every iteration is a round across all live workers
    """

    def __init__(self, sync_after_init: bool = False, sync_iterations: bool = False):
        self.sync_after_init = sync_after_init
        self.sync_iterations = sync_iterations

    def execute(self, runners: List[WorkerRunner]) -> List[RunResult]:
        """Run all workers to completion and return their results ordered by tid"""
        if not runners:
            return []

        logger.info(
            f"Starting {len(runners)} workers "
            f"(sync_after_init={self.sync_after_init}, sync_iterations={self.sync_iterations})"
        )

        results: Dict[int, RunResult] = {}

        with ThreadPoolExecutor(max_workers=len(runners), thread_name_prefix="fsm-worker") as executor:
            if self.sync_iterations:
                self._run_in_rounds(executor, runners, results, max_rounds=None)
            else:
                if self.sync_after_init:
                    self._run_in_rounds(executor, runners, results, max_rounds=1)
                    logger.info("All workers finished their entry state")
                self._run_free(executor, [r for r in runners if r.tid not in results], results)

        # Flush logs in tid order
        for runner in sorted(runners, key=lambda r: r.tid):
            runner.ctx.log.flush()

        ordered = [results[r.tid] for r in sorted(runners, key=lambda r: r.tid)]
        fatal = sum(1 for r in ordered if r.status == WorkerStatus.FATAL)
        logger.info(f"Workers complete: {len(ordered) - fatal}/{len(ordered)} without fatal errors")
        return ordered

    def _run_free(self, executor: ThreadPoolExecutor, runners: List[WorkerRunner],
                  results: Dict[int, RunResult]) -> None:
        self._collect(executor, runners, lambda runner: runner.run(), results, on_result=None)

    def _run_in_rounds(self, executor: ThreadPoolExecutor, runners: List[WorkerRunner],
                       results: Dict[int, RunResult], max_rounds: Optional[int]) -> None:
        """Advance every live worker by one iteration per round, waiting for the whole round"""
        live = list(runners)
        rounds = 0
        while live and (max_rounds is None or rounds < max_rounds):
            still_running: List[WorkerRunner] = []

            def on_result(runner: WorkerRunner, keep_going: bool):
                if keep_going:
                    still_running.append(runner)
                else:
                    results[runner.tid] = runner.result()

            self._collect(executor, live, lambda runner: runner.step(), results, on_result=on_result)
            live = still_running
            rounds += 1

    def _collect(self, executor: ThreadPoolExecutor, runners: List[WorkerRunner],
                 task: Callable[[WorkerRunner], object], results: Dict[int, RunResult],
                 on_result: Optional[Callable[[WorkerRunner, object], None]]) -> None:
        """Submit `task` for every runner and wait for all of them; no outcome is dropped"""
        futures = {executor.submit(task, runner): runner for runner in runners}

        for future in as_completed(futures):
            runner = futures[future]
            try:
                outcome = future.result()
            except Exception as e:
                logger.error(f"Worker {runner.tid} crashed outside its state actions: {e}")
                results[runner.tid] = self._crashed_result(runner, e)
                continue

            if on_result is None:
                results[runner.tid] = outcome
            else:
                on_result(runner, outcome)

    @staticmethod
    def _crashed_result(runner: WorkerRunner, error: Exception) -> RunResult:
        runner.ctx.log.error(traceback.format_exc())
        result = runner.result()
        result.status = WorkerStatus.FATAL
        result.error = WorkerError(
            message=str(error),
            state=runner.current_state,
            iteration=runner.iterations_completed,
            tid=runner.tid,
            error_type=type(error).__name__,
        )
        if runner.stop_event is not None:
            runner.stop_event.set()
        return result
