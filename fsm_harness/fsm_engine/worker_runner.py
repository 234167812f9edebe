"""
Worker Runner - Drives one logical client through the workload state machine
"""
import threading
from typing import Any, Optional

from ..errors import AssertionViolation, FatalWorkerError, ToleratedOperationError
from ..models import (
    WorkloadConfig, WorkerContext, WorkerError, RunResult, WorkerStatus, ErrorClass
)
from .error_handler import ErrorHandler, ErrorContext, ErrorCategory, ErrorSeverity, error_code_of
from .transition_table import TransitionTable


class WorkerRunner:
    """
    Executes `iterations` state transitions for one worker.

    Each iteration invokes the current state's action with ``(handle, ctx)`` and
    then draws the next state from the transition table. The runner holds no
    state beyond its context and the bookkeeping for its RunResult.
    """

    def __init__(
        self,
        workload: WorkloadConfig,
        table: TransitionTable,
        context: WorkerContext,
        handle: Any,
        error_handler: ErrorHandler,
        stop_event: Optional[threading.Event] = None,
        seed: Optional[str] = None,
    ):
        self.workload = workload
        self.table = table
        self.ctx = context
        self.handle = handle
        self.error_handler = error_handler
        self.stop_event = stop_event
        self.seed = seed

        self.current_state = table.start_state
        self.iterations_completed = 0
        self.status: Optional[WorkerStatus] = None
        self.error: Optional[WorkerError] = None
        self.tolerated = []
        self.trace = []

    @property
    def tid(self) -> int:
        return self.ctx.tid

    @property
    def finished(self) -> bool:
        return self.status is not None

    def run(self) -> RunResult:
        """Run until the iteration budget is used up, a fatal error occurs, or the run is stopped"""
        self.ctx.log.debug(f"Worker {self.tid} starting at '{self.current_state}' (seed {self.seed})")
        while self.step():
            pass
        return self.result()

    def step(self) -> bool:
        """Execute one iteration; returns True while the worker can keep going"""
        if self.finished:
            return False
        if self.stop_event is not None and self.stop_event.is_set():
            self.status = WorkerStatus.ABORTED
            self.ctx.log.warning(f"Worker {self.tid} aborted before iteration {self.iterations_completed}")
            return False

        state = self.current_state
        iteration = self.iterations_completed
        self.ctx.state = state
        self.ctx.iteration = iteration
        self.trace.append(state)

        try:
            self.workload.states[state](self.handle, self.ctx)
        except Exception as e:
            if not self._handle_failure(e, state, iteration):
                self.status = WorkerStatus.FATAL
                if self.stop_event is not None:
                    self.stop_event.set()
                return False

        self.iterations_completed += 1

        if self.iterations_completed >= self.workload.iterations:
            self.status = WorkerStatus.COMPLETED
            return False

        if self.table.is_terminal(state):
            self.ctx.log.info(f"Worker {self.tid} reached terminal state '{state}'")
            self.status = WorkerStatus.COMPLETED
            return False

        self.current_state = self.table.next_state(state, self.ctx.rng)
        return True

    def _handle_failure(self, error: Exception, state: str, iteration: int) -> bool:
        """Classify a failure; returns True when it is tolerated"""
        code = error_code_of(error)
        idempotent = state not in self.workload.non_idempotent_states
        classification = self.error_handler.classify(
            error, self.workload.tolerated_codes_for(state), idempotent
        )
        record = WorkerError(
            message=str(error),
            state=state,
            iteration=iteration,
            tid=self.tid,
            error_code=code,
            error_type=type(error).__name__,
            payload=getattr(error, 'result', None),
        )

        if classification == ErrorClass.TOLERATED:
            failure = ToleratedOperationError(error, state, iteration, self.tid, code)
            self.tolerated.append(record)
            self.ctx.log.info(f"Tolerated {code}: {failure}")
            self.error_handler.record(ErrorContext(
                category=ErrorCategory.OPERATION,
                severity=ErrorSeverity.LOW,
                message=str(error),
                exception=failure,
                error_code=code,
                tid=self.tid,
                state=state,
                iteration=iteration,
            ))
            return True

        failure = FatalWorkerError(error, state, iteration, self.tid, code)
        self.error = record
        self.ctx.log.error(f"Fatal: {failure}")
        self.error_handler.record(ErrorContext(
            category=ErrorCategory.ASSERTION if isinstance(error, AssertionViolation) else ErrorCategory.OPERATION,
            severity=ErrorSeverity.HIGH,
            message=str(error),
            exception=failure,
            error_code=code,
            tid=self.tid,
            state=state,
            iteration=iteration,
        ))
        return False

    def result(self) -> RunResult:
        return RunResult(
            tid=self.tid,
            iterations_completed=self.iterations_completed,
            status=self.status or WorkerStatus.ABORTED,
            error=self.error,
            tolerated_errors=list(self.tolerated),
            trace=list(self.trace),
            seed=self.seed,
        )
