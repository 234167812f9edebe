"""
Exception taxonomy for the FSM workload harness
"""
from typing import Any, Optional


class HarnessError(Exception):
    """Base class for all harness errors"""


class ConfigError(HarnessError):
    """Malformed workload definition (bad weights, dangling state references, ...)"""


class OperationError(HarnessError):
    """
    Failure of an operation against the external resource.

    Workload actions raise this when the data store reports a condition that has a
    stable code (e.g. an index build already in progress) so it can be matched
    against the tolerated-code declarations of the workload.
    """

    def __init__(self, code: str, message: str = "", result: Any = None):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.result = result


class AssertionViolation(HarnessError):
    """An invariant check made through the assertion policy failed"""

    def __init__(self, message: str, result: Any = None, mode: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.result = result
        self.mode = mode


class WorkerFailure(HarnessError):
    """Common shape for classified worker failures"""

    def __init__(self, cause: BaseException, state: str, iteration: int, tid: int,
                 code: Optional[str] = None):
        super().__init__(f"[tid {tid}] state '{state}' iteration {iteration}: {cause}")
        self.cause = cause
        self.state = state
        self.iteration = iteration
        self.tid = tid
        self.code = code


class ToleratedOperationError(WorkerFailure):
    """Expected transient condition declared by the workload; the run continues"""


class FatalWorkerError(WorkerFailure):
    """Any other failure; stops the worker that raised it"""
