"""
Error Handler - Error classification, retry logic and error history

Decides whether a failure raised by a state action is tolerated (logged, the FSM
moves on) or fatal (the worker stops), and provides retry with exponential
backoff for run-level steps such as resource acquisition and setup hooks.
"""
import time
import random
import logging
import threading
from typing import Optional, Callable, Any, Dict, List, Iterable
from enum import Enum
from dataclasses import dataclass

from valkey import exceptions as valkey_exceptions

from ..errors import AssertionViolation, ConfigError
from ..models import ErrorClass, RetryConfig

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    LOW = "low"  # Tolerated, run continues
    MEDIUM = "medium"  # Transient, being retried
    HIGH = "high"  # Worker or step failed
    FATAL = "fatal"  # Run cannot start or continue


class ErrorCategory(Enum):
    """Categories of errors for targeted handling"""
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    SETUP = "setup"
    TEARDOWN = "teardown"
    OPERATION = "operation"
    ASSERTION = "assertion"
    WORKER = "worker"


@dataclass
class ErrorContext:
    """Context information for an error"""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception: Optional[BaseException] = None
    error_code: Optional[str] = None
    tid: Optional[int] = None
    state: Optional[str] = None
    iteration: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


# Client exception classes that strip the server's error prefix from their message
_VALKEY_ERROR_CODES = (
    (valkey_exceptions.WatchError, "WriteConflict"),
    (valkey_exceptions.TryAgainError, "TRYAGAIN"),
    (valkey_exceptions.MasterDownError, "MASTERDOWN"),
    (valkey_exceptions.ClusterDownError, "CLUSTERDOWN"),
    (valkey_exceptions.MovedError, "MOVED"),
    (valkey_exceptions.AskError, "ASK"),
    (valkey_exceptions.BusyLoadingError, "LOADING"),
    (valkey_exceptions.ReadOnlyError, "READONLY"),
    (valkey_exceptions.ExecAbortError, "EXECABORT"),
    (valkey_exceptions.NoScriptError, "NOSCRIPT"),
    (valkey_exceptions.OutOfMemoryError, "OOM"),
    (valkey_exceptions.TimeoutError, "Timeout"),
    (valkey_exceptions.ConnectionError, "ConnectionError"),
)


def error_code_of(error: BaseException) -> Optional[str]:
    """
    Extract a stable error code from a failure.

    Order: an explicit ``code`` attribute (workload-raised OperationError), the
    server code of a known client exception class, then the leading upper-case
    token of a server error reply such as ``WRONGTYPE Operation against a key``.
    """
    code = getattr(error, 'code', None)
    if isinstance(code, str) and code:
        return code

    for exc_class, exc_code in _VALKEY_ERROR_CODES:
        if isinstance(error, exc_class):
            return exc_code

    if isinstance(error, valkey_exceptions.ResponseError):
        message = str(error).strip()
        if message:
            token = message.split()[0]
            if token.isupper():
                return token
    return None


class ErrorHandler:
    """
    Error classification and bookkeeping shared by all workers of a run.

    Provides:
    - Tolerated/fatal classification against workload-declared codes
    - Retry logic with exponential backoff
    - Thread-safe error history and summary
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.error_history: List[ErrorContext] = []
        self.rng = rng or random.Random()
        self._lock = threading.Lock()

    def classify(self, error: BaseException, tolerated_codes: Iterable[str], idempotent: bool = True) -> ErrorClass:
        """Tolerated iff the error's code is declared and the state can be safely re-driven"""
        if isinstance(error, (AssertionViolation, ConfigError)):
            return ErrorClass.FATAL
        if not idempotent:
            return ErrorClass.FATAL
        code = error_code_of(error)
        if code is not None and code in set(tolerated_codes):
            return ErrorClass.TOLERATED
        return ErrorClass.FATAL

    def record(self, error_context: ErrorContext) -> None:
        """Log an error and store it in history"""
        self._log_error(error_context)
        with self._lock:
            self.error_history.append(error_context)

    def retry_with_backoff(
        self,
        operation: Callable,
        config: RetryConfig,
        error_category: ErrorCategory,
        operation_name: str = "operation",
        **kwargs
    ) -> tuple[bool, Any]:
        """Execute an operation with retry logic and exponential backoff"""
        last_exception = None
        delay = config.initial_delay

        for attempt in range(config.max_attempts):
            try:
                logger.debug(f"Executing {operation_name} (attempt {attempt + 1}/{config.max_attempts})")

                result = operation(**kwargs)

                if attempt > 0:
                    logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
                return True, result

            except Exception as e:
                last_exception = e
                logger.warning(f"{operation_name} failed on attempt {attempt + 1}: {e}")

                with self._lock:
                    self.error_history.append(ErrorContext(
                        category=error_category,
                        severity=ErrorSeverity.MEDIUM if attempt < config.max_attempts - 1 else ErrorSeverity.HIGH,
                        message=f"{operation_name} failed: {e}",
                        exception=e,
                        error_code=error_code_of(e),
                        metadata={'attempt': attempt + 1, 'max_attempts': config.max_attempts}
                    ))

                if attempt < config.max_attempts - 1:
                    backoff_delay = min(
                        delay * (config.exponential_base ** attempt),
                        config.max_delay
                    )

                    if config.jitter:
                        backoff_delay *= (0.5 + self.rng.random())

                    logger.info(f"Retrying in {backoff_delay:.2f} seconds...")
                    time.sleep(backoff_delay)

        logger.error(f"{operation_name} failed after {config.max_attempts} attempts")

        self.record(ErrorContext(
            category=error_category,
            severity=ErrorSeverity.HIGH,
            message=f"{operation_name} failed after all retry attempts: {last_exception}",
            exception=last_exception,
            error_code=error_code_of(last_exception) if last_exception else None,
            metadata={'attempts': config.max_attempts}
        ))

        return False, last_exception

    def _log_error(self, error_context: ErrorContext):
        """Log error with appropriate level based on severity"""
        log_message = f"[{error_context.category.value}] {error_context.message}"

        if error_context.tid is not None:
            log_message = f"[tid {error_context.tid}] {log_message}"

        if error_context.state:
            log_message += f" (state: {error_context.state}, iteration: {error_context.iteration})"

        if error_context.error_code:
            log_message += f" (code: {error_context.error_code})"

        if error_context.severity == ErrorSeverity.FATAL:
            logger.critical(log_message)
        elif error_context.severity == ErrorSeverity.HIGH:
            logger.error(log_message)
        elif error_context.severity == ErrorSeverity.MEDIUM:
            logger.warning(log_message)
        else:
            logger.info(log_message)

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors encountered"""
        with self._lock:
            history = list(self.error_history)

        errors_by_category = {}
        errors_by_severity = {}
        errors_by_code = {}

        for error in history:
            category = error.category.value
            errors_by_category[category] = errors_by_category.get(category, 0) + 1

            severity = error.severity.value
            errors_by_severity[severity] = errors_by_severity.get(severity, 0) + 1

            if error.error_code:
                errors_by_code[error.error_code] = errors_by_code.get(error.error_code, 0) + 1

        return {
            'total_errors': len(history),
            'by_category': errors_by_category,
            'by_severity': errors_by_severity,
            'by_code': errors_by_code,
            'recent_errors': [
                {
                    'category': e.category.value,
                    'severity': e.severity.value,
                    'message': e.message,
                    'tid': e.tid,
                }
                for e in history[-10:]
            ]
        }

    def clear_history(self):
        """Clear error history"""
        with self._lock:
            self.error_history.clear()
        logger.debug("Error history cleared")
