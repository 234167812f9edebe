"""
Base interfaces and abstract classes for all major components
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional
from .models import WorkloadConfig, OverallResult, RunResult, HarnessConfig


class IHarnessEngine(ABC):
    """Interface for the workload run pipeline"""

    @abstractmethod
    def execute(self, workload: WorkloadConfig) -> OverallResult:
        """Run a workload to completion and aggregate every worker's outcome"""
        pass

    @abstractmethod
    def validate_workload(self, workload: WorkloadConfig) -> bool:
        """Check a workload definition without running it"""
        pass


class IResourceProvider(ABC):
    """Interface for the external resource workers operate on"""

    @abstractmethod
    def acquire(self, name: str) -> Any:
        """Return a handle on the named resource (e.g. a collection)"""
        pass

    @abstractmethod
    def drop(self, handle: Any) -> None:
        """Remove everything stored in the resource behind the handle"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release connections held by the provider"""
        pass


class IRunLogger(ABC):
    """Interface for run logging and reporting"""

    @abstractmethod
    def log_run_start(self, workload: WorkloadConfig, seed: int, config: Optional[HarnessConfig] = None) -> None:
        """Log the start of a workload run"""
        pass

    @abstractmethod
    def log_worker_result(self, result: RunResult) -> None:
        """Log the outcome of one worker"""
        pass

    @abstractmethod
    def log_run_completion(self, result: OverallResult) -> None:
        """Log run completion"""
        pass

    @abstractmethod
    def generate_report(self, results: List[OverallResult]) -> str:
        """Generate summary report"""
        pass
