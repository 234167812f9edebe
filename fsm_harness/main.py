"""
Main entry point for the FSM Workload Harness
"""
from typing import List, Optional, Union

from .models import HarnessConfig, OverallResult, WorkloadConfig
from .fsm_engine import HarnessEngine, WorkloadLoader


class FSMHarness:
    """Main orchestrator for the FSM Workload Harness system"""

    def __init__(self, config: Optional[HarnessConfig] = None, resource_provider=None):
        """
        Initialize the harness with the main harness engine
        """
        self.config = config or HarnessConfig()
        self.engine = HarnessEngine(self.config, resource_provider=resource_provider)
        self.last_result: Optional[OverallResult] = None

    def run_workload(self, workload: Union[str, WorkloadConfig], seed: Optional[int] = None) -> OverallResult:
        """
        Run a workload by name, reference or definition.
        """
        if seed is not None:
            self.config.seed = seed
        self.last_result = self.engine.execute(WorkloadLoader.load(workload))
        return self.last_result

    def validate_workload(self, workload: Union[str, WorkloadConfig]) -> WorkloadConfig:
        """
        Resolve and validate a workload without running it.
        """
        resolved = WorkloadLoader.load(workload)
        self.engine.validate_workload(resolved)
        return resolved

    def generate_report(self, results: List[OverallResult]) -> str:
        """
        Render a text report of the given runs and write it to the log directory.
        """
        return self.engine.run_logger.generate_report(results)

    def close(self):
        self.engine.close()
