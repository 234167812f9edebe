"""
Run Logger - Logging and reporting for workload runs
"""
import json
import time
import logging
import threading
from pathlib import Path
from typing import List, Dict, Any, Optional
from datetime import datetime
from ..interfaces import IRunLogger
from ..models import WorkloadConfig, RunResult, OverallResult, HarnessConfig, WorkerStatus


logger = logging.getLogger(__name__)


class RunLogger(IRunLogger):
    """
    Thread-safe run logging system with reporting.
    Records the workload definition, seed, every worker's outcome and run-level errors,
    and mirrors each run log to disk as JSON.
    """

    def __init__(self, log_dir: str = "/tmp/fsm-harness/logs"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.current_run_id: Optional[str] = None
        self.run_logs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def log_run_start(self, workload: WorkloadConfig, seed: int, config: Optional[HarnessConfig] = None) -> None:
        """Log the start of a run with the workload definition that will be executed."""
        run_id = f"{workload.name}-{seed}"
        with self._lock:
            self.current_run_id = run_id
            self.run_logs[run_id] = {
                'run_id': run_id,
                'workload': workload.name,
                'seed': seed,
                'start_time': time.time(),
                'start_timestamp': datetime.now().isoformat(),
                'workload_config': self._serialize_workload(workload),
                'harness_config': self._serialize_harness_config(config) if config else None,
                'worker_results': [],
                'errors': [],
                'status': 'running'
            }

        self._log_workload_summary(workload, seed)
        self._write_log_to_disk(run_id)

    def log_worker_result(self, result: RunResult) -> None:
        """Log the outcome of one worker."""
        with self._lock:
            if not self.current_run_id:
                logger.warning("No active run to log worker result to")
                return

            self.run_logs[self.current_run_id]['worker_results'].append({
                'tid': result.tid,
                'seed': result.seed,
                'status': result.status.value,
                'classification': result.classification.value if result.classification else None,
                'iterations_completed': result.iterations_completed,
                'error': result.error.to_dict() if result.error else None,
                'tolerated_errors': [e.to_dict() for e in result.tolerated_errors],
                'trace': result.trace,
            })
            run_id = self.current_run_id

        if result.status == WorkerStatus.FATAL and result.error:
            logger.info(
                f"Worker {result.tid}: FATAL at state '{result.error.state}' "
                f"iteration {result.error.iteration} - {result.error.message}"
            )
        else:
            logger.debug(f"Worker {result.tid}: {result.status.value} after {result.iterations_completed} iterations")
        self._write_log_to_disk(run_id)

    def log_error(self, error_message: str, error_details: Optional[Dict[str, Any]] = None) -> None:
        """Log a run-level error (configuration, setup, teardown)."""
        with self._lock:
            if not self.current_run_id:
                logger.warning("No active run to log error to")
                return

            self.run_logs[self.current_run_id]['errors'].append({
                'timestamp': time.time(),
                'datetime': datetime.now().isoformat(),
                'message': error_message,
                'details': error_details or {}
            })
            run_id = self.current_run_id

        logger.error(f"Logged error: {error_message}")
        self._write_log_to_disk(run_id)

    def log_run_completion(self, result: OverallResult) -> None:
        """Log the completion of a run with its aggregated result."""
        with self._lock:
            if result.run_id not in self.run_logs:
                logger.warning(f"No log found for run {result.run_id}")
                return

            self.run_logs[result.run_id].update({
                'end_time': result.end_time,
                'end_timestamp': datetime.fromtimestamp(result.end_time).isoformat(),
                'duration': result.end_time - result.start_time,
                'success': result.success,
                'final_error_message': result.error_message,
                'error_summary': result.error_summary,
                'status': 'passed' if result.success else 'failed'
            })

            if self.current_run_id == result.run_id:
                self.current_run_id = None

        logger.info(f"Completed run {result.run_id} - {'PASSED' if result.success else 'FAILED'} "
                    f"(duration: {result.end_time - result.start_time:.2f}s)")

        self._write_log_to_disk(result.run_id)

    def generate_report(self, results: List[OverallResult]) -> str:
        """Generate a summary report from one or more runs."""
        if not results:
            return "No run results to report"

        total_runs = len(results)
        passed_runs = sum(1 for result in results if result.success)
        failed_runs = total_runs - passed_runs
        total_duration = sum(result.end_time - result.start_time for result in results)

        report_lines = [
            "=" * 80,
            "FSM WORKLOAD HARNESS - RUN REPORT",
            "=" * 80,
            "",
            f"Total Runs:     {total_runs}",
            f"Passed:         {passed_runs} ({passed_runs/total_runs*100:.1f}%)",
            f"Failed:         {failed_runs} ({failed_runs/total_runs*100:.1f}%)",
            f"Total Duration: {total_duration:.2f}s",
            "",
            "=" * 80,
            "RUN DETAILS",
            "=" * 80,
            ""
        ]

        for result in results:
            status = "PASS" if result.success else "FAIL"
            tolerated = sum(len(r.tolerated_errors) for r in result.worker_results)
            report_lines.extend([
                f"{status} | {result.workload_name} ({result.resource_sharing.value})",
                f"     Seed: {result.seed} (for reproduction)",
                f"     Duration: {result.end_time - result.start_time:.2f}s | Workers: {len(result.worker_results)} | "
                f"Tolerated errors: {tolerated}",
            ])

            if result.error_message:
                report_lines.append(f"     Error: {result.error_message}")

            for worker in result.failed_workers():
                err = worker.error
                report_lines.append(
                    f"     tid {worker.tid}: fatal at state '{err.state}' iteration {err.iteration}"
                    f"{f' [{err.error_code}]' if err.error_code else ''}: {err.message}"
                )

            report_lines.append("")

        report_lines.append("=" * 80)

        report = "\n".join(report_lines)

        report_file = self.log_dir / f"report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
        report_file.write_text(report)
        logger.info(f"Generated report: {report_file}")

        return report

    def _serialize_workload(self, workload: WorkloadConfig) -> Dict[str, Any]:
        """Serialize a workload definition to a dictionary"""
        return {
            'name': workload.name,
            'thread_count': workload.thread_count,
            'iterations': workload.iterations,
            'start_state': workload.start_state,
            'states': sorted(workload.states),
            'transitions': {src: dict(targets) for src, targets in workload.transitions.items()},
            'terminal_states': sorted(workload.terminal_states),
            'resource_sharing': workload.resource_sharing.value,
            'tolerated_codes': sorted(workload.tolerated_codes),
            'tolerated_errors': {state: sorted(codes) for state, codes in workload.tolerated_errors.items()},
            'non_idempotent_states': sorted(workload.non_idempotent_states),
            'sync_after_init': workload.sync_after_init,
            'data': {k: v for k, v in workload.data.items() if not callable(v)},
        }

    def _serialize_harness_config(self, config: HarnessConfig) -> Dict[str, Any]:
        """Serialize harness configuration to a dictionary"""
        return {
            'seed': config.seed,
            'thread_count': config.thread_count,
            'iterations': config.iterations,
            'resource_sharing': config.resource_sharing.value if config.resource_sharing else None,
            'fail_fast': config.fail_fast,
            'sync_iterations': config.sync_iterations,
            'cleanup': config.cleanup,
            'valkey': {
                'host': config.valkey.host,
                'port': config.valkey.port,
                'db': config.valkey.db,
                'cluster': config.valkey.cluster,
            },
        }

    def _log_workload_summary(self, workload: WorkloadConfig, seed: int) -> None:
        """Log a human-readable summary of the workload before execution"""
        summary_lines = [
            "",
            "=" * 80,
            f"WORKLOAD SUMMARY: {workload.name}",
            "=" * 80,
            f"Seed: {seed}",
            f"Threads: {workload.thread_count} | Iterations: {workload.iterations} | "
            f"Resource sharing: {workload.resource_sharing.value}",
            "",
            "TRANSITIONS:",
        ]

        for source, targets in workload.transitions.items():
            edges = ", ".join(f"{target}={weight}" for target, weight in targets.items())
            summary_lines.append(f"  {source} -> {edges}")

        if workload.tolerated_codes or workload.tolerated_errors:
            summary_lines.extend(["", "TOLERATED ERROR CODES:"])
            if workload.tolerated_codes:
                summary_lines.append(f"  (all states): {', '.join(sorted(workload.tolerated_codes))}")
            for state, codes in workload.tolerated_errors.items():
                summary_lines.append(f"  {state}: {', '.join(sorted(codes))}")

        summary_lines.extend(["", "=" * 80, ""])

        for line in summary_lines:
            logger.info(line)

    def _write_log_to_disk(self, run_id: str) -> None:
        """Write run log to disk as JSON"""
        with self._lock:
            if run_id not in self.run_logs:
                return
            payload = json.dumps(self.run_logs[run_id], indent=2, default=str)

        log_file = self.log_dir / f"{run_id}.json"

        try:
            log_file.write_text(payload)
        except OSError as e:
            logger.error(f"Failed to write log to disk: {e}")

    def get_run_log(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Get the log for a specific run, or None if not found."""
        return self.run_logs.get(run_id)
