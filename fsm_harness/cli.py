#!/usr/bin/env python3
"""
Command-line interface for the FSM Workload Harness
Provides commands for running workloads, validating workload definitions and listing built-ins.
"""
import sys
import argparse
import json
import yaml
import traceback
import logging
from pathlib import Path
from typing import Dict, Any, List
from datetime import datetime
from . import __version__
from .main import FSMHarness
from .errors import ConfigError
from .fsm_engine import WorkloadLoader, load_harness_config
from .models import HarnessConfig, OverallResult, ResourceSharing


class FSMHarnessCLI:
    """Command-line interface for the FSM Workload Harness"""

    def __init__(self, resource_provider=None):
        self.resource_provider = resource_provider
        self.config = HarnessConfig()

    def build_config(self, args) -> HarnessConfig:
        """Load the config file if given, then apply command-line overrides"""
        config = load_harness_config(args.config) if args.config else HarnessConfig()

        if args.seed is not None:
            config.seed = args.seed
        if args.threads is not None:
            config.thread_count = args.threads
        if args.iterations is not None:
            config.iterations = args.iterations
        if args.sharing:
            config.resource_sharing = ResourceSharing(args.sharing)
        if args.fail_fast:
            config.fail_fast = True
        if args.sync_iterations:
            config.sync_iterations = True
        if args.host:
            config.valkey.host = args.host
        if args.port:
            config.valkey.port = args.port
        if args.cluster:
            config.valkey.cluster = True
        return config

    def run_workload(self, args) -> int:
        """Execute a workload"""
        self._print_header(f"Workload: {args.workload}")

        try:
            self.config = self.build_config(args)
            if args.config:
                print(f"Loaded configuration from {args.config}")
        except Exception as e:
            print(f"Error: Failed to load config file: {e}")
            print(f"\nConfig file must be YAML (.yaml, .yml) or JSON (.json)")
            print(f"Example: fsm-harness run reindex --seed 42 --config harness.yaml")
            return 1

        if self.config.seed is not None:
            print(f"Seed: {self.config.seed} (reproducible)")
        else:
            print("Seed: Random")
        print()

        harness = FSMHarness(self.config, resource_provider=self.resource_provider)
        try:
            result = harness.run_workload(args.workload)
        except ConfigError as e:
            print(f"Error: {e}")
            print(f"\nList the available workloads with: fsm-harness list")
            return 1
        finally:
            harness.close()

        if args.verbose:
            self._print_detailed_result(result)
        else:
            self._print_summary_result(result)

        if args.report:
            print()
            print(harness.generate_report([result]))

        if args.output:
            self._save_results([result], args.output, args.format)

        return 0 if result.success else 1

    def validate_workload(self, args) -> int:
        """Validate a workload definition without running it"""
        self._print_header(f"Validating workload: {args.workload}")

        try:
            workload = FSMHarness(self.config, resource_provider=self.resource_provider).validate_workload(args.workload)
        except ConfigError as e:
            print(f"\nError: Validation failed: {e}")
            return 1

        print(f"Name: {workload.name}")
        print(f"Threads: {workload.thread_count} | Iterations: {workload.iterations}")
        print(f"Resource sharing: {workload.resource_sharing.value}")
        print(f"Entry state: {workload.start_state}")
        print("Transitions:")
        for source, targets in workload.transitions.items():
            edges = ", ".join(f"{target} ({weight})" for target, weight in targets.items())
            print(f"  {source} -> {edges}")

        print("\nWorkload definition is valid!")
        return 0

    def list_workloads(self, args) -> int:
        """List built-in workloads"""
        self._print_header("Built-in workloads")
        for name, reference in WorkloadLoader.available().items():
            print(f"  {name:<32} {reference}")
        return 0

    def _print_header(self, title: str):
        """Print formatted header"""
        print()
        print("=" * 80)
        print(title)
        print("=" * 80)
        print()

    def _print_summary_result(self, result: OverallResult):
        """Print summary of a run"""
        status = "PASSED" if result.success else "FAILED"
        duration = result.end_time - result.start_time
        failed = result.failed_workers()

        print(f"\nWorkload: {result.workload_name}")
        print(f"Status: {status}")
        print(f"Duration: {duration:.2f}s")
        print(f"Workers: {len(result.worker_results)} ({len(failed)} fatal)")
        print(f"Seed: {result.seed} (use to reproduce)")

        for worker in failed:
            print(f"  tid {worker.tid}: {worker.status_text} "
                  f"(state '{worker.error.state}', iteration {worker.error.iteration})")

        if result.error_message:
            print(f"Error: {result.error_message}")

    def _print_detailed_result(self, result: OverallResult):
        """Print detailed run result when --verbose flag is specified"""
        self._print_summary_result(result)

        print("\nWorkers:")
        for worker in result.worker_results:
            status = "[PASS]" if worker.status.value == "completed" else "[FAIL]"
            print(f"  {status} tid {worker.tid}: {worker.iterations_completed} iterations, "
                  f"{worker.status_text}")
            for tolerated in worker.tolerated_errors:
                print(f"    tolerated {tolerated.error_code} in '{tolerated.state}' "
                      f"at iteration {tolerated.iteration}")
            if worker.trace:
                print(f"    trace: {' -> '.join(worker.trace)}")

        summary = result.error_summary
        if summary.get('by_code'):
            print("\nErrors by code:")
            for code, count in sorted(summary['by_code'].items()):
                print(f"  {code}: {count}")

    def _save_results(self, results: List[OverallResult], output_path: str, format: str):
        """Save run results to file"""
        try:
            output = Path(output_path)
            output.parent.mkdir(parents=True, exist_ok=True)

            data = {
                'timestamp': datetime.now().isoformat(),
                'total_runs': len(results),
                'passed': sum(1 for r in results if r.success),
                'failed': sum(1 for r in results if not r.success),
                'results': [self._result_to_dict(r) for r in results]
            }

            with open(output, 'w') as f:
                if format == 'json':
                    json.dump(data, f, indent=2)
                elif format == 'yaml':
                    yaml.dump(data, f, default_flow_style=False)

            print(f"\nResults saved to {output_path}")

        except OSError as e:
            print(f"\nFailed to save results: {e}")

    def _result_to_dict(self, result: OverallResult) -> Dict[str, Any]:
        """Convert OverallResult to dictionary"""
        data = result.to_report()
        data['error_summary'] = {
            'total_errors': result.error_summary.get('total_errors', 0),
            'by_code': result.error_summary.get('by_code', {}),
        }
        return data


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog='fsm-harness',
        description='FSM Workload Harness - Run concurrent state-machine workloads against Valkey',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a built-in workload
  fsm-harness run reindex

  # Run with specific seed for reproducibility
  fsm-harness run reindex --seed 42

  # Override threads and iterations, share one collection between workers
  fsm-harness run reindex --threads 4 --iterations 20 --sharing shared

  # Run a workload from your own module
  fsm-harness run mypackage.workloads:config --config harness.yaml --output results.json

  # Validate a workload definition
  fsm-harness validate update_multifield

  # List built-in workloads
  fsm-harness list
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'FSM Harness {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Run command
    run_parser = subparsers.add_parser(
        'run',
        help='Run a workload'
    )
    run_parser.add_argument(
        'workload',
        help='Built-in workload name or package.module:attribute reference'
    )
    run_parser.add_argument(
        '--seed',
        type=int,
        help='Seed for reproducibility'
    )
    run_parser.add_argument(
        '--threads',
        type=int,
        help='Override the number of workers'
    )
    run_parser.add_argument(
        '--iterations',
        type=int,
        help='Override the number of iterations per worker'
    )
    run_parser.add_argument(
        '--sharing',
        choices=[s.value for s in ResourceSharing],
        help='Override resource sharing (exclusive: one collection per worker)'
    )
    run_parser.add_argument(
        '--fail-fast',
        action='store_true',
        help='Stop all workers after the first fatal error'
    )
    run_parser.add_argument(
        '--sync-iterations',
        action='store_true',
        help='Run every iteration as a round across all workers'
    )
    run_parser.add_argument(
        '--host',
        type=str,
        help='Valkey host (default: 127.0.0.1)'
    )
    run_parser.add_argument(
        '--port',
        type=int,
        help='Valkey port (default: 6379)'
    )
    run_parser.add_argument(
        '--cluster',
        action='store_true',
        help='Connect in cluster mode'
    )
    run_parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file (YAML or JSON)'
    )
    run_parser.add_argument(
        '--output',
        type=str,
        help='Path to save run results'
    )
    run_parser.add_argument(
        '--format',
        choices=['json', 'yaml'],
        default='json',
        help='Output format for results (default: json)'
    )
    run_parser.add_argument(
        '--report',
        action='store_true',
        help='Print a text report and save it to the log directory'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    # Validate command
    validate_parser = subparsers.add_parser(
        'validate',
        help='Validate a workload definition'
    )
    validate_parser.add_argument(
        'workload',
        help='Built-in workload name or package.module:attribute reference'
    )
    validate_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    # List command
    subparsers.add_parser(
        'list',
        help='List built-in workloads'
    )

    return parser


def main(argv=None):
    """Main entry point for CLI"""

    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, 'verbose', False) else logging.INFO,
        format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s',
        handlers=[logging.StreamHandler()]
    )

    if not args.command:
        print("Error: No command specified\n")
        parser.print_help()
        print("\nCommon commands:")
        print("  fsm-harness run reindex              # Run a built-in workload")
        print("  fsm-harness run reindex --seed 42    # Run with specific seed")
        print("  fsm-harness validate reindex         # Validate a workload")
        return 1

    cli = FSMHarnessCLI()

    try:
        if args.command == 'run':
            return cli.run_workload(args)
        elif args.command == 'validate':
            return cli.validate_workload(args)
        elif args.command == 'list':
            return cli.list_workloads(args)
    except KeyboardInterrupt:
        print("\n\nFSM Harness process was interrupted by user")
        return 130
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        if getattr(args, 'verbose', False):
            traceback.print_exc()
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
