#!/usr/bin/env python3
"""
Example script demonstrating how to use the FSM Workload Harness
"""
import argparse
import logging
from dataclasses import replace

from fsm_harness.main import FSMHarness
from fsm_harness.models import HarnessConfig, ResourceSharing, WorkloadConfig
from fsm_harness.fsm_engine import extend_workload
from fsm_harness.workloads.reindex import config as reindex


def counter_workload() -> WorkloadConfig:
    """A small workload defined inline: workers bump and read a counter"""

    def init(coll, ctx):
        ctx.data['seen'] = 0

    def incr(coll, ctx):
        ctx.data['seen'] += 1
        coll.client.incr(coll.key('counter'))

    def read(coll, ctx):
        value = int(coll.client.get(coll.key('counter')) or 0)
        ctx.asserts.always.gte(value, 0, "counter never negative")
        # Only this worker writes its counter in exclusive mode
        ctx.asserts.when_own_coll.eq(ctx.data['seen'], value, "counter matches own increments")

    return WorkloadConfig(
        name='counter',
        thread_count=4,
        iterations=25,
        states={'init': init, 'incr': incr, 'read': read},
        transitions={
            'init': {'incr': 1.0},
            'incr': {'incr': 0.7, 'read': 0.3},
            'read': {'incr': 0.9, 'read': 0.1},
        },
    )


def run(workload, seed=None):
    print("=" * 80)
    print(f"Running workload: {workload.name}")
    print("=" * 80)

    harness = FSMHarness(HarnessConfig(seed=seed))
    try:
        result = harness.run_workload(workload)
    finally:
        harness.close()

    print(f"Success: {result.success}")
    print(f"Duration: {result.end_time - result.start_time:.2f}s")
    for worker in result.worker_results:
        print(f"  tid {worker.tid}: {worker.iterations_completed} iterations, {worker.status_text}")
    print(f"\nReproduction Seed: {result.seed}")

    if result.error_message:
        print(f"\nError: {result.error_message}")
    return result


def main():
    parser = argparse.ArgumentParser(description='FSM Harness examples')
    parser.add_argument('--seed', type=int, help='Seed for reproducibility')
    parser.add_argument('--example', choices=['counter', 'reindex-small'], default='counter')
    args = parser.parse_args()

    logging.basicConfig(format='%(levelname)-5s | %(filename)s:%(lineno)-3d | %(message)s', level=logging.INFO)

    if args.example == 'counter':
        workload = counter_workload()
    else:
        # Fewer workers and documents, one shared collection
        def shrink(config, base):
            config.data['n_documents'] = 200
            return replace(config, thread_count=3, resource_sharing=ResourceSharing.SHARED)
        workload = extend_workload(reindex, shrink)

    result = run(workload, args.seed)
    return 0 if result.success else 1


if __name__ == '__main__':
    raise SystemExit(main())
