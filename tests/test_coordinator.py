"""
Tests for the Concurrency Coordinator
"""
import logging
import threading
import pytest
from unittest.mock import Mock

from fsm_harness.models import WorkerStatus
from fsm_harness.fsm_engine.coordinator import ConcurrencyCoordinator


class EventLog:
    """Thread-safe record of (state, tid, iteration) invocations"""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def action(self, name):
        def run(handle, ctx):
            with self._lock:
                self.events.append((name, ctx.tid, ctx.iteration))
        return run


class TestCollection:

    def test_all_outcomes_reported_when_one_worker_fails(self, make_workload, make_runner):
        """Test tid 3 of 15 failing at iteration 2 does not drop any other outcome"""
        def action(handle, ctx):
            if ctx.tid == 3 and ctx.iteration == 2:
                raise RuntimeError("worker 3 exploded")

        workload = make_workload(thread_count=15, iterations=10, states={'init': action, 'a': action, 'b': action})
        runners = [make_runner(workload, tid=tid) for tid in range(15)]

        results = ConcurrencyCoordinator().execute(runners)

        assert [r.tid for r in results] == list(range(15))
        failed = [r for r in results if r.status == WorkerStatus.FATAL]
        assert [r.tid for r in failed] == [3]
        assert failed[0].error.iteration == 2
        assert failed[0].error.message == "worker 3 exploded"
        for result in results:
            if result.tid != 3:
                assert result.status == WorkerStatus.COMPLETED
                assert result.iterations_completed == 10

    def test_crash_outside_state_action_becomes_fatal_result(self, make_workload, make_runner):
        runners = [make_runner(make_workload(), tid=tid) for tid in range(3)]
        broken = Mock()
        broken.start_state = 'init'
        broken.is_terminal.return_value = False
        broken.next_state.side_effect = RuntimeError("table exploded")
        runners[1].table = broken

        results = ConcurrencyCoordinator().execute(runners)

        assert len(results) == 3
        assert results[1].status == WorkerStatus.FATAL
        assert results[1].error.error_type == "RuntimeError"
        assert results[0].status == WorkerStatus.COMPLETED
        assert results[2].status == WorkerStatus.COMPLETED

    def test_no_runners(self):
        assert ConcurrencyCoordinator().execute([]) == []


class TestSynchronization:

    def test_sync_after_init(self, make_workload, make_runner):
        """Test every worker finishes its entry state before any worker moves on"""
        log = EventLog()
        workload = make_workload(
            thread_count=8,
            iterations=5,
            states={name: log.action(name) for name in ('init', 'a', 'b')},
            sync_after_init=True,
        )
        runners = [make_runner(workload, tid=tid) for tid in range(8)]

        results = ConcurrencyCoordinator(sync_after_init=True).execute(runners)

        names = [name for name, _, _ in log.events]
        assert names[:8] == ['init'] * 8
        assert 'init' not in names[8:]
        assert all(r.iterations_completed == 5 for r in results)

    def test_sync_iterations(self, make_workload, make_runner):
        """Test each iteration is a round across all workers"""
        log = EventLog()
        workload = make_workload(
            thread_count=6,
            iterations=4,
            states={name: log.action(name) for name in ('init', 'a', 'b')},
        )
        runners = [make_runner(workload, tid=tid) for tid in range(6)]

        results = ConcurrencyCoordinator(sync_iterations=True).execute(runners)

        iterations = [iteration for _, _, iteration in log.events]
        assert iterations == sorted(iterations)
        assert len(log.events) == 24
        assert all(r.status == WorkerStatus.COMPLETED for r in results)

    def test_fail_fast_aborts_siblings(self, make_workload, make_runner):
        """Test a fatal error stops the other workers before their next iteration"""
        barrier = threading.Barrier(4, timeout=5)

        def action(handle, ctx):
            # Every worker is inside its first iteration before tid 0 fails
            if ctx.iteration == 0:
                barrier.wait()
            if ctx.tid == 0:
                raise RuntimeError("first worker failed")

        workload = make_workload(thread_count=4, iterations=5, states={'init': action, 'a': action, 'b': action})
        stop_event = threading.Event()
        runners = [make_runner(workload, tid=tid, stop_event=stop_event) for tid in range(4)]

        results = ConcurrencyCoordinator(sync_iterations=True).execute(runners)

        assert results[0].status == WorkerStatus.FATAL
        for result in results[1:]:
            assert result.status == WorkerStatus.ABORTED
            assert result.iterations_completed == 1


class TestLogFlushing:

    def test_logs_flushed_in_tid_order(self, make_workload, make_runner, caplog):
        def action(handle, ctx):
            ctx.log.info(f"hello from {ctx.tid}")

        workload = make_workload(thread_count=5, iterations=2, states={'init': action, 'a': action, 'b': action})
        runners = [make_runner(workload, tid=tid) for tid in reversed(range(5))]

        with caplog.at_level(logging.INFO):
            ConcurrencyCoordinator().execute(runners)

        headers = [r.getMessage() for r in caplog.records if r.getMessage().startswith("=== WORKER")]
        assert headers == [f"=== WORKER {tid} ===" for tid in range(5)]
        assert all(not runner.ctx.log.buffer for runner in runners)
