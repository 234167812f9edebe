"""
Tests for core data models
"""
import pytest

from fsm_harness.errors import ConfigError
from fsm_harness.models import (
    WorkloadConfig, RunResult, WorkerError, WorkerStatus, ErrorClass, OverallResult,
    HarnessConfig, ResourceSharing, RetryConfig
)


def noop(handle, ctx):
    pass


class TestWorkloadConfig:

    def test_defaults(self):
        config = WorkloadConfig(name='w', states={'init': noop}, transitions={}, terminal_states=['init'])

        assert config.thread_count == 1
        assert config.iterations == 1
        assert config.start_state == 'init'
        assert config.resource_sharing == ResourceSharing.EXCLUSIVE
        assert config.terminal_states == frozenset({'init'})

    @pytest.mark.parametrize("field", ['thread_count', 'iterations'])
    @pytest.mark.parametrize("value", [0, -1, 2.5, True])
    def test_positive_counts_required(self, field, value):
        with pytest.raises(ConfigError, match=field):
            WorkloadConfig(name='w', states={'init': noop}, transitions={}, **{field: value})

    def test_is_immutable(self):
        config = WorkloadConfig(name='w', states={'init': noop}, transitions={})

        with pytest.raises(AttributeError):
            config.iterations = 5

    def test_tolerated_codes_for_state(self):
        """Test workload-wide and per-state codes combine"""
        config = WorkloadConfig(
            name='w',
            states={'init': noop},
            transitions={},
            tolerated_codes={'TRYAGAIN'},
            tolerated_errors={'createIndexes': ['IndexBuildAlreadyInProgress']},
        )

        assert config.tolerated_codes_for('createIndexes') == {'TRYAGAIN', 'IndexBuildAlreadyInProgress'}
        assert config.tolerated_codes_for('query') == {'TRYAGAIN'}
        assert isinstance(config.tolerated_errors['createIndexes'], frozenset)


class TestRunResult:

    def test_completed(self):
        result = RunResult(tid=0, iterations_completed=10, status=WorkerStatus.COMPLETED)

        assert result.status_text == "completed"
        assert result.classification is None

    def test_completed_with_tolerated_errors(self):
        tolerated = WorkerError(message="busy", state='createIndexes', iteration=1, tid=0)
        result = RunResult(tid=0, iterations_completed=10, status=WorkerStatus.COMPLETED,
                           tolerated_errors=[tolerated])

        assert result.classification == ErrorClass.TOLERATED

    def test_fatal(self):
        error = WorkerError(message="count mismatch", state='query', iteration=2, tid=3, payload={'n': 1})
        result = RunResult(tid=3, iterations_completed=2, status=WorkerStatus.FATAL, error=error)

        assert result.status_text == "fatal:count mismatch"
        assert result.classification == ErrorClass.FATAL
        assert error.to_dict()['payload'] == "{'n': 1}"


class TestOverallResult:

    def test_report(self):
        """Test the report carries per-worker iterations and status"""
        failed = RunResult(
            tid=1, iterations_completed=2, status=WorkerStatus.FATAL,
            error=WorkerError(message="boom", state='a', iteration=2, tid=1),
        )
        ok = RunResult(tid=0, iterations_completed=5, status=WorkerStatus.COMPLETED)
        overall = OverallResult(
            workload_name='w', seed=9, success=False, start_time=1.0, end_time=3.0,
            resource_sharing=ResourceSharing.SHARED, worker_results=[ok, failed],
        )

        report = overall.to_report()

        assert overall.run_id == 'w-9'
        assert overall.failed_workers() == [failed]
        assert report['passed'] is False
        assert report['duration'] == 2.0
        assert report['resource_sharing'] == 'shared'
        assert [(w['tid'], w['iterations_completed'], w['status']) for w in report['workers']] == [
            (0, 5, 'completed'),
            (1, 2, 'fatal:boom'),
        ]
        assert [w['classification'] for w in report['workers']] == [None, 'fatal']


class TestHarnessConfig:

    def test_defaults(self):
        config = HarnessConfig()

        assert config.seed is None
        assert config.fail_fast is False
        assert config.cleanup is True
        assert config.valkey.port == 6379
        assert config.retry.max_attempts == 3

    def test_retry_defaults(self):
        assert RetryConfig().initial_delay == 1.0
