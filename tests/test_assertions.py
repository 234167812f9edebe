"""
Tests for the ownership-aware Assertion Policy
"""
import pytest
from unittest.mock import Mock

from fsm_harness.errors import AssertionViolation
from fsm_harness.models import ResourceSharing
from fsm_harness.fsm_engine.assertions import AssertionPolicy, AssertionMode, is_enforced


@pytest.fixture
def exclusive():
    return AssertionPolicy(ResourceSharing.EXCLUSIVE)


@pytest.fixture
def shared():
    return AssertionPolicy(ResourceSharing.SHARED)


class TestIsEnforced:

    @pytest.mark.parametrize("mode,sharing,expected", [
        (AssertionMode.ALWAYS, ResourceSharing.EXCLUSIVE, True),
        (AssertionMode.ALWAYS, ResourceSharing.SHARED, True),
        (AssertionMode.WHEN_OWN_COLL, ResourceSharing.EXCLUSIVE, True),
        (AssertionMode.WHEN_OWN_COLL, ResourceSharing.SHARED, False),
    ])
    def test_enforcement_table(self, mode, sharing, expected):
        assert is_enforced(mode, sharing) is expected


class TestScopedAssert:
    """Comparators and predicate checks"""

    def test_passing_comparators(self, exclusive):
        """Test passing checks do not raise"""
        exclusive.always.eq(1, 1)
        exclusive.always.neq(1, 2)
        exclusive.always.lt(1, 2)
        exclusive.always.lte(2, 2)
        exclusive.always.gt(3, 2)
        exclusive.always.gte(3, 3)
        exclusive.always.is_true([1])
        exclusive.always.command_worked({'ok': 1})
        exclusive.always(True, "plain bool")

    @pytest.mark.parametrize("method,args", [
        ('eq', (1, 2)),
        ('neq', (1, 1)),
        ('lt', (2, 1)),
        ('lte', (3, 2)),
        ('gt', (1, 1)),
        ('gte', (1, 2)),
        ('is_true', (0,)),
    ])
    def test_failing_comparators_raise(self, exclusive, method, args):
        with pytest.raises(AssertionViolation):
            getattr(exclusive.always, method)(*args, "should fail")

    def test_violation_carries_message_mode_and_result(self, exclusive):
        """Test the violation records the message, mode and diagnostic payload"""
        payload = {'n_matched': 3}

        with pytest.raises(AssertionViolation) as exc_info:
            exclusive.when_own_coll.eq(1, 3, "documents matched", result=payload)

        assert "documents matched" in str(exc_info.value)
        assert exc_info.value.mode == "when_own_coll"
        assert exc_info.value.result is payload

    @pytest.mark.parametrize("response", [None, False, RuntimeError("boom")])
    def test_command_worked_rejects_failures(self, exclusive, response):
        with pytest.raises(AssertionViolation, match="command failed"):
            exclusive.always.command_worked(response)

    def test_callable_predicate_false_raises(self, exclusive):
        with pytest.raises(AssertionViolation, match="geo query"):
            exclusive.when_own_coll(lambda: False, "geo query")

    def test_callable_predicate_returning_none_passes(self, exclusive):
        """Test a predicate that runs nested asserts and returns nothing counts as a pass"""
        calls = []

        def nested():
            calls.append(1)
            exclusive.when_own_coll.eq(2, 2)

        exclusive.when_own_coll(nested, "nested")
        assert calls == [1]


class TestOwnershipModes:
    """when_own_coll is skipped for shared resources; always is enforced in both modes"""

    def test_when_own_coll_skipped_when_shared(self, shared):
        shared.when_own_coll.eq(1, 2, "would fail")
        shared.when_own_coll.is_true(False)
        shared.when_own_coll(False, "would fail")

    def test_lazy_predicate_not_evaluated_when_shared(self, shared):
        """Test a skipped check never evaluates its predicate"""
        predicate = Mock(return_value=False)

        shared.when_own_coll(predicate, "expensive check")

        predicate.assert_not_called()

    def test_always_enforced_when_shared(self, shared):
        with pytest.raises(AssertionViolation):
            shared.always.eq(1, 2)

    def test_when_own_coll_enforced_when_exclusive(self, exclusive):
        with pytest.raises(AssertionViolation):
            exclusive.when_own_coll.eq(1, 2)

    def test_owns_resource(self, exclusive, shared):
        assert exclusive.owns_resource is True
        assert shared.owns_resource is False
