"""
Assertion Policy - Ownership-aware invariant checks for workload actions

Two assertion modes exist:

- ALWAYS: enforced regardless of how the resource is shared.
- WHEN_OWN_COLL: enforced only when each worker owns its resource exclusively.
  With a shared resource, concurrent writers make such invariants unverifiable,
  so the check is skipped (and a lazy predicate is never evaluated).

Workload actions reach the policy through ``ctx.asserts``::

    ctx.asserts.always.eq(1000, inserted, "all documents inserted", result=res)
    ctx.asserts.when_own_coll.eq(expected, count, "integer query count")
    ctx.asserts.when_own_coll(lambda: expensive_check(), "geo query matches")
"""
from enum import Enum
from typing import Any, Callable, Union

from ..errors import AssertionViolation
from ..models import ResourceSharing


class AssertionMode(Enum):
    ALWAYS = "always"
    WHEN_OWN_COLL = "when_own_coll"


Predicate = Union[bool, Callable[[], Any]]


def is_enforced(mode: AssertionMode, resource_sharing: ResourceSharing) -> bool:
    """Whether a check of the given mode is enforced under the given ownership model"""
    if mode == AssertionMode.ALWAYS:
        return True
    return resource_sharing == ResourceSharing.EXCLUSIVE


class ScopedAssert:
    """Assertions bound to one mode and one ownership model"""

    def __init__(self, mode: AssertionMode, resource_sharing: ResourceSharing):
        self.mode = mode
        self.resource_sharing = resource_sharing
        self.enforced = is_enforced(mode, resource_sharing)

    def __call__(self, predicate: Predicate, message: str = "assertion failed", result: Any = None) -> None:
        if not self.enforced:
            return
        outcome = predicate() if callable(predicate) else predicate
        # A callable predicate may run its own nested asserts and return None
        if callable(predicate) and outcome is None:
            return
        if not outcome:
            raise AssertionViolation(f"[{self.mode.value}] {message}", result=result, mode=self.mode.value)

    def _compare(self, ok: Callable[[], bool], detail: str, message: str, result: Any) -> None:
        if not self.enforced:
            return
        if not ok():
            text = f"{message}: {detail}" if message else detail
            raise AssertionViolation(f"[{self.mode.value}] {text}", result=result, mode=self.mode.value)

    def eq(self, expected: Any, actual: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: expected == actual, f"expected {expected!r} == {actual!r}", message, result)

    def neq(self, a: Any, b: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: a != b, f"expected {a!r} != {b!r}", message, result)

    def lt(self, a: Any, b: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: a < b, f"expected {a!r} < {b!r}", message, result)

    def lte(self, a: Any, b: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: a <= b, f"expected {a!r} <= {b!r}", message, result)

    def gt(self, a: Any, b: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: a > b, f"expected {a!r} > {b!r}", message, result)

    def gte(self, a: Any, b: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: a >= b, f"expected {a!r} >= {b!r}", message, result)

    def is_true(self, value: Any, message: str = "", result: Any = None) -> None:
        self._compare(lambda: bool(value), f"expected truthy value, got {value!r}", message, result)

    def command_worked(self, response: Any, message: str = "", result: Any = None) -> None:
        """A command response is considered failed if it is an exception or a falsy ack"""
        failed = isinstance(response, BaseException) or response is False or response is None
        self._compare(lambda: not failed, f"command failed: {response!r}", message,
                      response if result is None else result)


class AssertionPolicy:
    """Both assertion modes for one run's ownership model"""

    def __init__(self, resource_sharing: ResourceSharing):
        self.resource_sharing = resource_sharing
        self.always = ScopedAssert(AssertionMode.ALWAYS, resource_sharing)
        self.when_own_coll = ScopedAssert(AssertionMode.WHEN_OWN_COLL, resource_sharing)

    @property
    def owns_resource(self) -> bool:
        return self.resource_sharing == ResourceSharing.EXCLUSIVE
