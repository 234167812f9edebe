"""
Transition Table - Validated weighted transition graph and random next-state selection
"""
import bisect
import logging
import math
import random
from types import MappingProxyType
from typing import Dict, List, Mapping, Set, Tuple

from ..errors import ConfigError
from ..models import WorkloadConfig

logger = logging.getLogger(__name__)

WEIGHT_EPSILON = 1e-6


class TransitionTable:
    """
    Immutable adjacency structure: state -> ((next_state, cumulative_weight), ...).

    All validation happens in `build`, so a malformed workload fails before any
    worker starts rather than in the middle of a draw.
    """

    def __init__(self, start_state: str, edges: Mapping[str, Tuple[Tuple[str, float], ...]],
                 terminal_states: frozenset):
        self.start_state = start_state
        self.terminal_states = frozenset(terminal_states)
        self._edges = MappingProxyType(dict(edges))
        self._cumulative = MappingProxyType({
            state: tuple(weight for _, weight in buckets) for state, buckets in edges.items()
        })

    @classmethod
    def build(cls, workload: WorkloadConfig) -> 'TransitionTable':
        """Validate the workload's states/transitions and build the table"""
        states = workload.states
        transitions = workload.transitions
        name = workload.name

        if not states:
            raise ConfigError(f"Workload '{name}' declares no states")
        if workload.start_state not in states:
            raise ConfigError(f"Workload '{name}': start state '{workload.start_state}' is not a declared state")

        for state, fn in states.items():
            if not callable(fn):
                raise ConfigError(f"Workload '{name}': state '{state}' is not callable")

        unknown_terminals = workload.terminal_states - set(states)
        if unknown_terminals:
            raise ConfigError(f"Workload '{name}': terminal states {sorted(unknown_terminals)} are not declared states")

        edges: Dict[str, Tuple[Tuple[str, float], ...]] = {}
        for source, targets in transitions.items():
            if source not in states:
                raise ConfigError(f"Workload '{name}': transition source '{source}' is not a declared state")
            if not targets:
                continue
            edges[source] = cls._cumulative_buckets(name, source, targets, states)

        for state in states:
            if state not in edges and state not in workload.terminal_states:
                raise ConfigError(
                    f"Workload '{name}': state '{state}' has no outgoing transitions "
                    f"and is not marked as terminal"
                )
            if state in edges and state in workload.terminal_states:
                raise ConfigError(f"Workload '{name}': terminal state '{state}' has outgoing transitions")

        unreachable = set(states) - cls._reachable(workload.start_state, transitions)
        if unreachable:
            raise ConfigError(
                f"Workload '{name}': states {sorted(unreachable)} are unreachable "
                f"from start state '{workload.start_state}'"
            )

        logger.debug(f"Built transition table for '{name}' with {len(edges)} source states")
        return cls(workload.start_state, edges, workload.terminal_states)

    @staticmethod
    def _cumulative_buckets(name: str, source: str, targets: Mapping[str, float],
                            states: Mapping) -> Tuple[Tuple[str, float], ...]:
        """Turn {target: weight} into ordered (target, cumulative_weight) buckets"""
        buckets: List[Tuple[str, float]] = []
        total = 0.0
        for target, weight in targets.items():
            if target not in states:
                raise ConfigError(f"Workload '{name}': transition {source} -> {target} targets an undeclared state")
            if isinstance(weight, bool) or not isinstance(weight, (int, float)):
                raise ConfigError(f"Workload '{name}': weight of {source} -> {target} is not a number: {weight!r}")
            if not math.isfinite(weight):
                raise ConfigError(f"Workload '{name}': weight of {source} -> {target} is not finite: {weight}")
            if weight < 0:
                raise ConfigError(f"Workload '{name}': weight of {source} -> {target} is negative: {weight}")
            total += weight
            buckets.append((target, total))

        if abs(total - 1.0) > WEIGHT_EPSILON:
            raise ConfigError(f"Workload '{name}': outgoing weights of '{source}' sum to {total}, expected 1.0")

        # Pin the last bucket to exactly 1.0 so rounding never leaves a gap at the top
        buckets[-1] = (buckets[-1][0], 1.0)
        return tuple(buckets)

    @staticmethod
    def _reachable(start: str, transitions: Mapping[str, Mapping[str, float]]) -> Set[str]:
        seen = {start}
        frontier = [start]
        while frontier:
            state = frontier.pop()
            for target, weight in transitions.get(state, {}).items():
                if weight > 0 and target not in seen:
                    seen.add(target)
                    frontier.append(target)
        return seen

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def successors(self, state: str) -> Tuple[Tuple[str, float], ...]:
        """Ordered (next_state, cumulative_weight) buckets of a state"""
        return self._edges.get(state, ())

    def next_state(self, current: str, rng: random.Random) -> str:
        """Pick the next state with a single uniform draw in [0, 1)"""
        buckets = self._edges.get(current)
        if buckets is None:
            if current in self.terminal_states:
                raise ConfigError(f"No transitions out of terminal state '{current}'")
            raise ConfigError(f"Unknown state '{current}'")

        draw = rng.random()
        index = bisect.bisect_right(self._cumulative[current], draw)
        # Zero-weight buckets share their cumulative value with the previous bucket
        # and are never selected by bisect_right.
        return buckets[min(index, len(buckets) - 1)][0]
