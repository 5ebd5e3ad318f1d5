import heapq
import itertools
from typing import Dict, Iterable, Iterator, List, NamedTuple, Tuple

from typing_extensions import TypeAlias

from openfsa import weights

StateId: TypeAlias = int
Label: TypeAlias = int

NO_STATE: StateId = -1
"""Start state of the empty automaton."""
NO_LABEL: Label = -1
EPSILON: Label = 0

INT32_MIN, INT32_MAX = -2 ** 31, 2 ** 31 - 1


class Arc(NamedTuple):
    """An arc as it appears in arc lists: (from_state, to_state, label, weight)."""
    from_state: StateId
    to_state: StateId
    label: Label
    weight: float


class Transition(NamedTuple):
    """An outgoing arc of a state. Acceptor: one label is both input and output."""
    label: Label
    weight: float
    targetstate: StateId


def label_key(t: Transition) -> Label:
    return t.label


def all_transitions(fsa, states: Iterable[StateId]) -> Iterator[Tuple[StateId, Transition]]:
    """Enumerate all transitions (state, Transition) for an iterable of states."""
    for state in states:
        for t in fsa.arcs(state):
            yield state, t


def create_reverse_index(fsa) -> Dict[StateId, List[Tuple[StateId, float]]]:
    """Returns, for each state, the (source, cheapest weight) pairs of arcs entering it."""
    idx: Dict[StateId, Dict[StateId, float]] = {s: {} for s in fsa.states()}
    for s, t in all_transitions(fsa, fsa.states()):
        prev = idx[t.targetstate].get(s, weights.ZERO)
        idx[t.targetstate][s] = weights.plus(prev, t.weight)
    return {s: list(sources.items()) for s, sources in idx.items()}


def epsilon_closure(fsa, state: StateId) -> Dict[StateId, float]:
    """Finds, for a state, the cheapest cost of reaching other states by epsilon-hopping."""
    explored, cntr = {}, itertools.count()
    q = [(weights.ONE, next(cntr), state)]
    while q:
        cost, _, source = heapq.heappop(q)
        if source not in explored:
            explored[source] = cost
            for t in fsa.arcs(source):
                if t.label == EPSILON and t.targetstate not in explored:
                    heapq.heappush(q, (weights.times(cost, t.weight), next(cntr), t.targetstate))
    explored.pop(state)  # Remove the state where we started from
    return explored
