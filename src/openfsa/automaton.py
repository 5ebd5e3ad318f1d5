"""Automata over arbitrary hashable states and labels.

An Automaton pairs an integer FSA with the symbol table that maps its
labels back to the caller's values. Weights on this side are
probabilities; the FSA underneath stores -ln p."""
import logging
from typing import Any, Dict, Hashable, Iterable, List, NamedTuple, Optional, Sequence, TextIO, Tuple

from openfsa import weights
from openfsa.atomic import EPSILON
from openfsa.config import Limits
from openfsa.fsa import FSA
from openfsa._private.exceptions import InvalidArgument

logger = logging.getLogger(__name__)


class Integeriser:
    """Assigns dense integers 0, 1, 2, ... to values in first-seen order."""

    def __init__(self, values: Iterable[Hashable] = ()):
        self._ids: Dict[Hashable, int] = {}
        self._values: List[Hashable] = []
        for v in values:
            self.integerise(v)

    def integerise(self, value: Hashable) -> int:
        i = self._ids.get(value)
        if i is None:
            i = len(self._values)
            self._ids[value] = i
            self._values.append(value)
        return i

    def find_key(self, value: Hashable) -> Optional[int]:
        return self._ids.get(value)

    def find_value(self, i: int):
        if not 0 <= i < len(self._values):
            raise InvalidArgument(f"No value with id {i}")
        return self._values[i]

    def size(self) -> int:
        return len(self._values)

    def values(self) -> List[Hashable]:
        return list(self._values)

    def copy(self) -> 'Integeriser':
        return Integeriser(self._values)

    def __len__(self):
        return len(self._values)

    def __repr__(self):
        return f"Integeriser({self._values!r})"


class LabeledArc(NamedTuple):
    """An arc over caller-defined states and labels, weighted with a probability in (0, 1]."""
    from_state: Any
    to_state: Any
    label: Any
    weight: float


def _merge_labels(labels1: Integeriser, labels2: Integeriser) -> Integeriser:
    """The larger of two symbol tables, if one extends the other."""
    if labels1 is labels2:
        return labels1
    common = min(labels1.size(), labels2.size())
    if labels1.values()[:common] != labels2.values()[:common]:
        raise InvalidArgument("Automata do not share a symbol table; "
                              "build the second one with from_arcs_with_same_labels()")
    return labels1 if labels1.size() >= labels2.size() else labels2


class Automaton:
    """An FSA together with its symbol table. Label ids in the FSA are the
    symbol table ids plus one, since 0 is epsilon."""

    def __init__(self, fsa: FSA, labels: Integeriser):
        self.fsa = fsa
        self.labels = labels

    @classmethod
    def from_arcs(cls, initial_state, final_states: Iterable, arcs: Iterable[Sequence],
                  labels: Optional[Integeriser] = None) -> 'Automaton':
        """Build an automaton from arcs over any hashable states and labels.

        :param initial_state: becomes state 0
        :param final_states: accepting states
        :param arcs: (from_state, to_state, label, probability) records
        :param labels: symbol table to extend (a copy is made); a fresh one if None

        The original state values are not kept; into_arcs() reports the
        integers they were mapped to, in first-seen order starting with the
        initial state."""
        labels = Integeriser() if labels is None else labels.copy()
        states = Integeriser([initial_state])
        finals = [states.integerise(q) for q in final_states]
        intarcs = []
        for src, dst, label, p in arcs:
            intarcs.append((states.integerise(src), states.integerise(dst),
                            labels.integerise(label) + 1, weights.from_probability(p)))
        return cls(FSA.from_arc_list(states.size(), finals, intarcs), labels)

    def from_arcs_with_same_labels(self, initial_state, final_states: Iterable,
                                   arcs: Iterable[Sequence]) -> 'Automaton':
        """Like from_arcs(), continuing this automaton's symbol table so the two can be combined."""
        return Automaton.from_arcs(initial_state, final_states, arcs, labels=self.labels)

    # ==================
    # Operations
    # ==================

    def intersect(self, other: 'Automaton', limits: Optional[Limits] = None) -> 'Automaton':
        labels = _merge_labels(self.labels, other.labels)
        return Automaton(self.fsa.intersect(other.fsa, limits=limits), labels)

    def difference(self, other: 'Automaton', limits: Optional[Limits] = None) -> 'Automaton':
        labels = _merge_labels(self.labels, other.labels)
        return Automaton(self.fsa.difference(other.fsa, limits=limits), labels)

    def n_best(self, n: int) -> 'Automaton':
        return Automaton(self.fsa.n_best(n), self.labels)

    def generate(self, step: int) -> 'BatchGenerator':
        """Iterate over the language in batches of up to `step` words, best first."""
        return BatchGenerator(self, step)

    def _label_value(self, label: int):
        return None if label == EPSILON else self.labels.find_value(label - 1)

    def into_arcs(self) -> Tuple[List[LabeledArc], int, List[int]]:
        """(arcs, initial state, final states) with integer states, original labels
        and probability weights. Epsilon arcs carry the label None."""
        arcs = [LabeledArc(a.from_state, a.to_state, self._label_value(a.label),
                           weights.to_probability(a.weight)) for a in self.fsa.arc_list()]
        return arcs, self.fsa.start, self.fsa.final_states()

    # ==================
    # Saving and Loading
    # ==================

    def to_bytes(self) -> bytes:
        return self.fsa.to_bytes()

    @classmethod
    def from_bytes(cls, labels: Integeriser, data) -> 'Automaton':
        return cls(FSA.from_bytes(data), labels)

    def write_symbols(self, f: TextIO):
        """Dump the symbol table as 'label<TAB>id' lines, ids starting at 1."""
        for i, value in enumerate(self.labels.values()):
            f.write(f"{value}\t{i + 1}\n")

    def __str__(self):
        arcs, initial, finals = self.into_arcs()
        lines = [f"initial {initial}", "final: " + ", ".join(str(q) for q in finals)]
        lines.extend(f"{a.from_state}[{a.label}]\t→ {a.to_state} # {a.weight}" for a in arcs)
        return "\n".join(lines)

    def __repr__(self):
        return f"Automaton(fsa={self.fsa!r}, labels={self.labels!r})"


class BatchGenerator:
    """Yields the language of an automaton as lists of (labels, probability),
    best first, by extracting step, 2*step, 3*step, ... best paths and
    returning only the ones not seen yet."""

    def __init__(self, automaton: Automaton, step: int):
        if isinstance(step, bool) or not isinstance(step, int) or step < 1:
            raise InvalidArgument(f"step must be a positive integer, got {step!r}")
        self.automaton = automaton
        self.step = step
        self.seen = 0
        self.exhausted = False

    def __iter__(self):
        return self

    def __next__(self) -> List[Tuple[List[Any], float]]:
        if self.exhausted:
            raise StopIteration
        wanted = self.seen + self.step
        # rank order is stable as n grows; the first self.seen were returned already
        words = self.automaton.fsa.n_best_paths(wanted)
        if len(words) < wanted:
            self.exhausted = True
        batch = words[self.seen:]
        self.seen = len(words)
        logger.debug(f"Generated batch of {len(batch)} words, {self.seen} in total")
        if not batch:
            raise StopIteration
        return [([self.automaton._label_value(label) for label in labels], weights.to_probability(cost))
                for cost, labels in batch]
