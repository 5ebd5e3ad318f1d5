import heapq, itertools, logging, threading
from array import array
from collections import deque, defaultdict
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, cast

from tqdm import tqdm

from openfsa import weights
from openfsa.atomic import (Arc, Transition, StateId, Label, EPSILON, NO_LABEL, NO_STATE,
                            INT32_MIN, INT32_MAX, all_transitions, create_reverse_index, label_key)
from openfsa.config import DEFAULT_LIMITS, Limits
from openfsa._private import codec, util
from openfsa._private.determinize import SubsetConstruction
from openfsa._private.exceptions import InvalidArgument, OutOfRangeState, ResourceExhausted
from openfsa._private.lazy import DifferenceExpander, IntersectExpander, RmEpsilonExpander

logger = logging.getLogger(__name__)


class Representation(IntEnum):
    """The ways an FSA can store (or compute) its graph. All of them answer
    the same read-only queries; only the storage differs."""
    MATERIALIZED = 0  # mutable per-state arc lists
    RMEPSILON = 1     # lazy epsilon removal
    INTERSECTION = 2  # lazy product
    DIFFERENCE = 3    # lazy product with a complemented operand
    COMPACT = 4       # flat arrays, same layout as the binary format
    IMMUTABLE = 5     # per-state tuples

    @property
    def is_lazy(self) -> bool:
        return self in _LAZY


_LAZY = frozenset({Representation.RMEPSILON, Representation.INTERSECTION, Representation.DIFFERENCE})


class FSA:
    """A weighted finite-state acceptor over the tropical semiring.

    States are dense integers, labels are 32-bit integers with 0 reserved
    for epsilon, and the outgoing arcs of every state are sorted by label.
    Operations never modify their operands; they return new automata,
    some of which (intersect, difference, rm_epsilon) compute their states
    on demand."""

    # ==================
    # Initializers
    # ==================

    def __init__(self):
        """Creates an empty, mutable (MATERIALIZED) automaton with no states."""
        self.kind = Representation.MATERIALIZED
        self._start = NO_STATE
        self._arcs: List = []
        self._finals: Dict[StateId, float] = {}

    @classmethod
    def _frozen(cls, kind: Representation, start: StateId, arcs: Sequence[Sequence[Transition]],
                finals: Dict[StateId, float]) -> 'FSA':
        """Build a MATERIALIZED or IMMUTABLE automaton from label-sorted per-state arcs."""
        new_fsa = cls()
        new_fsa.kind = kind
        new_fsa._start = start
        if kind == Representation.IMMUTABLE:
            new_fsa._arcs = tuple(tuple(a) for a in arcs)
        else:
            new_fsa._arcs = [list(a) for a in arcs]
        new_fsa._finals = {s: w for s, w in finals.items() if w != weights.ZERO}
        return new_fsa

    @classmethod
    def _compact(cls, start: StateId, offsets: array, labels: array, fweights: array,
                 targets: array) -> 'FSA':
        """Wrap flat arrays laid out as in the binary format (see _private.codec)."""
        new_fsa = cls()
        new_fsa.kind = Representation.COMPACT
        new_fsa._start = start
        new_fsa._arcs = None
        new_fsa._finals = None
        new_fsa._offsets, new_fsa._labels = offsets, labels
        new_fsa._weights, new_fsa._targets = fweights, targets
        return new_fsa

    @classmethod
    def _lazy(cls, kind: Representation, expander) -> 'FSA':
        new_fsa = cls()
        new_fsa.kind = kind
        new_fsa._arcs = None
        new_fsa._finals = None
        new_fsa._expander = expander
        new_fsa._cache: Dict[StateId, Tuple[float, Tuple[Transition, ...]]] = {}
        new_fsa._lock = threading.RLock()
        return new_fsa

    @classmethod
    def from_arc_list(cls, num_states: int, final_states: Iterable[StateId],
                      arcs: Iterable[Sequence]) -> 'FSA':
        """Build a COMPACT automaton.

        :param num_states: number of states; state ids are 0 .. num_states-1
        :param final_states: states to make final, always with weight one()
        :param arcs: (from_state, to_state, label, weight) records

        The start state is always 0. Arcs leaving the same state keep their
        relative order among equal labels."""
        if not isinstance(num_states, int) or num_states < 0:
            raise InvalidArgument(f"Number of states must be a non-negative integer, got {num_states!r}")
        per_state: List[List[Transition]] = [[] for _ in range(num_states)]
        finals = {}
        for s in final_states:
            _check_state(s, num_states)
            finals[s] = weights.ONE
        for arc in arcs:
            src, dst, label, w = arc
            _check_state(src, num_states)
            _check_state(dst, num_states)
            _check_label(label)
            per_state[src].append(Transition(label, weights.validate(w), dst))
        for trs in per_state:
            trs.sort(key=label_key)
        start = 0 if num_states else NO_STATE
        return cls._frozen(Representation.MATERIALIZED, start, per_state, finals).to_compact()

    # ==================
    # Graph queries
    # ==================

    def _state_data(self, state: StateId) -> Tuple[float, Sequence[Transition]]:
        """(final weight, arcs) of a state. The only place that looks at the storage."""
        kind = self.kind
        if kind == Representation.MATERIALIZED or kind == Representation.IMMUTABLE:
            _check_state(state, len(self._arcs))
            return self._finals.get(state, weights.ZERO), self._arcs[state]
        if kind == Representation.COMPACT:
            _check_state(state, len(self._offsets) - 1)
            lo, hi = self._offsets[state], self._offsets[state + 1]
            final = weights.ZERO
            if lo < hi and self._labels[lo] == NO_LABEL:
                final = self._weights[lo]
                lo += 1
            labels, fweights, targets = self._labels, self._weights, self._targets
            return final, tuple(Transition(labels[k], fweights[k], targets[k]) for k in range(lo, hi))
        with self._lock:
            data = self._cache.get(state)
            if data is None:
                _check_state(state, self._expander.num_discovered)
                try:
                    data = self._expander.expand(state)
                except MemoryError as e:
                    raise ResourceExhausted(f"Out of memory expanding {kind.name} state {state}") from e
                self._cache[state] = data
            return data

    @property
    def start(self) -> StateId:
        """The start state, or NO_STATE (-1) if the automaton has no states."""
        if self.kind.is_lazy:
            return self._expander.start
        return self._start

    def num_states(self) -> int:
        """Number of states. Expands lazy views completely."""
        kind = self.kind
        if kind == Representation.COMPACT:
            return len(self._offsets) - 1
        if kind.is_lazy:
            self.expand()
            return self._expander.num_discovered
        return len(self._arcs)

    def states(self) -> range:
        return range(self.num_states())

    def arcs(self, state: StateId) -> Tuple[Transition, ...]:
        """Outgoing arcs of a state, sorted by label."""
        return tuple(self._state_data(state)[1])

    def num_arcs(self, state: StateId) -> int:
        return len(self._state_data(state)[1])

    def final(self, state: StateId) -> float:
        """Final weight of a state; weights.ZERO if it is not final."""
        return self._state_data(state)[0]

    def is_final(self, state: StateId) -> bool:
        return self.final(state) != weights.ZERO

    def final_states(self) -> List[StateId]:
        return [s for s in self.states() if self.is_final(s)]

    def arc_list(self) -> List[Arc]:
        """All arcs as (from_state, to_state, label, weight), grouped by source state."""
        return [Arc(s, t.targetstate, t.label, t.weight) for s, t in all_transitions(self, self.states())]

    def is_empty(self) -> bool:
        return self.start == NO_STATE

    # ==================
    # Representations
    # ==================

    def expand(self, progress: bool = False) -> 'FSA':
        """Compute every reachable state of a lazy view (no-op for other representations).
        Idempotent; returns self. Set progress=True for a tqdm progress bar."""
        if not self.kind.is_lazy:
            return self
        with self._lock:
            expander = self._expander
            with tqdm(desc=self.kind.name.lower(), unit=" states", disable=not progress) as bar:
                state = 0
                while state < expander.num_discovered:
                    self._state_data(state)
                    state += 1
                    bar.update(1)
        logger.info(f"Expanded {self.kind.name} view: {expander.num_discovered} states")
        return self

    def _collect(self) -> Tuple[List[Tuple[Transition, ...]], Dict[StateId, float]]:
        arcs, finals = [], {}
        for s in self.states():
            final, trs = self._state_data(s)
            arcs.append(tuple(trs))
            if final != weights.ZERO:
                finals[s] = final
        return arcs, finals

    def materialize(self) -> 'FSA':
        """A mutable MATERIALIZED copy; self if already MATERIALIZED."""
        if self.kind == Representation.MATERIALIZED:
            return self
        arcs, finals = self._collect()
        return FSA._frozen(Representation.MATERIALIZED, self.start, arcs, finals)

    def to_immutable(self) -> 'FSA':
        if self.kind == Representation.IMMUTABLE:
            return self
        arcs, finals = self._collect()
        return FSA._frozen(Representation.IMMUTABLE, self.start, arcs, finals)

    def to_compact(self) -> 'FSA':
        if self.kind == Representation.COMPACT:
            return self
        offsets, labels, fweights, targets = array('q', [0]), array('i'), array('f'), array('i')
        for s in self.states():
            final, trs = self._state_data(s)
            if final != weights.ZERO:
                labels.append(NO_LABEL)
                fweights.append(final)
                targets.append(NO_STATE)
            for t in trs:
                labels.append(t.label)
                fweights.append(t.weight)
                targets.append(t.targetstate)
            offsets.append(len(labels))
        return FSA._compact(self.start, offsets, labels, fweights, targets)

    def copy(self) -> 'FSA':
        """An independent MATERIALIZED copy."""
        arcs, finals = self._collect()
        return FSA._frozen(Representation.MATERIALIZED, self.start, arcs, finals)

    __copy__ = copy

    # ==================
    # Mutation (MATERIALIZED only)
    # ==================

    def _check_mutable(self):
        if self.kind != Representation.MATERIALIZED:
            raise InvalidArgument(f"Cannot modify a {self.kind.name} automaton; call materialize() first")

    def add_state(self) -> StateId:
        self._check_mutable()
        self._arcs.append([])
        return len(self._arcs) - 1

    def set_start(self, state: StateId):
        self._check_mutable()
        _check_state(state, len(self._arcs))
        self._start = state

    def set_final(self, state: StateId, weight: float = weights.ONE):
        """Make state final with weight; weights.ZERO makes it non-final."""
        self._check_mutable()
        _check_state(state, len(self._arcs))
        if weight == weights.ZERO:
            self._finals.pop(state, None)
        else:
            self._finals[state] = weights.validate(weight)

    def add_arc(self, source: StateId, target: StateId, label: Label, weight: float = weights.ONE):
        """Add an arc, keeping the arcs of source sorted by label."""
        self._check_mutable()
        _check_state(source, len(self._arcs))
        _check_state(target, len(self._arcs))
        _check_label(label)
        trs = self._arcs[source]
        i = len(trs)
        while i > 0 and trs[i - 1].label > label:
            i -= 1
        trs.insert(i, Transition(label, weights.validate(weight), target))

    # ==================
    # Operations
    # ==================

    def intersect(self, fsa2: 'FSA', limits: Optional[Limits] = None) -> 'FSA':
        """Lazy intersection: accepts what both accept, with weights added."""
        return FSA._lazy(Representation.INTERSECTION,
                         IntersectExpander(self, fsa2, limits or DEFAULT_LIMITS))

    def difference(self, fsa2: 'FSA', limits: Optional[Limits] = None) -> 'FSA':
        """Lazy difference: what self accepts and fsa2 does not, with self's weights.
        fsa2 only contributes its language; its weights are ignored."""
        limits = limits or DEFAULT_LIMITS
        dfa = SubsetConstruction(fsa2, limits)
        return FSA._lazy(Representation.DIFFERENCE, DifferenceExpander(self, dfa, limits))

    def rm_epsilon(self) -> 'FSA':
        """Lazy epsilon removal, keeping state ids."""
        return FSA._lazy(Representation.RMEPSILON, RmEpsilonExpander(self))

    def n_best(self, n: int, limits: Optional[Limits] = None) -> 'FSA':
        """An automaton with the n lowest-weight paths of self."""
        from openfsa import algorithms
        return algorithms.n_best(self, n, limits=limits)

    def n_best_paths(self, n: int, limits: Optional[Limits] = None) -> List[Tuple[float, Tuple[Label, ...]]]:
        """The n lowest-weight paths of self as (cost, labels), best first."""
        from openfsa import algorithms
        return algorithms.n_best_paths(self, n, limits=limits)

    def shortest_distance(self, reverse: bool = False) -> List[float]:
        from openfsa import algorithms
        return algorithms.shortest_distance(self, reverse=reverse)

    def remove_weights(self) -> 'FSA':
        """Copy with every arc and final weight set to one()."""
        arcs, finals = self._collect()
        arcs = [[t._replace(weight=weights.ONE) for t in trs] for trs in arcs]
        return FSA._frozen(Representation.MATERIALIZED, self.start,
                           arcs, {s: weights.ONE for s in finals})

    def determinize(self, limits: Optional[Limits] = None) -> 'FSA':
        """Unweighted subset construction. Epsilons are followed, so the result is epsilon-free."""
        dfa = SubsetConstruction(self, limits or DEFAULT_LIMITS)
        if dfa.start == NO_STATE:
            return FSA()
        dfa.explore()
        arcs = [[Transition(label, weights.ONE, target) for label, target in dfa.transitions(sid).items()]
                for sid in range(len(dfa))]
        finals = {sid: weights.ONE for sid in range(len(dfa)) if dfa.is_final(sid)}
        return FSA._frozen(Representation.MATERIALIZED, dfa.start, arcs, finals)

    def connect(self) -> 'FSA':
        """Remove states that aren't both accessible and coaccessible. Survivors keep their order."""
        if self.start == NO_STATE:
            return FSA()
        explored = {self.start}
        stack = deque([self.start])
        while stack:
            source = stack.pop()
            for t in self.arcs(source):
                if t.targetstate not in explored:
                    explored.add(t.targetstate)
                    stack.append(t.targetstate)
        inverse = create_reverse_index(self)
        coaccessible = {s for s in explored if self.is_final(s)}
        stack = deque(coaccessible)
        while stack:
            target = stack.pop()
            for source, _ in inverse[target]:
                if source in explored and source not in coaccessible:
                    coaccessible.add(source)
                    stack.append(source)
        if self.start not in coaccessible:
            return FSA()
        kept = sorted(coaccessible)
        statemap = {s: i for i, s in enumerate(kept)}
        arcs = [[t._replace(targetstate=statemap[t.targetstate]) for t in self.arcs(s)
                 if t.targetstate in statemap] for s in kept]
        finals = {statemap[s]: self.final(s) for s in kept if self.is_final(s)}
        return FSA._frozen(Representation.MATERIALIZED, statemap[self.start], arcs, finals)

    trim = connect

    # ==================
    # Paths
    # ==================

    def words(self):
        """A generator to yield all (cost, labels) pairs, shortest paths first. Yay BFS!
        Epsilons are left out of the label sequences."""
        if self.start == NO_STATE:
            return
        Q = deque([(self.start, weights.ONE, ())])
        while Q:
            s, cost, seq = Q.popleft()
            if self.is_final(s):
                yield weights.times(cost, self.final(s)), seq
            for t in self.arcs(s):
                Q.append((t.targetstate, weights.times(cost, t.weight),
                          seq if t.label == EPSILON else seq + (t.label,)))

    def words_cheapest(self):
        """A generator to yield all (cost, labels) pairs in order of cost, cheapest first.
        Ties come out in the order they were found."""
        if self.start == NO_STATE:
            return
        cntr = itertools.count()
        Q: List[Tuple[float, int, StateId, Tuple]] = [(weights.ONE, next(cntr), self.start, ())]
        while Q:
            cost, _, s, seq = heapq.heappop(Q)
            if s == NO_STATE:
                yield cost, seq
            else:
                if self.is_final(s):
                    heapq.heappush(Q, (weights.times(cost, self.final(s)), next(cntr), NO_STATE, seq))
                for t in self.arcs(s):
                    heapq.heappush(Q, (weights.times(cost, t.weight), next(cntr), t.targetstate,
                                       seq if t.label == EPSILON else seq + (t.label,)))

    def words_nbest(self, n) -> list:
        """Finds the n cheapest words, returning a list of (cost, labels)."""
        return list(itertools.islice(self.words_cheapest(), n))

    # ==================
    # Saving and Loading
    # ==================

    def to_bytes(self) -> bytes:
        """Serialize to the compact acceptor binary format."""
        return codec.encode(self)

    @classmethod
    def from_bytes(cls, data) -> 'FSA':
        """Parse the compact acceptor binary format. Raises CorruptEncoding on bad input."""
        return codec.decode(data)

    def save(self, path: str):
        """Saves the automaton to a file.
        Args:
            path (str): The path to save to (.fsa is appended if missing)
        """
        if not path.endswith('.fsa'):
            path = path + '.fsa'
        with open(path, 'wb') as f:
            f.write(self.to_bytes())

    @classmethod
    def load(cls, path: str) -> 'FSA':
        """Loads an automaton from a .fsa file."""
        if not path.endswith('.fsa'):
            path = path + '.fsa'
        with open(path, 'rb') as f:
            return cls.from_bytes(f.read())

    # ==================
    # Rendering
    # ==================

    def view(self, show_weights=False) -> 'graphviz.Digraph':
        """Creates a 'graphviz.Digraph' object to view the automaton. Will automatically display in Jupyter.

            :param show_weights: force display of weights even if 0.0
            :return: A Digraph object which will automatically display in Jupyter.

           If you would like to display the automaton from a non-Jupyter environment, please use :code:`FSA.render`
        """
        import graphviz
        if not util.check_graphviz_installed():
            raise EnvironmentError("Graphviz executable not found. Please install [Graphviz](https://www.graphviz.org/download/). On macOS, use `brew install graphviz`.")

        if not show_weights:
            show_weights = any(t.weight != weights.ONE for _, t in all_transitions(self, self.states())) or \
                any(self.final(s) != weights.ONE for s in self.final_states())

        def _name(s):
            if self.is_final(s):
                return str(s) + util.format_weight(self.final(s), show_weights)
            return str(s)

        g = graphviz.Digraph('FSA', graph_attr={"rankdir": "LR"})
        g.attr(rankdir='LR', size='8,5')
        for s in self.states():
            shape = 'doublecircle' if self.is_final(s) else 'circle'
            style = 'filled, bold' if s == self.start else 'filled'
            g.node(_name(s), shape=shape, style=style)
        for s in self.states():
            grouped = defaultdict(list)
            for t in self.arcs(s):
                label = '&#x03f5;' if t.label == EPSILON else str(t.label)
                grouped[t.targetstate].append(label + util.format_weight(t.weight, show_weights))
            for target, labellist in grouped.items():
                g.edge(_name(s), _name(target), label=graphviz.nohtml(', '.join(labellist)))
        return g

    def render(self, view=True, filename: str = 'FSA', format='pdf', tight=True):
        """
        Renders the automaton to a file and optionally opens the file.
        :param view: If True, the rendered file will be opened.
        :param format: The file format for the Digraph. Typically 'pdf', 'png', or 'svg'. View all formats: https://graphviz.org/docs/outputs/
        :param tight: If False, the rendered file will have whitespace margins around the graph.
        """
        import graphviz
        digraph = cast(graphviz.Digraph, self.view())
        digraph.format = format
        if tight:
            digraph.graph_attr['margin'] = '0'  # Remove padding
        digraph.render(view=view, filename=filename, cleanup=True)

    # ==================
    # Magic Methods
    # ==================

    def __len__(self):
        """Return the number of states."""
        return self.num_states()

    def __iter__(self):
        return iter(self.states())

    def __str__(self):
        """Generate an AT&T string representing the automaton, start state first."""
        st = ""
        if self.start == NO_STATE:
            return st
        order = [self.start] + [s for s in self.states() if s != self.start]
        for s in order:
            for t in self.arcs(s):
                st += '{}\t{}\t{}\t{}\t{}\n'.format(s, t.targetstate, t.label, t.label, t.weight)
        for s in order:
            if self.is_final(s):
                st += '{}\t{}\n'.format(s, self.final(s))
        return st

    def __repr__(self):
        return f"<FSA {self.kind.name} start={self.start}>"

    def __and__(self, other):
        """Intersection."""
        return self.intersect(other)

    def __sub__(self, other):
        """Difference."""
        return self.difference(other)


def _check_state(state, num_states: int):
    if not isinstance(state, int) or not 0 <= state < num_states:
        raise OutOfRangeState(state, num_states)


def _check_label(label):
    if isinstance(label, bool) or not isinstance(label, int) or not INT32_MIN <= label <= INT32_MAX \
            or label == NO_LABEL:
        raise InvalidArgument(f"Bad label {label!r}")


# ==================
# Global Functions
# ==================
def build(num_states: int, final_states: Iterable[StateId], arcs: Iterable[Sequence]) -> FSA:
    return FSA.from_arc_list(num_states, final_states, arcs)

def intersect(fsa1: FSA, fsa2: FSA, limits: Optional[Limits] = None) -> FSA:
    return fsa1.intersect(fsa2, limits=limits)

def difference(fsa1: FSA, fsa2: FSA, limits: Optional[Limits] = None) -> FSA:
    return fsa1.difference(fsa2, limits=limits)

def n_best(fsa: FSA, n: int, limits: Optional[Limits] = None) -> FSA:
    return fsa.n_best(n, limits=limits)

def encode(fsa: FSA) -> bytes:
    return fsa.to_bytes()

def decode(data) -> FSA:
    return FSA.from_bytes(data)
