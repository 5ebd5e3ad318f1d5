"""On-the-fly state expanders behind the lazy FSA representations.

An expander hands out dense state ids in discovery order (the start state
is 0) and computes, for one id at a time, the final weight and the
label-sorted outgoing transitions. The owning FSA caches what an expander
returns; expanders themselves only keep the id tables."""
import logging
from typing import Dict, Hashable, List, Tuple

from openfsa import weights
from openfsa.atomic import EPSILON, NO_STATE, StateId, Transition, epsilon_closure, label_key
from openfsa._private.exceptions import ResourceExhausted

logger = logging.getLogger(__name__)

SINK: StateId = -1
"""Complement side of a difference: every continuation is accepted."""

Expansion = Tuple[float, Tuple[Transition, ...]]


class StateTable:
    """Interns hashable state tuples as dense ids."""

    def __init__(self, limit: int):
        self.ids: Dict[Hashable, StateId] = {}
        self.tuples: List[Hashable] = []
        self.limit = limit

    def find_id(self, key) -> StateId:
        sid = self.ids.get(key)
        if sid is None:
            if len(self.tuples) >= self.limit:
                raise ResourceExhausted(f"Product automaton exceeds {self.limit} states")
            sid = len(self.tuples)
            self.ids[key] = sid
            self.tuples.append(key)
        return sid

    def __len__(self):
        return len(self.tuples)


class IntersectExpander:
    """Synchronized product of two acceptors.

    Product states are (state_a, state_b, filter). Non-epsilon labels are
    matched by a merge-join over the two label-sorted arc lists. Epsilons go
    through the usual three-state filter so that every pair of epsilon moves
    yields exactly one path:
      0 -- anything is allowed
      1 -- A moved alone on epsilon; B may not move alone until a real match
      2 -- B moved alone on epsilon; A may not move alone until a real match
    Matched epsilon/epsilon moves are only allowed from 0."""

    def __init__(self, fsa1, fsa2, limits):
        self.fsa1, self.fsa2 = fsa1, fsa2
        self.table = StateTable(limits.max_product_states)
        if fsa1.start == NO_STATE or fsa2.start == NO_STATE:
            self.start = NO_STATE
        else:
            self.start = self.table.find_id((fsa1.start, fsa2.start, 0))

    @property
    def num_discovered(self) -> int:
        return len(self.table)

    def expand(self, sid: StateId) -> Expansion:
        s1, s2, mode = self.table.tuples[sid]
        final = weights.times(self.fsa1.final(s1), self.fsa2.final(s2))
        arcs1, arcs2 = self.fsa1.arcs(s1), self.fsa2.arcs(s2)
        find_id = self.table.find_id
        out = []
        i, j, n1, n2 = 0, 0, len(arcs1), len(arcs2)
        while i < n1 and j < n2:
            l1, l2 = arcs1[i].label, arcs2[j].label
            if l1 < l2:
                i += 1
            elif l1 > l2:
                j += 1
            else:
                iend, jend = i, j
                while iend < n1 and arcs1[iend].label == l1:
                    iend += 1
                while jend < n2 and arcs2[jend].label == l2:
                    jend += 1
                if l1 != EPSILON or mode == 0:
                    for t1 in arcs1[i:iend]:
                        for t2 in arcs2[j:jend]:
                            target = find_id((t1.targetstate, t2.targetstate, 0))
                            out.append(Transition(l1, weights.times(t1.weight, t2.weight), target))
                i, j = iend, jend
        if mode != 2:  # B waits
            for t1 in arcs1:
                if t1.label == EPSILON:
                    out.append(Transition(EPSILON, t1.weight, find_id((t1.targetstate, s2, 1))))
        if mode != 1:  # A waits
            for t2 in arcs2:
                if t2.label == EPSILON:
                    out.append(Transition(EPSILON, t2.weight, find_id((s1, t2.targetstate, 2))))
        out.sort(key=label_key)
        return final, tuple(out)


class DifferenceExpander:
    """Product of an acceptor with the complement of a lazily determinized one.

    The complement is never built: a label the determinized state has no
    transition for routes to SINK, which accepts everything and loops on
    every label."""

    def __init__(self, fsa1, dfa, limits):
        self.fsa1, self.dfa = fsa1, dfa
        self.table = StateTable(limits.max_product_states)
        if fsa1.start == NO_STATE:
            self.start = NO_STATE
        else:
            self.start = self.table.find_id((fsa1.start, dfa.start))

    @property
    def num_discovered(self) -> int:
        return len(self.table)

    def expand(self, sid: StateId) -> Expansion:
        s1, d = self.table.tuples[sid]
        final = self.fsa1.final(s1)
        if final != weights.ZERO and d != SINK and self.dfa.is_final(d):
            final = weights.ZERO
        out = []
        for t in self.fsa1.arcs(s1):
            if t.label == EPSILON or d == SINK:
                nextd = d
            else:
                nextd = self.dfa.transition(d, t.label)
            out.append(Transition(t.label, t.weight, self.table.find_id((t.targetstate, nextd))))
        return final, tuple(out)


class RmEpsilonExpander:
    """Epsilon removal one state at a time. State ids are those of the source."""

    def __init__(self, fsa):
        self.fsa = fsa
        self.start = fsa.start

    @property
    def num_discovered(self) -> int:
        return self.fsa.num_states()

    def expand(self, state: StateId) -> Expansion:
        fsa = self.fsa
        final = fsa.final(state)
        out = [t for t in fsa.arcs(state) if t.label != EPSILON]
        # Hop to each state in the closure, copy its non-epsilon arcs and
        # finality back here with the hop cost added
        for target, cost in epsilon_closure(fsa, state).items():
            for t in fsa.arcs(target):
                if t.label != EPSILON:
                    out.append(Transition(t.label, weights.times(cost, t.weight), t.targetstate))
            final = weights.plus(final, weights.times(cost, fsa.final(target)))
        out.sort(key=label_key)
        return final, tuple(out)
