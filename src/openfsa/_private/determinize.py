import logging
from collections import deque
from typing import Dict, FrozenSet, List

from openfsa.atomic import EPSILON, NO_STATE, Label, StateId
from openfsa._private.exceptions import PreconditionViolated
from openfsa._private.lazy import SINK

logger = logging.getLogger(__name__)


class SubsetConstruction:
    """Lazy subset construction of an acceptor with its weights stripped.

    Each state of the result is an epsilon-closed set of source states,
    interned as a dense id. Transitions of a subset are computed the first
    time they are asked for. A label with no successors has no transition;
    callers decide what that means (difference routes it to a sink)."""

    def __init__(self, fsa, limits):
        self.fsa = fsa
        self.limit = limits.max_determinized_states
        self.ids: Dict[FrozenSet[StateId], StateId] = {}
        self.subsets: List[FrozenSet[StateId]] = []
        self.finals: List[bool] = []
        self.delta: Dict[StateId, Dict[Label, StateId]] = {}
        if fsa.start == NO_STATE:
            self.start = SINK
        else:
            self.start = self._find_id(self._closure({fsa.start}))

    def _closure(self, states) -> FrozenSet[StateId]:
        closed = set(states)
        stack = list(states)
        while stack:
            s = stack.pop()
            for t in self.fsa.arcs(s):
                if t.label == EPSILON and t.targetstate not in closed:
                    closed.add(t.targetstate)
                    stack.append(t.targetstate)
        return frozenset(closed)

    def _find_id(self, subset: FrozenSet[StateId]) -> StateId:
        sid = self.ids.get(subset)
        if sid is None:
            if len(self.subsets) >= self.limit:
                raise PreconditionViolated(
                    f"Determinization exceeds {self.limit} states; subtrahend is too ambiguous")
            sid = len(self.subsets)
            self.ids[subset] = sid
            self.subsets.append(subset)
            self.finals.append(any(self.fsa.is_final(s) for s in subset))
            if sid and sid % 10000 == 0:
                logger.debug(f"Determinized {sid} subsets")
        return sid

    def __len__(self):
        return len(self.subsets)

    def is_final(self, sid: StateId) -> bool:
        return self.finals[sid]

    def transitions(self, sid: StateId) -> Dict[Label, StateId]:
        """All transitions of a subset, as label -> subset id."""
        delta = self.delta.get(sid)
        if delta is None:
            collect: Dict[Label, set] = {}
            for s in self.subsets[sid]:
                for t in self.fsa.arcs(s):
                    if t.label != EPSILON:
                        collect.setdefault(t.label, set()).add(t.targetstate)
            delta = {label: self._find_id(self._closure(targets))
                     for label, targets in sorted(collect.items())}
            self.delta[sid] = delta
        return delta

    def transition(self, sid: StateId, label: Label) -> StateId:
        return self.transitions(sid).get(label, SINK)

    def explore(self):
        """Discover every subset reachable from the start."""
        if self.start == SINK:
            return
        Q = deque([self.start])
        seen = {self.start}
        while Q:
            sid = Q.popleft()
            for target in self.transitions(sid).values():
                if target not in seen:
                    seen.add(target)
                    Q.append(target)
        logger.debug(f"Subset construction finished with {len(self)} states")
