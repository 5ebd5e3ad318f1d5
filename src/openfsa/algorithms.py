#!/usr/bin/env python

"""Defines shortest-path algorithms over FSAs"""
import heapq
import itertools
import logging
from typing import List, Optional, Tuple

from openfsa import weights
from openfsa.atomic import EPSILON, NO_STATE, Label, StateId, create_reverse_index
from openfsa.config import DEFAULT_LIMITS, Limits
from openfsa.fsa import FSA
from openfsa._private.exceptions import InvalidArgument, ResourceExhausted

logger = logging.getLogger(__name__)


def shortest_distance(fsa: FSA, reverse: bool = False) -> List[float]:
    """Tropical shortest distances, indexed by state.

    Forward: the cost of the cheapest path from the start to each state.
    Reverse: the cost of the cheapest path from each state to a final state,
    final weight included. Unreachable entries are weights.ZERO."""
    num_states = fsa.num_states()
    dist = [weights.ZERO] * num_states
    cntr = itertools.count()  # decrease-key is for wusses
    if reverse:
        inverse = create_reverse_index(fsa)
        Q = [(fsa.final(s), next(cntr), s) for s in fsa.final_states()]
        heapq.heapify(Q)
        edges = lambda s: inverse[s]
    else:
        Q = [(weights.ONE, next(cntr), fsa.start)] if fsa.start != NO_STATE else []
        edges = lambda s: ((t.targetstate, t.weight) for t in fsa.arcs(s))
    explored = set()
    while Q:
        w, _, s = heapq.heappop(Q)
        if s in explored:
            continue
        explored.add(s)
        dist[s] = w
        for other, cost in edges(s):
            if other not in explored:
                heapq.heappush(Q, (weights.times(w, cost), next(cntr), other))
    return dist


def dijkstra(fsa: FSA, state: StateId) -> float:
    """The cost of the cheapest path from state to a final state. Go Edsger!"""
    explored, cntr = set(), itertools.count()
    Q = [(weights.ONE, next(cntr), state)]  # Middle is dummy cntr to avoid key ties
    while Q:
        w, _, s = heapq.heappop(Q)
        if s == NO_STATE:  # First exit we pull out is the lowest-cost one
            return w
        if s in explored:
            continue
        explored.add(s)
        if fsa.is_final(s):
            # now we push NO_STATE to signal the exit from a final
            heapq.heappush(Q, (weights.times(w, fsa.final(s)), next(cntr), NO_STATE))
        for t in fsa.arcs(s):
            if t.targetstate not in explored:
                heapq.heappush(Q, (weights.times(w, t.weight), next(cntr), t.targetstate))
    return weights.ZERO


def epsilon_remove(fsa: FSA) -> FSA:
    """Create a new epsilon-free MATERIALIZED automaton equivalent to fsa, same state ids."""
    return fsa.rm_epsilon().materialize()


def n_best(fsa: FSA, n: int, limits: Optional[Limits] = None) -> FSA:
    """The n lowest-weight accepting paths of fsa, as a COMPACT automaton.

    Paths, not strings: two paths spelling the same labels both count.
    If fewer than n accepting paths exist, all of them are returned.

    This is Dijkstra with up to n pops per state instead of one, searched
    A*-style with the exact reverse distances as heuristic, so states that
    cannot reach a final state are never expanded. Every pop becomes a
    (state, rank) node pointing back at the node it was reached from; heap
    ties are broken by push order, which makes the output reproducible and
    the n-best paths a prefix of the (n+1)-best ones. The nodes on completed
    paths form a tree whose leaves hop to one super-final state on epsilon
    arcs carrying the final weight; epsilon removal then folds those hops
    back into final weights.

    More than limits.max_product_states search nodes raises ResourceExhausted."""
    search = _search(fsa, n, limits)
    if search is None:
        return FSA().to_compact()
    return _paths_automaton(*search)


def n_best_paths(fsa: FSA, n: int, limits: Optional[Limits] = None) -> List[Tuple[float, Tuple[Label, ...]]]:
    """The n lowest-weight accepting paths of fsa as (cost, labels), in rank order.

    Same search as n_best(); equal costs keep the order the search found them
    in, so the first n entries of n_best_paths(fsa, n + k) are n_best_paths(fsa, n).
    Epsilons are left out of the label sequences."""
    search = _search(fsa, n, limits)
    if search is None:
        return []
    nodes, completions = search
    paths = []
    for node, _, total in completions:
        labels = []
        while node != -1:
            _, parent, label, _ = nodes[node]
            if label != EPSILON:
                labels.append(label)
            node = parent
        paths.append((total, tuple(reversed(labels))))
    return paths


def _search(fsa: FSA, n: int, limits: Optional[Limits]):
    """(nodes, completions) of the n-best search, or None if there is no accepting path."""
    if isinstance(n, bool) or not isinstance(n, int) or n < 1:
        raise InvalidArgument(f"n must be a positive integer, got {n!r}")
    if fsa.start == NO_STATE:
        return None
    limit = (limits or DEFAULT_LIMITS).max_product_states
    try:
        return _astar(fsa, n, limit)
    except MemoryError as e:
        raise ResourceExhausted(f"Out of memory extracting {n} best paths") from e


def _astar(fsa: FSA, n: int, limit: int):
    h = shortest_distance(fsa, reverse=True)
    start = fsa.start
    if h[start] == weights.ZERO:
        logger.info("No accepting path")
        return None

    # node = (state, parent node, label, weight of the arc from the parent)
    nodes: List[Tuple[StateId, int, Label, float]] = []
    rank = [0] * len(h)
    # (node, final weight, path cost), in the order they were popped
    completions: List[Tuple[int, float, float]] = []
    cntr = itertools.count()
    # (g + h, tiebreak, g, state, parent node, label, weight); state NO_STATE marks a completion
    Q = [(h[start], next(cntr), weights.ONE, start, -1, EPSILON, weights.ONE)]
    while Q and len(completions) < n:
        _, _, g, state, parent, label, w = heapq.heappop(Q)
        if state == NO_STATE:
            completions.append((parent, w, g))
            continue
        if rank[state] >= n:
            continue
        if len(nodes) >= limit:
            raise ResourceExhausted(f"n-best search exceeds {limit} nodes")
        rank[state] += 1
        node = len(nodes)
        nodes.append((state, parent, label, w))
        fw = fsa.final(state)
        if fw != weights.ZERO:
            total = weights.times(g, fw)
            heapq.heappush(Q, (total, next(cntr), total, NO_STATE, node, EPSILON, fw))
        for t in fsa.arcs(state):
            ht = h[t.targetstate]
            if ht == weights.ZERO:
                continue
            gt = weights.times(g, t.weight)
            heapq.heappush(Q, (weights.times(gt, ht), next(cntr), gt, t.targetstate, node, t.label, t.weight))
    logger.info(f"Found {len(completions)} of {n} requested paths after {len(nodes)} pops")
    return nodes, completions


def _paths_automaton(nodes, completions) -> FSA:
    onpath = set()
    for node, _, _ in completions:
        while node != -1 and node not in onpath:
            onpath.add(node)
            node = nodes[node][1]
    paths = FSA()
    statemap = {node: paths.add_state() for node in sorted(onpath)}
    superfinal = paths.add_state()
    paths.set_start(statemap[0])
    paths.set_final(superfinal)
    for node in sorted(onpath):
        _, parent, label, w = nodes[node]
        if parent != -1:
            paths.add_arc(statemap[parent], statemap[node], label, w)
    for node, fw, _ in completions:
        paths.add_arc(statemap[node], superfinal, EPSILON, fw)
    return epsilon_remove(paths).connect().to_compact()
