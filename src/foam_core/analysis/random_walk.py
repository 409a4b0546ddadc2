"""
Monte Carlo Random-Walk Edge Scoring
====================================

Local, directional accessibility of every dual edge.

For dual edge e = (i, j) two simulations run, one from each half-edge:
    side 1: half-edge 2e     (arriving at i), seed = h(e) XOR SEED_SALT_FIRST
    side 2: half-edge 2e + 1 (arriving at j), seed = h(e) XOR SEED_SALT_SECOND
where h(e) is the FNV-1a 32-bit hash of "i-j".

SIMULATION (K walkers, weight 1/K each, up to L steps):
    - a walker on a sink half-edge dies
    - next half-edge by roulette on the (optionally capped) transition row
    - weight *= α · p(chosen); below WALKER_WEIGHT_FLOOR the walker dies
    - the surviving weight is credited to the total of that side, keyed by
      the dual edge of the new half-edge (optionally only on the walker's
      first visit of that dual edge)

FAN-OUT CAP (optional; top_m wins if both are given):
    top_m:    keep the top_m most probable continuations (stable order)
    cum_prob: keep the most probable prefix whose cumulative probability
              first reaches cum_prob, clamped to [0.1, 0.999]
    Probabilities are NOT renormalized; a draw beyond the capped mass
    selects the last kept continuation.

COMBINATION:
    harmonic: 2·d1·d2 / (d1 + d2), or 0 if either side is 0
    min:      min(d1, d2)
    then min–max normalized over all edges.

DETERMINISM:
    Each side owns one numpy SeedSequence → PCG64 generator seeded from the
    side seed. Its (L, K) block of uniforms is drawn up front, step-major,
    and walker wi reads column wi as its WalkerStream. For fixed (seed, K)
    the first L' steps are identical for every L ≥ L' and per-side totals
    are non-decreasing in L.
"""

import numpy as np
from typing import Dict, List, Optional, Tuple

from ..builders.foam import Foam
from ..operators.adjacency import HalfEdgeGraph, build_half_edge_graph
from ..spec.constants import (
    WALKER_WEIGHT_FLOOR,
    SEED_SALT_FIRST,
    SEED_SALT_SECOND,
    CUM_PROB_MIN,
    CUM_PROB_MAX,
    COMBINE_HARMONIC,
    COMBINE_MIN,
    COMBINE_MODES,
    MASK32,
)
from ..spec.structures import EdgeKey, edge_key_hash
from .scores import min_max_normalize, to_score_map


class WalkerStream:
    """Uniform [0, 1) draws of one walker: column `index` of its side's draw block."""

    def __init__(self, seed: int, index: int, draws: np.ndarray):
        self.seed = int(seed) & MASK32
        self.index = int(index)
        self._draws = np.asarray(draws, dtype=float).tolist()
        self._pos = 0

    def __len__(self):
        return len(self._draws)

    def next(self) -> float:
        r = self._draws[self._pos]
        self._pos += 1
        return r


def side_draws(seed: int, L: int, K: int) -> np.ndarray:
    """
    (L, K) uniform block of one simulation side; column wi belongs to walker wi.

    One PCG64 generator per side. Rows are filled step by step, so the
    first L' rows are the same for every L >= L'.
    """
    sequence = np.random.SeedSequence(int(seed) & MASK32)
    rng = np.random.Generator(np.random.PCG64(sequence))
    return rng.random((int(L), int(K)))


def side_streams(seed: int, L: int, K: int) -> List[WalkerStream]:
    """The K walker streams of one simulation side."""
    block = side_draws(seed, L, K)
    return [WalkerStream(seed, wi, block[:, wi]) for wi in range(int(K))]


def side_seeds(key: EdgeKey) -> Tuple[int, int]:
    """Seeds of the two simulations of dual edge `key`."""
    base = edge_key_hash(key)
    return (base ^ SEED_SALT_FIRST) & MASK32, (base ^ SEED_SALT_SECOND) & MASK32


def combine_sides(d1: float, d2: float, mode: str = COMBINE_HARMONIC) -> float:
    """Combine the two directional totals of one edge."""
    if mode == COMBINE_HARMONIC:
        if d1 > 0 and d2 > 0:
            return 2.0 * d1 * d2 / (d1 + d2)
        return 0.0
    if mode == COMBINE_MIN:
        return min(d1, d2)
    raise ValueError(f"Unknown combine mode {mode!r}; expected one of {COMBINE_MODES}")


def _check_walk_params(L, K, alpha, combine=COMBINE_HARMONIC):
    if int(L) != L or L < 0:
        raise ValueError(f"Walk length L must be a non-negative integer, got {L}")
    if int(K) != K or K < 1:
        raise ValueError(f"Walker count K must be a positive integer, got {K}")
    if not (0.0 <= alpha <= 1.0):
        raise ValueError(f"Discount alpha must lie in [0, 1], got {alpha}")
    if combine not in COMBINE_MODES:
        raise ValueError(f"Unknown combine mode {combine!r}; expected one of {COMBINE_MODES}")


class _CappedRows:
    """Per half-edge (targets, probs, cumulative) after the fan-out cap."""

    def __init__(self, graph: HalfEdgeGraph, top_m: Optional[int] = None,
                 cum_prob: Optional[float] = None):
        self.graph = graph
        self.top_m = None if top_m is None else max(1, int(top_m))
        self.cum_prob = None
        if cum_prob is not None:
            self.cum_prob = min(CUM_PROB_MAX, max(CUM_PROB_MIN, float(cum_prob)))
        self._rows: Dict[int, tuple] = {}

    def get(self, h: int):
        row = self._rows.get(h)
        if row is None:
            row = self._build(h)
            self._rows[h] = row
        return row

    def _build(self, h: int):
        targets, probs = self.graph.row(h)
        if len(targets) > 0 and (self.top_m is not None or self.cum_prob is not None):
            order = np.argsort(-probs, kind='stable')
            targets = targets[order]
            probs = probs[order]
            if self.top_m is not None:
                keep = min(self.top_m, len(targets))
            else:
                acc = np.cumsum(probs)
                crossed = np.nonzero(acc >= self.cum_prob)[0]
                keep = int(crossed[0]) + 1 if len(crossed) > 0 else len(targets)
            targets = targets[:keep]
            probs = probs[:keep]
        return targets, probs, np.cumsum(probs)


def simulate_side(graph: HalfEdgeGraph, rows: _CappedRows, h_start: int, seed: int,
                  L: int, K: int, alpha: float, first_visit: bool = False) -> float:
    """
    Total arrival mass of K walkers started on half-edge h_start.

    Returns:
        accumulated surviving weight over all steps and walkers
    """
    total = 0.0
    edge_of = graph.edge_of
    for stream in side_streams(seed, L, K):
        h = h_start
        w = 1.0 / K
        visited = set() if first_visit else None
        for _ in range(L):
            targets, probs, cum = rows.get(h)
            if len(targets) == 0:
                break
            r = stream.next()
            k = int(np.searchsorted(cum, r, side='left'))
            if k >= len(targets):
                k = len(targets) - 1
            h = int(targets[k])
            w *= alpha * float(probs[k])
            if w < WALKER_WEIGHT_FLOOR:
                break
            if first_visit:
                e = int(edge_of[h])
                if e in visited:
                    continue
                visited.add(e)
            total += w
    return total


def random_walk_totals(foam: Foam, L: int = 12, K: int = 64, alpha: float = 0.9,
                       first_visit: bool = False, top_m: Optional[int] = None,
                       cum_prob: Optional[float] = None,
                       graph: Optional[HalfEdgeGraph] = None
                       ) -> Tuple[List[EdgeKey], np.ndarray]:
    """
    Raw per-side totals of every dual edge.

    Returns:
        keys: edge keys in foam.dual_edges order
        totals: (E, 2) array, column 0 from half-edge 2e, column 1 from 2e + 1
    """
    _check_walk_params(L, K, alpha)
    keys = foam.edge_keys
    totals = np.zeros((len(keys), 2))
    if not keys:
        return keys, totals
    if graph is None:
        graph = build_half_edge_graph(foam)
    rows = _CappedRows(graph, top_m=top_m, cum_prob=cum_prob)

    for e, key in enumerate(keys):
        h1, h2 = graph.edge_halves(e)
        s1, s2 = side_seeds(key)
        totals[e, 0] = simulate_side(graph, rows, h1, s1, L, K, alpha, first_visit)
        totals[e, 1] = simulate_side(graph, rows, h2, s2, L, K, alpha, first_visit)
    return keys, totals


def random_walk_scores(foam: Foam, L: int = 12, K: int = 64, alpha: float = 0.9,
                       combine: str = COMBINE_HARMONIC, first_visit: bool = False,
                       top_m: Optional[int] = None, cum_prob: Optional[float] = None,
                       graph: Optional[HalfEdgeGraph] = None) -> Dict[EdgeKey, float]:
    """
    Monte Carlo score of every dual edge, normalized to [0, 1].

    Args:
        foam: Foam snapshot
        L: maximum steps per walker
        K: walkers per side
        alpha: per-step discount
        combine: "harmonic" or "min"
        first_visit: credit each dual edge at most once per walker
        top_m, cum_prob: optional fan-out cap
        graph: prebuilt half-edge graph (rebuilt from foam if None)

    Returns:
        {(i, j): score}; {} for a foam without dual edges
    """
    _check_walk_params(L, K, alpha, combine)
    keys, totals = random_walk_totals(foam, L=L, K=K, alpha=alpha, first_visit=first_visit,
                                      top_m=top_m, cum_prob=cum_prob, graph=graph)
    if not keys:
        return {}
    raw = np.array([combine_sides(d1, d2, combine) for d1, d2 in totals])
    return to_score_map(keys, min_max_normalize(raw))
