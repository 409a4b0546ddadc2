"""
Flow / Knot Detection
=====================

ACTIVE FACET FLOW:
    Facets live in an arena: facet (t, f) has index 4·t + f.
    For facet (t, f) with mirror (m, g), the flow continues into tet m
    through the face n ≠ g of m that best keeps the direction of travel:

        d₁ = unit(center[m] − center[t])
        d₂ = unit(center[mirror(m, n)] − center[m])
        successor(t, f) = (m, n) maximizing d₁ · d₂   (first maximum wins)

    Only faces n that have a mirror compete. No candidate → no successor
    (−1). Directions use the minimum-image convention when periodic.

KNOTS:
    The successor array is a functional graph (out-degree ≤ 1). Each walk
    from an unvisited facet ends in one of three ways:

        open end        successor −1: knot 0, distance = steps to the end
        resolved facet  joins an earlier walk: inherit its knot,
                        distance = its distance + steps to reach it
        new cycle       a facet of the current path repeats: the cycle is
                        a new knot (1-based), prefix facets get their
                        distance to the cycle entry, cycle facets get 0

    num_catched[k − 1] = number of off-knot facets that drain into knot k.

CATCHMENT (per tetrahedron):
    mean over its 4 facets of (len + num_catched) / len for facets lying
    on a knot of length len; 0 contributions otherwise.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List

from ..builders.foam import Foam
from ..builders.periodic import displacement
from ..spec.constants import EPS_DIR


@dataclass
class KnotResult:
    """Knot decomposition of a facet successor graph (arena-indexed)."""
    knots: List[np.ndarray]         # each: facet indices of one cycle
    facet_knot: np.ndarray          # (F,) 1-based knot index, 0 = none
    knot_dist: np.ndarray           # (F,) steps to the knot (0 = on it)
    num_catched: np.ndarray         # (n_knots,) off-knot facets per knot
    successor: np.ndarray = field(default=None, repr=False)

    @property
    def n_knots(self) -> int:
        return len(self.knots)

    @property
    def n_facets(self) -> int:
        return len(self.facet_knot)

    def knot_lengths(self) -> np.ndarray:
        return np.array([len(k) for k in self.knots], dtype=np.int64)

    def as_tet_arrays(self, n_tets: int):
        """(T, 4) views of facet_knot and knot_dist."""
        if 4 * n_tets != self.n_facets:
            raise ValueError(
                f"Knot result has {self.n_facets} facets, expected 4 × {n_tets}"
            )
        return self.facet_knot.reshape(n_tets, 4), self.knot_dist.reshape(n_tets, 4)


def _unit(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    if n < EPS_DIR:
        return np.zeros(3)
    return v / n


def build_active_facets(foam: Foam) -> np.ndarray:
    """
    Successor of every facet in the active flow.

    Returns:
        (4·T,) int64 array of facet indices, −1 where there is no successor
    """
    T = foam.n_tets
    successor = np.full(4 * T, -1, dtype=np.int64)
    centers = foam.centers
    periodic = foam.periodic
    mirror_tet = foam.mirror_tet
    mirror_face = foam.mirror_face

    for t in range(T):
        for f in range(4):
            m = int(mirror_tet[t, f])
            if m < 0:
                continue
            g = int(mirror_face[t, f])
            d1 = _unit(displacement(centers[t], centers[m], periodic))

            best = -1
            best_cos = -np.inf
            for n in range(4):
                if n == g:
                    continue
                m2 = int(mirror_tet[m, n])
                if m2 < 0:
                    continue
                d2 = _unit(displacement(centers[m], centers[m2], periodic))
                c = float(np.dot(d1, d2))
                if c > best_cos:
                    best_cos = c
                    best = 4 * m + n
            successor[4 * t + f] = best

    return successor


def find_knots(successor) -> KnotResult:
    """
    Cycle decomposition of a functional graph.

    Args:
        successor: (F,) next node of every node, −1 = none

    Returns:
        KnotResult

    Raises:
        ValueError if a successor is outside [−1, F)
    """
    successor = np.asarray(successor, dtype=np.int64).ravel()
    F = len(successor)
    if F > 0 and (successor.min() < -1 or successor.max() >= F):
        raise ValueError(f"Successor indices must lie in [-1, {F - 1}]")

    visited = np.zeros(F, dtype=bool)
    on_path = np.zeros(F, dtype=bool)
    index_in_path = np.full(F, -1, dtype=np.int64)
    facet_knot = np.zeros(F, dtype=np.int64)
    knot_dist = np.zeros(F, dtype=np.int64)
    knots: List[np.ndarray] = []

    for start in range(F):
        if visited[start]:
            continue

        path = []
        cur = start
        while cur >= 0 and not visited[cur] and not on_path[cur]:
            on_path[cur] = True
            index_in_path[cur] = len(path)
            path.append(cur)
            cur = int(successor[cur])

        n = len(path)
        if cur < 0:
            # open end
            for i, node in enumerate(path):
                facet_knot[node] = 0
                knot_dist[node] = n - i
        elif on_path[cur]:
            # new cycle
            entry = int(index_in_path[cur])
            knots.append(np.array(path[entry:], dtype=np.int64))
            k = len(knots)
            for i, node in enumerate(path):
                facet_knot[node] = k
                knot_dist[node] = entry - i if i < entry else 0
        else:
            # merge into a resolved walk
            k = int(facet_knot[cur])
            base = int(knot_dist[cur])
            for i, node in enumerate(path):
                facet_knot[node] = k
                knot_dist[node] = base + n - i

        for node in path:
            visited[node] = True
            on_path[node] = False
            index_in_path[node] = -1

    num_catched = np.zeros(len(knots), dtype=np.int64)
    feeding = (facet_knot > 0) & (knot_dist > 0)
    if np.any(feeding):
        np.add.at(num_catched, facet_knot[feeding] - 1, 1)

    return KnotResult(
        knots=knots,
        facet_knot=facet_knot,
        knot_dist=knot_dist,
        num_catched=num_catched,
        successor=successor,
    )


def detect_knots(foam: Foam) -> KnotResult:
    """Active facet flow + knot decomposition of a foam."""
    return find_knots(build_active_facets(foam))


def simplex_catchment(result: KnotResult, tet: int) -> float:
    """Catchment of one tetrahedron (see module docstring)."""
    total = 0.0
    for f in range(4):
        idx = 4 * tet + f
        if _on_knot(result, idx):
            k = int(result.facet_knot[idx])
            length = len(result.knots[k - 1]) or 1
            nc = int(result.num_catched[k - 1])
            total += (length + nc) / length
    return total / 4.0


def _on_knot(result: KnotResult, idx: int) -> bool:
    return result.knot_dist[idx] == 0 and result.facet_knot[idx] > 0


def catchment_field(result: KnotResult, n_tets: int) -> np.ndarray:
    """Catchment of every tetrahedron, (T,) array."""
    if n_tets == 0:
        return np.zeros(0)
    facet_knot, knot_dist = result.as_tet_arrays(n_tets)
    lengths = np.maximum(result.knot_lengths(), 1).astype(float)
    factor = np.concatenate([[0.0], (lengths + result.num_catched) / lengths])
    on_knot = (knot_dist == 0) & (facet_knot > 0)
    contrib = np.where(on_knot, factor[facet_knot], 0.0)
    return contrib.sum(axis=1) / 4.0
