"""
Directional Half-Edge Adjacency (obtuse gate)
=============================================

Each dual edge e = (i, j) gives two half-edges:
    2e     arrives at center i (travels j → i)
    2e + 1 arrives at center j (travels i → j)

TRANSITIONS:
    An incoming half-edge h_in arriving at center C (from O_in) may continue
    along any OTHER dual edge incident to C, leaving C toward O_out. The
    continuation is the half-edge arriving at O_out.

        v_in  = C − O_in        (direction of travel into C)
        v_out = O_out − C       (direction of travel out of C)
        θ     = arccos(clamp(v̂_in · v̂_out, −1, 1))

    Kept iff θ > π/2 + OBTUSE_TOL (strictly obtuse; near-right angles from
    rounding are rejected). Weight w = max(0, −cos θ): 0 at 90°, 1 at 180°.
    Weights of one incoming half-edge are normalized to sum to 1. A
    half-edge with no admissible continuation is a sink (empty row).

    Directions use the minimum-image convention when periodic.

STORAGE:
    transitions is a scipy.sparse CSR matrix (H × H): row = incoming
    half-edge, column = outgoing half-edge, data = probability. Row order
    is deterministic (incident order at C), which the random walk relies on.
"""

import numpy as np
from scipy.sparse import csr_matrix
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..builders.foam import Foam
from ..builders.periodic import displacement
from ..spec.constants import EPS_DIR, OBTUSE_TOL
from ..spec.structures import EdgeKey


@dataclass
class HalfEdgeGraph:
    """Half-edges of a foam and their obtuse-gated transitions."""
    from_tet: np.ndarray            # (H,) tetrahedron the half-edge leaves
    to_tet: np.ndarray              # (H,) tetrahedron (center) it arrives at
    edge_of: np.ndarray             # (H,) row in foam.dual_edges
    transitions: csr_matrix         # (H, H) normalized probabilities
    edge_keys: List[EdgeKey] = field(repr=False)

    @property
    def n_half_edges(self) -> int:
        return len(self.to_tet)

    @property
    def n_transitions(self) -> int:
        return int(self.transitions.nnz)

    def edge_halves(self, e: int) -> Tuple[int, int]:
        """Half-edges of dual edge row e: (arriving at edge[0], arriving at edge[1])."""
        return 2 * e, 2 * e + 1

    @staticmethod
    def twin(h: int) -> int:
        return h ^ 1

    def row(self, h: int) -> Tuple[np.ndarray, np.ndarray]:
        """Outgoing (targets, probabilities) of half-edge h."""
        start, stop = self.transitions.indptr[h], self.transitions.indptr[h + 1]
        return self.transitions.indices[start:stop], self.transitions.data[start:stop]

    def out_degree(self) -> np.ndarray:
        return np.diff(self.transitions.indptr)


def turning_angle(v_in: np.ndarray, v_out: np.ndarray):
    """
    Angle between two direction vectors, or None if either is too short.

    Returns:
        (theta, cos_theta)
    """
    n_in = np.linalg.norm(v_in)
    n_out = np.linalg.norm(v_out)
    if n_in < EPS_DIR or n_out < EPS_DIR:
        return None
    c = float(np.clip(np.dot(v_in, v_out) / (n_in * n_out), -1.0, 1.0))
    return float(np.arccos(c)), c


def build_half_edge_graph(foam: Foam) -> HalfEdgeGraph:
    """
    Build the directional half-edge graph of a foam.

    Args:
        foam: Foam snapshot

    Returns:
        HalfEdgeGraph (empty when the foam has no dual edges)
    """
    E = foam.n_edges
    H = 2 * E
    edges = foam.dual_edges

    to_tet = np.empty(H, dtype=np.int64)
    from_tet = np.empty(H, dtype=np.int64)
    to_tet[0::2] = edges[:, 0]
    from_tet[0::2] = edges[:, 1]
    to_tet[1::2] = edges[:, 1]
    from_tet[1::2] = edges[:, 0]
    edge_of = np.repeat(np.arange(E, dtype=np.int64), 2)

    # Map center -> half-edges arriving there
    incident: Dict[int, List[int]] = {}
    for h in range(H):
        incident.setdefault(int(to_tet[h]), []).append(h)

    centers = foam.centers
    periodic = foam.periodic

    indptr = np.zeros(H + 1, dtype=np.int64)
    indices: List[int] = []
    data: List[float] = []

    for h_in in range(H):
        c_idx = int(to_tet[h_in])
        C = centers[c_idx]
        v_in = displacement(centers[from_tet[h_in]], C, periodic)

        candidates = []
        total = 0.0
        for h_other in incident[c_idx]:
            if edge_of[h_other] == edge_of[h_in]:
                continue  # no immediate backtrack along the same dual edge
            v_out = displacement(C, centers[from_tet[h_other]], periodic)
            angle = turning_angle(v_in, v_out)
            if angle is None:
                continue
            theta, cos_theta = angle
            if theta <= np.pi / 2 + OBTUSE_TOL:
                continue
            w = max(0.0, -cos_theta)
            if w <= 0.0:
                continue
            candidates.append((h_other ^ 1, w))  # continuation leaves C
            total += w

        if total > 0.0:
            for target, w in candidates:
                indices.append(target)
                data.append(w / total)
        indptr[h_in + 1] = len(indices)

    transitions = csr_matrix(
        (np.array(data, dtype=float), np.array(indices, dtype=np.int64), indptr),
        shape=(H, H),
    )

    return HalfEdgeGraph(
        from_tet=from_tet,
        to_tet=to_tet,
        edge_of=edge_of,
        transitions=transitions,
        edge_keys=foam.edge_keys,
    )
