"""
Undirected Dual-Edge Linkage
============================

Node = dual edge. Two dual edges are linked when they meet at a center C
and their OUTWARD directions (C → other endpoint) make an angle strictly
greater than π/2.

This is an independent procedure from the half-edge obtuse gate in
adjacency.py: no tolerance, no direction of travel, no weights.
"""

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, List

from ..builders.foam import Foam
from ..builders.periodic import displacement
from ..spec.constants import EPS_DIR


@dataclass
class EdgeLinkGraph:
    n_nodes: int
    links: np.ndarray               # (L, 2) node pairs, a < b

    @property
    def n_links(self) -> int:
        return len(self.links)

    def adjacency(self) -> csr_matrix:
        """Symmetric 0/1 adjacency (n_nodes × n_nodes)."""
        return link_adjacency(self.n_nodes, self.links)

    def degree(self) -> np.ndarray:
        deg = np.zeros(self.n_nodes, dtype=np.int64)
        if len(self.links) > 0:
            np.add.at(deg, self.links[:, 0], 1)
            np.add.at(deg, self.links[:, 1], 1)
        return deg


def link_adjacency(n_nodes: int, links) -> csr_matrix:
    links = np.asarray(links, dtype=np.int64).reshape(-1, 2)
    rows = np.concatenate([links[:, 0], links[:, 1]])
    cols = np.concatenate([links[:, 1], links[:, 0]])
    data = np.ones(len(rows), dtype=float)
    A = coo_matrix((data, (rows, cols)), shape=(n_nodes, n_nodes)).tocsr()
    A.sum_duplicates()
    A.data[:] = 1.0
    return A


def build_edge_link_graph(foam: Foam) -> EdgeLinkGraph:
    """
    Link dual edges meeting at a center with an obtuse outward angle.

    Returns:
        EdgeLinkGraph over foam.dual_edges rows
    """
    E = foam.n_edges
    centers = foam.centers
    periodic = foam.periodic

    incident: Dict[int, List[int]] = {}
    for e, (a, b) in enumerate(foam.dual_edges):
        incident.setdefault(int(a), []).append(e)
        incident.setdefault(int(b), []).append(e)

    links = []
    for c, edge_rows in incident.items():
        C = centers[c]
        outward = {}
        for e in edge_rows:
            a, b = foam.dual_edges[e]
            other = int(b) if int(a) == c else int(a)
            v = displacement(C, centers[other], periodic)
            n = np.linalg.norm(v)
            if n >= EPS_DIR:
                outward[e] = v / n

        for e1, e2 in combinations(edge_rows, 2):
            if e1 not in outward or e2 not in outward:
                continue
            cos_theta = float(np.clip(np.dot(outward[e1], outward[e2]), -1.0, 1.0))
            if np.arccos(cos_theta) > np.pi / 2:
                links.append((min(e1, e2), max(e1, e2)))

    links_arr = np.array(sorted(links), dtype=np.int64).reshape(-1, 2)
    return EdgeLinkGraph(n_nodes=E, links=links_arr)
