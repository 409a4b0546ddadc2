"""
PageRank Edge Scoring
=====================

Global stationary-distribution importance of every dual edge, computed on
the undirected linkage of operators/edge_graph.py.

ITERATION (fixed number of rounds, no convergence test):
    s⁰ = 1 for every node
    each node splits s equally over its neighbors;
    a node with no neighbors splits s equally over ALL N nodes
    sᵏ⁺¹ = (1 − d)/N + d · incoming

Result is min–max normalized to [0, 1]; if every score ties (e.g. a
regular graph) the result is all zeros.

Deterministic: no randomness, sparse mat-vec products only.
"""

import numpy as np
from typing import Dict, Optional

from ..builders.foam import Foam
from ..operators.edge_graph import EdgeLinkGraph, build_edge_link_graph, link_adjacency
from ..spec.structures import EdgeKey
from .scores import min_max_normalize, to_score_map


def _check_pagerank_params(depth: int, damping: float):
    if int(depth) != depth or depth < 0:
        raise ValueError(f"PageRank depth must be a non-negative integer, got {depth}")
    if not (0.0 <= damping < 1.0):
        raise ValueError(f"PageRank damping must lie in [0, 1), got {damping}")


def pagerank_iterate(n_nodes: int, links, depth: int = 15,
                     damping: float = 0.85) -> np.ndarray:
    """
    Raw (unnormalized) PageRank on an undirected graph.

    Args:
        n_nodes: number of nodes
        links: (L, 2) undirected node pairs
        depth: number of rounds
        damping: d in [0, 1)

    Returns:
        (n_nodes,) scores
    """
    _check_pagerank_params(depth, damping)
    if n_nodes == 0:
        return np.zeros(0)

    A = link_adjacency(n_nodes, links)
    deg = np.asarray(A.sum(axis=1)).ravel()
    has_nbr = deg > 0
    inv_deg = np.zeros(n_nodes)
    inv_deg[has_nbr] = 1.0 / deg[has_nbr]

    s = np.ones(n_nodes)
    base = (1.0 - damping) / n_nodes
    for _ in range(int(depth)):
        incoming = A.T @ (s * inv_deg)
        dangling = s[~has_nbr].sum()
        if dangling:
            incoming = incoming + dangling / n_nodes
        s = base + damping * incoming
    return s


def pagerank_scores(foam: Foam, depth: int = 15, damping: float = 0.85,
                    graph: Optional[EdgeLinkGraph] = None) -> Dict[EdgeKey, float]:
    """
    PageRank score of every dual edge, normalized to [0, 1].

    Args:
        foam: Foam snapshot
        depth: number of rounds
        damping: d in [0, 1)
        graph: prebuilt linkage (rebuilt from foam if None)

    Returns:
        {(i, j): score}; {} for a foam without dual edges
    """
    _check_pagerank_params(depth, damping)
    if foam.n_edges == 0:
        return {}
    if graph is None:
        graph = build_edge_link_graph(foam)
    raw = pagerank_iterate(graph.n_nodes, graph.links, depth, damping)
    return to_score_map(foam.edge_keys, min_max_normalize(raw))
