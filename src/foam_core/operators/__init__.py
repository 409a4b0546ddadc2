"""
Graph operators over the dual: directional half-edge adjacency (random walk)
and undirected dual-edge linkage (PageRank).
"""

from .adjacency import HalfEdgeGraph, build_half_edge_graph, turning_angle
from .edge_graph import EdgeLinkGraph, build_edge_link_graph, link_adjacency
