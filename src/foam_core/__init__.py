"""
foam_core - periodic Delaunay dual ("foam") and graph scoring.

Layers:
    spec/       constants and value types
    builders/   periodic kernel, centers, triangulation, dual topology
    operators/  half-edge adjacency, dual-edge linkage
    analysis/   PageRank, random walk, knots
"""

from .builders import Foam, build_foam, triangulate, compute_centers, wrap, min_image_delta
from .operators import build_half_edge_graph, build_edge_link_graph
from .analysis import pagerank_scores, random_walk_scores, detect_knots, catchment_field
