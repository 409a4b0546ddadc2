"""
Analysis on the dual: edge scoring (PageRank, random walk) and knot detection.
"""

from .scores import min_max_normalize, to_score_map, score_summary
from .pagerank import pagerank_scores, pagerank_iterate
from .random_walk import (
    WalkerStream,
    side_draws,
    side_streams,
    random_walk_scores,
    random_walk_totals,
    combine_sides,
    side_seeds,
)
from .knots import (
    KnotResult,
    build_active_facets,
    find_knots,
    detect_knots,
    simplex_catchment,
    catchment_field,
)
