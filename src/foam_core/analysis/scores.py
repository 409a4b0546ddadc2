"""Score mapping helpers shared by the scoring engines."""

import numpy as np
from typing import Dict, Iterable

from ..spec.constants import EPS_ZERO
from ..spec.structures import EdgeKey


def min_max_normalize(values) -> np.ndarray:
    """
    Rescale to [0, 1]: (v - min) / (max - min).

    All-equal input maps to all zeros (no edge is distinguished).
    """
    v = np.asarray(values, dtype=float)
    if v.size == 0:
        return v.copy()
    lo = float(np.min(v))
    hi = float(np.max(v))
    span = hi - lo
    if span < EPS_ZERO:
        return np.zeros_like(v)
    return (v - lo) / span


def to_score_map(keys: Iterable[EdgeKey], values) -> Dict[EdgeKey, float]:
    """Pair edge keys with values: {(i, j): float}."""
    return {(int(k[0]), int(k[1])): float(x) for k, x in zip(keys, values)}


def score_summary(scores: Dict[EdgeKey, float]) -> Dict[str, float]:
    """count / mean / variance (population) of a score mapping."""
    v = np.fromiter(scores.values(), dtype=float, count=len(scores))
    if v.size == 0:
        return {'count': 0, 'mean': 0.0, 'variance': 0.0}
    return {'count': int(v.size), 'mean': float(v.mean()), 'variance': float(v.var())}
