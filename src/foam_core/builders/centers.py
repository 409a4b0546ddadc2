"""
Tetrahedron Centers
===================

One center per tetrahedron, either:
    - barycenter: arithmetic mean of the 4 vertices
    - circumcenter: center of the circumscribed sphere, with barycenter
      fallback when the solve is numerically degenerate

CIRCUMCENTER SOLVE:
    For vertices a, b, c, d the circumcenter x satisfies
        (b - a)·x = (|b|² - |a|²) / 2
        (c - a)·x = (|c|² - |a|²) / 2
        (d - a)·x = (|d|² - |a|²) / 2
    solved by Cramer's rule (determinant ratios).

    Rejected (returns None) when:
        - |det| < CIRCUMCENTER_EPS_DET  (nearly coplanar)
        - any coordinate is non-finite
        - any coordinate is beyond CIRCUMCENTER_LIMIT (sliver far outside domain)

PERIODIC:
    Vertices 1..3 are moved into the periodic image of vertex 0, the
    center is computed in unwrapped space and then wrapped into [0, 1)³.
"""

import numpy as np
from typing import Optional

from .periodic import wrap, unwrap_to_reference
from ..spec.constants import (
    CIRCUMCENTER_EPS_DET,
    CIRCUMCENTER_LIMIT,
    CENTER_ALIASES,
    CENTER_CIRCUMCENTER,
    PERIOD,
)


def resolve_center_method(method: str) -> str:
    """Normalize a center method name; raise ValueError on unknown names."""
    try:
        return CENTER_ALIASES[method]
    except KeyError:
        raise ValueError(
            f"Unknown center method {method!r}; expected one of {sorted(CENTER_ALIASES)}"
        ) from None


def barycenter(a, b, c, d) -> np.ndarray:
    """Arithmetic mean of the four vertices."""
    return (np.asarray(a, dtype=float) + np.asarray(b, dtype=float)
            + np.asarray(c, dtype=float) + np.asarray(d, dtype=float)) / 4.0


def circumcenter(a, b, c, d) -> Optional[np.ndarray]:
    """
    Circumcenter of tetrahedron (a, b, c, d), or None if degenerate.

    Returns:
        (3,) array, or None when the caller must fall back to the barycenter
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    c = np.asarray(c, dtype=float)
    d = np.asarray(d, dtype=float)

    A = np.array([b - a, c - a, d - a])
    a2 = np.dot(a, a)
    rhs = 0.5 * np.array([np.dot(b, b) - a2, np.dot(c, c) - a2, np.dot(d, d) - a2])

    det = np.linalg.det(A)
    if not np.isfinite(det) or abs(det) < CIRCUMCENTER_EPS_DET:
        return None

    x = np.empty(3)
    for k in range(3):
        Mk = A.copy()
        Mk[:, k] = rhs
        x[k] = np.linalg.det(Mk) / det

    if not np.all(np.isfinite(x)):
        return None
    if np.any(np.abs(x) > CIRCUMCENTER_LIMIT):
        return None
    return x


def tetrahedron_center(coords: np.ndarray, periodic: bool, method: str) -> np.ndarray:
    """
    Center of one tetrahedron given its (4, 3) vertex coordinates.

    Args:
        coords: (4, 3) vertex positions (raw, possibly in different images)
        periodic: unwrap to vertex 0 before computing, wrap the result
        method: "barycenter" or "circumcenter"
    """
    coords = np.asarray(coords, dtype=float)
    if periodic:
        coords = unwrap_to_reference(coords)

    center = None
    if resolve_center_method(method) == CENTER_CIRCUMCENTER:
        center = circumcenter(*coords)
    if center is None:
        center = barycenter(*coords)

    if periodic:
        center = wrap(center)
    return center


def compute_centers(points: np.ndarray, tetrahedra: np.ndarray,
                    periodic: bool, method: str = "barycenter",
                    images: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Centers for all tetrahedra.

    Args:
        points: (N, 3) positions
        tetrahedra: (T, 4) vertex indices
        periodic: minimum-image convention on the unit cube
        method: "barycenter" (alias "centroid") or "circumcenter"
        images: (T, 4, 3) integer image offsets per vertex; when given the
                tetrahedron is taken in those images instead of by min-image

    Returns:
        (T, 3) array of centers (wrapped to [0, 1)³ when periodic)
    """
    method = resolve_center_method(method)
    points = np.asarray(points, dtype=float)
    tetrahedra = np.asarray(tetrahedra, dtype=np.int64).reshape(-1, 4)

    centers = np.empty((len(tetrahedra), 3))
    if periodic and images is not None:
        images = np.asarray(images, dtype=float).reshape(-1, 4, 3)
        for t, tet in enumerate(tetrahedra):
            coords = points[tet] + images[t] * PERIOD
            centers[t] = tetrahedron_center(coords, False, method)
        return wrap(centers)

    for t, tet in enumerate(tetrahedra):
        centers[t] = tetrahedron_center(points[tet], periodic, method)
    return centers
