"""
Delaunay Tetrahedralization (external collaborator)
===================================================

Uses scipy.spatial.Delaunay (external dependency). The foam builder only
sees the contract:

    (points (N, 3), periodic) -> (T, 4) array of point indices

PERIODIC MODE:
    Triangulate the 3×3×3 image tiling of the unit cube (same trick as the
    periodic Voronoi builders), then keep each periodic tetrahedron exactly
    once: the copy whose smallest-index vertex sits in the central image.
    Indices are mapped back modulo N.

    IMAGES: with return_images=True the adapter also returns, per vertex,
    the integer image offset of the copy it was taken from, (T, 4, 3) in
    {-1, 0, 1}, the smallest-index vertex at (0, 0, 0). Index triples alone
    are ambiguous once a tetrahedron spans close to half the box: the same
    three points can bound two different periodic faces. The offsets tell
    those faces apart (build_foam(..., images=...)).

    REQUIREMENT: every tetrahedron must fit in the ±1 image shell and use
    4 distinct points. Tetrahedra joining a point to its own image (only
    for a handful of points in the box) are dropped with a warning; two
    tetrahedra on the same 4 points are rejected by the foam builder.

CALLER CONTRACT:
    Any quadruple with an index outside [0, N) is discarded by
    filter_tetrahedra() before it reaches build_foam().
"""

import warnings

import numpy as np
from scipy.spatial import Delaunay
from itertools import product


def _valid_rows(tets: np.ndarray, n_points: int) -> np.ndarray:
    return np.all((tets >= 0) & (tets < n_points), axis=1)


def filter_tetrahedra(raw, n_points: int, warn: bool = True) -> np.ndarray:
    """
    Drop quadruples that reference an index outside [0, n_points).

    Args:
        raw: sequence of index quadruples (anything castable to (T, 4))
        n_points: number of points
        warn: emit a RuntimeWarning with the discarded count

    Returns:
        (T', 4) int64 array of valid tetrahedra
    """
    if raw is None:
        return np.zeros((0, 4), dtype=np.int64)
    tets = np.asarray(raw, dtype=np.int64).reshape(-1, 4)
    valid = _valid_rows(tets, n_points)
    n_invalid = int(len(tets) - np.count_nonzero(valid))
    if n_invalid and warn:
        warnings.warn(
            f"Filtered out {n_invalid} of {len(tets)} tetrahedra with invalid vertex indices",
            RuntimeWarning
        )
    return tets[valid]


def _delaunay_simplices(points: np.ndarray) -> np.ndarray:
    tri = Delaunay(points)
    return np.asarray(tri.simplices, dtype=np.int64)


def _periodic_delaunay(points: np.ndarray):
    """Canonical periodic tetrahedra and their vertex image offsets."""
    n_pts = len(points)

    # Create 3×3×3 periodic images
    offsets = np.array(list(product([-1, 0, 1], repeat=3)), dtype=np.int64)
    central_idx = int(np.where(np.all(offsets == 0, axis=1))[0][0])
    images = np.vstack([points + off for off in offsets])

    simplices = _delaunay_simplices(images)
    base = simplices % n_pts
    image = simplices // n_pts

    # Same point twice (two images) → not a periodic tetrahedron
    sorted_base = np.sort(base, axis=1)
    distinct = np.all(sorted_base[:, 1:] != sorted_base[:, :-1], axis=1)

    # Canonical copy: smallest base index lies in the central image
    lead = np.argmin(base, axis=1)
    lead_image = image[np.arange(len(image)), lead]
    canonical = lead_image == central_idx

    n_self = int(np.count_nonzero(canonical & ~distinct))
    if n_self:
        warnings.warn(
            f"Dropped {n_self} periodic tetrahedra joining a point to its own image; "
            f"{n_pts} points are too few for a periodic triangulation",
            RuntimeWarning
        )
    keep = distinct & canonical
    return base[keep], offsets[image[keep]]


def delaunay_tetrahedra(points: np.ndarray, periodic: bool, return_images: bool = False):
    """
    Delaunay tetrahedra of a point set.

    Args:
        points: (N, 3) positions (in [0, 1)³ when periodic)
        periodic: triangulate on the unit 3-torus
        return_images: also return the (T, 4, 3) vertex image offsets
                       (None when not periodic)

    Returns:
        (T, 4) int64 array of point indices, or (tetrahedra, images)
    """
    points = np.asarray(points, dtype=float)
    n_pts = len(points)
    images = None
    if n_pts < 4:
        tets = np.zeros((0, 4), dtype=np.int64)
        if periodic:
            images = np.zeros((0, 4, 3), dtype=np.int64)
    elif not periodic:
        tets = _delaunay_simplices(points)
    else:
        tets, images = _periodic_delaunay(points)

    if return_images:
        return tets, images
    return tets


def triangulate(points: np.ndarray, periodic: bool, triangulator=None,
                return_images: bool = False):
    """
    Run a triangulation collaborator and apply the caller-side filter.

    Args:
        points: (N, 3) positions
        periodic: periodicity flag passed to the collaborator
        triangulator: callable (points, periodic) -> quadruples;
                      defaults to delaunay_tetrahedra
        return_images: also return vertex image offsets (only the default
                       collaborator provides them; None otherwise)

    Returns:
        (T, 4) int64 array with every index in [0, N), or (tetrahedra, images)
    """
    images = None
    if triangulator is None:
        tets, images = delaunay_tetrahedra(points, periodic, return_images=True)
    else:
        tets = filter_tetrahedra(triangulator(points, periodic), len(points))

    if return_images:
        return tets, images
    return tets
