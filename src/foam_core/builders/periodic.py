"""
Periodic Geometry Kernel
========================

Minimum-image arithmetic on the unit 3-torus [0, 1)³.

CONVENTIONS:
    - All periodic coordinates live in [0, 1)
    - min_image_delta(a, b) is the displacement FROM a TO b, wrapped
      component-wise into [-0.5, 0.5]
    - Geometry on a simplex is evaluated in the periodic image of a
      reference vertex, then wrapped back (unwrap → compute → wrap)
"""

import numpy as np

from ..spec.constants import PERIOD


def wrap(x):
    """
    Wrap scalar or array coordinates into [0, 1).

    np.mod can return exactly 1.0 for tiny negative inputs (-1e-17 % 1.0);
    those are snapped to 0.0 so the result is always strictly below 1.

    Idempotent: wrap(wrap(x)) == wrap(x).
    """
    result = np.mod(x, PERIOD)
    if np.ndim(result) == 0:
        result = float(result)
        return 0.0 if result >= PERIOD else result
    result = np.asarray(result, dtype=float)
    result[result >= PERIOD] = 0.0
    return result


def min_image_delta(a, b) -> np.ndarray:
    """
    Minimum-image displacement b - a under periodic boundary conditions.

    Args:
        a, b: points (arrays, broadcastable)

    Returns:
        displacement vector (b - a) wrapped to [-0.5, 0.5]
    """
    d = np.asarray(b, dtype=float) - np.asarray(a, dtype=float)
    return d - PERIOD * np.round(d / PERIOD)


def min_image_point(a, b) -> np.ndarray:
    """Return b moved to the periodic image closest to a."""
    return np.asarray(a, dtype=float) + min_image_delta(a, b)


def displacement(a, b, periodic: bool) -> np.ndarray:
    """Vector from a to b; minimum-image when periodic."""
    if periodic:
        return min_image_delta(a, b)
    return np.asarray(b, dtype=float) - np.asarray(a, dtype=float)


def unwrap_to_reference(coords: np.ndarray) -> np.ndarray:
    """Re-express every row in the periodic image of row 0."""
    coords = np.asarray(coords, dtype=float)
    if len(coords) == 0:
        return coords.copy()
    ref = coords[0]
    return ref + min_image_delta(ref, coords)


def simplex_coords(points: np.ndarray, indices, periodic: bool) -> np.ndarray:
    """Coordinates of a simplex, unwrapped to its first vertex when periodic."""
    coords = np.asarray(points, dtype=float)[np.asarray(indices)]
    if periodic:
        return unwrap_to_reference(coords)
    return coords
