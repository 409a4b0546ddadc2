"""Pytest configuration for dynamics tests."""
import sys
from pathlib import Path

import numpy as np
import pytest


def pytest_configure(config):
    """Add src/ to path before any test imports."""
    src_root = Path(__file__).parent.parent.parent
    if str(src_root) not in sys.path:
        sys.path.insert(0, str(src_root))


# Also do it at module level for import ordering
src_root = Path(__file__).parent.parent.parent
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))


@pytest.fixture(scope='module')
def random_points():
    """100 seeded points in the unit cube."""
    from foam_core.spec.constants import DEFAULT_SEED
    return np.random.default_rng(DEFAULT_SEED).random((100, 3))


@pytest.fixture(scope='module')
def periodic_foam(random_points):
    from foam_core.builders import build_foam_from_points
    return build_foam_from_points(random_points, periodic=True)


@pytest.fixture
def two_tet_foam():
    """Two tetrahedra glued on the triangle (1, 2, 3) in the plane z = 0."""
    from foam_core.builders import build_foam
    pts = np.array([
        [0.2, 0.2, 1.0],
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.2, 0.2, -1.0],
    ])
    return build_foam(pts, [[0, 1, 2, 3], [4, 1, 2, 3]], periodic=False)
