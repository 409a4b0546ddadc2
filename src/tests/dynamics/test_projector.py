"""
Constraint Projector Tests
==========================

Score directives, face and tetrahedron targets, softness/clamp
magnitudes, periodic wrapping and the in-place points contract.

Run: python -m pytest tests/dynamics/test_projector.py -v
"""

import pytest
import numpy as np

from foam_dynamics import ProjectorParams, project_constraints, score_directive
from foam_dynamics.projector import (
    softness,
    triangle_area,
    signed_volume,
    volume_gradients,
)


FACE = [1, 2, 3]


def _area(points):
    return triangle_area(*points[FACE])


# =============================================================================
# Directive
# =============================================================================

class TestScoreDirective:

    def test_expansive_default(self):
        p = ProjectorParams()
        assert score_directive(1.0, p) == pytest.approx(0.025)
        assert score_directive(0.2, p) == 0.0

    def test_contractive_only(self):
        p = ProjectorParams(contractive=True, expansive=False)
        assert score_directive(0.0, p) == pytest.approx(-0.025)
        assert score_directive(0.9, p) == 0.0

    def test_invert(self):
        p = ProjectorParams(invert=True, contractive=True)
        assert score_directive(0.0, p) == pytest.approx(0.025)
        assert score_directive(1.0, p) == pytest.approx(-0.025)

    def test_at_threshold_is_zero(self):
        assert score_directive(0.5, ProjectorParams(contractive=True)) == 0.0

    def test_clamped_to_max_scale(self):
        p = ProjectorParams(strength=10.0, max_scale=0.1)
        assert score_directive(1.0, p) == pytest.approx(0.1)

    def test_gamma_shapes(self):
        p = ProjectorParams(gamma=2.0)
        assert score_directive(1.0, p) == pytest.approx(0.05 * 0.25)


class TestPrimitives:

    def test_softness(self):
        assert softness(1e-4) == pytest.approx(0.5)
        assert softness(0.0) == 1.0
        assert softness(-1.0) == 1.0

    def test_volume_gradients_match_finite_difference(self):
        coords = np.array([[0.1, 0.0, 0.0], [1.0, 0.2, 0.0], [0.0, 1.0, 0.1], [0.2, 0.3, 1.0]])
        g = volume_gradients(coords)
        h = 1e-7
        for i in range(4):
            for k in range(3):
                moved = coords.copy()
                moved[i, k] += h
                fd = (signed_volume(*moved) - signed_volume(*coords)) / h
                assert g[i, k] == pytest.approx(fd, abs=1e-6)


# =============================================================================
# Face mode
# =============================================================================

class TestFaceMode:

    def test_expansive_face_grows(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        before = _area(pts)
        stats = project_constraints(pts, two_tet_foam, {(0, 1): 1.0})
        assert _area(pts) > before
        assert np.array_equal(pts[0], two_tet_foam.points[0])
        assert np.array_equal(pts[4], two_tet_foam.points[4])
        assert stats.affected == 1
        assert stats.iterations == 8
        assert stats.max_delta == pytest.approx(0.0025)
        assert stats.mean_delta == pytest.approx(0.0025)

    def test_vertex_moves_away_from_centroid(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        project_constraints(pts, two_tet_foam, {(0, 1): 1.0}, ProjectorParams(iterations=1))
        centroid = two_tet_foam.points[FACE].mean(axis=0)
        d = two_tet_foam.points[1] - centroid
        assert pts[1] == pytest.approx(two_tet_foam.points[1] + 0.0025 * d / np.linalg.norm(d))

    def test_contractive_face_shrinks(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        before = _area(pts)
        params = ProjectorParams(contractive=True, expansive=False)
        project_constraints(pts, two_tet_foam, {(0, 1): 0.0}, params)
        assert _area(pts) < before

    def test_zero_directive_leaves_points(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        stats = project_constraints(pts, two_tet_foam, {(0, 1): 0.3})
        assert np.array_equal(pts, two_tet_foam.points)
        assert stats.affected == 0
        assert stats.mean_delta == 0.0

    def test_unknown_edge_ignored(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        project_constraints(pts, two_tet_foam, {(7, 9): 1.0})
        assert np.array_equal(pts, two_tet_foam.points)

    def test_empty_scores(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        stats = project_constraints(pts, two_tet_foam, {})
        assert stats.affected == 0
        assert np.array_equal(pts, two_tet_foam.points)


# =============================================================================
# Tetrahedron mode
# =============================================================================

class TestTetrahedronMode:

    def test_both_volumes_grow(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        tets = two_tet_foam.tetrahedra
        before = [abs(signed_volume(*pts[t])) for t in tets]
        stats = project_constraints(pts, two_tet_foam, {(0, 1): 1.0}, ProjectorParams(target="tet"))
        after = [abs(signed_volume(*pts[t])) for t in tets]
        assert after[0] > before[0]
        assert after[1] > before[1]
        assert stats.affected == 2

    def test_contractive_volumes_shrink(self, two_tet_foam):
        pts = two_tet_foam.points.copy()
        tets = two_tet_foam.tetrahedra
        before = [abs(signed_volume(*pts[t])) for t in tets]
        params = ProjectorParams(target="tetrahedron", contractive=True, expansive=False)
        project_constraints(pts, two_tet_foam, {(0, 1): 0.0}, params)
        after = [abs(signed_volume(*pts[t])) for t in tets]
        assert after[0] < before[0]
        assert after[1] < before[1]


# =============================================================================
# Periodic foam
# =============================================================================

class TestPeriodic:

    def test_points_stay_in_unit_cube(self, periodic_foam):
        pts = periodic_foam.points.copy()
        scores = {key: 1.0 for key in periodic_foam.edge_keys}
        stats = project_constraints(pts, periodic_foam, scores)
        assert np.all(pts >= 0.0) and np.all(pts < 1.0)
        assert stats.affected > 0
        assert stats.max_delta <= 0.0025 + 1e-15


# =============================================================================
# Input contract
# =============================================================================

class TestContract:

    def test_list_points_rejected(self, two_tet_foam):
        with pytest.raises(ValueError, match="numpy array"):
            project_constraints(two_tet_foam.points.tolist(), two_tet_foam, {(0, 1): 1.0})

    def test_integer_points_rejected(self, two_tet_foam):
        with pytest.raises(ValueError, match="float"):
            project_constraints(np.zeros((5, 3), dtype=int), two_tet_foam, {(0, 1): 1.0})

    def test_row_count_mismatch(self, two_tet_foam):
        with pytest.raises(ValueError, match="rows"):
            project_constraints(np.zeros((4, 3)), two_tet_foam, {(0, 1): 1.0})

    def test_unknown_target(self):
        with pytest.raises(ValueError, match="Unknown target mode"):
            ProjectorParams(target="vertex")
