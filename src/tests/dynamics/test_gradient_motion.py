"""
Catchment Gradient Motion Tests
===============================

Homothety terms, per-point gradient, Euler clamp and the damped Verlet
integrator on the unit torus.

Run: python -m pytest tests/dynamics/test_gradient_motion.py -v
"""

import pytest
import numpy as np

from foam_core.analysis import detect_knots
from foam_dynamics import (
    GradientParams,
    VerletIntegrator,
    catchment_gradient,
    homothety,
    integrate_points,
)


# =============================================================================
# Homothety
# =============================================================================

class TestHomothety:

    def test_equilibration_zero_at_target_scale(self):
        params = GradientParams(scale=0.5, expansive=False)
        h = homothety(np.array([0.5, 0.0, 0.0]), 0.3, params)
        assert np.allclose(h, 0.0)

    def test_equilibration_sign(self):
        params = GradientParams(scale=0.5, energy=1.0, expansive=False)
        far = homothety(np.array([1.0, 0.0, 0.0]), 0.0, params)
        near = homothety(np.array([0.1, 0.0, 0.0]), 0.0, params)
        assert far[0] > 0.0
        assert near[0] < 0.0

    def test_expansive_uses_catchment(self):
        params = GradientParams(scale=0.5, energy=1.0, equilibration=False)
        d = np.array([1.0, 0.0, 0.0])
        assert homothety(d, 0.0, params)[0] == pytest.approx(1.0)
        assert homothety(d, 2.0, params)[0] == pytest.approx(0.0)

    def test_contractive_uses_complement(self):
        params = GradientParams(scale=0.5, energy=1.0, equilibration=False,
                                contractive=True, expansive=False)
        d = np.array([1.0, 0.0, 0.0])
        assert homothety(d, 1.0, params)[0] == pytest.approx(1.0)
        assert homothety(d, 0.0, params)[0] == pytest.approx(0.5)

    def test_all_modes_off(self):
        params = GradientParams(equilibration=False, expansive=False)
        assert np.allclose(homothety(np.array([0.3, 0.1, 0.0]), 1.0, params), 0.0)


# =============================================================================
# Gradient field
# =============================================================================

class TestCatchmentGradient:

    def test_shape_and_finite(self, periodic_foam):
        grad = catchment_gradient(periodic_foam, detect_knots(periodic_foam))
        assert grad.shape == (periodic_foam.n_points, 3)
        assert np.all(np.isfinite(grad))
        assert np.any(grad != 0.0)

    def test_edge_scale_differs(self, periodic_foam):
        knots = detect_knots(periodic_foam)
        a = catchment_gradient(periodic_foam, knots, GradientParams())
        b = catchment_gradient(periodic_foam, knots, GradientParams(edge_scale=True))
        assert not np.allclose(a, b)

    def test_empty_foam(self):
        from foam_core.builders import build_foam
        foam = build_foam(np.random.rand(6, 3), np.zeros((0, 4), dtype=int))
        grad = catchment_gradient(foam, detect_knots(foam))
        assert grad.shape == (6, 3)
        assert np.all(grad == 0.0)


# =============================================================================
# Integrators
# =============================================================================

class TestEuler:

    def test_step_clamped(self):
        pts = np.full((2, 3), 0.5)
        grad = np.array([[1.0, 0.0, 0.0], [0.001, 0.0, 0.0]])
        out = integrate_points(pts, grad, dt=1.0, periodic=False, max_delta=0.02)
        assert out[0] == pytest.approx([0.52, 0.5, 0.5])
        assert out[1] == pytest.approx([0.501, 0.5, 0.5])

    def test_wraps_when_periodic(self):
        pts = np.array([[0.99, 0.5, 0.5]])
        out = integrate_points(pts, np.array([[0.02, 0.0, 0.0]]), 1.0, periodic=True)
        assert out[0, 0] == pytest.approx(0.01)

    def test_input_not_modified(self):
        pts = np.full((1, 3), 0.5)
        integrate_points(pts, np.ones((1, 3)), 1.0, periodic=True)
        assert np.all(pts == 0.5)


class TestVerlet:

    def test_requires_initialize(self):
        v = VerletIntegrator(2)
        with pytest.raises(RuntimeError, match="not initialized"):
            v.integrate(1.0)

    def test_momentum_carries_over(self):
        v = VerletIntegrator(1, periodic=False, damping=1.0)
        v.initialize(np.array([[0.5, 0.5, 0.5]]))
        v.set_forces(np.array([[0.01, 0.0, 0.0]]))
        first = v.integrate(1.0)
        v.set_forces(np.zeros((1, 3)))
        second = v.integrate(1.0)
        assert first[0, 0] == pytest.approx(0.51)
        assert second[0, 0] == pytest.approx(0.52)

    def test_damping(self):
        v = VerletIntegrator(1, damping=0.5)
        v.initialize(np.array([[0.5, 0.5, 0.5]]))
        v.set_forces(np.array([[0.01, 0.0, 0.0]]))
        v.integrate(1.0)
        v.set_forces(np.zeros((1, 3)))
        assert v.integrate(1.0)[0, 0] == pytest.approx(0.515)

    def test_velocity_is_min_image_across_boundary(self):
        v = VerletIntegrator(1, periodic=True, damping=1.0)
        v.initialize(np.array([[0.995, 0.5, 0.5]]))
        v.set_forces(np.array([[0.01, 0.0, 0.0]]))
        out = v.integrate(1.0)
        assert out[0, 0] == pytest.approx(0.005)
        assert v.velocity[0, 0] == pytest.approx(0.01)

    def test_set_positions_shape_check(self):
        v = VerletIntegrator(2)
        v.initialize(np.zeros((2, 3)))
        with pytest.raises(ValueError, match="Verlet state"):
            v.set_positions(np.zeros((3, 3)))
