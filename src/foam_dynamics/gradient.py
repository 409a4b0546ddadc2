"""
Catchment Gradient Motion
=========================

Alternative physical step driven by the knot structure instead of edge
scores. Every tetrahedron pulls each of its vertices by a homothety
toward its barycenter (or toward each of its other vertices when
edge_scale is set):

    h(Δ) = energy · [ eq · (1 − s/|Δ|)
                    + con · (1 − s/|Δ| · (1 − c))
                    + exp · (1 − s/|Δ| · c) ] · Δ

with c the tetrahedron catchment (knots.catchment_field), s the target
scale and eq / con / exp the enabled modes. Motion always uses
barycenters, whatever centering the foam was built with.

INTEGRATORS:
    integrate_points   explicit Euler, per-point step clamped to max_delta
    VerletIntegrator   damped Verlet x' = x + damping·v + a·dt², same clamp;
                       keeps its velocity when positions are reset externally
"""

import numpy as np
from typing import Optional

from foam_core.analysis.knots import KnotResult, catchment_field
from foam_core.builders.centers import compute_centers
from foam_core.builders.foam import Foam
from foam_core.builders.periodic import displacement, min_image_delta, wrap
from foam_core.spec.constants import EPS_ZERO, CENTER_BARYCENTER

from .config import GradientParams
from .constants import GRADIENT_MAX_DELTA, VERLET_DAMPING


def homothety(delta: np.ndarray, catchment: float, params: GradientParams) -> np.ndarray:
    n = float(np.linalg.norm(delta)) or EPS_ZERO
    ratio = params.scale / n
    h = 0.0
    if params.equilibration:
        h += 1.0 - ratio
    if params.contractive:
        h += 1.0 - ratio * (1.0 - catchment)
    if params.expansive:
        h += 1.0 - ratio * catchment
    return params.energy * h * delta


def catchment_gradient(foam: Foam, knots: KnotResult,
                       params: Optional[GradientParams] = None) -> np.ndarray:
    """
    Per-point motion vector, (N, 3).

    Args:
        foam: Foam snapshot
        knots: knot decomposition of the same foam
        params: GradientParams (defaults if None)
    """
    if params is None:
        params = GradientParams()
    grad = np.zeros((foam.n_points, 3))
    T = foam.n_tets
    if T == 0:
        return grad

    catchment = catchment_field(knots, T)
    motion_centers = compute_centers(foam.points, foam.tetrahedra, foam.periodic,
                                     CENTER_BARYCENTER, images=foam.images)
    points = foam.points
    periodic = foam.periodic

    for t, tet in enumerate(foam.tetrahedra):
        c = float(catchment[t])
        for i, p_idx in enumerate(tet):
            p = points[p_idx]
            if params.edge_scale:
                for b in range(4):
                    if b == i:
                        continue
                    delta = displacement(p, points[tet[b]], periodic)
                    grad[p_idx] += homothety(delta, c, params)
            else:
                delta = displacement(p, motion_centers[t], periodic)
                grad[p_idx] += homothety(delta, c, params)
    return grad


def _clamp_rows(step: np.ndarray, max_delta: float) -> np.ndarray:
    norms = np.linalg.norm(step, axis=1, keepdims=True)
    scale = np.ones_like(norms)
    big = norms > max_delta
    scale[big] = max_delta / norms[big]
    return step * scale


def integrate_points(points: np.ndarray, grad: np.ndarray, dt: float, periodic: bool,
                     max_delta: float = GRADIENT_MAX_DELTA) -> np.ndarray:
    """
    Explicit Euler step: x + clamp(dt · g), wrapped when periodic.

    Returns:
        new (N, 3) array (inputs are not modified)
    """
    points = np.asarray(points, dtype=float)
    step = _clamp_rows(dt * np.asarray(grad, dtype=float), max_delta)
    out = points + step
    if periodic:
        out = wrap(out)
    return out


class VerletIntegrator:
    """
    Damped position Verlet with per-step displacement clamp.

    Velocity is stored explicitly (minimum-image when periodic) so that a
    wrap across the boundary is not mistaken for a jump.
    """

    def __init__(self, n_points: int, periodic: bool = False,
                 damping: float = VERLET_DAMPING):
        self.n_points = int(n_points)
        self.periodic = bool(periodic)
        self.damping = float(damping)
        self.positions = None
        self.velocity = np.zeros((self.n_points, 3))
        self.accelerations = np.zeros((self.n_points, 3))

    @property
    def initialized(self) -> bool:
        return self.positions is not None

    def initialize(self, positions):
        """Start at rest."""
        self.positions = np.array(positions, dtype=float)
        self.velocity = np.zeros_like(self.positions)

    def set_positions(self, positions):
        """Replace positions after external changes, keeping velocity."""
        if not self.initialized:
            self.initialize(positions)
            return
        positions = np.array(positions, dtype=float)
        if positions.shape != self.positions.shape:
            raise ValueError(
                f"Verlet state holds {self.positions.shape}, got positions {positions.shape}"
            )
        self.positions = positions

    def set_forces(self, forces):
        self.accelerations = np.array(forces, dtype=float)

    def integrate(self, dt: float, max_delta: float = GRADIENT_MAX_DELTA) -> np.ndarray:
        """One step; returns a copy of the new positions."""
        if not self.initialized:
            raise RuntimeError("Verlet integrator not initialized")
        step = self.damping * self.velocity + self.accelerations * dt * dt
        step = _clamp_rows(step, max_delta)
        new = self.positions + step
        if self.periodic:
            new = wrap(new)
            self.velocity = min_image_delta(self.positions, new)
        else:
            self.velocity = new - self.positions
        self.positions = new
        return new.copy()
