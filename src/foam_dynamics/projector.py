"""
Constraint Projector ("Physical" step)
======================================

Deforms the point set toward score-driven targets, XPBD style.

DIRECTIVE (per scored dual edge):
    r = score − threshold          (threshold − score when invert)
    dropped when r < 0 and not contractive, or r > 0 and not expansive
    p = sign(r) · strength · |r|^γ, clamped to [−max_scale, +max_scale]

    p is a fractional change per step: p > 0 grows the primitive,
    p < 0 shrinks it, p = 0 leaves it untouched.

TARGET MODES:
    face         the Delaunay triangle dual to the edge. Each of its 3
                 vertices moves along unit(vertex − centroid).
    tetrahedron  p_tet = Σ area(f)·p(f) / Σ area(f) over the faces of the
                 tetrahedron that carry a directive. Each vertex moves along
                 its unit signed-volume gradient, oriented so that |V|
                 grows when p_tet > 0.

MAGNITUDE (per vertex, per iteration):
    softness = 1 / (1 + 1e4 · max(0, compliance))
    |δ| = softness · min(clamp, |p|)

PERIODIC:
    Each primitive is evaluated in the periodic image of its first vertex
    (unwrap → move → wrap); every moved vertex is wrapped immediately.

DEGENERACY:
    Triangles with area < EPS_AREA and tetrahedra with |V| < EPS_VOLUME are
    skipped for that iteration.
"""

import numpy as np
from dataclasses import dataclass
from typing import Dict, Optional

from foam_core.builders.foam import Foam
from foam_core.builders.periodic import wrap, simplex_coords
from foam_core.spec.constants import EPS_AREA, EPS_DIR, EPS_VOLUME, FACE_VERTEX_SLOTS
from foam_core.spec.structures import EdgeKey, FaceKey, edge_key

from .config import ProjectorParams
from .constants import COMPLIANCE_STIFFNESS, TARGET_TETRAHEDRON


@dataclass
class ProjectorStats:
    affected: int = 0           # distinct primitives moved at least once
    mean_delta: float = 0.0     # mean per-vertex displacement over all moves
    max_delta: float = 0.0      # largest per-vertex displacement
    iterations: int = 0


def score_directive(score: float, params: ProjectorParams) -> float:
    """Signed fractional target of one score (0.0 when dropped)."""
    r = (params.threshold - score) if params.invert else (score - params.threshold)
    if r < 0 and not params.contractive:
        return 0.0
    if r > 0 and not params.expansive:
        return 0.0
    if r == 0:
        return 0.0
    magnitude = abs(r) if params.gamma == 1.0 else abs(r) ** params.gamma
    p = np.sign(r) * params.strength * magnitude
    limit = abs(params.max_scale)
    return float(np.clip(p, -limit, limit))


def softness(compliance: float) -> float:
    return 1.0 / (1.0 + COMPLIANCE_STIFFNESS * max(0.0, compliance))


def triangle_area(a, b, c) -> float:
    return 0.5 * float(np.linalg.norm(np.cross(b - a, c - a)))


def signed_volume(a, b, c, d) -> float:
    return float(np.dot(b - a, np.cross(c - a, d - a))) / 6.0


def volume_gradients(coords: np.ndarray) -> np.ndarray:
    """∂V/∂x_i for the 4 vertices of a tetrahedron, (4, 3)."""
    a, b, c, d = coords
    g = np.empty((4, 3))
    g[1] = np.cross(c - a, d - a) / 6.0
    g[2] = np.cross(d - a, b - a) / 6.0
    g[3] = np.cross(b - a, c - a) / 6.0
    g[0] = -(g[1] + g[2] + g[3])
    return g


def _unit_rows(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v, axis=1, keepdims=True)
    out = np.zeros_like(v)
    ok = n[:, 0] >= EPS_DIR
    out[ok] = v[ok] / n[ok]
    return out


def face_directives(scores: Dict[EdgeKey, float], params: ProjectorParams,
                    edge_to_face: Dict[EdgeKey, FaceKey]) -> Dict[FaceKey, float]:
    """Non-zero directives keyed by the dual face of each scored edge."""
    out = {}
    for key, s in scores.items():
        face = edge_to_face.get(key)
        if face is None:
            continue
        p = score_directive(s, params)
        if p != 0.0:
            out[face] = p
    return out


def tetrahedron_directives(points: np.ndarray, foam: Foam, scores: Dict[EdgeKey, float],
                           params: ProjectorParams) -> Dict[int, float]:
    """Area-weighted mean directive per tetrahedron (non-zero only)."""
    edge_p = {}
    for key, s in scores.items():
        p = score_directive(s, params)
        if p != 0.0:
            edge_p[key] = p

    out = {}
    if not edge_p:
        return out
    for t in range(foam.n_tets):
        num = 0.0
        den = 0.0
        for f in range(4):
            m = int(foam.mirror_tet[t, f])
            if m < 0:
                continue
            p = edge_p.get(edge_key(t, m))
            if p is None:
                continue
            face = foam.tetrahedra[t][list(FACE_VERTEX_SLOTS[f])]
            area = triangle_area(*simplex_coords(points, face, foam.periodic))
            num += area * p
            den += area
        if den >= EPS_AREA and num != 0.0:
            out[t] = num / den
    return out


def project_constraints(points: np.ndarray, foam: Foam, scores: Dict[EdgeKey, float],
                        params: Optional[ProjectorParams] = None,
                        edge_to_face: Optional[Dict[EdgeKey, FaceKey]] = None) -> ProjectorStats:
    """
    Run params.iterations projection sweeps, moving points IN PLACE.

    Args:
        points: (N, 3) float array (modified)
        foam: Foam whose tetrahedra / dual edges the scores refer to
        scores: {(i, j): score in [0, 1]}
        params: ProjectorParams (defaults if None)
        edge_to_face: override of foam.edge_to_face

    Returns:
        ProjectorStats
    """
    if params is None:
        params = ProjectorParams()
    if not isinstance(points, np.ndarray) or points.ndim != 2 or points.shape[1] != 3:
        raise ValueError("points must be an (N, 3) numpy array (moved in place)")
    if not np.issubdtype(points.dtype, np.floating):
        raise ValueError(f"points must be a float array, got dtype {points.dtype}")
    if len(points) != foam.n_points:
        raise ValueError(f"points has {len(points)} rows, foam has {foam.n_points} points")

    periodic = foam.periodic
    stats = ProjectorStats(iterations=int(params.iterations))
    if not scores:
        return stats

    soft = softness(params.compliance)
    clamp = max(0.0, params.clamp)

    if params.target == TARGET_TETRAHEDRON:
        directives = tetrahedron_directives(points, foam, scores, params)
        primitives = [(foam.tetrahedra[t], p, t) for t, p in directives.items()]
    else:
        if edge_to_face is None:
            edge_to_face = foam.edge_to_face
        directives = face_directives(scores, params, edge_to_face)
        primitives = [(np.array(face, dtype=np.int64), p, face) for face, p in directives.items()]

    affected = set()
    total = 0.0
    moves = 0
    max_delta = 0.0

    for _ in range(stats.iterations):
        for idx, p, ident in primitives:
            coords = simplex_coords(points, idx, periodic)
            if len(idx) == 4:
                V = signed_volume(*coords)
                if abs(V) < EPS_VOLUME:
                    continue
                dirs = _unit_rows(volume_gradients(coords)) * np.sign(V)
            else:
                if triangle_area(*coords) < EPS_AREA:
                    continue
                dirs = _unit_rows(coords - coords.mean(axis=0))

            mag = soft * min(clamp, abs(p))
            if mag <= 0.0:
                continue
            moved = coords + np.sign(p) * mag * dirs
            if periodic:
                moved = wrap(moved)
            points[idx] = moved

            affected.add(ident)
            total += mag * len(idx)
            moves += len(idx)
            max_delta = max(max_delta, mag)

    stats.affected = len(affected)
    stats.mean_delta = total / moves if moves else 0.0
    stats.max_delta = max_delta
    return stats
