"""
Dual Topology Builder ("Foam")
==============================

From point positions and Delaunay tetrahedra, derive the Voronoi dual:

    - centers: one per tetrahedron (barycenter or circumcenter)
    - facet mirrors: (tet, face) ↔ (tet', face') sharing the same triangle
    - dual edges: unordered pairs of mirrored tetrahedra, key (i, j), i < j
    - edge ↔ face maps: each dual edge crosses exactly one Delaunay triangle
    - topology fingerprint: cheap change-detection hash

INPUT CONTRACT (fail-fast, ValueError):
    - tetrahedra shaped (T, 4), integer, indices in [0, N)
    - the 4 indices of a tetrahedron are distinct
    - every triangle is shared by at most 2 tetrahedra (face-manifold)
    - periodic image offsets, when given, are shaped (T, 4, 3) integers
    - explicit face pairs, when given, are a (T, 4, 2) involution
    - two tetrahedra share at most one triangle (dual edge keys unique)

    A violation means the triangulation collaborator is broken; nothing
    is retried.

PERIODIC FACES:
    A face is identified by its sorted vertex triple. With image offsets
    (delaunay_tetrahedra(..., return_images=True)) the offsets of the
    face vertices, relative to its smallest-index vertex, are part of the
    identity, so two periodic faces on the same 3 points pair up
    separately. face_to_edge then keeps the first dual edge of such a
    triple; edge_to_face stays complete.

PROPERTY:
    Under periodic boundary conditions every facet has a mirror, so the
    4·T facets pair up into E = 2·T dual edges.
"""

import numpy as np
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .centers import compute_centers, resolve_center_method
from .triangulation import triangulate
from ..spec.constants import (
    FACE_VERTEX_SLOTS,
    FINGERPRINT_SAMPLE,
    FINGERPRINT_KEY_MUL,
    FINGERPRINT_A_MUL,
    FINGERPRINT_B_MUL,
    FNV_OFFSET,
    FNV_PRIME,
    MASK32,
)
from ..spec.structures import EdgeKey, FaceKey, face_key


@dataclass
class Foam:
    """Dual topology snapshot for one (points, tetrahedra) pair."""
    points: np.ndarray              # (N, 3)
    tetrahedra: np.ndarray          # (T, 4)
    centers: np.ndarray             # (T, 3)
    periodic: bool
    centering: str
    mirror_tet: np.ndarray          # (T, 4), -1 for boundary facets
    mirror_face: np.ndarray         # (T, 4), -1 for boundary facets
    dual_edges: np.ndarray          # (E, 2), rows (i, j) with i < j
    edge_index: Dict[EdgeKey, int] = field(repr=False)
    edge_to_face: Dict[EdgeKey, FaceKey] = field(repr=False)
    face_to_edge: Dict[FaceKey, EdgeKey] = field(repr=False)
    fingerprint: int = 0
    images: Optional[np.ndarray] = field(default=None, repr=False)   # (T, 4, 3) periodic offsets

    @property
    def n_points(self) -> int:
        return len(self.points)

    @property
    def n_tets(self) -> int:
        return len(self.tetrahedra)

    @property
    def n_edges(self) -> int:
        return len(self.dual_edges)

    @property
    def edge_keys(self) -> list:
        return [(int(a), int(b)) for a, b in self.dual_edges]

    def mirror(self, tet: int, face: int):
        """Mirror facet (tet', face') of (tet, face), or None on the boundary."""
        t = int(self.mirror_tet[tet, face])
        if t < 0:
            return None
        return t, int(self.mirror_face[tet, face])

    def face_pairs(self) -> np.ndarray:
        """(T, 4, 2) mirror table, -1 where there is no mirror."""
        return np.stack([self.mirror_tet, self.mirror_face], axis=-1)

    def refresh(self, points: np.ndarray) -> "Foam":
        """
        Rebuild for moved points with the SAME tetrahedra.

        Centers depend on positions; the topology (mirrors, dual edges,
        fingerprint) does not, so it is reused as-is. Periodic image offsets
        follow vertices that wrapped across the box, assuming each point
        moved less than half the box.
        """
        points = _check_points(points)
        if len(points) != self.n_points:
            raise ValueError(
                f"Point count changed ({self.n_points} → {len(points)}); retriangulate instead"
            )
        images = self.images
        if images is not None:
            # a vertex that wrapped since the last snapshot moved to the next image
            shift = np.round(self.points - points).astype(np.int64)
            if np.any(shift):
                images = images + shift[self.tetrahedra]
        centers = compute_centers(points, self.tetrahedra, self.periodic, self.centering,
                                  images=images)
        return Foam(
            points=points,
            tetrahedra=self.tetrahedra,
            centers=centers,
            periodic=self.periodic,
            centering=self.centering,
            mirror_tet=self.mirror_tet,
            mirror_face=self.mirror_face,
            dual_edges=self.dual_edges,
            edge_index=self.edge_index,
            edge_to_face=self.edge_to_face,
            face_to_edge=self.face_to_edge,
            fingerprint=self.fingerprint,
            images=images,
        )


def _check_points(points) -> np.ndarray:
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"Points must have shape (N, 3), got {points.shape}")
    return points


def validate_tetrahedra(tetrahedra, n_points: int) -> np.ndarray:
    """
    Check the index-array contract; return tetrahedra as (T, 4) int64.

    Raises:
        ValueError naming the first violated invariant
    """
    tets = np.asarray(tetrahedra)
    if tets.size == 0:
        return np.zeros((0, 4), dtype=np.int64)
    if tets.ndim != 2 or tets.shape[1] != 4:
        raise ValueError(f"Tetrahedra must have shape (T, 4), got {tets.shape}")
    if not np.issubdtype(tets.dtype, np.integer):
        if not np.all(np.equal(np.mod(tets, 1), 0)):
            raise ValueError("Tetrahedra must contain integer vertex indices")
    tets = tets.astype(np.int64)

    out_of_range = np.where(np.any((tets < 0) | (tets >= n_points), axis=1))[0]
    if len(out_of_range) > 0:
        t = int(out_of_range[0])
        raise ValueError(
            f"Tetrahedron {t} {tets[t].tolist()} has vertex index out of range [0, {n_points - 1}]"
        )

    s = np.sort(tets, axis=1)
    repeated = np.where(np.any(s[:, 1:] == s[:, :-1], axis=1))[0]
    if len(repeated) > 0:
        t = int(repeated[0])
        raise ValueError(
            f"Tetrahedron {t} {tets[t].tolist()} has non-distinct vertex indices"
        )
    return tets


def validate_images(images, n_tets: int) -> np.ndarray:
    """Check periodic image offsets; return them as (T, 4, 3) int64."""
    images = np.asarray(images)
    if images.size == 0 and n_tets == 0:
        return np.zeros((0, 4, 3), dtype=np.int64)
    if images.shape != (n_tets, 4, 3):
        raise ValueError(f"Image offsets must have shape ({n_tets}, 4, 3), got {images.shape}")
    if not np.issubdtype(images.dtype, np.integer):
        if not np.all(np.equal(np.mod(images, 1), 0)):
            raise ValueError("Image offsets must be integers")
    return images.astype(np.int64)


def _facet_key(tet: np.ndarray, slots, offsets: Optional[np.ndarray]) -> tuple:
    idx = tet[list(slots)]
    if offsets is None:
        return face_key(idx)
    order = np.argsort(idx)
    off = offsets[list(slots)][order]
    rel = off[1:] - off[0]
    return face_key(idx) + tuple(int(x) for x in rel.ravel())


def build_facet_pairs(tetrahedra: np.ndarray,
                      images: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Face adjacency: mirror facet of every (tet, face).

    Each face's 3 sorted vertex indices (plus relative image offsets when
    given) are grouped; a group of 2 is a mirrored pair, a group of 1 is
    a boundary facet.

    Returns:
        mirror_tet, mirror_face: (T, 4) arrays, -1 for boundary facets

    Raises:
        ValueError if any face key is observed more than twice
    """
    T = len(tetrahedra)
    mirror_tet = np.full((T, 4), -1, dtype=np.int64)
    mirror_face = np.full((T, 4), -1, dtype=np.int64)

    groups: Dict[tuple, list] = defaultdict(list)
    for t in range(T):
        tet = tetrahedra[t]
        offsets = None if images is None else images[t]
        for f, slots in enumerate(FACE_VERTEX_SLOTS):
            groups[_facet_key(tet, slots, offsets)].append((t, f))

    for key, facets in groups.items():
        if len(facets) > 2:
            raise ValueError(
                f"Non-manifold face {key[:3]}: observed {len(facets)} times "
                f"(tetrahedra {[t for t, _ in facets]}); at most 2 allowed"
            )
        if len(facets) == 2:
            (t1, f1), (t2, f2) = facets
            mirror_tet[t1, f1], mirror_face[t1, f1] = t2, f2
            mirror_tet[t2, f2], mirror_face[t2, f2] = t1, f1

    return mirror_tet, mirror_face


def validate_face_pairs(face_pairs, n_tets: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Check an explicit (T, 4, 2) mirror table; return mirror_tet, mirror_face.

    Raises:
        ValueError if the shape is wrong, an entry is out of range, or the
        table is not an involution
    """
    pairs = np.asarray(face_pairs, dtype=np.int64).reshape(-1, 4, 2)
    if len(pairs) != n_tets:
        raise ValueError(f"Face pairs cover {len(pairs)} tetrahedra, expected {n_tets}")
    mirror_tet = pairs[:, :, 0].copy()
    mirror_face = pairs[:, :, 1].copy()
    bad = (mirror_tet < -1) | (mirror_tet >= n_tets) | (mirror_face < -1) | (mirror_face > 3)
    bad |= (mirror_tet < 0) != (mirror_face < 0)
    if np.any(bad):
        t, f = np.argwhere(bad)[0]
        raise ValueError(f"Face pair of facet ({t}, {f}) is out of range")
    for t, f in np.argwhere(mirror_tet >= 0):
        m, g = mirror_tet[t, f], mirror_face[t, f]
        if mirror_tet[m, g] != t or mirror_face[m, g] != f:
            raise ValueError(f"Face pairs are not an involution at facet ({t}, {f})")
    return mirror_tet, mirror_face


def build_dual_edges(tetrahedra: np.ndarray, mirror_tet: np.ndarray):
    """
    Dual (Voronoi) edges from mirrored facet pairs.

    Each pair is emitted once, from the lower tetrahedron index.

    Returns:
        dual_edges: (E, 2) int64 array
        edge_index: dict key -> row in dual_edges
        edge_to_face: dict key -> sorted vertex triple
        face_to_edge: dict sorted vertex triple -> key (first edge wins)

    Raises:
        ValueError if two tetrahedra share more than one face
    """
    edges = []
    edge_index: Dict[EdgeKey, int] = {}
    edge_to_face: Dict[EdgeKey, FaceKey] = {}
    face_to_edge: Dict[FaceKey, EdgeKey] = {}

    T = len(tetrahedra)
    for t1 in range(T):
        for f1 in range(4):
            t2 = int(mirror_tet[t1, f1])
            if t2 < 0 or t1 >= t2:
                continue
            key = (t1, t2)
            if key in edge_index:
                raise ValueError(
                    f"Tetrahedra {t1} and {t2} share more than one face; "
                    f"dual edge key {key} would not be unique"
                )
            fk = face_key(tetrahedra[t1][list(FACE_VERTEX_SLOTS[f1])])
            edge_index[key] = len(edges)
            edges.append(key)
            edge_to_face[key] = fk
            face_to_edge.setdefault(fk, key)

    dual_edges = np.array(edges, dtype=np.int64).reshape(-1, 2)
    return dual_edges, edge_index, edge_to_face, face_to_edge


def topology_fingerprint(n_points: int, n_tets: int, dual_edges: np.ndarray,
                         periodic: bool) -> int:
    """
    Cheap 32-bit structural hash.

    Mixes the periodic flag, point / tetrahedron / dual edge counts and
    the first FINGERPRINT_SAMPLE edge keys. Change detection only; NOT a
    guarantee that two foams are identical.
    """
    key_acc = 0
    n_sample = min(FINGERPRINT_SAMPLE, len(dual_edges))
    for a, b in dual_edges[:n_sample]:
        mixed = ((int(a) * FINGERPRINT_A_MUL) ^ (int(b) * FINGERPRINT_B_MUL)) & MASK32
        key_acc = ((key_acc * FINGERPRINT_KEY_MUL) ^ mixed) & MASK32

    h = FNV_OFFSET
    for x in (1 if periodic else 0, n_points, n_tets, len(dual_edges), key_acc):
        h ^= x & MASK32
        h = (h * FNV_PRIME) & MASK32
    return h


def build_foam(points, tetrahedra, periodic: bool = True,
               centering: str = "barycenter", images=None, face_pairs=None) -> Foam:
    """
    Build the dual topology for one snapshot.

    Args:
        points: (N, 3) positions
        tetrahedra: (T, 4) vertex indices (from the triangulation collaborator)
        periodic: minimum-image convention on the unit cube
        centering: "barycenter" or "circumcenter"
        images: (T, 4, 3) vertex image offsets of a periodic triangulation;
                faces and centers are then taken in those images
        face_pairs: (T, 4, 2) mirror table to use instead of face matching

    Returns:
        Foam

    Raises:
        ValueError on any input-contract violation (see module docstring)
    """
    points = _check_points(points)
    centering = resolve_center_method(centering)
    tets = validate_tetrahedra(tetrahedra, len(points))

    if images is not None and periodic:
        images = validate_images(images, len(tets))
    else:
        images = None

    centers = compute_centers(points, tets, periodic, centering, images=images)
    if face_pairs is not None:
        mirror_tet, mirror_face = validate_face_pairs(face_pairs, len(tets))
    else:
        mirror_tet, mirror_face = build_facet_pairs(tets, images)
    dual_edges, edge_index, edge_to_face, face_to_edge = build_dual_edges(tets, mirror_tet)
    fingerprint = topology_fingerprint(len(points), len(tets), dual_edges, periodic)

    return Foam(
        points=points,
        tetrahedra=tets,
        centers=centers,
        periodic=bool(periodic),
        centering=centering,
        mirror_tet=mirror_tet,
        mirror_face=mirror_face,
        dual_edges=dual_edges,
        edge_index=edge_index,
        edge_to_face=edge_to_face,
        face_to_edge=face_to_edge,
        fingerprint=fingerprint,
        images=images,
    )


def build_foam_from_points(points, periodic: bool = True, centering: str = "barycenter",
                           triangulator=None) -> Foam:
    """Triangulate (keeping periodic image offsets) and build the Foam."""
    points = _check_points(points)
    tets, images = triangulate(points, periodic, triangulator, return_images=True)
    return build_foam(points, tets, periodic, centering, images=images)
