"""
Geometry builders - periodic kernel, centers, triangulation, dual topology.

EXPORTS:
- Periodic kernel: wrap, min_image_delta, min_image_point, unwrap_to_reference
- Centers: barycenter, circumcenter, compute_centers
- Triangulation collaborator: delaunay_tetrahedra, filter_tetrahedra, triangulate
- Foam: build_foam, build_foam_from_points, Foam, topology_fingerprint
"""

# === Periodic kernel ===
from .periodic import (
    wrap,
    min_image_delta,
    min_image_point,
    displacement,
    unwrap_to_reference,
    simplex_coords,
)

# === Centers ===
from .centers import (
    barycenter,
    circumcenter,
    tetrahedron_center,
    compute_centers,
    resolve_center_method,
)

# === Triangulation (scipy.spatial.Delaunay) ===
from .triangulation import delaunay_tetrahedra, filter_tetrahedra, triangulate

# === Dual topology ===
from .foam import (
    Foam,
    build_foam,
    build_foam_from_points,
    build_facet_pairs,
    build_dual_edges,
    validate_tetrahedra,
    validate_images,
    validate_face_pairs,
    topology_fingerprint,
)
