"""
Dual Topology Builder Tests
===========================

Triangulation adapter, facet mirrors, dual edges, edge ↔ face maps,
fingerprint and the input contract.

Run: python -m pytest tests/core/test_foam_builder.py -v
"""

import pytest
import numpy as np
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from foam_core.builders import (
    build_foam,
    build_foam_from_points,
    build_facet_pairs,
    delaunay_tetrahedra,
    filter_tetrahedra,
    triangulate,
    topology_fingerprint,
)
from foam_core.spec.constants import DEFAULT_SEED
from foam_core.spec.structures import (
    edge_key,
    face_key,
    pack_edge_key,
    unpack_edge_key,
    keys_to_array,
    array_to_keys,
    fnv1a_32,
)


@pytest.fixture(scope='module')
def periodic_foam():
    rng = np.random.default_rng(DEFAULT_SEED)
    pts = rng.random((100, 3))
    tets, images = triangulate(pts, periodic=True, return_images=True)
    return build_foam(pts, tets, periodic=True, centering="circumcenter", images=images)


@pytest.fixture(scope='module')
def open_foam():
    rng = np.random.default_rng(DEFAULT_SEED)
    pts = rng.random((40, 3))
    tets = triangulate(pts, periodic=False)
    return build_foam(pts, tets, periodic=False)


# =============================================================================
# Value types
# =============================================================================

class TestKeys:

    def test_edge_key_order_independent(self):
        assert edge_key(7, 3) == edge_key(3, 7) == (3, 7)

    def test_face_key_sorted(self):
        assert face_key([5, 1, 3]) == (1, 3, 5)

    def test_face_key_needs_three(self):
        with pytest.raises(ValueError, match="exactly 3"):
            face_key([1, 2])

    def test_pack_unpack(self):
        key = (12345, 678901)
        assert unpack_edge_key(pack_edge_key(key)) == key

    def test_array_conversion(self):
        keys = [(0, 1), (2, 5)]
        assert array_to_keys(keys_to_array(keys)) == keys
        assert keys_to_array([]).shape == (0, 2)

    def test_fnv1a_reference_values(self):
        assert fnv1a_32("") == 0x811c9dc5
        assert fnv1a_32("a") == 0xe40c292c


# =============================================================================
# Triangulation adapter
# =============================================================================

class TestTriangulation:

    def test_filter_warns_with_count(self):
        raw = [[0, 1, 2, 3], [0, 1, 2, 9], [-1, 0, 1, 2]]
        with pytest.warns(RuntimeWarning, match="Filtered out 2 of 3"):
            tets = filter_tetrahedra(raw, n_points=5)
        assert tets.tolist() == [[0, 1, 2, 3]]

    def test_filter_none(self):
        assert filter_tetrahedra(None, 5).shape == (0, 4)

    def test_too_few_points(self):
        assert delaunay_tetrahedra(np.random.rand(3, 3), periodic=True).shape == (0, 4)

    def test_custom_triangulator_is_filtered(self):
        pts = np.random.default_rng(DEFAULT_SEED).random((5, 3))

        def broken(points, periodic):
            return [[0, 1, 2, 3], [1, 2, 3, 5]]

        with pytest.warns(RuntimeWarning):
            tets = triangulate(pts, periodic=False, triangulator=broken)
        assert tets.tolist() == [[0, 1, 2, 3]]

    def test_periodic_indices_in_range(self, periodic_foam):
        assert periodic_foam.tetrahedra.min() >= 0
        assert periodic_foam.tetrahedra.max() < periodic_foam.n_points


# =============================================================================
# Periodic foam invariants
# =============================================================================

class TestPeriodicFoam:

    def test_every_facet_mirrored(self, periodic_foam):
        assert np.all(periodic_foam.mirror_tet >= 0)

    def test_edge_count_is_twice_tets(self, periodic_foam):
        assert periodic_foam.n_edges == 2 * periodic_foam.n_tets

    def test_mirror_is_involution(self, periodic_foam):
        for t in range(periodic_foam.n_tets):
            for f in range(4):
                m, g = periodic_foam.mirror(t, f)
                assert periodic_foam.mirror(m, g) == (t, f)

    def test_dual_edge_keys_unique_and_ordered(self, periodic_foam):
        keys = periodic_foam.edge_keys
        assert len(set(keys)) == len(keys)
        assert all(a < b for a, b in keys)

    def test_edge_face_maps_are_inverse(self, periodic_foam):
        e2f = periodic_foam.edge_to_face
        f2e = periodic_foam.face_to_edge
        assert len(e2f) == periodic_foam.n_edges
        assert len(f2e) <= periodic_foam.n_edges
        for face, key in f2e.items():
            assert e2f[key] == face
        assert set(f2e) == set(e2f.values())

    def test_face_is_shared_by_both_tets(self, periodic_foam):
        tets = periodic_foam.tetrahedra
        for (a, b), face in periodic_foam.edge_to_face.items():
            assert set(face) <= set(tets[a].tolist())
            assert set(face) <= set(tets[b].tolist())

    def test_centers_wrapped(self, periodic_foam):
        c = periodic_foam.centers
        assert np.all(c >= 0.0) and np.all(c < 1.0)

    def test_fingerprint_deterministic(self, periodic_foam):
        again = build_foam(periodic_foam.points, periodic_foam.tetrahedra, periodic=True,
                           images=periodic_foam.images)
        assert again.fingerprint == periodic_foam.fingerprint
        assert 0 <= periodic_foam.fingerprint <= 0xFFFFFFFF

    def test_fingerprint_sees_periodic_flag(self, periodic_foam):
        f = periodic_foam
        assert (topology_fingerprint(f.n_points, f.n_tets, f.dual_edges, True)
                != topology_fingerprint(f.n_points, f.n_tets, f.dual_edges, False))

    def test_refresh_keeps_topology(self, periodic_foam):
        moved = np.mod(periodic_foam.points + 1e-3, 1.0)
        fresh = periodic_foam.refresh(moved)
        assert fresh.fingerprint == periodic_foam.fingerprint
        assert fresh.dual_edges is periodic_foam.dual_edges
        assert not np.allclose(fresh.centers, periodic_foam.centers)

    def test_refresh_rejects_new_point_count(self, periodic_foam):
        with pytest.raises(ValueError, match="Point count changed"):
            periodic_foam.refresh(periodic_foam.points[:-1])


class TestOpenFoam:

    def test_boundary_facets_exist(self, open_foam):
        assert np.any(open_foam.mirror_tet < 0)
        assert open_foam.n_edges < 2 * open_foam.n_tets

    def test_mirror_none_on_boundary(self, open_foam):
        t, f = np.argwhere(open_foam.mirror_tet < 0)[0]
        assert open_foam.mirror(int(t), int(f)) is None


# =============================================================================
# Periodic image offsets
# =============================================================================

class TestPeriodicImages:
    """Small periodic sets where one vertex triple appears in several images."""

    @pytest.fixture(scope='class')
    def sparse_foam(self):
        pts = np.random.default_rng(7).random((60, 3))
        return build_foam_from_points(pts, periodic=True)

    def test_sparse_set_is_manifold(self, sparse_foam):
        assert sparse_foam.n_tets > 0
        assert np.all(sparse_foam.mirror_tet >= 0)

    def test_sparse_set_mirror_is_involution(self, sparse_foam):
        for t in range(sparse_foam.n_tets):
            for f in range(4):
                m, g = sparse_foam.mirror(t, f)
                assert sparse_foam.mirror(m, g) == (t, f)

    def test_sparse_set_images_kept(self, sparse_foam):
        images = sparse_foam.images
        assert images.shape == (sparse_foam.n_tets, 4, 3)
        assert set(np.unique(images).tolist()) <= {-1, 0, 1}

    def test_sparse_set_centers_wrapped(self, sparse_foam):
        c = sparse_foam.centers
        assert np.all(c >= 0.0) and np.all(c < 1.0)

    def test_sparse_set_refresh(self, sparse_foam):
        moved = np.mod(sparse_foam.points + 1e-3, 1.0)
        fresh = sparse_foam.refresh(moved)
        assert fresh.images.shape == sparse_foam.images.shape
        assert fresh.fingerprint == sparse_foam.fingerprint

    def test_refresh_follows_wrapped_vertices(self, sparse_foam):
        """A rigid shift wraps many points; centers must shift with them."""
        moved = np.mod(sparse_foam.points + 0.3, 1.0)
        fresh = sparse_foam.refresh(moved)
        d = fresh.centers - np.mod(sparse_foam.centers + 0.3, 1.0)
        d -= np.round(d)
        assert np.allclose(d, 0.0, atol=1e-9)

    def test_same_triple_in_other_image_is_not_a_mirror(self):
        tets = np.array([[0, 1, 2, 3], [0, 1, 2, 4]])
        shifted = np.zeros((2, 4, 3), dtype=int)
        shifted[1, 2] = (1, 0, 0)
        mirror_tet, _ = build_facet_pairs(tets, shifted)
        assert np.all(mirror_tet == -1)

    def test_translated_copy_is_a_mirror(self):
        tets = np.array([[0, 1, 2, 3], [0, 1, 2, 4]])
        images = np.zeros((2, 4, 3), dtype=int)
        images[1, :] = (1, 0, 0)
        mirror_tet, mirror_face = build_facet_pairs(tets, images)
        assert (mirror_tet[0, 3], mirror_face[0, 3]) == (1, 3)
        assert (mirror_tet[1, 3], mirror_face[1, 3]) == (0, 3)

    def test_explicit_face_pairs(self, periodic_foam):
        again = build_foam(periodic_foam.points, periodic_foam.tetrahedra, periodic=True,
                           face_pairs=periodic_foam.face_pairs())
        assert np.array_equal(again.dual_edges, periodic_foam.dual_edges)
        assert again.fingerprint == periodic_foam.fingerprint


# =============================================================================
# Scenarios
# =============================================================================

def test_two_tetrahedra_sharing_one_face():
    """Minimal periodic mesh: one shared face → exactly one dual edge."""
    pts = np.array([
        [0.1, 0.1, 0.1],
        [0.4, 0.1, 0.1],
        [0.1, 0.4, 0.1],
        [0.1, 0.1, 0.4],
        [0.4, 0.4, 0.4],
    ])
    tets = np.array([[0, 1, 2, 3], [1, 2, 3, 4]])
    foam = build_foam(pts, tets, periodic=True)
    assert foam.n_edges == 1
    assert foam.edge_keys == [edge_key(1, 0)] == [edge_key(0, 1)]
    assert foam.edge_to_face[(0, 1)] == (1, 2, 3)


def test_empty_foam():
    foam = build_foam(np.random.rand(5, 3), np.zeros((0, 4), dtype=int), periodic=True)
    assert foam.n_tets == 0
    assert foam.n_edges == 0
    assert foam.dual_edges.shape == (0, 2)


# =============================================================================
# Input contract
# =============================================================================

class TestInputContract:

    pts = np.random.default_rng(DEFAULT_SEED).random((6, 3))

    def test_wrong_shape(self):
        with pytest.raises(ValueError, match=r"shape \(T, 4\)"):
            build_foam(self.pts, [[0, 1, 2]])

    def test_points_wrong_shape(self):
        with pytest.raises(ValueError, match=r"shape \(N, 3\)"):
            build_foam(np.zeros((6, 2)), [[0, 1, 2, 3]])

    def test_non_integer(self):
        with pytest.raises(ValueError, match="integer"):
            build_foam(self.pts, np.array([[0, 1, 2, 3.5]]))

    def test_out_of_range(self):
        with pytest.raises(ValueError, match="out of range"):
            build_foam(self.pts, [[0, 1, 2, 6]])

    def test_repeated_vertex(self):
        with pytest.raises(ValueError, match="non-distinct"):
            build_foam(self.pts, [[0, 1, 1, 3]])

    def test_non_manifold_face(self):
        with pytest.raises(ValueError, match=r"Non-manifold face \(0, 1, 2\): observed 3 times"):
            build_foam(self.pts, [[0, 1, 2, 3], [0, 1, 2, 4], [0, 1, 2, 5]])

    def test_duplicate_dual_edge(self):
        with pytest.raises(ValueError, match="share more than one face"):
            build_foam(self.pts, [[0, 1, 2, 3], [3, 2, 1, 0]])

    def test_unknown_centering(self):
        with pytest.raises(ValueError, match="Unknown center method"):
            build_foam(self.pts, [[0, 1, 2, 3]], centering="incenter")

    def test_image_offsets_wrong_shape(self):
        with pytest.raises(ValueError, match="Image offsets must have shape"):
            build_foam(self.pts, [[0, 1, 2, 3]], images=np.zeros((1, 3, 3), dtype=int))

    def test_image_offsets_ignored_when_open(self):
        foam = build_foam(self.pts, [[0, 1, 2, 3]], periodic=False,
                          images=np.zeros((1, 3, 3), dtype=int))
        assert foam.images is None

    def test_face_pairs_not_involution(self):
        pairs = np.full((2, 4, 2), -1)
        pairs[0, 0] = (1, 3)
        with pytest.raises(ValueError, match="not an involution"):
            build_foam(self.pts, [[0, 1, 2, 3], [1, 2, 3, 4]], face_pairs=pairs)

    def test_face_pairs_out_of_range(self):
        pairs = np.full((2, 4, 2), -1)
        pairs[0, 0] = (5, 3)
        with pytest.raises(ValueError, match="out of range"):
            build_foam(self.pts, [[0, 1, 2, 3], [1, 2, 3, 4]], face_pairs=pairs)

    def test_face_pairs_wrong_count(self):
        with pytest.raises(ValueError, match="Face pairs cover 1"):
            build_foam(self.pts, [[0, 1, 2, 3], [1, 2, 3, 4]],
                       face_pairs=np.full((1, 4, 2), -1))
