"""Tests for meshdist.distance.TriangleMeshDistance and the grid helpers."""
from __future__ import annotations

import dataclasses
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import numpy as np
import numpy.testing as npt
import pytest

from meshdist import (
    DegenerateTriangleError,
    DegenerateTriangleWarning,
    EmptyMeshError,
    InvalidMeshError,
    NearestEntity,
    NonWatertightWarning,
    NotConstructedError,
    Pseudonormals,
    Result,
    TriangleMeshDistance,
    mesh_to_sdf,
    sample_sdf_grid,
)
from meshdist._math import _point_triangle_sq_unsigned

from conftest import make_box, make_octasphere, make_soup

open_mesh = pytest.mark.filterwarnings("ignore::meshdist.NonWatertightWarning")


def _random_directions(n, seed):
    v = np.random.default_rng(seed).normal(size=(n, 3))
    return v / np.linalg.norm(v, axis=1, keepdims=True)


# ---------------------------------------------------------------------------
# Unit cube
# ---------------------------------------------------------------------------

class TestUnitCube:
    @pytest.fixture(autouse=True)
    def _build(self, unit_cube):
        self.tmd = TriangleMeshDistance(*unit_cube)

    def test_watertight(self):
        assert self.tmd.is_watertight

    def test_center_is_inside(self):
        r = self.tmd.signed_distance([0.5, 0.5, 0.5])
        assert r.distance == pytest.approx(-0.5)

    def test_center_unsigned(self):
        assert self.tmd.unsigned_distance([0.5, 0.5, 0.5]).distance == pytest.approx(0.5)

    @pytest.mark.parametrize("p, expected", [
        ((3.0, 0.5, 0.5), 2.0),                     # off the +X face
        ((0.5, -4.0, 0.5), 4.0),                    # off the -Y face
        ((2.0, 2.0, 2.0), math.sqrt(3.0)),          # off a corner
        ((2.0, 2.0, 0.5), math.sqrt(2.0)),          # off a cube edge
        ((-1.0, 0.25, 3.0), math.sqrt(5.0)),        # off an edge, oblique
    ])
    def test_outside_positive(self, p, expected):
        r = self.tmd.signed_distance(p)
        assert r.distance == pytest.approx(expected)

    @pytest.mark.parametrize("p, expected", [
        ((0.9, 0.5, 0.5), -0.1),
        ((0.1, 0.2, 0.3), -0.1),
        ((0.25, 0.75, 0.6), -0.25),
    ])
    def test_inside_negative(self, p, expected):
        assert self.tmd.signed_distance(p).distance == pytest.approx(expected)

    def test_corner_entity_is_vertex(self):
        r = self.tmd.unsigned_distance([2.0, 2.0, 2.0])
        assert r.nearest_entity.is_vertex
        npt.assert_allclose(r.nearest_point, [1.0, 1.0, 1.0])

    def test_edge_entity(self):
        r = self.tmd.unsigned_distance([2.0, 2.0, 0.5])
        npt.assert_allclose(r.nearest_point, [1.0, 1.0, 0.5])
        # The closest point lies on a cube edge, not a face diagonal.
        assert r.nearest_entity.is_edge

    def test_on_surface_is_zero(self):
        r = self.tmd.signed_distance([0.3, 0.6, 1.0])
        assert abs(r.distance) < 1e-12

    def test_result_fields(self):
        r = self.tmd.unsigned_distance([0.5, 0.5, 3.0])
        assert isinstance(r.distance, float)
        assert r.nearest_point.shape == (3,)
        assert isinstance(r.nearest_entity, NearestEntity)
        assert 0 <= r.triangle_id < 12
        with pytest.raises(dataclasses.FrozenInstanceError):
            r.distance = 0.0


# ---------------------------------------------------------------------------
# Single triangle
# ---------------------------------------------------------------------------

@open_mesh
class TestSingleTriangle:
    @pytest.fixture(autouse=True)
    def _build(self, single_triangle):
        self.tmd = TriangleMeshDistance(*single_triangle)

    def test_above_hypotenuse_midpoint(self):
        r = self.tmd.unsigned_distance([0.5, 0.5, 5.0])
        assert r.nearest_entity is NearestEntity.F
        assert r.distance == 5.0
        assert r.triangle_id == 0

    def test_signed_follows_winding(self):
        assert self.tmd.signed_distance([0.2, 0.2, 1.0]).distance == pytest.approx(1.0)
        assert self.tmd.signed_distance([0.2, 0.2, -1.0]).distance == pytest.approx(-1.0)

    @pytest.mark.parametrize("i, entity", [
        (0, NearestEntity.V0), (1, NearestEntity.V1), (2, NearestEntity.V2),
    ])
    def test_query_at_vertex(self, i, entity):
        r = self.tmd.unsigned_distance(self.tmd.vertices[i])
        assert r.distance == 0.0
        assert r.nearest_entity is entity

    def test_not_watertight(self):
        assert not self.tmd.is_watertight
        assert self.tmd.pseudonormals.boundary_edges == 3


# ---------------------------------------------------------------------------
# Open cube
# ---------------------------------------------------------------------------

class TestOpenCube:
    def setup_method(self):
        verts, tris = make_box(origin=(0.5, 0.5, 0.5))
        self.verts, self.tris = verts, tris[1:]

    def test_advisory(self):
        with pytest.warns(NonWatertightWarning) as record:
            tmd = TriangleMeshDistance(self.verts, self.tris)
        advisory = [w.message for w in record if isinstance(w.message, NonWatertightWarning)][0]
        assert advisory.boundary_edges == 3
        assert advisory.nonmanifold_edges == 0
        assert tmd.is_constructed
        assert not tmd.is_watertight

    def test_advisory_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="meshdist"):
            with pytest.warns(NonWatertightWarning):
                TriangleMeshDistance(self.verts, self.tris)
        assert "not watertight" in caplog.text

    @open_mesh
    def test_unsigned_still_exact(self):
        tmd = TriangleMeshDistance(self.verts, self.tris)
        rng = np.random.default_rng(8)
        for p in rng.uniform(-1.0, 2.0, size=(50, 3)):
            assert tmd.unsigned_distance(p).distance == pytest.approx(
                tmd.brute_force_unsigned_distance(p).distance
            )
        # Below the hole the nearest features are the rims of the side faces.
        assert tmd.unsigned_distance([0.75, 0.25, -1.0]).distance == pytest.approx(math.sqrt(1.0625))


# ---------------------------------------------------------------------------
# BVH against brute force
# ---------------------------------------------------------------------------

class TestFarPoints:
    def setup_method(self):
        self.tmd = TriangleMeshDistance(*make_box())

    @pytest.mark.parametrize("query", ["signed_distance", "unsigned_distance", "brute_force_unsigned_distance"])
    def test_overflowing_distance_raises(self, query):
        with pytest.raises(ValueError, match="too far"):
            getattr(self.tmd, query)([1e160, 0.0, 0.0])

    def test_overflowing_distance_raises_in_batch(self):
        with pytest.raises(ValueError, match="too far"):
            self.tmd.signed_distances([[0.0, 0.0, 2.0], [0.0, -1e200, 0.0]])

    @pytest.mark.parametrize("point", [[np.nan, 0.0, 0.0], [0.0, np.inf, 0.0]])
    def test_non_finite_point(self, point):
        with pytest.raises(ValueError, match="finite"):
            self.tmd.signed_distance(point)
        with pytest.raises(ValueError, match="finite"):
            self.tmd.unsigned_distances([point])

    def test_large_but_representable(self):
        p = [1e100, 0.1, 0.2]
        # Every face is equally near at this scale; only the result's validity is checked.
        r = self.tmd.unsigned_distance(p)
        assert r.distance == pytest.approx(1e100)
        assert 0 <= r.triangle_id < 12
        assert np.all(np.abs(r.nearest_point) <= 0.5 + 1e-9)
        assert self.tmd.brute_force_unsigned_distance(p).distance == pytest.approx(1e100)


class TestBruteForceEquivalence:
    @open_mesh
    def test_soup_exact_match(self):
        tmd = TriangleMeshDistance(*make_soup(120, seed=12))
        rng = np.random.default_rng(13)
        for p in rng.uniform(-1.5, 1.5, size=(200, 3)):
            fast = tmd.unsigned_distance(p)
            slow = tmd.brute_force_unsigned_distance(p)
            assert fast.distance == slow.distance
            assert fast.triangle_id == slow.triangle_id
            assert fast.nearest_entity is slow.nearest_entity
            npt.assert_array_equal(fast.nearest_point, slow.nearest_point)

    def test_sphere_distances(self, octasphere):
        tmd = TriangleMeshDistance(*octasphere)
        P = np.random.default_rng(14).uniform(-2.0, 2.0, size=(200, 3))
        for p in P:
            fast = tmd.unsigned_distance(p)
            slow = tmd.brute_force_unsigned_distance(p)
            assert fast.distance == pytest.approx(slow.distance, abs=1e-12)
            # Ties on shared features may pick another triangle at the same distance.
            tri = tuple(map(tuple, tmd.store.triangle_vertices()[fast.triangle_id].tolist()))
            d2, _, _ = _point_triangle_sq_unsigned(tuple(p.tolist()), *tri)
            assert math.sqrt(d2) == pytest.approx(slow.distance, abs=1e-12)

    def test_vectorised_brute_force(self, octasphere):
        tmd = TriangleMeshDistance(*octasphere)
        P = np.random.default_rng(15).uniform(-2.0, 2.0, size=(100, 3))
        npt.assert_allclose(tmd.brute_force_unsigned_distances(P), tmd.unsigned_distances(P), atol=1e-9)

    @open_mesh
    def test_nearest_point_on_reported_triangle(self):
        tmd = TriangleMeshDistance(*make_soup(60, seed=16))
        P = np.random.default_rng(17).uniform(-1.5, 1.5, size=(100, 3))
        tv = tmd.store.triangle_vertices()
        for p in P:
            r = tmd.unsigned_distance(p)
            tri = tuple(map(tuple, tv[r.triangle_id].tolist()))
            d2, _, _ = _point_triangle_sq_unsigned(tuple(r.nearest_point.tolist()), *tri)
            assert d2 == pytest.approx(0.0, abs=1e-12)
            assert np.linalg.norm(p - r.nearest_point) == pytest.approx(r.distance)


# ---------------------------------------------------------------------------
# Sign on a closed sphere
# ---------------------------------------------------------------------------

class TestSphereSign:
    def setup_method(self):
        self.tmd = TriangleMeshDistance(*make_octasphere(level=3))

    def test_inside_negative(self):
        P = _random_directions(100, seed=20) * np.random.default_rng(21).uniform(0.0, 0.9, size=(100, 1))
        assert np.all(self.tmd.signed_distances(P) < 0.0)

    def test_outside_positive(self):
        P = _random_directions(100, seed=22) * np.random.default_rng(23).uniform(1.05, 3.0, size=(100, 1))
        assert np.all(self.tmd.signed_distances(P) > 0.0)

    def test_magnitude_matches_unsigned(self):
        P = np.random.default_rng(24).uniform(-1.5, 1.5, size=(100, 3))
        npt.assert_array_equal(np.abs(self.tmd.signed_distances(P)), self.tmd.unsigned_distances(P))

    def test_vertex_queries(self):
        for i, v in enumerate(self.tmd.vertices):
            r = self.tmd.signed_distance(v)
            assert r.distance == 0.0
            assert r.nearest_entity.is_vertex
            assert self.tmd.triangles[r.triangle_id, r.nearest_entity.vertex_slot] == i


# ---------------------------------------------------------------------------
# Construction and errors
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_docstrings(self):
        doc = TriangleMeshDistance.__doc__
        assert "Parameters\n    ----------" in doc
        assert "Args:" not in doc
        for obj in (Result, Pseudonormals):
            assert obj.__doc__.strip().endswith(".")

    def test_not_constructed(self):
        tmd = TriangleMeshDistance()
        assert not tmd.is_constructed
        with pytest.raises(NotConstructedError):
            tmd.unsigned_distance([0, 0, 0])
        with pytest.raises(NotConstructedError):
            tmd.signed_distance([0, 0, 0])
        with pytest.raises(NotConstructedError):
            tmd.signed_distances([[0, 0, 0]])
        with pytest.raises(NotConstructedError):
            _ = tmd.bvh

    def test_not_constructed_is_runtime_error(self):
        with pytest.raises(RuntimeError):
            TriangleMeshDistance().unsigned_distance([0, 0, 0])

    def test_empty_mesh(self):
        with pytest.raises(EmptyMeshError):
            TriangleMeshDistance([[0, 0, 0], [1, 0, 0], [0, 1, 0]], [])

    def test_failed_construct_leaves_unconstructed(self, unit_cube):
        tmd = TriangleMeshDistance(*unit_cube)
        with pytest.raises(EmptyMeshError):
            tmd.construct(unit_cube[0], [])
        assert not tmd.is_constructed
        with pytest.raises(NotConstructedError):
            tmd.unsigned_distance([0, 0, 0])

    def test_invalid_index(self):
        with pytest.raises(InvalidMeshError):
            TriangleMeshDistance([[0, 0, 0], [1, 0, 0], [0, 1, 0]], [[0, 1, 5]])

    def test_vertices_without_triangles(self):
        with pytest.raises(TypeError):
            TriangleMeshDistance([[0, 0, 0]])

    def test_construct_later(self, unit_cube):
        tmd = TriangleMeshDistance()
        tmd.construct(*unit_cube)
        assert tmd.signed_distance([0.5, 0.5, 0.5]).distance == pytest.approx(-0.5)

    def test_construct_from_buffers(self, unit_cube):
        verts, tris = unit_cube
        tmd = TriangleMeshDistance()
        tmd.construct_from_buffers(verts.ravel().tolist(), 8, tris.ravel().tolist(), 12)
        assert tmd.signed_distance([0.5, 0.5, 0.5]).distance == pytest.approx(-0.5)

    def test_from_mesh(self, unit_cube):
        verts, tris = unit_cube
        tmd = TriangleMeshDistance.from_mesh(SimpleNamespace(vertices=verts, faces=tris))
        assert tmd.store.n_triangles == 12
        assert tmd.signed_distance([0.5, 0.5, 2.0]).distance == pytest.approx(1.0)

    def test_reconstruct_replaces_mesh(self, unit_cube):
        tmd = TriangleMeshDistance(*unit_cube)
        tmd.construct(*make_box(1.0, 1.0, 1.0))
        assert tmd.signed_distance([0.0, 0.0, 0.0]).distance == pytest.approx(-1.0)

    def test_point_shape(self, unit_cube):
        tmd = TriangleMeshDistance(*unit_cube)
        with pytest.raises(ValueError):
            tmd.unsigned_distance([0.0, 0.0])
        with pytest.raises(ValueError):
            tmd.unsigned_distances([[0.0, 0.0]])

    def test_repr(self, unit_cube):
        assert "not constructed" in repr(TriangleMeshDistance())
        assert "n_triangles=12" in repr(TriangleMeshDistance(*unit_cube))


@open_mesh
class TestDegenerate:
    def setup_method(self):
        verts, tris = make_box()
        # Collinear triangle hung off vertex 0.
        self.verts = np.vstack([verts, [[-0.5, -0.5, 1.5], [-0.5, -0.5, 2.5]]])
        self.tris = np.vstack([tris, [[0, 8, 9]]])

    def test_warns_by_default(self):
        with pytest.warns(DegenerateTriangleWarning):
            tmd = TriangleMeshDistance(self.verts, self.tris)
        assert tmd.is_constructed
        r = tmd.unsigned_distance([-0.5, -0.5, 2.0])
        assert r.distance == 0.0
        assert r.triangle_id == 12
        assert r.nearest_entity is NearestEntity.E12
        assert tmd.unsigned_distance([0.5, -0.5, 2.0]).distance == pytest.approx(1.0)
        assert tmd.unsigned_distance([0.0, 0.0, -3.0]).distance == pytest.approx(2.5)
        assert np.isfinite(tmd.signed_distance([0.0, 0.0, 0.0]).distance)

    def test_reject(self):
        with pytest.raises(DegenerateTriangleError) as exc:
            TriangleMeshDistance(self.verts, self.tris, reject_degenerate=True)
        assert exc.value.triangle_ids == [12]

    def test_reject_is_invalid_mesh(self):
        with pytest.raises(InvalidMeshError):
            TriangleMeshDistance(self.verts, self.tris, reject_degenerate=True)

    def test_threshold_is_relative(self):
        # A tiny but well-shaped triangle is not degenerate.
        scale = 1e-7
        verts = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float64) * scale
        tmd = TriangleMeshDistance(verts, [[0, 1, 2]], reject_degenerate=True)
        assert tmd.unsigned_distance([0.0, 0.0, 1.0]).distance == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Batch queries, threads, grid sampling
# ---------------------------------------------------------------------------

class TestBatch:
    def setup_method(self):
        self.tmd = TriangleMeshDistance(*make_box(origin=(0.5, 0.5, 0.5)))

    def test_shapes(self):
        P = np.random.default_rng(30).uniform(-1.0, 2.0, size=(2, 5, 3))
        assert self.tmd.unsigned_distances(P).shape == (2, 5)
        assert self.tmd.signed_distances(P).shape == (2, 5)
        d, nearest, ids = self.tmd.closest_points(P)
        assert d.shape == (2, 5)
        assert nearest.shape == (2, 5, 3)
        assert ids.shape == (2, 5)
        assert ids.dtype == np.int64

    def test_batch_matches_single(self):
        P = np.random.default_rng(31).uniform(-1.0, 2.0, size=(40, 3))
        signed = self.tmd.signed_distances(P)
        d, nearest, ids = self.tmd.closest_points(P)
        for k, p in enumerate(P):
            r = self.tmd.signed_distance(p)
            assert signed[k] == r.distance
            assert d[k] == abs(r.distance)
            npt.assert_array_equal(nearest[k], r.nearest_point)
            assert ids[k] == r.triangle_id

    def test_concurrent_queries(self):
        P = np.random.default_rng(32).uniform(-1.0, 2.0, size=(400, 3))
        serial = [self.tmd.signed_distance(p).distance for p in P]
        with ThreadPoolExecutor(max_workers=8) as pool:
            threaded = list(pool.map(lambda p: self.tmd.signed_distance(p).distance, P))
        assert threaded == serial


class TestGrid:
    def setup_method(self):
        self.tmd = TriangleMeshDistance(*make_box(origin=(0.5, 0.5, 0.5)))

    def test_shape_z_first(self):
        grid = sample_sdf_grid(self.tmd, ((-1, 2), (-1, 2), (-1, 2)), (4, 5, 6))
        assert grid.shape == (6, 5, 4)

    def test_cell_centres(self):
        bounds = ((-1.0, 2.0), (-1.0, 2.0), (-1.0, 2.0))
        grid = sample_sdf_grid(self.tmd, bounds, (6, 6, 6))
        xs = np.array([-0.75, -0.25, 0.25, 0.75, 1.25, 1.75])
        assert grid[2, 3, 1] == pytest.approx(self.tmd.signed_distance([xs[1], xs[3], xs[2]]).distance)
        # Inner cells are inside the cube, corner cells outside.
        assert np.all(grid[2:4, 2:4, 2:4] < 0.0)
        assert grid[0, 0, 0] > 0.0
        assert grid[5, 5, 5] > 0.0

    def test_unsigned(self):
        bounds = ((-1.0, 2.0), (-1.0, 2.0), (-1.0, 2.0))
        signed = sample_sdf_grid(self.tmd, bounds, (6, 6, 6))
        unsigned = sample_sdf_grid(self.tmd, bounds, (6, 6, 6), signed=False)
        npt.assert_array_equal(unsigned, np.abs(signed))

    def test_mesh_to_sdf(self):
        verts, tris = make_box(origin=(0.5, 0.5, 0.5))
        P = np.array([[0.5, 0.5, 0.5], [0.5, 0.5, 3.0]])
        npt.assert_allclose(mesh_to_sdf(P, verts, tris), [-0.5, 2.0])
