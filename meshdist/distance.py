"""Signed and unsigned distance from points to a triangle mesh.

Sign convention: negative inside, zero on the surface, positive outside,
for meshes whose triangles wind counter-clockwise seen from outside.

Construction builds three immutable pieces from the input mesh: the
:class:`~meshdist.mesh.TriangleStore`, the
:class:`~meshdist.bvh.BVH` and the
:class:`~meshdist.pseudonormals.Pseudonormals` tables.  Queries only read
them, so one :class:`TriangleMeshDistance` may be shared by any number of
threads once construction has returned.

Watertight requirement
----------------------
The sign is only reliable when every edge is shared by exactly two
triangles.  Meshes with boundary or non-manifold edges still construct,
with a :class:`~meshdist.errors.NonWatertightWarning`; unsigned distances
are exact either way.
"""

from __future__ import annotations

import logging
import math
import warnings
from typing import Any, Optional, Tuple

import numpy as np
import numpy.typing as npt

from ._math import _brute_force_sq_dist, _point_triangle_sq_unsigned
from .bvh import BVH
from .errors import (
    DegenerateTriangleError,
    DegenerateTriangleWarning,
    NonWatertightWarning,
    NotConstructedError,
)
from .mesh import TriangleStore
from .pseudonormals import Pseudonormals, compute_pseudonormals
from .types import NearestEntity, Result

_F = npt.NDArray[np.floating]
_I = npt.NDArray[np.integer]
_Bounds3D = Tuple[Tuple[float, float], Tuple[float, float], Tuple[float, float]]
_Resolution3D = Tuple[int, int, int]

logger = logging.getLogger(__name__)


class TriangleMeshDistance:
    """Distance queries against a fixed triangle mesh.

    Parameters
    ----------
    vertices:
        ``(V, 3)`` vertex coordinates.  Optional; see :meth:`construct`.
    triangles:
        ``(F, 3)`` vertex indices per triangle.
    reject_degenerate:
        Raise :class:`DegenerateTriangleError` on zero-area triangles
        instead of warning.
    degenerate_eps:
        Relative area threshold for degenerate triangles.

    Created without a mesh, the object stays unconstructed and every query
    raises :class:`NotConstructedError` until a ``construct*`` call succeeds.
    """

    def __init__(
        self,
        vertices: Optional[npt.ArrayLike] = None,
        triangles: Optional[npt.ArrayLike] = None,
        *,
        reject_degenerate: bool = False,
        degenerate_eps: float = 1e-12,
    ):
        self.reject_degenerate = reject_degenerate
        self.degenerate_eps = degenerate_eps

        self._store: Optional[TriangleStore] = None
        self._bvh: Optional[BVH] = None
        self._pseudonormals: Optional[Pseudonormals] = None

        if vertices is not None or triangles is not None:
            if vertices is None or triangles is None:
                raise TypeError("vertices and triangles must be given together")
            self.construct(vertices, triangles)

    # ==================== Construction ====================

    def construct(self, vertices: npt.ArrayLike, triangles: npt.ArrayLike) -> None:
        """(Re)build from ``[V, 3]`` vertices and ``[F, 3]`` triangle indices."""
        self._reset()
        self._construct(TriangleStore.from_sequences(vertices, triangles))

    def construct_from_buffers(
        self,
        vertices: npt.ArrayLike,
        n_vertices: int,
        triangles: npt.ArrayLike,
        n_triangles: int,
    ) -> None:
        """(Re)build from flat ``xyzxyz…`` and ``ijkijk…`` buffers."""
        self._reset()
        self._construct(
            TriangleStore.from_buffers(vertices, n_vertices, triangles, n_triangles)
        )

    @classmethod
    def from_mesh(cls, mesh: Any, **kwargs) -> "TriangleMeshDistance":
        """Build from a mesh object exposing ``vertices``/``faces``."""
        tmd = cls(**kwargs)
        tmd._construct(TriangleStore.from_mesh(mesh))
        return tmd

    def _reset(self) -> None:
        self._store = self._bvh = self._pseudonormals = None

    def _construct(self, store: TriangleStore) -> None:
        # Not safe to run concurrently with queries; a failure leaves the
        # object unconstructed.
        self._reset()

        degenerate = store.degenerate_triangles(self.degenerate_eps)
        if len(degenerate):
            if self.reject_degenerate:
                raise DegenerateTriangleError(degenerate.tolist())
            logger.warning("%d degenerate triangle(s) in mesh", len(degenerate))
            warnings.warn(
                f"{len(degenerate)} degenerate (zero-area) triangle(s); "
                "their face normals are zero",
                DegenerateTriangleWarning,
                stacklevel=3,
            )

        bvh = BVH(store)
        pseudonormals = compute_pseudonormals(store)

        if not pseudonormals.watertight:
            advisory = NonWatertightWarning(
                pseudonormals.boundary_edges, pseudonormals.nonmanifold_edges
            )
            logger.warning("%s", advisory)
            warnings.warn(advisory, stacklevel=3)

        self._store, self._bvh, self._pseudonormals = store, bvh, pseudonormals
        logger.debug(
            "constructed: %d vertices, %d triangles, %d BVH nodes",
            store.n_vertices, store.n_triangles, bvh.n_nodes,
        )

    # ==================== Properties ====================

    @property
    def is_constructed(self) -> bool:
        return self._store is not None

    def _require(self) -> TriangleStore:
        if self._store is None:
            raise NotConstructedError("TriangleMeshDistance is not constructed.")
        return self._store

    @property
    def store(self) -> TriangleStore:
        return self._require()

    @property
    def vertices(self) -> _F:
        return self._require().vertices

    @property
    def triangles(self) -> _I:
        return self._require().triangles

    @property
    def bvh(self) -> BVH:
        self._require()
        return self._bvh

    @property
    def pseudonormals(self) -> Pseudonormals:
        self._require()
        return self._pseudonormals

    @property
    def is_watertight(self) -> bool:
        self._require()
        return self._pseudonormals.watertight

    def __repr__(self) -> str:
        if self._store is None:
            return "TriangleMeshDistance(<not constructed>)"
        return (
            f"TriangleMeshDistance(n_vertices={self._store.n_vertices}, "
            f"n_triangles={self._store.n_triangles})"
        )

    # ==================== Single-point queries ====================

    def unsigned_distance(self, point: npt.ArrayLike) -> Result:
        """Unsigned distance, nearest point, entity and triangle id for *point*."""
        self._require()
        p = _point3(point)
        distance, nearest, entity, tri_id = self._nearest(p)
        return Result(distance, np.array(nearest), entity, tri_id)

    def signed_distance(self, point: npt.ArrayLike) -> Result:
        """Like :meth:`unsigned_distance`, negative when *point* is inside."""
        store = self._require()
        p = _point3(point)
        distance, nearest, entity, tri_id = self._nearest(p)
        n = self._pseudonormal(store, entity, tri_id)
        u0, u1, u2 = p[0] - nearest[0], p[1] - nearest[1], p[2] - nearest[2]
        if u0 * n[0] + u1 * n[1] + u2 * n[2] < 0.0:
            distance = -distance
        return Result(distance, np.array(nearest), entity, tri_id)

    def _nearest(self, p: Tuple[float, float, float]):
        hit = self._bvh.query(p)
        if hit[3] < 0 or not math.isfinite(hit[0]):
            raise ValueError(
                f"point {p} is too far from the mesh: squared distance overflows float64"
            )
        return hit

    def _pseudonormal(self, store: TriangleStore, entity: NearestEntity, tri_id: int) -> _F:
        pn = self._pseudonormals
        if entity.is_vertex:
            return pn.vertices[store.triangles[tri_id, entity.vertex_slot]]
        if entity.is_edge:
            return pn.edges[tri_id, entity.edge_slot]
        return pn.faces[tri_id]

    def brute_force_unsigned_distance(self, point: npt.ArrayLike) -> Result:
        """:meth:`unsigned_distance` without the BVH: every triangle is tested."""
        store = self._require()
        p = _point3(point)
        best_d2, best = math.inf, None
        for tri_id, (v0, v1, v2) in enumerate(store.triangle_vertices().tolist()):
            d2, nearest, entity = _point_triangle_sq_unsigned(p, v0, v1, v2)
            if best is None or d2 < best_d2:
                best_d2, best = d2, (nearest, entity, tri_id)
        if not math.isfinite(best_d2):
            raise ValueError(
                f"point {p} is too far from the mesh: squared distance overflows float64"
            )
        nearest, entity, tri_id = best
        return Result(math.sqrt(best_d2), np.array(nearest), entity, tri_id)

    # ==================== Batch queries ====================

    def unsigned_distances(self, points: npt.ArrayLike) -> _F:
        """Unsigned distances for ``(..., 3)`` points; shape ``points.shape[:-1]``."""
        self._require()
        flat, shape = _points3(points)
        query = self._nearest
        return np.array([query(p)[0] for p in flat], dtype=np.float64).reshape(shape)

    def signed_distances(self, points: npt.ArrayLike) -> _F:
        """Signed distances for ``(..., 3)`` points; shape ``points.shape[:-1]``."""
        self._require()
        flat, shape = _points3(points)
        return np.array(
            [self.signed_distance(p).distance for p in flat], dtype=np.float64
        ).reshape(shape)

    def closest_points(self, points: npt.ArrayLike) -> Tuple[_F, _F, _I]:
        """Unsigned distances, nearest points and triangle ids for ``(..., 3)`` points."""
        self._require()
        flat, shape = _points3(points)
        hits = [self._nearest(p) for p in flat]
        distances = np.array([h[0] for h in hits], dtype=np.float64).reshape(shape)
        nearest = np.array([h[1] for h in hits], dtype=np.float64).reshape(shape + (3,))
        tri_ids = np.array([h[3] for h in hits], dtype=np.int64).reshape(shape)
        return distances, nearest, tri_ids

    def brute_force_unsigned_distances(self, points: npt.ArrayLike) -> _F:
        """Vectorised O(F × N) unsigned distances, for validating the BVH."""
        store = self._require()
        flat, shape = _points3(points)
        P = np.asarray(flat, dtype=np.float64).reshape(-1, 3)
        sq = _brute_force_sq_dist(P, store.triangle_vertices())
        return np.sqrt(sq).reshape(shape)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _point3(point: npt.ArrayLike) -> Tuple[float, float, float]:
    p = np.asarray(point, dtype=np.float64).reshape(-1)
    if p.shape != (3,):
        raise ValueError(f"point must have 3 coordinates, got shape {np.shape(point)}")
    if not np.all(np.isfinite(p)):
        raise ValueError(f"point coordinates must be finite, got {p.tolist()}")
    return (float(p[0]), float(p[1]), float(p[2]))


def _points3(points: npt.ArrayLike):
    P = np.asarray(points, dtype=np.float64)
    if P.ndim == 0 or P.shape[-1] != 3:
        raise ValueError(f"points must have shape (..., 3), got {P.shape}")
    if not np.all(np.isfinite(P)):
        raise ValueError("point coordinates must be finite")
    return P.reshape(-1, 3).tolist(), P.shape[:-1]


# ---------------------------------------------------------------------------
# Grid sampling and one-shot helpers
# ---------------------------------------------------------------------------

def sample_sdf_grid(
    distance: TriangleMeshDistance,
    bounds: _Bounds3D,
    resolution: _Resolution3D,
    *,
    signed: bool = True,
) -> _F:
    """Sample *distance* on a uniform cell-centred grid.

    Parameters
    ----------
    distance:
        A constructed :class:`TriangleMeshDistance`.
    bounds:
        ``((x0, x1), (y0, y1), (z0, z1))`` physical extents of the domain.
    resolution:
        ``(nx, ny, nz)`` number of cells along each axis.
    signed:
        Sample signed (default) or unsigned distance.

    Returns
    -------
    numpy.ndarray
        Shape ``(nz, ny, nx)``, z-first indexing.
    """
    (x0, x1), (y0, y1), (z0, z1) = bounds
    nx, ny, nz = resolution

    xs = np.linspace(x0, x1, nx, endpoint=False) + (x1 - x0) / (2.0 * nx)
    ys = np.linspace(y0, y1, ny, endpoint=False) + (y1 - y0) / (2.0 * ny)
    zs = np.linspace(z0, z1, nz, endpoint=False) + (z1 - z0) / (2.0 * nz)

    Z, Y, X = np.meshgrid(zs, ys, xs, indexing="ij")
    P = np.stack([X, Y, Z], axis=-1)
    if signed:
        return distance.signed_distances(P)
    return distance.unsigned_distances(P)


def mesh_to_sdf(
    points: npt.ArrayLike,
    vertices: npt.ArrayLike,
    triangles: npt.ArrayLike,
) -> _F:
    """Signed distances of ``(..., 3)`` *points* to an indexed triangle mesh.

    Builds a :class:`TriangleMeshDistance` for the call; keep one around
    instead when querying the same mesh repeatedly.
    """
    return TriangleMeshDistance(vertices, triangles).signed_distances(points)
