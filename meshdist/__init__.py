"""meshdist: point-to-triangle-mesh distance (numpy).

Builds a bounding-sphere hierarchy over a fixed triangle mesh once, then
answers closest-point queries: unsigned distance, nearest point, nearest
triangle feature, and a signed distance from angle-weighted pseudonormals.

Quick start
-----------
>>> import numpy as np
>>> from meshdist import TriangleMeshDistance
>>> verts = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
>>> tmd = TriangleMeshDistance(verts, [[0, 1, 2]])
>>> r = tmd.unsigned_distance([0.5, 0.5, 5.0])
>>> r.distance, r.nearest_entity
(5.0, <NearestEntity.F: 'F'>)

Watertight requirement
----------------------
Sign determination uses pseudonormals (Bærentzen & Aanæs).  The result is
only correct for **watertight** (closed, 2-manifold), consistently wound
meshes.  Open or non-manifold meshes construct with a
:class:`NonWatertightWarning`; their unsigned distances are still exact.

Thread safety
-------------
Construction must finish before querying.  After that the object is
read-only and may be queried from many threads at once.
"""

from .bvh import BVH
from .distance import TriangleMeshDistance, mesh_to_sdf, sample_sdf_grid
from .errors import (
    DegenerateTriangleError,
    DegenerateTriangleWarning,
    EmptyMeshError,
    InvalidMeshError,
    MeshDistanceError,
    NonWatertightWarning,
    NotConstructedError,
)
from .io import load_stl, load_stl_triangles, weld_triangles
from .mesh import TriangleStore
from .pseudonormals import Pseudonormals, compute_pseudonormals
from .types import BoundingSphere, NearestEntity, Result

__version__ = "0.1.0"

__all__ = [
    # Distance queries
    "TriangleMeshDistance",
    "Result",
    "NearestEntity",
    "mesh_to_sdf",
    "sample_sdf_grid",

    # Building blocks
    "TriangleStore",
    "BVH",
    "BoundingSphere",
    "Pseudonormals",
    "compute_pseudonormals",

    # STL boundary
    "load_stl",
    "load_stl_triangles",
    "weld_triangles",

    # Errors and advisories
    "MeshDistanceError",
    "EmptyMeshError",
    "InvalidMeshError",
    "DegenerateTriangleError",
    "NotConstructedError",
    "NonWatertightWarning",
    "DegenerateTriangleWarning",
]
