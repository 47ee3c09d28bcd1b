"""Angle-weighted pseudonormals for inside/outside classification.

Bærentzen & Aanæs, "Signed distance computation using the angle weighted
pseudonormal" (2005).  For a closest point on a face, edge or vertex the
sign of ``(P - nearest) · n`` is reliable when ``n`` is

* the face normal, for face-interior closest points;
* the normalised sum of the (two) adjacent face normals, for edges;
* the incident-angle-weighted sum of face normals, for vertices.

The tables are computed once, vectorised over all triangles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ._math import _dot, _normalize
from .mesh import TriangleStore

_F = npt.NDArray[np.floating]

logger = logging.getLogger(__name__)

# Corner k of a triangle sits between the edges to these two other corners.
_CORNER_NEIGHBOURS = ((1, 2), (0, 2), (1, 0))


@dataclass(frozen=True)
class Pseudonormals:
    """Pseudonormal tables."""
    faces: _F                # [F, 3] unit face normals
    vertices: _F             # [V, 3] unit angle-weighted vertex normals
    edges: _F                # [F, 3, 3] unit edge normals; slots E01, E12, E02
    boundary_edges: int      # edges referenced by exactly one triangle
    nonmanifold_edges: int   # edges referenced by more than two triangles

    @property
    def watertight(self) -> bool:
        return self.boundary_edges == 0 and self.nonmanifold_edges == 0


def compute_pseudonormals(store: TriangleStore) -> Pseudonormals:
    """Compute face, vertex and edge pseudonormals of *store*.

    Unreferenced vertices and zero-area triangles get zero normals.
    """
    tv = store.triangle_vertices()                       # (F, 3, 3)
    a, b, c = tv[:, 0], tv[:, 1], tv[:, 2]
    face_n = _normalize(np.cross(b - a, c - a))          # (F, 3)

    # Vertices: accumulate incident angle * face normal.
    vertex_n = np.zeros((store.n_vertices, 3), dtype=np.float64)
    for k, (i, j) in enumerate(_CORNER_NEIGHBOURS):
        u = _normalize(tv[:, i] - tv[:, k])
        w = _normalize(tv[:, j] - tv[:, k])
        alpha = np.arccos(np.clip(_dot(u, w), -1.0, 1.0))
        np.add.at(vertex_n, store.triangles[:, k], alpha[:, None] * face_n)
    vertex_n = _normalize(vertex_n)

    # Edges: sum the normals of every triangle sharing the undirected edge.
    keys = store.edge_keys().reshape(-1)                 # (3F,)
    uniq, inverse, counts = np.unique(keys, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    sums = np.zeros((len(uniq), 3), dtype=np.float64)
    np.add.at(sums, inverse, np.repeat(face_n, 3, axis=0))
    edge_n = _normalize(sums[inverse]).reshape(-1, 3, 3)

    boundary = int(np.count_nonzero(counts == 1))
    nonmanifold = int(np.count_nonzero(counts > 2))
    logger.debug(
        "pseudonormals: %d edges, %d boundary, %d non-manifold",
        len(uniq), boundary, nonmanifold,
    )

    for arr in (face_n, vertex_n, edge_n):
        arr.flags.writeable = False
    return Pseudonormals(
        faces=face_n,
        vertices=vertex_n,
        edges=edge_n,
        boundary_edges=boundary,
        nonmanifold_edges=nonmanifold,
    )
