"""Triangle store: the immutable ground-truth geometry of a distance query.

A :class:`TriangleStore` holds a ``(V, 3)`` float64 vertex array and a
``(F, 3)`` int64 triangle array.  Both are read-only once built.  Three
equivalent inputs are accepted:

* flat ``xyzxyz…`` / ``ijkijk…`` buffers with explicit counts
  (:meth:`TriangleStore.from_buffers`);
* sequences of 3-vectors and 3-int tuples
  (:meth:`TriangleStore.from_sequences`);
* an external mesh object (:meth:`TriangleStore.from_mesh`).
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import numpy.typing as npt

from ._math import _length
from .errors import EmptyMeshError, InvalidMeshError

_F = npt.NDArray[np.floating]
_I = npt.NDArray[np.integer]


def _readonly(a: np.ndarray) -> np.ndarray:
    a.flags.writeable = False
    return a


class TriangleStore:
    """Immutable vertex positions and triangle vertex-index triples."""

    __slots__ = ("_vertices", "_triangles")

    def __init__(self, vertices: npt.ArrayLike, triangles: npt.ArrayLike):
        try:
            V = np.array(vertices, dtype=np.float64)
            T = np.asarray(triangles)
        except (TypeError, ValueError) as exc:
            raise InvalidMeshError(f"mesh buffers are not rectangular arrays: {exc}") from exc

        if T.size == 0:
            raise EmptyMeshError("Empty triangle list.")
        if V.ndim != 2 or V.shape[1] != 3:
            raise InvalidMeshError(f"vertices must have shape (V, 3), got {V.shape}")
        if T.ndim != 2 or T.shape[1] != 3:
            raise InvalidMeshError(f"triangles must have shape (F, 3), got {T.shape}")
        if not np.issubdtype(T.dtype, np.integer):
            if not np.all(np.equal(np.mod(T, 1), 0)):
                raise InvalidMeshError("triangle indices must be integers")
        T = T.astype(np.int64)
        if not np.all(np.isfinite(V)):
            raise InvalidMeshError("vertex coordinates must be finite")

        lo, hi = int(T.min()), int(T.max())
        if lo < 0 or hi >= len(V):
            raise InvalidMeshError(
                f"triangle indices must lie in [0, {len(V) - 1}], got [{lo}, {hi}]"
            )

        self._vertices = _readonly(V)
        self._triangles = _readonly(np.ascontiguousarray(T))

    # ==================== Construction forms ====================

    @classmethod
    def from_buffers(
        cls,
        vertices: npt.ArrayLike,
        n_vertices: int,
        triangles: npt.ArrayLike,
        n_triangles: int,
    ) -> "TriangleStore":
        """Build from flat interleaved buffers with explicit counts.

        Only the first ``3 * n_vertices`` coordinates and ``3 * n_triangles``
        indices are read.
        """
        flat_v = np.asarray(vertices).reshape(-1)
        flat_t = np.asarray(triangles).reshape(-1)
        if n_triangles == 0:
            raise EmptyMeshError("Empty triangle list.")
        if len(flat_v) < 3 * n_vertices:
            raise InvalidMeshError(
                f"vertex buffer holds {len(flat_v)} values, need {3 * n_vertices}"
            )
        if len(flat_t) < 3 * n_triangles:
            raise InvalidMeshError(
                f"triangle buffer holds {len(flat_t)} values, need {3 * n_triangles}"
            )
        return cls(
            flat_v[: 3 * n_vertices].reshape(n_vertices, 3),
            flat_t[: 3 * n_triangles].reshape(n_triangles, 3),
        )

    @classmethod
    def from_sequences(
        cls,
        vertices: Sequence[Sequence[float]],
        triangles: Sequence[Sequence[int]],
    ) -> "TriangleStore":
        """Build from ordered sequences of 3-vectors and 3-int tuples."""
        if len(triangles) == 0:
            raise EmptyMeshError("Empty triangle list.")
        return cls(vertices, triangles)

    @classmethod
    def from_mesh(cls, mesh: Any) -> "TriangleStore":
        """Convert an external mesh object.

        Accepts objects exposing ``vertices`` and ``faces`` (e.g.
        ``trimesh.Trimesh``) or ``vertex_data()`` and ``face_data()``.
        """
        if hasattr(mesh, "vertices") and hasattr(mesh, "faces"):
            return cls.from_sequences(mesh.vertices, mesh.faces)
        if callable(getattr(mesh, "vertex_data", None)) and callable(getattr(mesh, "face_data", None)):
            return cls.from_sequences(mesh.vertex_data(), mesh.face_data())
        raise TypeError(
            f"{type(mesh).__name__} has neither vertices/faces nor vertex_data()/face_data()"
        )

    # ==================== Properties ====================

    @property
    def vertices(self) -> _F:
        return self._vertices

    @property
    def triangles(self) -> _I:
        return self._triangles

    @property
    def n_vertices(self) -> int:
        return len(self._vertices)

    @property
    def n_triangles(self) -> int:
        return len(self._triangles)

    def __len__(self) -> int:
        return len(self._triangles)

    def __repr__(self) -> str:
        return f"TriangleStore(n_vertices={self.n_vertices}, n_triangles={self.n_triangles})"

    # ==================== Derived data ====================

    def triangle_vertices(self) -> _F:
        """Per-triangle vertex positions, shape ``(F, 3, 3)``."""
        return self._vertices[self._triangles]

    def bounds(self) -> _F:
        """Axis-aligned bounds ``[[min_xyz], [max_xyz]]`` of the referenced vertices."""
        used = self._vertices[np.unique(self._triangles)]
        return np.stack([used.min(axis=0), used.max(axis=0)])

    def degenerate_triangles(self, eps: float = 1e-12) -> _I:
        """Ids of triangles with ``|(b-a) x (c-a)| <= eps * longest_edge²``."""
        tv = self.triangle_vertices()
        a, b, c = tv[:, 0], tv[:, 1], tv[:, 2]
        area2 = _length(np.cross(b - a, c - a))
        longest = np.max(
            np.stack([_length(b - a), _length(c - b), _length(a - c)], axis=-1), axis=-1
        )
        return np.flatnonzero(area2 <= eps * longest * longest)

    def edge_keys(self) -> _I:
        """Undirected edge keys ``min(i,j) * V + max(i,j)``, shape ``(F, 3)``.

        Column order is edge (0,1), edge (1,2), edge (0,2).
        """
        T = self._triangles
        i = T[:, [0, 1, 0]]
        j = T[:, [1, 2, 2]]
        return np.minimum(i, j) * self.n_vertices + np.maximum(i, j)
