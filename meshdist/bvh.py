"""Bounding-sphere hierarchy over the triangles of a :class:`TriangleStore`.

Build
-----
Median split: at every internal node the triangles in range are sorted by
the first vertex's coordinate along the longest axis of their AABB and
split at the middle index.  Depth is O(log F).  Each node stores the
exact enclosing spheres of both children (centre = mean of the vertices
in range, radius = distance to the farthest of them); a leaf holds one
triangle.

Nodes live in a flat, append-only arena and refer to each other by index.
The root is node 0.

Query
-----
Branch and bound.  At an internal node the child whose sphere surface is
nearer is visited first; a child is skipped when its surface distance is
not smaller than the best distance so far.  The search state is local to
the call, so concurrent queries need no locking.
"""

from __future__ import annotations

import logging
import math
from typing import Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from ._math import _dot2, _point_triangle_sq_unsigned
from .mesh import TriangleStore
from .types import BoundingSphere, NearestEntity

logger = logging.getLogger(__name__)

_Vec3 = Tuple[float, float, float]
_Hit = Tuple[float, _Vec3, Optional[NearestEntity], int]


class _Node(NamedTuple):
    left: int                            # -1 for a leaf
    right: int                           # child index, or triangle id for a leaf
    bv_left: Optional[BoundingSphere]
    bv_right: Optional[BoundingSphere]

    @property
    def is_leaf(self) -> bool:
        return self.left == -1


def _as_tuple(v) -> _Vec3:
    return (float(v[0]), float(v[1]), float(v[2]))


class BVH:
    """Sphere tree over a triangle store.  Built once, read-only afterwards."""

    def __init__(self, store: TriangleStore):
        tv = store.triangle_vertices()
        self._tri_verts: Tuple[Tuple[_Vec3, _Vec3, _Vec3], ...] = tuple(
            (tuple(t[0]), tuple(t[1]), tuple(t[2])) for t in tv.tolist()
        )

        arena: List[Optional[_Node]] = [None]
        order = np.arange(len(tv))
        self.root_sphere = self._build(arena, 0, tv, order, 0, len(tv))
        self._nodes: Tuple[_Node, ...] = tuple(arena)  # type: ignore[arg-type]

        logger.debug(
            "BVH built: %d triangles, %d nodes, depth %d",
            len(tv), len(self._nodes), self.depth,
        )

    # ==================== Build ====================

    def _build(
        self,
        arena: List[Optional[_Node]],
        node_id: int,
        tv: np.ndarray,
        order: np.ndarray,
        begin: int,
        end: int,
    ) -> BoundingSphere:
        """Fill ``arena[node_id]`` for ``order[begin:end]``; return its bounding sphere."""
        n = end - begin
        if n == 1:
            tri_id = int(order[begin])
            tri = tv[tri_id]
            center = (tri[0] + tri[1] + tri[2]) / 3.0
            radius = float(np.sqrt(_dot2(tri - center).max()))
            arena[node_id] = _Node(-1, tri_id, None, None)
            return BoundingSphere(_as_tuple(center), radius)

        ids = order[begin:end]
        pts = tv[ids].reshape(-1, 3)
        top = pts.max(axis=0)
        bottom = pts.min(axis=0)
        center = pts.sum(axis=0) / (3 * n)
        split_dim = int(np.argmax(top - bottom))
        radius = float(np.sqrt(_dot2(pts - center).max()))

        order[begin:end] = ids[np.argsort(tv[ids, 0, split_dim], kind="stable")]
        mid = int(0.5 * (begin + end))

        left = len(arena)
        arena.append(None)
        bv_left = self._build(arena, left, tv, order, begin, mid)

        right = len(arena)
        arena.append(None)
        bv_right = self._build(arena, right, tv, order, mid, end)

        arena[node_id] = _Node(left, right, bv_left, bv_right)
        return BoundingSphere(_as_tuple(center), radius)

    # ==================== Query ====================

    def query(self, point: _Vec3) -> _Hit:
        """Nearest triangle to *point*.

        Returns
        -------
        tuple
            ``(distance, nearest_point, nearest_entity, triangle_id)``.
        """
        best: List = [math.inf, None, None, -1]
        self._query(best, 0, _as_tuple(point))
        return best[0], best[1], best[2], best[3]

    def _query(self, best: List, node_id: int, point: _Vec3) -> None:
        node = self._nodes[node_id]

        if node.left == -1:
            tri_id = node.right
            v0, v1, v2 = self._tri_verts[tri_id]
            d2, nearest, entity = _point_triangle_sq_unsigned(point, v0, v1, v2)
            # First leaf always taken; d2 may overflow to inf.
            if best[3] < 0 or d2 < best[0] * best[0]:
                best[0] = math.sqrt(d2)
                best[1] = nearest
                best[2] = entity
                best[3] = tri_id
            return

        d_left = math.dist(point, node.bv_left.center) - node.bv_left.radius
        d_right = math.dist(point, node.bv_right.center) - node.bv_right.radius

        if d_left < d_right:
            if d_left < best[0]:
                self._query(best, node.left, point)
            if d_right < best[0]:
                self._query(best, node.right, point)
        else:
            if d_right < best[0]:
                self._query(best, node.right, point)
            if d_left < best[0]:
                self._query(best, node.left, point)

    # ==================== Introspection ====================

    @property
    def nodes(self) -> Tuple[_Node, ...]:
        return self._nodes

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    @property
    def n_leaves(self) -> int:
        return sum(1 for node in self._nodes if node.is_leaf)

    @property
    def depth(self) -> int:
        """Number of edges on the longest root-to-leaf path."""
        deepest = 0
        stack = [(0, 0)]
        while stack:
            node_id, d = stack.pop()
            node = self._nodes[node_id]
            if node.is_leaf:
                deepest = max(deepest, d)
            else:
                stack.append((node.left, d + 1))
                stack.append((node.right, d + 1))
        return deepest

    def subtree_triangles(self, node_id: int) -> Iterator[int]:
        """Ids of all triangles below *node_id*."""
        stack = [node_id]
        while stack:
            node = self._nodes[stack.pop()]
            if node.is_leaf:
                yield node.right
            else:
                stack.append(node.right)
                stack.append(node.left)

    def spheres(self) -> Iterator[Tuple[int, BoundingSphere]]:
        """``(node_id, bounding_sphere)`` for every node, starting with the root."""
        yield 0, self.root_sphere
        for node in self._nodes:
            if not node.is_leaf:
                yield node.left, node.bv_left
                yield node.right, node.bv_right
