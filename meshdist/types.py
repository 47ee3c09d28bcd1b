"""Value types shared by the distance engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import NamedTuple, Tuple

import numpy as np

_Vec3 = Tuple[float, float, float]


class NearestEntity(enum.Enum):
    """Triangle feature that holds the closest point of a query."""

    V0 = "V0"
    V1 = "V1"
    V2 = "V2"
    E01 = "E01"
    E12 = "E12"
    E02 = "E02"
    F = "F"

    @property
    def is_vertex(self) -> bool:
        return self in (NearestEntity.V0, NearestEntity.V1, NearestEntity.V2)

    @property
    def is_edge(self) -> bool:
        return self in (NearestEntity.E01, NearestEntity.E12, NearestEntity.E02)

    @property
    def is_face(self) -> bool:
        return self is NearestEntity.F

    @property
    def vertex_slot(self) -> int:
        """Local vertex index (0, 1, 2) for V0/V1/V2."""
        return _VERTEX_SLOTS[self]

    @property
    def edge_slot(self) -> int:
        """Local edge index for E01/E12/E02, matching the edge pseudonormal table."""
        return _EDGE_SLOTS[self]


_VERTEX_SLOTS = {NearestEntity.V0: 0, NearestEntity.V1: 1, NearestEntity.V2: 2}
_EDGE_SLOTS = {NearestEntity.E01: 0, NearestEntity.E12: 1, NearestEntity.E02: 2}


class BoundingSphere(NamedTuple):
    """Exact enclosing sphere of a BVH subtree."""
    center: _Vec3
    radius: float


@dataclass(frozen=True)
class Result:
    """Closest-point query result."""
    distance: float                 # unsigned, or signed for signed queries
    nearest_point: np.ndarray       # [3] float64 point on the mesh
    nearest_entity: NearestEntity   # feature of the triangle holding nearest_point
    triangle_id: int                # index into the original triangle array
