"""Exceptions and warnings raised by meshdist."""

from __future__ import annotations


class MeshDistanceError(Exception):
    """Base class for meshdist errors."""


class EmptyMeshError(MeshDistanceError, ValueError):
    """Construction was given an empty triangle list."""


class InvalidMeshError(MeshDistanceError, ValueError):
    """Mesh buffers are malformed or reference vertices that do not exist."""


class DegenerateTriangleError(InvalidMeshError):
    """Zero-area triangles were found and ``reject_degenerate`` is set."""

    def __init__(self, triangle_ids):
        self.triangle_ids = list(triangle_ids)
        shown = ", ".join(str(i) for i in self.triangle_ids[:8])
        more = "" if len(self.triangle_ids) <= 8 else ", ..."
        super().__init__(
            f"{len(self.triangle_ids)} degenerate (zero-area) triangle(s): [{shown}{more}]"
        )


class NotConstructedError(MeshDistanceError, RuntimeError):
    """A query was issued before construction completed."""


class NonWatertightWarning(UserWarning):
    """The mesh has boundary or non-manifold edges; signed distances are unreliable."""

    def __init__(self, boundary_edges: int, nonmanifold_edges: int):
        self.boundary_edges = boundary_edges
        self.nonmanifold_edges = nonmanifold_edges
        parts = []
        if boundary_edges:
            parts.append(f"{boundary_edges} edge(s) belong to just one triangle")
        if nonmanifold_edges:
            parts.append(f"{nonmanifold_edges} edge(s) belong to more than two triangles")
        super().__init__("mesh is not watertight: " + "; ".join(parts))


class DegenerateTriangleWarning(UserWarning):
    """Zero-area triangles were found; their face normals are zero."""
