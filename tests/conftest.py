"""Shared meshes for the meshdist tests."""
from __future__ import annotations

import numpy as np
import pytest


def make_box(hx: float = 0.5, hy: float = 0.5, hz: float = 0.5, origin=(0.0, 0.0, 0.0)):
    """12-triangle watertight box with outward winding; returns (vertices, triangles)."""
    verts = np.array([
        [-hx, -hy, -hz], [ hx, -hy, -hz], [ hx,  hy, -hz], [-hx,  hy, -hz],
        [-hx, -hy,  hz], [ hx, -hy,  hz], [ hx,  hy,  hz], [-hx,  hy,  hz],
    ], dtype=np.float64) + np.asarray(origin, dtype=np.float64)
    tris = np.array([
        (0, 2, 1), (0, 3, 2),   # -Z
        (4, 5, 6), (4, 6, 7),   # +Z
        (0, 4, 7), (0, 7, 3),   # -X
        (1, 2, 6), (1, 6, 5),   # +X
        (0, 1, 5), (0, 5, 4),   # -Y
        (3, 7, 6), (3, 6, 2),   # +Y
    ], dtype=np.int64)
    return verts, tris


def make_octasphere(level: int = 2):
    """Subdivided octahedron projected on the unit sphere (watertight, outward)."""
    verts = [
        (1.0, 0.0, 0.0), (-1.0, 0.0, 0.0), (0.0, 1.0, 0.0),
        (0.0, -1.0, 0.0), (0.0, 0.0, 1.0), (0.0, 0.0, -1.0),
    ]
    tris = [
        (0, 2, 4), (2, 1, 4), (1, 3, 4), (3, 0, 4),
        (2, 0, 5), (1, 2, 5), (3, 1, 5), (0, 3, 5),
    ]
    for _ in range(level):
        cache = {}

        def midpoint(i, j):
            key = (min(i, j), max(i, j))
            if key not in cache:
                m = np.add(verts[i], verts[j]) / 2.0
                verts.append(tuple(m / np.linalg.norm(m)))
                cache[key] = len(verts) - 1
            return cache[key]

        refined = []
        for a, b, c in tris:
            ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
            refined += [(a, ab, ca), (ab, b, bc), (ca, bc, c), (ab, bc, ca)]
        tris = refined
    return np.array(verts, dtype=np.float64), np.array(tris, dtype=np.int64)


def make_soup(n_triangles: int, seed: int = 0):
    """Random, unconnected triangles: every triangle owns its three vertices."""
    rng = np.random.default_rng(seed)
    verts = rng.uniform(-1.0, 1.0, size=(3 * n_triangles, 3))
    tris = np.arange(3 * n_triangles, dtype=np.int64).reshape(-1, 3)
    return verts, tris


@pytest.fixture
def unit_cube():
    """The cube [0, 1]^3."""
    return make_box(origin=(0.5, 0.5, 0.5))


@pytest.fixture
def single_triangle():
    verts = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float64)
    return verts, np.array([[0, 1, 2]], dtype=np.int64)


@pytest.fixture
def octasphere():
    return make_octasphere(level=2)
