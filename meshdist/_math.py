"""Internal geometry math for triangle meshes.

All symbols here are private (underscore-prefixed).  Users should import
only from :mod:`meshdist` or :mod:`meshdist.distance`.

Algorithms
----------
Point-triangle closest point: quadratic-form region classification
    (Eberly / Ericson).  The squared distance ``|v0 + s*e0 + t*e1 - P|²`` is
    minimised over the triangle's parameter domain.  The signs of ``s``,
    ``t`` and ``s + t - det`` select one of seven regions (3 vertices,
    3 edges, interior).  The comparisons are kept exactly as written;
    which side of a region boundary a point falls on decides the
    pseudonormal used for the sign.  The one addition: a projection that
    lands exactly on a corner (``s``/``t`` hit ``0`` or ``det`` bit for bit)
    is reported as that vertex rather than as the face.  Triangles with
    ``det == 0`` (collinear or repeated corners) have no interior; they are
    measured as the nearest of their three edge segments.

Batch squared distance: Ericson Voronoi-region method
    (Real-Time Collision Detection §5.1.5), vectorised over query points.
    ``np.select`` picks the formula; denominators are guarded with
    ``np.maximum(..., 1e-30)`` because np.select evaluates every branch.
    Used only for brute-force reference sweeps.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import numpy.typing as npt

from .types import NearestEntity

_F = npt.NDArray[np.floating]
_Vec3 = Tuple[float, float, float]


# ---------------------------------------------------------------------------
# Array helpers (along the last axis)
# ---------------------------------------------------------------------------

def _length(v: _F) -> _F:
    """Euclidean length along the last axis."""
    return np.linalg.norm(v, axis=-1)


def _dot(a: _F, b: _F) -> _F:
    """Dot product along the last axis."""
    return np.sum(a * b, axis=-1)


def _dot2(a: _F) -> _F:
    """Squared length: ``_dot(a, a)``."""
    return _dot(a, a)


def _normalize(v: _F) -> _F:
    """Unit vectors along the last axis; zero vectors stay zero."""
    n = _length(v)[..., None]
    return np.divide(v, n, out=np.zeros_like(v, dtype=np.float64), where=n > 0.0)


# ---------------------------------------------------------------------------
# Point-triangle primitive
# ---------------------------------------------------------------------------

def _point_triangle_sq_unsigned(
    point: _Vec3,
    v0: _Vec3,
    v1: _Vec3,
    v2: _Vec3,
) -> Tuple[float, _Vec3, NearestEntity]:
    """Squared distance from *point* to triangle ``(v0, v1, v2)``.

    Works on plain float 3-tuples; no arrays are allocated.

    Returns
    -------
    tuple
        ``(d2, nearest_point, nearest_entity)``.  ``d2`` is clamped to be
        non-negative.
    """
    px, py, pz = point
    x0, y0, z0 = v0

    dx, dy, dz = x0 - px, y0 - py, z0 - pz
    e0x, e0y, e0z = v1[0] - x0, v1[1] - y0, v1[2] - z0
    e1x, e1y, e1z = v2[0] - x0, v2[1] - y0, v2[2] - z0

    a00 = e0x * e0x + e0y * e0y + e0z * e0z
    a01 = e0x * e1x + e0y * e1y + e0z * e1z
    a11 = e1x * e1x + e1y * e1y + e1z * e1z
    b0 = dx * e0x + dy * e0y + dz * e0z
    b1 = dx * e1x + dy * e1y + dz * e1z
    c = dx * dx + dy * dy + dz * dz
    det = abs(a00 * a11 - a01 * a01)
    if det == 0:
        return _point_collapsed_triangle_sq(point, v0, v1, v2)
    s = a01 * b1 - a11 * b0
    t = a01 * b0 - a00 * b1

    if s + t <= det:
        if s < 0:
            if t < 0:  # region 4
                if b0 < 0:
                    t = 0.0
                    if -b0 >= a00:
                        entity = NearestEntity.V1
                        s = 1.0
                        d2 = a00 + 2 * b0 + c
                    else:
                        entity = NearestEntity.E01
                        s = -b0 / a00
                        d2 = b0 * s + c
                else:
                    s = 0.0
                    if b1 >= 0:
                        entity = NearestEntity.V0
                        t = 0.0
                        d2 = c
                    elif -b1 >= a11:
                        entity = NearestEntity.V2
                        t = 1.0
                        d2 = a11 + 2 * b1 + c
                    else:
                        entity = NearestEntity.E02
                        t = -b1 / a11
                        d2 = b1 * t + c
            else:  # region 3
                s = 0.0
                if b1 >= 0:
                    entity = NearestEntity.V0
                    t = 0.0
                    d2 = c
                elif -b1 >= a11:
                    entity = NearestEntity.V2
                    t = 1.0
                    d2 = a11 + 2 * b1 + c
                else:
                    entity = NearestEntity.E02
                    t = -b1 / a11
                    d2 = b1 * t + c
        elif t < 0:  # region 5
            t = 0.0
            if b0 >= 0:
                entity = NearestEntity.V0
                s = 0.0
                d2 = c
            elif -b0 >= a00:
                entity = NearestEntity.V1
                s = 1.0
                d2 = a00 + 2 * b0 + c
            else:
                entity = NearestEntity.E01
                s = -b0 / a00
                d2 = b0 * s + c
        elif s == 0 and t == 0:  # region 0, projection exactly on v0
            entity = NearestEntity.V0
            d2 = c
        elif t == 0 and s == det:  # region 0, projection exactly on v1
            entity = NearestEntity.V1
            s = 1.0
            d2 = a00 + 2 * b0 + c
        elif s == 0 and t == det:  # region 0, projection exactly on v2
            entity = NearestEntity.V2
            t = 1.0
            d2 = a11 + 2 * b1 + c
        else:  # region 0
            entity = NearestEntity.F
            inv_det = 1.0 / det
            s *= inv_det
            t *= inv_det
            d2 = s * (a00 * s + a01 * t + 2 * b0) + t * (a01 * s + a11 * t + 2 * b1) + c
    else:
        if s < 0:  # region 2
            tmp0 = a01 + b0
            tmp1 = a11 + b1
            if tmp1 > tmp0:
                numer = tmp1 - tmp0
                denom = a00 - 2 * a01 + a11
                if numer >= denom:
                    entity = NearestEntity.V1
                    s = 1.0
                    t = 0.0
                    d2 = a00 + 2 * b0 + c
                else:
                    entity = NearestEntity.E12
                    s = numer / denom
                    t = 1 - s
                    d2 = s * (a00 * s + a01 * t + 2 * b0) + t * (a01 * s + a11 * t + 2 * b1) + c
            else:
                s = 0.0
                if tmp1 <= 0:
                    entity = NearestEntity.V2
                    t = 1.0
                    d2 = a11 + 2 * b1 + c
                elif b1 >= 0:
                    entity = NearestEntity.V0
                    t = 0.0
                    d2 = c
                else:
                    entity = NearestEntity.E02
                    t = -b1 / a11
                    d2 = b1 * t + c
        elif t < 0:  # region 6
            tmp0 = a01 + b1
            tmp1 = a00 + b0
            if tmp1 > tmp0:
                numer = tmp1 - tmp0
                denom = a00 - 2 * a01 + a11
                if numer >= denom:
                    entity = NearestEntity.V2
                    t = 1.0
                    s = 0.0
                    d2 = a11 + 2 * b1 + c
                else:
                    entity = NearestEntity.E12
                    t = numer / denom
                    s = 1 - t
                    d2 = s * (a00 * s + a01 * t + 2 * b0) + t * (a01 * s + a11 * t + 2 * b1) + c
            else:
                t = 0.0
                if tmp1 <= 0:
                    entity = NearestEntity.V1
                    s = 1.0
                    d2 = a00 + 2 * b0 + c
                elif b0 >= 0:
                    entity = NearestEntity.V0
                    s = 0.0
                    d2 = c
                else:
                    entity = NearestEntity.E01
                    s = -b0 / a00
                    d2 = b0 * s + c
        else:  # region 1
            numer = a11 + b1 - a01 - b0
            if numer <= 0:
                entity = NearestEntity.V2
                s = 0.0
                t = 1.0
                d2 = a11 + 2 * b1 + c
            else:
                denom = a00 - 2 * a01 + a11
                if numer >= denom:
                    entity = NearestEntity.V1
                    s = 1.0
                    t = 0.0
                    d2 = a00 + 2 * b0 + c
                else:
                    entity = NearestEntity.E12
                    s = numer / denom
                    t = 1 - s
                    d2 = s * (a00 * s + a01 * t + 2 * b0) + t * (a01 * s + a11 * t + 2 * b1) + c

    # Round-off can push d2 slightly below zero.
    if d2 < 0:
        d2 = 0.0

    nearest = (x0 + s * e0x + t * e1x, y0 + s * e0y + t * e1y, z0 + s * e0z + t * e1z)
    return d2, nearest, entity


def _point_segment_sq(point: _Vec3, a: _Vec3, b: _Vec3) -> Tuple[float, float, _Vec3]:
    """``(d2, u, nearest)`` for segment ``a + u*(b - a)``, ``u`` in ``[0, 1]``."""
    px, py, pz = point
    ax, ay, az = a
    ux, uy, uz = b[0] - ax, b[1] - ay, b[2] - az
    wu = (px - ax) * ux + (py - ay) * uy + (pz - az) * uz
    uu = ux * ux + uy * uy + uz * uz
    if uu == 0 or wu <= 0:
        u = 0.0
    elif wu >= uu:
        u = 1.0
    else:
        u = wu / uu
    qx, qy, qz = ax + u * ux, ay + u * uy, az + u * uz
    d2 = (px - qx) ** 2 + (py - qy) ** 2 + (pz - qz) ** 2
    return d2, u, (qx, qy, qz)


def _point_collapsed_triangle_sq(
    point: _Vec3,
    v0: _Vec3,
    v1: _Vec3,
    v2: _Vec3,
) -> Tuple[float, _Vec3, NearestEntity]:
    """Zero-area triangle: closest of its three edges, same return as the 7-region form."""
    best = None
    edges = (
        (v0, v1, NearestEntity.V0, NearestEntity.E01, NearestEntity.V1),
        (v1, v2, NearestEntity.V1, NearestEntity.E12, NearestEntity.V2),
        (v0, v2, NearestEntity.V0, NearestEntity.E02, NearestEntity.V2),
    )
    for a, b, start, edge, end in edges:
        d2, u, nearest = _point_segment_sq(point, a, b)
        if best is None or d2 < best[0]:
            entity = start if u == 0.0 else end if u == 1.0 else edge
            best = (d2, nearest, entity)
    return best


# ---------------------------------------------------------------------------
# Batch squared distance (Ericson Voronoi regions)
# ---------------------------------------------------------------------------

def _triangle_sq_dist(P: np.ndarray, tri: np.ndarray) -> np.ndarray:
    """Squared distance from each point in *P* ``(N, 3)`` to triangle *tri* ``(3, 3)``."""
    A, B, C = tri[0], tri[1], tri[2]
    AB = B - A
    AC = C - A
    AP = P - A

    d1 = AP @ AB
    d2 = AP @ AC
    d3 = (P - B) @ AB
    d4 = (P - B) @ AC
    d5 = (P - C) @ AB
    d6 = (P - C) @ AC

    vc = d1 * d4 - d3 * d2
    vb = d5 * d2 - d1 * d6
    va = d3 * d6 - d5 * d4

    denom_uv = np.maximum(va + vb + vc, 1e-30)
    denom_u  = np.maximum(d1 - d3, 1e-30)
    denom_v  = np.maximum((d4 - d3) + (d5 - d6), 1e-30)

    # Vertex regions first so that overlapping conditions resolve to the cap.
    cond_A  = (d1 <= 0.0) & (d2 <= 0.0)
    cond_B  = (d3 >= 0.0) & (d4 <= d3)
    cond_C  = (d6 >= 0.0) & (d5 <= d6)
    cond_AB = (vc <= 0.0) & (d1 >= 0.0) & (d3 <= 0.0)
    cond_AC = (vb <= 0.0) & (d2 >= 0.0) & (d6 <= 0.0)
    cond_BC = (va <= 0.0) & ((d4 - d3) >= 0.0) & ((d5 - d6) >= 0.0)

    def _sq(cp):
        return _dot2(P - cp)

    t_AB  = np.clip(d1 / denom_u, 0.0, 1.0)
    cp_AB = A + t_AB[:, None] * AB

    t_AC  = np.clip(d2 / np.maximum(d2 - d6, 1e-30), 0.0, 1.0)
    cp_AC = A + t_AC[:, None] * AC

    t_BC  = np.clip((d4 - d3) / denom_v, 0.0, 1.0)
    cp_BC = B + t_BC[:, None] * (C - B)

    w_v    = vb / denom_uv
    w_w    = vc / denom_uv
    cp_int = A + np.clip(w_v, 0.0, 1.0)[:, None] * AB + np.clip(w_w, 0.0, 1.0)[:, None] * AC

    return np.select(
        [cond_A, cond_B, cond_C, cond_AB, cond_AC, cond_BC],
        [_sq(A), _sq(B), _sq(C), _sq(cp_AB), _sq(cp_AC), _sq(cp_BC)],
        default=_sq(cp_int),
    )


def _brute_force_sq_dist(P: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Minimum squared distance from ``(N, 3)`` points to ``(F, 3, 3)`` triangles.

    O(F × N); the reference the BVH is checked against.
    """
    sq_min = np.full(len(P), np.inf)
    for tri in triangles:
        sq_min = np.minimum(sq_min, _triangle_sq_dist(P, tri))
    return np.maximum(sq_min, 0.0)
