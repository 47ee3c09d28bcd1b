"""STL loading at the mesh-file boundary.

STL stores an unindexed triangle soup: every triangle repeats its three
corner positions.  Pseudonormals need shared vertices, so
:func:`load_stl` welds coincident corners into an indexed mesh before
handing it to :class:`~meshdist.distance.TriangleMeshDistance`.
"""

from __future__ import annotations

import logging
import struct
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

_STL_RECORD = np.dtype([
    ("normal", "<f4", (3,)),
    ("vertices", "<f4", (3, 3)),
    ("attr", "<u2"),
])


def load_stl_triangles(path: Union[str, Path]) -> np.ndarray:
    """Read an STL file and return its triangles as a ``(F, 3, 3)`` float64 array.

    Supports binary and ASCII STL.  Normals are discarded.
    Detection uses the binary-size invariant (len == 84 + 50*F) rather than
    the "solid" keyword, which some CAD tools also write at the start of
    binary files.
    """
    path = Path(path)
    raw = path.read_bytes()
    if len(raw) >= 84:
        count = struct.unpack_from("<I", raw, 80)[0]
        if len(raw) == 84 + 50 * count:
            records = np.frombuffer(raw, dtype=_STL_RECORD, count=count, offset=84)
            return records["vertices"].astype(np.float64)
    return _parse_ascii_stl(raw.decode("ascii", errors="replace"))


def _parse_ascii_stl(text: str) -> np.ndarray:
    verts: list[list[float]] = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("vertex"):
            parts = line.split()
            verts.append([float(parts[1]), float(parts[2]), float(parts[3])])
    if len(verts) % 3:
        raise ValueError(f"ASCII STL has {len(verts)} vertices, not a multiple of 3")
    return np.array(verts, dtype=np.float64).reshape(-1, 3, 3)


def weld_triangles(
    triangles: np.ndarray,
    decimals: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Merge coincident corners of a ``(F, 3, 3)`` triangle soup.

    Parameters
    ----------
    triangles:
        Per-triangle corner positions.
    decimals:
        Round coordinates to this many decimals before matching; ``None``
        welds only bit-identical corners.

    Returns
    -------
    tuple
        ``(vertices (V, 3) float64, faces (F, 3) int64)``.  Winding is kept.
    """
    corners = np.asarray(triangles, dtype=np.float64).reshape(-1, 3)
    keys = corners if decimals is None else np.round(corners, decimals)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    vertices = corners[first]
    faces = inverse.reshape(-1, 3).astype(np.int64)
    logger.debug("welded %d corners into %d vertices", len(corners), len(vertices))
    return vertices, faces


def load_stl(
    path: Union[str, Path],
    decimals: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Load an STL file as an indexed mesh ``(vertices, faces)``."""
    return weld_triangles(load_stl_triangles(path), decimals=decimals)
