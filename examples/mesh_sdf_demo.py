"""mesh_sdf_demo.py: signed distance field of a triangle mesh.

Builds a :class:`meshdist.TriangleMeshDistance` for an STL file (or, without
``--stl``, a procedural geodesic sphere), samples the signed distance on a
uniform grid and spot-checks the BVH against the brute-force sweep.

Usage
-----
python examples/mesh_sdf_demo.py                      # sphere, --res 32
python examples/mesh_sdf_demo.py --stl part.stl       # any closed STL
python examples/mesh_sdf_demo.py --stl part.stl --weld 6

Outputs
-------
mesh_sdf.npy   : (nz, ny, nx) float64 signed distance field
mesh_sdf.html  : interactive Plotly figure:
                   left panel  : 2D mid-Z SDF heatmap
                   right panel : 3D isosurface at φ = 0
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

from meshdist import TriangleMeshDistance, load_stl, sample_sdf_grid

_EXAMPLES_DIR = Path(__file__).parent


# ---------------------------------------------------------------------------
# Procedural mesh
# ---------------------------------------------------------------------------

def _geodesic_sphere(level: int = 3):
    """Octahedron subdivided *level* times and projected on the unit sphere."""
    verts = [(1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1)]
    verts = [np.array(v, dtype=np.float64) for v in verts]
    faces = [(0, 2, 4), (2, 1, 4), (1, 3, 4), (3, 0, 4),
             (2, 0, 5), (1, 2, 5), (3, 1, 5), (0, 3, 5)]
    for _ in range(level):
        mids = {}

        def mid(i, j):
            key = (min(i, j), max(i, j))
            if key not in mids:
                m = verts[i] + verts[j]
                verts.append(m / np.linalg.norm(m))
                mids[key] = len(verts) - 1
            return mids[key]

        faces = [
            f
            for a, b, c in faces
            for f in ((a, mid(a, b), mid(c, a)), (mid(a, b), b, mid(b, c)),
                      (mid(c, a), mid(b, c), c), (mid(a, b), mid(b, c), mid(c, a)))
        ]
    return np.array(verts), np.array(faces, dtype=np.int64)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Triangle mesh → SDF demo")
    parser.add_argument(
        "--stl", type=Path, default=None,
        help="STL file to load (default: procedural geodesic sphere)"
    )
    parser.add_argument(
        "--weld", type=int, default=None,
        help="Round STL corners to this many decimals before welding"
    )
    parser.add_argument(
        "--res", type=int, default=32,
        help="Cubic grid resolution (default 32)"
    )
    parser.add_argument(
        "--out", type=Path, default=_EXAMPLES_DIR / "mesh_sdf.npy",
        help="Output .npy path"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # --- mesh ---
    if args.stl is None:
        vertices, faces = _geodesic_sphere(level=3)
        label = "geodesic sphere"
    else:
        if not args.stl.exists():
            print(f"ERROR: {args.stl} not found", file=sys.stderr)
            sys.exit(1)
        vertices, faces = load_stl(args.stl, decimals=args.weld)
        label = args.stl.name
    print(f"{label}: {len(vertices):,} vertices, {len(faces):,} triangles", flush=True)

    t0 = time.perf_counter()
    tmd = TriangleMeshDistance(vertices, faces)
    print(
        f"Constructed in {time.perf_counter() - t0:.2f}s  "
        f"(BVH depth {tmd.bvh.depth}, watertight={tmd.is_watertight})",
        flush=True,
    )

    # --- spot check against brute force ---
    lo, hi = tmd.store.bounds()
    rng = np.random.default_rng(0)
    samples = rng.uniform(lo - 0.2 * (hi - lo), hi + 0.2 * (hi - lo), size=(64, 3))
    err = np.abs(tmd.unsigned_distances(samples) - tmd.brute_force_unsigned_distances(samples))
    print(f"BVH vs brute force on {len(samples)} points: max |Δ| = {err.max():.2e}", flush=True)

    # --- auto bounds from mesh bbox + 10% padding ---
    pad = 0.1 * (hi - lo)
    bounds = tuple(zip((lo - pad).tolist(), (hi + pad).tolist()))

    res = args.res
    print(f"Sampling {res}³ = {res**3:,} points ...", flush=True)
    t0 = time.perf_counter()
    phi = sample_sdf_grid(tmd, bounds, (res, res, res))
    print(
        f"Done in {time.perf_counter() - t0:.1f}s.  "
        f"phi.shape={phi.shape}  min={phi.min():.4f}  max={phi.max():.4f}"
    )

    np.save(args.out, phi)
    print(f"Saved SDF to {args.out}")

    # --- plot ---
    try:
        import plotly.graph_objects as go
        from plotly.subplots import make_subplots
    except ImportError:
        print("plotly not installed; skipping plot  (pip install meshdist[viz])", file=sys.stderr)
        return

    (x0, x1), (y0, y1), (z0, z1) = bounds
    xs = np.linspace(x0, x1, res, endpoint=False) + (x1 - x0) / (2.0 * res)
    ys = np.linspace(y0, y1, res, endpoint=False) + (y1 - y0) / (2.0 * res)
    zs = np.linspace(z0, z1, res, endpoint=False) + (z1 - z0) / (2.0 * res)
    Z3, Y3, X3 = np.meshgrid(zs, ys, xs, indexing="ij")

    fig = make_subplots(
        rows=1, cols=2,
        specs=[[{"type": "xy"}, {"type": "scene"}]],
        subplot_titles=[
            f"Mid-Z SDF slice  (z ≈ {zs[res // 2]:.2f})",
            "3D isosurface  (φ = 0)",
        ],
        horizontal_spacing=0.08,
    )

    mid_z = phi[res // 2]          # (ny, nx)
    clim = float(np.abs(mid_z).max()) or 1.0
    fig.add_trace(
        go.Heatmap(
            z=mid_z, x=xs, y=ys,
            colorscale="RdBu",
            reversescale=True,       # red = outside (+), blue = inside (-)
            zmid=0.0, zmin=-clim, zmax=clim,
            colorbar=dict(title=dict(text="φ", side="right"), x=0.44, len=0.8),
        ),
        row=1, col=1,
    )
    fig.update_xaxes(title_text="X", row=1, col=1, scaleanchor="y", scaleratio=1)
    fig.update_yaxes(title_text="Y", row=1, col=1)

    fig.add_trace(
        go.Isosurface(
            x=X3.ravel(), y=Y3.ravel(), z=Z3.ravel(),
            value=phi.ravel(),
            isomin=0.0, isomax=0.0, surface_count=1,
            colorscale=[[0, "#4a90d9"], [1, "#4a90d9"]],
            showscale=False,
            caps=dict(x_show=False, y_show=False, z_show=False),
        ),
        row=1, col=2,
    )
    fig.update_scenes(aspectmode="data", row=1, col=2)

    fig.update_layout(
        title=dict(text=f"{label} SDF, {res}³ grid", font=dict(size=16)),
        width=1200,
        height=650,
    )

    out_html = args.out.with_suffix(".html")
    fig.write_html(out_html, include_plotlyjs="cdn")
    print(f"Saved interactive plot to {out_html}")


if __name__ == "__main__":
    main()
