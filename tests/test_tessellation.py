from __future__ import annotations

import numpy as np
import pytest

from terrain_stream.errors import TessellationError
from terrain_stream.heightfield import Heightfield
from terrain_stream.tessellation import (
    TesselatorHint,
    delatin,
    martini,
    parse_tesselator,
    select_tesselator,
    tessellate,
)
from terrain_stream.tessellation.raster import mesh_max_error, triangle_error, triangle_errors
from tile_math.projection import TileBounds


def _terrain(rows: int, cols: int, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    y, x = np.mgrid[0:rows, 0:cols].astype(np.float64)
    smooth = 40.0 * np.sin(x / 3.0) * np.cos(y / 4.0) + 2.0 * x
    return smooth + rng.uniform(0.0, 6.0, size=(rows, cols))


def _max_deviation(heights: np.ndarray, vertices: np.ndarray, triangles: np.ndarray) -> float:
    """Brute-force float barycentric check, independent of the refiners."""

    worst = 0.0
    for tri in triangles:
        pts = vertices[tri].astype(np.float64)
        zs = np.array([heights[int(p[1]), int(p[0])] for p in pts])
        (x1, y1), (x2, y2), (x3, y3) = pts
        det = (y2 - y3) * (x1 - x3) + (x3 - x2) * (y1 - y3)
        assert det != 0
        for row in range(int(pts[:, 1].min()), int(pts[:, 1].max()) + 1):
            for col in range(int(pts[:, 0].min()), int(pts[:, 0].max()) + 1):
                l1 = ((y2 - y3) * (col - x3) + (x3 - x2) * (row - y3)) / det
                l2 = ((y3 - y1) * (col - x3) + (x1 - x3) * (row - y3)) / det
                l3 = 1.0 - l1 - l2
                if min(l1, l2, l3) < -1e-9:
                    continue
                interp = l1 * zs[0] + l2 * zs[1] + l3 * zs[2]
                worst = max(worst, abs(heights[row, col] - interp))
    return worst


def _total_area(vertices: np.ndarray, triangles: np.ndarray) -> float:
    a = vertices[triangles[:, 0]].astype(np.float64)
    b = vertices[triangles[:, 1]].astype(np.float64)
    c = vertices[triangles[:, 2]].astype(np.float64)
    cross = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])
    return float(np.abs(cross).sum() / 2.0)


def _assert_conforming(vertices: np.ndarray, triangles: np.ndarray) -> None:
    """No vertex may sit strictly inside another triangle's edge (T-junction)."""

    points = [tuple(int(v) for v in p) for p in vertices]
    edges = set()
    for tri in triangles:
        for i in range(3):
            a, b = int(tri[i]), int(tri[(i + 1) % 3])
            edges.add((min(a, b), max(a, b)))
    for a, b in edges:
        (ax, ay), (bx, by) = points[a], points[b]
        for index, (px, py) in enumerate(points):
            if index in (a, b):
                continue
            if (bx - ax) * (py - ay) - (by - ay) * (px - ax) != 0:
                continue
            inside_x = min(ax, bx) <= px <= max(ax, bx)
            inside_y = min(ay, by) <= py <= max(ay, by)
            assert not (inside_x and inside_y), f"T-junction at {(px, py)}"


@pytest.mark.parametrize("max_error", [1.0, 5.0, 20.0])
def test_martini_respects_error_bound(max_error: float) -> None:
    heights = _terrain(17, 17)
    vertices, triangles = martini.triangulate(heights, max_error)
    assert _max_deviation(heights, vertices, triangles) <= max_error + 1e-9
    assert _total_area(vertices, triangles) == pytest.approx(16 * 16)
    _assert_conforming(vertices, triangles)


@pytest.mark.parametrize(("rows", "cols"), [(17, 17), (9, 14), (12, 5)])
def test_delatin_respects_error_bound(rows: int, cols: int) -> None:
    heights = _terrain(rows, cols, seed=rows * cols)
    vertices, triangles = delatin.triangulate(heights, 3.0)
    assert _max_deviation(heights, vertices, triangles) <= 3.0 + 1e-9
    assert _total_area(vertices, triangles) == pytest.approx((rows - 1) * (cols - 1))
    _assert_conforming(vertices, triangles)


def test_mesh_max_error_agrees_with_brute_force() -> None:
    heights = _terrain(9, 9, seed=1)
    vertices, triangles = martini.triangulate(heights, 4.0)
    assert mesh_max_error(heights, vertices, triangles) == pytest.approx(
        _max_deviation(heights, vertices, triangles)
    )


@pytest.mark.parametrize(("hint", "shape"), [("martini", (33, 33)), ("delatin", (21, 27))])
def test_lower_tolerance_never_coarsens_or_worsens(hint: str, shape: tuple[int, int]) -> None:
    heights = _terrain(*shape, seed=11)
    module = martini if hint == "martini" else delatin
    counts = []
    errors = []
    for eps in (80.0, 40.0, 20.0, 10.0, 5.0, 2.0, 1.0):
        vertices, triangles = module.triangulate(heights, eps)
        counts.append(triangles.shape[0])
        errors.append(mesh_max_error(heights, vertices, triangles))
        assert errors[-1] <= eps
    assert counts == sorted(counts)
    assert counts[0] < counts[-1]
    assert errors == sorted(errors, reverse=True)


def test_batched_errors_match_single_triangles() -> None:
    heights = _terrain(17, 17, seed=3)
    a = np.array([[0, 0], [16, 16], [3, 2], [5, 5], [1, 9]])
    b = np.array([[16, 16], [0, 0], [14, 3], [6, 6], [1, 16]])
    c = np.array([[16, 0], [0, 16], [7, 15], [5, 6], [9, 12]])
    errors, points = triangle_errors(heights, a, b, c)
    for i in range(len(a)):
        err, point = triangle_error(heights, tuple(a[i]), tuple(b[i]), tuple(c[i]))
        assert errors[i] == err
        assert (None if points[i, 0] < 0 else tuple(points[i])) == point
    # (5, 5)-(6, 6)-(5, 6) covers no sample besides its corners.
    assert errors[3] == 0.0
    assert tuple(points[3]) == (-1, -1)


def test_hierarchy_errors_are_exact_triangle_errors() -> None:
    heights = _terrain(9, 9, seed=4)
    table = martini.hierarchy_errors(heights)
    err, _ = triangle_error(heights, (0, 0), (8, 8), (8, 0))
    assert table[1, 4, 4] == err
    err, _ = triangle_error(heights, (8, 8), (0, 0), (0, 8))
    assert table[0, 4, 4] == err
    # Child (c, a, m) of the first root: hypotenuse (8, 0)-(0, 0), apex (4, 4).
    err, _ = triangle_error(heights, (8, 0), (0, 0), (4, 4))
    assert table[1, 0, 4] == err


def test_delatin_insert_without_candidate_raises() -> None:
    refiner = delatin.DelatinRefiner(np.zeros((3, 3)))
    refiner.refine(1.0)
    with pytest.raises(TessellationError):
        refiner._insert(0)


@pytest.mark.parametrize("hint", ["martini", "delatin"])
def test_uniform_heightfield_yields_two_triangles(hint: str) -> None:
    mesh = tessellate(Heightfield(np.full((17, 17), 42.0)), 0.5, hint)
    assert mesh.triangle_count == 2
    assert mesh.vertex_count == 4
    assert mesh.z_bounds == (42.0, 42.0)


@pytest.mark.parametrize("hint", ["martini", "delatin"])
def test_planar_heightfield_is_fit_exactly(hint: str) -> None:
    y, x = np.mgrid[0:9, 0:9].astype(np.float64)
    mesh = tessellate(Heightfield(2.0 * x + 3.0 * y), 0.01, hint)
    assert mesh.triangle_count == 2


def test_empty_heightfield_becomes_flat_quad() -> None:
    mesh = tessellate(Heightfield(np.zeros((0, 0))), 1.0)
    assert mesh.triangle_count == 2
    assert mesh.bounding_box == (0.0, 0.0, 0.0, 1.0, 1.0, 0.0)


def test_single_row_heightfield_is_meshed() -> None:
    mesh = tessellate(Heightfield(np.array([[0.0, 5.0, 0.0, 5.0, 0.0]])), 1.0)
    assert mesh.triangle_count >= 2
    assert mesh.tesselator == "delatin"


def test_select_tesselator_auto() -> None:
    assert select_tesselator(Heightfield(np.zeros((257, 257)))) is TesselatorHint.MARTINI
    assert select_tesselator(Heightfield(np.zeros((256, 256)))) is TesselatorHint.MARTINI
    assert select_tesselator(Heightfield(np.zeros((100, 100)))) is TesselatorHint.DELATIN
    assert select_tesselator(Heightfield(np.zeros((17, 33)))) is TesselatorHint.DELATIN
    assert select_tesselator(Heightfield(np.zeros((5, 5))), "delatin") is TesselatorHint.DELATIN


def test_martini_backfills_power_of_two_tiles() -> None:
    mesh = tessellate(Heightfield(_terrain(16, 16)), 2.0, "martini")
    assert mesh.tesselator == "martini"
    assert mesh.bounding_box[0] == 0.0
    assert mesh.bounding_box[3] == 16.0


def test_martini_rejects_unsupported_shape() -> None:
    with pytest.raises(TessellationError):
        tessellate(Heightfield(np.zeros((10, 12))), 1.0, "martini")


@pytest.mark.parametrize("bad", [0.0, -1.0, float("nan"), float("inf")])
def test_max_error_must_be_positive_and_finite(bad: float) -> None:
    with pytest.raises(ValueError):
        tessellate(Heightfield(np.zeros((3, 3))), bad)


def test_unknown_hint_is_rejected() -> None:
    with pytest.raises(ValueError):
        tessellate(Heightfield(np.zeros((3, 3))), 1.0, "quadtree")


@pytest.mark.parametrize("hint", ["martini", "delatin"])
def test_positions_map_into_bounds_with_ccw_winding(hint: str) -> None:
    heights = _terrain(17, 17, seed=5)
    bounds = TileBounds(min_x=-256.0, min_y=-128.0, max_x=256.0, max_y=128.0)
    mesh = tessellate(Heightfield(heights), 2.0, hint, bounds=bounds)

    min_x, min_y, min_z, max_x, max_y, max_z = mesh.bounding_box
    assert (min_x, min_y, max_x, max_y) == (-256.0, -128.0, 256.0, 128.0)
    assert min_z == pytest.approx(float(mesh.positions[:, 2].min()))
    assert max_z == pytest.approx(float(mesh.positions[:, 2].max()))

    # Row 0 is the north edge: it maps to max_y.
    north = mesh.positions[mesh.positions[:, 1] == 128.0]
    assert north.shape[0] >= 2
    assert float(mesh.positions[0, 2]) in {float(h) for h in heights.astype(np.float32).ravel()}

    pos = mesh.positions.astype(np.float64)
    tri = mesh.indices.astype(np.int64)
    a, b, c = pos[tri[:, 0]], pos[tri[:, 1]], pos[tri[:, 2]]
    cross = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])
    assert np.all(cross > 0)

    assert mesh.tex_coords.min() >= 0.0
    assert mesh.tex_coords.max() <= 1.0


def test_triangle_error_finds_worst_sample() -> None:
    heights = np.zeros((5, 5))
    heights[1, 1] = 3.0
    heights[2, 3] = -7.0
    err, point = triangle_error(heights, (0, 0), (4, 4), (4, 0))
    assert err == 7.0
    assert point == (3, 2)

    err, point = triangle_error(heights, (0, 0), (1, 0), (0, 1))
    assert err == 0.0
    assert point is None


def test_parse_tesselator() -> None:
    assert parse_tesselator(" Martini ") is TesselatorHint.MARTINI
    assert parse_tesselator(TesselatorHint.AUTO) is TesselatorHint.AUTO
    with pytest.raises(ValueError, match="Unknown tesselator"):
        parse_tesselator("quadtree")
