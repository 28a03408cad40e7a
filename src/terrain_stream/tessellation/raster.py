from __future__ import annotations

from typing import Optional

import numpy as np

GridPoint = tuple[int, int]

# Samples evaluated per vectorised batch.
_BATCH_SAMPLES = 1 << 18


def triangle_errors(
    heights: np.ndarray,
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Largest vertical deviation of the samples covered by each grid triangle.

    ``a``, ``b`` and ``c`` are (K, 2) integer arrays of ``(col, row)`` corners.
    Every sample inside or on the boundary of a triangle is compared with the
    linear interpolation of its three corner heights; the corners themselves
    are skipped. Returns ``(errors, points)``: (K,) float64 errors and (K, 2)
    int64 positions of the worst sample, ``-1`` where the error is zero.

    Triangles are grouped by bounding-box size so each batch evaluates a
    rectangular window of similar extent.
    """

    heights = np.asarray(heights)
    a = np.asarray(a, dtype=np.int64).reshape(-1, 2)
    b = np.asarray(b, dtype=np.int64).reshape(-1, 2)
    c = np.asarray(c, dtype=np.int64).reshape(-1, 2)
    count = a.shape[0]
    errors = np.zeros(count, dtype=np.float64)
    points = np.full((count, 2), -1, dtype=np.int64)
    if count == 0:
        return errors, points

    xs = np.stack([a[:, 0], b[:, 0], c[:, 0]], axis=1)
    ys = np.stack([a[:, 1], b[:, 1], c[:, 1]], axis=1)
    widths = xs.max(axis=1) - xs.min(axis=1) + 1
    lengths = ys.max(axis=1) - ys.min(axis=1) + 1
    order = np.lexsort((lengths, widths))
    widths, lengths = widths[order], lengths[order]

    start = 0
    while start < count:
        taken = (
            np.arange(1, count - start + 1)
            * np.maximum.accumulate(widths[start:])
            * np.maximum.accumulate(lengths[start:])
        )
        over = np.nonzero(taken > _BATCH_SAMPLES)[0]
        stop = start + max(1, int(over[0])) if over.size else count
        batch = order[start:stop]
        batch_errors, batch_points = _window_errors(heights, xs[batch], ys[batch])
        errors[batch] = batch_errors
        points[batch] = batch_points
        start = stop
    return errors, points


def _window_errors(
    heights: np.ndarray, xs: np.ndarray, ys: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    rows, cols = heights.shape
    count = xs.shape[0]
    x0 = xs.min(axis=1)
    y0 = ys.min(axis=1)
    width = int((xs.max(axis=1) - x0).max()) + 1
    length = int((ys.max(axis=1) - y0).max()) + 1

    shape = (count, length, width)
    gx = np.broadcast_to(x0[:, None, None] + np.arange(width), shape).reshape(count, -1)
    gy = np.broadcast_to(
        y0[:, None, None] + np.arange(length)[:, None], shape
    ).reshape(count, -1)

    ax, bx, cx = xs[:, 0:1], xs[:, 1:2], xs[:, 2:3]
    ay, by, cy = ys[:, 0:1], ys[:, 1:2], ys[:, 2:3]
    area = (bx - ax) * (cy - ay) - (by - ay) * (cx - ax)

    # Integer edge functions, exact for grid coordinates.
    w_a = (bx - gx) * (cy - gy) - (by - gy) * (cx - gx)
    w_b = (cx - gx) * (ay - gy) - (cy - gy) * (ax - gx)
    w_c = area - w_a - w_b
    sign = np.where(area < 0, -1, 1)
    w_a, w_b, w_c, area = w_a * sign, w_b * sign, w_c * sign, area * sign

    degenerate = area == 0
    inside = (w_a >= 0) & (w_b >= 0) & (w_c >= 0)
    corner = (w_a == area) | (w_b == area) | (w_c == area)

    za = heights[ay, ax].astype(np.float64)
    zb = heights[by, bx].astype(np.float64)
    zc = heights[cy, cx].astype(np.float64)
    interpolated = (w_a * za + w_b * zb + w_c * zc) / np.where(degenerate, 1, area)

    samples = heights[np.clip(gy, 0, rows - 1), np.clip(gx, 0, cols - 1)]
    error = np.abs(samples.astype(np.float64) - interpolated)
    error[~inside | corner | degenerate] = 0.0

    worst = np.argmax(error, axis=1)
    picked = np.arange(count)
    best = error[picked, worst]
    hit = best > 0.0
    points = np.stack(
        [
            np.where(hit, gx[picked, worst], -1),
            np.where(hit, gy[picked, worst], -1),
        ],
        axis=1,
    )
    return best, points


def triangle_error(
    heights: np.ndarray, a: GridPoint, b: GridPoint, c: GridPoint
) -> tuple[float, Optional[GridPoint]]:
    """Single-triangle form of :func:`triangle_errors`.

    Returns the error and the sample where it occurs (``None`` when the
    triangle covers no sample other than its corners, or fits exactly).
    """

    errors, points = triangle_errors(heights, [a], [b], [c])
    err = float(errors[0])
    if err <= 0.0:
        return 0.0, None
    return err, (int(points[0, 0]), int(points[0, 1]))


def mesh_max_error(
    heights: np.ndarray, vertices: np.ndarray, triangles: np.ndarray
) -> float:
    """Worst :func:`triangle_errors` value over a grid-space triangulation."""

    vertices = np.asarray(vertices, dtype=np.int64).reshape(-1, 2)
    triangles = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    if triangles.shape[0] == 0:
        return 0.0
    errors, _ = triangle_errors(
        heights,
        vertices[triangles[:, 0]],
        vertices[triangles[:, 1]],
        vertices[triangles[:, 2]],
    )
    return float(errors.max())
