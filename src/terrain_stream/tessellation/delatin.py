from __future__ import annotations

import heapq
from typing import Optional

import numpy as np

from ..errors import TessellationError
from .raster import GridPoint, triangle_errors


def _orient(a: GridPoint, b: GridPoint, c: GridPoint) -> int:
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def _in_circle(a: GridPoint, b: GridPoint, c: GridPoint, p: GridPoint) -> bool:
    """True when ``p`` lies strictly inside the circumcircle of CCW ``abc``."""

    dx, dy = a[0] - p[0], a[1] - p[1]
    ex, ey = b[0] - p[0], b[1] - p[1]
    fx, fy = c[0] - p[0], c[1] - p[1]
    ap = dx * dx + dy * dy
    bp = ex * ex + ey * ey
    cp = fx * fx + fy * fy
    det = dx * (ey * cp - bp * fy) - dy * (ex * cp - bp * fx) + ap * (ex * fy - ey * fx)
    return det > 0


class DelatinRefiner:
    """Greedy Delaunay refinement of a height grid.

    Starts from the two triangles spanning the grid corners and repeatedly
    inserts the sample with the largest error in the worst triangle, keeping
    the triangulation Delaunay with edge flips. Triangles are stored as
    counter-clockwise vertex triples in ``(col, row)`` space with a half-edge
    twin table (``3 * t + i`` is the edge from vertex ``i`` to ``i + 1``).
    Refinement stops at the first mesh whose worst triangle fits.
    """

    def __init__(self, heights: np.ndarray) -> None:
        self._heights = heights
        rows, cols = heights.shape
        self._coords: list[GridPoint] = []
        self._triangles: list[list[int]] = []
        self._halfedges: list[int] = []
        self._versions: list[int] = []
        self._candidates: list[Optional[GridPoint]] = []
        self._queue: list[tuple[float, int, int]] = []
        self._pending: set[int] = set()

        x1, y1 = int(cols) - 1, int(rows) - 1
        p0 = self._add_point((0, 0))
        p1 = self._add_point((x1, 0))
        p2 = self._add_point((0, y1))
        p3 = self._add_point((x1, y1))
        t0 = self._add_triangle(p0, p1, p3)
        t1 = self._add_triangle(p0, p3, p2)
        self._link(3 * t0 + 2, 3 * t1)

    def _add_point(self, p: GridPoint) -> int:
        self._coords.append(p)
        return len(self._coords) - 1

    def _add_triangle(self, a: int, b: int, c: int) -> int:
        t = len(self._triangles)
        self._triangles.append([a, b, c])
        self._halfedges.extend((-1, -1, -1))
        self._versions.append(0)
        self._candidates.append(None)
        self._pending.add(t)
        return t

    def _set_triangle(self, t: int, a: int, b: int, c: int) -> None:
        self._triangles[t] = [a, b, c]
        self._versions[t] += 1
        self._candidates[t] = None
        self._pending.add(t)

    def _link(self, e: int, twin: int) -> None:
        self._halfedges[e] = twin
        if twin >= 0:
            self._halfedges[twin] = e

    def _flush(self) -> None:
        if not self._pending:
            return
        pending = sorted(self._pending)
        self._pending.clear()
        corners = np.array(
            [[self._coords[v] for v in self._triangles[t]] for t in pending],
            dtype=np.int64,
        )
        errors, points = triangle_errors(
            self._heights, corners[:, 0], corners[:, 1], corners[:, 2]
        )
        for t, err, (px, py) in zip(pending, errors.tolist(), points.tolist()):
            if err > 0.0:
                self._candidates[t] = (px, py)
                heapq.heappush(self._queue, (-err, t, self._versions[t]))

    def refine(self, max_error: float) -> None:
        self._flush()
        while self._queue:
            neg_err, t, version = self._queue[0]
            if version != self._versions[t]:
                heapq.heappop(self._queue)
                continue
            if -neg_err <= max_error:
                break
            heapq.heappop(self._queue)
            self._insert(t)
            self._flush()

    def _insert(self, t: int) -> None:
        candidate = self._candidates[t]
        if candidate is None:
            raise TessellationError(f"Triangle {t} has no sample to insert")
        tri = self._triangles[t]
        p = self._add_point(candidate)
        for i in range(3):
            u = self._coords[tri[i]]
            v = self._coords[tri[(i + 1) % 3]]
            if _orient(u, v, candidate) == 0:
                self._split_edge(t, i, p)
                return
        self._split_interior(t, p)

    def _split_interior(self, t: int, p: int) -> None:
        a, b, c = self._triangles[t]
        h_ab, h_bc, h_ca = self._halfedges[3 * t : 3 * t + 3]

        self._set_triangle(t, a, b, p)
        t1 = self._add_triangle(b, c, p)
        t2 = self._add_triangle(c, a, p)

        self._link(3 * t, h_ab)
        self._link(3 * t1, h_bc)
        self._link(3 * t2, h_ca)
        self._link(3 * t + 1, 3 * t1 + 2)
        self._link(3 * t1 + 1, 3 * t2 + 2)
        self._link(3 * t2 + 1, 3 * t + 2)

        self._legalize(3 * t)
        self._legalize(3 * t1)
        self._legalize(3 * t2)

    def _split_edge(self, t: int, i: int, p: int) -> None:
        tri = self._triangles[t]
        u, v, w = tri[i], tri[(i + 1) % 3], tri[(i + 2) % 3]
        opposite = self._halfedges[3 * t + i]
        h_vw = self._halfedges[3 * t + (i + 1) % 3]
        h_wu = self._halfedges[3 * t + (i + 2) % 3]

        self._set_triangle(t, u, p, w)
        tb = self._add_triangle(p, v, w)
        self._link(3 * t + 2, h_wu)
        self._link(3 * tb + 1, h_vw)
        self._link(3 * t + 1, 3 * tb + 2)

        if opposite < 0:
            self._halfedges[3 * t] = -1
        else:
            t2, j = divmod(opposite, 3)
            q = self._triangles[t2][(j + 2) % 3]
            h_uq = self._halfedges[3 * t2 + (j + 1) % 3]
            h_qv = self._halfedges[3 * t2 + (j + 2) % 3]

            self._set_triangle(t2, v, p, q)
            tc = self._add_triangle(p, u, q)
            self._link(3 * t2 + 2, h_qv)
            self._link(3 * tc + 1, h_uq)
            self._link(3 * t2 + 1, 3 * tc + 2)
            self._link(3 * t, 3 * tc)
            self._link(3 * tb, 3 * t2)

            self._legalize(3 * t2 + 2)
            self._legalize(3 * tc + 1)

        self._legalize(3 * t + 2)
        self._legalize(3 * tb + 1)

    def _legalize(self, e: int) -> None:
        opposite = self._halfedges[e]
        if opposite < 0:
            return
        t, i = divmod(e, 3)
        t2, j = divmod(opposite, 3)
        tri = self._triangles[t]
        p0, p1, pl = tri[i], tri[(i + 1) % 3], tri[(i + 2) % 3]
        pr = self._triangles[t2][(j + 2) % 3]

        coords = self._coords
        if not _in_circle(coords[p0], coords[p1], coords[pl], coords[pr]):
            return

        h_t1 = self._halfedges[3 * t + (i + 1) % 3]
        h_t2 = self._halfedges[3 * t + (i + 2) % 3]
        h_o1 = self._halfedges[3 * t2 + (j + 1) % 3]
        h_o2 = self._halfedges[3 * t2 + (j + 2) % 3]

        self._set_triangle(t, p0, pr, pl)
        self._set_triangle(t2, pr, p1, pl)
        self._link(3 * t, h_o1)
        self._link(3 * t + 2, h_t2)
        self._link(3 * t2, h_o2)
        self._link(3 * t2 + 1, h_t1)
        self._link(3 * t + 1, 3 * t2 + 2)

        self._legalize(3 * t)
        self._legalize(3 * t2)

    def vertices(self) -> np.ndarray:
        return np.array(self._coords, dtype=np.int64).reshape(-1, 2)

    def triangles(self) -> np.ndarray:
        return np.array(self._triangles, dtype=np.int64).reshape(-1, 3)


def triangulate(heights: np.ndarray, max_error: float) -> tuple[np.ndarray, np.ndarray]:
    """Grid-space Delaunay refinement of any (rows, cols) height array, rows/cols >= 2.

    Returns ``(vertices, triangles)`` like :func:`.martini.triangulate`.
    """

    refiner = DelatinRefiner(heights)
    refiner.refine(max_error)
    return refiner.vertices(), refiner.triangles()
