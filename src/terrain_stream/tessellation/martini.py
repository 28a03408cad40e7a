from __future__ import annotations

import heapq
import itertools

import numpy as np

from ..errors import TessellationError
from ..heightfield import Heightfield
from .raster import GridPoint, triangle_errors

Triangle = tuple[GridPoint, GridPoint, GridPoint]


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def supports_grid(rows: int, cols: int) -> bool:
    """Square grids of side 2^k + 1, or 2^k tiles that get backfilled."""

    if rows != cols:
        return False
    return _is_power_of_two(rows - 1) or _is_power_of_two(rows)


def prepare_grid(heightfield: Heightfield) -> Heightfield:
    rows, cols = heightfield.shape
    if not supports_grid(rows, cols):
        raise TessellationError(
            f"martini needs a square 2^k or 2^k+1 grid, got {rows}x{cols}"
        )
    if _is_power_of_two(rows - 1):
        return heightfield
    return heightfield.backfilled()


def _apex_side(dx: int, dy: int) -> int:
    """Which of the two triangles sharing a hypotenuse midpoint owns this apex."""

    return 1 if dx > 0 or (dx == 0 and dy > 0) else 0


def hierarchy_errors(heights: np.ndarray) -> np.ndarray:
    """Exact error of every splittable triangle of the full RTIN hierarchy.

    The result is indexed ``[side, row, col]`` by the triangle's hypotenuse
    midpoint and the side its apex lies on (see :func:`_apex_side`). Each level
    of the hierarchy is one batch of congruent triangles, evaluated top down.
    """

    n = int(heights.shape[0]) - 1
    errors = np.zeros((2, n + 1, n + 1), dtype=np.float64)
    a = np.array([[0, 0], [n, n]], dtype=np.int64)
    b = np.array([[n, n], [0, 0]], dtype=np.int64)
    c = np.array([[n, 0], [0, n]], dtype=np.int64)
    while a.shape[0]:
        total = a + b
        if (total % 2).any():
            break
        m = total // 2
        level_errors, _ = triangle_errors(heights, a, b, c)
        dx = c[:, 0] - m[:, 0]
        dy = c[:, 1] - m[:, 1]
        side = ((dx > 0) | ((dx == 0) & (dy > 0))).astype(np.int64)
        errors[side, m[:, 1], m[:, 0]] = level_errors
        a, b, c = np.concatenate([c, b]), np.concatenate([a, c]), np.concatenate([m, m])
    return errors


class RtinRefiner:
    """Right-triangulated irregular network refined until every triangle fits.

    The grid side is ``n + 1`` with ``n`` a power of two. A triangle is
    ``(a, b, c)`` with hypotenuse ``a-b`` and apex ``c``; splitting it at the
    hypotenuse midpoint ``m`` yields ``(c, a, m)`` and ``(b, c, m)``. Splitting
    ``m`` also splits the neighbour sharing the hypotenuse, and first forces
    the split of whatever ancestors those triangles need, so the mesh never
    has T-junctions.

    The worst leaf is always split next, whatever the tolerance, and
    refinement stops at the first mesh whose worst leaf fits. A smaller
    tolerance therefore only continues the same split sequence, so it never
    yields fewer triangles or a larger error.
    """

    def __init__(self, heights: np.ndarray) -> None:
        self._heights = heights
        self._n = int(heights.shape[0]) - 1
        n = self._n
        self._corners = {(0, 0), (n, 0), (0, n), (n, n)}
        self._errors = hierarchy_errors(heights)
        self._split: set[GridPoint] = set()
        self._queue: list[tuple[float, int, Triangle]] = []
        self._counter = itertools.count()

    @property
    def roots(self) -> tuple[Triangle, Triangle]:
        n = self._n
        return ((0, 0), (n, n), (n, 0)), ((n, n), (0, 0), (0, n))

    @staticmethod
    def _midpoint(tri: Triangle) -> GridPoint | None:
        (ax, ay), (bx, by), _ = tri
        if (ax + bx) % 2 or (ay + by) % 2:
            return None
        return (ax + bx) // 2, (ay + by) // 2

    def _in_grid(self, p: GridPoint) -> bool:
        return 0 <= p[0] <= self._n and 0 <= p[1] <= self._n

    def _triangles_at(self, m: GridPoint) -> list[Triangle]:
        """The in-grid triangles whose hypotenuse midpoint is ``m``."""

        x, y = m
        d = (x | y) & -(x | y)
        if (x // d) % 2 and (y // d) % 2:
            corners = [(x - d, y - d), (x + d, y - d), (x + d, y + d), (x - d, y + d)]
            for i, (cx, cy) in enumerate(corners):
                if cx % (4 * d) == 0 and cy % (4 * d) == 0:
                    a = corners[i]
                    b = corners[(i + 2) % 4]
                    apexes = [corners[(i + 1) % 4], corners[(i + 3) % 4]]
                    break
            else:  # pragma: no cover - exactly one corner is aligned
                raise TessellationError(f"No diagonal for split point {m}")
        elif (x // d) % 2:
            a, b = (x - d, y), (x + d, y)
            apexes = [(x, y - d), (x, y + d)]
        else:
            a, b = (x, y - d), (x, y + d)
            apexes = [(x - d, y), (x + d, y)]
        return [(a, b, c) for c in apexes if self._in_grid(c)]

    def _error(self, tri: Triangle, m: GridPoint) -> float:
        _, _, (cx, cy) = tri
        side = _apex_side(cx - m[0], cy - m[1])
        return float(self._errors[side, m[1], m[0]])

    def _push(self, tri: Triangle) -> None:
        m = self._midpoint(tri)
        if m is None:
            return
        err = self._error(tri, m)
        if err > 0.0:
            heapq.heappush(self._queue, (-err, next(self._counter), tri))

    def _split_at(self, m: GridPoint) -> None:
        if m in self._split or m in self._corners:
            return
        triangles = self._triangles_at(m)
        for _, _, apex in triangles:
            if apex not in self._corners:
                self._split_at(apex)
        self._split.add(m)
        for a, b, c in triangles:
            self._push((c, a, m))
            self._push((b, c, m))

    def refine(self, max_error: float) -> None:
        for root in self.roots:
            self._push(root)
        while self._queue:
            neg_err, _, tri = self._queue[0]
            m = self._midpoint(tri)
            if m in self._split:
                heapq.heappop(self._queue)
                continue
            if -neg_err <= max_error:
                break
            heapq.heappop(self._queue)
            self._split_at(m)  # type: ignore[arg-type]

    def leaves(self) -> list[Triangle]:
        out: list[Triangle] = []
        stack = list(self.roots)
        while stack:
            tri = stack.pop()
            m = self._midpoint(tri)
            if m is not None and m in self._split:
                a, b, c = tri
                stack.append((c, a, m))
                stack.append((b, c, m))
            else:
                out.append(tri)
        return out


def triangulate(heights: np.ndarray, max_error: float) -> tuple[np.ndarray, np.ndarray]:
    """Grid-space RTIN of a (2^k + 1)-square height array.

    Returns ``(vertices, triangles)``: (K, 2) int64 ``(col, row)`` points and
    (M, 3) int64 indices into them.
    """

    refiner = RtinRefiner(heights)
    refiner.refine(max_error)

    index: dict[GridPoint, int] = {}
    triangles: list[tuple[int, int, int]] = []
    for tri in refiner.leaves():
        ids = []
        for p in tri:
            if p not in index:
                index[p] = len(index)
            ids.append(index[p])
        triangles.append((ids[0], ids[1], ids[2]))

    vertices = np.array(list(index), dtype=np.int64).reshape(-1, 2)
    return vertices, np.array(triangles, dtype=np.int64).reshape(-1, 3)
