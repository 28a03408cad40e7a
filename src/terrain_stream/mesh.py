from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from tile_math.projection import TileBounds

from .heightfield import Heightfield

BoundingBox = tuple[float, float, float, float, float, float]


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Mesh:
    """An indexed triangle mesh.

    ``positions`` is (N, 3) float32, ``indices`` is (M, 3) uint32 with
    counter-clockwise winding seen from +z, ``tex_coords`` is (N, 2) float32.
    ``bounding_box`` is ``(min_x, min_y, min_z, max_x, max_y, max_z)``.
    """

    positions: np.ndarray
    indices: np.ndarray
    tex_coords: np.ndarray
    bounding_box: BoundingBox = field(init=False)
    tesselator: str = "unknown"

    def __post_init__(self) -> None:
        positions = np.asarray(self.positions, dtype=np.float32).reshape(-1, 3)
        indices = np.asarray(self.indices, dtype=np.uint32).reshape(-1, 3)
        tex_coords = np.asarray(self.tex_coords, dtype=np.float32).reshape(-1, 2)

        if positions.shape[0] == 0:
            raise ValueError("Mesh must have at least one vertex")
        if tex_coords.shape[0] != positions.shape[0]:
            raise ValueError("tex_coords must have one entry per position")
        if indices.size and int(indices.max()) >= positions.shape[0]:
            raise ValueError("Mesh index out of range")

        mins = positions.min(axis=0)
        maxs = positions.max(axis=0)
        bbox = (
            float(mins[0]),
            float(mins[1]),
            float(mins[2]),
            float(maxs[0]),
            float(maxs[1]),
            float(maxs[2]),
        )
        object.__setattr__(self, "positions", _readonly(positions))
        object.__setattr__(self, "indices", _readonly(indices))
        object.__setattr__(self, "tex_coords", _readonly(tex_coords))
        object.__setattr__(self, "bounding_box", bbox)

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.indices.shape[0])

    @property
    def z_bounds(self) -> tuple[float, float]:
        return self.bounding_box[2], self.bounding_box[5]

    def summary(self) -> dict[str, object]:
        return {
            "tesselator": self.tesselator,
            "vertex_count": self.vertex_count,
            "triangle_count": self.triangle_count,
            "bounding_box": list(self.bounding_box),
        }


def default_bounds(heightfield: Heightfield) -> TileBounds:
    """Sample extent ``(0, 0, cols - 1, rows - 1)``, one unit per sample step.

    Samples sit on grid nodes, so this is the extent in which every vertex
    lands on an integer coordinate. The pixel extent ``(cols, rows)`` would
    stretch each step by ``cols / (cols - 1)``.
    """

    rows, cols = heightfield.shape
    return TileBounds(min_x=0.0, min_y=0.0, max_x=float(cols - 1), max_y=float(rows - 1))


def build_mesh(
    heightfield: Heightfield,
    vertices: np.ndarray,
    triangles: np.ndarray,
    *,
    bounds: Optional[TileBounds] = None,
    tesselator: str = "unknown",
) -> Mesh:
    """Lift grid-space vertices (col, row) onto the heightfield inside ``bounds``.

    Triangles are re-wound so every face is counter-clockwise in world space.
    """

    rows, cols = heightfield.shape
    bounds = bounds or default_bounds(heightfield)

    vertices = np.asarray(vertices, dtype=np.int64).reshape(-1, 2)
    triangles = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    col = vertices[:, 0]
    row = vertices[:, 1]

    x_scale = bounds.width / (cols - 1)
    y_scale = bounds.height / (rows - 1)

    positions = np.empty((vertices.shape[0], 3), dtype=np.float64)
    positions[:, 0] = bounds.min_x + col * x_scale
    positions[:, 1] = bounds.max_y - row * y_scale
    positions[:, 2] = heightfield.heights[row, col]

    tex_coords = np.empty((vertices.shape[0], 2), dtype=np.float64)
    tex_coords[:, 0] = col / (cols - 1)
    tex_coords[:, 1] = row / (rows - 1)

    if triangles.size:
        a = positions[triangles[:, 0], :2]
        b = positions[triangles[:, 1], :2]
        c = positions[triangles[:, 2], :2]
        cross = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (
            c[:, 0] - a[:, 0]
        )
        clockwise = cross < 0
        triangles = triangles.copy()
        triangles[clockwise] = triangles[clockwise][:, [0, 2, 1]]

    return Mesh(
        positions=positions,
        indices=triangles,
        tex_coords=tex_coords,
        tesselator=tesselator,
    )
