from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Optional, Union

from tile_math.projection import TileBounds

from ..heightfield import Heightfield
from ..mesh import Mesh, build_mesh
from . import delatin, martini
from .raster import mesh_max_error, triangle_error

logger = logging.getLogger(__name__)


class TesselatorHint(str, Enum):
    AUTO = "auto"
    MARTINI = "martini"
    DELATIN = "delatin"


def parse_tesselator(value: Union[str, TesselatorHint]) -> TesselatorHint:
    if isinstance(value, TesselatorHint):
        return value
    normalized = (value or "").strip().lower()
    try:
        return TesselatorHint(normalized)
    except ValueError as exc:
        raise ValueError(
            f"Unknown tesselator {value!r}; expected one of: "
            f"{[h.value for h in TesselatorHint]}"
        ) from exc


def select_tesselator(
    heightfield: Heightfield, hint: Union[str, TesselatorHint] = TesselatorHint.AUTO
) -> TesselatorHint:
    """Resolve ``auto`` to a concrete strategy for this grid shape."""

    hint = parse_tesselator(hint)
    if hint is not TesselatorHint.AUTO:
        return hint
    rows, cols = heightfield.normalized().shape
    if martini.supports_grid(rows, cols):
        return TesselatorHint.MARTINI
    return TesselatorHint.DELATIN


def tessellate(
    heightfield: Heightfield,
    max_error: float,
    hint: Union[str, TesselatorHint] = TesselatorHint.AUTO,
    bounds: Optional[TileBounds] = None,
) -> Mesh:
    """Triangulate ``heightfield`` so no sample deviates more than ``max_error``.

    Empty or single-row/column grids are padded to a flat-spanning 2x2 grid
    first. ``martini`` needs a square 2^k or 2^k+1 grid; a 2^k grid is
    backfilled with one replicated row and column, which then spans ``bounds``.
    """

    if isinstance(max_error, bool) or not math.isfinite(float(max_error)) or max_error <= 0:
        raise ValueError(f"max_error must be a positive finite number, got {max_error!r}")

    strategy = select_tesselator(heightfield, hint)
    grid = heightfield.normalized()

    if strategy is TesselatorHint.MARTINI:
        grid = martini.prepare_grid(grid)
        vertices, triangles = martini.triangulate(grid.heights, float(max_error))
    else:
        vertices, triangles = delatin.triangulate(grid.heights, float(max_error))

    mesh = build_mesh(
        grid, vertices, triangles, bounds=bounds, tesselator=strategy.value
    )
    logger.debug(
        "tessellate.done",
        extra={
            "tesselator": strategy.value,
            "grid_shape": list(grid.shape),
            "max_error": float(max_error),
            "vertex_count": mesh.vertex_count,
            "triangle_count": mesh.triangle_count,
        },
    )
    return mesh


__all__ = [
    "TesselatorHint",
    "mesh_max_error",
    "parse_tesselator",
    "select_tesselator",
    "tessellate",
    "triangle_error",
]
