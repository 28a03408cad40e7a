from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

if TYPE_CHECKING:
    from .loader import TileData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ZRange:
    """Elevation extent ``[min_z, max_z]`` used for depth culling."""

    min_z: float
    max_z: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.min_z) and math.isfinite(self.max_z)):
            raise ValueError(f"ZRange must be finite: {self.min_z}, {self.max_z}")
        if self.min_z > self.max_z:
            raise ValueError(f"Expected min_z <= max_z, got {self.min_z} > {self.max_z}")

    def contains(self, other: "ZRange") -> bool:
        return self.min_z <= other.min_z and other.max_z <= self.max_z

    def union(self, other: "ZRange") -> "ZRange":
        return ZRange(min(self.min_z, other.min_z), max(self.max_z, other.max_z))

    def as_tuple(self) -> tuple[float, float]:
        return self.min_z, self.max_z


def update_z_range(
    current: Optional[ZRange], boxes: Iterable[Sequence[float]]
) -> Optional[ZRange]:
    """Widen ``current`` to cover the z extent of every bounding box.

    Boxes are ``(min_x, min_y, min_z, max_x, max_y, max_z)``. The result never
    shrinks; with no boxes ``current`` comes back unchanged.
    """

    mins: list[float] = []
    maxs: list[float] = []
    for box in boxes:
        mins.append(float(box[2]))
        maxs.append(float(box[5]))
    if not mins:
        return current

    candidate = ZRange(min(mins), max(maxs))
    if current is None:
        return candidate
    if current.contains(candidate):
        return current
    return current.union(candidate)


class ZRangeAggregator:
    """Tracks the z range over every tile that has been resident.

    The value is replaced, never mutated, so readers always see a complete
    range.
    """

    def __init__(self, initial: Optional[ZRange] = None) -> None:
        self._value = initial

    @property
    def value(self) -> Optional[ZRange]:
        return self._value

    def update(self, tiles: Iterable[Optional["TileData"]]) -> Optional[ZRange]:
        boxes = [tile.mesh.bounding_box for tile in tiles if tile is not None]
        updated = update_z_range(self._value, boxes)
        if updated != self._value:
            logger.debug(
                "z_range.expanded",
                extra={
                    "previous": self._value.as_tuple() if self._value else None,
                    "z_range": updated.as_tuple() if updated else None,
                },
            )
            self._value = updated
        return self._value

    def reset(self) -> None:
        self._value = None
