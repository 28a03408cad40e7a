from __future__ import annotations

import math
from dataclasses import dataclass

from .tiles import GeoBBox, TileKey, tile_geo_bbox
from .web_mercator import lng_lat_to_world, world_to_lng_lat


@dataclass(frozen=True)
class TileBounds:
    """Planar bounding box in projected units."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __post_init__(self) -> None:
        values = (self.min_x, self.min_y, self.max_x, self.max_y)
        if not all(math.isfinite(float(v)) for v in values):
            raise ValueError(f"TileBounds must be finite: {values}")
        if not (self.min_x < self.max_x and self.min_y < self.max_y):
            raise ValueError(f"Expected min < max for TileBounds, got {values}")

    @classmethod
    def from_sequence(cls, values: object) -> "TileBounds":
        if isinstance(values, TileBounds):
            return values
        try:
            min_x, min_y, max_x, max_y = (float(v) for v in values)  # type: ignore[union-attr]
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"bounds must be [min_x, min_y, max_x, max_y], got {values!r}"
            ) from exc
        return cls(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.min_x, self.min_y, self.max_x, self.max_y

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


@dataclass(frozen=True)
class LocalMercatorProjection:
    """Web Mercator centred on a point and scaled for a zoom level.

    The centre maps to ``(0, 0)``; one world unit at zoom ``z`` is
    ``1 / 2**z`` of a zoom-0 world unit, so a tile at its own zoom is always
    about ``WORLD_SIZE`` units wide regardless of where it sits on the globe.
    """

    longitude: float
    latitude: float
    zoom: float

    @property
    def scale(self) -> float:
        return 2.0 ** float(self.zoom)

    def _origin(self) -> tuple[float, float]:
        return lng_lat_to_world(self.longitude, self.latitude)

    def project(self, lon: float, lat: float) -> tuple[float, float]:
        ox, oy = self._origin()
        wx, wy = lng_lat_to_world(lon, lat)
        return (wx - ox) * self.scale, (wy - oy) * self.scale

    def unproject(self, x: float, y: float) -> tuple[float, float]:
        ox, oy = self._origin()
        return world_to_lng_lat(ox + float(x) / self.scale, oy + float(y) / self.scale)


def projection_for_bbox(bbox: GeoBBox, zoom: float) -> LocalMercatorProjection:
    lon, lat = bbox.center
    return LocalMercatorProjection(longitude=lon, latitude=lat, zoom=zoom)


def project_tile_bounds(bbox: GeoBBox, zoom: float) -> TileBounds:
    """Project a tile's geographic box through a projection centred on it."""

    projection = projection_for_bbox(bbox, zoom)
    min_x, min_y = projection.project(bbox.west, bbox.south)
    max_x, max_y = projection.project(bbox.east, bbox.north)
    return TileBounds(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)


def tile_key_bounds(key: TileKey) -> TileBounds:
    return project_tile_bounds(tile_geo_bbox(key), key.z)
