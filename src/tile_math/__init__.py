"""Tile addressing and projection helpers (XYZ Web Mercator tiles)."""

from .projection import LocalMercatorProjection
from .projection import TileBounds
from .projection import project_tile_bounds
from .projection import tile_key_bounds
from .templates import is_tile_template
from .templates import url_from_template
from .tiles import GeoBBox
from .tiles import TileKey
from .tiles import tile_at
from .tiles import tile_geo_bbox

__all__ = [
    "GeoBBox",
    "LocalMercatorProjection",
    "TileBounds",
    "TileKey",
    "is_tile_template",
    "project_tile_bounds",
    "tile_at",
    "tile_geo_bbox",
    "tile_key_bounds",
    "url_from_template",
]
