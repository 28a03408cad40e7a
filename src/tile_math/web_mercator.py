from __future__ import annotations

import math
from typing import Final

WEB_MERCATOR_MAX_LAT: Final[float] = 85.05112878

# Size of the whole world in world units at zoom 0.
WORLD_SIZE: Final[float] = 512.0


def clamp_lat(lat: float) -> float:
    return max(-WEB_MERCATOR_MAX_LAT, min(WEB_MERCATOR_MAX_LAT, lat))


def lon_to_tile_x(lon: float, zoom: int) -> int:
    n = 2**zoom
    x = int(math.floor((lon + 180.0) / 360.0 * n))
    return max(0, min(n - 1, x))


def lat_to_tile_y(lat: float, zoom: int) -> int:
    n = 2**zoom
    lat = clamp_lat(lat)
    lat_rad = math.radians(lat)
    y = int(math.floor((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n))
    return max(0, min(n - 1, y))


def tile_x_to_lon(x: float, zoom: int) -> float:
    n = 2**zoom
    return x / n * 360.0 - 180.0


def tile_y_to_lat(y: float, zoom: int) -> float:
    n = 2**zoom
    lat_rad = math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n)))
    return math.degrees(lat_rad)


def lng_lat_to_world(lon: float, lat: float) -> tuple[float, float]:
    """Project degrees to zoom-0 world units.

    The world spans ``[0, WORLD_SIZE]`` on both axes with y growing northwards.
    """

    lam = math.radians(float(lon))
    phi = math.radians(clamp_lat(float(lat)))
    x = WORLD_SIZE * (lam + math.pi) / (2.0 * math.pi)
    y = WORLD_SIZE * (math.pi + math.log(math.tan(math.pi / 4.0 + phi / 2.0))) / (
        2.0 * math.pi
    )
    return x, y


def world_to_lng_lat(x: float, y: float) -> tuple[float, float]:
    lam = float(x) / WORLD_SIZE * 2.0 * math.pi - math.pi
    phi = 2.0 * (math.atan(math.exp(float(y) / WORLD_SIZE * 2.0 * math.pi - math.pi)) - math.pi / 4.0)
    return math.degrees(lam), math.degrees(phi)
