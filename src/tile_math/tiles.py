from __future__ import annotations

from dataclasses import dataclass

from .web_mercator import lat_to_tile_y, lon_to_tile_x, tile_x_to_lon, tile_y_to_lat


@dataclass(frozen=True)
class GeoBBox:
    """A geographic rectangle in degrees (EPSG:4326)."""

    west: float
    south: float
    east: float
    north: float

    def __post_init__(self) -> None:
        if not (-180.0 <= float(self.west) <= 180.0):
            raise ValueError(f"west out of range: {self.west}")
        if not (-180.0 <= float(self.east) <= 180.0):
            raise ValueError(f"east out of range: {self.east}")
        if not (-90.0 <= float(self.south) <= 90.0):
            raise ValueError(f"south out of range: {self.south}")
        if not (-90.0 <= float(self.north) <= 90.0):
            raise ValueError(f"north out of range: {self.north}")
        if not (self.west < self.east):
            raise ValueError(f"Expected west < east, got {self.west} >= {self.east}")
        if not (self.south < self.north):
            raise ValueError(
                f"Expected south < north, got {self.south} >= {self.north}"
            )

    @property
    def center(self) -> tuple[float, float]:
        return (self.west + self.east) / 2.0, (self.south + self.north) / 2.0


@dataclass(frozen=True)
class TileKey:
    """XYZ tile coordinates (Web Mercator, y origin at the north edge)."""

    x: int
    y: int
    z: int

    def __post_init__(self) -> None:
        if self.z < 0:
            raise ValueError(f"Invalid zoom: {self.z}")
        max_index = num_tiles(self.z) - 1
        if not (0 <= self.x <= max_index):
            raise ValueError(f"x out of range at z={self.z}: {self.x}")
        if not (0 <= self.y <= max_index):
            raise ValueError(f"y out of range at z={self.z}: {self.y}")

    def tms_y(self) -> int:
        """Row index with the origin at the south edge."""

        return num_tiles(self.z) - self.y - 1

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


def num_tiles(z: int) -> int:
    """Number of tiles along each axis at zoom z."""

    if z < 0:
        raise ValueError(f"Invalid zoom: {z}")
    return 1 << z


def tile_geo_bbox(key: TileKey) -> GeoBBox:
    west = tile_x_to_lon(key.x, key.z)
    east = tile_x_to_lon(key.x + 1, key.z)
    north = tile_y_to_lat(key.y, key.z)
    south = tile_y_to_lat(key.y + 1, key.z)
    return GeoBBox(west=west, south=south, east=east, north=north)


def tile_at(lon: float, lat: float, z: int) -> TileKey:
    """The tile containing a point; latitudes are clamped to the Mercator limit."""

    return TileKey(x=lon_to_tile_x(lon, z), y=lat_to_tile_y(lat, z), z=z)
