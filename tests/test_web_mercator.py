from __future__ import annotations

import pytest


def test_clamp_lat_clamps_to_web_mercator_limit() -> None:
    from tile_math.web_mercator import WEB_MERCATOR_MAX_LAT, clamp_lat

    assert clamp_lat(0.0) == pytest.approx(0.0)
    assert clamp_lat(100.0) == pytest.approx(WEB_MERCATOR_MAX_LAT)
    assert clamp_lat(-100.0) == pytest.approx(-WEB_MERCATOR_MAX_LAT)


def test_lon_lat_to_tile_clamps_to_valid_range() -> None:
    from tile_math.web_mercator import lat_to_tile_y, lon_to_tile_x

    assert lon_to_tile_x(-180.0, 1) == 0
    assert lon_to_tile_x(0.0, 1) == 1
    assert lon_to_tile_x(9999.0, 1) == 1
    assert lat_to_tile_y(0.0, 1) == 1
    assert lat_to_tile_y(100.0, 1) == 0
    assert lat_to_tile_y(-100.0, 1) == 1


def test_tile_at_and_geo_bbox_agree() -> None:
    from tile_math.tiles import tile_at, tile_geo_bbox

    key = tile_at(116.39, 39.9, 10)
    bbox = tile_geo_bbox(key)
    assert bbox.west <= 116.39 <= bbox.east
    assert bbox.south <= 39.9 <= bbox.north


def test_tile_geo_bbox_at_zoom_one() -> None:
    from tile_math.tiles import TileKey, tile_geo_bbox
    from tile_math.web_mercator import WEB_MERCATOR_MAX_LAT

    bbox = tile_geo_bbox(TileKey(x=0, y=0, z=1))
    assert bbox.west == pytest.approx(-180.0, abs=1e-6)
    assert bbox.east == pytest.approx(0.0, abs=1e-6)
    assert bbox.north == pytest.approx(WEB_MERCATOR_MAX_LAT, abs=1e-6)
    assert bbox.south == pytest.approx(0.0, abs=1e-6)


def test_tile_key_validation_and_tms_row() -> None:
    from tile_math.tiles import TileKey

    key = TileKey(x=1, y=0, z=2)
    assert key.tms_y() == 3
    assert str(key) == "2/1/0"
    with pytest.raises(ValueError):
        TileKey(x=4, y=0, z=2)
    with pytest.raises(ValueError):
        TileKey(x=0, y=0, z=-1)


def test_world_coordinates_round_trip() -> None:
    from tile_math.web_mercator import WORLD_SIZE, lng_lat_to_world, world_to_lng_lat

    assert lng_lat_to_world(0.0, 0.0) == pytest.approx((WORLD_SIZE / 2, WORLD_SIZE / 2))
    x, y = lng_lat_to_world(-122.4, 37.8)
    assert world_to_lng_lat(x, y) == pytest.approx((-122.4, 37.8))
    # y grows northwards.
    assert lng_lat_to_world(0.0, 10.0)[1] > lng_lat_to_world(0.0, -10.0)[1]
