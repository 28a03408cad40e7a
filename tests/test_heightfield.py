from __future__ import annotations

import numpy as np
import pytest

from conftest import gray_png, png_bytes
from terrain_stream.decoder import TERRARIUM
from terrain_stream.errors import RasterDecodeError, TerrainError
from terrain_stream.heightfield import (
    Heightfield,
    RasterTile,
    decode_heightfield,
    heightfield_from_raster,
)


def test_decode_heightfield_from_png() -> None:
    heights = np.array([[0, 10, 20], [30, 40, 50]], dtype=np.uint8)
    hf = decode_heightfield(gray_png(heights))
    assert hf.shape == (2, 3)
    np.testing.assert_array_equal(hf.heights, heights.astype(np.float64))


def test_decode_heightfield_terrarium_png() -> None:
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    rgb[..., 0] = 128
    rgb[0, 0, 1] = 100
    hf = decode_heightfield(png_bytes(rgb), TERRARIUM)
    assert hf.heights[0, 0] == 100.0
    assert hf.heights[1, 1] == 0.0


def test_raster_tile_grayscale_image_is_expanded() -> None:
    raster = RasterTile.from_bytes(png_bytes(np.full((3, 3), 7, dtype=np.uint8)))
    assert raster.channels == 3
    assert int(raster.pixels[0, 0, 0]) == 7


def test_raster_tile_rejects_bad_channel_count() -> None:
    with pytest.raises(RasterDecodeError):
        RasterTile(pixels=np.zeros((2, 2, 5)))
    with pytest.raises(RasterDecodeError):
        RasterTile(pixels=np.zeros((2, 2, 2, 2)))


def test_malformed_raster_raises_decode_error() -> None:
    with pytest.raises(RasterDecodeError):
        decode_heightfield(b"not an image")
    with pytest.raises(TerrainError):
        decode_heightfield(b"")


def test_raster_arrays_are_read_only() -> None:
    raster = RasterTile(pixels=np.zeros((2, 2, 3), dtype=np.uint8))
    with pytest.raises(ValueError):
        raster.pixels[0, 0, 0] = 1
    hf = heightfield_from_raster(raster)
    with pytest.raises(ValueError):
        hf.heights[0, 0] = 1.0


def test_heightfield_rejects_non_finite() -> None:
    with pytest.raises(ValueError):
        Heightfield(np.array([[0.0, np.nan], [0.0, 0.0]]))
    with pytest.raises(ValueError):
        Heightfield(np.zeros(4))


def test_normalized_handles_degenerate_grids() -> None:
    empty = Heightfield(np.zeros((0, 0))).normalized()
    assert empty.shape == (2, 2)
    assert float(empty.heights.max()) == 0.0

    row = Heightfield(np.array([[1.0, 2.0, 3.0]])).normalized()
    assert row.shape == (2, 3)
    np.testing.assert_array_equal(row.heights[1], [1.0, 2.0, 3.0])

    single = Heightfield(np.array([[9.0]])).normalized()
    assert single.shape == (2, 2)
    assert np.all(single.heights == 9.0)


def test_backfilled_replicates_last_row_and_column() -> None:
    hf = Heightfield(np.arange(4, dtype=np.float64).reshape(2, 2))
    filled = hf.backfilled()
    assert filled.shape == (3, 3)
    np.testing.assert_array_equal(filled.heights[2], [2.0, 3.0, 3.0])
    np.testing.assert_array_equal(filled.heights[:, 2], [1.0, 3.0, 3.0])
