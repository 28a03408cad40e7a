from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Final

import numpy as np
from PIL import Image, UnidentifiedImageError

from .decoder import GRAYSCALE, DecodeParams, decode_array
from .errors import RasterDecodeError

_COLOR_MODES: Final[set[str]] = {"RGB", "RGBA", "RGBX"}
_PALETTE_MODES: Final[set[str]] = {"L", "LA", "P", "PA", "1"}
_SINGLE_BAND_MODES: Final[set[str]] = {"I", "F", "I;16", "I;16B", "I;16L", "I;16N"}


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class RasterTile:
    """Decoded raster pixels as an (H, W, C) array, C in 1..4."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = self.pixels
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        if pixels.ndim != 3:
            raise RasterDecodeError(f"Raster must be 2D or 3D, got shape {pixels.shape}")
        if not (1 <= pixels.shape[2] <= 4):
            raise RasterDecodeError(
                f"Unexpected raster channel count: {pixels.shape[2]}"
            )
        object.__setattr__(self, "pixels", _readonly(np.array(pixels, copy=True)))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @staticmethod
    def from_bytes(data: bytes) -> "RasterTile":
        """Decode an encoded image (PNG, WebP, ...) with Pillow."""

        if not data:
            raise RasterDecodeError("Empty raster payload")
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                return RasterTile.from_image(image)
        except (UnidentifiedImageError, OSError) as exc:
            raise RasterDecodeError(f"Cannot decode raster: {exc}") from exc

    @staticmethod
    def from_image(image: Image.Image) -> "RasterTile":
        mode = image.mode
        if mode in _COLOR_MODES:
            arr = np.asarray(image.convert("RGBA") if mode == "RGBX" else image)
        elif mode in _PALETTE_MODES:
            arr = np.asarray(image.convert("RGB"))
        elif mode in _SINGLE_BAND_MODES:
            # 16-bit and float DEMs carry the height in one band.
            arr = np.asarray(image, dtype=np.float64)
        else:
            raise RasterDecodeError(f"Unsupported raster mode: {mode}")
        return RasterTile(pixels=arr)


@dataclass(frozen=True)
class Heightfield:
    """A regular (rows, cols) grid of heights in meters, row 0 at the north edge."""

    heights: np.ndarray

    def __post_init__(self) -> None:
        heights = np.asarray(self.heights, dtype=np.float64)
        if heights.ndim != 2:
            raise ValueError("heights must be a 2D array")
        if heights.size and not np.all(np.isfinite(heights)):
            raise ValueError("heights must be finite")
        object.__setattr__(self, "heights", _readonly(np.array(heights, copy=True)))

    @property
    def shape(self) -> tuple[int, int]:
        return int(self.heights.shape[0]), int(self.heights.shape[1])

    @property
    def rows(self) -> int:
        return self.shape[0]

    @property
    def cols(self) -> int:
        return self.shape[1]

    def normalized(self) -> "Heightfield":
        """Return a grid with at least 2x2 samples.

        Empty grids become a flat quad at height 0; a single row or column is
        replicated so the grid still spans an area.
        """

        rows, cols = self.shape
        if rows >= 2 and cols >= 2:
            return self
        if rows == 0 or cols == 0:
            return Heightfield(np.zeros((2, 2), dtype=np.float64))
        padded = np.pad(
            self.heights,
            ((0, max(0, 2 - rows)), (0, max(0, 2 - cols))),
            mode="edge",
        )
        return Heightfield(padded)

    def backfilled(self) -> "Heightfield":
        """Append one replicated row and column (2^k tile -> 2^k + 1 grid)."""

        return Heightfield(np.pad(self.heights, ((0, 1), (0, 1)), mode="edge"))


def heightfield_from_raster(
    raster: RasterTile, params: DecodeParams = GRAYSCALE
) -> Heightfield:
    heights = decode_array(raster.pixels, params)
    if heights.size and not np.all(np.isfinite(heights)):
        raise RasterDecodeError("Decoded heights contain non-finite values")
    return Heightfield(heights)


def decode_heightfield(data: bytes, params: DecodeParams = GRAYSCALE) -> Heightfield:
    return heightfield_from_raster(RasterTile.from_bytes(data), params)
