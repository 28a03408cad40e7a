from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Final, Sequence

import numpy as np


@dataclass(frozen=True)
class DecodeParams:
    """Linear mapping from pixel channels to a height in meters.

    ``height = r * r_scaler + g * g_scaler + b * b_scaler + offset``
    """

    r_scaler: float = 1.0
    g_scaler: float = 0.0
    b_scaler: float = 0.0
    offset: float = 0.0

    def __post_init__(self) -> None:
        for name in ("r_scaler", "g_scaler", "b_scaler", "offset"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ValueError(f"{name} must be a real number, got {value!r}")
            if not math.isfinite(float(value)):
                raise ValueError(f"{name} must be finite, got {value!r}")

    @property
    def scalers(self) -> tuple[float, float, float]:
        return float(self.r_scaler), float(self.g_scaler), float(self.b_scaler)


GRAYSCALE: Final[DecodeParams] = DecodeParams()
TERRARIUM: Final[DecodeParams] = DecodeParams(
    r_scaler=256.0, g_scaler=1.0, b_scaler=1.0 / 256.0, offset=-32768.0
)
MAPBOX_TERRAIN_RGB: Final[DecodeParams] = DecodeParams(
    r_scaler=6553.6, g_scaler=25.6, b_scaler=0.1, offset=-10000.0
)

PRESETS: Final[dict[str, DecodeParams]] = {
    "grayscale": GRAYSCALE,
    "terrarium": TERRARIUM,
    "mapbox": MAPBOX_TERRAIN_RGB,
}


def decode(pixel: Sequence[float], params: DecodeParams = GRAYSCALE) -> float:
    """Decode one pixel; missing channels count as 0 and alpha is ignored."""

    channels = [float(c) for c in list(pixel)[:3]]
    channels.extend([0.0] * (3 - len(channels)))
    r, g, b = channels
    return r * params.r_scaler + g * params.g_scaler + b * params.b_scaler + params.offset


def decode_array(channels: np.ndarray, params: DecodeParams = GRAYSCALE) -> np.ndarray:
    """Vectorised :func:`decode` over an (H, W) or (H, W, C) array."""

    arr = np.asarray(channels, dtype=np.float64)
    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3:
        raise ValueError(f"Expected an (H, W, C) array, got shape {arr.shape}")

    # Same summation order as decode() so both agree bit for bit.
    heights = np.zeros(arr.shape[:2], dtype=np.float64)
    for index, scaler in enumerate(params.scalers):
        if index >= arr.shape[2]:
            continue
        heights = heights + arr[:, :, index] * scaler
    return heights + float(params.offset)


def resolve_preset(name: str) -> DecodeParams:
    key = (name or "").strip().lower()
    if key not in PRESETS:
        raise ValueError(
            f"Unknown elevation decoder preset {name!r}; expected one of: {sorted(PRESETS)}"
        )
    return PRESETS[key]
