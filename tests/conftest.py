import io
import sys
from pathlib import Path

import numpy as np
import pytest

SRC = Path(__file__).resolve().parents[1] / "src"

sys.path.insert(0, str(SRC))


def png_bytes(pixels: np.ndarray) -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.fromarray(np.asarray(pixels, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


def gray_png(heights: np.ndarray) -> bytes:
    """Grayscale heights (0..255) encoded in the red channel of an RGB PNG."""

    h = np.asarray(heights, dtype=np.uint8)
    rgb = np.stack([h, np.zeros_like(h), np.zeros_like(h)], axis=-1)
    return png_bytes(rgb)


@pytest.fixture(autouse=True)
def _clear_terrain_config_cache():
    from terrain_stream.config import get_terrain_layer_config

    get_terrain_layer_config.cache_clear()
    yield
    get_terrain_layer_config.cache_clear()
