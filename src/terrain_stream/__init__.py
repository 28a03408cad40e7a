"""Error-bounded terrain meshes from raster elevation tiles."""

from .config import ModePolicy, TerrainLayerConfig, TileOptions
from .controller import TerrainMode, TerrainModeController, TerrainState
from .decoder import DecodeParams, decode, decode_array
from .errors import (
    ElevationFetchError,
    RasterDecodeError,
    TerrainError,
    TessellationError,
    TextureFetchError,
)
from .fetcher import FetchedResource, HttpFetcher
from .heightfield import Heightfield, RasterTile, decode_heightfield
from .loader import TerrainTileLoader, Texture, TileData
from .mesh import Mesh, build_mesh
from .tessellation import TesselatorHint, select_tesselator, tessellate
from .zrange import ZRange, ZRangeAggregator, update_z_range

__version__ = "0.1.0"

__all__ = [
    "DecodeParams",
    "ElevationFetchError",
    "FetchedResource",
    "Heightfield",
    "HttpFetcher",
    "Mesh",
    "ModePolicy",
    "RasterDecodeError",
    "RasterTile",
    "TerrainError",
    "TerrainLayerConfig",
    "TerrainMode",
    "TerrainModeController",
    "TerrainState",
    "TerrainTileLoader",
    "TessellationError",
    "TesselatorHint",
    "Texture",
    "TextureFetchError",
    "TileData",
    "TileOptions",
    "ZRange",
    "ZRangeAggregator",
    "build_mesh",
    "decode",
    "decode_array",
    "decode_heightfield",
    "select_tesselator",
    "tessellate",
    "update_z_range",
]
