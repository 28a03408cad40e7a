from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from tile_math.projection import TileBounds, project_tile_bounds
from tile_math.templates import UrlTemplate, url_from_template
from tile_math.tiles import TileKey, tile_geo_bbox

from .decoder import GRAYSCALE, DecodeParams
from .errors import ElevationFetchError, TextureFetchError
from .fetcher import FetchedResource, HttpFetcher
from .heightfield import decode_heightfield
from .mesh import Mesh
from .tessellation import TesselatorHint, tessellate

logger = logging.getLogger(__name__)

SINGLE_MESH_KEY = TileKey(x=0, y=0, z=0)


@dataclass(frozen=True)
class Texture:
    """Raw texture payload; decoding is left to the renderer."""

    url: str
    data: bytes
    media_type: Optional[str] = None


@dataclass(frozen=True, eq=False)
class TileData:
    key: TileKey
    mesh: Mesh
    texture: Optional[Texture] = None
    generation: int = 0


class TerrainTileLoader:
    """Fetches an elevation raster (plus optional texture) and meshes it."""

    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    async def _fetch_elevation(self, url: str) -> FetchedResource:
        try:
            return await self.fetcher.fetch(url)
        except httpx.HTTPStatusError as exc:
            raise ElevationFetchError(
                f"Elevation request failed with HTTP {exc.response.status_code}: {url}",
                url=url,
            ) from exc
        except (httpx.HTTPError, OSError, ValueError) as exc:
            raise ElevationFetchError(
                f"Elevation request failed: {url}: {exc}", url=url
            ) from exc

    async def _get_texture(self, url: str) -> Texture:
        try:
            resource = await self.fetcher.fetch(url)
        except (httpx.HTTPError, OSError, ValueError) as exc:
            raise TextureFetchError(f"Texture request failed: {url}: {exc}") from exc
        if not resource.data:
            raise TextureFetchError(f"Empty texture payload: {url}")
        return Texture(url=resource.url, data=resource.data, media_type=resource.media_type)

    async def _fetch_texture(self, url: Optional[str]) -> Optional[Texture]:
        if url is None:
            return None
        try:
            return await self._get_texture(url)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "terrain_texture.fetch_failed",
                extra={"url": url, "error": f"{type(exc).__name__}: {exc}"},
            )
            return None

    async def _load(
        self,
        key: TileKey,
        elevation_url: str,
        texture_url: Optional[str],
        decode_params: DecodeParams,
        max_error: float,
        tesselator: Union[str, TesselatorHint],
        bounds: Optional[TileBounds],
        generation: int,
    ) -> TileData:
        started = time.perf_counter()
        elevation, texture = await asyncio.gather(
            self._fetch_elevation(elevation_url),
            self._fetch_texture(texture_url),
        )

        heightfield = decode_heightfield(elevation.data, decode_params)
        mesh = tessellate(heightfield, max_error, tesselator, bounds=bounds)

        logger.info(
            "terrain_tile.loaded",
            extra={
                "tile": str(key),
                "url": elevation_url,
                "generation": generation,
                "tesselator": mesh.tesselator,
                "vertex_count": mesh.vertex_count,
                "triangle_count": mesh.triangle_count,
                "has_texture": texture is not None,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return TileData(key=key, mesh=mesh, texture=texture, generation=generation)

    async def load_tile(
        self,
        key: TileKey,
        elevation_template: Optional[UrlTemplate],
        texture_template: Optional[UrlTemplate] = None,
        decode_params: DecodeParams = GRAYSCALE,
        max_error: float = 4.0,
        tesselator: Union[str, TesselatorHint] = TesselatorHint.AUTO,
        bounds_override: Optional[TileBounds] = None,
        *,
        generation: int = 0,
    ) -> Optional[TileData]:
        """Load and mesh one tile.

        Returns ``None`` when no elevation source is configured. Elevation
        fetch failures raise :class:`ElevationFetchError`; texture failures are
        logged and the tile is returned without a texture. Bounds come from a
        projection centred on the tile unless ``bounds_override`` is given.
        """

        elevation_url = url_from_template(elevation_template, key)
        if elevation_url is None:
            return None
        texture_url = url_from_template(texture_template, key)

        bounds = bounds_override
        if bounds is None:
            bounds = project_tile_bounds(tile_geo_bbox(key), key.z)

        return await self._load(
            key,
            elevation_url,
            texture_url,
            decode_params,
            max_error,
            tesselator,
            bounds,
            generation,
        )

    async def load_single(
        self,
        elevation_url: Optional[str],
        texture_url: Optional[str] = None,
        decode_params: DecodeParams = GRAYSCALE,
        max_error: float = 4.0,
        tesselator: Union[str, TesselatorHint] = TesselatorHint.AUTO,
        bounds: Optional[TileBounds] = None,
        *,
        generation: int = 0,
    ) -> Optional[TileData]:
        """Mesh a whole dataset as one mesh.

        Without ``bounds`` the mesh spans the raster's own grid,
        ``(0, 0, cols - 1, rows - 1)``.
        """

        if not elevation_url:
            return None
        return await self._load(
            SINGLE_MESH_KEY,
            elevation_url,
            texture_url or None,
            decode_params,
            max_error,
            tesselator,
            bounds,
            generation,
        )
