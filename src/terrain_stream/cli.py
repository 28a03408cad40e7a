from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Optional, Sequence

from tile_math.projection import TileBounds, project_tile_bounds
from tile_math.tiles import TileKey, tile_geo_bbox

from .config import TerrainLayerConfig, load_terrain_layer_config
from .decoder import DecodeParams, resolve_preset
from .errors import TerrainError
from .fetcher import HttpFetcher
from .loader import TerrainTileLoader, TileData
from .observability import configure_logging, request_context
from .settings import FetchSettings
from .tessellation import TesselatorHint

logger = logging.getLogger(__name__)


def _parse_tile(value: str) -> TileKey:
    parts = value.strip().split("/")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"Expected Z/X/Y, got {value!r}")
    try:
        z, x, y = (int(p) for p in parts)
        return TileKey(x=x, y=y, z=z)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid tile {value!r}: {exc}") from exc


def _add_mesh_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--max-error",
        type=float,
        default=None,
        help="Max vertical error in meters (default: config value or 4.0)",
    )
    parser.add_argument(
        "--tesselator",
        choices=[h.value for h in TesselatorHint],
        default=None,
        help="Tessellation strategy (default: auto)",
    )
    parser.add_argument(
        "--decoder",
        default=None,
        help="Elevation decoder preset: grayscale, terrarium or mapbox",
    )
    parser.add_argument(
        "--scalers",
        type=float,
        nargs=4,
        metavar=("R", "G", "B", "OFFSET"),
        default=None,
        help="Explicit decoder: height = r*R + g*G + b*B + OFFSET",
    )
    parser.add_argument("--texture", default=None, help="Texture URL or template")
    parser.add_argument(
        "--config",
        default=None,
        help="terrain-layer YAML providing defaults for every option",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="terrain-stream",
        description="Decode elevation rasters into error-bounded terrain meshes.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    mesh = subparsers.add_parser("mesh", help="Mesh one elevation image (URL or path)")
    mesh.add_argument("source", nargs="?", default=None, help="Elevation URL or path")
    mesh.add_argument(
        "--bounds",
        type=float,
        nargs=4,
        metavar=("MIN_X", "MIN_Y", "MAX_X", "MAX_Y"),
        default=None,
        help="World bounds of the mesh (default: raster grid)",
    )
    _add_mesh_options(mesh)

    tile = subparsers.add_parser("tile", help="Load one Z/X/Y tile from a URL template")
    tile.add_argument("template", nargs="?", default=None, help="Elevation URL template")
    tile.add_argument("tile", type=_parse_tile, help="Tile as Z/X/Y")
    _add_mesh_options(tile)

    bounds = subparsers.add_parser(
        "tile-bounds", help="Print the geographic and projected bounds of a tile"
    )
    bounds.add_argument("tile", type=_parse_tile, help="Tile as Z/X/Y")
    return parser


def _resolve_config(args: argparse.Namespace) -> TerrainLayerConfig:
    base = load_terrain_layer_config(args.config) if args.config else TerrainLayerConfig()
    overrides: dict[str, Any] = {}
    if args.max_error is not None:
        overrides["mesh_max_error"] = args.max_error
    if args.tesselator is not None:
        overrides["tesselator"] = TesselatorHint(args.tesselator)
    if args.scalers is not None:
        r, g, b, offset = args.scalers
        overrides["elevation_decoder"] = DecodeParams(
            r_scaler=r, g_scaler=g, b_scaler=b, offset=offset
        )
    elif args.decoder is not None:
        overrides["elevation_decoder"] = resolve_preset(args.decoder)
    if args.texture is not None:
        overrides["texture"] = args.texture
    source = getattr(args, "source", None) or getattr(args, "template", None)
    if source is not None:
        overrides["elevation_data"] = source
    if getattr(args, "bounds", None) is not None:
        overrides["bounds"] = tuple(args.bounds)
    if not overrides:
        return base
    return TerrainLayerConfig.model_validate({**base.model_dump(), **overrides})


def _summary(data: Optional[TileData]) -> dict[str, Any]:
    if data is None:
        return {"loaded": False}
    return {
        "loaded": True,
        "tile": str(data.key),
        "texture": data.texture.url if data.texture else None,
        **data.mesh.summary(),
    }


async def _run_mesh(config: TerrainLayerConfig) -> Optional[TileData]:
    elevation = config.elevation_data
    if elevation is not None and not isinstance(elevation, str):
        raise SystemExit("mesh needs a single elevation source, not a template list")
    texture = config.texture if isinstance(config.texture, str) else None
    async with HttpFetcher(FetchSettings()) as fetcher:
        loader = TerrainTileLoader(fetcher)
        return await loader.load_single(
            elevation,
            texture,
            config.elevation_decoder,
            config.mesh_max_error,
            config.tesselator,
            config.tile_bounds,
        )


async def _run_tile(config: TerrainLayerConfig, key: TileKey) -> Optional[TileData]:
    async with HttpFetcher(FetchSettings()) as fetcher:
        loader = TerrainTileLoader(fetcher)
        return await loader.load_tile(
            key,
            config.elevation_data,
            config.texture,
            config.elevation_decoder,
            config.mesh_max_error,
            config.tesselator,
            config.tile_bounds,
        )


def _tile_bounds(key: TileKey) -> dict[str, Any]:
    bbox = tile_geo_bbox(key)
    projected: TileBounds = project_tile_bounds(bbox, key.z)
    return {
        "tile": str(key),
        "geo_bbox": [bbox.west, bbox.south, bbox.east, bbox.north],
        "bounds": list(projected.as_tuple()),
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(debug=bool(args.debug), log_level=None if args.debug else "WARNING")

    if args.command == "tile-bounds":
        payload = _tile_bounds(args.tile)
    else:
        try:
            config = _resolve_config(args)
        except (FileNotFoundError, ValueError) as exc:
            raise SystemExit(str(exc)) from exc

        with request_context():
            try:
                if args.command == "mesh":
                    data = asyncio.run(_run_mesh(config))
                else:
                    data = asyncio.run(_run_tile(config, args.tile))
            except TerrainError as exc:
                logger.error("terrain_cli.failed", extra={"error": str(exc)})
                raise SystemExit(f"{type(exc).__name__}: {exc}") from exc
        payload = _summary(data)

    print(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
