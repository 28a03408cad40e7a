from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Literal, Mapping, Optional, Union

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from tile_math.projection import TileBounds

from .decoder import DecodeParams, resolve_preset
from .tessellation import TesselatorHint, parse_tesselator

SUPPORTED_SCHEMA_VERSIONS: Final[set[int]] = {1}

DEFAULT_TERRAIN_LAYER_CONFIG_NAME: Final[str] = "terrain-layer.yaml"
DEFAULT_TERRAIN_LAYER_CONFIG_ENV: Final[str] = "TERRAIN_STREAM_LAYER_CONFIG"
TERRAIN_STREAM_CONFIG_DIR_ENV: Final[str] = "TERRAIN_STREAM_CONFIG_DIR"

_DECODER_KEYS: Final[dict[str, str]] = {
    "r_scaler": "r_scaler",
    "rScaler": "r_scaler",
    "g_scaler": "g_scaler",
    "gScaler": "g_scaler",
    "b_scaler": "b_scaler",
    "bScaler": "b_scaler",
    "offset": "offset",
}

UrlSource = Union[str, tuple[str, ...]]


class ModePolicy(str, Enum):
    SINGLE = "single"
    TILED = "tiled"
    AUTO = "auto"


def _coerce_decode_params(value: Any) -> DecodeParams:
    if value is None:
        return DecodeParams()
    if isinstance(value, DecodeParams):
        return value
    if isinstance(value, str):
        return resolve_preset(value)
    if not isinstance(value, Mapping):
        raise ValueError(
            "elevation_decoder must be a preset name or a mapping of scalers"
        )
    unknown = sorted(set(value) - set(_DECODER_KEYS))
    if unknown:
        raise ValueError(f"Unknown elevation_decoder keys: {unknown}")
    kwargs = {_DECODER_KEYS[key]: raw for key, raw in value.items()}
    return DecodeParams(**kwargs)


def _coerce_url_source(value: Any) -> Optional[UrlSource]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (list, tuple)):
        templates = tuple(value)
        if not templates or not all(isinstance(t, str) and t.strip() for t in templates):
            raise ValueError("URL template lists must hold non-empty strings")
        return tuple(t.strip() for t in templates)
    raise ValueError(f"Expected a URL, a URL template or a list of them, got {value!r}")


class TileOptions(BaseModel):
    """Scheduler options forwarded verbatim to the tile pyramid."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    max_requests: int = Field(
        default=6, ge=0, validation_alias=AliasChoices("max_requests", "maxRequests")
    )
    tile_size: int = Field(
        default=512, ge=1, validation_alias=AliasChoices("tile_size", "tileSize")
    )
    min_zoom: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("min_zoom", "minZoom")
    )
    max_zoom: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("max_zoom", "maxZoom")
    )
    extent: Optional[tuple[float, float, float, float]] = None
    max_cache_size: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("max_cache_size", "maxCacheSize"),
    )
    max_cache_byte_size: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("max_cache_byte_size", "maxCacheByteSize"),
    )
    refinement_strategy: Literal["best-available", "no-overlap", "never"] = Field(
        default="best-available",
        validation_alias=AliasChoices("refinement_strategy", "refinementStrategy"),
    )

    @model_validator(mode="after")
    def _validate_zoom_range(self) -> "TileOptions":
        if self.max_zoom is not None and self.max_zoom < self.min_zoom:
            raise ValueError(
                f"max_zoom ({self.max_zoom}) must be >= min_zoom ({self.min_zoom})"
            )
        return self

    def as_scheduler_options(self) -> dict[str, Any]:
        return self.model_dump()


class TerrainLayerConfig(BaseModel):
    """Everything that drives a terrain layer: data sources, meshing and display."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    schema_version: int = 1

    elevation_data: Optional[UrlSource] = Field(
        default=None, validation_alias=AliasChoices("elevation_data", "elevationData")
    )
    texture: Optional[UrlSource] = None
    mesh_max_error: float = Field(
        default=4.0,
        gt=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("mesh_max_error", "meshMaxError"),
    )
    bounds: Optional[tuple[float, float, float, float]] = None
    elevation_decoder: DecodeParams = Field(
        default_factory=DecodeParams,
        validation_alias=AliasChoices("elevation_decoder", "elevationDecoder"),
    )
    tesselator: TesselatorHint = TesselatorHint.AUTO
    mode_policy: ModePolicy = Field(
        default=ModePolicy.SINGLE,
        validation_alias=AliasChoices("mode_policy", "modePolicy"),
    )

    color: tuple[int, int, int] = (255, 255, 255)
    wireframe: bool = False
    material: bool = True
    tile_options: TileOptions = Field(
        default_factory=TileOptions,
        validation_alias=AliasChoices("tile_options", "tileOptions"),
    )

    @field_validator("elevation_data", "texture", mode="before")
    @classmethod
    def _validate_url_source(cls, value: Any) -> Optional[UrlSource]:
        return _coerce_url_source(value)

    @field_validator("elevation_decoder", mode="before")
    @classmethod
    def _validate_decoder(cls, value: Any) -> DecodeParams:
        return _coerce_decode_params(value)

    @field_validator("tesselator", mode="before")
    @classmethod
    def _validate_tesselator(cls, value: Any) -> TesselatorHint:
        return parse_tesselator(value)

    @field_validator("bounds")
    @classmethod
    def _validate_bounds(
        cls, value: Optional[tuple[float, float, float, float]]
    ) -> Optional[tuple[float, float, float, float]]:
        if value is None:
            return None
        return TileBounds.from_sequence(value).as_tuple()

    @field_validator("color")
    @classmethod
    def _validate_color(cls, value: tuple[int, int, int]) -> tuple[int, int, int]:
        if not all(0 <= channel <= 255 for channel in value):
            raise ValueError(f"color channels must be within 0..255, got {value}")
        return value

    @model_validator(mode="after")
    def _validate_schema_version(self) -> "TerrainLayerConfig":
        if self.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise ValueError(
                f"Unsupported terrain layer schema_version={self.schema_version}; "
                f"supported versions: {sorted(SUPPORTED_SCHEMA_VERSIONS)}"
            )
        return self

    @property
    def tile_bounds(self) -> Optional[TileBounds]:
        if self.bounds is None:
            return None
        return TileBounds.from_sequence(self.bounds)


def _absolute(path: Union[str, Path]) -> Path:
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = (Path.cwd() / candidate).resolve()
    return candidate


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    if path is not None:
        return _absolute(path)

    explicit = os.environ.get(DEFAULT_TERRAIN_LAYER_CONFIG_ENV)
    if explicit:
        return _absolute(explicit)

    config_dir = os.environ.get(TERRAIN_STREAM_CONFIG_DIR_ENV)
    if config_dir:
        return _absolute(config_dir) / DEFAULT_TERRAIN_LAYER_CONFIG_NAME
    return Path.cwd() / "config" / DEFAULT_TERRAIN_LAYER_CONFIG_NAME


def _parse_yaml(text: str, *, source: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to load terrain layer YAML: {source}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"terrain layer config must be a mapping: {source}")
    return data


def load_terrain_layer_config(
    path: Optional[Union[str, Path]] = None,
) -> TerrainLayerConfig:
    config_path = _resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"terrain layer config file not found: {config_path}")

    raw_text = config_path.read_text(encoding="utf-8")
    data = dict(_parse_yaml(raw_text, source=config_path))

    try:
        return TerrainLayerConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid terrain layer config ({config_path}): {exc}") from exc


@lru_cache(maxsize=8)
def _get_terrain_layer_config_cached(
    config_path: str, mtime_ns: int, size: int
) -> TerrainLayerConfig:
    _ = (mtime_ns, size)
    return load_terrain_layer_config(config_path)


def get_terrain_layer_config(
    path: Optional[Union[str, Path]] = None,
) -> TerrainLayerConfig:
    resolved = _resolve_config_path(path)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(
            f"terrain layer config file not found: {resolved}"
        ) from exc
    return _get_terrain_layer_config_cached(str(resolved), stat.st_mtime_ns, stat.st_size)


get_terrain_layer_config.cache_clear = _get_terrain_layer_config_cached.cache_clear  # type: ignore[attr-defined]
