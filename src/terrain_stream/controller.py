from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Union

from tile_math.projection import TileBounds
from tile_math.templates import is_tile_template, template_trigger
from tile_math.tiles import TileKey

from .config import ModePolicy, TerrainLayerConfig
from .decoder import DecodeParams
from .errors import TerrainError
from .loader import TerrainTileLoader, Texture, TileData
from .mesh import Mesh
from .tessellation import TesselatorHint
from .zrange import ZRange, ZRangeAggregator

logger = logging.getLogger(__name__)

Color = tuple[int, int, int]
BoundsValue = Union[TileBounds, Sequence[float], None]
BoundsSource = Union[
    BoundsValue,
    Awaitable[BoundsValue],
    Callable[[], Union[BoundsValue, Awaitable[BoundsValue]]],
]


class TerrainMode(str, Enum):
    SINGLE = "single"
    TILED = "tiled"


def select_mode(config: TerrainLayerConfig) -> TerrainMode:
    policy = config.mode_policy
    if policy is ModePolicy.TILED:
        return TerrainMode.TILED
    if policy is ModePolicy.AUTO and is_tile_template(config.elevation_data):
        return TerrainMode.TILED
    return TerrainMode.SINGLE


# Fields whose change re-runs the single-mesh load.
SINGLE_RELOAD_FIELDS: frozenset[str] = frozenset(
    {"elevation_data", "mesh_max_error", "bounds", "tesselator", "elevation_decoder", "texture"}
)
# Fields whose change invalidates every loaded tile.
TILE_RELOAD_FIELDS: frozenset[str] = frozenset(
    {"elevation_data", "texture", "mesh_max_error", "elevation_decoder", "tesselator"}
)


@dataclass(frozen=True)
class ConfigSnapshot:
    """The comparable subset of a config that drives loading."""

    mode: TerrainMode
    elevation_data: Optional[Union[str, tuple[str, ...]]]
    texture: Optional[Union[str, tuple[str, ...]]]
    mesh_max_error: float
    bounds: Optional[tuple[float, float, float, float]]
    tesselator: TesselatorHint
    elevation_decoder: DecodeParams

    @classmethod
    def from_config(cls, config: TerrainLayerConfig) -> "ConfigSnapshot":
        return cls(
            mode=select_mode(config),
            elevation_data=config.elevation_data,
            texture=config.texture,
            mesh_max_error=config.mesh_max_error,
            bounds=config.bounds,
            tesselator=config.tesselator,
            elevation_decoder=config.elevation_decoder,
        )

    def diff(self, previous: Optional["ConfigSnapshot"]) -> frozenset[str]:
        names = [f.name for f in fields(self)]
        if previous is None:
            return frozenset(names)
        return frozenset(n for n in names if getattr(self, n) != getattr(previous, n))


@dataclass(frozen=True, eq=False)
class TerrainState:
    mode: TerrainMode = TerrainMode.SINGLE
    current: Optional[TileData] = None
    z_range: Optional[ZRange] = None
    generation: int = 0
    tile_generation: int = 0

    @property
    def current_mesh(self) -> Optional[Mesh]:
        return self.current.mesh if self.current else None

    @property
    def current_texture(self) -> Optional[Texture]:
        return self.current.texture if self.current else None


@dataclass(frozen=True, eq=False)
class MeshLayerSpec:
    """One mesh for the renderer, anchored at the cartesian origin."""

    mesh: Optional[Mesh]
    texture: Optional[Texture]
    color: Color
    wireframe: bool
    material: bool
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    coordinate_system: str = "cartesian"


@dataclass(frozen=True, eq=False)
class TileLayerSpec:
    """A tile pyramid whose tiles come from :meth:`TerrainModeController.get_tile_data`."""

    get_tile_data: Callable[[TileKey], Awaitable[Optional[TileData]]]
    render_sub_layers: Callable[[Optional[TileData]], Optional[MeshLayerSpec]]
    on_viewport_load: Callable[[Optional[Iterable[Optional[TileData]]]], Optional[ZRange]]
    z_range: Optional[ZRange]
    update_triggers: dict[str, Any]
    scheduler_options: dict[str, Any] = field(default_factory=dict)
    color: Color = (255, 255, 255)
    wireframe: bool = False
    material: bool = True


async def resolve_bounds(source: BoundsSource) -> Optional[TileBounds]:
    """Accept bounds as a value, an awaitable, or a zero-argument callable."""

    value: Any = source
    if callable(value):
        value = value()
    if inspect.isawaitable(value):
        value = await value
    if value is None:
        return None
    return TileBounds.from_sequence(value)


class TerrainModeController:
    """Keeps the terrain state in step with the latest configuration.

    In single mode one mesh is loaded per relevant config change and only the
    newest request may land. In tiled mode the controller serves the tile
    scheduler and tracks the z range of resident tiles.
    """

    def __init__(self, loader: TerrainTileLoader) -> None:
        self.loader = loader
        self._config: Optional[TerrainLayerConfig] = None
        self._snapshot: Optional[ConfigSnapshot] = None
        self._state = TerrainState()
        self._latest_generation = 0
        self._z_range = ZRangeAggregator()

    @property
    def state(self) -> TerrainState:
        return self._state

    @property
    def config(self) -> Optional[TerrainLayerConfig]:
        return self._config

    async def update(
        self, config: TerrainLayerConfig, *, bounds: BoundsSource = None
    ) -> TerrainState:
        """Apply a new configuration and return the resulting state.

        ``bounds`` overrides ``config.bounds`` for the single mesh; passing it
        always counts as a bounds change.
        """

        snapshot = ConfigSnapshot.from_config(config)
        changed = set(snapshot.diff(self._snapshot))
        if bounds is not None:
            changed.add("bounds")
        self._config = config
        self._snapshot = snapshot

        mode = snapshot.mode
        if mode is not self._state.mode:
            logger.info(
                "terrain_mode.changed",
                extra={"previous": self._state.mode.value, "mode": mode.value},
            )
            changed.add("mode")

        if mode is TerrainMode.TILED:
            return self._update_tiled(changed)
        return await self._update_single(config, changed, bounds)

    def _update_tiled(self, changed: set[str]) -> TerrainState:
        if "mode" in changed:
            # Drops any single-mesh load still in flight.
            self._latest_generation += 1
        if "mode" in changed or changed & TILE_RELOAD_FIELDS:
            self._z_range.reset()
            self._state = replace(
                self._state,
                mode=TerrainMode.TILED,
                current=None,
                z_range=None,
                tile_generation=self._state.tile_generation + 1,
            )
            logger.debug(
                "terrain_tiles.invalidated",
                extra={
                    "tile_generation": self._state.tile_generation,
                    "changed": sorted(changed),
                },
            )
        return self._state

    async def _update_single(
        self,
        config: TerrainLayerConfig,
        changed: set[str],
        bounds: BoundsSource,
    ) -> TerrainState:
        if "mode" in changed:
            self._z_range.reset()
            self._state = replace(self._state, mode=TerrainMode.SINGLE, z_range=None)
        if not ("mode" in changed or changed & SINGLE_RELOAD_FIELDS):
            return self._state

        self._latest_generation += 1
        generation = self._latest_generation

        elevation = config.elevation_data
        if not isinstance(elevation, str):
            self._state = replace(self._state, current=None, generation=generation)
            return self._state

        resolved = await resolve_bounds(bounds if bounds is not None else config.bounds)
        texture = config.texture if isinstance(config.texture, str) else None
        try:
            data = await self.loader.load_single(
                elevation,
                texture,
                config.elevation_decoder,
                config.mesh_max_error,
                config.tesselator,
                resolved,
                generation=generation,
            )
        except TerrainError as exc:
            if generation == self._latest_generation:
                raise
            self._drop_stale(generation, error=f"{type(exc).__name__}: {exc}")
            return self._state

        if generation != self._latest_generation:
            self._drop_stale(generation)
            return self._state

        self._state = replace(self._state, current=data, generation=generation)
        return self._state

    def _drop_stale(self, generation: int, error: Optional[str] = None) -> None:
        logger.debug(
            "terrain_single.stale_result_dropped",
            extra={
                "generation": generation,
                "latest": self._latest_generation,
                "error": error,
            },
        )

    async def get_tile_data(self, key: TileKey) -> Optional[TileData]:
        """Tile scheduler callback: load one tile for the current configuration."""

        config = self._config
        if config is None or self._state.mode is not TerrainMode.TILED:
            return None
        return await self.loader.load_tile(
            key,
            config.elevation_data,
            config.texture,
            config.elevation_decoder,
            config.mesh_max_error,
            config.tesselator,
            generation=self._state.tile_generation,
        )

    def on_tiles_resident(
        self, tiles: Optional[Iterable[Optional[TileData]]]
    ) -> Optional[ZRange]:
        """Tile scheduler callback: widen the z range over the resident tiles."""

        if not tiles:
            return self._state.z_range
        tile_generation = self._state.tile_generation
        current = [
            tile
            for tile in tiles
            if tile is not None and tile.generation == tile_generation
        ]
        z_range = self._z_range.update(current)
        if z_range != self._state.z_range:
            self._state = replace(self._state, z_range=z_range)
        return self._state.z_range

    def render_tile(self, tile: Optional[TileData]) -> Optional[MeshLayerSpec]:
        if tile is None:
            return None
        config = self._require_config()
        return MeshLayerSpec(
            mesh=tile.mesh,
            texture=tile.texture,
            color=config.color,
            wireframe=config.wireframe,
            material=config.material,
        )

    def render_layers(self) -> Union[MeshLayerSpec, TileLayerSpec]:
        config = self._require_config()
        if self._state.mode is TerrainMode.TILED:
            return TileLayerSpec(
                get_tile_data=self.get_tile_data,
                render_sub_layers=self.render_tile,
                on_viewport_load=self.on_tiles_resident,
                z_range=self._state.z_range,
                update_triggers={
                    "elevation_data": template_trigger(config.elevation_data),
                    "texture": template_trigger(config.texture),
                    "mesh_max_error": config.mesh_max_error,
                    "elevation_decoder": config.elevation_decoder,
                    "tesselator": config.tesselator.value,
                },
                scheduler_options=config.tile_options.as_scheduler_options(),
                color=config.color,
                wireframe=config.wireframe,
                material=config.material,
            )
        return MeshLayerSpec(
            mesh=self._state.current_mesh,
            texture=self._state.current_texture,
            color=config.color,
            wireframe=config.wireframe,
            material=config.material,
        )

    def _require_config(self) -> TerrainLayerConfig:
        if self._config is None:
            raise RuntimeError("TerrainModeController.update() has not been called")
        return self._config
