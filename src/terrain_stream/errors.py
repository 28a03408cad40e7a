from __future__ import annotations


class TerrainError(RuntimeError):
    """Base error for terrain loading and meshing."""


class ElevationFetchError(TerrainError):
    """Raised when a configured elevation resource cannot be fetched."""

    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message)
        self.url = url


class TextureFetchError(TerrainError):
    """Raised when a texture resource cannot be fetched."""


class RasterDecodeError(TerrainError):
    """Raised when an elevation raster cannot be decoded into heights."""


class TessellationError(TerrainError):
    """Raised when a heightfield cannot be tessellated with the requested strategy."""
