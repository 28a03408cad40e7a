from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_TERRAIN_STREAM_PREFIX = "TERRAIN_STREAM_"


class FetchSettings(BaseSettings):
    """HTTP fetch tuning, overridable with ``TERRAIN_STREAM_*`` env vars."""

    timeout_s: float = Field(default=30.0, gt=0)
    max_requests: int = Field(default=6, ge=1, le=256)
    user_agent: str = "terrain-stream/0.1"
    follow_redirects: bool = True

    model_config = SettingsConfigDict(env_prefix=_TERRAIN_STREAM_PREFIX, extra="ignore")
