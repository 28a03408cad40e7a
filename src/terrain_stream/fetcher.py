from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from .settings import FetchSettings

logger = logging.getLogger(__name__)

_REMOTE_SCHEMES = {"http", "https"}


@dataclass(frozen=True)
class FetchedResource:
    url: str
    data: bytes
    media_type: Optional[str] = None


def _local_path(url: str) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme in _REMOTE_SCHEMES:
        return None
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme == "" or len(parsed.scheme) == 1:
        # Bare paths, including Windows drive letters.
        return Path(url)
    raise ValueError(f"Unsupported URL scheme: {parsed.scheme!r} ({url})")


class HttpFetcher:
    """Fetches raw resources over HTTP(S) or from local files.

    Use as an async context manager so the underlying ``httpx.AsyncClient`` is
    closed. At most ``settings.max_requests`` fetches run at once. Non-2xx
    responses raise ``httpx.HTTPStatusError``; there is no retry.
    """

    def __init__(
        self,
        settings: Optional[FetchSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or FetchSettings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=self.settings.follow_redirects,
            timeout=httpx.Timeout(self.settings.timeout_s),
            headers={"User-Agent": self.settings.user_agent},
            transport=transport,
        )
        self._semaphore = asyncio.Semaphore(self.settings.max_requests)

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> FetchedResource:
        path = _local_path(url)
        async with self._semaphore:
            if path is not None:
                data = await asyncio.to_thread(path.read_bytes)
                media_type, _ = mimetypes.guess_type(path.name)
                logger.debug(
                    "fetch.local", extra={"url": url, "bytes": len(data)}
                )
                return FetchedResource(url=url, data=data, media_type=media_type)

            resp = await self._client.get(url)
            resp.raise_for_status()
            content_type = resp.headers.get("content-type")
            media_type = content_type.split(";")[0].strip() if content_type else None
            logger.debug(
                "fetch.remote",
                extra={"url": url, "status_code": resp.status_code, "bytes": len(resp.content)},
            )
            return FetchedResource(url=url, data=resp.content, media_type=media_type or None)
