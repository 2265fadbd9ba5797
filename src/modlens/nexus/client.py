import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any, Self

import httpx

logger = logging.getLogger(__name__)

BASE_URL = "https://api.nexusmods.com"

_STREAM_CHUNK_SIZE = 65_536  # 64 KB


class NexusRateLimitError(Exception):
    def __init__(self, hourly_remaining: int, daily_remaining: int, reset: str) -> None:
        self.hourly_remaining = hourly_remaining
        self.daily_remaining = daily_remaining
        self.reset = reset
        super().__init__(f"Rate limited (hourly={hourly_remaining}, daily={daily_remaining})")


class NexusPremiumRequiredError(Exception):
    pass


class NexusNotFoundError(Exception):
    pass


class DownloadTooLargeError(Exception):
    def __init__(self, limit: int, size: int) -> None:
        self.limit = limit
        self.size = size
        super().__init__(f"Download exceeds size limit ({size} > {limit} bytes)")


class DownloadCancelledError(Exception):
    pass


class NexusClient:
    """Async client for the catalog endpoints used to fetch mod archives.

    Must be used as an async context manager.  The API key is sent as a
    request header only.
    """

    def __init__(self, api_key: str, *, download_timeout: float = 300.0) -> None:
        self._api_key = api_key
        self._download_timeout = download_timeout
        self._client: httpx.AsyncClient | None = None
        self.hourly_remaining: int | None = None
        self.daily_remaining: int | None = None

    def __repr__(self) -> str:
        return f"NexusClient(hourly_remaining={self.hourly_remaining})"

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            headers={"APIKEY": self._api_key, "Accept": "application/json"},
            timeout=30.0,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("NexusClient not entered as context manager")
        return self._client

    def _read_rate_limit_headers(self, resp: httpx.Response) -> None:
        h_rem = resp.headers.get("X-RL-Hourly-Remaining")
        d_rem = resp.headers.get("X-RL-Daily-Remaining")
        if h_rem is not None:
            self.hourly_remaining = int(h_rem)
        if d_rem is not None:
            self.daily_remaining = int(d_rem)

    async def _get(self, path: str) -> Any:
        resp = await self.client.get(path)
        self._read_rate_limit_headers(resp)
        if resp.status_code == 429:
            raise NexusRateLimitError(
                hourly_remaining=self.hourly_remaining or 0,
                daily_remaining=self.daily_remaining or 0,
                reset=resp.headers.get("X-RL-Hourly-Reset", ""),
            )
        if resp.status_code == 404:
            raise NexusNotFoundError(f"Not found: {path}")
        resp.raise_for_status()
        return resp.json()

    async def get_download_links(
        self,
        game_domain: str,
        mod_id: int,
        file_id: int,
    ) -> list[dict[str, Any]]:
        """Fetch CDN download URLs. Premium-only for direct API downloads."""
        path = f"/v1/games/{game_domain}/mods/{mod_id}/files/{file_id}/download_link.json"
        try:
            return await self._get(path)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 403:
                raise NexusPremiumRequiredError(
                    "Premium account required for direct downloads"
                ) from e
            raise

    async def stream_download(
        self,
        url: str,
        dest: Path,
        *,
        max_bytes: int | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Stream a file from a CDN URL to *dest* and return its size.

        Aborts with ``DownloadTooLargeError`` as soon as the declared or
        received size passes *max_bytes*.  A partial file is removed.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with (
                httpx.AsyncClient(follow_redirects=True, timeout=self._download_timeout) as cdn_client,
                cdn_client.stream("GET", url) as resp,
            ):
                resp.raise_for_status()
                total = int(resp.headers.get("Content-Length", 0))
                if max_bytes is not None and total > max_bytes:
                    raise DownloadTooLargeError(max_bytes, total)
                downloaded = 0
                with open(dest, "wb") as f:
                    async for chunk in resp.aiter_bytes(chunk_size=_STREAM_CHUNK_SIZE):
                        if cancel_event and cancel_event.is_set():
                            raise DownloadCancelledError("Download cancelled")
                        downloaded += len(chunk)
                        if max_bytes is not None and downloaded > max_bytes:
                            raise DownloadTooLargeError(max_bytes, downloaded)
                        f.write(chunk)
                        if progress_callback:
                            progress_callback(downloaded, total)
        except BaseException:
            dest.unlink(missing_ok=True)
            raise
        logger.debug("Downloaded %d bytes to %s", downloaded, dest.name)
        return downloaded
