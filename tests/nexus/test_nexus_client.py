import asyncio
import logging

import httpx
import pytest
import respx

from modlens.nexus.client import (
    BASE_URL,
    DownloadCancelledError,
    DownloadTooLargeError,
    NexusClient,
    NexusNotFoundError,
    NexusPremiumRequiredError,
    NexusRateLimitError,
)

LINK_PATH = "/v1/games/skyrimspecialedition/mods/42/files/7/download_link.json"
CDN_URL = "https://cdn.example.com/files/mod.zip"


class TestNexusClient:
    @pytest.mark.asyncio
    async def test_not_entered_raises(self):
        client = NexusClient("key")
        with pytest.raises(RuntimeError, match="not entered"):
            _ = client.client

    @respx.mock
    @pytest.mark.asyncio
    async def test_apikey_header_present(self):
        route = respx.get(f"{BASE_URL}{LINK_PATH}").mock(
            return_value=httpx.Response(200, json=[{"URI": CDN_URL}])
        )
        async with NexusClient("my-secret-key") as client:
            await client.get_download_links("skyrimspecialedition", 42, 7)
        assert route.calls[0].request.headers["APIKEY"] == "my-secret-key"

    def test_repr_hides_key(self):
        assert "my-secret-key" not in repr(NexusClient("my-secret-key"))

    @respx.mock
    @pytest.mark.asyncio
    async def test_download_links(self):
        respx.get(f"{BASE_URL}{LINK_PATH}").mock(
            return_value=httpx.Response(
                200,
                json=[{"name": "Nexus CDN", "URI": CDN_URL}],
                headers={"X-RL-Hourly-Remaining": "99", "X-RL-Daily-Remaining": "2000"},
            )
        )
        async with NexusClient("key") as client:
            links = await client.get_download_links("skyrimspecialedition", 42, 7)
        assert links == [{"name": "Nexus CDN", "URI": CDN_URL}]
        assert client.hourly_remaining == 99
        assert client.daily_remaining == 2000

    @respx.mock
    @pytest.mark.asyncio
    async def test_premium_required(self):
        respx.get(f"{BASE_URL}{LINK_PATH}").mock(return_value=httpx.Response(403))
        async with NexusClient("key") as client:
            with pytest.raises(NexusPremiumRequiredError):
                await client.get_download_links("skyrimspecialedition", 42, 7)

    @respx.mock
    @pytest.mark.asyncio
    async def test_not_found(self):
        respx.get(f"{BASE_URL}{LINK_PATH}").mock(return_value=httpx.Response(404))
        async with NexusClient("key") as client:
            with pytest.raises(NexusNotFoundError):
                await client.get_download_links("skyrimspecialedition", 42, 7)

    @respx.mock
    @pytest.mark.asyncio
    async def test_rate_limited(self):
        respx.get(f"{BASE_URL}{LINK_PATH}").mock(
            return_value=httpx.Response(
                429,
                headers={
                    "X-RL-Hourly-Remaining": "0",
                    "X-RL-Daily-Remaining": "5",
                    "X-RL-Hourly-Reset": "2026-01-01T00:00:00Z",
                },
            )
        )
        async with NexusClient("key") as client:
            with pytest.raises(NexusRateLimitError) as exc_info:
                await client.get_download_links("skyrimspecialedition", 42, 7)
        assert exc_info.value.daily_remaining == 5
        assert exc_info.value.reset == "2026-01-01T00:00:00Z"

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error_propagates(self):
        respx.get(f"{BASE_URL}{LINK_PATH}").mock(return_value=httpx.Response(500))
        async with NexusClient("key") as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_download_links("skyrimspecialedition", 42, 7)

    @respx.mock
    @pytest.mark.asyncio
    async def test_key_never_logged(self, caplog):
        respx.get(f"{BASE_URL}{LINK_PATH}").mock(return_value=httpx.Response(200, json=[]))
        caplog.set_level(logging.DEBUG)
        async with NexusClient("super-secret") as client:
            await client.get_download_links("skyrimspecialedition", 42, 7)
        assert "super-secret" not in caplog.text


class TestStreamDownload:
    @respx.mock
    @pytest.mark.asyncio
    async def test_writes_file_and_reports_progress(self, tmp_path):
        respx.get(CDN_URL).mock(
            return_value=httpx.Response(200, content=b"x" * 1000, headers={"Content-Length": "1000"})
        )
        progress: list[tuple[int, int]] = []
        dest = tmp_path / "sub" / "mod.zip"
        async with NexusClient("key") as client:
            size = await client.stream_download(
                CDN_URL, dest, progress_callback=lambda d, t: progress.append((d, t))
            )
        assert size == 1000
        assert dest.read_bytes() == b"x" * 1000
        assert progress[-1] == (1000, 1000)

    @respx.mock
    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, tmp_path):
        respx.get(CDN_URL).mock(
            return_value=httpx.Response(200, content=b"x" * 100, headers={"Content-Length": "100"})
        )
        dest = tmp_path / "mod.zip"
        async with NexusClient("key") as client:
            with pytest.raises(DownloadTooLargeError):
                await client.stream_download(CDN_URL, dest, max_bytes=10)
        assert not dest.exists()

    @respx.mock
    @pytest.mark.asyncio
    async def test_streamed_size_over_limit(self, tmp_path):
        async def body():
            for _ in range(4):
                yield b"y" * 10

        respx.get(CDN_URL).mock(return_value=httpx.Response(200, content=body()))
        dest = tmp_path / "mod.zip"
        async with NexusClient("key") as client:
            with pytest.raises(DownloadTooLargeError) as exc_info:
                await client.stream_download(CDN_URL, dest, max_bytes=25)
        assert exc_info.value.limit == 25
        assert not dest.exists()

    @respx.mock
    @pytest.mark.asyncio
    async def test_cancelled(self, tmp_path):
        respx.get(CDN_URL).mock(return_value=httpx.Response(200, content=b"z" * 10))
        cancel = asyncio.Event()
        cancel.set()
        dest = tmp_path / "mod.zip"
        async with NexusClient("key") as client:
            with pytest.raises(DownloadCancelledError):
                await client.stream_download(CDN_URL, dest, cancel_event=cancel)
        assert not dest.exists()

    @respx.mock
    @pytest.mark.asyncio
    async def test_cdn_error(self, tmp_path):
        respx.get(CDN_URL).mock(return_value=httpx.Response(503))
        async with NexusClient("key") as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.stream_download(CDN_URL, tmp_path / "mod.zip")
