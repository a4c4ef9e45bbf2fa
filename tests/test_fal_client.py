import asyncio
import contextlib
import time

import pytest

from fal_backend.clients.fal import FalClient
from fal_backend.errors import DownloadError, UpstreamTimeout


@contextlib.asynccontextmanager
async def trickling_server(interval: float = 0.3, chunks: int = 20):
    """Local HTTP server that answers 200 and then sends its chunked body one byte at a time."""
    writers: list[asyncio.StreamWriter] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            for line in head.decode("latin-1").split("\r\n"):
                name, _, value = line.partition(":")
                if name.lower() == "content-length" and value.strip():
                    await reader.readexactly(int(value.strip()))
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/json\r\n"
                b"Transfer-Encoding: chunked\r\n\r\n"
            )
            await writer.drain()
            for _ in range(chunks):
                if writer.is_closing():
                    return
                writer.write(b"1\r\n \r\n")
                await writer.drain()
                await asyncio.sleep(interval)
            writer.write(b"0\r\n\r\n")
            await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            return
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        for writer in writers:
            writer.close()
        server.close()
        await server.wait_closed()


@pytest.fixture(autouse=True)
def no_proxy(monkeypatch):
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.asyncio
async def test_submission_deadline_covers_slow_body():
    client = FalClient(auth=None, submit_timeout=0.5)
    async with trickling_server() as base_url:
        started = time.monotonic()
        with pytest.raises(UpstreamTimeout):
            await client.post_json(f"{base_url}/submit", {"prompt": "cat"})
        elapsed = time.monotonic() - started
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_poll_deadline_covers_slow_body():
    client = FalClient(auth=None, poll_timeout=0.5)
    async with trickling_server() as base_url:
        with pytest.raises(UpstreamTimeout):
            await client.get_json(f"{base_url}/requests/job-1")


@pytest.mark.asyncio
async def test_download_deadline_covers_slow_body(tmp_path):
    client = FalClient(auth=None, download_timeout=0.5)
    async with trickling_server() as base_url:
        started = time.monotonic()
        with pytest.raises(DownloadError) as excinfo:
            await client.download(f"{base_url}/clip.mp4", str(tmp_path / "clip.mp4"), role="video")
        elapsed = time.monotonic() - started
    assert excinfo.value.role == "video"
    assert excinfo.value.status_code is None
    assert "timed out" in str(excinfo.value)
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_fast_body_completes_within_deadline():
    client = FalClient(auth=None, submit_timeout=5.0)
    async with trickling_server(interval=0.01, chunks=3) as base_url:
        response = await client.post_json(f"{base_url}/submit", {"prompt": "cat"})
    assert response.status_code == 200
    assert response.data == {"raw": "   "}
