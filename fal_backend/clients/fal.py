from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from fal_backend.errors import DownloadError, UpstreamRequestError, UpstreamTimeout
from fal_backend.services.normalizer import UpstreamResponse, normalize_response


class FalClient:
    """Thin async HTTP layer over the generation queue API and arbitrary asset URLs."""

    def __init__(
        self,
        auth: httpx.Auth | None,
        submit_timeout: float = 120.0,
        poll_timeout: float = 30.0,
        download_timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.auth = auth
        self.submit_timeout = submit_timeout
        self.poll_timeout = poll_timeout
        self.download_timeout = download_timeout
        self.transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return self.auth is not None

    async def post_json(self, url: str, payload: dict[str, Any]) -> UpstreamResponse:
        async with self._client(self.submit_timeout, auth=self.auth) as client:
            try:
                # Total deadline; the client timeout only bounds each connect/read/write step.
                response = await asyncio.wait_for(client.post(url, json=payload), timeout=self.submit_timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                self.log.warning("upstream submission timed out", extra={"url": url, "timeout": self.submit_timeout})
                raise UpstreamTimeout(url, self.submit_timeout) from exc
            except httpx.HTTPError as exc:
                self.log.warning("upstream submission failed", extra={"url": url}, exc_info=exc)
                raise UpstreamRequestError(url, str(exc) or exc.__class__.__name__) from exc
        self.log.info("upstream submission answered", extra={"url": url, "status": response.status_code})
        return normalize_response(response.status_code, response.text)

    async def get_json(self, url: str) -> UpstreamResponse:
        async with self._client(self.poll_timeout, auth=self.auth) as client:
            try:
                response = await asyncio.wait_for(client.get(url), timeout=self.poll_timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                raise UpstreamTimeout(url, self.poll_timeout) from exc
            except httpx.HTTPError as exc:
                raise UpstreamRequestError(url, str(exc) or exc.__class__.__name__) from exc
        return normalize_response(response.status_code, response.text)

    async def download(self, url: str, dest_path: str, role: str = "media") -> int:
        """Stream ``url`` into ``dest_path`` within ``download_timeout`` seconds overall.

        Upstream credentials are not sent to asset hosts.
        """
        try:
            written = await asyncio.wait_for(self._stream_to_file(url, dest_path, role), timeout=self.download_timeout)
        except asyncio.TimeoutError as exc:
            self.log.warning("asset download timed out", extra={"role": role, "url": url, "timeout": self.download_timeout})
            raise DownloadError(role, url, reason=f"timed out after {self.download_timeout:g}s") from exc
        self.log.info("asset downloaded", extra={"role": role, "url": url, "bytes": written})
        return written

    async def _stream_to_file(self, url: str, dest_path: str, role: str) -> int:
        written = 0
        async with self._client(self.download_timeout, follow_redirects=True) as client:
            try:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise DownloadError(role, url, status_code=response.status_code)
                    with open(dest_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            if chunk:
                                f.write(chunk)
                                written += len(chunk)
            except httpx.HTTPError as exc:
                raise DownloadError(role, url, reason=str(exc) or exc.__class__.__name__) from exc
        return written

    def _client(self, timeout: float, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport, **kwargs)
