"""
HTTP 에셋 다운로더

공개 URL이나 사전서명 URL에서 에셋을 내려받습니다. 비공개 버킷은 client/s3.py를 사용합니다.
"""

import logging
import time

import httpx

from client.base import BaseAssetFetcher
from client.exception import AssetFetchError
from client.model.client import FetcherConfig

logger = logging.getLogger(__name__)


class HttpAssetFetcher(BaseAssetFetcher):
    """httpx 기반 에셋 다운로더"""

    def __init__(self, config: FetcherConfig | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config or FetcherConfig()
        timeout = httpx.Timeout(
            self._config.timeout_seconds, connect=self._config.connect_timeout_seconds
        )
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url or "",
            headers=self._config.headers,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def fetch(self, locator: str) -> bytes:
        start_time = time.monotonic()
        logger.debug(f"Downloading asset: {locator}")

        try:
            response = await self._client.get(locator)
        except httpx.HTTPError as e:
            raise AssetFetchError(locator, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise AssetFetchError(locator, f"unexpected status code {response.status_code}")

        content = response.content
        if not content:
            raise AssetFetchError(locator, "empty response body")

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.debug(f"Downloaded asset ({len(content)} bytes) in {elapsed_ms:.0f}ms: {locator}")
        return content

    async def close(self) -> None:
        await self._client.aclose()
