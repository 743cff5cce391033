"""
S3 에셋 다운로더

비공개 버킷의 객체를 인증된 GetObject로 내려받습니다.
locator가 https://<bucket>.<region>.digitaloceanspaces.com/path/to/image.jpg 형태면
버킷은 설정(또는 BUCKET_NAME)에서, 키는 URL 경로에서 가져옵니다.
s3://bucket/key 형태면 버킷도 locator에서 가져옵니다.

boto3 클라이언트는 동기식이므로 호출은 asyncio.to_thread로 실행합니다.
"""

import asyncio
import logging
import os
import time
from typing import Any
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError as BotoClientError

from client.base import BaseAssetFetcher
from client.exception import AssetFetchError
from client.model.client import FetcherConfig

logger = logging.getLogger(__name__)


def object_location(locator: str, default_bucket: str | None) -> tuple[str | None, str]:
    """locator -> (bucket, key)"""
    parsed = urlparse(locator)
    key = unquote(parsed.path).lstrip("/")
    if parsed.scheme == "s3":
        return parsed.netloc or default_bucket, key
    return default_bucket, key


class S3AssetFetcher(BaseAssetFetcher):
    """boto3 기반 S3 호환 스토리지 다운로더"""

    def __init__(self, config: FetcherConfig | None = None, client: Any | None = None):
        self._config = config or FetcherConfig(type="s3")
        s3_config = self._config.s3
        self._bucket = s3_config.bucket or os.environ.get("BUCKET_NAME")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=s3_config.endpoint_url,
            region_name=s3_config.region_name,
            aws_access_key_id=s3_config.access_key_id,
            aws_secret_access_key=s3_config.secret_access_key,
            config=Config(
                connect_timeout=self._config.connect_timeout_seconds,
                read_timeout=self._config.timeout_seconds,
                retries={"max_attempts": s3_config.max_attempts, "mode": "standard"},
            ),
        )

    async def fetch(self, locator: str) -> bytes:
        bucket, key = object_location(locator, self._bucket)
        if not bucket:
            raise AssetFetchError(locator, "bucket not configured (client.fetcher.s3.bucket or BUCKET_NAME)")
        if not key:
            raise AssetFetchError(locator, "empty object key")

        start_time = time.monotonic()
        logger.debug(f"Downloading object: bucket={bucket}, key={key}")

        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=bucket, Key=key)
            status_code = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 200)
            if status_code != 200:
                raise AssetFetchError(locator, f"unexpected status code {status_code}")
            content = await asyncio.to_thread(response["Body"].read)
        except BotoClientError as e:
            error = e.response.get("Error", {})
            raise AssetFetchError(locator, f"{error.get('Code', 'ClientError')}: {error.get('Message', e)}") from e
        except BotoCoreError as e:
            raise AssetFetchError(locator, f"{type(e).__name__}: {e}") from e

        if not content:
            raise AssetFetchError(locator, "empty object")

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.debug(f"Downloaded object ({len(content)} bytes) in {elapsed_ms:.0f}ms: {bucket}/{key}")
        return content

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)
