"""
Ollama 임베딩 추론 클라이언트

요청: POST {base_url}/api/embed  {"model": ..., "prompt": <base64 에셋>}
응답: {"embeddings": [[...]]} 또는 {"embedding": [...]}
"""

import base64
import logging
from typing import Any

import httpx

from client.base import BaseEmbeddingInferer
from client.exception import InferenceError
from client.model.client import InfererConfig

logger = logging.getLogger(__name__)


def encode_asset(asset: bytes) -> str:
    """에셋 바이트 -> 추론 요청용 base64 문자열"""
    return base64.b64encode(asset).decode("ascii")


class OllamaEmbeddingInferer(BaseEmbeddingInferer):
    """httpx 기반 Ollama 임베딩 클라이언트"""

    def __init__(self, config: InfererConfig | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config or InfererConfig()
        timeout = httpx.Timeout(
            self._config.timeout_seconds, connect=self._config.connect_timeout_seconds
        )
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def infer(self, asset: bytes) -> list[float]:
        model = self._config.model
        payload = {"model": model, "prompt": encode_asset(asset)}

        try:
            response = await self._client.post(self._config.endpoint, json=payload)
        except httpx.HTTPError as e:
            raise InferenceError(f"{type(e).__name__}: {e}", model) from e

        if not response.is_success:
            raise InferenceError(
                f"status code {response.status_code}: {response.text[:200]}", model
            )

        try:
            body = response.json()
        except ValueError as e:
            raise InferenceError(f"invalid JSON response: {e}", model) from e

        vector = self._extract_vector(body)
        if not vector:
            raise InferenceError("empty embedding vector", model)
        if self._config.dimensions is not None and len(vector) != self._config.dimensions:
            raise InferenceError(
                f"expected {self._config.dimensions} dimensions, got {len(vector)}", model
            )

        logger.debug(f"Generated embedding with {len(vector)} dimensions (model={model})")
        return vector

    def _extract_vector(self, body: Any) -> list[float]:
        if not isinstance(body, dict):
            raise InferenceError("unexpected response shape", self._config.model)

        if body.get("embeddings"):
            vector = body["embeddings"][0]
        else:
            vector = body.get("embedding") or []

        try:
            return [float(v) for v in vector]
        except (TypeError, ValueError) as e:
            raise InferenceError(f"non-numeric embedding: {e}", self._config.model) from e

    async def close(self) -> None:
        await self._client.aclose()
