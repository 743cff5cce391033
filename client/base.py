"""외부 클라이언트 기본 인터페이스"""
from abc import ABC, abstractmethod


class BaseAssetFetcher(ABC):
    """
    에셋 다운로드 기본 클래스

    HTTP, S3 등 저장소 종류와 관계없이 locator로 바이트를 가져옵니다.
    """

    @abstractmethod
    async def fetch(self, locator: str) -> bytes:
        """
        에셋 다운로드

        Args:
            locator: 에셋 위치 (URL 등)

        Returns:
            에셋 바이트 (비어 있지 않음)

        Raises:
            AssetFetchError: 다운로드 실패 또는 빈 응답
        """
        ...

    async def close(self) -> None:
        """리소스 정리"""
        return None


class BaseEmbeddingInferer(ABC):
    """임베딩 추론 기본 클래스"""

    @abstractmethod
    async def infer(self, asset: bytes) -> list[float]:
        """
        에셋 바이트 -> 임베딩 벡터

        Raises:
            InferenceError: 추론 실패 또는 빈 벡터
        """
        ...

    async def close(self) -> None:
        """리소스 정리"""
        return None
