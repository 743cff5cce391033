"""
데이터베이스 공통 인터페이스
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseDatabase(ABC):
    """데이터베이스 구현체 기본 클래스"""

    def __init__(self, name: str):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def transaction(self, readonly: bool = False) -> Any:
        """트랜잭션 컨텍스트 매니저 반환 (async with)"""
        ...

    @abstractmethod
    async def close(self) -> None:
        """연결 종료"""
        ...
