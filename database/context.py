"""
트랜잭션 컨텍스트 저장소

contextvars 기반으로 태스크별 활성 트랜잭션을 DB 이름 단위로 보관합니다.
asyncio 태스크는 생성 시점의 컨텍스트를 복사하므로 태스크 간 연결이 공유되지 않습니다.
"""

from contextvars import ContextVar
from typing import Any

_connections: ContextVar[dict[str, Any]] = ContextVar("db_connections", default={})


def set_connection(name: str, ctx: Any) -> None:
    """현재 컨텍스트에 트랜잭션 등록"""
    _connections.set({**_connections.get(), name: ctx})


def clear_connection(name: str) -> None:
    """현재 컨텍스트에서 트랜잭션 제거"""
    current = dict(_connections.get())
    current.pop(name, None)
    _connections.set(current)


def find_connection(name: str) -> Any | None:
    """활성 트랜잭션 조회 (없으면 None)"""
    return _connections.get().get(name)
