"""
비동기 데이터베이스 패키지

사용 예시:
    from database import transactional, transactional_readonly, get_connection
    from database.registry import DatabaseRegistry

    await DatabaseRegistry.init_from_config(config)

    @transactional
    async def attach(record_id, embedding):
        ctx = get_connection()
        await queries.attach_embedding(ctx.connection, id=record_id, embedding=embedding)

트랜잭션 전파: 이미 같은 DB의 트랜잭션이 열려 있으면 새로 열지 않고 참여합니다.
"""

import functools
import inspect
from sqlite3 import Error as SqliteError
from typing import Any, Callable

from database.base import BaseDatabase
from database.context import find_connection
from database.exception import (
    DatabaseError,
    ConnectionPoolExhaustedError,
    ReadOnlyTransactionError,
    TransactionError,
    QueryExecutionError,
    DatabaseNotFoundError,
)
from database.registry import DatabaseRegistry

__all__ = [
    'transactional',
    'transactional_readonly',
    'get_connection',
    'get_db',
    'BaseDatabase',
    'DatabaseRegistry',
    'DatabaseError',
    'ConnectionPoolExhaustedError',
    'ReadOnlyTransactionError',
    'TransactionError',
    'QueryExecutionError',
    'DatabaseNotFoundError',
]

DEFAULT_DB = "default"


def get_db(name: str = DEFAULT_DB) -> BaseDatabase:
    """등록된 데이터베이스 반환"""
    return DatabaseRegistry.get(name)


def get_connection(name: str = DEFAULT_DB) -> Any:
    """현재 태스크의 활성 트랜잭션 컨텍스트 반환"""
    ctx = find_connection(name)
    if ctx is None:
        raise TransactionError(f"No active transaction for database '{name}'")
    return ctx


def _resolve_db(target: BaseDatabase | str | None) -> BaseDatabase:
    if target is None:
        return get_db()
    if isinstance(target, str):
        return get_db(target)
    return target


def _make_decorator(target: BaseDatabase | str | None, readonly: bool) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            db = _resolve_db(target)

            # 이미 열린 트랜잭션이 있으면 참여
            if find_connection(db.name) is not None:
                return await func(*args, **kwargs)

            try:
                async with db.transaction(readonly=readonly):
                    return await func(*args, **kwargs)
            except SqliteError as e:
                raise QueryExecutionError(str(e)) from e

        return wrapper
    return decorator


def transactional(arg: Any = None) -> Callable:
    """
    쓰기 트랜잭션 데코레이터

    @transactional, @transactional(db), @transactional('name') 모두 지원
    """
    if inspect.iscoroutinefunction(arg):
        return _make_decorator(None, readonly=False)(arg)
    return _make_decorator(arg, readonly=False)


def transactional_readonly(arg: Any = None) -> Callable:
    """읽기 전용 트랜잭션 데코레이터"""
    if inspect.iscoroutinefunction(arg):
        return _make_decorator(None, readonly=True)(arg)
    return _make_decorator(arg, readonly=True)
