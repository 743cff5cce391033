"""
SQLite3 구현 (aiosqlite 커넥션풀 + BEGIN IMMEDIATE 쓰기 트랜잭션)

DatabaseRegistry가 type: sqlite 설정으로 생성합니다.
스키마는 sql/init.sql에서 초기화 시 생성됩니다.
"""

from database.sqlite3.connection import (
    SQLiteDatabase,
    AsyncConnectionPool,
    TransactionContext,
    ManagedTransaction,
    PoolConfig,
    SqliteOptions,
    PooledConnection,
)

__all__ = [
    'SQLiteDatabase',
    'AsyncConnectionPool',
    'TransactionContext',
    'ManagedTransaction',
    'PoolConfig',
    'SqliteOptions',
    'PooledConnection',
]
