"""
SQLite3 비동기 커넥션풀 모듈

aiosqlite 연결을 고정 크기 풀로 관리하고, 작업 큐와 레코드 저장소가 공유하는
트랜잭션 컨텍스트를 제공합니다.

쓰기 트랜잭션은 BEGIN IMMEDIATE로 시작합니다. lease의 조회-갱신과
claim 모드의 조회-claim-등록은 다른 연결의 쓰기와 겹치지 않습니다.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite
import aiosql

from database.base import BaseDatabase
from database.context import set_connection, clear_connection
from database.exception import (
    ConnectionPoolExhaustedError,
    ReadOnlyTransactionError,
    TransactionError,
)

logger = logging.getLogger(__name__)

INIT_SQL_PATH = Path(__file__).parent / 'sql' / 'init.sql'

# init.sql 실행 순서
INIT_QUERIES = (
    'create_records_table',
    'create_record_claims_table',
    'create_jobs_table',
    'create_indexes',
)

WRITE_KEYWORDS = frozenset({'INSERT', 'UPDATE', 'DELETE', 'REPLACE', 'CREATE', 'DROP', 'ALTER'})


@dataclass
class PoolConfig:
    """커넥션풀 설정"""
    pool_size: int = 5
    pool_timeout: float = 30.0
    max_idle_time: float = 300.0  # 초과 시 다음 획득 때 재연결

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'PoolConfig':
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class SqliteOptions:
    """SQLite 연결 옵션"""
    busy_timeout: int = 5000
    journal_mode: str = 'WAL'
    synchronous: str = 'NORMAL'
    cache_size: int = -2000
    foreign_keys: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'SqliteOptions':
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def pragmas(self) -> list[str]:
        return [
            f"PRAGMA busy_timeout={self.busy_timeout}",
            f"PRAGMA journal_mode={self.journal_mode}",
            f"PRAGMA synchronous={self.synchronous}",
            f"PRAGMA cache_size={self.cache_size}",
            f"PRAGMA foreign_keys={'ON' if self.foreign_keys else 'OFF'}",
        ]


@dataclass
class PooledConnection:
    """풀에서 관리되는 연결"""
    connection: aiosqlite.Connection
    last_used_at: float
    in_use: bool = False


class TransactionContext:
    """활성 트랜잭션 (get_connection()이 반환하는 객체)"""

    def __init__(self, connection: aiosqlite.Connection, readonly: bool = False):
        self._connection = connection
        self._readonly = readonly

    @property
    def connection(self) -> aiosqlite.Connection:
        """aiosql 쿼리에 넘길 연결"""
        return self._connection

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def execute(self, sql: str, parameters: Any = None) -> aiosqlite.Cursor:
        """SQL 실행 (readonly 트랜잭션에서는 쓰기 차단)"""
        if self._readonly and _is_write_query(sql):
            raise ReadOnlyTransactionError("Cannot execute write query in readonly transaction")

        _log_query(sql, parameters)
        return await self._connection.execute(sql, parameters or ())

    async def fetch_one(self, sql: str, parameters: Any = None) -> aiosqlite.Row | None:
        cursor = await self.execute(sql, parameters)
        row = await cursor.fetchone()
        _log_result(1 if row else 0)
        return row

    async def fetch_all(self, sql: str, parameters: Any = None) -> list[aiosqlite.Row]:
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        _log_result(len(rows))
        return list(rows)


def _is_write_query(sql: str) -> bool:
    words = sql.split(None, 1)
    return bool(words) and words[0].upper() in WRITE_KEYWORDS


def _log_query(sql: str, parameters: Any = None) -> None:
    """SQL 쿼리 로깅"""
    sql_oneline = ' '.join(sql.split())
    if parameters:
        logger.debug(f"[SQL] {sql_oneline} | params: {parameters}")
    else:
        logger.debug(f"[SQL] {sql_oneline}")


def _log_result(row_count: int) -> None:
    logger.debug(f"[SQL Result] {row_count} row(s)")


class AsyncConnectionPool:
    """
    비동기 SQLite 커넥션풀

    유휴 연결은 asyncio.Queue로 관리합니다. max_idle_time을 넘긴 연결은
    획득 시점에 다시 연결합니다.
    """

    def __init__(
        self,
        db_path: str,
        pool_config: PoolConfig | None = None,
        sqlite_options: SqliteOptions | None = None
    ):
        self._db_path = Path(db_path)
        self._pool_config = pool_config or PoolConfig()
        self._sqlite_options = sqlite_options or SqliteOptions()
        self._connections: list[PooledConnection] = []
        self._idle: asyncio.Queue[PooledConnection] = asyncio.Queue()
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        """커넥션풀 초기화"""
        if self._initialized:
            logger.warning("Connection pool already initialized")
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(self._pool_config.pool_size):
            pooled_conn = PooledConnection(
                connection=await self._connect(), last_used_at=time.monotonic()
            )
            self._connections.append(pooled_conn)
            self._idle.put_nowait(pooled_conn)

        self._initialized = True
        logger.info(
            f"Connection pool initialized: {self._db_path} "
            f"(size={self._pool_config.pool_size}, timeout={self._pool_config.pool_timeout}s)"
        )

    async def _connect(self) -> aiosqlite.Connection:
        """새로운 SQLite 연결 생성"""
        conn = await aiosqlite.connect(
            self._db_path,
            timeout=self._sqlite_options.busy_timeout / 1000.0
        )
        conn.row_factory = aiosqlite.Row
        for pragma in self._sqlite_options.pragmas():
            await conn.execute(pragma)
        logger.debug("New connection created with PRAGMA settings applied")
        return conn

    async def acquire(self, timeout: float | None = None) -> PooledConnection:
        """커넥션풀에서 연결 획득"""
        if not self._initialized:
            raise RuntimeError("Connection pool not initialized. Call initialize() first.")
        if self._closed:
            raise RuntimeError("Connection pool is closed.")

        timeout = timeout or self._pool_config.pool_timeout
        try:
            pooled_conn = await asyncio.wait_for(self._idle.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionPoolExhaustedError(
                f"Connection pool exhausted. Timeout after {timeout}s"
            )

        if time.monotonic() - pooled_conn.last_used_at > self._pool_config.max_idle_time:
            await self._reconnect(pooled_conn)

        pooled_conn.in_use = True
        return pooled_conn

    async def _reconnect(self, pooled_conn: PooledConnection) -> None:
        try:
            await pooled_conn.connection.close()
        except Exception as e:
            logger.warning(f"Failed to close idle connection: {e}")
        try:
            pooled_conn.connection = await self._connect()
        except Exception:
            self._idle.put_nowait(pooled_conn)
            raise
        logger.debug("Refreshed idle connection")

    async def release(self, pooled_conn: PooledConnection) -> None:
        """연결을 풀에 반환"""
        pooled_conn.in_use = False
        pooled_conn.last_used_at = time.monotonic()
        self._idle.put_nowait(pooled_conn)
        logger.debug(f"Connection released. Available: {self.available}/{self.size}")

    async def close(self) -> None:
        """모든 연결을 닫고 풀 종료"""
        self._closed = True
        for pooled_conn in self._connections:
            try:
                await pooled_conn.connection.close()
            except Exception as e:
                logger.error(f"Error closing connection: {e}")
        self._connections.clear()
        logger.info("Connection pool closed")

    @property
    def size(self) -> int:
        """현재 풀의 연결 수"""
        return len(self._connections)

    @property
    def available(self) -> int:
        """사용 가능한 연결 수"""
        return self._idle.qsize()


class ManagedTransaction:
    """트랜잭션 컨텍스트 매니저: 연결 획득, BEGIN, commit/rollback, 연결 반환"""

    def __init__(self, db: 'SQLiteDatabase', readonly: bool = False):
        self._db = db
        self._readonly = readonly
        self._pooled_conn: PooledConnection | None = None
        self._ctx: TransactionContext | None = None

    async def __aenter__(self) -> TransactionContext:
        self._pooled_conn = await self._db.pool.acquire()
        connection = self._pooled_conn.connection
        try:
            await connection.execute("BEGIN DEFERRED" if self._readonly else "BEGIN IMMEDIATE")
        except Exception as e:
            await self._db.pool.release(self._pooled_conn)
            raise TransactionError(f"Failed to begin transaction: {e}") from e

        self._ctx = TransactionContext(connection, self._readonly)
        set_connection(self._db.name, self._ctx)
        return self._ctx

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        connection = self._pooled_conn.connection
        try:
            if exc_type:
                await connection.rollback()
                logger.debug("Transaction rolled back")
            else:
                try:
                    await connection.commit()
                except Exception as e:
                    await connection.rollback()
                    raise TransactionError(f"Failed to commit transaction: {e}") from e
        finally:
            clear_connection(self._db.name)
            await self._db.pool.release(self._pooled_conn)


class SQLiteDatabase(BaseDatabase):
    """
    SQLite 데이터베이스 구현

    사용 예시:
        db = await SQLiteDatabase.create('default', config)

        @transactional(db)
        async def count_pending():
            ctx = get_connection('default')
            return await ctx.fetch_one("SELECT COUNT(1) FROM records WHERE embedding IS NULL")

        async with db.transaction(readonly=True) as ctx:
            rows = await ctx.fetch_all("SELECT * FROM jobs WHERE state = 'discarded'")
    """

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name)
        self._config = config
        self._pool: AsyncConnectionPool | None = None

    @classmethod
    async def create(cls, name: str, config: dict[str, Any]) -> 'SQLiteDatabase':
        """SQLiteDatabase 인스턴스 생성 및 초기화"""
        instance = cls(name, config)
        await instance._initialize()
        return instance

    async def _initialize(self) -> None:
        self._pool = AsyncConnectionPool(
            db_path=self._config.get('path', f'./data/{self.name}.db'),
            pool_config=PoolConfig.from_dict(self._config.get('pool', {})),
            sqlite_options=SqliteOptions.from_dict(self._config.get('options', {})),
        )
        await self._pool.initialize()
        await self._run_init_sql()
        logger.info(f"SQLiteDatabase '{self.name}' initialized successfully")

    async def _run_init_sql(self) -> None:
        """테이블/인덱스 생성 (IF NOT EXISTS, 반복 실행 안전)"""
        queries = aiosql.from_path(str(INIT_SQL_PATH), "aiosqlite")
        pooled_conn = await self._pool.acquire()
        try:
            for query_name in INIT_QUERIES:
                await getattr(queries, query_name)(pooled_conn.connection)
            await pooled_conn.connection.commit()
            logger.debug("Schema ensured from init.sql")
        finally:
            await self._pool.release(pooled_conn)

    def transaction(self, readonly: bool = False) -> ManagedTransaction:
        """트랜잭션 컨텍스트 매니저 반환"""
        return ManagedTransaction(self, readonly)

    @property
    def pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RuntimeError(f"Database '{self.name}' not initialized")
        return self._pool

    async def close(self) -> None:
        """데이터베이스 연결 종료"""
        if self._pool:
            await self._pool.close()
        logger.info(f"SQLiteDatabase '{self.name}' closed")
