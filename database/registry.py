"""
DatabaseRegistry: 이름 기반 데이터베이스 레지스트리

database.yaml 예시:
    databases:
      default:
        type: sqlite
        path: ./data/embedfill.db
        pool:
          pool_size: 5
          pool_timeout: 30.0
"""

import logging
from typing import Any

from database.base import BaseDatabase
from database.exception import DatabaseError, DatabaseNotFoundError

logger = logging.getLogger(__name__)


class DatabaseRegistry:
    """프로세스 단위 데이터베이스 레지스트리"""

    _databases: dict[str, BaseDatabase] = {}

    @classmethod
    async def init_from_config(cls, config: dict[str, Any], names: list[str] | None = None) -> None:
        """
        설정에서 데이터베이스 초기화

        Args:
            config: `databases` 키를 포함한 설정 dict
            names: 초기화할 DB 이름 목록 (None이면 전체)
        """
        databases = config.get("databases", {})
        targets = names if names is not None else list(databases.keys())

        for name in targets:
            if name in cls._databases:
                logger.debug(f"Database '{name}' already initialized")
                continue
            if name not in databases:
                raise DatabaseNotFoundError(name)
            cls._databases[name] = await cls._create(name, databases[name])

    @classmethod
    async def _create(cls, name: str, db_config: dict[str, Any]) -> BaseDatabase:
        """type에 맞는 데이터베이스 구현체 생성"""
        db_type = db_config.get("type", "sqlite")
        if db_type == "sqlite":
            from database.sqlite3 import SQLiteDatabase
            return await SQLiteDatabase.create(name, db_config)
        raise DatabaseError(f"Unsupported database type: {db_type}")

    @classmethod
    def get(cls, name: str = "default") -> BaseDatabase:
        """등록된 데이터베이스 반환"""
        if name not in cls._databases:
            raise DatabaseNotFoundError(name)
        return cls._databases[name]

    @classmethod
    def register(cls, db: BaseDatabase) -> None:
        """이미 생성된 데이터베이스 등록"""
        cls._databases[db.name] = db

    @classmethod
    def names(cls) -> list[str]:
        return list(cls._databases.keys())

    @classmethod
    async def close_all(cls) -> None:
        """모든 데이터베이스 종료"""
        for name, db in list(cls._databases.items()):
            try:
                await db.close()
            except Exception as e:
                logger.error(f"Error closing database '{name}': {e}")
        cls._databases.clear()

    @classmethod
    def clear(cls) -> None:
        """레지스트리 초기화 (테스트용, 연결은 닫지 않음)"""
        cls._databases.clear()
