"""
RecordStore: 임베딩 대상 레코드 저장소

records 테이블에서 embedding이 비어 있는 레코드를 조회하고
처리 결과 임베딩을 기록합니다.
"""

import json
import logging
from pathlib import Path
from typing import Any, Sequence

import aiosql

from common.clock import db_now
from database import transactional, transactional_readonly, get_connection
from record.exception import RecordNotFoundError, DuplicateRecordError
from record.model.record import PendingRecord

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "record.sql"


class RecordStore:
    """
    레코드 저장소

    - find_pending_ids: embedding IS NULL 레코드 id를 삽입 순서로 최대 N개 조회
    - attach_embedding: id로 임베딩 기록 (없는 id면 RecordNotFoundError)
    - claim / find_claimable_pending_ids: 스케줄러 claim 모드 지원
    """

    def __init__(self, queries: Any | None = None):
        self._queries = queries or aiosql.from_path(str(SQL_PATH), "aiosqlite")

    @transactional
    async def add(self, record_id: str, asset_locator: str) -> None:
        """레코드 추가 (상위 프로세스/시드 스크립트용)"""
        ctx = get_connection()
        exists = await self._queries.exists_record(ctx.connection, id=record_id)
        if exists:
            raise DuplicateRecordError(record_id)
        await self._queries.insert_record(
            ctx.connection, id=record_id, asset_locator=asset_locator, now=db_now()
        )

    @transactional_readonly
    async def get(self, record_id: str) -> PendingRecord | None:
        """id로 레코드 조회"""
        ctx = get_connection()
        row = await self._queries.get_record(ctx.connection, id=record_id)
        return PendingRecord.from_row(row) if row else None

    @transactional_readonly
    async def find_pending_ids(self, limit: int) -> list[str]:
        """embedding이 없는 레코드 id 조회 (삽입 순서, 최대 limit개)"""
        if limit <= 0:
            return []
        ctx = get_connection()
        rows = await self._queries.get_pending_ids(ctx.connection, limit=limit)
        return [row["id"] for row in rows] if rows else []

    @transactional_readonly
    async def count_pending(self) -> int:
        ctx = get_connection()
        return await self._queries.count_pending(ctx.connection)

    @transactional
    async def attach_embedding(self, record_id: str, embedding: Sequence[float]) -> None:
        """
        레코드에 임베딩 기록

        Raises:
            RecordNotFoundError: 레코드가 존재하지 않음
        """
        ctx = get_connection()
        affected_rows = await self._queries.attach_embedding(
            ctx.connection,
            id=record_id,
            embedding=json.dumps([float(v) for v in embedding]),
            now=db_now(),
        )
        if affected_rows == 0:
            raise RecordNotFoundError(record_id)
        await self._queries.delete_claim(ctx.connection, record_id=record_id)

    # ---------- claim 모드 ----------

    @transactional_readonly
    async def find_claimable_pending_ids(self, limit: int, stale_before: str) -> list[str]:
        """claim이 없거나 stale_before 이전에 claim된 처리 대상 id 조회"""
        if limit <= 0:
            return []
        ctx = get_connection()
        rows = await self._queries.get_claimable_pending_ids(
            ctx.connection, limit=limit, stale_before=stale_before
        )
        return [row["id"] for row in rows] if rows else []

    @transactional
    async def claim(self, record_ids: Sequence[str], job_id: int | None = None, claimed_at: str | None = None) -> None:
        """레코드 claim 기록 (이미 있으면 갱신)"""
        ctx = get_connection()
        now = claimed_at or db_now()
        for record_id in record_ids:
            await self._queries.upsert_claim(ctx.connection, record_id=record_id, job_id=job_id, now=now)

    @transactional
    async def release_claim(self, record_id: str) -> None:
        ctx = get_connection()
        await self._queries.delete_claim(ctx.connection, record_id=record_id)

    @transactional_readonly
    async def count_claims(self) -> int:
        ctx = get_connection()
        return await self._queries.count_claims(ctx.connection)
