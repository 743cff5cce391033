"""
JobQueue: 영속 작업 큐

SQLite jobs 테이블 기반의 at-least-once 작업 큐입니다.

상태 전이:
    scheduled/retrying --lease--> executing --ack--> completed
                                  executing --fail--> retrying (attempt < max_attempts)
                                  executing --fail--> discarded (attempt >= max_attempts)
                                  discarded --retry_discarded--> scheduled

ack/fail은 (id, attempt, state='executing') 조건부로 동작하므로
lease가 만료되어 다른 워커가 다시 가져간 작업은 이전 워커가 완료시킬 수 없습니다.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiosql

from common.clock import db_now
from database import (
    transactional,
    transactional_readonly,
    get_connection,
    DatabaseError,
)
from jobqueue.exception import EnqueueError, JobNotFoundError
from jobqueue.model.job import Job, JobState, QueueConfig

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "jobqueue.sql"


class JobQueue:
    """영속 작업 큐"""

    def __init__(self, config: QueueConfig | None = None, queries: Any | None = None):
        self._config = config or QueueConfig()
        self._queries = queries or aiosql.from_path(str(SQL_PATH), "aiosqlite")

    @property
    def config(self) -> QueueConfig:
        return self._config

    def backoff_seconds(self, attempt: int) -> float:
        """attempt번째 실패 후 다음 시도까지 대기 시간 (지수 백오프, 상한 적용)"""
        delay = self._config.backoff_initial_seconds * (self._config.backoff_base ** max(attempt - 1, 0))
        return min(delay, self._config.backoff_max_seconds)

    # ---------- 등록 ----------

    async def enqueue(
        self,
        queue_name: str,
        payload: dict[str, Any],
        handler_name: str,
        max_attempts: int | None = None,
        delay_seconds: float = 0,
    ) -> int:
        """
        작업 등록

        Returns:
            생성된 job id

        Raises:
            EnqueueError: 저장소 사용 불가
        """
        try:
            job_id = await self._insert_job(
                queue_name, payload, handler_name,
                max_attempts or self._config.default_max_attempts,
                delay_seconds,
            )
        except (DatabaseError, sqlite3.Error, RuntimeError) as e:
            logger.error(f"Enqueue failed: queue={queue_name}, handler={handler_name}, error={e}")
            raise EnqueueError(queue_name, str(e)) from e

        logger.debug(f"Job enqueued: id={job_id}, queue={queue_name}, handler={handler_name}")
        return job_id

    @transactional
    async def _insert_job(
        self,
        queue_name: str,
        payload: dict[str, Any],
        handler_name: str,
        max_attempts: int,
        delay_seconds: float,
    ) -> int:
        ctx = get_connection()
        await self._queries.insert_job(
            ctx.connection,
            queue_name=queue_name,
            handler_name=handler_name,
            payload=json.dumps(payload),
            max_attempts=max_attempts,
            scheduled_at=db_now(delay_seconds),
            now=db_now(),
        )
        return await self._queries.get_last_insert_id(ctx.connection)

    # ---------- lease / ack / fail ----------

    @transactional
    async def lease(self, queue_name: str, limit: int, worker_name: str) -> list[Job]:
        """
        실행 가능한 작업을 최대 limit개 lease

        큐별 동시 실행 상한(concurrency_limits)을 넘지 않도록
        현재 executing 작업 수를 제외한 만큼만 가져옵니다.
        """
        ctx = get_connection()
        executing = await self._queries.count_executing(ctx.connection, queue_name=queue_name)
        limit = min(limit, self._config.concurrency_limit(queue_name) - executing)
        if limit <= 0:
            return []

        now = db_now()
        rows = await self._queries.get_available_jobs(
            ctx.connection, queue_name=queue_name, now=now, limit=limit
        )

        leased = []
        for row in rows:
            affected_rows = await self._queries.lease_job(
                ctx.connection,
                id=row["id"],
                leased_by=worker_name,
                leased_until=db_now(self._config.lease_seconds),
                now=now,
            )
            if affected_rows == 0:
                continue
            job_row = await self._queries.get_job(ctx.connection, id=row["id"])
            leased.append(Job.from_row(job_row))

        if leased:
            logger.debug(f"Leased {len(leased)} job(s) from '{queue_name}' by {worker_name}")
        return leased

    @transactional
    async def ack(self, job: Job, result: dict[str, Any] | None = None) -> bool:
        """작업 완료 처리. lease를 잃은 경우 False"""
        ctx = get_connection()
        affected_rows = await self._queries.complete_job(
            ctx.connection,
            id=job.id,
            attempt=job.attempt,
            result=json.dumps(result) if result is not None else None,
            now=db_now(),
        )
        if affected_rows == 0:
            logger.warning(f"Ack ignored, lease lost: job_id={job.id}, attempt={job.attempt}")
            return False
        return True

    @transactional
    async def fail(self, job: Job, reason: str) -> JobState | None:
        """
        작업 실패 처리

        attempt < max_attempts 이면 백오프 후 retrying, 아니면 discarded.

        Returns:
            전이된 상태. lease를 잃은 경우 None
        """
        ctx = get_connection()
        now = db_now()

        if job.attempt < job.max_attempts:
            delay = self.backoff_seconds(job.attempt)
            affected_rows = await self._queries.retry_job(
                ctx.connection,
                id=job.id,
                attempt=job.attempt,
                scheduled_at=db_now(delay),
                error=reason,
                now=now,
            )
            new_state = JobState.RETRYING
        else:
            delay = 0
            affected_rows = await self._queries.discard_job(
                ctx.connection, id=job.id, attempt=job.attempt, error=reason, now=now
            )
            new_state = JobState.DISCARDED

        if affected_rows == 0:
            logger.warning(f"Fail ignored, lease lost: job_id={job.id}, attempt={job.attempt}")
            return None

        if new_state == JobState.RETRYING:
            logger.warning(
                f"Job {job.id} failed (attempt {job.attempt}/{job.max_attempts}), "
                f"retrying in {delay:.1f}s: {reason}"
            )
        else:
            logger.error(
                f"Job {job.id} discarded after {job.attempt} attempt(s): {reason}"
            )
        return new_state

    @transactional
    async def rescue_expired(self) -> int:
        """lease가 만료된 executing 작업을 fail 정책으로 처리"""
        ctx = get_connection()
        rows = await self._queries.get_expired_leases(ctx.connection, now=db_now())
        rescued = 0
        for row in rows:
            job = Job.from_row(row)
            if await self.fail(job, f"lease expired (leased_by={job.leased_by})") is not None:
                rescued += 1
        if rescued:
            logger.warning(f"Rescued {rescued} job(s) with expired lease")
        return rescued

    # ---------- 운영 ----------

    @transactional_readonly
    async def get(self, job_id: int) -> Job | None:
        ctx = get_connection()
        row = await self._queries.get_job(ctx.connection, id=job_id)
        return Job.from_row(row) if row else None

    @transactional_readonly
    async def list_jobs(
        self,
        state: JobState | str | None = None,
        queue_name: str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """작업 목록 (최신순). state가 주어지면 state 필터가 우선"""
        ctx = get_connection()
        if state is not None:
            rows = await self._queries.list_jobs_by_state(
                ctx.connection, state=JobState(state).value, limit=limit
            )
        elif queue_name is not None:
            rows = await self._queries.list_jobs_by_queue(
                ctx.connection, queue_name=queue_name, limit=limit
            )
        else:
            rows = await self._queries.list_jobs(ctx.connection, limit=limit)
        return [Job.from_row(row) for row in rows]

    @transactional_readonly
    async def counts(self, queue_name: str | None = None) -> dict[str, int]:
        """상태별 작업 수 (없는 상태는 0)"""
        ctx = get_connection()
        if queue_name is None:
            rows = await self._queries.count_jobs_by_state(ctx.connection)
        else:
            rows = await self._queries.count_jobs_by_state_for_queue(
                ctx.connection, queue_name=queue_name
            )
        counts = {state.value: 0 for state in JobState}
        for row in rows:
            counts[row["state"]] = row["count"]
        return counts

    @transactional
    async def retry_discarded(self, job_id: int) -> bool:
        """
        discarded 작업을 수동으로 재등록 (attempt 1로 초기화)

        Returns:
            재등록 여부 (discarded 상태가 아니면 False)

        Raises:
            JobNotFoundError: 작업이 존재하지 않음
        """
        ctx = get_connection()
        row = await self._queries.get_job(ctx.connection, id=job_id)
        if row is None:
            raise JobNotFoundError(job_id)
        affected_rows = await self._queries.requeue_discarded_job(
            ctx.connection, id=job_id, now=db_now()
        )
        if affected_rows:
            logger.info(f"Discarded job {job_id} re-queued")
        return affected_rows > 0

    @transactional
    async def prune(self, max_age_seconds: float | None = None) -> int:
        """완료 후 max_age_seconds가 지난 completed 작업 삭제"""
        ctx = get_connection()
        if max_age_seconds is None:
            max_age_seconds = self._config.prune_max_age_seconds
        deleted = await self._queries.prune_completed_jobs(
            ctx.connection, before=db_now(-max_age_seconds)
        )
        if deleted:
            logger.info(f"Pruned {deleted} completed job(s)")
        return deleted
