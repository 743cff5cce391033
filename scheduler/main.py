"""
BatchScheduler: 처리 대상 레코드를 배치로 묶어 작업 1건 등록

한 번의 schedule() 호출은 최대 batch_size개의 embedding 없는 레코드를 조회하고
작업을 정확히 하나 등록합니다. 대상이 없으면 0을 반환하며 아무것도 등록하지 않습니다
(체인 종료 조건).

중복 선택:
    기본 모드에서는 선택 시점에 레코드를 in-flight로 표시하지 않으므로,
    이전 배치가 처리되기 전에 다시 호출하면 같은 id가 다시 선택될 수 있습니다.
    임베딩 기록은 멱등이라 중복 처리는 무해합니다.
    claim_records=True이면 조회, claim, 등록을 한 트랜잭션에서 수행하여
    claim_ttl_seconds 동안 같은 id가 다른 배치에 들어가지 않습니다.
"""

import logging
import sqlite3

from common.clock import db_now
from database import transactional, DatabaseError
from jobqueue import JobQueue, EnqueueError
from record.exception import RecordStoreError
from record.store import RecordStore
from scheduler.exception import SchedulingError
from scheduler.model.scheduler import Batch, ScheduleResult, SchedulerConfig

logger = logging.getLogger(__name__)


class BatchScheduler:
    """배치 스케줄러"""

    def __init__(self, config: SchedulerConfig, record_store: RecordStore, queue: JobQueue):
        """
        Args:
            config: 스케줄러 설정 (기본 배치 크기 등)
            record_store: 레코드 저장소
            queue: 작업 큐
        """
        self._config = config
        self._record_store = record_store
        self._queue = queue

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    async def schedule(self, batch_size: int | None = None) -> ScheduleResult:
        """
        스케줄링 1회 실행

        Args:
            batch_size: 배치 크기 (None이면 설정값)

        Returns:
            ScheduleResult (실패 시 error가 채워짐, 예외를 raise하지 않음)
        """
        size = self._config.batch_size if batch_size is None else batch_size
        if size < 0:
            error = SchedulingError(f"batch_size must be >= 0, got {size}")
            logger.error(error.message)
            return ScheduleResult(error=error)
        if size == 0:
            return ScheduleResult(count=0)

        try:
            if self._config.claim_records:
                job_id, record_ids = await self._claim_and_enqueue(size)
            else:
                job_id, record_ids = await self._select_and_enqueue(size)
        except EnqueueError as e:
            error = SchedulingError(e.message)
            logger.error(f"Scheduling failed, chain stalled: {error.message}")
            return ScheduleResult(error=error)
        except (DatabaseError, RecordStoreError, sqlite3.Error, RuntimeError) as e:
            error = SchedulingError(f"record store unavailable: {e}")
            logger.error(f"Scheduling failed, chain stalled: {error.message}")
            return ScheduleResult(error=error)

        if not record_ids:
            logger.info("No pending records, nothing scheduled")
            return ScheduleResult(count=0)

        logger.info(f"Scheduled job {job_id} with {len(record_ids)} record(s)")
        return ScheduleResult(count=len(record_ids), job_id=job_id, record_ids=record_ids)

    async def _select_and_enqueue(self, size: int) -> tuple[int | None, list[str]]:
        """조회 후 등록 (claim 없음)"""
        record_ids = await self._record_store.find_pending_ids(size)
        if not record_ids:
            return None, []
        job_id = await self._enqueue(record_ids)
        return job_id, record_ids

    @transactional
    async def _claim_and_enqueue(self, size: int) -> tuple[int | None, list[str]]:
        """조회, 등록, claim을 한 트랜잭션에서 수행"""
        stale_before = db_now(-self._config.claim_ttl_seconds)
        record_ids = await self._record_store.find_claimable_pending_ids(size, stale_before)
        if not record_ids:
            return None, []
        job_id = await self._enqueue(record_ids)
        await self._record_store.claim(record_ids, job_id)
        return job_id, record_ids

    async def _enqueue(self, record_ids: list[str]) -> int:
        return await self._queue.enqueue(
            self._config.queue_name,
            Batch(record_ids=record_ids).model_dump(),
            self._config.handler_name,
            max_attempts=self._config.max_attempts,
        )
