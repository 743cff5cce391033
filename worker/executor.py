"""
작업 실행기 모듈

lease된 작업 1건의 실행을 담당합니다.
핸들러가 정상 반환하면 ack, 타임아웃이나 예외가 발생하면 JobQueue.fail로 넘깁니다.
"""

import asyncio
import logging
import time

from common.logging import bind_job
from database import (
    ConnectionPoolExhaustedError,
    TransactionError,
    QueryExecutionError,
)
from jobqueue import JobQueue
from jobqueue.model.job import Job, JobState
from worker.base import get_handler, HandlerNotFoundError
from worker.exception import JobFaultError
from worker.model.executor import ExecutionReport
from worker.model.handler import HandlerContext

logger = logging.getLogger(__name__)


class Executor:
    """작업 실행기"""

    def __init__(self, queue: JobQueue, context: HandlerContext, job_timeout_seconds: float):
        self._queue = queue
        self._context = context
        self._job_timeout_seconds = job_timeout_seconds

    async def execute(self, job: Job) -> ExecutionReport:
        """
        작업 실행

        Args:
            job: lease된 작업

        Returns:
            ExecutionReport: 실행 결과 및 전이된 상태
        """
        with bind_job(job.id, job.queue_name, job.attempt):
            return await self._execute(job)

    async def _execute(self, job: Job) -> ExecutionReport:
        start_time = time.monotonic()
        logger.info(
            f"Starting job execution: id={job.id}, handler={job.handler_name}, "
            f"attempt={job.attempt}/{job.max_attempts}"
        )

        # 1. 핸들러 조회
        try:
            handler = get_handler(job.handler_name, self._context)
        except HandlerNotFoundError as e:
            logger.error(f"Handler not found: {job.handler_name}")
            return await self._fail(job, e.message, start_time)

        # 2. 핸들러 실행 (타임아웃 적용)
        try:
            result = await asyncio.wait_for(
                handler.execute(job),
                timeout=self._job_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(f"Job execution timed out: id={job.id}")
            return await self._fail(job, f"timed out after {self._job_timeout_seconds}s", start_time)

        except JobFaultError as e:
            logger.error(f"Job fault: id={job.id}, reason={e.reason}")
            return await self._fail(job, e.message, start_time)

        except ConnectionPoolExhaustedError as e:
            logger.warning(f"Connection pool exhausted during job execution: id={job.id}, error={e}")
            return await self._fail(job, f"Connection pool exhausted: {e}", start_time)

        except (TransactionError, QueryExecutionError) as e:
            logger.error(f"Database error during job execution: id={job.id}, error={e}")
            return await self._fail(job, f"Database error: {e}", start_time)

        except Exception as e:
            logger.error(f"Job execution failed: id={job.id}, error={e}", exc_info=True)
            return await self._fail(job, f"{type(e).__name__}: {e}", start_time)

        # 3. 완료 (HandlerResult -> JSON)
        acked = await self._queue.ack(job, result.summary() if result is not None else None)
        elapsed_ms = (time.monotonic() - start_time) * 1000
        if acked:
            logger.info(f"Job execution completed: id={job.id} ({elapsed_ms:.0f}ms)")
        return ExecutionReport(
            job_id=job.id,
            handler_name=job.handler_name,
            attempt=job.attempt,
            state=JobState.COMPLETED if acked else None,
            elapsed_ms=elapsed_ms,
        )

    async def _fail(self, job: Job, reason: str, start_time: float) -> ExecutionReport:
        """실패 처리 (재시도 또는 폐기)"""
        state = await self._queue.fail(job, reason)
        return ExecutionReport(
            job_id=job.id,
            handler_name=job.handler_name,
            attempt=job.attempt,
            state=state,
            elapsed_ms=(time.monotonic() - start_time) * 1000,
            error=reason,
        )
