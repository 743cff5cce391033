"""배치 임베딩 핸들러

payload {"record_ids": [...]}의 각 레코드를 독립적으로 처리한 뒤
다음 배치를 등록하여 처리 대상이 없을 때까지 체인을 이어갑니다.
"""

import logging
import time

from jobqueue.model.job import Job
from scheduler.model.scheduler import Batch
from worker.base import BaseHandler, handler
from worker.exception import JobFaultError
from worker.job.service.embedding_service import process_record
from worker.model.handler import WorkerResult

logger = logging.getLogger(__name__)


@handler("batch_embedding")
class BatchEmbeddingHandler(BaseHandler):
    """배치 임베딩 생성"""

    async def execute(self, job: Job) -> WorkerResult:
        batch = self.parse_payload(job, Batch)

        logger.info(f"Processing batch of {batch.size} record(s) (job_id={job.id})")
        start_time = time.monotonic()

        outcomes = []
        for record_id in batch.record_ids:
            outcome = await process_record(
                record_id,
                self._context.record_store,
                self._context.fetcher,
                self._context.inferer,
            )
            outcomes.append(outcome)

        result = WorkerResult(
            handler=self.name,
            outcomes=outcomes,
            total_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        self._log_summary(job, result)

        # 다음 배치 등록 (실패 항목 수와 무관)
        scheduled = await self._context.scheduler.schedule()
        if not scheduled.ok:
            logger.error(f"Failed to schedule next batch after job {job.id}: {scheduled.error.message}")
            if self._context.chain_failure_is_fault:
                raise JobFaultError(job.id, f"chain stalled: {scheduled.error.reason}")
            result.error = scheduled.error.message
        elif scheduled.count == 0:
            logger.info("No more pending records, chain finished")
        else:
            logger.info(f"Scheduled next batch of {scheduled.count} record(s) (job_id={scheduled.job_id})")

        result.next_scheduled = scheduled.count
        result.next_job_id = scheduled.job_id
        return result

    def _log_summary(self, job: Job, result: WorkerResult) -> None:
        logger.info(
            f"Batch job {job.id} finished: {result.succeeded} succeeded, {result.failed} failed, "
            f"total {result.total_ms:.0f}ms, avg {result.average_ms:.0f}ms per embedded record"
        )
        if result.failed_ids:
            logger.warning(f"Failed records in job {job.id}: {', '.join(result.failed_ids)}")
