"""단건 임베딩 핸들러

payload {"record_id": id} 레코드 1건을 즉시 처리합니다. 체인을 잇지 않습니다.
"""

import logging

from jobqueue.model.job import Job
from worker.base import BaseHandler, handler
from worker.exception import JobFaultError
from worker.job.service.embedding_service import process_record
from worker.model.handler import ItemErrorKind, RecordPayload, WorkerResult

logger = logging.getLogger(__name__)


@handler("embedding")
class EmbeddingHandler(BaseHandler):
    """단건 임베딩 생성"""

    async def execute(self, job: Job) -> WorkerResult:
        payload = self.parse_payload(job, RecordPayload)

        outcome = await process_record(
            payload.record_id,
            self._context.record_store,
            self._context.fetcher,
            self._context.inferer,
        )

        # not_found 외의 실패는 작업 재시도 대상
        if not outcome.succeeded and outcome.error != ItemErrorKind.NOT_FOUND:
            raise JobFaultError(job.id, f"{outcome.error.value}: {outcome.detail}")

        return WorkerResult(
            handler=self.name,
            success=outcome.succeeded,
            error=outcome.detail if not outcome.succeeded else None,
            outcomes=[outcome],
            total_ms=outcome.elapsed_ms,
        )
