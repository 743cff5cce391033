"""
핸들러 입출력 모델

배치/단건 임베딩 핸들러가 공통으로 사용하는 컨텍스트 및 결과 모델.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from client.base import BaseAssetFetcher, BaseEmbeddingInferer
    from record.store import RecordStore
    from scheduler.main import BatchScheduler


@dataclass
class HandlerContext:
    """핸들러 의존성 (WorkerPool 생성 시 주입)"""
    record_store: "RecordStore"
    fetcher: "BaseAssetFetcher"
    inferer: "BaseEmbeddingInferer"
    scheduler: "BatchScheduler"
    chain_failure_is_fault: bool = True  # 다음 배치 등록 실패를 작업 실패로 처리


class OutcomeStatus(str, Enum):
    """항목 처리 결과"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ItemErrorKind(str, Enum):
    """항목 실패 분류"""
    NOT_FOUND = "not_found"
    FETCH_FAILURE = "fetch_failure"
    INFERENCE_FAILURE = "inference_failure"
    PERSISTENCE_FAILURE = "persistence_failure"


class ItemOutcome(BaseModel):
    """레코드 1건 처리 결과"""
    record_id: str
    status: OutcomeStatus
    error: ItemErrorKind | None = None
    detail: str | None = None
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


class RecordPayload(BaseModel):
    """단건 핸들러 payload"""
    record_id: str


class HandlerResult(BaseModel):
    """핸들러 실행 결과 (공통, jobs.result에 JSON으로 저장)"""
    model_config = ConfigDict(extra='allow')

    handler: str
    success: bool = True
    error: str | None = None

    def summary(self) -> dict:
        """jobs.result 저장용 요약"""
        return self.model_dump(mode="json")


class WorkerResult(HandlerResult):
    """배치 처리 결과 요약"""
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    total_ms: float = 0.0
    next_scheduled: int | None = None
    next_job_id: int | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def failed_ids(self) -> list[str]:
        return [o.record_id for o in self.outcomes if not o.succeeded]

    @property
    def average_ms(self) -> float:
        """성공 항목의 평균 처리 시간 (성공이 없으면 0)"""
        durations = [o.elapsed_ms for o in self.outcomes if o.succeeded]
        return sum(durations) / len(durations) if durations else 0.0

    def summary(self) -> dict:
        data = super().summary()
        data.update(
            succeeded=self.succeeded,
            failed=self.failed,
            failed_ids=self.failed_ids,
            average_ms=round(self.average_ms, 2),
        )
        return data
