"""
BatchScheduler 모델 정의
"""

from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from scheduler.exception import SchedulingError


class Batch(BaseModel):
    """작업 payload: 스케줄 시점에 선택된 레코드 id 목록"""
    record_ids: list[str]

    @property
    def size(self) -> int:
        return len(self.record_ids)


class SchedulerConfig(BaseModel):
    """BatchScheduler 설정"""
    batch_size: int = Field(default=5, ge=1, description="배치 크기 기본값")
    queue_name: str = "embeddings"
    handler_name: str = "batch_embedding"
    max_attempts: int | None = Field(default=None, ge=1, description="None이면 큐 기본값")
    claim_records: bool = Field(default=False, description="선택한 레코드를 claim하여 중복 배치 방지")
    claim_ttl_seconds: float = Field(default=3600.0, gt=0)


@dataclass
class ScheduleResult:
    """스케줄링 결과 (count 또는 error)"""
    count: int = 0
    job_id: int | None = None
    record_ids: list[str] = field(default_factory=list)
    error: SchedulingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
