"""
작업 큐 모델 정의
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobState(str, Enum):
    """작업 상태"""
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    COMPLETED = "completed"
    RETRYING = "retrying"
    DISCARDED = "discarded"  # 최대 시도 초과, 수동 개입 필요


# lease 가능한 상태
LEASABLE_STATES = (JobState.SCHEDULED, JobState.RETRYING)


class Job(BaseModel):
    """작업 엔티티"""
    id: int
    queue_name: str
    handler_name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    state: JobState = JobState.SCHEDULED
    attempt: int = 1
    max_attempts: int = 3
    scheduled_at: datetime | None = None
    leased_by: str | None = None
    leased_until: datetime | None = None
    attempted_at: datetime | None = None
    last_error: str | None = None
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    discarded_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "Job":
        """DB row -> Job (payload, result는 JSON 문자열)"""
        row_dict = dict(row)
        row_dict["payload"] = json.loads(row_dict["payload"]) if row_dict.get("payload") else {}
        row_dict["result"] = json.loads(row_dict["result"]) if row_dict.get("result") else None
        return cls(**row_dict)


class QueueConfig(BaseModel):
    """JobQueue 설정"""
    default_max_attempts: int = Field(default=3, ge=1, le=20)
    backoff_base: float = Field(default=2.0, ge=1.0, description="지수 백오프 밑")
    backoff_initial_seconds: float = Field(default=15.0, ge=0, description="첫 재시도 대기 시간")
    backoff_max_seconds: float = Field(default=3600.0, ge=0)
    lease_seconds: float = Field(default=900.0, gt=0, description="lease 유효 시간 (job timeout보다 길게)")
    default_concurrency_limit: int = Field(default=10, ge=1)
    concurrency_limits: dict[str, int] = Field(default_factory=lambda: {"embeddings": 10})
    prune_max_age_seconds: float = Field(default=86400.0, ge=0)

    def concurrency_limit(self, queue_name: str) -> int:
        return self.concurrency_limits.get(queue_name, self.default_concurrency_limit)
