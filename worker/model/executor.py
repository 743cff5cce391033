"""
Worker 모델 - Executor 관련 구조체
"""

from dataclasses import dataclass

from jobqueue.model.job import JobState


@dataclass
class ExecutionReport:
    """작업 1회 실행 결과"""
    job_id: int
    handler_name: str
    attempt: int
    state: JobState | None  # 전이된 상태 (lease를 잃었으면 None)
    elapsed_ms: float
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.state == JobState.COMPLETED
