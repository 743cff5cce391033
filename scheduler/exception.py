"""
BatchScheduler 관련 예외 클래스 정의
"""


class SchedulingError(Exception):
    """
    스케줄링 실패

    schedule()은 이 예외를 raise하지 않고 ScheduleResult.error로 반환합니다.
    """
    def __init__(self, reason: str, record_ids: list[str] | None = None):
        self.reason = reason
        self.record_ids = record_ids or []
        self.message = f"Scheduling failed: {reason}"
        super().__init__(self.message)
