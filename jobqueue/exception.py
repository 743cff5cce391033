"""
JobQueue 관련 예외 클래스 정의
"""


class JobQueueError(Exception):
    """JobQueue 기본 예외"""
    pass


class EnqueueError(JobQueueError):
    """작업 등록 실패 (저장소 사용 불가)"""
    def __init__(self, queue_name: str, reason: str):
        self.queue_name = queue_name
        self.reason = reason
        self.message = f"Failed to enqueue job on '{queue_name}': {reason}"
        super().__init__(self.message)


class JobNotFoundError(JobQueueError):
    """작업을 찾을 수 없음"""
    def __init__(self, job_id: int):
        self.job_id = job_id
        self.message = f"Job not found: {job_id}"
        super().__init__(self.message)
