"""
Worker 관련 예외 클래스 정의
"""


class WorkerError(Exception):
    """Worker 기본 예외"""
    pass


class HandlerNotFoundError(WorkerError):
    """핸들러를 찾을 수 없음"""
    def __init__(self, name: str):
        self.name = name
        self.message = f"Handler not found: {name}"
        super().__init__(self.message)


class JobFaultError(WorkerError):
    """
    항목 경계 밖의 작업 수준 실패

    Executor가 JobQueue.fail로 넘겨 재시도/폐기 정책을 따릅니다.
    """
    def __init__(self, job_id: int, reason: str):
        self.job_id = job_id
        self.reason = reason
        self.message = f"Job {job_id} faulted: {reason}"
        super().__init__(self.message)


class InvalidPayloadError(JobFaultError):
    """payload 형식 오류"""
    def __init__(self, job_id: int, reason: str):
        super().__init__(job_id, f"invalid payload: {reason}")
