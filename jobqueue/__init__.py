from jobqueue.main import JobQueue
from jobqueue.model.job import Job, JobState, QueueConfig
from jobqueue.exception import JobQueueError, EnqueueError, JobNotFoundError

__all__ = [
    "JobQueue",
    "Job",
    "JobState",
    "QueueConfig",
    "JobQueueError",
    "EnqueueError",
    "JobNotFoundError",
]
