from jobqueue.model.job import Job, JobState, QueueConfig

__all__ = ["Job", "JobState", "QueueConfig"]
