from scheduler.model.scheduler import Batch, ScheduleResult, SchedulerConfig

__all__ = ["Batch", "ScheduleResult", "SchedulerConfig"]
