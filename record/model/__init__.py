from record.model.record import PendingRecord

__all__ = ["PendingRecord"]
