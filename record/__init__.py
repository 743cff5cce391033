"""임베딩 대상 레코드 저장소"""
from record.store import RecordStore
from record.model.record import PendingRecord
from record.exception import RecordStoreError, RecordNotFoundError

__all__ = ["RecordStore", "PendingRecord", "RecordStoreError", "RecordNotFoundError"]
