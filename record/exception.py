"""
RecordStore 관련 예외 클래스 정의
"""


class RecordStoreError(Exception):
    """RecordStore 기본 예외"""
    pass


class RecordNotFoundError(RecordStoreError):
    """레코드를 찾을 수 없음"""
    def __init__(self, record_id: str):
        self.record_id = record_id
        self.message = f"Record not found: {record_id}"
        super().__init__(self.message)


class DuplicateRecordError(RecordStoreError):
    """이미 존재하는 레코드 id"""
    def __init__(self, record_id: str):
        self.record_id = record_id
        self.message = f"Record already exists: {record_id}"
        super().__init__(self.message)
