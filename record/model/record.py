"""
레코드 모델 정의
"""

import json
from datetime import datetime

from pydantic import BaseModel


class PendingRecord(BaseModel):
    """임베딩 처리 대상 레코드 (embedding이 None이면 처리 대상)"""
    id: str
    asset_locator: str
    embedding: list[float] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.embedding is None

    @classmethod
    def from_row(cls, row) -> "PendingRecord":
        """DB row -> PendingRecord (embedding은 JSON 배열 문자열로 저장됨)"""
        row_dict = dict(row)
        embedding = row_dict.get("embedding")
        return cls(
            id=row_dict["id"],
            asset_locator=row_dict["asset_locator"],
            embedding=json.loads(embedding) if embedding is not None else None,
            created_at=row_dict.get("created_at"),
            updated_at=row_dict.get("updated_at"),
        )
