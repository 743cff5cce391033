"""
시각 유틸리티

DB에는 UTC 기준 'YYYY-MM-DD HH:MM:SS.ffffff' 문자열로 저장합니다.
같은 포맷이면 문자열 비교가 시각 비교와 일치합니다.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """현재 UTC 시각 (naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db(value: datetime) -> str:
    """datetime -> DB 문자열"""
    return value.isoformat(sep=" ", timespec="microseconds")


def from_db(value: str | None) -> datetime | None:
    """DB 문자열 -> datetime"""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def db_now(offset_seconds: float = 0) -> str:
    """현재 시각(+offset)의 DB 문자열"""
    return to_db(utcnow() + timedelta(seconds=offset_seconds))
