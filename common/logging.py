"""
JSON 구조화 로깅

- 레코드 실패 로그의 extra(record_id, stage, reason)는 JSON 필드로 출력
- 작업 실행 중 남긴 로그에는 job_id, queue, attempt가 자동으로 붙음 (bind_job)
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

from pythonjsonlogger.json import JsonFormatter

_job_fields: ContextVar[dict[str, Any]] = ContextVar("log_job_fields", default={})

QUIET_LOGGERS = ('asyncio', 'aiosqlite', 'httpx', 'httpcore')


@contextmanager
def bind_job(job_id: int, queue_name: str, attempt: int) -> Iterator[None]:
    """현재 태스크의 로그에 작업 식별 필드 부착"""
    token = _job_fields.set({"job_id": job_id, "queue": queue_name, "attempt": attempt})
    try:
        yield
    finally:
        _job_fields.reset(token)


class JobContextFilter(logging.Filter):
    """bind_job으로 등록된 필드를 LogRecord에 복사"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _job_fields.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class EmbedfillJsonFormatter(JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = self.formatTime(record)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        if record.exc_info and 'exc_info' in log_record:
            log_record['error'] = log_record.pop('exc_info')


class JobTextFormatter(logging.Formatter):
    """텍스트 포맷 (작업 필드가 있으면 [job=..] 접두)"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        job_id = getattr(record, 'job_id', None)
        if job_id is None:
            return line
        return f"[job={job_id} attempt={getattr(record, 'attempt', '?')}] {line}"


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: str | None = None
) -> None:
    """
    루트 로거 설정

    Args:
        level: 로그 레벨 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: False면 사람이 읽는 텍스트 포맷
        log_file: 추가로 기록할 파일 경로
    """
    if json_format:
        formatter: logging.Formatter = EmbedfillJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    else:
        formatter = JobTextFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    job_filter = JobContextFilter()
    for h in handlers:
        h.setFormatter(formatter)
        h.addFilter(job_filter)

    logging.basicConfig(level=getattr(logging, level.upper()), handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_config(config: dict) -> None:
    """logging.yaml의 `logging` 섹션으로 로깅 설정"""
    log_cfg = config.get("logging", {})
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        json_format=log_cfg.get("json_format", True),
        log_file=log_cfg.get("log_file"),
    )
