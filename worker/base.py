"""
핸들러 레지스트리

@handler("name")으로 등록한 클래스는 jobs.handler_name 값으로 조회되어
작업마다 HandlerContext와 함께 새로 생성됩니다.
"""

import logging
from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from jobqueue.model.job import Job
from worker.exception import HandlerNotFoundError, InvalidPayloadError
from worker.model.handler import HandlerContext, HandlerResult

__all__ = ['handler', 'get_handler', 'get_registered_handlers', 'unregister_handler', 'BaseHandler', 'HandlerNotFoundError']

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

_handlers: dict[str, type["BaseHandler"]] = {}


def handler(name: str):
    """핸들러 등록 데코레이터 (같은 이름은 나중 등록이 우선)"""
    def register(cls: type["BaseHandler"]) -> type["BaseHandler"]:
        previous = _handlers.get(name)
        if previous is not None and previous is not cls:
            logger.warning(f"Handler '{name}' re-registered: {previous.__qualname__} -> {cls.__qualname__}")
        cls.name = name
        _handlers[name] = cls
        return cls
    return register


def get_handler(name: str, context: HandlerContext) -> "BaseHandler":
    try:
        handler_cls = _handlers[name]
    except KeyError:
        raise HandlerNotFoundError(name) from None
    return handler_cls(context)


def get_registered_handlers() -> dict[str, type["BaseHandler"]]:
    return dict(_handlers)


def unregister_handler(name: str) -> None:
    _handlers.pop(name, None)


class BaseHandler(ABC):
    """작업 핸들러 기본 클래스"""

    name: str = ""

    def __init__(self, context: HandlerContext):
        self._context = context

    @staticmethod
    def parse_payload(job: Job, model: type[PayloadT]) -> PayloadT:
        """payload 검증 (실패 시 InvalidPayloadError)"""
        try:
            return model.model_validate(job.payload)
        except ValidationError as e:
            raise InvalidPayloadError(job.id, str(e)) from e

    @abstractmethod
    async def execute(self, job: Job) -> HandlerResult:
        """
        작업 1건 처리

        Args:
            job: lease된 작업

        Returns:
            HandlerResult: ack 시 jobs.result에 JSON으로 저장

        Raises:
            JobFaultError: 재시도 대상 작업 수준 실패
        """
