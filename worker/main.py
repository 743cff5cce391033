"""
WorkerPool: 작업 실행 워커풀 모듈

설정된 큐에서 실행 시점이 도래한 작업을 lease하여 실행합니다.
작업이 끝나면 즉시 다시 폴링하므로, 핸들러가 등록한 다음 배치가
poll_interval을 기다리지 않고 이어서 실행됩니다.

실행 방법:
    python main.py worker
    python main.py worker --once
"""

import asyncio
import importlib
import logging
import os
import pkgutil
import socket
from dataclasses import dataclass, field

from jobqueue import JobQueue
from jobqueue.model.job import Job
from worker.executor import Executor
from worker.model.executor import ExecutionReport
from worker.model.handler import HandlerContext

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """워커풀 설정"""
    queues: list[str] = field(default_factory=lambda: ["embeddings"])
    pool_size: int = 10
    poll_interval_seconds: float = 5.0
    job_timeout_seconds: float = 600.0
    shutdown_timeout_seconds: float = 30.0
    chain_failure_is_fault: bool = True  # 다음 배치 등록 실패 시 작업 재시도
    name: str | None = None  # lease 소유자 이름 (기본: host:pid)


class WorkerPool:
    """
    작업 실행 워커풀

    JobQueue에서 작업을 lease하여 워커 태스크에 할당하고 실행합니다.
    """

    def __init__(self, config: WorkerConfig, queue: JobQueue, context: HandlerContext):
        self._config = config
        self._queue = queue
        self._context = context
        self._worker_name = config.name or f"{socket.gethostname()}:{os.getpid()}"
        self._executor = Executor(queue, context, config.job_timeout_seconds)
        self._running = False
        self._wake_event: asyncio.Event | None = None
        self._running_tasks: set[asyncio.Task] = set()
        self._semaphore: asyncio.Semaphore | None = None
        self._reports: list[ExecutionReport] = []

    def _prepare(self) -> None:
        self._running = True
        self._wake_event = asyncio.Event()
        self._semaphore = asyncio.Semaphore(self._config.pool_size)

    async def start(self) -> None:
        """워커풀 메인 루프 시작"""
        if self._running:
            logger.warning("WorkerPool is already running")
            return

        self._prepare()
        logger.info(
            f"WorkerPool started (name={self._worker_name}, queues={self._config.queues}, "
            f"pool_size={self._config.pool_size}, poll_interval={self._config.poll_interval_seconds}s)"
        )

        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("WorkerPool cancelled")
        except Exception as e:
            logger.error(f"WorkerPool error: {e}", exc_info=True)
            raise
        finally:
            await self._wait_running_tasks()
            self._running = False
            logger.info("WorkerPool stopped")

    async def drain(self) -> list[ExecutionReport]:
        """
        실행 가능한 작업과 실행 중인 태스크가 모두 없어질 때까지 실행 후 반환

        백오프 대기 중인 retrying 작업은 기다리지 않습니다.

        Returns:
            이번 drain에서 실행한 작업들의 결과
        """
        if self._running:
            raise RuntimeError("WorkerPool is already running")

        self._prepare()
        first_report = len(self._reports)
        logger.info(f"Draining queues {self._config.queues}")

        try:
            while self._running:
                assigned = await self._poll_and_assign()
                if assigned == 0 and not self._running_tasks:
                    break
                await self._wait_for_wakeup(self._config.poll_interval_seconds)
        finally:
            await self._wait_running_tasks()
            self._running = False

        reports = self._reports[first_report:]
        logger.info(f"Drain finished: {len(reports)} job execution(s)")
        return reports

    async def stop(self) -> None:
        """WorkerPool graceful shutdown"""
        if not self._running:
            return

        logger.info("Stopping WorkerPool...")
        self._running = False
        if self._wake_event:
            self._wake_event.set()

    async def _main_loop(self) -> None:
        """메인 폴링 루프"""
        while self._running:
            try:
                await self._poll_and_assign()
            except Exception as e:
                logger.error(f"Error in poll_and_assign: {e}", exc_info=True)

            # 다음 폴링까지 대기 (작업 완료 또는 stop 시 즉시 깨어남)
            await self._wait_for_wakeup(self._config.poll_interval_seconds)

    async def _wait_for_wakeup(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self._wake_event.clear()

    async def _poll_and_assign(self) -> int:
        """만료 lease 정리 후 작업을 lease하여 워커에 할당"""
        await self._queue.rescue_expired()

        assigned = 0
        for queue_name in self._config.queues:
            # 가용 워커 수만큼만 가져오기
            available_workers = self._config.pool_size - len(self._running_tasks)
            if available_workers <= 0:
                logger.debug("No available workers, skipping poll")
                break

            jobs = await self._queue.lease(queue_name, available_workers, self._worker_name)
            for job in jobs:
                # 세마포어로 동시 실행 수 제한
                await self._semaphore.acquire()
                task = asyncio.create_task(self._execute_job(job))
                self._running_tasks.add(task)
                task.add_done_callback(self._on_task_done)
            assigned += len(jobs)

        if assigned:
            logger.debug(f"Assigned {assigned} job(s)")
        return assigned

    async def _execute_job(self, job: Job) -> None:
        """작업 실행 (워커 태스크)"""
        try:
            report = await self._executor.execute(job)
            self._reports.append(report)
        except Exception as e:
            # ack/fail 자체 실패: lease 만료 후 rescue_expired가 처리
            logger.error(f"Unexpected error executing job {job.id}: {e}", exc_info=True)
        finally:
            self._semaphore.release()

    def _on_task_done(self, task: asyncio.Task) -> None:
        """태스크 완료 콜백"""
        self._running_tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.error(f"Task exception: {task.exception()}")
        if self._wake_event:
            self._wake_event.set()

    async def _wait_running_tasks(self) -> None:
        """실행 중인 작업 완료 대기, shutdown_timeout 초과분은 취소 (lease 만료 후 재실행)"""
        pending = set(self._running_tasks)
        if not pending:
            return

        logger.info(f"Waiting for {len(pending)} running job(s) to finish")
        _, still_running = await asyncio.wait(pending, timeout=self._config.shutdown_timeout_seconds)
        if not still_running:
            return

        logger.warning(
            f"Shutdown timeout ({self._config.shutdown_timeout_seconds}s), "
            f"cancelling {len(still_running)} job(s)"
        )
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)

    @property
    def is_running(self) -> bool:
        """실행 중 여부"""
        return self._running

    @property
    def running_task_count(self) -> int:
        """실행 중인 태스크 수"""
        return len(self._running_tasks)

    @property
    def worker_name(self) -> str:
        return self._worker_name


def _load_handlers() -> None:
    """핸들러 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    from worker import job as job_pkg

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            logger.debug(f"Loaded handler module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(job_pkg, "worker.job")
