"""
embedfill 통합 진입점

사용법:
    python main.py worker                # 워커풀 실행 (체인 처리)
    python main.py worker --once         # 실행 가능한 작업이 없을 때까지 처리 후 종료
    python main.py schedule [-b N]       # 스케줄링 1회 (실패 시 exit code 1)
    python main.py jobs [--state STATE]  # 작업 목록
    python main.py status                # 상태별 작업 수 및 남은 레코드 수
    python main.py retry JOB_ID          # discarded 작업 수동 재등록
    python main.py prune [--max-age S]   # 오래된 completed 작업 삭제
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any

from client import (
    BaseAssetFetcher,
    FetcherConfig,
    HttpAssetFetcher,
    InfererConfig,
    OllamaEmbeddingInferer,
    S3AssetFetcher,
)
from common.config import load_config
from common.logging import setup_logging_from_config
from database.registry import DatabaseRegistry
from jobqueue import JobQueue, JobState, JobNotFoundError, QueueConfig
from record.store import RecordStore
from scheduler.main import BatchScheduler
from scheduler.model.scheduler import SchedulerConfig

logger = logging.getLogger(__name__)


def build_queue(config: dict[str, Any]) -> JobQueue:
    return JobQueue(QueueConfig(**config.get("queue", {})))


def build_scheduler(config: dict[str, Any], record_store: RecordStore, queue: JobQueue) -> BatchScheduler:
    return BatchScheduler(SchedulerConfig(**config.get("scheduler", {})), record_store, queue)


def build_fetcher(config: dict[str, Any]) -> BaseAssetFetcher:
    """client.fetcher.type에 맞는 다운로더 (http | s3)"""
    fetcher_config = FetcherConfig(**config.get("client", {}).get("fetcher", {}))
    if fetcher_config.type == "s3":
        return S3AssetFetcher(fetcher_config)
    return HttpAssetFetcher(fetcher_config)


async def run_worker(config: dict[str, Any], once: bool) -> int:
    """워커풀 실행"""
    from worker.main import WorkerPool, WorkerConfig, _load_handlers
    from worker.model.handler import HandlerContext

    _load_handlers()
    worker_config = WorkerConfig(**config.get("worker", {}))
    client_config = config.get("client", {})

    record_store = RecordStore()
    queue = build_queue(config)
    fetcher = build_fetcher(config)
    inferer = OllamaEmbeddingInferer(InfererConfig(**client_config.get("inferer", {})))
    context = HandlerContext(
        record_store=record_store,
        fetcher=fetcher,
        inferer=inferer,
        scheduler=build_scheduler(config, record_store, queue),
        chain_failure_is_fault=worker_config.chain_failure_is_fault,
    )
    worker_pool = WorkerPool(worker_config, queue, context)

    try:
        if once:
            reports = await worker_pool.drain()
            failed = [r for r in reports if not r.completed]
            print(f"Executed {len(reports)} job(s), {len(failed)} not completed")
            return 0

        # 시그널 핸들러
        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            asyncio.create_task(worker_pool.stop())

        # Windows는 add_signal_handler를 지원하지 않음
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler)

        await worker_pool.start()
        return 0
    finally:
        await fetcher.close()
        await inferer.close()


async def run_schedule(config: dict[str, Any], batch_size: int | None) -> int:
    """스케줄링 1회 실행"""
    scheduler = build_scheduler(config, RecordStore(), build_queue(config))
    result = await scheduler.schedule(batch_size)
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    if result.count == 0:
        print("No pending records")
    else:
        print(f"Scheduled {result.count} record(s) for embedding generation (job_id={result.job_id})")
    return 0


async def run_jobs(config: dict[str, Any], state: str | None, limit: int) -> int:
    """작업 목록 출력"""
    jobs = await build_queue(config).list_jobs(state=state, limit=limit)
    for job in jobs:
        line = (
            f"{job.id:>6}  {job.state.value:<10} {job.queue_name:<12} {job.handler_name:<16} "
            f"attempt={job.attempt}/{job.max_attempts}"
        )
        if job.last_error:
            line += f"  error={job.last_error}"
        print(line)
    if not jobs:
        print("No jobs")
    return 0


async def run_status(config: dict[str, Any]) -> int:
    """상태별 작업 수 및 남은 레코드 수 출력"""
    counts = await build_queue(config).counts()
    pending = await RecordStore().count_pending()
    for state, count in counts.items():
        print(f"{state:<10} {count}")
    print(f"pending records: {pending}")
    return 0


async def run_retry(config: dict[str, Any], job_id: int) -> int:
    """discarded 작업 재등록"""
    try:
        requeued = await build_queue(config).retry_discarded(job_id)
    except JobNotFoundError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    if not requeued:
        print(f"Error: job {job_id} is not discarded", file=sys.stderr)
        return 1
    print(f"Job {job_id} re-queued")
    return 0


async def run_prune(config: dict[str, Any], max_age_seconds: float | None) -> int:
    """오래된 completed 작업 삭제"""
    deleted = await build_queue(config).prune(max_age_seconds)
    print(f"Pruned {deleted} completed job(s)")
    return 0


async def run(args: argparse.Namespace, config: dict[str, Any]) -> int:
    """DB 초기화 후 명령 실행"""
    await DatabaseRegistry.init_from_config(config, ["default"])
    try:
        if args.command == "worker":
            return await run_worker(config, args.once)
        if args.command == "schedule":
            return await run_schedule(config, args.batch_size)
        if args.command == "jobs":
            return await run_jobs(config, args.state, args.limit)
        if args.command == "status":
            return await run_status(config)
        if args.command == "retry":
            return await run_retry(config, args.job_id)
        if args.command == "prune":
            return await run_prune(config, args.max_age)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await DatabaseRegistry.close_all()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="embedfill", description="Embedding backfill job runner")
    parser.add_argument("--config-dir", help="설정 디렉토리 (기본: EMBEDFILL_CONFIG_DIR 또는 ./config)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    worker_parser = subparsers.add_parser("worker", help="워커풀 실행")
    worker_parser.add_argument("--once", action="store_true", help="실행 가능한 작업을 모두 처리하고 종료")

    schedule_parser = subparsers.add_parser("schedule", help="처리 대상 레코드 배치 등록")
    schedule_parser.add_argument("-b", "--batch-size", type=int, default=None, help="배치 크기")

    jobs_parser = subparsers.add_parser("jobs", help="작업 목록")
    jobs_parser.add_argument("--state", choices=[s.value for s in JobState], default=None)
    jobs_parser.add_argument("--limit", type=int, default=50)

    subparsers.add_parser("status", help="상태별 작업 수")

    retry_parser = subparsers.add_parser("retry", help="discarded 작업 재등록")
    retry_parser.add_argument("job_id", type=int)

    prune_parser = subparsers.add_parser("prune", help="오래된 completed 작업 삭제")
    prune_parser.add_argument("--max-age", type=float, default=None, help="초 단위 (기본: queue.prune_max_age_seconds)")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config_dir)
    setup_logging_from_config(config)

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
