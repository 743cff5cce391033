"""
Worker 테스트

테스트 항목:
1. @handler 등록 / get_handler() / _load_handlers()
2. process_record: 단계별 실패가 ItemOutcome으로 변환됨
3. 배치 핸들러: 항목 격리, 요약 결과, 다음 배치 등록
4. Executor: 성공(ack), 작업 실패(JobFaultError), 타임아웃, 핸들러 없음
5. WorkerPool.drain: 체인 종료, A/B/C 시나리오, 재시도 상한
6. 단건 핸들러

실행: python -m pytest test/worker_test.py -v
"""

import asyncio
import logging

import pytest

from conftest import FakeFetcher, FakeInferer, locator_for
from database import get_db
from jobqueue import JobQueue, JobState, QueueConfig
from scheduler.main import BatchScheduler
from scheduler.model.scheduler import SchedulerConfig
from worker.base import (
    BaseHandler,
    handler,
    get_handler,
    get_registered_handlers,
    HandlerNotFoundError,
    unregister_handler,
)
from worker.exception import JobFaultError
from worker.executor import Executor
from worker.job.batch_embedding import BatchEmbeddingHandler
from worker.job.embedding import EmbeddingHandler
from worker.job.service.embedding_service import process_record
from worker.main import WorkerPool, WorkerConfig, _load_handlers
from worker.model.handler import (
    HandlerContext,
    HandlerResult,
    ItemErrorKind,
    ItemOutcome,
    OutcomeStatus,
    WorkerResult,
)

logger = logging.getLogger(__name__)

QUEUE = "embeddings"


class DeletingFetcher(FakeFetcher):
    """다운로드 도중 레코드가 삭제되는 상황"""

    async def fetch(self, locator: str) -> bytes:
        content = await super().fetch(locator)
        record_id = content.decode().removeprefix("image:")
        async with get_db().transaction() as ctx:
            await ctx.execute("DELETE FROM records WHERE id = ?", (record_id,))
        return content


class EnqueueFailingQueue(JobQueue):
    """lease/ack는 정상, 새 작업 등록만 실패하는 큐"""

    def __init__(self, config: QueueConfig):
        super().__init__(config)
        self.fail_enqueue = False

    async def enqueue(self, queue_name, payload, handler_name, max_attempts=None, delay_seconds=0):
        if self.fail_enqueue:
            from jobqueue import EnqueueError
            raise EnqueueError(queue_name, "disk I/O error")
        return await super().enqueue(queue_name, payload, handler_name, max_attempts, delay_seconds)


@handler("test_always_fault")
class AlwaysFaultHandler(BaseHandler):
    """항상 작업 수준 실패"""
    executions = 0

    async def execute(self, job):
        AlwaysFaultHandler.executions += 1
        raise JobFaultError(job.id, "bookkeeping failed")


@handler("test_slow")
class SlowHandler(BaseHandler):
    async def execute(self, job):
        await asyncio.sleep(5)
        return HandlerResult(handler=self.name)


@handler("test_crash")
class CrashHandler(BaseHandler):
    async def execute(self, job):
        raise KeyError("unexpected")


def make_queue(**overrides) -> JobQueue:
    overrides.setdefault("backoff_initial_seconds", 0)
    return JobQueue(QueueConfig(**overrides))


def make_context(record_store, queue, fetcher=None, inferer=None, batch_size=5, **kwargs) -> HandlerContext:
    scheduler = BatchScheduler(SchedulerConfig(batch_size=batch_size), record_store, queue)
    return HandlerContext(
        record_store=record_store,
        fetcher=fetcher or FakeFetcher(),
        inferer=inferer or FakeInferer(),
        scheduler=scheduler,
        **kwargs,
    )


def make_pool(queue, context, **overrides) -> WorkerPool:
    config = WorkerConfig(
        queues=[QUEUE],
        pool_size=overrides.pop("pool_size", 4),
        poll_interval_seconds=0.05,
        job_timeout_seconds=overrides.pop("job_timeout_seconds", 5),
        shutdown_timeout_seconds=5,
        name="test-worker",
    )
    return WorkerPool(config, queue, context)


async def lease_one(queue: JobQueue):
    jobs = await queue.lease(QUEUE, 1, "test-worker")
    assert len(jobs) == 1
    return jobs[0]


# ============================================================
# Handler Registry Tests
# ============================================================

class TestHandlerRegistry:
    """@handler 데코레이터 및 get_handler() 테스트"""

    def test_embedding_handlers_registered(self):
        _load_handlers()
        handlers = get_registered_handlers()
        assert handlers["batch_embedding"] is BatchEmbeddingHandler
        assert handlers["embedding"] is EmbeddingHandler

    def test_get_handler_returns_instance_with_context(self, record_store):
        context = make_context(record_store, make_queue())
        instance = get_handler("batch_embedding", context)
        assert isinstance(instance, BatchEmbeddingHandler)
        assert instance.name == "batch_embedding"

    def test_get_handler_raises_on_unknown(self, record_store):
        context = make_context(record_store, make_queue())
        with pytest.raises(HandlerNotFoundError) as exc_info:
            get_handler("unknown_handler_xyz", context)

        assert "unknown_handler_xyz" in str(exc_info.value)

    def test_custom_handler_registration(self, record_store):
        @handler("test_custom")
        class TestCustomHandler(BaseHandler):
            async def execute(self, job):
                return HandlerResult(handler="test_custom")

        assert "test_custom" in get_registered_handlers()
        assert get_handler("test_custom", make_context(record_store, make_queue())) is not None

        # 정리
        unregister_handler("test_custom")


# ============================================================
# process_record Tests
# ============================================================

class TestProcessRecord:
    """레코드 단위 처리"""

    @pytest.mark.asyncio
    async def test_success_attaches_embedding(self, record_store, seed_records, fetcher, inferer):
        await seed_records(["a"])

        outcome = await process_record("a", record_store, fetcher, inferer)

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.error is None
        assert outcome.elapsed_ms >= 0
        assert fetcher.calls == [locator_for("a")]
        record = await record_store.get("a")
        assert record.embedding == [0.25, 0.25, 0.25, 0.25]

    @pytest.mark.asyncio
    async def test_missing_record_is_not_found(self, record_store, fetcher, inferer):
        outcome = await process_record("ghost", record_store, fetcher, inferer)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == ItemErrorKind.NOT_FOUND
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_fetch_failure(self, record_store, seed_records, inferer):
        await seed_records(["a"])
        fetcher = FakeFetcher(failing={"a"})

        outcome = await process_record("a", record_store, fetcher, inferer)

        assert outcome.error == ItemErrorKind.FETCH_FAILURE
        assert "connection refused" in outcome.detail
        assert inferer.calls == []

    @pytest.mark.asyncio
    async def test_empty_asset_is_fetch_failure(self, record_store, seed_records, inferer):
        await seed_records(["a"])
        fetcher = FakeFetcher(empty={"a"})

        outcome = await process_record("a", record_store, fetcher, inferer)

        assert outcome.error == ItemErrorKind.FETCH_FAILURE
        assert outcome.detail == "empty asset"
        assert inferer.calls == []

    @pytest.mark.asyncio
    async def test_inference_failure(self, record_store, seed_records, fetcher):
        await seed_records(["a"])
        inferer = FakeInferer(failing={"a"})

        outcome = await process_record("a", record_store, fetcher, inferer)

        assert outcome.error == ItemErrorKind.INFERENCE_FAILURE
        assert (await record_store.get("a")).embedding is None

    @pytest.mark.asyncio
    async def test_empty_vector_is_inference_failure_and_store_untouched(self, record_store, seed_records, fetcher):
        await seed_records(["X"])
        inferer = FakeInferer(empty={"X"})

        outcome = await process_record("X", record_store, fetcher, inferer)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == ItemErrorKind.INFERENCE_FAILURE
        record = await record_store.get("X")
        assert record.embedding is None
        assert record.updated_at == record.created_at

    @pytest.mark.asyncio
    async def test_record_deleted_before_attach_is_not_found(self, record_store, seed_records, inferer):
        await seed_records(["a"])

        outcome = await process_record("a", record_store, DeletingFetcher(), inferer)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == ItemErrorKind.NOT_FOUND
        assert "a" in outcome.detail
        assert inferer.calls == ["a"]
        assert await record_store.get("a") is None

    @pytest.mark.asyncio
    async def test_already_embedded_record_is_skipped(self, record_store, seed_records, fetcher, inferer):
        await seed_records(["a"])
        await record_store.attach_embedding("a", [1.0, 2.0])

        outcome = await process_record("a", record_store, fetcher, inferer)

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.detail == "already embedded"
        assert fetcher.calls == []
        assert (await record_store.get("a")).embedding == [1.0, 2.0]


# ============================================================
# Batch Handler Tests
# ============================================================

class TestBatchEmbeddingHandler:
    """배치 핸들러"""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self, record_store, seed_records):
        ids = await seed_records(["r1", "r2", "r3", "r4", "r5"])
        queue = make_queue()
        context = make_context(record_store, queue, fetcher=FakeFetcher(failing={"r3"}))
        job_id = await queue.enqueue(QUEUE, {"record_ids": ids}, "batch_embedding")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.COMPLETED
        stored = await queue.get(job_id)
        assert stored.state == JobState.COMPLETED
        assert stored.result["succeeded"] == 4
        assert stored.result["failed"] == 1
        assert stored.result["failed_ids"] == ["r3"]
        assert [o["record_id"] for o in stored.result["outcomes"]] == ids
        assert stored.result["outcomes"][2]["error"] == "fetch_failure"

    @pytest.mark.asyncio
    async def test_all_items_failing_still_completes(self, record_store, seed_records):
        ids = await seed_records(["a", "b"])
        queue = make_queue()
        context = make_context(record_store, queue, fetcher=FakeFetcher(failing={"a", "b"}))
        await queue.enqueue(QUEUE, {"record_ids": ids}, "batch_embedding")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.COMPLETED

    @pytest.mark.asyncio
    async def test_schedules_next_batch_after_processing(self, record_store, seed_records):
        await seed_records(["a", "b", "c"])
        queue = make_queue()
        context = make_context(record_store, queue, batch_size=2)
        await queue.enqueue(QUEUE, {"record_ids": ["a", "b"]}, "batch_embedding")
        job = await lease_one(queue)

        result = await get_handler("batch_embedding", context).execute(job)

        assert result.next_scheduled == 1
        next_job = await queue.get(result.next_job_id)
        assert next_job.payload == {"record_ids": ["c"]}

    @pytest.mark.asyncio
    async def test_chain_failure_is_job_fault(self, record_store, seed_records):
        await seed_records(["a", "b"])
        queue = EnqueueFailingQueue(QueueConfig(backoff_initial_seconds=0))
        context = make_context(record_store, queue, batch_size=1)
        job_id = await queue.enqueue(QUEUE, {"record_ids": ["a"]}, "batch_embedding")
        job = await lease_one(queue)
        queue.fail_enqueue = True

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.RETRYING
        stored = await queue.get(job_id)
        assert "chain stalled" in stored.last_error
        # 항목 처리 결과는 유지
        assert (await record_store.get("a")).embedding is not None

    @pytest.mark.asyncio
    async def test_chain_failure_tolerated_when_configured(self, record_store, seed_records):
        await seed_records(["a", "b"])
        queue = EnqueueFailingQueue(QueueConfig())
        context = make_context(record_store, queue, batch_size=1, chain_failure_is_fault=False)
        await queue.enqueue(QUEUE, {"record_ids": ["a"]}, "batch_embedding")
        job = await lease_one(queue)
        queue.fail_enqueue = True

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.COMPLETED
        stored = await queue.get(job.id)
        assert "disk I/O error" in stored.result["error"]

    @pytest.mark.asyncio
    async def test_invalid_payload_is_job_fault(self, record_store):
        queue = make_queue()
        context = make_context(record_store, queue)
        await queue.enqueue(QUEUE, {"records": "oops"}, "batch_embedding")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.RETRYING
        assert "invalid payload" in report.error


class TestWorkerResult:
    """배치 요약"""

    def test_average_counts_only_succeeded_records(self):
        result = WorkerResult(
            handler="batch_embedding",
            outcomes=[
                ItemOutcome(record_id="a", status=OutcomeStatus.SUCCEEDED, elapsed_ms=100.0),
                ItemOutcome(record_id="b", status=OutcomeStatus.SUCCEEDED, elapsed_ms=300.0),
                ItemOutcome(
                    record_id="c", status=OutcomeStatus.FAILED,
                    error=ItemErrorKind.FETCH_FAILURE, detail="404", elapsed_ms=1.0,
                ),
            ],
            total_ms=401.0,
        )

        assert result.average_ms == 200.0
        summary = result.summary()
        assert summary["average_ms"] == 200.0
        assert summary["failed_ids"] == ["c"]

    def test_average_is_zero_without_successes(self):
        result = WorkerResult(
            handler="batch_embedding",
            outcomes=[
                ItemOutcome(
                    record_id="a", status=OutcomeStatus.FAILED,
                    error=ItemErrorKind.NOT_FOUND, detail="record not found", elapsed_ms=2.0,
                ),
            ],
            total_ms=2.0,
        )

        assert result.average_ms == 0.0


# ============================================================
# Executor Tests
# ============================================================

class TestExecutor:
    """Executor 테스트"""

    @pytest.mark.asyncio
    async def test_timeout_fails_job(self, record_store):
        queue = make_queue()
        context = make_context(record_store, queue)
        job_id = await queue.enqueue(QUEUE, {}, "test_slow")
        job = await lease_one(queue)

        report = await Executor(queue, context, 0.1).execute(job)

        assert report.state == JobState.RETRYING
        stored = await queue.get(job_id)
        assert stored.attempt == 2
        assert "timed out" in stored.last_error

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_job(self, record_store):
        queue = make_queue()
        context = make_context(record_store, queue)
        await queue.enqueue(QUEUE, {}, "test_crash")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.RETRYING
        assert "KeyError" in report.error

    @pytest.mark.asyncio
    async def test_handler_not_found(self, record_store):
        queue = make_queue()
        context = make_context(record_store, queue)
        job_id = await queue.enqueue(QUEUE, {}, "nonexistent_handler")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.RETRYING
        stored = await queue.get(job_id)
        assert "not found" in stored.last_error.lower()


# ============================================================
# WorkerPool Tests
# ============================================================

class TestWorkerPoolChaining:
    """WorkerPool.drain 체인 처리"""

    @pytest.mark.asyncio
    async def test_chain_produces_exactly_k_jobs(self, record_store, seed_records):
        batch_size, k = 2, 3
        await seed_records([f"r{i}" for i in range(batch_size * k)])
        queue = make_queue()
        context = make_context(record_store, queue, batch_size=batch_size)

        first = await context.scheduler.schedule()
        assert first.count == batch_size

        reports = await make_pool(queue, context).drain()

        assert len(reports) == k
        assert all(r.completed for r in reports)
        counts = await queue.counts()
        assert counts["completed"] == k
        assert sum(counts.values()) == k
        assert await record_store.count_pending() == 0

        final = await context.scheduler.schedule()
        assert final.ok
        assert final.count == 0

    @pytest.mark.asyncio
    async def test_abc_scenario(self, record_store, seed_records):
        await seed_records(["A", "B", "C"])
        queue = make_queue()
        inferer = FakeInferer()
        context = make_context(record_store, queue, inferer=inferer, batch_size=2)

        first = await context.scheduler.schedule()
        assert first.count == 2
        assert first.record_ids == ["A", "B"]

        await make_pool(queue, context).drain()

        jobs = sorted(await queue.list_jobs(state="completed"), key=lambda j: j.id)
        assert [j.payload["record_ids"] for j in jobs] == [["A", "B"], ["C"]]
        assert [j.result["next_scheduled"] for j in jobs] == [1, 0]
        assert sorted(inferer.calls) == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_claim_mode_chain_ends_with_permanent_failure(self, record_store, seed_records):
        """claim 모드: 실패한 레코드는 TTL 동안 다시 선택되지 않음"""
        await seed_records(["a", "b", "c"])
        queue = make_queue()
        scheduler = BatchScheduler(
            SchedulerConfig(batch_size=2, claim_records=True), record_store, queue
        )
        context = HandlerContext(
            record_store=record_store,
            fetcher=FakeFetcher(failing={"b"}),
            inferer=FakeInferer(),
            scheduler=scheduler,
        )

        await scheduler.schedule()
        reports = await make_pool(queue, context).drain()

        assert len(reports) == 2
        assert all(r.completed for r in reports)
        assert await record_store.count_pending() == 1
        assert (await record_store.get("b")).embedding is None


class TestWorkerPoolRetry:
    """WorkerPool 재시도 상한"""

    @pytest.mark.asyncio
    async def test_job_fault_retried_until_discarded(self, record_store):
        AlwaysFaultHandler.executions = 0
        queue = make_queue()
        context = make_context(record_store, queue)
        job_id = await queue.enqueue(QUEUE, {}, "test_always_fault", max_attempts=3)

        reports = await make_pool(queue, context).drain()

        assert AlwaysFaultHandler.executions == 3
        assert [r.state for r in reports] == [JobState.RETRYING, JobState.RETRYING, JobState.DISCARDED]
        stored = await queue.get(job_id)
        assert stored.state == JobState.DISCARDED
        assert stored.attempt == 3

    @pytest.mark.asyncio
    async def test_drain_returns_when_queue_empty(self, record_store):
        queue = make_queue()
        pool = make_pool(queue, make_context(record_store, queue))

        reports = await pool.drain()

        assert reports == []
        assert pool.is_running is False
        assert pool.running_task_count == 0


class TestWorkerPoolLifecycle:
    """WorkerPool start / stop"""

    @pytest.mark.asyncio
    async def test_start_processes_jobs_and_stops(self, record_store, seed_records):
        await seed_records(["a"])
        queue = make_queue()
        context = make_context(record_store, queue)
        await context.scheduler.schedule()
        pool = make_pool(queue, context)

        task = asyncio.create_task(pool.start())
        for _ in range(100):
            if (await queue.counts())["completed"] == 1:
                break
            await asyncio.sleep(0.05)

        await pool.stop()
        await asyncio.wait_for(task, timeout=5)

        assert (await queue.counts())["completed"] == 1
        assert pool.is_running is False


# ============================================================
# Single Record Handler Tests
# ============================================================

class TestEmbeddingHandler:
    """단건 핸들러"""

    @pytest.mark.asyncio
    async def test_single_record_success(self, record_store, seed_records):
        await seed_records(["a", "b"])
        queue = make_queue()
        context = make_context(record_store, queue)
        await queue.enqueue(QUEUE, {"record_id": "a"}, "embedding")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.COMPLETED
        assert (await record_store.get("a")).embedding is not None
        # 단건 핸들러는 체인을 잇지 않음
        assert len(await queue.list_jobs()) == 1

    @pytest.mark.asyncio
    async def test_single_record_transient_failure_retries(self, record_store, seed_records):
        await seed_records(["a"])
        queue = make_queue()
        context = make_context(record_store, queue, inferer=FakeInferer(failing={"a"}))
        await queue.enqueue(QUEUE, {"record_id": "a"}, "embedding")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.RETRYING
        assert "inference_failure" in report.error

    @pytest.mark.asyncio
    async def test_single_record_not_found_completes(self, record_store):
        queue = make_queue()
        context = make_context(record_store, queue)
        job_id = await queue.enqueue(QUEUE, {"record_id": "ghost"}, "embedding")
        job = await lease_one(queue)

        report = await Executor(queue, context, 5).execute(job)

        assert report.state == JobState.COMPLETED
        stored = await queue.get(job_id)
        assert stored.result["success"] is False
