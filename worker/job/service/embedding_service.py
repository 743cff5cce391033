"""
레코드 단위 임베딩 처리

조회 -> 다운로드 -> 추론 -> 저장 순서로 진행하며,
각 단계의 실패는 예외로 전파하지 않고 ItemOutcome(failed)으로 반환합니다.
"""

import logging
import time

from client.base import BaseAssetFetcher, BaseEmbeddingInferer
from record.exception import RecordNotFoundError
from record.store import RecordStore
from worker.model.handler import ItemErrorKind, ItemOutcome, OutcomeStatus

logger = logging.getLogger(__name__)


async def process_record(
    record_id: str,
    record_store: RecordStore,
    fetcher: BaseAssetFetcher,
    inferer: BaseEmbeddingInferer,
) -> ItemOutcome:
    """레코드 1건 처리"""
    start_time = time.monotonic()

    def failed(kind: ItemErrorKind, detail: str) -> ItemOutcome:
        logger.warning(
            f"Record {record_id} failed at {kind.value}: {detail}",
            extra={"record_id": record_id, "stage": kind.value, "reason": detail},
        )
        return ItemOutcome(
            record_id=record_id,
            status=OutcomeStatus.FAILED,
            error=kind,
            detail=detail,
            elapsed_ms=_elapsed_ms(start_time),
        )

    # 1. 조회
    try:
        record = await record_store.get(record_id)
    except Exception as e:
        return failed(ItemErrorKind.PERSISTENCE_FAILURE, f"lookup failed: {e}")

    if record is None:
        return failed(ItemErrorKind.NOT_FOUND, "record not found")

    # 중복 배치가 먼저 처리한 경우
    if not record.is_pending:
        logger.info(f"Record {record_id} already embedded, skipping")
        return ItemOutcome(
            record_id=record_id,
            status=OutcomeStatus.SUCCEEDED,
            detail="already embedded",
            elapsed_ms=_elapsed_ms(start_time),
        )

    # 2. 다운로드
    try:
        asset = await fetcher.fetch(record.asset_locator)
    except Exception as e:
        return failed(ItemErrorKind.FETCH_FAILURE, str(e))

    if not asset:
        return failed(ItemErrorKind.FETCH_FAILURE, "empty asset")

    # 3. 추론
    try:
        embedding = await inferer.infer(asset)
    except Exception as e:
        return failed(ItemErrorKind.INFERENCE_FAILURE, str(e))

    if not embedding:
        return failed(ItemErrorKind.INFERENCE_FAILURE, "empty embedding vector")

    # 4. 저장
    try:
        await record_store.attach_embedding(record_id, embedding)
    except RecordNotFoundError as e:
        return failed(ItemErrorKind.NOT_FOUND, e.message)
    except Exception as e:
        return failed(ItemErrorKind.PERSISTENCE_FAILURE, str(e))

    elapsed_ms = _elapsed_ms(start_time)
    logger.info(f"Record {record_id} embedded ({len(embedding)} dims) in {elapsed_ms:.0f}ms")
    return ItemOutcome(
        record_id=record_id,
        status=OutcomeStatus.SUCCEEDED,
        elapsed_ms=elapsed_ms,
    )


def _elapsed_ms(start_time: float) -> float:
    return round((time.monotonic() - start_time) * 1000, 2)
