"""
공통 테스트 fixture

- database: tmp_path에 SQLite 파일을 만들어 DatabaseRegistry에 등록
- FakeFetcher / FakeInferer: 외부 서비스 대체 구현
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from client.base import BaseAssetFetcher, BaseEmbeddingInferer
from client.exception import AssetFetchError, InferenceError
from database import get_db
from database.registry import DatabaseRegistry
from record.store import RecordStore


def locator_for(record_id: str) -> str:
    return f"https://assets.example.com/{record_id}.jpg"


class FakeFetcher(BaseAssetFetcher):
    """locator 기준으로 실패/빈 응답을 흉내내는 다운로더"""

    def __init__(self, failing: set[str] | None = None, empty: set[str] | None = None):
        self.failing = failing or set()
        self.empty = empty or set()
        self.calls: list[str] = []

    async def fetch(self, locator: str) -> bytes:
        self.calls.append(locator)
        record_id = locator.rsplit("/", 1)[-1].removesuffix(".jpg")
        if record_id in self.failing:
            raise AssetFetchError(locator, "connection refused")
        if record_id in self.empty:
            return b""
        return f"image:{record_id}".encode()


class FakeInferer(BaseEmbeddingInferer):
    """레코드 id 기준으로 실패/빈 벡터를 흉내내는 추론기"""

    def __init__(self, failing: set[str] | None = None, empty: set[str] | None = None, dimensions: int = 4):
        self.failing = failing or set()
        self.empty = empty or set()
        self.dimensions = dimensions
        self.calls: list[str] = []

    async def infer(self, asset: bytes) -> list[float]:
        record_id = asset.decode().removeprefix("image:")
        self.calls.append(record_id)
        if record_id in self.failing:
            raise InferenceError("model not loaded", "llama3.2-vision")
        if record_id in self.empty:
            return []
        return [0.25] * self.dimensions


@pytest.fixture
def db_config(tmp_path):
    """tmp_path 기반 database 설정"""
    return {
        "databases": {
            "default": {
                "type": "sqlite",
                "path": str(tmp_path / "embedfill_test.db"),
                "pool": {"pool_size": 5, "pool_timeout": 5.0},
            }
        }
    }


@pytest_asyncio.fixture
async def database(db_config):
    """테스트용 Database 인스턴스 (DatabaseRegistry 사용)"""
    DatabaseRegistry.clear()
    await DatabaseRegistry.init_from_config(db_config)
    yield get_db("default")
    await DatabaseRegistry.close_all()


@pytest.fixture
def record_store(database):
    return RecordStore()


@pytest.fixture
def seed_records(record_store):
    """레코드 등록 헬퍼"""
    async def seed(record_ids):
        for record_id in record_ids:
            await record_store.add(record_id, locator_for(record_id))
        return list(record_ids)
    return seed


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def inferer():
    return FakeInferer()
