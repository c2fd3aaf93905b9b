"""
Shared fixtures: a small two-model registry and a ComparisonStore backed by
a temporary SQLite file.
"""

import pytest
import pytest_asyncio

from llm_compare.config import ModelConfig
from llm_compare.database import ComparisonStore, ConnectionPool
from tests.gateway_stub import MODEL_A, MODEL_B


@pytest.fixture
def registry() -> list[ModelConfig]:
    return [MODEL_A, MODEL_B]


@pytest_asyncio.fixture
async def pool(tmp_path):
    pool = ConnectionPool(str(tmp_path / "comparisons.db"), size=2)
    await pool.open()
    yield pool
    await pool.close()


@pytest_asyncio.fixture
async def store(pool):
    store = ComparisonStore(pool)
    await store.init_schema()
    return store
