"""
Shared pytest fixtures for integration tests.

Every fixture here runs against each document store backend: the in-memory
store always, SQLite when aiosqlite is installed.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio

from docmigrate.migration import ConsistencyVerifier, MigrationConfig, MigrationCoordinator
from docmigrate.stores.in_memory import InMemoryDocumentStore
from docmigrate.workload.seed import SEED_SCHEMA, SeedLoader
from tests.conftest import SOURCE, skip_if_no_aiosqlite

SEEDED = 200


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


@pytest_asyncio.fixture(
    params=[
        "memory",
        pytest.param("sqlite", marks=[pytest.mark.sqlite, skip_if_no_aiosqlite]),
    ]
)
async def store(request: pytest.FixtureRequest) -> AsyncGenerator[Any, None]:
    """
    Provide a store whose source collection holds SEEDED documents.

    Yields:
        InMemoryDocumentStore or SQLiteDocumentStore with "test_1" seeded
    """
    if request.param == "memory":
        instance: Any = InMemoryDocumentStore(enable_tracing=False)
    else:
        from docmigrate.stores.sqlite import SQLiteDocumentStore

        instance = SQLiteDocumentStore(":memory:", wal_mode=False, enable_tracing=False)
        await instance.initialize()

    await instance.create_collection(SOURCE, SEED_SCHEMA)
    await SeedLoader(instance, batch_size=50).load(SOURCE, SEEDED)
    yield instance
    await instance.close()


@pytest.fixture
def coordinator(store: Any) -> MigrationCoordinator:
    return MigrationCoordinator(
        store, MigrationConfig(throughput_limit=None, batch_size=25), enable_tracing=False
    )


@pytest.fixture
def verifier(store: Any) -> ConsistencyVerifier:
    return ConsistencyVerifier(store, enable_tracing=False)
