"""
Shared pytest fixtures for the docmigrate tests.

This module provides:
- Schema fixtures (people_schema)
- Store fixtures (memory_store, seeded_store, sqlite_store)
- Tracing fixtures (mock_tracer)
- SQLite availability check and skip marker

All fixtures are function scoped so every test gets a fresh store.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio

from docmigrate.documents.schema import CollectionSchema, FieldType
from docmigrate.observability import MockTracer
from docmigrate.stores.in_memory import InMemoryDocumentStore
from docmigrate.workload.seed import SEED_SCHEMA, SeedLoader

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# ============================================================================
# Skip Condition
# ============================================================================

skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


SOURCE = "test_1"
DEST = "test_2"
SEED_COUNT = 50


# =============================================================================
# Schema Fixtures
# =============================================================================


@pytest.fixture
def people_schema() -> CollectionSchema:
    """
    Provide the keyword name / integer age schema used by the scenario.

    Returns:
        The seed schema.
    """
    return SEED_SCHEMA


@pytest.fixture
def rich_schema() -> CollectionSchema:
    """
    Provide a schema covering every field type.

    Returns:
        CollectionSchema with one field per FieldType.
    """
    return CollectionSchema(
        properties={
            "name": FieldType.KEYWORD,
            "bio": FieldType.TEXT,
            "age": FieldType.INTEGER,
            "views": FieldType.LONG,
            "score": FieldType.FLOAT,
            "active": FieldType.BOOLEAN,
        }
    )


# =============================================================================
# Tracing Fixtures
# =============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    """
    Provide a MockTracer that records span names and attributes.

    Returns:
        A fresh MockTracer.
    """
    return MockTracer()


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def memory_store() -> AsyncGenerator[InMemoryDocumentStore, None]:
    """
    Provide a fresh in-memory document store.

    Yields:
        InMemoryDocumentStore with tracing disabled
    """
    store = InMemoryDocumentStore(enable_tracing=False)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def seeded_store(
    memory_store: InMemoryDocumentStore,
) -> AsyncGenerator[InMemoryDocumentStore, None]:
    """
    Provide an in-memory store whose source collection holds SEED_COUNT documents.

    Documents have ids "1".."50" and payload {"name": "a", "age": id}.

    Yields:
        InMemoryDocumentStore with the "test_1" collection seeded and refreshed
    """
    await memory_store.create_collection(SOURCE, SEED_SCHEMA)
    await SeedLoader(memory_store, batch_size=20).load(SOURCE, SEED_COUNT)
    yield memory_store


@pytest_asyncio.fixture
async def sqlite_store() -> AsyncGenerator[Any, None]:
    """
    Provide an initialized SQLiteDocumentStore on an in-memory database.

    Yields:
        SQLiteDocumentStore: Connected store with its tables created
    """
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from docmigrate.stores.sqlite import SQLiteDocumentStore

    store = SQLiteDocumentStore(":memory:", wal_mode=False, enable_tracing=False)
    await store.initialize()
    yield store
    await store.close()
