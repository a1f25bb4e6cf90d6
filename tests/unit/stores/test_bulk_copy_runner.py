"""
Unit tests for BulkCopyRunner and RateLimiter.

Tests cover:
- Token bucket throttling
- Batching, spans and progress logging
- Schema compatibility check before the snapshot is announced
- Empty snapshots
"""

import asyncio
import logging
import time

import pytest

from docmigrate.documents.schema import CollectionSchema, FieldType
from docmigrate.exceptions import SchemaViolationError
from docmigrate.observability import MockTracer
from docmigrate.stores import bulk_copy
from docmigrate.stores.bulk_copy import BulkCopyRunner, RateLimiter
from docmigrate.stores.in_memory import InMemoryDocumentStore
from docmigrate.stores.interface import BulkCopyRequest, BulkWriteOperation, VersionMode
from docmigrate.workload.seed import SEED_SCHEMA


async def _source_snapshot(store: InMemoryDocumentStore, count: int):
    await store.create_collection("src", SEED_SCHEMA)
    await store.create_collection("dst", SEED_SCHEMA)
    await store.bulk_write(
        "src",
        [BulkWriteOperation(str(i), {"name": "a", "age": i}) for i in range(1, count + 1)],
    )
    return await store._enumerate("src")


class TestRateLimiter:
    """Tests for RateLimiter."""

    @pytest.mark.asyncio
    async def test_unlimited_never_waits(self):
        limiter = RateLimiter(None)

        start = time.monotonic()
        for _ in range(100):
            await limiter.wait(1_000_000)

        assert limiter.max_rate is None
        assert time.monotonic() - start < 0.5

    @pytest.mark.asyncio
    async def test_initial_burst_is_free(self):
        limiter = RateLimiter(1000)

        start = time.monotonic()
        await limiter.wait(500)

        assert time.monotonic() - start < 0.1

    @pytest.mark.asyncio
    async def test_waits_when_tokens_exhausted(self):
        limiter = RateLimiter(100)
        await limiter.wait(100)

        start = time.monotonic()
        await limiter.wait(10)

        assert time.monotonic() - start >= 0.08


class TestBulkCopyRunner:
    """Tests for BulkCopyRunner.run()."""

    @pytest.mark.asyncio
    async def test_one_span_per_batch(self, memory_store: InMemoryDocumentStore):
        snapshot = await _source_snapshot(memory_store, 25)
        tracer = MockTracer()
        runner = BulkCopyRunner(
            memory_store, BulkCopyRequest("src", "dst", batch_size=10), tracer=tracer
        )

        response = await runner.run(snapshot, SEED_SCHEMA, SEED_SCHEMA)

        assert response.batches == 3
        assert tracer.span_names == ["docmigrate.bulk_copy.write_batch"] * 3
        assert response.created == 25
        assert await memory_store.count("dst") == 25

    @pytest.mark.asyncio
    async def test_empty_snapshot(self, memory_store: InMemoryDocumentStore):
        snapshot = await _source_snapshot(memory_store, 0)
        event = asyncio.Event()
        runner = BulkCopyRunner(memory_store, BulkCopyRequest("src", "dst"), enable_tracing=False)

        response = await runner.run(snapshot, SEED_SCHEMA, SEED_SCHEMA, event)

        assert event.is_set()
        assert response.total == 0
        assert response.batches == 0
        assert response.copied == 0

    @pytest.mark.asyncio
    async def test_incompatible_schema_raises(self, memory_store: InMemoryDocumentStore):
        snapshot = await _source_snapshot(memory_store, 3)
        event = asyncio.Event()
        narrow = CollectionSchema(properties={"name": FieldType.KEYWORD})
        runner = BulkCopyRunner(memory_store, BulkCopyRequest("src", "dst"), enable_tracing=False)

        with pytest.raises(SchemaViolationError) as exc_info:
            await runner.run(snapshot, SEED_SCHEMA, narrow, event)

        assert exc_info.value.collection == "dst"
        assert not event.is_set()

    @pytest.mark.asyncio
    async def test_logs_progress(
        self,
        memory_store: InMemoryDocumentStore,
        caplog: pytest.LogCaptureFixture,
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setattr(bulk_copy, "PROGRESS_LOG_INTERVAL", 10)
        snapshot = await _source_snapshot(memory_store, 20)
        runner = BulkCopyRunner(
            memory_store, BulkCopyRequest("src", "dst", batch_size=5), enable_tracing=False
        )

        with caplog.at_level(logging.INFO, logger="docmigrate.stores.bulk_copy"):
            await runner.run(snapshot, SEED_SCHEMA, SEED_SCHEMA)

        progress = [r.getMessage() for r in caplog.records if "progress" in r.getMessage()]
        assert progress == [
            "Bulk copy progress: 10/20 documents",
            "Bulk copy progress: 20/20 documents",
        ]
        assert any("Bulk copy completed: 20 created" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_internal_version_mode_assigns_new_versions(
        self, memory_store: InMemoryDocumentStore
    ):
        """Internal copies ignore source versions and never conflict."""
        await _source_snapshot(memory_store, 2)
        await memory_store.index("src", "1", {"name": "b", "age": 1})
        snapshot = await memory_store._enumerate("src")
        request = BulkCopyRequest("src", "dst", version_mode=VersionMode.INTERNAL)
        runner = BulkCopyRunner(memory_store, request, enable_tracing=False)

        await runner.run(snapshot, SEED_SCHEMA, SEED_SCHEMA)
        response = await runner.run(snapshot, SEED_SCHEMA, SEED_SCHEMA)

        assert response.version_conflicts == 0
        assert response.updated == 2
        doc = await memory_store.get("dst", "1")
        assert doc is not None
        assert doc.version == 2
