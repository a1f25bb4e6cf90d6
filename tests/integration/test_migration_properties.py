"""
Integration tests for the guarantees of the two-phase migration.

Writes race phase one: they start as soon as the store reports that it has
enumerated the source, and the properties are checked once the phases have
completed.

Tests cover:
- Snapshot isolation of phase one
- Forward repair by phase two
- No destination regression during phase two
- The deletion gap
- Idempotent replay
- The scripted scenario with its default ids
"""

from __future__ import annotations

import io
from typing import Any

import pytest

from docmigrate.migration import ConsistencyVerifier, DivergenceKind, MigrationCoordinator
from docmigrate.scenario import ScenarioConfig, run_scenario
from docmigrate.stores.in_memory import InMemoryDocumentStore
from docmigrate.workload import WorkloadGenerator, WorkloadOperation, default_payload
from docmigrate.workload.seed import SEED_SCHEMA
from tests.conftest import DEST, SOURCE

from .conftest import SEEDED

pytestmark = pytest.mark.integration

UPDATED = ["3", "50", "120"]
DELETED = ["7", "80"]
CREATED = ["1001", "1002"]


def _updated_payload(doc_id: str) -> dict[str, Any]:
    return {"name": f"updated-{doc_id}", "age": int(doc_id) + 1}


def _created_payload(doc_id: str) -> dict[str, Any]:
    return {"name": f"created-{doc_id}", "age": 0}


async def _phase_one_with_writes(store: Any, coordinator: MigrationCoordinator) -> None:
    """Run phase one while updates, deletes and creates hit the source."""
    operations = (
        [WorkloadOperation.update(SOURCE, i, _updated_payload(i)) for i in UPDATED]
        + [WorkloadOperation.delete(SOURCE, i) for i in DELETED]
        + [WorkloadOperation.create(SOURCE, i, _created_payload(i)) for i in CREATED]
    )
    handle = await coordinator.start_phase_one(SOURCE, DEST, SEED_SCHEMA)

    outcomes = await WorkloadGenerator(store, enable_tracing=False).run_after(
        operations, trigger=handle.wait_for_snapshot
    )
    result = await handle.result()

    assert all(outcome.succeeded for outcome in outcomes)
    assert result.succeeded
    assert result.documents_copied == SEEDED


class TestSnapshotIsolation:
    """Documents created after enumeration are not copied by phase one."""

    @pytest.mark.asyncio
    async def test_late_creates_absent_after_phase_one(
        self, store: Any, coordinator: MigrationCoordinator, verifier: ConsistencyVerifier
    ) -> None:
        await _phase_one_with_writes(store, coordinator)

        report = await verifier.checkpoint("after-phase-one", SOURCE, DEST, CREATED)

        assert all(c.kind == DivergenceKind.MISSING_IN_DEST for c in report.comparisons)

    @pytest.mark.asyncio
    async def test_late_creates_copied_by_phase_two(
        self, store: Any, coordinator: MigrationCoordinator
    ) -> None:
        await _phase_one_with_writes(store, coordinator)

        result = await coordinator.run_phase_two(SOURCE, DEST)

        assert result.documents_created == len(CREATED)
        for doc_id in CREATED:
            doc = await store.get(DEST, doc_id)
            assert doc is not None
            assert doc.payload == _created_payload(doc_id)


class TestForwardRepair:
    """Updates made after the snapshot reach the destination in phase two."""

    @pytest.mark.asyncio
    async def test_updates_replayed(
        self, store: Any, coordinator: MigrationCoordinator, verifier: ConsistencyVerifier
    ) -> None:
        await _phase_one_with_writes(store, coordinator)
        stale = await verifier.checkpoint("after-phase-one", SOURCE, DEST, UPDATED)
        assert all(c.kind == DivergenceKind.STALE_IN_DEST for c in stale.comparisons)

        result = await coordinator.run_phase_two(SOURCE, DEST)

        assert result.documents_updated == len(UPDATED)
        for doc_id in UPDATED:
            source_doc = await store.get(SOURCE, doc_id)
            dest_doc = await store.get(DEST, doc_id)
            assert dest_doc is not None
            assert dest_doc.payload == _updated_payload(doc_id)
            assert dest_doc.version >= source_doc.version


class TestNoRegression:
    """Destination versions never go backwards during phase two."""

    @pytest.mark.asyncio
    async def test_versions_monotonic(
        self, store: Any, coordinator: MigrationCoordinator, verifier: ConsistencyVerifier
    ) -> None:
        await _phase_one_with_writes(store, coordinator)
        before = await verifier.capture_versions(DEST)

        await coordinator.run_phase_two(SOURCE, DEST)

        after = await verifier.capture_versions(DEST)
        assert verifier.find_regressions(before, after) == []
        assert len(after) == SEEDED + len(CREATED)


class TestDeletionGap:
    """Deletes made after the snapshot are not propagated."""

    @pytest.mark.asyncio
    async def test_deleted_documents_retained(
        self, store: Any, coordinator: MigrationCoordinator, verifier: ConsistencyVerifier
    ) -> None:
        await _phase_one_with_writes(store, coordinator)
        await coordinator.run_phase_two(SOURCE, DEST)

        report = await verifier.checkpoint("after-phase-two", SOURCE, DEST, DELETED)

        for comparison in report.comparisons:
            assert comparison.kind == DivergenceKind.ORPHANED_IN_DEST
            assert comparison.dest is not None
            assert comparison.dest.payload == default_payload(int(comparison.doc_id))

    @pytest.mark.asyncio
    async def test_only_deletions_diverge(
        self, store: Any, coordinator: MigrationCoordinator, verifier: ConsistencyVerifier
    ) -> None:
        await _phase_one_with_writes(store, coordinator)
        await coordinator.run_phase_two(SOURCE, DEST)

        report = await verifier.verify_collections(SOURCE, DEST)

        assert sorted(c.doc_id for c in report.divergent) == sorted(DELETED)


class TestIdempotentReplay:
    """A second replay with no intervening writes changes nothing."""

    @pytest.mark.asyncio
    async def test_second_replay_is_noop(
        self, store: Any, coordinator: MigrationCoordinator, verifier: ConsistencyVerifier
    ) -> None:
        await _phase_one_with_writes(store, coordinator)
        await coordinator.run_phase_two(SOURCE, DEST)
        first = await verifier.capture_versions(DEST)

        again = await coordinator.run_phase_two(SOURCE, DEST)

        assert again.documents_copied == 0
        assert again.version_conflicts == SEEDED - len(DELETED) + len(CREATED)
        assert await verifier.capture_versions(DEST) == first


class TestScriptedScenario:
    """The scenario with its default document ids."""

    @pytest.mark.asyncio
    async def test_default_ids(self) -> None:
        store = InMemoryDocumentStore(enable_tracing=False)
        config = ScenarioConfig(document_count=25000, throughput_limit=None)

        report = await run_scenario(store, config, io.StringIO(), enable_tracing=False)
        await store.close()

        assert report.passed, report.failed_expectations
        after_two = report.checkpoint("after-phase-two")
        updated = after_two.by_id(10000).dest
        deleted = after_two.by_id(20000).dest
        created = after_two.by_id(999999999).dest
        assert updated is not None
        assert updated.payload == {"name": "document updated data", "age": 111111111}
        assert deleted is not None
        assert deleted.payload == {"name": "a", "age": 20000}
        assert created is not None
        assert created.payload == {"name": "garbage additional data", "age": 9876}
        assert report.checkpoint("after-phase-one").by_id(999999999).dest is None
