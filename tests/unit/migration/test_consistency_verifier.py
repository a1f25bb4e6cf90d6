"""
Unit tests for ConsistencyVerifier and divergence classification.

Tests cover:
- classify() for every divergence kind
- CheckpointReport lookups, counts and serialization
- Checkpoints across source and destination
- Version capture and regression detection
- Full collection verification
"""

from __future__ import annotations

import pytest

from docmigrate.documents.base import Document
from docmigrate.exceptions import CollectionNotFoundError
from docmigrate.migration import (
    CheckpointReport,
    ConsistencyVerifier,
    DivergenceKind,
    DocumentComparison,
    MigrationConfig,
    MigrationCoordinator,
    VersionRegression,
    classify,
)
from docmigrate.observability import MockTracer
from docmigrate.stores.in_memory import InMemoryDocumentStore
from docmigrate.workload.seed import SEED_SCHEMA
from tests.conftest import DEST, SEED_COUNT, SOURCE


def _doc(version: int, age: int = 1) -> Document:
    return Document(id="1", collection="c", payload={"name": "a", "age": age}, version=version)


@pytest.fixture
def verifier(seeded_store: InMemoryDocumentStore) -> ConsistencyVerifier:
    return ConsistencyVerifier(seeded_store, enable_tracing=False)


async def _migrate(store: InMemoryDocumentStore) -> MigrationCoordinator:
    coordinator = MigrationCoordinator(
        store, MigrationConfig(throughput_limit=None), enable_tracing=False
    )
    await coordinator.run_phase_one(SOURCE, DEST, SEED_SCHEMA)
    return coordinator


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        ("source", "dest", "expected"),
        [
            (_doc(1), _doc(1), DivergenceKind.IN_SYNC),
            (_doc(1), None, DivergenceKind.MISSING_IN_DEST),
            (_doc(2), _doc(1), DivergenceKind.STALE_IN_DEST),
            (_doc(1), _doc(2), DivergenceKind.AHEAD_IN_DEST),
            (None, _doc(1), DivergenceKind.ORPHANED_IN_DEST),
            (None, None, DivergenceKind.MISSING_IN_BOTH),
            (_doc(1, age=1), _doc(1, age=2), DivergenceKind.STALE_IN_DEST),
        ],
    )
    def test_kinds(
        self, source: Document | None, dest: Document | None, expected: DivergenceKind
    ) -> None:
        assert classify(source, dest) == expected

    def test_divergent_kinds(self) -> None:
        assert not DivergenceKind.IN_SYNC.is_divergent
        assert not DivergenceKind.MISSING_IN_BOTH.is_divergent
        assert DivergenceKind.ORPHANED_IN_DEST.is_divergent
        assert DivergenceKind.STALE_IN_DEST.is_divergent


class TestCheckpointReport:
    """Tests for CheckpointReport."""

    def _report(self) -> CheckpointReport:
        return CheckpointReport(
            name="after-phase-one",
            source_collection=SOURCE,
            dest_collection=DEST,
            comparisons=[
                DocumentComparison("1", _doc(1), _doc(1), DivergenceKind.IN_SYNC),
                DocumentComparison("2", _doc(2), _doc(1), DivergenceKind.STALE_IN_DEST),
                DocumentComparison("3", None, _doc(1), DivergenceKind.ORPHANED_IN_DEST),
            ],
        )

    def test_by_id_accepts_integer(self) -> None:
        assert self._report().by_id(2).kind == DivergenceKind.STALE_IN_DEST

    def test_by_id_unknown_raises(self) -> None:
        with pytest.raises(KeyError):
            self._report().by_id("404")

    def test_divergent_and_counts(self) -> None:
        report = self._report()

        assert [c.doc_id for c in report.divergent] == ["2", "3"]
        assert not report.is_consistent
        assert report.counts() == {
            DivergenceKind.IN_SYNC: 1,
            DivergenceKind.STALE_IN_DEST: 1,
            DivergenceKind.ORPHANED_IN_DEST: 1,
        }

    def test_to_dict(self) -> None:
        data = self._report().to_dict()

        assert data["name"] == "after-phase-one"
        assert data["is_consistent"] is False
        assert data["counts"] == {"in_sync": 1, "stale_in_dest": 1, "orphaned_in_dest": 1}
        assert data["divergent"][0] == (
            "[stale_in_dest] id=2 source_version=2, dest_version=1"
        )

    def test_empty_report_is_consistent(self) -> None:
        assert CheckpointReport("empty", SOURCE, DEST).is_consistent


class TestCheckpoint:
    """Tests for ConsistencyVerifier.checkpoint() and read_at()."""

    @pytest.mark.asyncio
    async def test_read_at_missing_returns_none(self, verifier: ConsistencyVerifier) -> None:
        assert await verifier.read_at(SOURCE, "404") is None
        assert await verifier.read_at(SOURCE, 1) is not None

    @pytest.mark.asyncio
    async def test_read_at_unknown_collection_raises(
        self, verifier: ConsistencyVerifier
    ) -> None:
        with pytest.raises(CollectionNotFoundError):
            await verifier.read_at("nowhere", "1")

    @pytest.mark.asyncio
    async def test_classifies_changes_after_snapshot(
        self, seeded_store: InMemoryDocumentStore, verifier: ConsistencyVerifier
    ) -> None:
        await _migrate(seeded_store)
        await seeded_store.index(SOURCE, "10", {"name": "b", "age": 10})
        await seeded_store.delete(SOURCE, "20")
        await seeded_store.index(SOURCE, "999", {"name": "a", "age": 999})

        report = await verifier.checkpoint("after-phase-one", SOURCE, DEST, [10, 20, 999, 30])

        assert report.by_id(10).kind == DivergenceKind.STALE_IN_DEST
        assert report.by_id(20).kind == DivergenceKind.ORPHANED_IN_DEST
        assert report.by_id(999).kind == DivergenceKind.MISSING_IN_DEST
        assert report.by_id(30).kind == DivergenceKind.IN_SYNC
        assert [c.doc_id for c in report.comparisons] == ["10", "20", "999", "30"]

    @pytest.mark.asyncio
    async def test_emits_spans(self, seeded_store: InMemoryDocumentStore) -> None:
        tracer = MockTracer()
        verifier = ConsistencyVerifier(seeded_store, tracer=tracer)

        await verifier.checkpoint("check", SOURCE, SOURCE, ["1"])

        assert tracer.span_names == [
            "docmigrate.verifier.checkpoint",
            "docmigrate.verifier.read_at",
            "docmigrate.verifier.read_at",
        ]


class TestVersionRegressions:
    """Tests for capture_versions() and find_regressions()."""

    @pytest.mark.asyncio
    async def test_capture_all(self, verifier: ConsistencyVerifier) -> None:
        versions = await verifier.capture_versions(SOURCE, batch_size=7)

        assert len(versions) == SEED_COUNT
        assert set(versions.values()) == {1}

    @pytest.mark.asyncio
    async def test_capture_ids_skips_missing(self, verifier: ConsistencyVerifier) -> None:
        versions = await verifier.capture_versions(SOURCE, [1, "2", "404"])

        assert versions == {"1": 1, "2": 1}

    def test_find_regressions(self, verifier: ConsistencyVerifier) -> None:
        before = {"1": 2, "2": 3, "3": 1, "4": 1}
        after = {"1": 2, "2": 1, "3": 4}

        assert verifier.find_regressions(before, after) == [
            VersionRegression("2", 3, 1),
            VersionRegression("4", 1, None),
        ]

    def test_no_regressions(self, verifier: ConsistencyVerifier) -> None:
        assert verifier.find_regressions({"1": 1}, {"1": 1, "2": 1}) == []

    def test_regression_str(self) -> None:
        assert str(VersionRegression("4", 1, None)) == "id=4 version 1 -> None"

    @pytest.mark.asyncio
    async def test_replay_causes_no_regressions(
        self, seeded_store: InMemoryDocumentStore, verifier: ConsistencyVerifier
    ) -> None:
        coordinator = await _migrate(seeded_store)
        await seeded_store.index(SOURCE, "10", {"name": "b", "age": 10})
        before = await verifier.capture_versions(DEST)

        await coordinator.run_phase_two(SOURCE, DEST)

        after = await verifier.capture_versions(DEST)
        assert verifier.find_regressions(before, after) == []
        assert after["10"] == 2


class TestVerifyCollections:
    """Tests for verify_collections()."""

    @pytest.mark.asyncio
    async def test_consistent_after_full_migration(
        self, seeded_store: InMemoryDocumentStore, verifier: ConsistencyVerifier
    ) -> None:
        coordinator = await _migrate(seeded_store)
        await coordinator.run_phase_two(SOURCE, DEST)

        report = await verifier.verify_collections(SOURCE, DEST, batch_size=9)

        assert report.name == "full"
        assert len(report.comparisons) == SEED_COUNT
        assert report.is_consistent

    @pytest.mark.asyncio
    async def test_reports_deletion_gap(
        self, seeded_store: InMemoryDocumentStore, verifier: ConsistencyVerifier
    ) -> None:
        coordinator = await _migrate(seeded_store)
        await seeded_store.delete(SOURCE, "20")
        await coordinator.run_phase_two(SOURCE, DEST)

        report = await verifier.verify_collections(SOURCE, DEST)

        assert len(report.comparisons) == SEED_COUNT
        assert [c.doc_id for c in report.divergent] == ["20"]
        assert report.divergent[0].kind == DivergenceKind.ORPHANED_IN_DEST
