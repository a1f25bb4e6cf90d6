"""
Scripted end-to-end migration scenario.

Seeds a source collection, starts phase one, races a create, an update
and a delete against the snapshot copy, runs phase two and reads the three
affected ids at every checkpoint. The checkpoint log goes to a text stream
(stdout by default); the returned ScenarioReport carries the same
observations in structured form together with the evaluated expectations:

- snapshot_isolation: the late-created document is absent after phase one
- forward_repair: the updated document is replayed by phase two
- deletion_gap: the deleted document is still in the destination
- late_create_copied: the late-created document arrives with phase two
- no_regression: no destination version goes backwards during phase two
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import IO, Any

from docmigrate.documents.base import Document, normalize_id
from docmigrate.migration import (
    CheckpointReport,
    ConsistencyVerifier,
    JobResult,
    MigrationConfig,
    MigrationCoordinator,
    VersionRegression,
)
from docmigrate.observability import Tracer, create_tracer
from docmigrate.serialization import json_dumps
from docmigrate.stores.interface import ConflictPolicy, DocumentStore
from docmigrate.workload import (
    SEED_SCHEMA,
    OperationOutcome,
    SeedLoader,
    WorkloadGenerator,
    WorkloadOperation,
    default_payload,
)

logger = logging.getLogger(__name__)


def _default_update_payload() -> dict[str, Any]:
    return {"name": "document updated data", "age": 111111111}


def _default_create_payload() -> dict[str, Any]:
    return {"name": "garbage additional data", "age": 9876}


@dataclass(frozen=True)
class ScenarioConfig:
    """
    Parameters of the scripted scenario.

    Attributes:
        source_collection: Collection seeded and mutated (default "test_1").
        dest_collection: Collection created by phase one (default "test_2").
        document_count: Seeded documents, ids 1..document_count (default 100000).
        settle_delay_ms: Delay before the workload runs, in milliseconds
            (default 3000). Used instead of the snapshot signal when
            wait_for_snapshot is False.
        throughput_limit: Docs/second cap of both bulk copies, None for
            unthrottled (default 5000.0).
        conflict_policy: Conflict policy of the replay (default proceed).
        seed_batch_size: Documents per seed bulk write (default 2500).
        update_doc_id: Seeded id updated during phase one (default "10000").
        delete_doc_id: Seeded id deleted during phase one (default "20000").
        create_doc_id: Unseeded id created during phase one (default "999999999").
        update_payload: Payload written by the update.
        create_payload: Payload written by the create.
        wait_for_snapshot: Start the workload on the store's enumeration
            signal rather than after the settle delay (default True).
    """

    source_collection: str = "test_1"
    dest_collection: str = "test_2"
    document_count: int = 100000
    settle_delay_ms: int = 3000
    throughput_limit: float | None = 5000.0
    conflict_policy: ConflictPolicy = ConflictPolicy.PROCEED_ON_CONFLICT
    seed_batch_size: int = 2500
    update_doc_id: str = "10000"
    delete_doc_id: str = "20000"
    create_doc_id: str = "999999999"
    update_payload: dict[str, Any] = field(default_factory=_default_update_payload)
    create_payload: dict[str, Any] = field(default_factory=_default_create_payload)
    wait_for_snapshot: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.source_collection == self.dest_collection:
            raise ValueError("source_collection and dest_collection must differ")

        if self.document_count < 1:
            raise ValueError(f"document_count must be >= 1, got {self.document_count}")

        if self.settle_delay_ms < 0:
            raise ValueError(f"settle_delay_ms must be >= 0, got {self.settle_delay_ms}")

        if self.throughput_limit is not None and self.throughput_limit <= 0:
            raise ValueError(
                f"throughput_limit must be > 0 or None, got {self.throughput_limit}"
            )

        if self.seed_batch_size < 1:
            raise ValueError(f"seed_batch_size must be >= 1, got {self.seed_batch_size}")

        for name in ("update_doc_id", "delete_doc_id", "create_doc_id"):
            object.__setattr__(self, name, normalize_id(getattr(self, name)))

        ids = {self.update_doc_id, self.delete_doc_id, self.create_doc_id}
        if len(ids) != 3:
            raise ValueError("update_doc_id, delete_doc_id and create_doc_id must differ")

        for name in ("update_doc_id", "delete_doc_id"):
            if not self._is_seeded(getattr(self, name)):
                raise ValueError(
                    f"{name} must be a seeded id in 1..{self.document_count}, "
                    f"got {getattr(self, name)}"
                )

        if self._is_seeded(self.create_doc_id):
            raise ValueError(
                f"create_doc_id must not be a seeded id, got {self.create_doc_id}"
            )

    def _is_seeded(self, doc_id: str) -> bool:
        return doc_id.isdigit() and 1 <= int(doc_id) <= self.document_count

    @property
    def target_ids(self) -> list[str]:
        """The ids read at every checkpoint, in log order."""
        return [self.update_doc_id, self.delete_doc_id, self.create_doc_id]

    @property
    def settle_delay(self) -> float:
        """Settle delay in seconds."""
        return self.settle_delay_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON output.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "source_collection": self.source_collection,
            "dest_collection": self.dest_collection,
            "document_count": self.document_count,
            "settle_delay_ms": self.settle_delay_ms,
            "throughput_limit": self.throughput_limit,
            "conflict_policy": self.conflict_policy.value,
            "seed_batch_size": self.seed_batch_size,
            "update_doc_id": self.update_doc_id,
            "delete_doc_id": self.delete_doc_id,
            "create_doc_id": self.create_doc_id,
            "update_payload": dict(self.update_payload),
            "create_payload": dict(self.create_payload),
            "wait_for_snapshot": self.wait_for_snapshot,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScenarioConfig:
        """
        Create from dictionary.

        Args:
            data: Dictionary containing configuration values.

        Returns:
            ScenarioConfig instance.
        """
        return cls(
            source_collection=data.get("source_collection", "test_1"),
            dest_collection=data.get("dest_collection", "test_2"),
            document_count=data.get("document_count", 100000),
            settle_delay_ms=data.get("settle_delay_ms", 3000),
            throughput_limit=data.get("throughput_limit", 5000.0),
            conflict_policy=ConflictPolicy(
                data.get("conflict_policy", ConflictPolicy.PROCEED_ON_CONFLICT.value)
            ),
            seed_batch_size=data.get("seed_batch_size", 2500),
            update_doc_id=data.get("update_doc_id", "10000"),
            delete_doc_id=data.get("delete_doc_id", "20000"),
            create_doc_id=data.get("create_doc_id", "999999999"),
            update_payload=data.get("update_payload") or _default_update_payload(),
            create_payload=data.get("create_payload") or _default_create_payload(),
            wait_for_snapshot=data.get("wait_for_snapshot", True),
        )

    def migration_config(self) -> MigrationConfig:
        """Coordinator configuration matching this scenario."""
        return MigrationConfig(
            throughput_limit=self.throughput_limit,
            phase_two_conflict_policy=self.conflict_policy,
        )


@dataclass
class ScenarioReport:
    """
    Everything the scenario observed.

    Attributes:
        config: The scenario configuration.
        seeded: Documents written by the seed loader.
        phase_one: Result of the snapshot copy.
        phase_two: Result of the replay.
        workload: Outcomes of the concurrent create, update and delete.
        checkpoints: Checkpoint reports, in the order they were taken.
        regressions: Destination versions that went backwards in phase two.
        expectations: Name of each checked expectation -> whether it held.
        started_at: When the scenario started.
        completed_at: When the scenario finished.
    """

    config: ScenarioConfig
    seeded: int = 0
    phase_one: JobResult | None = None
    phase_two: JobResult | None = None
    workload: list[OperationOutcome] = field(default_factory=list)
    checkpoints: list[CheckpointReport] = field(default_factory=list)
    regressions: list[VersionRegression] = field(default_factory=list)
    expectations: dict[str, bool] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def passed(self) -> bool:
        """Check if every expectation was evaluated and held."""
        return bool(self.expectations) and all(self.expectations.values())

    @property
    def failed_expectations(self) -> list[str]:
        return [name for name, held in self.expectations.items() if not held]

    def checkpoint(self, name: str) -> CheckpointReport:
        """
        Get a checkpoint by name.

        Raises:
            KeyError: If no checkpoint with that name was taken
        """
        for report in self.checkpoints:
            if report.name == name:
                return report
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "config": self.config.to_dict(),
            "seeded": self.seeded,
            "phase_one": self.phase_one.to_dict() if self.phase_one else None,
            "phase_two": self.phase_two.to_dict() if self.phase_two else None,
            "workload": [
                {
                    "kind": outcome.operation.kind.value,
                    "doc_id": outcome.operation.doc_id,
                    "version": outcome.version,
                    "error": outcome.error,
                }
                for outcome in self.workload
            ],
            "checkpoints": [report.to_dict() for report in self.checkpoints],
            "regressions": [str(regression) for regression in self.regressions],
            "expectations": dict(self.expectations),
            "passed": self.passed,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class _CheckpointLog:
    """Writes the human-readable checkpoint log."""

    def __init__(self, out: IO[str]) -> None:
        self._out = out

    def line(self, text: str = "") -> None:
        print(text, file=self._out)
        self._out.flush()

    def step(self, text: str) -> None:
        self.line()
        self.line(text)

    def document(self, collection: str, doc_id: str, document: Document | None) -> None:
        self.line(f"==== Reading document from collection ({collection}): {doc_id} ====")
        if document is None:
            self.line(" --- Document not found ")
            self.line(json_dumps({"collection": collection, "id": doc_id, "found": False}))
        else:
            self.line(" --- Document found! ")
            self.line(
                json_dumps(
                    {
                        "collection": collection,
                        "id": document.id,
                        "version": document.version,
                        "found": True,
                        "payload": document.payload,
                    }
                )
            )


async def run_scenario(
    store: DocumentStore,
    config: ScenarioConfig | None = None,
    out: IO[str] | None = None,
    *,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> ScenarioReport:
    """
    Run the full migration scenario against a store.

    The source collection must not exist yet; neither may the destination.

    Args:
        store: Store to run against.
        config: Scenario parameters (uses ScenarioConfig() if None).
        out: Stream for the checkpoint log (stdout if None).
        tracer: Optional custom Tracer shared by all components.
        enable_tracing: Whether to enable OpenTelemetry tracing.

    Returns:
        ScenarioReport with observations and evaluated expectations.

    Raises:
        DocMigrateError: On unexpected store or migration errors. Everything
            observed up to that point has already been written to ``out``.
    """
    config = config or ScenarioConfig()
    log = _CheckpointLog(out if out is not None else sys.stdout)
    tracer = tracer or create_tracer(__name__, enable_tracing)

    coordinator = MigrationCoordinator(store, config.migration_config(), tracer=tracer)
    verifier = ConsistencyVerifier(store, tracer=tracer)
    generator = WorkloadGenerator(store, tracer=tracer)
    loader = SeedLoader(store, batch_size=config.seed_batch_size)

    source = config.source_collection
    dest = config.dest_collection
    report = ScenarioReport(config=config)

    log.line("Starting migration test...")
    log.line(report.started_at.isoformat())

    log.step("0. Setup -- creation, seeding source, refresh.")
    await store.create_collection(source, SEED_SCHEMA)
    log.line("==== Inserting documents")
    report.seeded = await loader.load(source, config.document_count)
    log.line(f"Wrote {report.seeded} docs")

    log.step("1. Reading initial documents")
    for doc_id in config.target_ids:
        log.document(source, doc_id, await verifier.read_at(source, doc_id))

    log.step("2. Starting migration")
    log.line("==== Starting migration phase: 1")
    handle = await coordinator.start_phase_one(source, dest, SEED_SCHEMA)

    log.step("3. Doing extra operations")
    operations = [
        WorkloadOperation.create(source, config.create_doc_id, config.create_payload),
        WorkloadOperation.delete(source, config.delete_doc_id),
        WorkloadOperation.update(source, config.update_doc_id, config.update_payload),
    ]
    log.line("==== Running extra operations while migration in process ====")
    if config.wait_for_snapshot:
        report.workload = await generator.run_after(operations, trigger=handle.wait_for_snapshot)
    else:
        report.workload = await generator.run_after(operations, settle_delay=config.settle_delay)
    failed = [outcome for outcome in report.workload if not outcome.succeeded]
    if failed:
        log.line(" --- ERROR: While running operations")
        for outcome in failed:
            log.line(json_dumps({"operation": outcome.operation, "error": outcome.error}))
    else:
        log.line(" --- Documents created, updated, and deleted")

    log.step("4. Waiting on migration to complete")
    report.phase_one = await handle.result()
    log.line(json_dumps(report.phase_one.to_dict()))

    after_phase_one = await verifier.checkpoint("after-phase-one", source, dest, config.target_ids)
    report.checkpoints.append(after_phase_one)
    versions_before = await verifier.capture_versions(dest)

    log.step("5. Reading documents from source to see edits.")
    for comparison in after_phase_one.comparisons:
        log.document(source, comparison.doc_id, comparison.source)

    log.step("6. Reading documents from destination to see missing changes.")
    for comparison in after_phase_one.comparisons:
        log.document(dest, comparison.doc_id, comparison.dest)

    log.step("7. Migration phase 2.")
    log.line("==== Starting migration phase: 2")
    report.phase_two = await coordinator.run_phase_two(source, dest)
    if report.phase_two.is_fatal:
        log.line(" ---  ERROR during phase 2")
    log.line(json_dumps(report.phase_two.to_dict()))

    after_phase_two = await verifier.checkpoint("after-phase-two", source, dest, config.target_ids)
    report.checkpoints.append(after_phase_two)
    report.regressions = verifier.find_regressions(
        versions_before, await verifier.capture_versions(dest)
    )

    log.step("8. Reading documents from destination after phase 2")
    for comparison in after_phase_two.comparisons:
        log.document(dest, comparison.doc_id, comparison.dest)

    report.expectations = _evaluate(config, report, after_phase_one, after_phase_two)
    report.completed_at = datetime.now(UTC)

    log.line()
    for name, held in report.expectations.items():
        log.line(f"{name}: {'ok' if held else 'VIOLATED'}")
    log.line("Completed test...")
    log.line(report.completed_at.isoformat())

    if report.passed:
        logger.info("Scenario passed: %s", ", ".join(report.expectations))
    else:
        logger.warning("Scenario expectations violated: %s", ", ".join(report.failed_expectations))
    return report


def _evaluate(
    config: ScenarioConfig,
    report: ScenarioReport,
    after_phase_one: CheckpointReport,
    after_phase_two: CheckpointReport,
) -> dict[str, bool]:
    created_early = after_phase_one.by_id(config.create_doc_id)
    updated = after_phase_two.by_id(config.update_doc_id)
    deleted = after_phase_two.by_id(config.delete_doc_id)
    created = after_phase_two.by_id(config.create_doc_id)

    return {
        "snapshot_isolation": created_early.dest is None,
        "forward_repair": (
            updated.dest is not None
            and updated.source is not None
            and updated.dest.payload == config.update_payload
            and updated.dest.version >= updated.source.version
        ),
        "deletion_gap": (
            deleted.source is None
            and deleted.dest is not None
            and deleted.dest.payload == default_payload(int(config.delete_doc_id))
        ),
        "late_create_copied": (
            created.dest is not None and created.dest.payload == config.create_payload
        ),
        "no_regression": not report.regressions,
    }


__all__ = [
    "ScenarioConfig",
    "ScenarioReport",
    "run_scenario",
]
