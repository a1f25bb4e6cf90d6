"""
Data models for the live collection migration.

Models in this module:

Enums:
    - JobStatus: Lifecycle status of a migration job
    - MigrationPhase: Which half of the two-phase protocol a job runs

Configuration:
    - MigrationConfig: Coordinator-wide defaults

Core Models:
    - MigrationJob: One phase of a migration, from Pending to Completed/Failed
    - JobResult: Final, immutable outcome of a job
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from docmigrate.migration.exceptions import InvalidStatusTransitionError
from docmigrate.stores.interface import (
    BULK_LOAD_SETTINGS,
    STEADY_STATE_SETTINGS,
    CollectionSettings,
    ConflictPolicy,
    DocumentFailure,
    VersionMode,
)


class JobStatus(Enum):
    """
    Lifecycle status of a migration job.

    State machine transitions:
        PENDING -> RUNNING -> COMPLETED
                      |
                      +----> FAILED

    There are no retries: a failed job stays failed and the caller creates
    a new job to try again.
    """

    PENDING = "pending"
    """Job created but its bulk copy has not started."""

    RUNNING = "running"
    """The job's bulk copy is in progress."""

    COMPLETED = "completed"
    """The bulk copy finished; per-document errors may still be recorded."""

    FAILED = "failed"
    """A fatal store error aborted the job."""

    @property
    def is_terminal(self) -> bool:
        """
        Check if this is a terminal (final) status.

        Returns:
            True for COMPLETED and FAILED.
        """
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, target: JobStatus) -> bool:
        """
        Check if transition to target status is valid.

        Args:
            target: The target status to transition to.

        Returns:
            True if the transition is valid.
        """
        valid_transitions: dict[JobStatus, list[JobStatus]] = {
            JobStatus.PENDING: [JobStatus.RUNNING, JobStatus.FAILED],
            JobStatus.RUNNING: [JobStatus.COMPLETED, JobStatus.FAILED],
        }
        return target in valid_transitions.get(self, [])


class MigrationPhase(Enum):
    """
    Phases of the two-phase migration protocol.

    Attributes:
        SNAPSHOT_COPY: Phase one. Copies the source snapshot into a fresh
            destination with external versions.
        REPLAY: Phase two. Copies the source again, proceeding on conflicts,
            which moves updated and late-created documents forward.
    """

    SNAPSHOT_COPY = "snapshot_copy"
    REPLAY = "replay"


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for the migration coordinator.

    This class is immutable (frozen) to prevent accidental modification
    while phases run.

    Attributes:
        throughput_limit: Default docs/second cap for bulk copies, None for
            unthrottled (default 5000.0).
        batch_size: Documents per bulk-copy batch (default 1000).
        phase_one_conflict_policy: Conflict policy of the snapshot copy
            (default fail-on-conflict; the destination starts empty).
        phase_two_conflict_policy: Conflict policy of the replay
            (default proceed-on-conflict).
        bulk_load_settings: Destination settings while phase one copies.
        steady_state_settings: Destination settings restored after phase two.

    Example:
        >>> config = MigrationConfig(throughput_limit=None, batch_size=500)
        >>> config.batch_size
        500
    """

    throughput_limit: float | None = 5000.0
    batch_size: int = 1000
    phase_one_conflict_policy: ConflictPolicy = ConflictPolicy.FAIL_ON_CONFLICT
    phase_two_conflict_policy: ConflictPolicy = ConflictPolicy.PROCEED_ON_CONFLICT
    bulk_load_settings: CollectionSettings = BULK_LOAD_SETTINGS
    steady_state_settings: CollectionSettings = STEADY_STATE_SETTINGS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.throughput_limit is not None and self.throughput_limit <= 0:
            raise ValueError(
                f"throughput_limit must be > 0 or None, got {self.throughput_limit}"
            )

        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON output.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "throughput_limit": self.throughput_limit,
            "batch_size": self.batch_size,
            "phase_one_conflict_policy": self.phase_one_conflict_policy.value,
            "phase_two_conflict_policy": self.phase_two_conflict_policy.value,
            "bulk_load_settings": self.bulk_load_settings.to_dict(),
            "steady_state_settings": self.steady_state_settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """
        Create from dictionary.

        Args:
            data: Dictionary containing configuration values.

        Returns:
            MigrationConfig instance.
        """
        return cls(
            throughput_limit=data.get("throughput_limit", 5000.0),
            batch_size=data.get("batch_size", 1000),
            phase_one_conflict_policy=ConflictPolicy(
                data.get("phase_one_conflict_policy", ConflictPolicy.FAIL_ON_CONFLICT.value)
            ),
            phase_two_conflict_policy=ConflictPolicy(
                data.get("phase_two_conflict_policy", ConflictPolicy.PROCEED_ON_CONFLICT.value)
            ),
            bulk_load_settings=CollectionSettings.from_dict(
                data.get("bulk_load_settings", BULK_LOAD_SETTINGS.to_dict())
            ),
            steady_state_settings=CollectionSettings.from_dict(
                data.get("steady_state_settings", STEADY_STATE_SETTINGS.to_dict())
            ),
        )


@dataclass
class MigrationJob:
    """
    One phase of a migration.

    A job is created per phase, runs to completion or failure and is then
    only kept for status queries. It holds no state that a later phase
    needs except its completion.

    This is a mutable dataclass because status changes through the job's
    lifecycle.

    Attributes:
        source_collection: Collection being copied from.
        dest_collection: Collection being copied into.
        phase: Which protocol phase this job runs.
        conflict_policy: Conflict policy passed to the bulk copy.
        version_mode: Version mode passed to the bulk copy.
        throughput_limit: Docs/second cap, None for unthrottled.
        id: Unique job identifier.
        status: Current lifecycle status.
        created_at: When the job was created.
        started_at: When the job started running.
        completed_at: When the job reached a terminal status.
        error_message: Fatal error message if the job failed.
    """

    source_collection: str
    dest_collection: str
    phase: MigrationPhase
    conflict_policy: ConflictPolicy
    version_mode: VersionMode = VersionMode.EXTERNAL
    throughput_limit: float | None = None
    id: UUID = field(default_factory=uuid4)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    def transition_to(self, target: JobStatus) -> None:
        """
        Move the job to a new status, stamping the matching timestamp.

        Args:
            target: The status to move to.

        Raises:
            InvalidStatusTransitionError: If the transition is not allowed.
        """
        if not self.status.can_transition_to(target):
            raise InvalidStatusTransitionError(self.id, self.status, target)

        now = datetime.now(UTC)
        if target == JobStatus.RUNNING:
            self.started_at = now
        elif target.is_terminal:
            self.completed_at = now
        self.status = target

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON output.

        Returns:
            Dictionary representation of the job.
        """
        return {
            "id": str(self.id),
            "phase": self.phase.value,
            "source_collection": self.source_collection,
            "dest_collection": self.dest_collection,
            "conflict_policy": self.conflict_policy.value,
            "version_mode": self.version_mode.value,
            "throughput_limit": self.throughput_limit,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class JobResult:
    """
    Final result of a migration job.

    Attributes:
        job_id: The job this result belongs to.
        phase: Phase the job ran.
        status: Terminal status (COMPLETED or FAILED).
        documents_copied: Documents written (created + updated).
        documents_created: Documents that did not exist in the destination.
        documents_updated: Documents overwritten in the destination.
        version_conflicts: Writes that lost the external version check.
        errors: Per-document failures reported by the bulk copy.
        elapsed_seconds: Wall-clock duration of the job.
        error_message: Fatal error message if the job failed.
    """

    job_id: UUID
    phase: MigrationPhase
    status: JobStatus
    documents_copied: int = 0
    documents_created: int = 0
    documents_updated: int = 0
    version_conflicts: int = 0
    errors: list[DocumentFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    error_message: str | None = None

    @property
    def is_fatal(self) -> bool:
        """Check if a fatal error aborted the job."""
        return self.status == JobStatus.FAILED

    @property
    def succeeded(self) -> bool:
        """Check if the job completed without any per-document errors."""
        return self.status == JobStatus.COMPLETED and not self.errors

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON output.

        Returns:
            Dictionary representation of the result.
        """
        return {
            "job_id": str(self.job_id),
            "phase": self.phase.value,
            "status": self.status.value,
            "documents_copied": self.documents_copied,
            "documents_created": self.documents_created,
            "documents_updated": self.documents_updated,
            "version_conflicts": self.version_conflicts,
            "errors": [
                {"doc_id": error.doc_id, "reason": error.reason, "message": error.message}
                for error in self.errors
            ],
            "elapsed_seconds": self.elapsed_seconds,
            "error_message": self.error_message,
        }


__all__ = [
    "JobStatus",
    "MigrationPhase",
    "MigrationConfig",
    "MigrationJob",
    "JobResult",
]
