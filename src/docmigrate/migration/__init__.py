"""
Live collection migration for docmigrate.

Two-phase protocol:
    1. Snapshot copy: bulk-copy the source into a fresh destination with
       external versions while the source keeps taking writes.
    2. Replay: bulk-copy again proceeding on conflicts, which moves updates
       and late creates forward without regressing the destination.

Deletions between the phases are not propagated.

Usage:
    >>> from docmigrate.migration import MigrationCoordinator, ConsistencyVerifier
    >>> coordinator = MigrationCoordinator(store)
    >>> await coordinator.run_phase_one("test_1", "test_2", schema)
    >>> await coordinator.run_phase_two("test_1", "test_2")
"""

from docmigrate.migration.consistency import (
    CheckpointReport,
    ConsistencyVerifier,
    DivergenceKind,
    DocumentComparison,
    VersionRegression,
    classify,
)
from docmigrate.migration.coordinator import MigrationCoordinator, PhaseHandle
from docmigrate.migration.exceptions import (
    DestinationExistsError,
    InvalidStatusTransitionError,
    JobNotFoundError,
    MigrationError,
    MigrationStateError,
)
from docmigrate.migration.models import (
    JobResult,
    JobStatus,
    MigrationConfig,
    MigrationJob,
    MigrationPhase,
)

__all__ = [
    # Coordinator
    "MigrationCoordinator",
    "PhaseHandle",
    # Models
    "JobResult",
    "JobStatus",
    "MigrationConfig",
    "MigrationJob",
    "MigrationPhase",
    # Verifier
    "CheckpointReport",
    "ConsistencyVerifier",
    "DivergenceKind",
    "DocumentComparison",
    "VersionRegression",
    "classify",
    # Exceptions
    "DestinationExistsError",
    "InvalidStatusTransitionError",
    "JobNotFoundError",
    "MigrationError",
    "MigrationStateError",
]
