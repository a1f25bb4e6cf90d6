"""
docmigrate - Live migration of document collections.

This library provides:
- A document store interface with In-Memory and SQLite backends
- Typed collection schemas and immutable documents with pydantic models
- Internal and external document versioning with conflict policies
- A throttled, snapshot-based bulk-copy primitive
- A two-phase migration coordinator (snapshot copy, then replay)
- A consistency verifier for checkpoint reads and regression checks
- A seed loader, a workload generator and a scripted end-to-end scenario
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("docmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Documents and schemas
from docmigrate.documents import CollectionSchema, Document, FieldType
from docmigrate.exceptions import (
    CollectionAlreadyExistsError,
    CollectionNotFoundError,
    DocMigrateError,
    DocumentNotFoundError,
    DocumentStoreError,
    SchemaViolationError,
    TransportError,
    VersionConflictError,
)

# Migration
from docmigrate.migration import (
    CheckpointReport,
    ConsistencyVerifier,
    DestinationExistsError,
    DivergenceKind,
    InvalidStatusTransitionError,
    JobNotFoundError,
    JobResult,
    JobStatus,
    MigrationConfig,
    MigrationCoordinator,
    MigrationError,
    MigrationJob,
    MigrationPhase,
    MigrationStateError,
    PhaseHandle,
)

# Scenario
from docmigrate.scenario import ScenarioConfig, ScenarioReport, run_scenario

# Stores
from docmigrate.stores import (
    BULK_LOAD_SETTINGS,
    STEADY_STATE_SETTINGS,
    BulkCopyRequest,
    BulkCopyResponse,
    BulkWriteOperation,
    BulkWriteResult,
    CollectionSettings,
    ConflictPolicy,
    DocumentFailure,
    DocumentStore,
    InMemoryDocumentStore,
    IndexResult,
    VersionMode,
)

# Workload
from docmigrate.workload import (
    SEED_SCHEMA,
    OperationOutcome,
    SeedLoader,
    WorkloadGenerator,
    WorkloadOperation,
)

__all__ = [
    "__version__",
    # Documents
    "CollectionSchema",
    "Document",
    "FieldType",
    # Exceptions
    "CollectionAlreadyExistsError",
    "CollectionNotFoundError",
    "DocMigrateError",
    "DocumentNotFoundError",
    "DocumentStoreError",
    "SchemaViolationError",
    "TransportError",
    "VersionConflictError",
    "DestinationExistsError",
    "InvalidStatusTransitionError",
    "JobNotFoundError",
    "MigrationError",
    "MigrationStateError",
    # Stores
    "BULK_LOAD_SETTINGS",
    "STEADY_STATE_SETTINGS",
    "BulkCopyRequest",
    "BulkCopyResponse",
    "BulkWriteOperation",
    "BulkWriteResult",
    "CollectionSettings",
    "ConflictPolicy",
    "DocumentFailure",
    "DocumentStore",
    "InMemoryDocumentStore",
    "IndexResult",
    "VersionMode",
    # Migration
    "CheckpointReport",
    "ConsistencyVerifier",
    "DivergenceKind",
    "JobResult",
    "JobStatus",
    "MigrationConfig",
    "MigrationCoordinator",
    "MigrationJob",
    "MigrationPhase",
    "PhaseHandle",
    # Workload
    "SEED_SCHEMA",
    "OperationOutcome",
    "SeedLoader",
    "WorkloadGenerator",
    "WorkloadOperation",
    # Scenario
    "ScenarioConfig",
    "ScenarioReport",
    "run_scenario",
]
