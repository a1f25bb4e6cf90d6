"""
Standard span attributes for docmigrate.

This module defines attribute constants used across all docmigrate components
for consistent span naming. These follow OpenTelemetry semantic conventions
where applicable.

Example:
    >>> from docmigrate.observability.attributes import ATTR_COLLECTION, ATTR_DOCUMENT_ID
    >>>
    >>> with tracer.span(
    ...     "docmigrate.store.index",
    ...     {ATTR_COLLECTION: "test_1", ATTR_DOCUMENT_ID: "10000"},
    ... ):
    ...     pass
"""

# =============================================================================
# Document Attributes
# =============================================================================

ATTR_COLLECTION = "docmigrate.collection"
"""Name of the collection an operation targets."""

ATTR_DOCUMENT_ID = "docmigrate.document.id"
"""Identifier of the document an operation targets."""

ATTR_DOCUMENT_COUNT = "docmigrate.document.count"
"""Number of documents in an operation (integer)."""

ATTR_VERSION = "docmigrate.version"
"""Document version written or read (integer)."""

ATTR_VERSION_MODE = "docmigrate.version_mode"
"""Versioning mode of a write ('internal', 'external', 'external_gte')."""

# =============================================================================
# Bulk Copy Attributes
# =============================================================================

ATTR_SOURCE_COLLECTION = "docmigrate.bulk_copy.source"
"""Collection a bulk copy enumerates."""

ATTR_DEST_COLLECTION = "docmigrate.bulk_copy.dest"
"""Collection a bulk copy writes into."""

ATTR_CONFLICT_POLICY = "docmigrate.bulk_copy.conflict_policy"
"""Conflict policy of a bulk copy."""

ATTR_THROUGHPUT_LIMIT = "docmigrate.bulk_copy.throughput_limit"
"""Documents per second cap of a bulk copy (0 when unthrottled)."""

ATTR_BATCH_SIZE = "docmigrate.bulk_copy.batch_size"
"""Documents per batch (integer)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_JOB_ID = "docmigrate.migration.job_id"
"""Identifier of a migration job (UUID string)."""

ATTR_MIGRATION_PHASE = "docmigrate.migration.phase"
"""Migration phase ('snapshot_copy' or 'replay')."""

ATTR_CHECKPOINT = "docmigrate.verifier.checkpoint"
"""Name of a consistency checkpoint."""

# =============================================================================
# Database Attributes (OTEL semantic)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite')."""

ATTR_DB_NAME = "db.name"
"""Database name or path."""


__all__ = [
    "ATTR_COLLECTION",
    "ATTR_DOCUMENT_ID",
    "ATTR_DOCUMENT_COUNT",
    "ATTR_VERSION",
    "ATTR_VERSION_MODE",
    "ATTR_SOURCE_COLLECTION",
    "ATTR_DEST_COLLECTION",
    "ATTR_CONFLICT_POLICY",
    "ATTR_THROUGHPUT_LIMIT",
    "ATTR_BATCH_SIZE",
    "ATTR_JOB_ID",
    "ATTR_MIGRATION_PHASE",
    "ATTR_CHECKPOINT",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
]
