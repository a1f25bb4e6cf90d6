"""
Document store interface and core data structures.

The document store is an external collaborator of the migration
coordinator: a thin request/response interface over named collections
plus a server-side bulk-copy primitive.

This module provides:
- VersionMode / ConflictPolicy: How writes are versioned and conflicts handled
- CollectionSettings: Refresh interval and replica count of a collection
- IndexResult, BulkWriteOperation, BulkWriteResult: Write requests and results
- DocumentFailure: A per-document failure recorded by bulk operations
- BulkCopyRequest / BulkCopyResponse: The bulk-copy primitive's contract
- DocumentStore: Abstract base class for document store implementations
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from docmigrate.documents.base import Document
from docmigrate.documents.schema import CollectionSchema


class VersionMode(Enum):
    """
    How a write's version is determined.

    Attributes:
        INTERNAL: The store assigns previous version + 1 on every write.
        EXTERNAL: The caller supplies the version; the write wins only if it is
            strictly greater than the stored version (or no document exists).
        EXTERNAL_GTE: Like EXTERNAL, but an equal version also wins.
    """

    INTERNAL = "internal"
    EXTERNAL = "external"
    EXTERNAL_GTE = "external_gte"

    @property
    def is_external(self) -> bool:
        """Check if the caller supplies the version."""
        return self != VersionMode.INTERNAL

    def accepts(self, current_version: int, attempted_version: int) -> bool:
        """
        Check whether an external write should overwrite the stored version.

        Args:
            current_version: Version held by the store
            attempted_version: Version supplied with the write

        Returns:
            True if the write wins
        """
        if self == VersionMode.EXTERNAL_GTE:
            return attempted_version >= current_version
        return attempted_version > current_version


class ConflictPolicy(Enum):
    """
    What a bulk copy does when a write loses a version check.

    Attributes:
        FAIL_ON_CONFLICT: The write is aborted and recorded as a failure.
        PROCEED_ON_CONFLICT: The write is skipped and only counted; the
            existing, newer document wins.
    """

    FAIL_ON_CONFLICT = "fail-on-conflict"
    PROCEED_ON_CONFLICT = "proceed-on-conflict"


@dataclass(frozen=True)
class CollectionSettings:
    """
    Tunable settings of a collection, independent of document content.

    Attributes:
        refresh_interval: Seconds between automatic refreshes, or None for
            "never" (writes stay invisible to reads until refresh()).
        replica_count: Number of replicas (0 while bulk loading).
    """

    refresh_interval: float | None = 1.0
    replica_count: int = 1

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.refresh_interval is not None and self.refresh_interval <= 0:
            raise ValueError(
                f"refresh_interval must be > 0 or None, got {self.refresh_interval}"
            )
        if self.replica_count < 0:
            raise ValueError(f"replica_count must be >= 0, got {self.replica_count}")

    @property
    def refresh_enabled(self) -> bool:
        """Check if writes become visible without an explicit refresh."""
        return self.refresh_interval is not None

    def to_dict(self) -> dict[str, Any]:
        return {"refresh_interval": self.refresh_interval, "replica_count": self.replica_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CollectionSettings:
        return cls(
            refresh_interval=data.get("refresh_interval", 1.0),
            replica_count=data.get("replica_count", 1),
        )


STEADY_STATE_SETTINGS = CollectionSettings(refresh_interval=1.0, replica_count=1)
"""Settings of a collection that serves reads."""

BULK_LOAD_SETTINGS = CollectionSettings(refresh_interval=None, replica_count=0)
"""Settings that maximize write throughput of a collection not yet serving reads."""


@dataclass(frozen=True)
class IndexResult:
    """
    Result of a single create-or-overwrite write.

    Attributes:
        version: Version the document now carries
        created: True if no live document existed at the id before the write
    """

    version: int
    created: bool


@dataclass(frozen=True)
class BulkWriteOperation:
    """A single create/overwrite inside a bulk write."""

    doc_id: str | int
    payload: dict[str, Any]


@dataclass(frozen=True)
class DocumentFailure:
    """
    A per-document failure recorded by a bulk operation.

    Attributes:
        doc_id: Document the failure belongs to
        reason: Short machine-readable reason ("version_conflict", "schema_violation")
        message: Human-readable description
    """

    doc_id: str
    reason: str
    message: str


@dataclass(frozen=True)
class BulkWriteResult:
    """
    Result of a bulk write.

    Attributes:
        written: Number of documents written
        failures: Documents that were rejected
    """

    written: int
    failures: list[DocumentFailure] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


@dataclass(frozen=True)
class BulkCopyRequest:
    """
    Parameters of the store's server-side bulk-copy primitive.

    Attributes:
        source_collection: Collection to enumerate
        dest_collection: Collection to write into
        version_mode: Versioning of destination writes
        conflict_policy: Handling of writes that lose a version check
        throughput_limit: Documents per second cap (None = unthrottled)
        batch_size: Documents written per batch
    """

    source_collection: str
    dest_collection: str
    version_mode: VersionMode = VersionMode.EXTERNAL
    conflict_policy: ConflictPolicy = ConflictPolicy.FAIL_ON_CONFLICT
    throughput_limit: float | None = None
    batch_size: int = 1000

    def __post_init__(self) -> None:
        """Validate request."""
        if self.source_collection == self.dest_collection:
            raise ValueError("source_collection and dest_collection must differ")
        if self.throughput_limit is not None and self.throughput_limit <= 0:
            raise ValueError(
                f"throughput_limit must be > 0 or None, got {self.throughput_limit}"
            )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")


@dataclass(frozen=True)
class BulkCopyResponse:
    """
    Outcome of a completed bulk copy.

    Attributes:
        total: Documents enumerated from the source snapshot
        created: Documents created in the destination
        updated: Documents overwritten in the destination
        version_conflicts: Writes that lost a version check
        failures: Per-document failures (conflicts under fail-on-conflict,
            schema violations)
        elapsed_seconds: Wall-clock duration of the copy
        batches: Number of batches written
    """

    total: int
    created: int
    updated: int
    version_conflicts: int
    failures: list[DocumentFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    batches: int = 0

    @property
    def copied(self) -> int:
        """Documents that took effect in the destination."""
        return self.created + self.updated


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Collections are named mappings from document id to Document, each with
    a schema fixed at creation. Every collection has a live view (used for
    version checks) and a visible view (used by get, count, scan and bulk-copy
    enumeration); refresh() publishes the live view.

    Implementations must be safe for concurrent use from asyncio tasks.
    """

    @abstractmethod
    async def create_collection(self, name: str, schema: CollectionSchema) -> None:
        """
        Create a collection with the given schema and steady-state settings.

        Raises:
            CollectionAlreadyExistsError: If the name is taken
        """
        pass

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """Check whether a collection exists."""
        pass

    @abstractmethod
    async def get_schema(self, name: str) -> CollectionSchema:
        """
        Get the schema of a collection.

        Raises:
            CollectionNotFoundError: If the collection does not exist
        """
        pass

    @abstractmethod
    async def get_collection_settings(self, name: str) -> CollectionSettings:
        """Get the current settings of a collection."""
        pass

    @abstractmethod
    async def set_collection_settings(self, name: str, settings: CollectionSettings) -> None:
        """
        Replace the settings of a collection.

        Enabling refresh does not by itself publish pending writes; call
        refresh() for that.
        """
        pass

    @abstractmethod
    async def bulk_write(
        self,
        collection: str,
        operations: list[BulkWriteOperation],
    ) -> BulkWriteResult:
        """
        Create or overwrite many documents with internal versioning.

        Schema violations are recorded per document instead of raised.
        """
        pass

    @abstractmethod
    async def get(self, collection: str, doc_id: str | int) -> Document | None:
        """
        Read a document from the visible view.

        Returns:
            The document, or None if no visible document exists at the id
        """
        pass

    @abstractmethod
    async def index(
        self,
        collection: str,
        doc_id: str | int,
        payload: dict[str, Any],
        *,
        version: int | None = None,
        version_mode: VersionMode = VersionMode.INTERNAL,
    ) -> IndexResult:
        """
        Create or overwrite a single document.

        Args:
            collection: Target collection
            doc_id: Document id
            payload: Field values, validated against the collection schema
            version: Caller-supplied version (required for external modes)
            version_mode: How the written version is determined

        Returns:
            IndexResult with the document's new version

        Raises:
            SchemaViolationError: If the payload does not conform
            VersionConflictError: If an external version loses
            ValueError: If version and version_mode disagree
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str | int) -> int:
        """
        Delete a document.

        Returns:
            The version recorded for the deletion

        Raises:
            DocumentNotFoundError: If no live document exists at the id
        """
        pass

    @abstractmethod
    async def refresh(self, collection: str) -> None:
        """Make all prior writes to the collection visible to reads (blocking)."""
        pass

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Count documents in the visible view."""
        pass

    @abstractmethod
    def scan(self, collection: str, batch_size: int = 1000) -> AsyncIterator[list[Document]]:
        """
        Iterate over the visible view in batches, in a stable order.

        Args:
            collection: Collection to scan
            batch_size: Documents per yielded batch

        Yields:
            Lists of documents
        """
        pass

    @abstractmethod
    async def bulk_copy(
        self,
        request: BulkCopyRequest,
        *,
        enumeration_started: asyncio.Event | None = None,
    ) -> BulkCopyResponse:
        """
        Copy every document of the source into the destination (blocking).

        The source's visible view is enumerated once, at invocation; documents
        written to the source afterwards are not part of the copy. Deletions
        leave no trace in the snapshot and are therefore never propagated.

        Args:
            request: Source, destination, versioning, conflict policy and throttle
            enumeration_started: Event set as soon as the snapshot is taken

        Returns:
            BulkCopyResponse with counts, per-document failures and timing

        Raises:
            CollectionNotFoundError: If either collection does not exist
            SchemaViolationError: If the schemas are incompatible
            TransportError: If the store fails outright
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources; later calls raise TransportError."""
        pass


__all__ = [
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
    "IndexResult",
    "VersionMode",
]
