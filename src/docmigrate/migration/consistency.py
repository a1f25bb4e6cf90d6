"""
ConsistencyVerifier - Observes divergence between source and destination.

The verifier only reads. At each checkpoint of a migration it fetches the
same ids from both collections and classifies what it sees, so callers can
assert the protocol's guarantees (and its known deletion gap) explicitly.

Responsibilities:
    - Read single documents, treating NotFound as a normal outcome
    - Classify per-id divergence at named checkpoints
    - Capture destination versions and detect regressions between captures
    - Compare two collections in full

Usage:
    >>> verifier = ConsistencyVerifier(store)
    >>> report = await verifier.checkpoint(
    ...     "after-phase-two", "test_1", "test_2", ["10000", "20000", "999999999"]
    ... )
    >>> report.by_id("20000").kind
    <DivergenceKind.ORPHANED_IN_DEST: 'orphaned_in_dest'>
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from docmigrate.documents.base import normalize_id
from docmigrate.observability import (
    ATTR_CHECKPOINT,
    ATTR_COLLECTION,
    ATTR_DEST_COLLECTION,
    ATTR_DOCUMENT_COUNT,
    ATTR_DOCUMENT_ID,
    ATTR_SOURCE_COLLECTION,
    Tracer,
    create_tracer,
)

if TYPE_CHECKING:
    from docmigrate.documents.base import Document
    from docmigrate.stores.interface import DocumentStore

logger = logging.getLogger(__name__)


class DivergenceKind(Enum):
    """
    How the destination copy of one id relates to the source.

    Attributes:
        IN_SYNC: Same version and payload on both sides.
        MISSING_IN_DEST: Present in source, absent from destination.
        STALE_IN_DEST: Destination holds an older version (or different
            content at the same version).
        AHEAD_IN_DEST: Destination holds a newer version than the source.
        ORPHANED_IN_DEST: Absent from source (deleted) but still in destination.
        MISSING_IN_BOTH: Present on neither side.
    """

    IN_SYNC = "in_sync"
    MISSING_IN_DEST = "missing_in_dest"
    STALE_IN_DEST = "stale_in_dest"
    AHEAD_IN_DEST = "ahead_in_dest"
    ORPHANED_IN_DEST = "orphaned_in_dest"
    MISSING_IN_BOTH = "missing_in_both"

    @property
    def is_divergent(self) -> bool:
        """Check if source and destination disagree about this id."""
        return self not in (DivergenceKind.IN_SYNC, DivergenceKind.MISSING_IN_BOTH)


def classify(source: Document | None, dest: Document | None) -> DivergenceKind:
    """Classify one id from its source and destination documents."""
    if source is None:
        return DivergenceKind.MISSING_IN_BOTH if dest is None else DivergenceKind.ORPHANED_IN_DEST
    if dest is None:
        return DivergenceKind.MISSING_IN_DEST
    if dest.version < source.version:
        return DivergenceKind.STALE_IN_DEST
    if dest.version > source.version:
        return DivergenceKind.AHEAD_IN_DEST
    if dest.payload != source.payload:
        return DivergenceKind.STALE_IN_DEST
    return DivergenceKind.IN_SYNC


@dataclass(frozen=True)
class DocumentComparison:
    """
    Source and destination state of one id at a checkpoint.

    Attributes:
        doc_id: The compared id.
        source: Source document, None if not found.
        dest: Destination document, None if not found.
        kind: Classification of the pair.
    """

    doc_id: str
    source: Document | None
    dest: Document | None
    kind: DivergenceKind

    def __str__(self) -> str:
        source_version = self.source.version if self.source else None
        dest_version = self.dest.version if self.dest else None
        return (
            f"[{self.kind.value}] id={self.doc_id} "
            f"source_version={source_version}, dest_version={dest_version}"
        )


@dataclass(frozen=True)
class CheckpointReport:
    """
    Observed divergence at a named checkpoint.

    Attributes:
        name: Checkpoint name.
        source_collection: Collection read as the source.
        dest_collection: Collection read as the destination.
        comparisons: One comparison per id, in request order.
        duration_seconds: Time taken for the reads.
        taken_at: When the checkpoint was taken.
    """

    name: str
    source_collection: str
    dest_collection: str
    comparisons: list[DocumentComparison] = field(default_factory=list)
    duration_seconds: float = 0.0
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def by_id(self, doc_id: str | int) -> DocumentComparison:
        """
        Get the comparison of one id.

        Raises:
            KeyError: If the id was not part of this checkpoint
        """
        wanted = normalize_id(doc_id)
        for comparison in self.comparisons:
            if comparison.doc_id == wanted:
                return comparison
        raise KeyError(wanted)

    @property
    def divergent(self) -> list[DocumentComparison]:
        """Comparisons where source and destination disagree."""
        return [c for c in self.comparisons if c.kind.is_divergent]

    @property
    def is_consistent(self) -> bool:
        """Check if no compared id diverges."""
        return not self.divergent

    def counts(self) -> dict[DivergenceKind, int]:
        """Count comparisons per divergence kind."""
        result: dict[DivergenceKind, int] = {}
        for comparison in self.comparisons:
            result[comparison.kind] = result.get(comparison.kind, 0) + 1
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "source_collection": self.source_collection,
            "dest_collection": self.dest_collection,
            "is_consistent": self.is_consistent,
            "counts": {kind.value: count for kind, count in self.counts().items()},
            "divergent": [str(c) for c in self.divergent],
            "duration_seconds": self.duration_seconds,
            "taken_at": self.taken_at.isoformat(),
        }


@dataclass(frozen=True)
class VersionRegression:
    """
    A destination version that went backwards (or vanished) between captures.

    Attributes:
        doc_id: The id that regressed.
        before: Version in the earlier capture.
        after: Version in the later capture, None if the document vanished.
    """

    doc_id: str
    before: int
    after: int | None

    def __str__(self) -> str:
        return f"id={self.doc_id} version {self.before} -> {self.after}"


class ConsistencyVerifier:
    """
    Reads source and destination and reports what diverges.

    The verifier never writes. A missing document is reported as None or
    as a divergence kind; only store errors (unknown collection, closed
    store) are raised.

    Example:
        >>> verifier = ConsistencyVerifier(store)
        >>> before = await verifier.capture_versions("test_2")
        >>> await coordinator.run_phase_two("test_1", "test_2")
        >>> after = await verifier.capture_versions("test_2")
        >>> assert not verifier.find_regressions(before, after)

    Attributes:
        _store: Store holding the compared collections.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the consistency verifier.

        Args:
            store: Document store to read from.
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._store = store

    async def read_at(self, collection: str, doc_id: str | int) -> Document | None:
        """
        Read one document as readers currently see it.

        Args:
            collection: Collection to read.
            doc_id: Document id.

        Returns:
            The document, or None if it does not exist.

        Raises:
            DocumentStoreError: On store errors (never for a missing document).
        """
        with self._tracer.span(
            "docmigrate.verifier.read_at",
            {ATTR_COLLECTION: collection, ATTR_DOCUMENT_ID: str(doc_id)},
        ):
            return await self._store.get(collection, doc_id)

    async def checkpoint(
        self,
        name: str,
        source: str,
        dest: str,
        ids: Iterable[str | int],
    ) -> CheckpointReport:
        """
        Compare the given ids between source and destination.

        Args:
            name: Checkpoint name, used in logs and the report.
            source: Source collection.
            dest: Destination collection.
            ids: Ids to compare.

        Returns:
            CheckpointReport with one comparison per id.
        """
        with self._tracer.span(
            "docmigrate.verifier.checkpoint",
            {ATTR_CHECKPOINT: name, ATTR_SOURCE_COLLECTION: source, ATTR_DEST_COLLECTION: dest},
        ):
            start_time = time.monotonic()
            comparisons = []
            for doc_id in ids:
                source_doc = await self.read_at(source, doc_id)
                dest_doc = await self.read_at(dest, doc_id)
                comparison = DocumentComparison(
                    doc_id=normalize_id(doc_id),
                    source=source_doc,
                    dest=dest_doc,
                    kind=classify(source_doc, dest_doc),
                )
                logger.debug("Checkpoint %s: %s", name, comparison)
                comparisons.append(comparison)

            report = CheckpointReport(
                name=name,
                source_collection=source,
                dest_collection=dest,
                comparisons=comparisons,
                duration_seconds=time.monotonic() - start_time,
            )
            logger.info(
                "Checkpoint %s: %d ids compared, %d divergent",
                name,
                len(comparisons),
                len(report.divergent),
            )
            return report

    async def capture_versions(
        self,
        collection: str,
        ids: Iterable[str | int] | None = None,
        *,
        batch_size: int = 1000,
    ) -> dict[str, int]:
        """
        Capture the visible version of documents in a collection.

        Args:
            collection: Collection to read.
            ids: Ids to capture; None captures every visible document.
            batch_size: Scan batch size when capturing everything.

        Returns:
            Mapping of id to version. Missing ids are left out.
        """
        with self._tracer.span(
            "docmigrate.verifier.capture_versions", {ATTR_COLLECTION: collection}
        ):
            versions: dict[str, int] = {}
            if ids is None:
                async for batch in self._store.scan(collection, batch_size):
                    for document in batch:
                        versions[document.id] = document.version
            else:
                for doc_id in ids:
                    document = await self.read_at(collection, doc_id)
                    if document is not None:
                        versions[document.id] = document.version
            return versions

    def find_regressions(
        self,
        before: dict[str, int],
        after: dict[str, int],
    ) -> list[VersionRegression]:
        """
        Find ids whose version went backwards between two captures.

        An id that disappeared counts as a regression: the destination is
        only ever written forward.

        Args:
            before: Earlier capture.
            after: Later capture.

        Returns:
            Regressions, ordered as in ``before``.
        """
        regressions = []
        for doc_id, version in before.items():
            later = after.get(doc_id)
            if later is None or later < version:
                regressions.append(VersionRegression(doc_id, version, later))
        if regressions:
            logger.warning("Found %d version regressions", len(regressions))
        return regressions

    async def verify_collections(
        self,
        source: str,
        dest: str,
        *,
        batch_size: int = 1000,
    ) -> CheckpointReport:
        """
        Compare every id visible in either collection.

        Args:
            source: Source collection.
            dest: Destination collection.
            batch_size: Scan batch size.

        Returns:
            CheckpointReport named "full" covering the union of ids.
        """
        with self._tracer.span(
            "docmigrate.verifier.verify_collections",
            {ATTR_SOURCE_COLLECTION: source, ATTR_DEST_COLLECTION: dest},
        ) as span:
            start_time = time.monotonic()
            source_docs = await self._collect(source, batch_size)
            dest_docs = await self._collect(dest, batch_size)

            comparisons = []
            for doc_id in list(source_docs) + [i for i in dest_docs if i not in source_docs]:
                source_doc = source_docs.get(doc_id)
                dest_doc = dest_docs.get(doc_id)
                comparisons.append(
                    DocumentComparison(doc_id, source_doc, dest_doc, classify(source_doc, dest_doc))
                )

            if span is not None:
                span.set_attribute(ATTR_DOCUMENT_COUNT, len(comparisons))

            report = CheckpointReport(
                name="full",
                source_collection=source,
                dest_collection=dest,
                comparisons=comparisons,
                duration_seconds=time.monotonic() - start_time,
            )
            logger.info(
                "Verified %s against %s: %d ids, %d divergent",
                dest,
                source,
                len(comparisons),
                len(report.divergent),
            )
            return report

    async def _collect(self, collection: str, batch_size: int) -> dict[str, Document]:
        documents: dict[str, Document] = {}
        async for batch in self._store.scan(collection, batch_size):
            for document in batch:
                documents[document.id] = document
        return documents


__all__ = [
    "ConsistencyVerifier",
    "CheckpointReport",
    "DivergenceKind",
    "DocumentComparison",
    "VersionRegression",
    "classify",
]
