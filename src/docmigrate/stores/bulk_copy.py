"""
BulkCopyRunner - The store-side engine behind DocumentStore.bulk_copy().

A bulk copy enumerates the source collection once (the snapshot) and then
writes every snapshot document into the destination, batch by batch,
through the store's own versioned index() path. Because the snapshot is a
list of what existed at enumeration time, documents created in the source
afterwards are not copied, and documents deleted afterwards leave nothing to
replay.

Responsibilities:
    - Check schema compatibility before enumeration is announced
    - Signal that enumeration has started
    - Write snapshot documents in batches with the requested version mode
    - Tally creates, updates, version conflicts and per-document failures
    - Throttle throughput with a token bucket

Usage (inside a DocumentStore implementation):
    >>> snapshot = await self._enumerate(request.source_collection)
    >>> runner = BulkCopyRunner(self, request, tracer=self._tracer)
    >>> response = await runner.run(snapshot, source_schema, dest_schema, event)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from docmigrate.exceptions import SchemaViolationError, VersionConflictError
from docmigrate.observability import (
    ATTR_BATCH_SIZE,
    ATTR_DEST_COLLECTION,
    ATTR_DOCUMENT_COUNT,
    Tracer,
    create_tracer,
)
from docmigrate.stores.interface import (
    BulkCopyRequest,
    BulkCopyResponse,
    ConflictPolicy,
    DocumentFailure,
)

if TYPE_CHECKING:
    from docmigrate.documents.base import Document
    from docmigrate.documents.schema import CollectionSchema
    from docmigrate.stores.interface import DocumentStore

logger = logging.getLogger(__name__)

PROGRESS_LOG_INTERVAL = 10000


class RateLimiter:
    """
    Simple token bucket rate limiter for controlling document throughput.

    Limits the rate of documents processed per second using a token bucket
    algorithm. Tokens are refilled based on elapsed time.

    Attributes:
        _max_rate: Maximum documents allowed per second (None = unlimited).
        _tokens: Current available tokens.
        _last_update: Time of last token update.
        _lock: Async lock for concurrent callers.
    """

    def __init__(self, max_rate: float | None) -> None:
        """
        Initialize rate limiter.

        Args:
            max_rate: Maximum documents per second, or None for no limit.
        """
        self._max_rate = max_rate
        self._tokens = float(max_rate) if max_rate else 0.0
        self._last_update = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def max_rate(self) -> float | None:
        return self._max_rate

    async def wait(self, count: int) -> None:
        """
        Wait for capacity to process `count` documents.

        If insufficient tokens are available, sleeps until enough
        tokens have been accumulated.

        Args:
            count: Number of documents to process.
        """
        if not self._max_rate or self._max_rate <= 0:
            return  # No rate limiting

        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            # Add tokens based on time elapsed
            self._tokens = min(
                self._max_rate,
                self._tokens + elapsed * self._max_rate,
            )

            # Wait if we need more tokens
            if count > self._tokens:
                wait_time = (count - self._tokens) / self._max_rate
                await asyncio.sleep(wait_time)
                self._tokens = 0
                self._last_update = time.monotonic()
            else:
                self._tokens -= count


class BulkCopyRunner:
    """
    Writes a source snapshot into a destination collection.

    Writes go through ``store.index()`` with the request's version mode, so
    the destination applies exactly the same version rules to a bulk copy
    as to an ordinary externally versioned write.

    Conflict handling per document:
        - PROCEED_ON_CONFLICT: counted in version_conflicts, skipped.
        - FAIL_ON_CONFLICT: counted and recorded as a failure; only that
          write is aborted.

    Schema violations are recorded as failures. Any other store error is
    fatal and propagates.

    Attributes:
        _store: Store that owns both collections.
        _request: The bulk-copy request being served.
        _rate_limiter: Token bucket enforcing the throughput limit.
    """

    def __init__(
        self,
        store: DocumentStore,
        request: BulkCopyRequest,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._store = store
        self._request = request
        self._rate_limiter = RateLimiter(request.throughput_limit)

    async def run(
        self,
        snapshot: list[Document],
        source_schema: CollectionSchema,
        dest_schema: CollectionSchema,
        enumeration_started: asyncio.Event | None = None,
    ) -> BulkCopyResponse:
        """
        Copy the snapshot into the destination.

        Args:
            snapshot: Source documents as of enumeration
            source_schema: Schema of the source collection
            dest_schema: Schema of the destination collection
            enumeration_started: Event to set once the copy is under way

        Returns:
            BulkCopyResponse with counts and failures

        Raises:
            SchemaViolationError: If the schemas are incompatible
            DocumentStoreError: On fatal store errors
        """
        request = self._request
        if not source_schema.is_compatible_with(dest_schema):
            raise SchemaViolationError(
                request.dest_collection,
                None,
                f"schema is not compatible with source collection {request.source_collection}",
            )

        if enumeration_started is not None:
            enumeration_started.set()

        start_time = time.monotonic()
        created = 0
        updated = 0
        conflicts = 0
        failures: list[DocumentFailure] = []
        batches = 0

        logger.info(
            "Starting bulk copy %s -> %s: %d documents (version_mode=%s, conflicts=%s, "
            "throughput_limit=%s)",
            request.source_collection,
            request.dest_collection,
            len(snapshot),
            request.version_mode.value,
            request.conflict_policy.value,
            request.throughput_limit,
        )

        for offset in range(0, len(snapshot), request.batch_size):
            batch = snapshot[offset : offset + request.batch_size]
            with self._tracer.span(
                "docmigrate.bulk_copy.write_batch",
                {
                    ATTR_DEST_COLLECTION: request.dest_collection,
                    ATTR_BATCH_SIZE: request.batch_size,
                    ATTR_DOCUMENT_COUNT: len(batch),
                },
            ):
                for document in batch:
                    try:
                        result = await self._store.index(
                            request.dest_collection,
                            document.id,
                            document.payload,
                            version=document.version if request.version_mode.is_external else None,
                            version_mode=request.version_mode,
                        )
                    except VersionConflictError as e:
                        conflicts += 1
                        if request.conflict_policy == ConflictPolicy.FAIL_ON_CONFLICT:
                            failures.append(
                                DocumentFailure(document.id, "version_conflict", str(e))
                            )
                    except SchemaViolationError as e:
                        failures.append(DocumentFailure(document.id, "schema_violation", str(e)))
                    else:
                        if result.created:
                            created += 1
                        else:
                            updated += 1

            batches += 1
            processed = offset + len(batch)
            logger.debug(
                "Wrote batch %d (%d/%d documents) into %s",
                batches,
                processed,
                len(snapshot),
                request.dest_collection,
            )
            if processed % PROGRESS_LOG_INTERVAL < len(batch):
                logger.info("Bulk copy progress: %d/%d documents", processed, len(snapshot))

            await self._rate_limiter.wait(len(batch))
            # Unthrottled copies still let concurrent writers run between batches
            await asyncio.sleep(0)

        elapsed = time.monotonic() - start_time
        response = BulkCopyResponse(
            total=len(snapshot),
            created=created,
            updated=updated,
            version_conflicts=conflicts,
            failures=failures,
            elapsed_seconds=elapsed,
            batches=batches,
        )

        logger.info(
            "Bulk copy completed: %d created, %d updated, %d version conflicts, "
            "%d failures in %.2fs",
            created,
            updated,
            conflicts,
            len(failures),
            elapsed,
        )
        return response


__all__ = [
    "BulkCopyRunner",
    "RateLimiter",
]
