"""
Seed loader for populating a source collection before a migration.

Documents get ids ``1..count`` and are written through the store's
bulk_write in fixed-size batches, after which the collection is refreshed
so the seed is visible to readers and to bulk-copy enumeration.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from docmigrate.documents.schema import CollectionSchema, FieldType
from docmigrate.stores.interface import BulkWriteOperation

if TYPE_CHECKING:
    from docmigrate.stores.interface import DocumentStore

logger = logging.getLogger(__name__)

PayloadFactory = Callable[[int], dict[str, Any]]

SEED_SCHEMA = CollectionSchema(
    properties={"name": FieldType.KEYWORD, "age": FieldType.INTEGER},
)
"""Schema of seeded documents: a keyword name and a 32-bit integer age."""


def default_payload(index: int) -> dict[str, Any]:
    """Payload of the seeded document with the given id number."""
    return {"name": "a", "age": index}


class SeedLoader:
    """
    Populates a collection with an initial bulk of documents.

    Example:
        >>> loader = SeedLoader(store)
        >>> await loader.load("test_1", 100000)
        100000

    Attributes:
        _store: Store to write into.
        _batch_size: Documents per bulk write.
        _progress_interval: Log progress every this many documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        batch_size: int = 2500,
        progress_interval: int = 10000,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if progress_interval < 1:
            raise ValueError(f"progress_interval must be >= 1, got {progress_interval}")
        self._store = store
        self._batch_size = batch_size
        self._progress_interval = progress_interval

    async def load(
        self,
        collection: str,
        count: int,
        payload_factory: PayloadFactory = default_payload,
    ) -> int:
        """
        Write ``count`` documents and refresh the collection.

        Args:
            collection: Existing collection to populate.
            count: Number of documents; ids run from 1 to count.
            payload_factory: Builds the payload for a given id number.

        Returns:
            Number of documents written. Rejected documents are logged and
            left out of the count.
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")

        logger.info("Inserting %d documents into %s", count, collection)
        written = 0
        batch: list[BulkWriteOperation] = []
        for index in range(1, count + 1):
            batch.append(BulkWriteOperation(doc_id=str(index), payload=payload_factory(index)))

            if len(batch) >= self._batch_size or index == count:
                result = await self._store.bulk_write(collection, batch)
                written += result.written
                for failure in result.failures:
                    logger.warning(
                        "Seed document %s rejected by %s: %s",
                        failure.doc_id,
                        collection,
                        failure.message,
                    )
                batch = []

            if index % self._progress_interval == 0:
                logger.info("Wrote %d docs", index)

        await self._store.refresh(collection)
        logger.info("Seeded %s with %d documents", collection, written)
        return written


__all__ = [
    "SEED_SCHEMA",
    "PayloadFactory",
    "SeedLoader",
    "default_payload",
]
