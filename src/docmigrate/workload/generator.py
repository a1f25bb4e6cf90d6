"""
Workload generator simulating live traffic against a collection.

During a migration the source keeps receiving ordinary creates, updates
and deletes. The generator issues such operations concurrently, optionally
after waiting for a phase's snapshot signal or a settle delay, and reports
one outcome per operation instead of failing on the first error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from docmigrate.documents.base import normalize_id
from docmigrate.exceptions import DocumentStoreError
from docmigrate.observability import (
    ATTR_COLLECTION,
    ATTR_DOCUMENT_COUNT,
    ATTR_DOCUMENT_ID,
    Tracer,
    create_tracer,
)

if TYPE_CHECKING:
    from docmigrate.stores.interface import DocumentStore

logger = logging.getLogger(__name__)


class OperationKind(Enum):
    """Kind of a workload operation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class WorkloadOperation:
    """
    A single write the generator will issue.

    Attributes:
        kind: Create, update or delete.
        collection: Target collection.
        doc_id: Target document id.
        payload: Document payload (None for deletes).
    """

    kind: OperationKind
    collection: str
    doc_id: str
    payload: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.kind != OperationKind.DELETE and self.payload is None:
            raise ValueError(f"{self.kind.value} operation requires a payload")

    @classmethod
    def create(
        cls, collection: str, doc_id: str | int, payload: dict[str, Any]
    ) -> WorkloadOperation:
        return cls(OperationKind.CREATE, collection, normalize_id(doc_id), payload)

    @classmethod
    def update(
        cls, collection: str, doc_id: str | int, payload: dict[str, Any]
    ) -> WorkloadOperation:
        return cls(OperationKind.UPDATE, collection, normalize_id(doc_id), payload)

    @classmethod
    def delete(cls, collection: str, doc_id: str | int) -> WorkloadOperation:
        return cls(OperationKind.DELETE, collection, normalize_id(doc_id))


@dataclass(frozen=True)
class OperationOutcome:
    """
    What happened to one workload operation.

    Attributes:
        operation: The operation that was issued.
        version: Version reported by the store (tombstone version for deletes).
        error: Error message if the store rejected the operation.
        error_type: Exception class name of the rejection.
    """

    operation: WorkloadOperation
    version: int | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class WorkloadGenerator:
    """
    Issues create/update/delete operations against a document store.

    Example:
        >>> generator = WorkloadGenerator(store)
        >>> outcomes = await generator.run_after(
        ...     [
        ...         WorkloadOperation.create("test_1", 999999999, {"name": "x", "age": 1}),
        ...         WorkloadOperation.update("test_1", 10000, {"name": "y", "age": 2}),
        ...         WorkloadOperation.delete("test_1", 20000),
        ...     ],
        ...     trigger=handle.wait_for_snapshot,
        ... )

    Attributes:
        _store: Store the operations are issued against.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._store = store

    async def create_document(
        self, collection: str, doc_id: str | int, payload: dict[str, Any]
    ) -> int:
        """Create (or overwrite) a document; returns the store-assigned version."""
        result = await self._store.index(collection, doc_id, payload)
        return result.version

    async def update_document(
        self, collection: str, doc_id: str | int, payload: dict[str, Any]
    ) -> int:
        """Overwrite a document; returns the store-assigned version."""
        result = await self._store.index(collection, doc_id, payload)
        return result.version

    async def delete_document(self, collection: str, doc_id: str | int) -> int:
        """Delete a document; returns its tombstone version."""
        return await self._store.delete(collection, doc_id)

    async def run(self, operations: Sequence[WorkloadOperation]) -> list[OperationOutcome]:
        """
        Issue all operations concurrently.

        Store errors are captured per operation rather than raised, so one
        rejected write does not hide the others.

        Args:
            operations: Operations to issue.

        Returns:
            One outcome per operation, in the order given.
        """
        with self._tracer.span(
            "docmigrate.workload.run", {ATTR_DOCUMENT_COUNT: len(operations)}
        ):
            logger.info("Running %d workload operations concurrently", len(operations))
            outcomes = list(await asyncio.gather(*(self._execute(op) for op in operations)))

            failed = [outcome for outcome in outcomes if not outcome.succeeded]
            if failed:
                logger.warning("%d of %d workload operations failed", len(failed), len(outcomes))
            else:
                logger.info("Documents created, updated, and deleted")
            return outcomes

    async def run_after(
        self,
        operations: Sequence[WorkloadOperation],
        *,
        trigger: Callable[[], Awaitable[Any]] | None = None,
        settle_delay: float = 0.0,
    ) -> list[OperationOutcome]:
        """
        Wait for a trigger and/or a settle delay, then run the operations.

        Args:
            operations: Operations to issue.
            trigger: Awaited first, typically PhaseHandle.wait_for_snapshot.
            settle_delay: Seconds to sleep after the trigger.

        Returns:
            One outcome per operation.
        """
        if trigger is not None:
            await trigger()
        if settle_delay > 0:
            logger.debug("Settling for %.3fs before running workload", settle_delay)
            await asyncio.sleep(settle_delay)
        return await self.run(operations)

    async def _execute(self, operation: WorkloadOperation) -> OperationOutcome:
        with self._tracer.span(
            f"docmigrate.workload.{operation.kind.value}",
            {ATTR_COLLECTION: operation.collection, ATTR_DOCUMENT_ID: operation.doc_id},
        ):
            try:
                if operation.kind == OperationKind.CREATE:
                    version = await self.create_document(
                        operation.collection, operation.doc_id, operation.payload or {}
                    )
                elif operation.kind == OperationKind.UPDATE:
                    version = await self.update_document(
                        operation.collection, operation.doc_id, operation.payload or {}
                    )
                else:
                    version = await self.delete_document(operation.collection, operation.doc_id)
            except DocumentStoreError as e:
                logger.warning(
                    "Workload %s of %s/%s failed: %s",
                    operation.kind.value,
                    operation.collection,
                    operation.doc_id,
                    e,
                )
                return OperationOutcome(operation, error=str(e), error_type=type(e).__name__)

            logger.debug(
                "Workload %s of %s/%s -> version %d",
                operation.kind.value,
                operation.collection,
                operation.doc_id,
                version,
            )
            return OperationOutcome(operation, version=version)


__all__ = [
    "OperationKind",
    "OperationOutcome",
    "WorkloadGenerator",
    "WorkloadOperation",
]
