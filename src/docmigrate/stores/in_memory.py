"""
In-memory document store implementation.

Useful for testing, development and the scripted migration scenario. Not
suitable for production as all documents are lost when the process
terminates.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from docmigrate.documents.base import Document, normalize_id
from docmigrate.documents.schema import CollectionSchema
from docmigrate.exceptions import (
    CollectionAlreadyExistsError,
    CollectionNotFoundError,
    DocumentNotFoundError,
    SchemaViolationError,
    TransportError,
)
from docmigrate.observability import (
    ATTR_COLLECTION,
    ATTR_CONFLICT_POLICY,
    ATTR_DEST_COLLECTION,
    ATTR_DOCUMENT_COUNT,
    ATTR_DOCUMENT_ID,
    ATTR_SOURCE_COLLECTION,
    ATTR_VERSION_MODE,
    Tracer,
    create_tracer,
)
from docmigrate.stores._versioning import id_sort_key, resolve_version
from docmigrate.stores.bulk_copy import BulkCopyRunner
from docmigrate.stores.interface import (
    STEADY_STATE_SETTINGS,
    BulkCopyRequest,
    BulkCopyResponse,
    BulkWriteOperation,
    BulkWriteResult,
    CollectionSettings,
    DocumentFailure,
    DocumentStore,
    IndexResult,
    VersionMode,
)


@dataclass
class _CollectionState:
    """Everything the store holds for one collection."""

    name: str
    schema: CollectionSchema
    settings: CollectionSettings = STEADY_STATE_SETTINGS
    live: dict[str, Document] = field(default_factory=dict)
    visible: dict[str, Document] = field(default_factory=dict)
    tombstones: dict[str, int] = field(default_factory=dict)

    def current_version(self, doc_id: str) -> int | None:
        document = self.live.get(doc_id)
        if document is not None:
            return document.version
        return self.tombstones.get(doc_id)


def _detached(document: Document | None) -> Document | None:
    """Copy a stored document so callers cannot reach into the store's payloads."""
    return document.model_copy(deep=True) if document is not None else None


class InMemoryDocumentStore(DocumentStore):
    """
    In-memory implementation of the document store.

    Stores documents in dictionaries, one live view and one visible view per
    collection. Suitable for:

    - Unit testing
    - Development environments
    - Running the migration scenario without external infrastructure

    Thread-safety:
        Uses an asyncio lock for all mutations. Safe for concurrent async
        operations within a single process.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.create_collection("people", schema)
        >>> result = await store.index("people", "1", {"name": "a", "age": 1})
        >>> result.version
        1

    Attributes:
        _collections: Collection name to collection state
        _lock: Lock guarding all collection state
        _closed: Whether close() has been called
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory document store.

        Args:
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: If True and OpenTelemetry is available, emit traces (default: True).
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._collections: dict[str, _CollectionState] = {}
        self._lock: asyncio.Lock = asyncio.Lock()
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportError("Document store is closed")

    def _collection(self, name: str) -> _CollectionState:
        self._ensure_open()
        state = self._collections.get(name)
        if state is None:
            raise CollectionNotFoundError(name)
        return state

    async def create_collection(self, name: str, schema: CollectionSchema) -> None:
        with self._tracer.span(
            "docmigrate.in_memory_store.create_collection", {ATTR_COLLECTION: name}
        ):
            self._ensure_open()
            async with self._lock:
                if name in self._collections:
                    raise CollectionAlreadyExistsError(name)
                self._collections[name] = _CollectionState(name=name, schema=schema)

    async def collection_exists(self, name: str) -> bool:
        self._ensure_open()
        return name in self._collections

    async def get_schema(self, name: str) -> CollectionSchema:
        return self._collection(name).schema

    async def get_collection_settings(self, name: str) -> CollectionSettings:
        return self._collection(name).settings

    async def set_collection_settings(self, name: str, settings: CollectionSettings) -> None:
        with self._tracer.span(
            "docmigrate.in_memory_store.set_collection_settings", {ATTR_COLLECTION: name}
        ):
            async with self._lock:
                self._collection(name).settings = settings

    async def bulk_write(
        self,
        collection: str,
        operations: list[BulkWriteOperation],
    ) -> BulkWriteResult:
        with self._tracer.span(
            "docmigrate.in_memory_store.bulk_write",
            {ATTR_COLLECTION: collection, ATTR_DOCUMENT_COUNT: len(operations)},
        ):
            written = 0
            failures: list[DocumentFailure] = []
            async with self._lock:
                state = self._collection(collection)
                for operation in operations:
                    doc_id = normalize_id(operation.doc_id)
                    try:
                        self._write(state, doc_id, operation.payload, None, VersionMode.INTERNAL)
                    except SchemaViolationError as e:
                        failures.append(DocumentFailure(doc_id, "schema_violation", str(e)))
                    else:
                        written += 1
            return BulkWriteResult(written=written, failures=failures)

    async def get(self, collection: str, doc_id: str | int) -> Document | None:
        with self._tracer.span(
            "docmigrate.in_memory_store.get",
            {ATTR_COLLECTION: collection, ATTR_DOCUMENT_ID: str(doc_id)},
        ):
            return _detached(self._collection(collection).visible.get(normalize_id(doc_id)))

    async def index(
        self,
        collection: str,
        doc_id: str | int,
        payload: dict[str, Any],
        *,
        version: int | None = None,
        version_mode: VersionMode = VersionMode.INTERNAL,
    ) -> IndexResult:
        doc_id = normalize_id(doc_id)
        with self._tracer.span(
            "docmigrate.in_memory_store.index",
            {
                ATTR_COLLECTION: collection,
                ATTR_DOCUMENT_ID: doc_id,
                ATTR_VERSION_MODE: version_mode.value,
            },
        ):
            async with self._lock:
                state = self._collection(collection)
                return self._write(state, doc_id, payload, version, version_mode)

    def _write(
        self,
        state: _CollectionState,
        doc_id: str,
        payload: dict[str, Any],
        version: int | None,
        version_mode: VersionMode,
    ) -> IndexResult:
        """Validate and apply a write. Caller must hold the lock."""
        validated = state.schema.validate_payload(payload, collection=state.name, doc_id=doc_id)
        new_version = resolve_version(
            state.name,
            doc_id,
            current_version=state.current_version(doc_id),
            version=version,
            version_mode=version_mode,
        )
        created = doc_id not in state.live
        document = Document(
            id=doc_id,
            collection=state.name,
            payload=validated,
            version=new_version,
        )
        state.live[doc_id] = document
        state.tombstones.pop(doc_id, None)
        if state.settings.refresh_enabled:
            state.visible[doc_id] = document
        return IndexResult(version=new_version, created=created)

    async def delete(self, collection: str, doc_id: str | int) -> int:
        doc_id = normalize_id(doc_id)
        with self._tracer.span(
            "docmigrate.in_memory_store.delete",
            {ATTR_COLLECTION: collection, ATTR_DOCUMENT_ID: doc_id},
        ):
            async with self._lock:
                state = self._collection(collection)
                document = state.live.pop(doc_id, None)
                if document is None:
                    raise DocumentNotFoundError(collection, doc_id)
                tombstone_version = document.version + 1
                state.tombstones[doc_id] = tombstone_version
                if state.settings.refresh_enabled:
                    state.visible.pop(doc_id, None)
                return tombstone_version

    async def refresh(self, collection: str) -> None:
        with self._tracer.span("docmigrate.in_memory_store.refresh", {ATTR_COLLECTION: collection}):
            async with self._lock:
                state = self._collection(collection)
                state.visible = dict(state.live)

    async def count(self, collection: str) -> int:
        return len(self._collection(collection).visible)

    async def scan(
        self,
        collection: str,
        batch_size: int = 1000,
    ) -> AsyncIterator[list[Document]]:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        documents = await self._enumerate(collection)
        for offset in range(0, len(documents), batch_size):
            yield documents[offset : offset + batch_size]

    async def _enumerate(self, collection: str) -> list[Document]:
        """Take a point-in-time copy of a collection's visible view."""
        async with self._lock:
            state = self._collection(collection)
            return [
                state.visible[doc_id].model_copy(deep=True)
                for doc_id in sorted(state.visible, key=id_sort_key)
            ]

    async def bulk_copy(
        self,
        request: BulkCopyRequest,
        *,
        enumeration_started: asyncio.Event | None = None,
    ) -> BulkCopyResponse:
        with self._tracer.span(
            "docmigrate.in_memory_store.bulk_copy",
            {
                ATTR_SOURCE_COLLECTION: request.source_collection,
                ATTR_DEST_COLLECTION: request.dest_collection,
                ATTR_VERSION_MODE: request.version_mode.value,
                ATTR_CONFLICT_POLICY: request.conflict_policy.value,
            },
        ):
            source_schema = self._collection(request.source_collection).schema
            dest_schema = self._collection(request.dest_collection).schema
            snapshot = await self._enumerate(request.source_collection)

            runner = BulkCopyRunner(self, request, tracer=self._tracer)
            return await runner.run(snapshot, source_schema, dest_schema, enumeration_started)

    async def close(self) -> None:
        self._closed = True

    # Test helpers

    async def clear(self) -> None:
        """Drop every collection. Useful in tests."""
        async with self._lock:
            self._collections.clear()

    def get_live_document(self, collection: str, doc_id: str | int) -> Document | None:
        """Read a document from the live view, ignoring refresh state. Useful in tests."""
        return _detached(self._collection(collection).live.get(normalize_id(doc_id)))


__all__ = ["InMemoryDocumentStore"]
