"""
SQLite document store implementation.

Lightweight document store using SQLite with async support via aiosqlite.
Collections, their live documents (including deletion tombstones) and
their refreshed, visible documents live in three tables.

This implementation is suitable for:
- Development and testing environments
- Running the migration scenario against a persistent store
- Single-process deployments
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime
from typing import Any

import aiosqlite

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
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
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

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS collections (
    name TEXT PRIMARY KEY,
    schema_json TEXT NOT NULL,
    refresh_interval REAL,
    replica_count INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL REFERENCES collections(name) ON DELETE CASCADE,
    doc_id TEXT NOT NULL,
    payload TEXT,
    version INTEGER NOT NULL,
    deleted INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (collection, doc_id)
);

CREATE TABLE IF NOT EXISTS visible_documents (
    collection TEXT NOT NULL REFERENCES collections(name) ON DELETE CASCADE,
    doc_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    version INTEGER NOT NULL,
    PRIMARY KEY (collection, doc_id)
);
"""


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite implementation of the document store.

    Uses aiosqlite for async database operations. Writes are serialized by
    an asyncio lock so version checks and the writes that depend on them
    are atomic with respect to other tasks.

    SQLite-specific adaptations:
    - Payloads and schemas stored as JSON TEXT
    - Deletions keep a tombstone row (deleted = 1) so versions keep increasing
    - The visible view is a separate table rebuilt by refresh()

    Attributes:
        _database: Path to SQLite file or ':memory:' for in-memory database
        _wal_mode: Whether WAL mode is enabled
        _busy_timeout: Timeout in ms for busy database
        _connection: The aiosqlite connection (set after connect/initialize)
        _meta: Cached schema and settings per collection

    Example:
        >>> async with SQLiteDocumentStore(":memory:") as store:
        ...     await store.initialize()
        ...     await store.create_collection("people", schema)
        ...     await store.index("people", "1", {"name": "a", "age": 1})
    """

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite document store.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            wal_mode: If True, enable WAL mode for better concurrency (default: True)
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: If True and OpenTelemetry is available, emit traces (default: True).
                          Ignored if tracer is explicitly provided.
        """
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._meta: dict[str, tuple[CollectionSchema, CollectionSettings]] = {}
        self._lock = asyncio.Lock()

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def database(self) -> str:
        return self._database

    async def __aenter__(self) -> SQLiteDocumentStore:
        """Open the database connection."""
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Close the database connection."""
        await self.close()

    async def _connect(self) -> None:
        """
        Open the database connection and configure settings.

        This is called automatically by __aenter__ but can also be
        called directly if not using the context manager.
        """
        if self._connection is not None:
            return

        try:
            self._connection = await aiosqlite.connect(self._database)
            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
            if self._wal_mode:
                await self._connection.execute("PRAGMA journal_mode = WAL")
        except aiosqlite.Error as e:
            raise TransportError(f"Could not open SQLite database {self._database}: {e}") from e

        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def initialize(self) -> None:
        """
        Create the store's tables if they don't exist.

        This method is idempotent - safe to call multiple times.
        """
        if self._connection is None:
            await self._connect()

        conn = self._ensure_connected()
        with self._store_errors():
            await conn.executescript(SCHEMA_SQL)
            await conn.commit()

        logger.info("Initialized SQLite document store schema: %s", self._database)

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times. After closing, every operation raises
        TransportError until a new connection is established.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._meta.clear()
            logger.debug("Closed SQLite database connection: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise TransportError(
                "Not connected to database. Use 'async with store:' or call initialize() first."
            )
        return self._connection

    @contextlib.contextmanager
    def _store_errors(self) -> Iterator[None]:
        """Translate driver errors into TransportError."""
        try:
            yield
        except aiosqlite.Error as e:
            raise TransportError(f"SQLite error on {self._database}: {e}") from e

    @contextlib.asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a block of writes as one transaction.

        Commits when the block completes. On any error, cancellation
        included, the pending writes are rolled back before the error
        propagates, so a later commit cannot publish a partial write.
        """
        conn = self._ensure_connected()
        try:
            with self._store_errors():
                yield conn
                await conn.commit()
        except BaseException:
            try:
                await conn.rollback()
            except aiosqlite.Error as e:
                logger.warning("Rollback failed on %s: %s", self._database, e)
            raise

    def _span_attributes(self, collection: str, **extra: Any) -> dict[str, Any]:
        return {
            ATTR_DB_SYSTEM: "sqlite",
            ATTR_DB_NAME: self._database,
            ATTR_COLLECTION: collection,
            **extra,
        }

    async def _load_meta(self, name: str) -> tuple[CollectionSchema, CollectionSettings]:
        conn = self._ensure_connected()
        cached = self._meta.get(name)
        if cached is not None:
            return cached

        with self._store_errors():
            cursor = await conn.execute(
                "SELECT schema_json, refresh_interval, replica_count "
                "FROM collections WHERE name = ?",
                (name,),
            )
            row = await cursor.fetchone()
        if row is None:
            raise CollectionNotFoundError(name)

        meta = (
            CollectionSchema.from_mapping(json.loads(row["schema_json"])),
            CollectionSettings(
                refresh_interval=row["refresh_interval"],
                replica_count=row["replica_count"],
            ),
        )
        self._meta[name] = meta
        return meta

    async def create_collection(self, name: str, schema: CollectionSchema) -> None:
        with self._tracer.span(
            "docmigrate.sqlite_store.create_collection", self._span_attributes(name)
        ):
            async with self._lock:
                if await self.collection_exists(name):
                    raise CollectionAlreadyExistsError(name)
                async with self._transaction() as conn:
                    await conn.execute(
                        "INSERT INTO collections "
                        "(name, schema_json, refresh_interval, replica_count, created_at) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (
                            name,
                            json.dumps(schema.to_mapping()),
                            STEADY_STATE_SETTINGS.refresh_interval,
                            STEADY_STATE_SETTINGS.replica_count,
                            datetime.now(UTC).isoformat(),
                        ),
                    )
                self._meta[name] = (schema, STEADY_STATE_SETTINGS)

    async def collection_exists(self, name: str) -> bool:
        if name in self._meta:
            return True
        conn = self._ensure_connected()
        with self._store_errors():
            cursor = await conn.execute("SELECT 1 FROM collections WHERE name = ?", (name,))
            row = await cursor.fetchone()
        return row is not None

    async def get_schema(self, name: str) -> CollectionSchema:
        schema, _ = await self._load_meta(name)
        return schema

    async def get_collection_settings(self, name: str) -> CollectionSettings:
        _, settings = await self._load_meta(name)
        return settings

    async def set_collection_settings(self, name: str, settings: CollectionSettings) -> None:
        with self._tracer.span(
            "docmigrate.sqlite_store.set_collection_settings", self._span_attributes(name)
        ):
            async with self._lock:
                schema, _ = await self._load_meta(name)
                async with self._transaction() as conn:
                    await conn.execute(
                        "UPDATE collections SET refresh_interval = ?, replica_count = ? "
                        "WHERE name = ?",
                        (settings.refresh_interval, settings.replica_count, name),
                    )
                self._meta[name] = (schema, settings)

    async def bulk_write(
        self,
        collection: str,
        operations: list[BulkWriteOperation],
    ) -> BulkWriteResult:
        with self._tracer.span(
            "docmigrate.sqlite_store.bulk_write",
            self._span_attributes(collection, **{ATTR_DOCUMENT_COUNT: len(operations)}),
        ):
            written = 0
            failures: list[DocumentFailure] = []
            async with self._lock, self._transaction():
                for operation in operations:
                    doc_id = normalize_id(operation.doc_id)
                    try:
                        await self._write(
                            collection, doc_id, operation.payload, None, VersionMode.INTERNAL
                        )
                    except SchemaViolationError as e:
                        failures.append(DocumentFailure(doc_id, "schema_violation", str(e)))
                    else:
                        written += 1
            return BulkWriteResult(written=written, failures=failures)

    async def get(self, collection: str, doc_id: str | int) -> Document | None:
        doc_id = normalize_id(doc_id)
        with self._tracer.span(
            "docmigrate.sqlite_store.get",
            self._span_attributes(collection, **{ATTR_DOCUMENT_ID: doc_id}),
        ):
            conn = self._ensure_connected()
            await self._load_meta(collection)
            with self._store_errors():
                cursor = await conn.execute(
                    "SELECT payload, version FROM visible_documents "
                    "WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                )
                row = await cursor.fetchone()
            if row is None:
                return None
            return Document(
                id=doc_id,
                collection=collection,
                payload=json.loads(row["payload"]),
                version=row["version"],
            )

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
            "docmigrate.sqlite_store.index",
            self._span_attributes(
                collection,
                **{ATTR_DOCUMENT_ID: doc_id, ATTR_VERSION_MODE: version_mode.value},
            ),
        ):
            async with self._lock, self._transaction():
                return await self._write(collection, doc_id, payload, version, version_mode)

    async def _write(
        self,
        collection: str,
        doc_id: str,
        payload: dict[str, Any],
        version: int | None,
        version_mode: VersionMode,
    ) -> IndexResult:
        """Validate and apply a write without committing. Caller must hold the lock."""
        conn = self._ensure_connected()
        schema, settings = await self._load_meta(collection)
        validated = schema.validate_payload(payload, collection=collection, doc_id=doc_id)

        with self._store_errors():
            cursor = await conn.execute(
                "SELECT version, deleted FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            row = await cursor.fetchone()

        current_version = row["version"] if row is not None else None
        new_version = resolve_version(
            collection,
            doc_id,
            current_version=current_version,
            version=version,
            version_mode=version_mode,
        )
        created = row is None or bool(row["deleted"])
        encoded = json.dumps(validated)

        with self._store_errors():
            await conn.execute(
                "INSERT INTO documents (collection, doc_id, payload, version, deleted) "
                "VALUES (?, ?, ?, ?, 0) "
                "ON CONFLICT (collection, doc_id) DO UPDATE SET "
                "payload = excluded.payload, version = excluded.version, deleted = 0",
                (collection, doc_id, encoded, new_version),
            )
            if settings.refresh_enabled:
                await conn.execute(
                    "INSERT INTO visible_documents (collection, doc_id, payload, version) "
                    "VALUES (?, ?, ?, ?) "
                    "ON CONFLICT (collection, doc_id) DO UPDATE SET "
                    "payload = excluded.payload, version = excluded.version",
                    (collection, doc_id, encoded, new_version),
                )

        return IndexResult(version=new_version, created=created)

    async def delete(self, collection: str, doc_id: str | int) -> int:
        doc_id = normalize_id(doc_id)
        with self._tracer.span(
            "docmigrate.sqlite_store.delete",
            self._span_attributes(collection, **{ATTR_DOCUMENT_ID: doc_id}),
        ):
            async with self._lock:
                _, settings = await self._load_meta(collection)
                async with self._transaction() as conn:
                    cursor = await conn.execute(
                        "SELECT version FROM documents "
                        "WHERE collection = ? AND doc_id = ? AND deleted = 0",
                        (collection, doc_id),
                    )
                    row = await cursor.fetchone()
                    if row is None:
                        raise DocumentNotFoundError(collection, doc_id)

                    tombstone_version = row["version"] + 1
                    await conn.execute(
                        "UPDATE documents SET deleted = 1, payload = NULL, version = ? "
                        "WHERE collection = ? AND doc_id = ?",
                        (tombstone_version, collection, doc_id),
                    )
                    if settings.refresh_enabled:
                        await conn.execute(
                            "DELETE FROM visible_documents WHERE collection = ? AND doc_id = ?",
                            (collection, doc_id),
                        )
                return tombstone_version

    async def refresh(self, collection: str) -> None:
        with self._tracer.span(
            "docmigrate.sqlite_store.refresh", self._span_attributes(collection)
        ):
            async with self._lock:
                await self._load_meta(collection)
                async with self._transaction() as conn:
                    await conn.execute(
                        "DELETE FROM visible_documents WHERE collection = ?", (collection,)
                    )
                    await conn.execute(
                        "INSERT INTO visible_documents (collection, doc_id, payload, version) "
                        "SELECT collection, doc_id, payload, version FROM documents "
                        "WHERE collection = ? AND deleted = 0",
                        (collection,),
                    )

    async def count(self, collection: str) -> int:
        conn = self._ensure_connected()
        await self._load_meta(collection)
        with self._store_errors():
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM visible_documents WHERE collection = ?", (collection,)
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

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
        conn = self._ensure_connected()
        async with self._lock:
            await self._load_meta(collection)
            with self._store_errors():
                cursor = await conn.execute(
                    "SELECT doc_id, payload, version FROM visible_documents WHERE collection = ?",
                    (collection,),
                )
                rows = await cursor.fetchall()

        documents = [
            Document(
                id=row["doc_id"],
                collection=collection,
                payload=json.loads(row["payload"]),
                version=row["version"],
            )
            for row in rows
        ]
        documents.sort(key=lambda document: id_sort_key(document.id))
        return documents

    async def bulk_copy(
        self,
        request: BulkCopyRequest,
        *,
        enumeration_started: asyncio.Event | None = None,
    ) -> BulkCopyResponse:
        with self._tracer.span(
            "docmigrate.sqlite_store.bulk_copy",
            {
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
                ATTR_SOURCE_COLLECTION: request.source_collection,
                ATTR_DEST_COLLECTION: request.dest_collection,
                ATTR_VERSION_MODE: request.version_mode.value,
                ATTR_CONFLICT_POLICY: request.conflict_policy.value,
            },
        ):
            source_schema = await self.get_schema(request.source_collection)
            dest_schema = await self.get_schema(request.dest_collection)
            snapshot = await self._enumerate(request.source_collection)

            runner = BulkCopyRunner(self, request, tracer=self._tracer)
            return await runner.run(snapshot, source_schema, dest_schema, enumeration_started)


__all__ = ["SQLiteDocumentStore"]
