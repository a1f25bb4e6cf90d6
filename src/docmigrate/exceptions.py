"""Library exceptions for the docmigrate package."""

from typing import ClassVar


class DocMigrateError(Exception):
    """Base exception for docmigrate library."""

    pass


class DocumentStoreError(DocMigrateError):
    """
    Base exception for errors raised by a document store.

    Attributes:
        fatal: Whether the error aborts the enclosing operation (a bulk copy
            or a migration phase) instead of being tallied per document.
    """

    fatal: ClassVar[bool] = False


class SchemaViolationError(DocumentStoreError):
    """Raised when a payload does not conform to the collection's schema."""

    def __init__(self, collection: str, doc_id: str | None, message: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.reason = message
        target = f"{collection}/{doc_id}" if doc_id is not None else collection
        super().__init__(f"Schema violation for {target}: {message}")


class DocumentNotFoundError(DocumentStoreError):
    """Raised when an operation targets a document id that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class VersionConflictError(DocumentStoreError):
    """
    Raised when an externally versioned write loses against the stored version.

    Attributes:
        collection: Collection the write targeted
        doc_id: Document id the write targeted
        current_version: Version currently held by the store
        attempted_version: Version supplied with the rejected write
    """

    def __init__(
        self,
        collection: str,
        doc_id: str,
        current_version: int,
        attempted_version: int,
    ) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.current_version = current_version
        self.attempted_version = attempted_version
        super().__init__(
            f"Version conflict for {collection}/{doc_id}: "
            f"current version [{current_version}] is higher or equal to "
            f"the one provided [{attempted_version}]"
        )


class TransportError(DocumentStoreError):
    """Raised when the store is unreachable or fails outright."""

    fatal = True


class CollectionAlreadyExistsError(DocumentStoreError):
    """Raised when creating a collection whose name is already taken."""

    fatal = True

    def __init__(self, collection: str) -> None:
        self.collection = collection
        super().__init__(f"Collection already exists: {collection}")


class CollectionNotFoundError(DocumentStoreError):
    """Raised when an operation targets a collection that was never created."""

    fatal = True

    def __init__(self, collection: str) -> None:
        self.collection = collection
        super().__init__(f"Collection not found: {collection}")


__all__ = [
    "DocMigrateError",
    "DocumentStoreError",
    "SchemaViolationError",
    "DocumentNotFoundError",
    "VersionConflictError",
    "TransportError",
    "CollectionAlreadyExistsError",
    "CollectionNotFoundError",
]
