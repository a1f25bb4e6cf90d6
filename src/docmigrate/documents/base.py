"""
Base model for stored documents.

Documents are immutable snapshots of what a store held for an id at the
moment it was read. Writes never mutate a Document; they produce a new one
with a new version.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DocumentId = str


def normalize_id(doc_id: str | int) -> DocumentId:
    """
    Normalize a caller-supplied document id to its canonical string form.

    Integer ids are accepted for convenience and stored as their decimal
    representation, so ``10000`` and ``"10000"`` address the same document.

    Args:
        doc_id: String or integer document id

    Returns:
        The id as a non-empty string

    Raises:
        ValueError: If the id is empty or not a string/integer
    """
    if isinstance(doc_id, bool) or not isinstance(doc_id, (str, int)):
        raise ValueError(f"Document id must be a string or integer, got {type(doc_id).__name__}")
    normalized = str(doc_id)
    if not normalized:
        raise ValueError("Document id must not be empty")
    return normalized


class Document(BaseModel):
    """
    A document read from a collection.

    Attributes:
        id: Caller-assigned identifier, unique within the collection
        collection: Name of the collection the document was read from
        payload: Field values, validated against the collection schema on write
        version: Version of the document (internal or external, >= 1)

    Example:
        >>> doc = Document(id="10000", collection="test_1", payload={"name": "a", "age": 10000})
        >>> doc.version
        1
    """

    model_config = ConfigDict(frozen=True)

    id: DocumentId = Field(..., min_length=1, description="Document identifier")
    collection: str = Field(..., min_length=1, description="Owning collection")
    payload: dict[str, Any] = Field(default_factory=dict, description="Field values")
    version: int = Field(default=1, ge=1, description="Document version")

    def __str__(self) -> str:
        return f"Document({self.collection}/{self.id}, version={self.version})"


__all__ = [
    "Document",
    "DocumentId",
    "normalize_id",
]
