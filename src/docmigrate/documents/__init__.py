"""Document and schema models for docmigrate."""

from docmigrate.documents.base import Document, DocumentId, normalize_id
from docmigrate.documents.schema import CollectionSchema, FieldType

__all__ = [
    "CollectionSchema",
    "Document",
    "DocumentId",
    "FieldType",
    "normalize_id",
]
