"""
Collection schemas and payload validation.

A collection owns a schema fixed at creation: a mapping of field name to
field type. Every write is validated against it with a strict pydantic model
generated from the schema, so type coercion never happens silently
("42" is not an integer, True is not an integer).

Example:
    >>> schema = CollectionSchema.from_mapping({"name": "keyword", "age": "integer"})
    >>> schema.validate_payload({"name": "a", "age": 1}, collection="people")
    {'name': 'a', 'age': 1}
"""

from __future__ import annotations

import functools
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
    field_validator,
)

from docmigrate.exceptions import SchemaViolationError

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class FieldType(Enum):
    """Value types a schema field may declare."""

    KEYWORD = "keyword"
    TEXT = "text"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    BOOLEAN = "boolean"


_ANNOTATIONS: dict[FieldType, Any] = {
    FieldType.KEYWORD: StrictStr,
    FieldType.TEXT: StrictStr,
    FieldType.INTEGER: Annotated[StrictInt, Field(ge=_INT32_MIN, le=_INT32_MAX)],
    FieldType.LONG: Annotated[StrictInt, Field(ge=_INT64_MIN, le=_INT64_MAX)],
    FieldType.FLOAT: StrictFloat | StrictInt,
    FieldType.BOOLEAN: StrictBool,
}


@functools.lru_cache(maxsize=128)
def _payload_model(properties: tuple[tuple[str, FieldType], ...]) -> type[BaseModel]:
    """Build (and cache) the strict pydantic model for a set of properties."""
    definitions: dict[str, Any] = {
        name: (_ANNOTATIONS[field_type] | None, None) for name, field_type in properties
    }
    return create_model(  # type: ignore[call-overload, no-any-return]
        "DocumentPayload",
        __config__=ConfigDict(extra="forbid", strict=True),
        **definitions,
    )


class CollectionSchema(BaseModel):
    """
    Field name to field type mapping owned by a collection.

    Fields may be omitted from a payload; unknown fields and values of the
    wrong type are rejected.

    Attributes:
        properties: Mapping of field name to FieldType
    """

    model_config = ConfigDict(frozen=True)

    properties: dict[str, FieldType] = Field(default_factory=dict)

    @field_validator("properties")
    @classmethod
    def _check_field_names(cls, value: dict[str, FieldType]) -> dict[str, FieldType]:
        for name in value:
            if not name or name.startswith(("_", "model_")):
                raise ValueError(f"invalid field name: {name!r}")
        return value

    @classmethod
    def from_mapping(cls, mapping: dict[str, Any]) -> CollectionSchema:
        """
        Build a schema from a plain mapping.

        Accepts either a flat ``{"name": "keyword"}`` mapping or the nested
        ``{"properties": {"name": {"type": "keyword"}}}`` form.

        Args:
            mapping: Field definitions

        Returns:
            CollectionSchema for the mapping

        Raises:
            ValueError: If a field type is unknown
        """
        fields = mapping.get("properties", mapping)
        properties: dict[str, FieldType] = {}
        for name, definition in fields.items():
            type_name = definition.get("type") if isinstance(definition, dict) else definition
            properties[name] = FieldType(type_name)
        return cls(properties=properties)

    def to_mapping(self) -> dict[str, str]:
        """Return the flat ``{field: type}`` form of the schema."""
        return {name: field_type.value for name, field_type in self.properties.items()}

    def validate_payload(
        self,
        payload: dict[str, Any],
        *,
        collection: str,
        doc_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Validate a payload against the schema.

        Args:
            payload: Field values to validate
            collection: Collection name (for error reporting)
            doc_id: Document id (for error reporting)

        Returns:
            A copy of the payload containing only the supplied fields

        Raises:
            SchemaViolationError: If the payload does not conform
        """
        if not isinstance(payload, dict):
            raise SchemaViolationError(collection, doc_id, "payload must be a mapping")

        model = _payload_model(tuple(sorted(self.properties.items(), key=lambda item: item[0])))
        try:
            validated = model.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "payload"
            raise SchemaViolationError(collection, doc_id, f"{location}: {first['msg']}") from e

        return validated.model_dump(exclude_unset=True)

    def is_compatible_with(self, other: CollectionSchema) -> bool:
        """
        Check whether documents of this schema can be written into ``other``.

        Every field declared here must exist in ``other`` with the same type.
        """
        return all(other.properties.get(name) == ftype for name, ftype in self.properties.items())


__all__ = [
    "CollectionSchema",
    "FieldType",
]
