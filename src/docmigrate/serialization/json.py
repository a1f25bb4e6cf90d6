"""
JSON serialization utilities for docmigrate types.

Used by the checkpoint log and the CLI to render documents, job results and
reports. Handles types that are not natively JSON-serializable: UUIDs,
datetimes, enums, pydantic models and dataclasses.

Example:
    >>> from docmigrate.serialization import json_dumps
    >>> json_dumps({"status": JobStatus.COMPLETED})
    '{"status": "completed"}'
"""

import dataclasses
import json
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class DocMigrateJSONEncoder(json.JSONEncoder):
    """
    Custom JSON encoder for docmigrate values.

    Supports:
    - UUID objects: Converted to string representation
    - datetime objects: Converted to ISO 8601 format string
    - Enum members: Converted to their value
    - pydantic models: Converted with ``model_dump(mode="json")``
    - dataclass instances: Converted with ``dataclasses.asdict``
    """

    def default(self, obj: Any) -> Any:
        """
        Convert non-serializable objects to JSON-serializable formats.

        Raises:
            TypeError: If object type is not supported
        """
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        return super().default(obj)


def json_dumps(obj: Any, *, indent: int | None = None) -> str:
    """
    Serialize object to JSON string using DocMigrateJSONEncoder.

    Args:
        obj: Object to serialize
        indent: Optional indentation for pretty output

    Returns:
        JSON string representation
    """
    return json.dumps(obj, cls=DocMigrateJSONEncoder, indent=indent)


def json_loads(s: str) -> Any:
    """
    Deserialize JSON string to Python object.

    UUID, datetime and enum strings are NOT converted back to their original
    types - that's the caller's responsibility.
    """
    return json.loads(s)


__all__ = [
    "DocMigrateJSONEncoder",
    "json_dumps",
    "json_loads",
]
