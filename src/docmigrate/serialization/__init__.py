"""
Serialization utilities for docmigrate.

Example:
    >>> from docmigrate.serialization import json_dumps
    >>> json_dumps({"id": uuid4()})
"""

from docmigrate.serialization.json import (
    DocMigrateJSONEncoder,
    json_dumps,
    json_loads,
)

__all__ = [
    "DocMigrateJSONEncoder",
    "json_dumps",
    "json_loads",
]
