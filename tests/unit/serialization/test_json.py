"""
Unit tests for the JSON serialization module.

Tests for:
- DocMigrateJSONEncoder class
- json_dumps convenience function
- json_loads convenience function
"""

import json
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from docmigrate.documents.base import Document
from docmigrate.migration.models import JobStatus
from docmigrate.serialization import DocMigrateJSONEncoder, json_dumps, json_loads
from docmigrate.stores.interface import DocumentFailure


class TestDocMigrateJSONEncoder:
    """Tests for DocMigrateJSONEncoder."""

    def test_encodes_uuid(self):
        test_uuid = uuid4()
        assert json_loads(json_dumps({"id": test_uuid})) == {"id": str(test_uuid)}

    def test_encodes_datetime(self):
        test_dt = datetime(2024, 1, 15, 10, 30, 45, 123456, tzinfo=UTC)
        assert json_loads(json_dumps({"at": test_dt})) == {"at": test_dt.isoformat()}

    def test_encodes_enum_value(self):
        assert json_dumps({"status": JobStatus.COMPLETED}) == '{"status": "completed"}'

    def test_encodes_pydantic_model(self):
        doc = Document(id="10000", collection="test_1", payload={"name": "a", "age": 10000})

        assert json_loads(json_dumps(doc)) == {
            "id": "10000",
            "collection": "test_1",
            "payload": {"name": "a", "age": 10000},
            "version": 1,
        }

    def test_encodes_dataclass(self):
        failure = DocumentFailure("7", "version_conflict", "lost")

        assert json_loads(json_dumps(failure)) == {
            "doc_id": "7",
            "reason": "version_conflict",
            "message": "lost",
        }

    def test_regular_types_unchanged(self):
        data = {"string": "hello", "number": 42, "boolean": True, "none": None}
        assert json_loads(json_dumps(data)) == data

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            json_dumps({"value": object()})

    def test_encoder_usable_with_stdlib_dumps(self):
        test_uuid = uuid4()
        assert str(test_uuid) in json.dumps({"id": test_uuid}, cls=DocMigrateJSONEncoder)


class TestJsonDumps:
    """Tests for json_dumps()."""

    def test_indent(self):
        assert json_dumps({"a": 1}, indent=2) == '{\n  "a": 1\n}'
