"""
Unit tests for migration exceptions.

Tests cover:
- MigrationError base exception
- All exception subclasses
- Exception attributes and string representations
"""

from uuid import uuid4

from docmigrate.exceptions import DocMigrateError
from docmigrate.migration.exceptions import (
    DestinationExistsError,
    InvalidStatusTransitionError,
    JobNotFoundError,
    MigrationError,
    MigrationStateError,
)
from docmigrate.migration.models import JobStatus


class TestMigrationError:
    """Tests for MigrationError base exception."""

    def test_basic_creation(self) -> None:
        error = MigrationError("Test error message")

        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.job_id is None
        assert error.suggested_action is None
        assert isinstance(error, DocMigrateError)

    def test_with_job_id(self) -> None:
        job_id = uuid4()
        error = MigrationError("Error", job_id=job_id)

        assert str(error) == f"Error job_id={job_id}"

    def test_to_dict(self) -> None:
        job_id = uuid4()
        error = MigrationError("Error", job_id=job_id, suggested_action="Retry")

        assert error.to_dict() == {
            "message": "Error",
            "job_id": str(job_id),
            "error_code": "MIGRATION_ERROR",
            "suggested_action": "Retry",
        }


class TestJobNotFoundError:
    """Tests for JobNotFoundError."""

    def test_attributes(self) -> None:
        job_id = uuid4()
        error = JobNotFoundError(job_id)

        assert error.job_id == job_id
        assert error.error_code == "JOB_NOT_FOUND"
        assert "Migration job not found" in str(error)
        assert error.suggested_action is not None


class TestDestinationExistsError:
    """Tests for DestinationExistsError."""

    def test_attributes(self) -> None:
        error = DestinationExistsError("test_2")

        assert error.dest_collection == "test_2"
        assert error.error_code == "DESTINATION_EXISTS"
        assert str(error) == "Destination collection already exists: test_2"


class TestMigrationStateError:
    """Tests for MigrationStateError and InvalidStatusTransitionError."""

    def test_operation(self) -> None:
        error = MigrationStateError("busy", operation="start_phase_two")

        assert error.operation == "start_phase_two"
        assert error.to_dict()["error_code"] == "MIGRATION_STATE_ERROR"

    def test_invalid_transition(self) -> None:
        job_id = uuid4()
        error = InvalidStatusTransitionError(job_id, JobStatus.COMPLETED, JobStatus.RUNNING)

        assert isinstance(error, MigrationStateError)
        assert error.operation == "status_transition"
        assert error.message == "Invalid status transition: completed -> running"
        assert error.error_code == "INVALID_STATUS_TRANSITION"
