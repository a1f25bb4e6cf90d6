"""
Migration-specific exceptions for docmigrate.

Exception Hierarchy:
    MigrationError (base)
    +-- JobNotFoundError
    +-- DestinationExistsError
    +-- MigrationStateError
        +-- InvalidStatusTransitionError

Store errors raised while a phase runs (TransportError, CollectionNotFoundError
and friends) are not wrapped: the coordinator records them on the failed
job's JobResult.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from docmigrate.exceptions import DocMigrateError

if TYPE_CHECKING:
    from docmigrate.migration.models import JobStatus


class MigrationError(DocMigrateError):
    """
    Base exception for all migration-related errors.

    Attributes:
        message: Human-readable error description.
        job_id: The ID of the migration job involved, if applicable.
        suggested_action: Suggested action for recovery.
    """

    error_code = "MIGRATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        job_id: UUID | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.job_id = job_id
        self.suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        if self.job_id:
            return f"{self.message} job_id={self.job_id}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "job_id": str(self.job_id) if self.job_id else None,
            "error_code": self.error_code,
            "suggested_action": self.suggested_action,
        }


class JobNotFoundError(MigrationError):
    """
    Raised when a requested migration job does not exist.

    This typically occurs when waiting on or querying the status of a job
    id that was never issued by this coordinator.
    """

    error_code = "JOB_NOT_FOUND"

    def __init__(self, job_id: UUID) -> None:
        super().__init__(
            f"Migration job not found: {job_id}",
            job_id=job_id,
            suggested_action="Verify the job ID was returned by this coordinator",
        )


class DestinationExistsError(MigrationError):
    """
    Raised when phase one targets a destination collection that already exists.

    Phase one owns the destination from creation onward, so it refuses to
    start against a collection somebody else created.

    Attributes:
        dest_collection: The collection that already exists.
    """

    error_code = "DESTINATION_EXISTS"

    def __init__(self, dest_collection: str) -> None:
        self.dest_collection = dest_collection
        super().__init__(
            f"Destination collection already exists: {dest_collection}",
            suggested_action="Choose a new destination or run phase two against it",
        )


class MigrationStateError(MigrationError):
    """
    Raised when a migration operation is invalid for the current state.

    For example, starting a replay while another job is still running
    against the same destination.

    Attributes:
        operation: The operation that was attempted.
    """

    error_code = "MIGRATION_STATE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        job_id: UUID | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, job_id=job_id)


class InvalidStatusTransitionError(MigrationStateError):
    """
    Raised when a job status change violates Pending -> Running -> Completed | Failed.

    Attributes:
        current_status: The status the job is in.
        target_status: The status that was attempted.
    """

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(
        self,
        job_id: UUID,
        current_status: JobStatus,
        target_status: JobStatus,
    ) -> None:
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {target_status.value}",
            job_id=job_id,
            operation="status_transition",
        )


__all__ = [
    "MigrationError",
    "JobNotFoundError",
    "DestinationExistsError",
    "MigrationStateError",
    "InvalidStatusTransitionError",
]
