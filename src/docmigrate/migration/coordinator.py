"""
MigrationCoordinator - Runs the two-phase live migration protocol.

Phase one (snapshot copy) creates the destination, switches it to bulk-load
settings and bulk-copies the source with external versions. Phase two
(replay) bulk-copies the source again, proceeding on version conflicts, so
that documents updated or created since the snapshot move forward while
nothing in the destination regresses. It then restores steady-state
settings and refreshes the destination.

Deletions made in the source between the phases are not propagated: a
deleted document leaves nothing to replay, so the destination keeps its
copy.

Responsibilities:
    - Phase sequencing and precondition checks
    - Destination settings ownership for the duration of the migration
    - Job lifecycle (Pending -> Running -> Completed | Failed)
    - Background phase execution with snapshot, wait and status operations

Usage:
    >>> coordinator = MigrationCoordinator(store)
    >>> first = await coordinator.run_phase_one("test_1", "test_2", schema)
    >>> second = await coordinator.run_phase_two("test_1", "test_2")
    >>> second.documents_copied
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from docmigrate.documents.schema import CollectionSchema
from docmigrate.migration.exceptions import (
    DestinationExistsError,
    JobNotFoundError,
    MigrationStateError,
)
from docmigrate.migration.models import (
    JobResult,
    JobStatus,
    MigrationConfig,
    MigrationJob,
    MigrationPhase,
)
from docmigrate.observability import (
    ATTR_CONFLICT_POLICY,
    ATTR_DEST_COLLECTION,
    ATTR_JOB_ID,
    ATTR_MIGRATION_PHASE,
    ATTR_SOURCE_COLLECTION,
    ATTR_THROUGHPUT_LIMIT,
    Tracer,
    create_tracer,
)
from docmigrate.stores.interface import (
    BulkCopyRequest,
    BulkCopyResponse,
    ConflictPolicy,
    DocumentStore,
    VersionMode,
)

logger = logging.getLogger(__name__)


class PhaseHandle:
    """
    Handle on a phase running in the background.

    Returned by MigrationCoordinator.start_phase_one() and start_phase_two().

    Attributes:
        job: The job the phase runs.
    """

    def __init__(
        self,
        job: MigrationJob,
        task: asyncio.Task[JobResult],
        snapshot_taken: asyncio.Event,
    ) -> None:
        self.job = job
        self._task = task
        self._snapshot_taken = snapshot_taken

    @property
    def job_id(self) -> UUID:
        return self.job.id

    @property
    def snapshot_taken(self) -> bool:
        """Check if the store has enumerated the source for this phase."""
        return self._snapshot_taken.is_set()

    def done(self) -> bool:
        return self._task.done()

    async def wait_for_snapshot(self) -> bool:
        """
        Wait until the store has taken the source snapshot, or the phase ended.

        Returns:
            True if the snapshot was taken, False if the phase ended without
            one (for example because it failed before enumerating).
        """
        snapshot_wait = asyncio.ensure_future(self._snapshot_taken.wait())
        try:
            await asyncio.wait({snapshot_wait, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            snapshot_wait.cancel()
        return self._snapshot_taken.is_set()

    async def result(self) -> JobResult:
        """Wait for the phase to finish and return its result."""
        return await asyncio.shield(self._task)

    def cancel(self) -> bool:
        """
        Cancel the phase.

        The job is marked failed. A cancelled replay still restores the
        destination's steady-state settings before the task ends.

        Returns:
            False if the phase had already finished
        """
        return self._task.cancel()


class MigrationCoordinator:
    """
    Orchestrates the two-phase migration of one collection into another.

    Both phases block their caller until the store reports the bulk copy
    complete. The start_* variants run the same phases as background tasks
    so a caller can race writes against the copy.

    No automatic retries are attempted: a failed job stays failed, and
    because replay is idempotent under external versioning the caller may
    simply run the phase again.

    Attributes:
        _store: Store holding both collections.
        _config: Coordinator defaults.
        _jobs: Every job created by this coordinator, by ID.
        _results: Results of finished jobs, by ID.
        _active_tasks: Background tasks of running jobs, by ID.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: MigrationConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            store: Document store holding source and destination
            config: Coordinator defaults (uses MigrationConfig() if None)
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._store = store
        self._config = config or MigrationConfig()

        self._jobs: dict[UUID, MigrationJob] = {}
        self._results: dict[UUID, JobResult] = {}
        self._active_tasks: dict[UUID, asyncio.Task[JobResult]] = {}

    @property
    def config(self) -> MigrationConfig:
        return self._config

    # =========================================================================
    # Phase one: snapshot copy
    # =========================================================================

    async def run_phase_one(
        self,
        source: str,
        dest: str,
        schema: CollectionSchema,
        throughput_limit: float | None = None,
    ) -> JobResult:
        """
        Copy a snapshot of the source into a new destination collection.

        Creates dest with the given schema, applies bulk-load settings,
        bulk-copies the source with external versions and blocks until the
        copy completes, then refreshes dest. Documents created in the source
        after the store began enumerating are not guaranteed to be copied.

        Args:
            source: Source collection name
            dest: Destination collection name (must not exist)
            schema: Schema for the destination
            throughput_limit: Docs/second cap, falls back to the config's

        Returns:
            JobResult; a fatal store error yields a FAILED result and leaves
            dest partially populated.

        Raises:
            DestinationExistsError: If dest already exists (no job is created)
            MigrationStateError: If another job is still running against dest
        """
        handle = await self.start_phase_one(source, dest, schema, throughput_limit)
        return await handle.result()

    async def start_phase_one(
        self,
        source: str,
        dest: str,
        schema: CollectionSchema,
        throughput_limit: float | None = None,
    ) -> PhaseHandle:
        """
        Start phase one in the background.

        Same preconditions and effects as run_phase_one().

        Returns:
            PhaseHandle for waiting on the snapshot and the result
        """
        self._ensure_no_active_job(dest, "start_phase_one")
        if await self._store.collection_exists(dest):
            raise DestinationExistsError(dest)

        job = self._create_job(
            source,
            dest,
            MigrationPhase.SNAPSHOT_COPY,
            self._config.phase_one_conflict_policy,
            throughput_limit,
        )
        snapshot_taken = asyncio.Event()
        return self._launch(
            job, snapshot_taken, lambda: self._run_phase_one(job, schema, snapshot_taken)
        )

    # =========================================================================
    # Phase two: replay
    # =========================================================================

    async def run_phase_two(
        self,
        source: str,
        dest: str,
        throughput_limit: float | None = None,
    ) -> JobResult:
        """
        Replay the source into the destination, proceeding on conflicts.

        Every source document is written with its current version; writes
        only take effect where the source is ahead of the destination.
        Afterwards steady-state settings are restored and dest is refreshed,
        also when the replay failed.

        Args:
            source: Source collection name
            dest: Destination collection name
            throughput_limit: Docs/second cap, falls back to the config's

        Returns:
            JobResult of the replay

        Raises:
            MigrationStateError: If another job is still running against dest
        """
        handle = await self.start_phase_two(source, dest, throughput_limit)
        return await handle.result()

    async def start_phase_two(
        self,
        source: str,
        dest: str,
        throughput_limit: float | None = None,
    ) -> PhaseHandle:
        """
        Start phase two in the background.

        Same preconditions and effects as run_phase_two().

        Returns:
            PhaseHandle for waiting on the snapshot and the result
        """
        self._ensure_no_active_job(dest, "start_phase_two")

        job = self._create_job(
            source,
            dest,
            MigrationPhase.REPLAY,
            self._config.phase_two_conflict_policy,
            throughput_limit,
        )
        snapshot_taken = asyncio.Event()
        return self._launch(job, snapshot_taken, lambda: self._run_phase_two(job, snapshot_taken))

    # =========================================================================
    # Status and waiting
    # =========================================================================

    async def wait_for_phase(self, job_id: UUID) -> JobResult:
        """
        Wait for a job to finish.

        There is no timeout: a hung bulk copy blocks the caller.

        Args:
            job_id: ID of the job

        Returns:
            The job's JobResult

        Raises:
            JobNotFoundError: If the job is unknown
        """
        result = self._results.get(job_id)
        if result is not None:
            return result

        task = self._active_tasks.get(job_id)
        if task is None:
            raise JobNotFoundError(job_id)
        return await asyncio.shield(task)

    def get_phase_status(self, job_id: UUID) -> JobStatus:
        """
        Get the current status of a job.

        Raises:
            JobNotFoundError: If the job is unknown
        """
        return self.get_job(job_id).status

    def get_job(self, job_id: UUID) -> MigrationJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_result(self, job_id: UUID) -> JobResult | None:
        """Get the result of a finished job, None while it is still running."""
        self.get_job(job_id)
        return self._results.get(job_id)

    def list_jobs(self) -> list[MigrationJob]:
        """List every job in creation order."""
        return list(self._jobs.values())

    # =========================================================================
    # Private methods
    # =========================================================================

    def _ensure_no_active_job(self, dest: str, operation: str) -> None:
        for job in self._jobs.values():
            if job.dest_collection == dest and not job.status.is_terminal:
                raise MigrationStateError(
                    f"Job {job.id} ({job.phase.value}) is still {job.status.value} "
                    f"against destination {dest}",
                    job_id=job.id,
                    operation=operation,
                )

    def _create_job(
        self,
        source: str,
        dest: str,
        phase: MigrationPhase,
        conflict_policy: ConflictPolicy,
        throughput_limit: float | None,
    ) -> MigrationJob:
        job = MigrationJob(
            source_collection=source,
            dest_collection=dest,
            phase=phase,
            conflict_policy=conflict_policy,
            version_mode=VersionMode.EXTERNAL,
            throughput_limit=(
                throughput_limit if throughput_limit is not None else self._config.throughput_limit
            ),
        )
        self._jobs[job.id] = job
        logger.info(
            "Created %s job %s: %s -> %s (conflicts=%s, throughput_limit=%s)",
            phase.value,
            job.id,
            source,
            dest,
            job.conflict_policy.value,
            job.throughput_limit,
        )
        return job

    def _launch(
        self,
        job: MigrationJob,
        snapshot_taken: asyncio.Event,
        phase: Callable[[], Awaitable[JobResult]],
    ) -> PhaseHandle:
        async def _run() -> JobResult:
            try:
                return await phase()
            finally:
                self._active_tasks.pop(job.id, None)

        task = asyncio.create_task(_run(), name=f"{job.phase.value}_{job.id}")
        self._active_tasks[job.id] = task
        return PhaseHandle(job, task, snapshot_taken)

    def _build_request(self, job: MigrationJob) -> BulkCopyRequest:
        return BulkCopyRequest(
            source_collection=job.source_collection,
            dest_collection=job.dest_collection,
            version_mode=job.version_mode,
            conflict_policy=job.conflict_policy,
            throughput_limit=job.throughput_limit,
            batch_size=self._config.batch_size,
        )

    def _span_attributes(self, job: MigrationJob) -> dict[str, Any]:
        return {
            ATTR_JOB_ID: str(job.id),
            ATTR_MIGRATION_PHASE: job.phase,
            ATTR_SOURCE_COLLECTION: job.source_collection,
            ATTR_DEST_COLLECTION: job.dest_collection,
            ATTR_CONFLICT_POLICY: job.conflict_policy,
            # 0 means unthrottled
            ATTR_THROUGHPUT_LIMIT: job.throughput_limit or 0.0,
        }

    async def _run_phase_one(
        self,
        job: MigrationJob,
        schema: CollectionSchema,
        snapshot_taken: asyncio.Event,
    ) -> JobResult:
        with self._tracer.span("docmigrate.coordinator.run_phase_one", self._span_attributes(job)):
            job.transition_to(JobStatus.RUNNING)
            start_time = time.monotonic()
            dest = job.dest_collection

            try:
                await self._store.create_collection(dest, schema)
                await self._store.set_collection_settings(dest, self._config.bulk_load_settings)
                response = await self._store.bulk_copy(
                    self._build_request(job), enumeration_started=snapshot_taken
                )
                await self._store.refresh(dest)
            except asyncio.CancelledError:
                self._finish(job, start_time, error="Phase cancelled")
                raise
            except Exception as e:
                logger.error("Snapshot copy failed for job %s: %s", job.id, e)
                return self._finish(job, start_time, error=str(e))

            return self._finish(job, start_time, response=response)

    async def _run_phase_two(self, job: MigrationJob, snapshot_taken: asyncio.Event) -> JobResult:
        with self._tracer.span("docmigrate.coordinator.run_phase_two", self._span_attributes(job)):
            job.transition_to(JobStatus.RUNNING)
            start_time = time.monotonic()

            response: BulkCopyResponse | None = None
            error: str | None = None
            try:
                response = await self._store.bulk_copy(
                    self._build_request(job), enumeration_started=snapshot_taken
                )
            except asyncio.CancelledError:
                error = "Phase cancelled"
                raise
            except Exception as e:
                logger.error("Replay failed for job %s: %s", job.id, e)
                error = str(e)
            finally:
                # Shielded so a cancelled replay still leaves dest readable
                restore_error = await asyncio.shield(self._restore_destination(job))
                result = self._finish(
                    job, start_time, response=response, error=error or restore_error
                )

            return result

    async def _restore_destination(self, job: MigrationJob) -> str | None:
        """Apply steady-state settings to dest and refresh it, returning any error."""
        dest = job.dest_collection
        settings = self._config.steady_state_settings
        try:
            await self._store.set_collection_settings(dest, settings)
            await self._store.refresh(dest)
        except Exception as e:
            logger.error(
                "Could not restore steady-state settings of %s for job %s: %s",
                dest,
                job.id,
                e,
            )
            return str(e)

        logger.debug(
            "Restored %s to refresh_interval=%s, replica_count=%d",
            dest,
            settings.refresh_interval,
            settings.replica_count,
        )
        return None

    def _finish(
        self,
        job: MigrationJob,
        start_time: float,
        *,
        response: BulkCopyResponse | None = None,
        error: str | None = None,
    ) -> JobResult:
        """Move the job to its terminal status and record its result."""
        elapsed = time.monotonic() - start_time
        if error is None:
            job.transition_to(JobStatus.COMPLETED)
        else:
            job.error_message = error
            job.transition_to(JobStatus.FAILED)

        result = JobResult(
            job_id=job.id,
            phase=job.phase,
            status=job.status,
            documents_copied=response.copied if response else 0,
            documents_created=response.created if response else 0,
            documents_updated=response.updated if response else 0,
            version_conflicts=response.version_conflicts if response else 0,
            errors=list(response.failures) if response else [],
            elapsed_seconds=elapsed,
            error_message=error,
        )
        self._results[job.id] = result

        if result.is_fatal:
            logger.error("Job %s (%s) failed: %s", job.id, job.phase.value, error)
        else:
            logger.info(
                "Job %s (%s) completed in %.2fs: %d copied (%d created, %d updated), "
                "%d version conflicts, %d errors",
                job.id,
                job.phase.value,
                elapsed,
                result.documents_copied,
                result.documents_created,
                result.documents_updated,
                result.version_conflicts,
                len(result.errors),
            )
        return result


__all__ = [
    "MigrationCoordinator",
    "PhaseHandle",
]
