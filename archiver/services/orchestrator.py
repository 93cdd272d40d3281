import asyncio
import logging
import uuid
from uuid import UUID

from archiver.core.errors import ArchiverError
from archiver.models.job import Job, JobStatus
from archiver.services.gate import AdmissionGate
from archiver.services.store import JobStore
from archiver.workers.pipeline import ArchivePipeline

logger = logging.getLogger(__name__)


class JobOrchestrator:
    """Entry point for the transport layer.

    ``create_job`` reserves an admission slot for the new job; the slot is
    carried by that job until its archive run releases it, so the number of
    concurrent runs never exceeds the gate capacity.
    """

    def __init__(self, store: JobStore, gate: AdmissionGate, pipeline: ArchivePipeline) -> None:
        self.store = store
        self.gate = gate
        self.pipeline = pipeline
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_runs(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def create_job(self) -> Job:
        try:
            self.gate.try_acquire()
        except ArchiverError as exc:
            logger.warning("job_create_rejected", extra={"error": str(exc)})
            raise
        try:
            job = self.store.create(uuid.uuid4())
        except Exception:
            self.gate.release()
            raise
        logger.info("job_created", extra={"job_id": str(job.id)})
        return job

    def get_job(self, job_id: UUID) -> Job:
        try:
            return self.store.get(job_id)
        except ArchiverError as exc:
            logger.warning("job_lookup_failed", extra={"job_id": str(job_id), "error": str(exc)})
            raise

    def add_link(self, job_id: UUID, url: str) -> Job:
        try:
            job = self.store.add_link(job_id, url)
        except ArchiverError as exc:
            logger.warning("link_add_failed", extra={"job_id": str(job_id), "url": url, "error": str(exc)})
            raise
        logger.info("link_added", extra={"job_id": str(job_id), "url": url, "file_count": job.file_count})
        if job.status is JobStatus.READY:
            self._launch(job_id)
        return job

    def _launch(self, job_id: UUID) -> None:
        task = asyncio.get_running_loop().create_task(
            self.pipeline.run(job_id, reserved=True), name=f"archive-{job_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_run_done)
        logger.info("archive_scheduled", extra={"job_id": str(job_id)})

    def _on_run_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "archive_run_crashed",
                extra={"task": task.get_name(), "error": str(exc)},
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def shutdown(self, timeout: float = 0.0) -> None:
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return
        if timeout > 0:
            _, pending = await asyncio.wait(pending, timeout=timeout)
        if pending:
            logger.warning("archive_runs_abandoned", extra={"count": len(pending)})
