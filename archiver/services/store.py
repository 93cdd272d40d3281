import copy
import logging
import threading
from uuid import UUID

from archiver.core.errors import InvalidTransitionError, JobNotFoundError, LinkCapReachedError
from archiver.models.job import ALLOWED_TRANSITIONS, LINK_CAP, Job, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """In-memory job registry.

    Every operation runs under one lock and hands back a deep copy, so neither
    request threads nor pipeline tasks can observe or mutate a job mid-update.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._jobs: dict[UUID, Job] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, job_id: UUID) -> Job:
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"job {job_id} already exists")
            job = Job(id=job_id)
            self._jobs[job_id] = job
            return copy.deepcopy(job)

    def get(self, job_id: UUID) -> Job:
        with self._lock:
            return copy.deepcopy(self._require(job_id))

    def add_link(self, job_id: UUID, url: str) -> Job:
        with self._lock:
            job = self._require(job_id)
            if len(job.links) >= LINK_CAP:
                raise LinkCapReachedError(job_id, LINK_CAP)
            job.links.append(url)
            if len(job.links) == LINK_CAP:
                self._transition(job, JobStatus.READY)
            return copy.deepcopy(job)

    def set_status(self, job_id: UUID, status: JobStatus) -> Job:
        with self._lock:
            job = self._require(job_id)
            self._transition(job, status)
            return copy.deepcopy(job)

    def set_result(self, job_id: UUID, archive_path: str | None, error_messages: list[str]) -> Job:
        with self._lock:
            job = self._require(job_id)
            if not archive_path:
                status = JobStatus.FAILED
            elif error_messages:
                status = JobStatus.COMPLETED_WITH_ERRORS
            else:
                status = JobStatus.COMPLETED
            self._transition(job, status)
            job.archive_path = archive_path or None
            job.error_messages = list(error_messages)
            return copy.deepcopy(job)

    def _require(self, job_id: UUID) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    @staticmethod
    def _transition(job: Job, target: JobStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[job.status]:
            raise InvalidTransitionError(job.id, job.status.value, target.value)
        logger.debug("job_status_changed", extra={"job_id": str(job.id), "from": job.status.value, "to": target.value})
        job.status = target
