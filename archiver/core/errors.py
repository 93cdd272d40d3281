from uuid import UUID


class ArchiverError(Exception):
    """Base class for failures surfaced to the transport layer."""


class JobNotFoundError(ArchiverError):
    def __init__(self, job_id: UUID) -> None:
        self.job_id = job_id
        super().__init__(f"job {job_id} not found")


class LinkCapReachedError(ArchiverError):
    def __init__(self, job_id: UUID, cap: int) -> None:
        self.job_id = job_id
        self.cap = cap
        super().__init__(f"job {job_id} already has {cap} links")


class ServerBusyError(ArchiverError):
    def __init__(self) -> None:
        super().__init__("server is busy")


class AllDownloadsFailedError(ArchiverError):
    def __init__(self, job_id: UUID, errors: list[str]) -> None:
        self.job_id = job_id
        self.errors = list(errors)
        super().__init__(f"all downloads failed for job {job_id}")


class InvalidTransitionError(ArchiverError):
    """Raised when a job status would move backwards or skip a stage."""

    def __init__(self, job_id: UUID, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"job {job_id} cannot move from {current} to {target}")
