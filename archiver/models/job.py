from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

LINK_CAP = 3


class JobStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.COMPLETED_WITH_ERRORS, JobStatus.FAILED})

# Forward-only lifecycle: pending -> ready -> processing -> terminal.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.READY}),
    JobStatus.READY: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: TERMINAL_STATUSES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.COMPLETED_WITH_ERRORS: frozenset(),
    JobStatus.FAILED: frozenset(),
}


@dataclass(slots=True)
class Job:
    id: UUID
    status: JobStatus = JobStatus.PENDING
    links: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    archive_path: str | None = None
    error_messages: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.links)

    @property
    def is_full(self) -> bool:
        return len(self.links) >= LINK_CAP
