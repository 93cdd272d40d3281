from datetime import datetime
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, ValidationError, field_validator

from archiver.models.job import JobStatus

_http_url = TypeAdapter(AnyHttpUrl)


class LinkCreate(BaseModel):
    href: str

    @field_validator("href")
    @classmethod
    def _must_be_http_url(cls, value: str) -> str:
        # Validate only; the link is stored exactly as the client sent it.
        try:
            _http_url.validate_python(value)
        except ValidationError as exc:
            raise ValueError(f"href must be an http or https URL: {exc.errors()[0]['msg']}") from exc
        return value


class JobSummary(BaseModel):
    id: UUID
    status: JobStatus


class JobDetail(JobSummary):
    created_at: datetime
    file_count: int = Field(ge=0)
    archive_path: str | None = None
    error_messages: list[str] | None = None
