from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from archiver.core.errors import JobNotFoundError, LinkCapReachedError, ServerBusyError
from archiver.routers.deps import get_orchestrator
from archiver.schemas.job import JobDetail, JobSummary, LinkCreate
from archiver.services.orchestrator import JobOrchestrator

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobSummary, status_code=status.HTTP_201_CREATED)
async def create_job(orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> JobSummary:
    try:
        job = orchestrator.create_job()
    except ServerBusyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return JobSummary(id=job.id, status=job.status)


@router.get("/{job_id}", response_model=JobDetail, response_model_exclude_none=True)
async def get_job(job_id: UUID, orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> JobDetail:
    try:
        job = orchestrator.get_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobDetail(
        id=job.id,
        status=job.status,
        created_at=job.created_at,
        file_count=job.file_count,
        archive_path=job.archive_path,
        error_messages=job.error_messages or None,
    )


@router.post("/{job_id}", response_model=JobSummary, status_code=status.HTTP_201_CREATED)
async def add_link(
    job_id: UUID,
    payload: LinkCreate,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> JobSummary:
    try:
        job = orchestrator.add_link(job_id, payload.href)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except LinkCapReachedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return JobSummary(id=job.id, status=job.status)
