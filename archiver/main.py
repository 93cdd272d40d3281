import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from archiver import __version__
from archiver.core.config import Settings, get_settings
from archiver.core.logging import configure_logging
from archiver.routers import jobs
from archiver.services.gate import AdmissionGate
from archiver.services.orchestrator import JobOrchestrator
from archiver.services.store import JobStore
from archiver.workers.pipeline import ArchivePipeline, ClientFactory

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, client_factory: ClientFactory | None = None) -> JobOrchestrator:
    store = JobStore()
    gate = AdmissionGate(settings.max_processing_tasks)
    pipeline = ArchivePipeline(store, gate, settings, client_factory=client_factory)
    return JobOrchestrator(store, gate, pipeline)


def create_app(settings: Settings | None = None, client_factory: ClientFactory | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    orchestrator = build_orchestrator(settings, client_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("service_started", extra={"storage_dir": settings.storage_dir})
        yield
        await orchestrator.shutdown(settings.shutdown_grace_seconds)
        logger.info("service_stopped")

    app = FastAPI(title=settings.app_name, version=__version__, debug=settings.debug, lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    app.include_router(jobs.router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "active_runs": orchestrator.active_runs}

    return app
