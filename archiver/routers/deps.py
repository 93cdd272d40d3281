from fastapi import Request

from archiver.services.orchestrator import JobOrchestrator


def get_orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator
