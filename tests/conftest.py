import os

import pytest
from fastapi.testclient import TestClient

os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["ALLOWED_CONTENT_TYPES"] = '["application/pdf", "image/jpeg"]'

from archiver.core.config import Settings
from archiver.main import create_app
from archiver.services.gate import AdmissionGate
from archiver.services.store import JobStore
from archiver.workers.pipeline import ArchivePipeline
from tests.fakes import FakeRemote


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        storage_dir=str(tmp_path / "archives"),
        max_file_size_mb=1,
        max_processing_tasks=2,
        request_timeout_seconds=2,
    )


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def store() -> JobStore:
    return JobStore()


@pytest.fixture()
def gate(settings) -> AdmissionGate:
    return AdmissionGate(settings.max_processing_tasks)


@pytest.fixture()
def pipeline(store, gate, settings, remote) -> ArchivePipeline:
    return ArchivePipeline(store, gate, settings, client_factory=remote.client_factory)


@pytest.fixture()
def client(settings, remote):
    app = create_app(settings, client_factory=remote.client_factory)
    with TestClient(app) as test_client:
        yield test_client
