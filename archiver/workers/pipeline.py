import asyncio
import logging
import mimetypes
import shutil
import tempfile
import time
import zipfile
from collections.abc import Awaitable, Callable
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TypeVar
from uuid import UUID

import httpx

from archiver.core.config import Settings
from archiver.core.errors import AllDownloadsFailedError, JobNotFoundError
from archiver.models.job import Job, JobStatus
from archiver.services.gate import AdmissionGate
from archiver.services.store import JobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
ClientFactory = Callable[[], httpx.AsyncClient]

CHUNK_SIZE = 64 * 1024
SPOOL_MAX_BYTES = 1024 * 1024

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
}


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times a link's network calls are attempted on transport errors."""

    attempts: int = 1
    backoff_seconds: float = 0.0

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except httpx.TransportError:
                if attempt >= self.attempts:
                    raise
                await asyncio.sleep(self.backoff_seconds * attempt)
                attempt += 1


class LinkRejected(Exception):
    """A single link could not be archived; the message is stored on the job."""


@dataclass(slots=True)
class ArchivePart:
    index: int
    url: str
    name: str
    body: IO[bytes]


def extension_for(content_type: str) -> str:
    if content_type in EXTENSIONS:
        return EXTENSIONS[content_type]
    return mimetypes.guess_extension(content_type) or ".bin"


def parse_content_type(value: str | None) -> str:
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


def parse_content_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


class ArchivePipeline:
    def __init__(
        self,
        store: JobStore,
        gate: AdmissionGate,
        settings: Settings,
        client_factory: ClientFactory | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.store = store
        self.gate = gate
        self.storage_dir = Path(settings.storage_dir)
        self.allowed_content_types = frozenset(settings.allowed_content_types)
        self.max_file_size_mb = settings.max_file_size_mb
        self.max_file_size_bytes = settings.max_file_size_bytes
        self.timeout = settings.request_timeout_seconds
        self.client_factory = client_factory or self._default_client
        self.retry_policy = retry_policy or RetryPolicy(
            attempts=settings.download_retries + 1,
            backoff_seconds=settings.retry_backoff_seconds,
        )

    def archive_path_for(self, job_id: UUID) -> Path:
        return self.storage_dir / f"task_{job_id}.zip"

    async def run(self, job_id: UUID, *, reserved: bool = False) -> None:
        """Archive every link of a ready job.

        ``reserved`` means the caller already holds a gate slot for this job;
        the slot is released here either way.
        """
        if not reserved:
            await self.gate.acquire()
        try:
            await self._process(job_id)
        finally:
            self.gate.release()

    async def _process(self, job_id: UUID) -> None:
        try:
            job = self.store.set_status(job_id, JobStatus.PROCESSING)
        except JobNotFoundError:
            logger.warning("archive_job_missing", extra={"job_id": str(job_id)})
            return

        logger.info("archive_started", extra={"job_id": str(job_id), "links": job.file_count})
        try:
            archive_path = self._prepare_archive(job_id)
        except OSError as exc:
            logger.error("archive_setup_failed", extra={"job_id": str(job_id), "error": str(exc)})
            self.store.set_result(job_id, None, [f"failed to create archive: {exc}"])
            return

        try:
            errors = await self._fill_archive(job, archive_path)
        except AllDownloadsFailedError as exc:
            logger.warning("archive_all_failed", extra={"job_id": str(job_id), "errors": len(exc.errors)})
            self.store.set_result(job_id, None, exc.errors)
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("archive_job_crashed", extra={"job_id": str(job_id), "error": str(exc)})
            archive_path.unlink(missing_ok=True)
            self.store.set_result(job_id, None, [f"archive failed: {exc}"])
            return

        result = self.store.set_result(job_id, str(archive_path), errors)
        logger.info(
            "archive_finished",
            extra={"job_id": str(job_id), "status": result.status.value, "errors": len(errors)},
        )

    def _prepare_archive(self, job_id: UUID) -> Path:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        archive_path = self.archive_path_for(job_id)
        with zipfile.ZipFile(archive_path, "w"):
            pass
        return archive_path

    async def _fill_archive(self, job: Job, archive_path: Path) -> list[str]:
        failures: dict[int, str] = {}
        with ExitStack() as stack:
            parts: list[ArchivePart] = []
            names: set[str] = set()
            async with self.client_factory() as client:
                for index, url in enumerate(job.links):
                    buffer = stack.enter_context(tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES))
                    try:
                        content_type = await self._fetch_link(client, url, buffer)
                    except LinkRejected as exc:
                        logger.info("link_rejected", extra={"job_id": str(job.id), "url": url, "reason": str(exc)})
                        failures[index] = str(exc)
                        continue
                    parts.append(ArchivePart(index, url, self._entry_name(names, content_type), buffer))

            if parts:
                try:
                    await asyncio.to_thread(self._write_archive, archive_path, parts)
                except (OSError, zipfile.BadZipFile, ValueError) as exc:
                    logger.error("archive_write_failed", extra={"job_id": str(job.id), "error": str(exc)})
                    for part in parts:
                        failures[part.index] = f"failed to save file from {part.url} in zip: {exc}"

        errors = [failures[index] for index in sorted(failures)]
        if len(errors) == len(job.links):
            archive_path.unlink(missing_ok=True)
            raise AllDownloadsFailedError(job.id, errors)
        return errors

    async def _fetch_link(self, client: httpx.AsyncClient, url: str, buffer: IO[bytes]) -> str:
        probed_type = await self._probe(client, url)
        try:
            return await self.retry_policy.call(lambda: self._download(client, url, probed_type, buffer))
        except httpx.TransportError as exc:
            raise LinkRejected(f"failed to download from {url}, error: {exc}") from exc

    @staticmethod
    def _write_archive(archive_path: Path, parts: list[ArchivePart]) -> None:
        # Runs in a worker thread; entries are only written once every body is on disk.
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for part in parts:
                part.body.seek(0)
                with archive.open(part.name, "w") as entry:
                    shutil.copyfileobj(part.body, entry, CHUNK_SIZE)

    async def _probe(self, client: httpx.AsyncClient, url: str) -> str:
        try:
            response = await self.retry_policy.call(lambda: client.head(url))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise LinkRejected(f"cannot check file type in {url}") from exc
        if response.is_error:
            raise LinkRejected(f"cannot check file type in {url}: status {response.status_code}")

        content_type = parse_content_type(response.headers.get("content-type"))
        self._check_content_type(url, content_type)
        declared = parse_content_length(response.headers.get("content-length"))
        if declared is not None and declared > self.max_file_size_bytes:
            raise self._too_large(url)
        return content_type

    async def _download(self, client: httpx.AsyncClient, url: str, probed_type: str, buffer: IO[bytes]) -> str:
        buffer.seek(0)
        buffer.truncate()
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                content_type = parse_content_type(response.headers.get("content-type")) or probed_type
                self._check_content_type(url, content_type)
                received = 0
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    received += len(chunk)
                    if received > self.max_file_size_bytes:
                        raise self._too_large(url)
                    buffer.write(chunk)
        except httpx.TransportError:
            raise
        except httpx.HTTPError as exc:
            raise LinkRejected(f"failed to download from {url}, error: {exc}") from exc
        except OSError as exc:
            raise LinkRejected(f"failed to save file from {url} in zip: {exc}") from exc
        return content_type

    def _check_content_type(self, url: str, content_type: str) -> None:
        if content_type not in self.allowed_content_types:
            raise LinkRejected(f"forbidden file type in {url}")

    def _too_large(self, url: str) -> LinkRejected:
        return LinkRejected(f"more than max allowed file size ({self.max_file_size_mb} MB) in {url}")

    @staticmethod
    def _entry_name(taken: set[str], content_type: str) -> str:
        stamp = time.monotonic_ns()
        ext = extension_for(content_type)
        while f"file_{stamp}{ext}" in taken:
            stamp += 1
        name = f"file_{stamp}{ext}"
        taken.add(name)
        return name

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
