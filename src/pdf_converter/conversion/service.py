import asyncio
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from .interfaces import ConversionJob, ConversionResult, Failure, UploadRejected
from .lifecycle import ArtifactLifecycle
from .orchestrator import FallbackOrchestrator

logger = logging.getLogger(__name__)

CHUNK = 1024 * 1024


class ConversionService:
    """Core domain service running conversion jobs.

    This service is framework-agnostic. HTTP handlers hand it upload streams
    and get back jobs and results; the blocking renderer chain runs in a
    worker thread so the event loop stays responsive.
    """

    def __init__(self, lifecycle: ArtifactLifecycle, orchestrator: FallbackOrchestrator) -> None:
        self._lifecycle = lifecycle
        self._orchestrator = orchestrator

    @property
    def lifecycle(self) -> ArtifactLifecycle:
        return self._lifecycle

    async def start(self) -> None:
        self._lifecycle.ensure_directories()
        await self._lifecycle.start()

    async def stop(self) -> None:
        await self._lifecycle.stop()

    async def receive_upload(
        self,
        filename: str,
        reader: Callable[[int], Awaitable[bytes]],
        *,
        max_upload_mb: int,
        output_prefix: str = "converted",
    ) -> ConversionJob:
        """Persist an upload under uploads/ and return the job that owns it."""
        job_id = str(uuid.uuid4())
        original_name = Path(filename or "upload").name or "upload"
        input_path = self._lifecycle.uploads_dir / f"{job_id}-{original_name}"
        output_path = self._lifecycle.output_dir / f"{output_prefix}-{uuid.uuid4()}.pdf"

        size_bytes = 0
        max_bytes = max_upload_mb * 1024 * 1024
        try:
            with input_path.open("wb") as f_out:
                while True:
                    chunk = await reader(CHUNK)
                    if not chunk:
                        break
                    size_bytes += len(chunk)
                    if size_bytes > max_bytes:
                        raise UploadRejected(f"upload exceeds {max_upload_mb} MB", 413)
                    f_out.write(chunk)
        except BaseException:
            # No job owns a partial upload, and the sweep never looks at uploads/
            self._lifecycle.remove(input_path)
            raise

        logger.info("received %s (%d bytes) as job %s", original_name, size_bytes, job_id)
        return ConversionJob(
            job_id=job_id,
            input_path=str(input_path),
            original_name=original_name,
            output_path=str(output_path),
        )

    async def run_job(self, job: ConversionJob) -> ConversionResult:
        """Convert one job; the upload is gone afterwards whatever happened."""
        try:
            result = await asyncio.to_thread(self._orchestrator.convert, job.input_path, job.output_path)
        finally:
            self._lifecycle.discard_upload(job)
        if result.ok:
            job.strategy = result.strategy
        else:
            logger.error("job %s (%s) failed: %s", job.job_id, job.original_name, result.reason)
        return result

    async def run_batch(self, jobs: Iterable[ConversionJob]) -> list[tuple[ConversionJob, ConversionResult]]:
        results: list[tuple[ConversionJob, ConversionResult]] = []
        for job in jobs:
            try:
                result = await self.run_job(job)
            except Exception as e:
                logger.exception("job %s crashed", job.job_id)
                self._lifecycle.remove(job.output_path)
                result = Failure(str(e) or type(e).__name__)
            results.append((job, result))
        return results

    def discard(self, jobs: Iterable[ConversionJob]) -> None:
        for job in jobs:
            self._lifecycle.discard_upload(job)

    def resolve_download(self, filename: str) -> Path | None:
        if not filename or Path(filename).name != filename:
            return None
        path = self._lifecycle.output_dir / filename
        return path if path.is_file() else None
