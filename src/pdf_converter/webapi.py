import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, File, Request, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from pdf_converter import __version__
from pdf_converter.conversion import (
    ArtifactLifecycle,
    ConversionJob,
    ConversionService,
    FallbackOrchestrator,
    Renderer,
    UploadRejected,
)
from pdf_converter.conversion.adapters import default_renderers

logger = logging.getLogger(__name__)

SERVICE_NAME = "Libre PDF Converter"
VERSION = os.getenv("PDF_CONVERTER_VERSION", __version__)

app = FastAPI(
    title=SERVICE_NAME,
    version=VERSION,
    description=(
        "RESTful API for converting office documents, HTML, text, spreadsheets "
        "and images into PDF through a chain of fallback renderers."
    ),
)

# Global configuration defaults
BASE_DIR = Path(os.getenv("CONVERTER_BASE_DIR", ".")).resolve()
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))
MAX_BATCH_FILES = int(os.getenv("MAX_BATCH_FILES", "10"))
CLEANUP_MAX_AGE_SEC = float(os.getenv("CLEANUP_MAX_AGE_SEC", "3600"))
CLEANUP_INTERVAL_SEC = float(os.getenv("CLEANUP_INTERVAL_SEC", "1800"))
DOWNLOAD_PURGE_DELAY_SEC = float(os.getenv("DOWNLOAD_PURGE_DELAY_SEC", "5"))
SOFFICE_BIN = os.getenv("SOFFICE_BIN", "soffice")
SOFFICE_TIMEOUT_SEC = float(os.getenv("SOFFICE_TIMEOUT_SEC", "120"))
BROWSER_TIMEOUT_SEC = float(os.getenv("BROWSER_TIMEOUT_SEC", "30"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ALLOWED_MIME = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # docx
    "application/msword",  # legacy .doc
    "text/html",
    "text/plain",
    "application/vnd.ms-excel",  # legacy .xls
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",  # xlsx
    "image/jpeg",
    "image/png",
}
FEATURES = [
    "Format-preserving PDF conversion",
    "Multi-format support (DOCX, DOC, HTML, TXT, Excel, Images)",
    "High-fidelity rendering",
    "Batch processing",
    "Custom styling preservation",
]

SERVICE: ConversionService | None = None


def _build_renderers(scratch_dir: str) -> list[Renderer]:
    return default_renderers(
        scratch_dir,
        soffice_bin=SOFFICE_BIN,
        soffice_timeout=SOFFICE_TIMEOUT_SEC,
        browser_timeout=BROWSER_TIMEOUT_SEC,
    )


def _service() -> ConversionService:
    assert SERVICE is not None, "service not started"
    return SERVICE


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _check_mime(upload: UploadFile) -> None:
    ct = (upload.content_type or "").split(";", 1)[0].strip().lower()
    if ct not in ALLOWED_MIME:
        raise UploadRejected("Unsupported file type", status.HTTP_415_UNSUPPORTED_MEDIA_TYPE)


async def _receive(upload: UploadFile, *, output_prefix: str) -> ConversionJob:
    return await _service().receive_upload(
        upload.filename or "upload",
        upload.read,
        max_upload_mb=MAX_UPLOAD_MB,
        output_prefix=output_prefix,
    )


def _download_url(job: ConversionJob) -> str:
    return f"/download/{job.converted_name}"


@app.on_event("startup")
async def _startup() -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    global SERVICE
    lifecycle = ArtifactLifecycle(
        str(BASE_DIR),
        max_age=CLEANUP_MAX_AGE_SEC,
        sweep_interval=CLEANUP_INTERVAL_SEC,
        purge_delay=DOWNLOAD_PURGE_DELAY_SEC,
    )
    orchestrator = FallbackOrchestrator(_build_renderers(str(lifecycle.temp_dir)))
    SERVICE = ConversionService(lifecycle, orchestrator)
    await SERVICE.start()
    logger.info("%s %s serving from %s (strategy: %s)", SERVICE_NAME, VERSION, BASE_DIR, ", ".join(orchestrator.strategy))


@app.on_event("shutdown")
async def _shutdown() -> None:
    global SERVICE
    if SERVICE is not None:
        await SERVICE.stop()


@app.exception_handler(UploadRejected)
async def _upload_rejected(request: Request, exc: UploadRejected) -> JSONResponse:
    logger.info("rejected upload on %s: %s", request.url.path, exc)
    return _error(exc.status_code, str(exc))


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown paths and unknown methods on known paths are both "not found"
    if exc.status_code in (404, 405) and exc.detail in ("Not Found", "Method Not Allowed"):
        return _error(status.HTTP_404_NOT_FOUND, "Endpoint not found")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("server error on %s", request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal server error")


@app.get("/health")
def health() -> dict[str, object]:
    """Service identity and liveness."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "features": FEATURES,
    }


@app.post("/convert-docx-to-pdf")
async def convert_to_pdf(file: UploadFile | None = File(None)) -> JSONResponse:
    """Convert one uploaded document to PDF.

    Accepts multipart/form-data with a single part named "file". The upload is
    deleted once the job finishes, successful or not. On success the PDF can be
    fetched once from the returned downloadUrl.
    """
    if file is None:
        return _error(status.HTTP_400_BAD_REQUEST, "No file uploaded")
    _check_mime(file)

    job = await _receive(file, output_prefix="converted")
    logger.info("converting %s to PDF", job.original_name)
    result = await _service().run_job(job)
    if not result.ok:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, result.reason or "Conversion failed")

    return JSONResponse(
        content={
            "success": True,
            "message": "File converted successfully",
            "downloadUrl": _download_url(job),
            "originalName": job.original_name,
            "convertedName": job.converted_name,
            "fileSize": result.size_bytes,
        }
    )


@app.post("/convert-batch")
async def convert_batch(files: list[UploadFile] | None = File(None)) -> JSONResponse:
    """Convert up to MAX_BATCH_FILES documents one after another.

    Always answers 200 for a well-formed request; per-file failures are
    reported inline and do not stop the remaining files.
    """
    if not files:
        return _error(status.HTTP_400_BAD_REQUEST, "No files uploaded")
    if len(files) > MAX_BATCH_FILES:
        return _error(status.HTTP_400_BAD_REQUEST, f"Too many files (max {MAX_BATCH_FILES})")
    for f in files:
        _check_mime(f)

    jobs: list[ConversionJob] = []
    try:
        for f in files:
            jobs.append(await _receive(f, output_prefix="batch"))
    except Exception:
        _service().discard(jobs)
        raise

    results = []
    for job, result in await _service().run_batch(jobs):
        if result.ok:
            results.append(
                {
                    "originalName": job.original_name,
                    "convertedName": job.converted_name,
                    "success": True,
                    "downloadUrl": _download_url(job),
                }
            )
        else:
            results.append({"originalName": job.original_name, "success": False, "error": result.reason})

    return JSONResponse(content={"success": True, "message": f"Processed {len(files)} files", "results": results})


@app.get("/download/{filename}")
async def download(filename: str):
    """Stream a converted PDF, then purge it shortly after delivery."""
    service = _service()
    path = service.resolve_download(filename)
    if path is None:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "File not found"})

    # The sweep or an earlier purge may delete the file after resolve_download
    try:
        stat_result = os.stat(path)
    except FileNotFoundError:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "File not found"})

    async def purge_later() -> None:
        service.lifecycle.schedule_removal(path)

    return FileResponse(
        path,
        media_type="application/pdf",
        filename=filename,
        stat_result=stat_result,
        background=BackgroundTask(purge_later),
    )


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:3002). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3002"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("pdf_converter.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
