import logging
from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from datastory.api.dependencies import get_pipeline, limiter, upload_rate_limit
from datastory.core.config import Settings
from datastory.core.errors import EmptyInputError, FileTooLargeError
from datastory.core.schemas import AnalysisRecord, SourceDetails, SourceRecord
from datastory.core.sanitization import sanitize_filename, sanitize_for_logging
from datastory.services.pipeline import DataStoryPipeline

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB


@router.get("/health")
async def health_check():
    return {"status": "ok"}


async def _read_upload(file: UploadFile, settings: Settings) -> bytes:
    """
    Read an upload in chunks, stopping as soon as it exceeds the size limit.
    """
    chunks = []
    file_size = 0

    await file.seek(0)
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        file_size += len(chunk)
        if file_size > settings.max_file_size_bytes:
            raise FileTooLargeError(
                f"Maximum size is {settings.max_file_size_mb}MB."
            )
        chunks.append(chunk)

    if file_size == 0:
        raise EmptyInputError("File is empty")
    return b"".join(chunks)


async def _process_upload(file: UploadFile, request: Request, pipeline: DataStoryPipeline) -> SourceRecord:
    """Read, size-check and ingest one uploaded file (no rate limiting)."""
    settings: Settings = request.app.state.settings
    safe_filename = sanitize_filename(file.filename) if file.filename else "unknown"

    content = await _read_upload(file, settings)
    logger.info(
        f"Processing upload: {sanitize_for_logging(safe_filename)}, size: {len(content) / 1024:.2f}KB"
    )

    # Parsing is CPU-bound; keep it off the event loop
    return await run_in_threadpool(pipeline.ingest, content, file.content_type, safe_filename)


@router.post("/data-stories/upload", response_model=SourceRecord)
@limiter.limit(upload_rate_limit)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    pipeline: DataStoryPipeline = Depends(get_pipeline),
):
    """
    Upload a CSV, XLSX or JSON file and parse it into a source record.

    Rate limited per IP address (RATE_LIMIT_PER_MINUTE); RateLimitExceeded is
    formatted by the handler registered in main.py.
    """
    return await _process_upload(file, request, pipeline)


@router.post("/data-stories/{source_id}/analyze", response_model=AnalysisRecord)
async def analyze_source(source_id: str, pipeline: DataStoryPipeline = Depends(get_pipeline)):
    """
    Run a new analysis (statistics, insights, charts) over a parsed source.

    Every call creates a new analysis record; earlier analyses are kept.
    """
    return await run_in_threadpool(pipeline.analyze, source_id)


@router.get("/data-stories/{source_id}", response_model=SourceDetails)
async def get_source(source_id: str, pipeline: DataStoryPipeline = Depends(get_pipeline)):
    """Source record plus every analysis run over it, oldest first."""
    return await run_in_threadpool(pipeline.get_source_details, source_id)
