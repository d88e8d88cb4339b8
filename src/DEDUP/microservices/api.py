"""
FastAPI service for CSV/Excel identifier deduplication.

This module provides the REST API that accepts a spreadsheet upload, runs it
through the deduplication pipeline and returns links to the "new" and
"duplicate" result files.

Module Input:
    - HTTP multipart/form-data single-file uploads (field "file")
    - Configuration from settings module

Module Output:
    - JSON responses with status, message, result file URLs and counts
    - Static result files under the upload URL prefix
    - HTTP status codes mapped from the response status taxonomy

Endpoints:
    GET  /health             - Service health check
    POST /upload             - Upload a CSV/Excel file for deduplication
    GET  /uploads/{run}/...  - Download result files
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from DEDUP import __version__
from DEDUP.core.exceptions import (
    DedupServiceError,
    FileParseError,
    FileTooLargeError,
    UnsupportedFileTypeError,
)
from DEDUP.core.logging_config import get_logger, setup_root_logger
from DEDUP.core.settings import settings
from DEDUP.services.extraction.upload_reader import TabularFormat, UploadReader
from DEDUP.services.output.file_builder import OutputFileBuilder
from DEDUP.services.pipeline import (
    FailureCause,
    OutputMode,
    PipelineOutcome,
    PipelineResult,
    build_pipeline,
)
from DEDUP.services.storage import build_store

# Setup logging
setup_root_logger()
logger = get_logger(__name__)


# ============== Response Status Taxonomy ==============

class ResponseStatus(str, Enum):
    """Every terminal answer of the upload endpoint."""
    NO_FILE_PROVIDED = "NoFileProvided"
    UNSUPPORTED_FILE_TYPE = "UnsupportedFileType"
    FILE_TOO_LARGE = "FileTooLarge"
    UNREADABLE_FILE = "UnreadableFile"
    NO_DATA_FOUND = "NoDataFound"
    ALL_DUPLICATES = "AllDuplicates"
    SUCCESS = "Success"
    INTERNAL_FAILURE = "InternalFailure"


STATUS_CODES: Dict[ResponseStatus, int] = {
    ResponseStatus.NO_FILE_PROVIDED: status.HTTP_400_BAD_REQUEST,
    ResponseStatus.UNSUPPORTED_FILE_TYPE: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    ResponseStatus.FILE_TOO_LARGE: 413,
    ResponseStatus.UNREADABLE_FILE: 422,
    ResponseStatus.NO_DATA_FOUND: 422,
    ResponseStatus.ALL_DUPLICATES: status.HTTP_200_OK,
    ResponseStatus.SUCCESS: status.HTTP_200_OK,
    ResponseStatus.INTERNAL_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

STATUS_MESSAGES: Dict[ResponseStatus, str] = {
    ResponseStatus.NO_FILE_PROVIDED: "No file uploaded.",
    ResponseStatus.UNSUPPORTED_FILE_TYPE: "Invalid file type.",
    ResponseStatus.FILE_TOO_LARGE: "File exceeds the maximum upload size.",
    ResponseStatus.UNREADABLE_FILE: "File could not be parsed.",
    ResponseStatus.NO_DATA_FOUND: "No data found in the file.",
    ResponseStatus.ALL_DUPLICATES: "All entries were duplicates.",
    ResponseStatus.SUCCESS: "Files processed successfully.",
    ResponseStatus.INTERNAL_FAILURE: "Error processing file.",
}

FAILURE_MESSAGES: Dict[FailureCause, str] = {
    FailureCause.EXISTENCE_CHECK: "Error fetching existing IDs.",
    FailureCause.PERSISTENCE: "Error writing new entries.",
    FailureCause.OUTPUT: "Error creating output files.",
    FailureCause.EXTRACTION: "Error processing file.",
    FailureCause.UNEXPECTED: "Error processing file.",
}

SINGLE_FILE_SUCCESS_MESSAGE = "File processed successfully."
NO_DUPLICATES_MESSAGE = "No duplicate entries found."
UNSTORABLE_MESSAGE = "No identifiers in the file fit the supported number range."
TIMEOUT_MESSAGE = "Processing timed out."

# Upload bytes pulled from the spooled part per read
UPLOAD_CHUNK_BYTES = 1024 * 1024

# Non-standard code for requests abandoned by the client
CLIENT_CLOSED_REQUEST = 499


# ============== Request/Response Models ==============

class ResultFiles(BaseModel):
    """URLs of the result files; null when the file was not produced."""
    new: Optional[str] = None
    duplicate: Optional[str] = None


class UploadSummary(BaseModel):
    candidates: int = 0
    rejected: int = 0
    new: int = 0
    duplicates: int = 0
    batches_written: int = 0


class UploadResponse(BaseModel):
    """Response model for pair output mode."""
    status: ResponseStatus
    message: str
    files: Optional[ResultFiles] = None
    summary: Optional[UploadSummary] = None


class SingleFileUploadResponse(BaseModel):
    """Response model for single output mode."""
    status: ResponseStatus
    message: str
    file: Optional[str] = None
    summary: Optional[UploadSummary] = None


class HealthResponse(BaseModel):
    """Response model for service health check."""
    status: str
    version: str
    services: Dict[str, str]
    store_connected: bool


# ============== Application ==============

app = FastAPI(
    title="Identifier Deduplication Service",
    description="CSV/Excel upload, identifier deduplication and batched persistence",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)

# StaticFiles requires the directory at mount time
settings.upload_dir.mkdir(parents=True, exist_ok=True)
app.mount(
    settings.upload_url_prefix,
    StaticFiles(directory=str(settings.upload_dir)),
    name="uploads",
)


# ============== Startup/Shutdown ==============

@app.on_event("startup")
async def startup_event():
    """
    Build the store, upload reader and pipeline from settings.

    Components live on app.state; the store handle is passed explicitly to
    the resolver and writer rather than kept as module state.
    """
    try:
        store = build_store(settings)
        app.state.store = store
        app.state.upload_reader = UploadReader(max_file_size_mb=settings.max_upload_size_mb)
        app.state.pipeline = build_pipeline(store, settings)
        app.state.output_sweeper = asyncio.create_task(
            _sweep_expired_outputs(app.state.pipeline.builder, settings.output_sweep_interval_sec)
        )

        logger.info(
            f"All services initialized successfully "
            f"(store={store.name}, output_mode={settings.output_mode})"
        )
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    sweeper = getattr(app.state, "output_sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    logger.info("Application shutdown complete")


# ============== Helpers ==============

async def _sweep_expired_outputs(builder: OutputFileBuilder, interval: float) -> None:
    """Purge expired result directories now and then every interval seconds."""
    while True:
        await asyncio.to_thread(builder.purge_expired)
        await asyncio.sleep(interval)


async def _read_upload(file: UploadFile, reader: UploadReader) -> bytes:
    """
    Read an upload, stopping as soon as it exceeds the size limit.

    The spooled part size is checked before anything is read; the running
    byte count covers parts whose size is unknown.

    Raises:
        FileTooLargeError: If the upload is over the reader's limit
    """
    if file.size is not None:
        reader.validate_size(file.filename, file.size)

    chunks = []
    received = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        received += len(chunk)
        reader.validate_size(file.filename, received)
        chunks.append(chunk)
    return b"".join(chunks)


def _build_response(
    response_status: ResponseStatus,
    message: Optional[str] = None,
    result: Optional[PipelineResult] = None,
    status_code: Optional[int] = None,
) -> JSONResponse:
    """
    Render one taxonomy status as a JSON response in the configured shape.

    Args:
        response_status: Terminal status
        message: Override for the default status message
        result: Pipeline result supplying file URLs and counts
        status_code: Override for the default HTTP status code
    """
    message = message or STATUS_MESSAGES[response_status]
    summary = UploadSummary(**result.summary()) if result else None
    new_url = result.new_file.url if result and result.new_file else None
    duplicate_url = result.duplicate_file.url if result and result.duplicate_file else None

    if settings.output_mode == OutputMode.SINGLE.value:
        body: BaseModel = SingleFileUploadResponse(
            status=response_status, message=message, file=new_url, summary=summary
        )
    else:
        files = ResultFiles(new=new_url, duplicate=duplicate_url) if result else None
        body = UploadResponse(
            status=response_status, message=message, files=files, summary=summary
        )

    return JSONResponse(
        status_code=status_code or STATUS_CODES[response_status],
        content=body.model_dump(mode="json"),
    )


def _response_for_result(result: PipelineResult) -> JSONResponse:
    if result.outcome is PipelineOutcome.NO_DATA:
        message = UNSTORABLE_MESSAGE if result.rejected else None
        return _build_response(ResponseStatus.NO_DATA_FOUND, message=message, result=result)
    if result.outcome is PipelineOutcome.ALL_DUPLICATES:
        return _build_response(ResponseStatus.ALL_DUPLICATES, result=result)
    if result.outcome is PipelineOutcome.SUCCESS:
        if not result.partition.duplicate:
            message = NO_DUPLICATES_MESSAGE
        elif settings.output_mode == OutputMode.SINGLE.value:
            message = SINGLE_FILE_SUCCESS_MESSAGE
        else:
            message = STATUS_MESSAGES[ResponseStatus.SUCCESS]
        return _build_response(ResponseStatus.SUCCESS, message=message, result=result)

    message = FAILURE_MESSAGES.get(result.cause, STATUS_MESSAGES[ResponseStatus.INTERNAL_FAILURE])
    return _build_response(ResponseStatus.INTERNAL_FAILURE, message=message, result=result)


async def _run_until_disconnect(request: Request, coro) -> Any:
    """
    Await coro, cancelling it if the client goes away first.

    Raises:
        asyncio.CancelledError: If the client disconnected
    """
    task = asyncio.ensure_future(coro)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=settings.disconnect_poll_sec)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.warning("Client disconnected; cancelling pipeline")
                task.cancel()
                raise asyncio.CancelledError()
    finally:
        if not task.done():
            task.cancel()


# ============== Health Endpoint ==============

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """
    Health check endpoint for service monitoring.

    Returns:
        HealthResponse: Component status including store connectivity
    """
    store = getattr(app.state, "store", None)
    services_status = {
        "store": "initialized" if store else "not_initialized",
        "upload_reader": "initialized" if getattr(app.state, "upload_reader", None) else "not_initialized",
        "pipeline": "initialized" if getattr(app.state, "pipeline", None) else "not_initialized",
    }

    store_connected = False
    if store:
        store_connected = await store.ping()

    all_healthy = all(s == "initialized" for s in services_status.values()) and store_connected

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        version=__version__,
        services=services_status,
        store_connected=store_connected,
    )


# ============== Upload Endpoint ==============

@app.post("/upload", tags=["Upload"])
async def upload_file(request: Request, file: Optional[UploadFile] = File(None)):
    """
    Deduplicate the identifiers of one uploaded CSV/Excel file.

    Returns:
        JSONResponse: status, message, result file URL(s) and counts; the
            HTTP status code follows the response status taxonomy
    """
    pipeline = getattr(app.state, "pipeline", None)
    reader: Optional[UploadReader] = getattr(app.state, "upload_reader", None)
    if pipeline is None or reader is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": ResponseStatus.INTERNAL_FAILURE.value, "message": "Services not initialized"},
        )

    if file is None or not file.filename:
        logger.error("No file uploaded")
        return _build_response(ResponseStatus.NO_FILE_PROVIDED)

    run_id = uuid.uuid4().hex
    logger.info(f"[{run_id}] Processing upload: {file.filename}")

    try:
        upload_format = reader.detect_format(file.filename)
        content = await _read_upload(file, reader)
        rows = await asyncio.to_thread(reader.read_rows, file.filename, content)
    except UnsupportedFileTypeError as e:
        logger.error(f"[{run_id}] {e.message}")
        return _build_response(ResponseStatus.UNSUPPORTED_FILE_TYPE)
    except FileTooLargeError as e:
        logger.error(f"[{run_id}] {e.message}", extra={"details": e.details})
        return _build_response(ResponseStatus.FILE_TOO_LARGE)
    except FileParseError as e:
        logger.error(f"[{run_id}] {e.message}", extra={"details": e.details})
        return _build_response(ResponseStatus.UNREADABLE_FILE)
    except DedupServiceError as e:
        logger.error(f"[{run_id}] Upload rejected: {e.message}")
        return _build_response(ResponseStatus.INTERNAL_FAILURE)
    finally:
        await file.close()

    output_format = (
        upload_format if settings.output_format == "match_input" else TabularFormat.CSV
    )

    try:
        result = await _run_until_disconnect(
            request,
            asyncio.wait_for(
                pipeline.run(rows, output_format=output_format, run_id=run_id),
                timeout=settings.request_timeout_sec,
            ),
        )
    except asyncio.TimeoutError:
        logger.error(f"[{run_id}] Pipeline exceeded {settings.request_timeout_sec}s")
        return _build_response(
            ResponseStatus.INTERNAL_FAILURE,
            message=TIMEOUT_MESSAGE,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        )
    except asyncio.CancelledError:
        if not await request.is_disconnected():
            raise
        return JSONResponse(
            status_code=CLIENT_CLOSED_REQUEST,
            content={"status": ResponseStatus.INTERNAL_FAILURE.value, "message": "Client disconnected."},
        )

    return _response_for_result(result)


# ============== Server Runner ==============

def run_server():
    """
    Run the FastAPI server with uvicorn.

    Command-line entry point for starting the API server.
    """
    import uvicorn
    uvicorn.run(
        "DEDUP.microservices.api:app",
        host=settings.api_host,
        port=settings.api_port,
        timeout_keep_alive=int(settings.request_timeout_sec),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server()
