#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Web Server - REST API for code-migrator.

This module provides the REST API and WebSocket endpoints for batch
conversion:
- Uploading a zip bundle
- Starting a conversion job for an uploaded zip bundle
- Job listing, status polling and deletion
- Downloading the converted bundle
- Real-time progress via WebSocket (per job, or every job)
- Health check

Usage:
    # Start server
    uvicorn api.main:app --host 0.0.0.0 --port 8000

    # Or run directly
    python -m api.main

Key Endpoints:
    POST /api/uploads - Upload a zip bundle
    POST /api/conversions - Start a batch conversion (202 + job id)
    GET /api/jobs - List jobs
    GET /api/jobs/{job_id} - Get job snapshot
    DELETE /api/jobs/{job_id} - Forget a job
    GET /api/jobs/{job_id}/download - Download the converted bundle
    WS /ws - Progress events for every job
    WS /ws/jobs/{job_id} - Progress events for one job
    GET /health - Health check

Configuration:
    Environment variables (or .env), see config/settings.py:
    - OPENAI_API_KEY: OpenAI API key
    - MAX_CONCURRENCY, ITEM_TIMEOUT_SECONDS, BATCH_DEADLINE_SECONDS
    - CORS_ORIGINS: Comma separated allowed origins
    - MAX_UPLOAD_SIZE_MB: Upload size limit
"""

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, UploadFile, File, BackgroundTasks, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Callable, Tuple
from pathlib import Path
import asyncio
import time
import uuid

from config.constants import UPLOAD_EXTENSIONS, WEBSOCKET_QUEUE_SIZE, WEBSOCKET_HEARTBEAT
from config.logging_config import get_logger
from config.settings import settings

from ai_providers import BaseAIProvider, create_provider
from migrator import __version__
from migrator.archive import ZipArchiver, ensure_path_under
from migrator.batch import (
    BatchOrchestrator,
    Job,
    JobRegistry,
    OrchestratorConfig,
    ProgressBroadcaster,
    create_logging_callback,
    create_queue_callback,
)
from migrator.converters import LLMConverter
from migrator.profiles import PROFILES, ConversionProfile, get_profile

logger = get_logger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class ConversionRequest(BaseModel):
    """Start a batch conversion"""
    bundle_path: str = Field(..., description="Zip path under the upload or zips directory")
    kind: str = Field(..., description="Conversion kind, e.g. oracle-to-snowflake")
    max_concurrency: Optional[int] = Field(None, ge=1, le=64)
    item_timeout: Optional[float] = Field(None, gt=0)
    deadline: Optional[float] = Field(None, gt=0)


class UploadAccepted(BaseModel):
    """Uploaded bundle, ready to pass to /api/conversions"""
    filename: str
    bundle_path: str
    size: int


class ConversionAccepted(BaseModel):
    job_id: str
    kind: str
    status: str


class StepModel(BaseModel):
    name: str
    progress: float


class JobResponse(BaseModel):
    """Job snapshot"""
    id: str
    status: str
    overall_progress: float
    current_step: str
    steps: List[StepModel]
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    failed_at: Optional[str] = None


def to_response(job: Job, include_content: bool = False) -> JobResponse:
    data = job.to_dict()
    if job.result is not None:
        data["result"] = job.result.to_dict(include_content=include_content)
    return JobResponse(**data)


# =============================================================================
# Shared components
# =============================================================================

broadcaster = ProgressBroadcaster()
broadcaster.subscribe_all(create_logging_callback())
registry = JobRegistry(broadcaster=broadcaster, retention_seconds=settings.job_retention_seconds)

_provider: Optional[BaseAIProvider] = None

ConverterFactory = Callable[[ConversionProfile], Any]


def get_registry() -> JobRegistry:
    return registry


def get_broadcaster() -> ProgressBroadcaster:
    return broadcaster


def get_archiver() -> ZipArchiver:
    return ZipArchiver(temp_dir=settings.temp_dir, output_dir=settings.zips_dir)


def get_allowed_roots() -> List[Path]:
    return settings.allowed_input_roots


def get_upload_dir() -> Path:
    return settings.upload_dir


def get_max_upload_bytes() -> int:
    return settings.max_upload_size_mb * 1024 * 1024


def get_converter_factory() -> ConverterFactory:
    """One provider is shared by every job; it connects on first use."""
    def factory(profile: ConversionProfile):
        global _provider
        if _provider is None:
            _provider = create_provider(settings)
        return LLMConverter(_provider, profile)

    return factory


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Code Migrator API",
    description="Parallel batch conversion of database code and scripts",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def start_eviction_loop():
    """Evict stale jobs periodically"""
    app.state.eviction_task = asyncio.create_task(
        registry.run_eviction_loop(settings.eviction_interval_seconds)
    )


@app.on_event("shutdown")
async def stop_background_tasks():
    task = getattr(app.state, "eviction_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None


# =============================================================================
# WebSocket Manager
# =============================================================================

class ConnectionManager:
    """
    Manage WebSocket connections for real-time updates.

    Each connection gets its own bounded queue fed by the progress
    broadcaster; events that arrive while the queue is full are dropped.

    Example:
        >>> manager = ConnectionManager()
        >>> queue, unsubscribe = manager.open_queue(broadcaster.subscribe_all)
        >>> await manager.stream(websocket, queue)
    """

    def __init__(self):
        """Initialize connection manager with empty connection list."""
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    def open_queue(
        self,
        subscribe: Callable[[Callable], Callable[[], None]],
    ) -> Tuple[asyncio.Queue, Callable[[], None]]:
        """
        Start buffering broadcaster events for one connection.

        Args:
            subscribe: Registers a subscriber and returns its unsubscribe

        Returns:
            (queue, unsubscribe)
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=WEBSOCKET_QUEUE_SIZE)
        unsubscribe = subscribe(create_queue_callback(asyncio.get_running_loop(), queue))
        return queue, unsubscribe

    async def stream(
        self,
        websocket: WebSocket,
        queue: asyncio.Queue,
        close_on_terminal: bool = False,
    ):
        """
        Forward queued events to a connected client until it leaves.

        Args:
            websocket: Accepted connection
            queue: Filled by a subscriber from open_queue
            close_on_terminal: Close after a completed/failed event
        """
        async def send_events():
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=WEBSOCKET_HEARTBEAT)
                except asyncio.TimeoutError:
                    await websocket.send_json({"event": "heartbeat", "timestamp": time.time()})
                    continue

                await websocket.send_json({"event": "progress", **event})
                if close_on_terminal and event.get("status") in ("completed", "failed"):
                    return

        async def receive_until_closed():
            while True:
                await websocket.receive_text()

        sender = asyncio.create_task(send_events())
        receiver = asyncio.create_task(receive_until_closed())

        try:
            done, pending = await asyncio.wait(
                {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            errors = {task: task.exception() for task in done}
            if sender in done and errors[sender] is None:
                await websocket.close()
            elif errors.get(receiver) is not None and not isinstance(errors[receiver], WebSocketDisconnect):
                logger.warning(f"WebSocket receive failed: {errors[receiver]}")
        finally:
            self.disconnect(websocket)


manager = ConnectionManager()


# =============================================================================
# Conversion endpoints
# =============================================================================

async def _run_job(orchestrator: BatchOrchestrator, bundle_path: Path, job_id: str):
    """Background job body. The orchestrator already records failures on the job."""
    try:
        await orchestrator.run(bundle_path, job_id=job_id)
    except Exception as e:
        logger.error(f"Background job {job_id} ended with error: {e}")


@app.post("/api/uploads", response_model=UploadAccepted, status_code=201)
async def upload_bundle(
    file: UploadFile = File(...),
    upload_dir: Path = Depends(get_upload_dir),
    max_bytes: int = Depends(get_max_upload_bytes),
):
    """
    Upload a zip bundle

    Accepts: ZIP
    Returns: Server path to use as bundle_path in /api/conversions
    """
    # client paths are reduced to their last component
    filename = Path(file.filename or "").name
    if Path(filename).suffix.lower() not in UPLOAD_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(UPLOAD_EXTENSIONS)}"
        )

    contents = await file.read()
    if len(contents) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes // (1024 * 1024)}MB)")

    upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = upload_dir / f"{uuid.uuid4().hex[:12]}_{filename}"
    await asyncio.to_thread(file_path.write_bytes, contents)

    logger.info(f"Uploaded {filename} ({len(contents)} bytes) to {file_path}")
    return UploadAccepted(filename=filename, bundle_path=str(file_path), size=len(contents))


@app.post("/api/conversions", response_model=ConversionAccepted, status_code=202)
async def start_conversion(
    request: ConversionRequest,
    background_tasks: BackgroundTasks,
    registry: JobRegistry = Depends(get_registry),
    archiver: ZipArchiver = Depends(get_archiver),
    roots: List[Path] = Depends(get_allowed_roots),
    converter_factory: ConverterFactory = Depends(get_converter_factory),
):
    """
    Start converting every matching file in a zip bundle

    - **bundle_path**: Zip on the server, under the upload or zips directory
    - **kind**: oracle-to-snowflake, batch-to-idmc, batch-to-summary or summary-to-json
    - **max_concurrency / item_timeout / deadline**: Optional overrides
    """
    try:
        profile = get_profile(request.kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        bundle_path = ensure_path_under(request.bundle_path, roots)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not bundle_path.is_file():
        raise HTTPException(status_code=404, detail=f"Bundle not found: {request.bundle_path}")

    try:
        converter = converter_factory(profile)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))

    config = OrchestratorConfig.from_settings(settings)
    if request.max_concurrency:
        config.max_concurrency = request.max_concurrency
    if request.item_timeout:
        config.item_timeout = request.item_timeout
    if request.deadline:
        config.deadline = request.deadline

    orchestrator = BatchOrchestrator(
        registry=registry,
        profile=profile,
        converter=converter,
        archiver=archiver,
        config=config,
    )
    job_id = orchestrator.create_job()
    background_tasks.add_task(_run_job, orchestrator, bundle_path, job_id)

    logger.info(f"Accepted {profile.name} job {job_id} for {bundle_path.name}")
    return ConversionAccepted(job_id=job_id, kind=profile.name, status="pending")


@app.get("/api/kinds")
async def list_kinds():
    """List conversion kinds"""
    return [
        {
            "name": profile.name,
            "description": profile.description,
            "extensions": sorted(profile.extensions),
            "max_concurrency": profile.max_concurrency,
        }
        for profile in PROFILES.values()
    ]


# =============================================================================
# Job endpoints
# =============================================================================

@app.get("/api/jobs", response_model=List[JobResponse])
async def list_jobs(
    status: Optional[str] = None,
    limit: int = 50,
    registry: JobRegistry = Depends(get_registry),
):
    """
    List jobs, newest first

    - **status**: Filter by job status (pending/running/completed/failed)
    - **limit**: Maximum number of jobs to return (default: 50)
    """
    jobs = registry.list_jobs()
    if status:
        jobs = [job for job in jobs if job.status.value == status]
    return [to_response(job) for job in jobs[:limit]]


@app.get("/api/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    include_content: bool = False,
    registry: JobRegistry = Depends(get_registry),
):
    """
    Get a job snapshot

    - **job_id**: Job ID to retrieve
    - **include_content**: Include converted file contents in the result
    """
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return to_response(job, include_content=include_content)


@app.delete("/api/jobs/{job_id}")
async def delete_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Forget a job"""
    if not registry.delete(job_id):
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return {"message": f"Job {job_id} deleted successfully"}


@app.get("/api/jobs/{job_id}/download")
async def download_bundle(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Download the converted bundle of a completed job"""
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    if not job.result or not job.result.bundle_path:
        raise HTTPException(status_code=409, detail=f"Job {job_id} has no bundle")

    path = Path(job.result.bundle_path)
    if not path.is_file():
        raise HTTPException(status_code=410, detail="Bundle no longer available")

    return FileResponse(path, media_type="application/zip", filename=path.name)


# =============================================================================
# WebSocket endpoints
# =============================================================================

@app.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    broadcaster: ProgressBroadcaster = Depends(get_broadcaster),
):
    """
    Progress events for every job

    Sends a "connected" event, then one "progress" event per job
    mutation and a heartbeat when idle.
    """
    await manager.connect(websocket)
    queue, unsubscribe = manager.open_queue(broadcaster.subscribe_all)
    try:
        await websocket.send_json({"event": "connected", "timestamp": time.time()})
        await manager.stream(websocket, queue)
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        manager.disconnect(websocket)


@app.websocket("/ws/jobs/{job_id}")
async def job_websocket_endpoint(
    websocket: WebSocket,
    job_id: str,
    registry: JobRegistry = Depends(get_registry),
    broadcaster: ProgressBroadcaster = Depends(get_broadcaster),
):
    """
    Progress events for one job

    Sends the current snapshot first (or an error if the job is unknown),
    then every event for that job. Closes after the terminal event.
    Events published while the snapshot is taken may repeat state the
    snapshot already shows.
    """
    await manager.connect(websocket)
    # subscribe before reading the snapshot so no event falls between them
    queue, unsubscribe = manager.open_queue(lambda callback: broadcaster.subscribe(job_id, callback))
    try:
        job = registry.get(job_id)
        if job is None:
            await websocket.send_json({"event": "error", "detail": f"Job not found: {job_id}"})
            await websocket.close(code=4404)
            return

        await websocket.send_json({"event": "snapshot", "job_id": job_id, **to_response(job).model_dump()})
        if job.is_terminal:
            await websocket.close()
            return

        await manager.stream(websocket, queue, close_on_terminal=True)
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        manager.disconnect(websocket)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check(registry: JobRegistry = Depends(get_registry)):
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": time.time(),
        "jobs": len(registry),
        "websocket_connections": len(manager.active_connections),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
