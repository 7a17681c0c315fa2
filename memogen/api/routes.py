import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from uuid import uuid4

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from pydantic import Field as PydanticField

from memogen.jobs.job_manager import JobManager
from memogen.models.memo_models import ContentMetadata
from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import GenerationJob
from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import Template
from memogen.services.doc_builder import build_memorandum_docx
from memogen.services.storage.base import Storage
from memogen.services.template_parser import build_template
from memogen.services.template_parser import generate_sample_template

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
NDJSON_MEDIA_TYPE = "application/x-ndjson"


# ---------------------------------------------------------------------------
# Dependencies (overridable in tests through app.dependency_overrides)
# ---------------------------------------------------------------------------


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class TemplatePayload(BaseModel):
    name: str = PydanticField(..., min_length=1, description="Display name of the template.")
    content: str = PydanticField(..., description="Raw markdown template text.")
    content_type: str = "text/markdown"


class DocumentPayload(BaseModel):
    name: str = PydanticField(..., min_length=1)
    content: str = PydanticField(..., description="Extracted plain text of the source document.")
    content_type: str = "text/plain"


class JobPayload(BaseModel):
    template_id: str
    source_ids: list[str] = PydanticField(default_factory=list, description="Ids of previously uploaded source documents.")
    metadata: ContentMetadata


# ---------------------------------------------------------------------------
# NDJSON event helper
# ---------------------------------------------------------------------------


def _create_stream_event(
    event_type: str,
    message: str | None = None,
    payload: dict[str, Any] | None = None,
) -> str:
    """Serialize an event dict to an NDJSON line."""
    event: dict[str, Any] = {"type": event_type}
    if message is not None:
        event["message"] = message
    if payload is not None:
        event["payload"] = payload
    return json.dumps(event) + "\n"


async def _stream_job_events(job_manager: JobManager, job_id: str) -> AsyncIterator[str]:
    """Yield the current job snapshot, then every published update until the job is terminal."""
    request_id = str(uuid4())
    queue: asyncio.Queue[GenerationJob] = asyncio.Queue()
    handler = queue.put_nowait
    job_manager.subscribe(job_id, handler)
    logger.info("[%s] Streaming events for job %s", request_id, job_id)
    try:
        job = job_manager.get_job(job_id)
        if job is None:
            yield _create_stream_event("error", message=f"Job {job_id} not found")
            return
        while True:
            yield _create_stream_event("job", payload=job.model_dump(mode="json"))
            if job.is_terminal:
                break
            job = await queue.get()
        yield _create_stream_event("finished", message=job.status.value)
    finally:
        job_manager.unsubscribe(job_id, handler)
        logger.info("[%s] Event stream for job %s closed", request_id, job_id)


def _require_job(job_manager: JobManager, job_id: str) -> GenerationJob:
    job = job_manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job


# ---------------------------------------------------------------------------
# Templates and source documents
# ---------------------------------------------------------------------------


@router.post("/templates", status_code=status.HTTP_201_CREATED, tags=["Templates"])
async def upload_template(payload: TemplatePayload, storage: Storage = Depends(get_storage)) -> Template:
    """Parse a markdown template into its section structure and store it."""
    template = build_template(payload.name, payload.content, payload.content_type)
    await storage.save_template(template)
    logger.info("[%s] Template uploaded: %d top-level sections", template.id, len(template.structure.sections))
    return template


@router.get("/templates", tags=["Templates"])
async def list_templates(storage: Storage = Depends(get_storage)) -> list[Template]:
    return await storage.list_templates()


@router.post("/templates/sample", status_code=status.HTTP_201_CREATED, tags=["Templates"])
async def create_sample_template(storage: Storage = Depends(get_storage)) -> Template:
    """Store the stock investment memorandum template."""
    template = generate_sample_template()
    await storage.save_template(template)
    return template


@router.post("/documents", status_code=status.HTTP_201_CREATED, tags=["Documents"])
async def upload_document(payload: DocumentPayload, storage: Storage = Depends(get_storage)) -> SourceDocument:
    document = SourceDocument(
        name=payload.name,
        content=payload.content,
        content_type=payload.content_type,
        size=len(payload.content.encode("utf-8")),
    )
    await storage.save_document(document)
    return document


@router.get("/documents", tags=["Documents"])
async def list_documents(storage: Storage = Depends(get_storage)) -> list[SourceDocument]:
    return await storage.list_documents()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


@router.post("/jobs", status_code=status.HTTP_202_ACCEPTED, tags=["Jobs"])
async def start_job(payload: JobPayload, job_manager: JobManager = Depends(get_job_manager)) -> GenerationJob:
    """Validate the request and start a memorandum generation job.

    Returns the queued job immediately; follow it with ``GET /api/jobs/{id}/events``.

    Raises:
        JobValidationError: mapped to 400 by the application exception handler.
    """
    job = await job_manager.start_job(payload.template_id, payload.source_ids, payload.metadata)
    logger.info("[%s] Job accepted", job.id)
    return job


@router.get("/jobs", tags=["Jobs"])
async def list_jobs(job_manager: JobManager = Depends(get_job_manager)) -> list[GenerationJob]:
    return job_manager.list_jobs()


@router.get("/jobs/{job_id}", tags=["Jobs"])
async def get_job(job_id: str, job_manager: JobManager = Depends(get_job_manager)) -> GenerationJob:
    return _require_job(job_manager, job_id)


@router.post("/jobs/{job_id}/cancel", tags=["Jobs"])
async def cancel_job(job_id: str, job_manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    _require_job(job_manager, job_id)
    cancelled = await job_manager.cancel_job(job_id)
    return {"job_id": job_id, "cancelled": cancelled}


@router.post("/jobs/{job_id}/retry", tags=["Jobs"])
async def retry_job(job_id: str, job_manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    _require_job(job_manager, job_id)
    restarted = await job_manager.retry_job(job_id)
    return {"job_id": job_id, "restarted": restarted}


@router.get("/jobs/{job_id}/events", tags=["Jobs"])
async def stream_job_events(job_id: str, job_manager: JobManager = Depends(get_job_manager)) -> StreamingResponse:
    """Stream job snapshots as NDJSON.

    Stream events:
    - `job`: a full job snapshot (the current state first, then every update).
    - `finished`: the job reached a terminal state; the stream closes.
    """
    _require_job(job_manager, job_id)
    return StreamingResponse(_stream_job_events(job_manager, job_id), media_type=NDJSON_MEDIA_TYPE)


# ---------------------------------------------------------------------------
# Generated content
# ---------------------------------------------------------------------------


async def _require_content(storage: Storage, content_id: str) -> GeneratedContent:
    content = await storage.get_generated_content(content_id)
    if content is None:
        raise HTTPException(status_code=404, detail=f"Generated content {content_id} not found")
    return content


@router.get("/contents/{content_id}", tags=["Contents"])
async def get_content(content_id: str, storage: Storage = Depends(get_storage)) -> GeneratedContent:
    return await _require_content(storage, content_id)


@router.get("/contents/{content_id}/docx", tags=["Contents"])
async def export_content_docx(content_id: str, storage: Storage = Depends(get_storage)) -> StreamingResponse:
    """Return the generated memorandum as a DOCX attachment."""
    content = await _require_content(storage, content_id)
    docx_bytes = await build_memorandum_docx(content)
    filename = f"memorandum-{content.id}.docx"
    return StreamingResponse(
        iter([docx_bytes]),
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
