import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memogen.api.routes import router
from memogen.core.config import settings
from memogen.core.exceptions import JobValidationError
from memogen.core.exceptions import NotFoundError
from memogen.core.exceptions import PipelineError
from memogen.core.logging import setup_logging
from memogen.jobs.event_bus import EventBus
from memogen.jobs.job_manager import JobManager
from memogen.jobs.job_repository import JobRepository
from memogen.services.doc_builder import DocBuilderError
from memogen.services.llm import CompletionService
from memogen.services.pipeline import PipelineService
from memogen.services.storage.memory_store import InMemoryStorage

setup_logging()

logger = logging.getLogger(__name__)


def configure_services(app: FastAPI, completion_service: CompletionService | None = None) -> JobManager:
    """Build the process-wide storage, job registry and job manager and attach them to *app*."""
    storage = InMemoryStorage()
    job_manager = JobManager(
        storage=storage,
        pipeline=PipelineService(completion_service),
        repository=JobRepository(),
        event_bus=EventBus(),
    )
    app.state.storage = storage
    app.state.job_manager = job_manager
    return job_manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Application startup - %s (%s)", settings.app_name, settings.environment)
    yield
    job_manager: JobManager = app.state.job_manager
    await job_manager.shutdown()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
configure_services(app)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.error(f"HTTP exception: {exc.detail} (status: {exc.status_code})")
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    # Log the detailed Pydantic validation errors to the server console
    logger.error("Request validation failed: %s", exc.errors(), exc_info=False)
    return JSONResponse(
        {"error": "Input validation failed", "details": exc.errors()},
        status_code=422,
    )


@app.exception_handler(JobValidationError)
async def job_validation_exception_handler(_request: Request, exc: JobValidationError) -> JSONResponse:
    logger.warning(f"Job rejected: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    logger.warning(f"Not found: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=404)


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(_request: Request, exc: PipelineError) -> JSONResponse:
    logger.error(f"Pipeline error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.exception_handler(DocBuilderError)
async def docbuilder_exception_handler(_request: Request, exc: DocBuilderError) -> JSONResponse:
    logger.error(f"DocBuilder error: {str(exc)}")
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    logger.info("Health check endpoint called")
    return {"status": "ok"}


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)
app.include_router(router)
