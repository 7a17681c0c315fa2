"""Generation job lifecycle.

State machine::

    queued -> processing -> completed
                         -> failed -> queued (retry only)

Every mutation of a job record and the event published for it happen under the
job's lock, so subscribers never observe a half-applied update. Cancellation
only flips the record; an execution that is still running checks, before each
write, that the job is still ``processing`` and that it is still the current
attempt, and drops its writes otherwise.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Sequence

from memogen.core.exceptions import JobValidationError
from memogen.core.exceptions import NotFoundError
from memogen.core.exceptions import PipelineError
from memogen.jobs.event_bus import EventBus
from memogen.jobs.event_bus import JobEventHandler
from memogen.jobs.job_repository import JobEntry
from memogen.jobs.job_repository import JobRepository
from memogen.models.memo_models import ContentMetadata
from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import GenerationJob
from memogen.models.memo_models import JobStatus
from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import Template
from memogen.models.memo_models import utcnow
from memogen.services.llm import JSONParsingError
from memogen.services.llm import LLMError
from memogen.services.pipeline import PipelineService
from memogen.services.pipeline import PipelineStage
from memogen.services.storage.base import Storage

logger = logging.getLogger(__name__)

# Overall job progress band covered by each pipeline stage
STAGE_PROGRESS_BANDS: dict[PipelineStage, tuple[float, float]] = {
    PipelineStage.GENERATION: (10.0, 70.0),
    PipelineStage.ENHANCEMENT: (70.0, 90.0),
    PipelineStage.VALIDATION: (90.0, 95.0),
}
PERSISTENCE_PROGRESS = 95.0

CANCELLED_ERROR = "Job cancelled by user"


def rescale_progress(stage: PipelineStage, percent: float) -> float:
    low, high = STAGE_PROGRESS_BANDS[stage]
    percent = min(max(percent, 0.0), 100.0)
    return low + (high - low) * percent / 100.0


def validate_job_inputs(
    template: Template | None,
    documents: Sequence[SourceDocument],
    metadata: ContentMetadata | None,
) -> None:
    if template is None:
        raise JobValidationError("Template is required")
    if not documents:
        raise JobValidationError("At least one source document is required")
    if metadata is None or not metadata.asset_name.strip() or not metadata.asset_type.strip():
        raise JobValidationError("Asset metadata is incomplete: asset name and asset type are required")


class JobManager:
    def __init__(
        self,
        storage: Storage,
        pipeline: PipelineService,
        repository: JobRepository | None = None,
        event_bus: EventBus | None = None,
    ):
        self.storage = storage
        self.pipeline = pipeline
        self.repository = repository or JobRepository()
        self.event_bus = event_bus or EventBus()

    # ------------------------------------------------------------------
    # Queries and subscriptions
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> GenerationJob | None:
        entry = self.repository.get(job_id)
        return entry.job.snapshot() if entry else None

    def list_jobs(self) -> list[GenerationJob]:
        return [entry.job.snapshot() for entry in self.repository.entries()]

    def subscribe(self, job_id: str, handler: JobEventHandler) -> None:
        self.event_bus.subscribe(job_id, handler)

    def unsubscribe(self, job_id: str, handler: JobEventHandler) -> None:
        self.event_bus.unsubscribe(job_id, handler)

    async def wait_for_job(self, job_id: str) -> GenerationJob | None:
        """Wait for the currently scheduled execution of *job_id* to finish."""
        entry = self.repository.get(job_id)
        if entry is None:
            return None
        while entry.task is not None and not entry.task.done():
            await asyncio.shield(entry.task)
        return entry.job.snapshot()

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    async def resolve_inputs(self, template_id: str, source_ids: Sequence[str]) -> tuple[Template | None, list[SourceDocument]]:
        template = await self.storage.get_template(template_id)
        documents: list[SourceDocument] = []
        for source_id in source_ids:
            document = await self.storage.get_document(source_id)
            if document is not None:
                documents.append(document)
        return template, documents

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def create_job(
        self,
        template_id: str,
        source_ids: Sequence[str],
        metadata: ContentMetadata,
    ) -> GenerationJob:
        """Validate the inputs and register a queued job. Nothing is executed yet."""
        template, documents = await self.resolve_inputs(template_id, source_ids)
        validate_job_inputs(template, documents, metadata)
        return await self._register(template_id, [document.id for document in documents], metadata)

    async def start_job(
        self,
        template_id: str,
        source_ids: Sequence[str],
        metadata: ContentMetadata,
    ) -> GenerationJob:
        """Create a job and schedule its execution. Returns the queued job."""
        template, documents = await self.resolve_inputs(template_id, source_ids)
        if template is None:
            raise JobValidationError(f"Template with ID {template_id} not found")
        if not documents:
            raise JobValidationError("No valid source documents found")
        validate_job_inputs(template, documents, metadata)

        job = await self._register(template_id, [document.id for document in documents], metadata)
        entry = self.repository.get(job.id)
        self._schedule(entry, template, documents)
        return job

    async def cancel_job(self, job_id: str) -> bool:
        """Mark a queued or processing job as failed. In-flight completion calls are not aborted."""
        entry = self.repository.get(job_id)
        if entry is None:
            return False

        def _cancel(job: GenerationJob) -> None:
            job.status = JobStatus.FAILED
            job.error = CANCELLED_ERROR
            job.status_message = "Cancelled"
            job.result = None

        applied = await self._apply(entry, _cancel, expected={JobStatus.QUEUED, JobStatus.PROCESSING})
        if applied:
            logger.info("[%s] Job cancelled", job_id)
        return applied

    async def retry_job(self, job_id: str) -> bool:
        """Re-run a failed job from scratch. Rejected (False) unless the job is failed."""
        entry = self.repository.get(job_id)
        if entry is None or entry.job.status != JobStatus.FAILED:
            return False

        template, documents = await self.resolve_inputs(entry.job.template_id, entry.job.source_document_ids)
        try:
            validate_job_inputs(template, documents, entry.job.metadata)
        except JobValidationError as e:
            logger.warning("[%s] Retry rejected: %s", job_id, str(e))
            return False

        def _reset(job: GenerationJob) -> None:
            job.status = JobStatus.QUEUED
            job.progress = 0
            job.error = None
            job.result = None
            job.status_message = "Restarting job"

        # Bumping the attempt inside the same critical section orphans any execution still running
        if not await self._apply(entry, _reset, expected={JobStatus.FAILED}, bump_attempt=True):
            return False
        logger.info("[%s] Job restarted (attempt %d)", job_id, entry.attempt)
        self._schedule(entry, template, documents)
        return True

    async def process_job(self, job_id: str, template: Template, documents: Sequence[SourceDocument]) -> None:
        """Execute a queued job. Never raises once the job has been picked up."""
        entry = self.repository.get(job_id)
        if entry is None:
            raise NotFoundError(f"Job with ID {job_id} not found")
        validate_job_inputs(template, documents, entry.job.metadata)
        attempt = entry.attempt
        metadata = entry.job.metadata

        def _to_processing(job: GenerationJob) -> None:
            job.status = JobStatus.PROCESSING
            job.progress = 0
            job.status_message = "Processing"

        if not await self._apply(entry, _to_processing, expected={JobStatus.QUEUED}, attempt=attempt):
            logger.info("[%s] Job left the queue before execution started; skipping", job_id)
            return

        logger.info("[%s] Job processing started (attempt %d)", job_id, attempt)
        try:
            await self._set_progress(entry, attempt, 5, "Analyzing documents and template")
            await self._set_progress(entry, attempt, 10, "Starting content generation")

            async def _on_progress(stage: PipelineStage, percent: float, message: str) -> None:
                await self._set_progress(entry, attempt, rescale_progress(stage, percent), message)

            content = await self.pipeline.run(job_id, template, documents, metadata, _on_progress)

            if not self._is_current(entry, attempt):
                logger.info("[%s] Job no longer processing; discarding generated content", job_id)
                return

            if not await self._set_progress(entry, attempt, PERSISTENCE_PROGRESS, "Saving generated content"):
                logger.info("[%s] Job no longer processing; discarding generated content", job_id)
                return
            await self.storage.save_generated_content(content)
            if await self._apply(entry, _completer(content), expected={JobStatus.PROCESSING}, attempt=attempt):
                logger.info("[%s] Job completed; generated content %s", job_id, content.id)
            else:
                # Cancelled while saving: the content must not outlive the job that produced it
                await self.storage.delete_generated_content(content.id)
                logger.info("[%s] Job was cancelled while saving; generated content %s removed", job_id, content.id)

        except (PipelineError, LLMError, JSONParsingError) as e:
            logger.error("[%s] Job failed: %s", job_id, str(e), exc_info=False)
            await self._apply(entry, _failer(str(e)), expected={JobStatus.PROCESSING}, attempt=attempt)
        except Exception as e:
            logger.exception("[%s] Job failed with unexpected error", job_id)
            await self._apply(entry, _failer(str(e) or type(e).__name__), expected={JobStatus.PROCESSING}, attempt=attempt)

    async def shutdown(self) -> None:
        """Cancel every unfinished job and stop its execution task."""
        unfinished = [entry for entry in self.repository.entries() if not entry.job.is_terminal]
        if unfinished:
            logger.info("Shutdown: cancelling %d unfinished jobs", len(unfinished))
        for entry in unfinished:
            await self.cancel_job(entry.job.id)

        tasks = [entry.task for entry in self.repository.entries() if entry.task is not None and not entry.task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _register(self, template_id: str, source_ids: list[str], metadata: ContentMetadata) -> GenerationJob:
        job = GenerationJob(template_id=template_id, source_document_ids=source_ids, metadata=metadata)
        entry = self.repository.add(job)
        async with entry.lock:
            entry.attempt = 1
            self.event_bus.publish(job)
        logger.info("[%s] Job created for template %s with %d source documents", job.id, template_id, len(source_ids))
        return job.snapshot()

    def _schedule(self, entry: JobEntry, template: Template, documents: Sequence[SourceDocument]) -> None:
        entry.task = asyncio.create_task(
            self.process_job(entry.job.id, template, list(documents)),
            name=f"generation-job-{entry.job.id}",
        )

    @staticmethod
    def _is_current(entry: JobEntry, attempt: int) -> bool:
        return entry.attempt == attempt and entry.job.status == JobStatus.PROCESSING

    async def _apply(
        self,
        entry: JobEntry,
        mutate: Callable[[GenerationJob], None],
        expected: set[JobStatus],
        attempt: int | None = None,
        bump_attempt: bool = False,
    ) -> bool:
        """Apply *mutate* and publish, atomically, if the job is in an expected state."""
        async with entry.lock:
            job = entry.job
            if job.status not in expected:
                return False
            if attempt is not None and entry.attempt != attempt:
                return False
            if bump_attempt:
                entry.attempt += 1
            mutate(job)
            job.updated_at = utcnow()
            self.event_bus.publish(job)
            return True

    async def _set_progress(self, entry: JobEntry, attempt: int, progress: float, message: str) -> bool:
        def _progress(job: GenerationJob) -> None:
            # Never move backwards while processing
            job.progress = min(max(job.progress, progress), 100.0)
            job.status_message = message

        return await self._apply(entry, _progress, expected={JobStatus.PROCESSING}, attempt=attempt)


def _completer(content: GeneratedContent) -> Callable[[GenerationJob], None]:
    def _complete(job: GenerationJob) -> None:
        job.status = JobStatus.COMPLETED
        job.result = content
        job.progress = 100
        job.error = None
        job.status_message = "Memorandum generation complete"

    return _complete


def _failer(message: str) -> Callable[[GenerationJob], None]:
    def _fail(job: GenerationJob) -> None:
        job.status = JobStatus.FAILED
        job.error = message
        job.result = None
        job.status_message = "Failed to generate memorandum"

    return _fail
