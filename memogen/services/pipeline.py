from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from enum import Enum

from memogen.core.exceptions import PipelineError
from memogen.models.memo_models import ContentMetadata
from memogen.models.memo_models import ContentStatus
from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import GeneratedSection
from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import Template
from memogen.models.memo_models import TemplateSection
from memogen.models.memo_models import utcnow
from memogen.services.coherence_service import CoherenceService
from memogen.services.enhancement_service import EnhancementService
from memogen.services.llm import CompletionService
from memogen.services.llm import OpenRouterCompletionService
from memogen.services.relevance_service import match_documents_to_sections
from memogen.services.section_generation_service import SectionGenerationService

# Configure module logger
logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    GENERATION = "generation"
    ENHANCEMENT = "enhancement"
    VALIDATION = "validation"


# (stage, stage-local percent 0-100, human readable message)
ProgressCallback = Callable[[PipelineStage, float, str], Awaitable[None]]


def flatten_sections(template: Template) -> list[TemplateSection]:
    """Top-level sections and their direct children, ordered by heading level (stable)."""
    flat: list[TemplateSection] = []
    for section in template.structure.sections:
        flat.append(section)
        flat.extend(section.children)
    return sorted(flat, key=lambda section: section.level or 0)


class PipelineService:
    """Orchestrates memorandum generation: match, generate, enhance, validate, assemble."""

    def __init__(
        self,
        completion_service: CompletionService | None = None,
        section_generation_service: SectionGenerationService | None = None,
        enhancement_service: EnhancementService | None = None,
        coherence_service: CoherenceService | None = None,
    ):
        completion_service = completion_service or OpenRouterCompletionService()
        logger.info("Initializing PipelineService with step services")
        self.section_generation_service = section_generation_service or SectionGenerationService(completion_service)
        self.enhancement_service = enhancement_service or EnhancementService(completion_service)
        self.coherence_service = coherence_service or CoherenceService(completion_service)

    async def generate_content(
        self,
        request_id: str,
        template: Template,
        documents: Sequence[SourceDocument],
        metadata: ContentMetadata,
        progress_callback: ProgressCallback | None = None,
    ) -> GeneratedContent:
        """Generate every section sequentially, higher-level sections first."""
        document_matches = match_documents_to_sections(template.structure, documents)
        ordered = flatten_sections(template)
        total = len(ordered)
        logger.info("[%s] Generating %d sections", request_id, total)

        sections: list[GeneratedSection] = []
        for index, section in enumerate(ordered, start=1):
            generated = await self.section_generation_service.generate_section(
                request_id,
                template,
                documents,
                section.id,
                metadata,
                document_matches,
            )
            sections.append(generated)
            if progress_callback is not None:
                await progress_callback(
                    PipelineStage.GENERATION,
                    index / total * 100,
                    f"Generated section {index}/{total}: {section.title}",
                )

        return GeneratedContent(template_id=template.id, sections=sections, metadata=metadata)

    async def run(
        self,
        request_id: str,
        template: Template,
        documents: Sequence[SourceDocument],
        metadata: ContentMetadata,
        progress_callback: ProgressCallback | None = None,
    ) -> GeneratedContent:
        """Run the full pipeline and return the assembled draft memorandum."""
        logger.info(
            "[%s] Starting pipeline run: template %s, %d source documents",
            request_id,
            template.id,
            len(documents),
        )

        async def _report(stage: PipelineStage, percent: float, message: str) -> None:
            if progress_callback is not None:
                await progress_callback(stage, percent, message)

        # Input validation
        if not documents:
            raise PipelineError("Input validation failed: at least one source document is required.")

        content = await self.generate_content(request_id, template, documents, metadata, progress_callback)

        await _report(PipelineStage.ENHANCEMENT, 0, "Enhancing content quality")
        enhanced = await self.enhancement_service.enhance(request_id, content)
        await _report(PipelineStage.ENHANCEMENT, 100, "Quality enhancement complete")

        await _report(PipelineStage.VALIDATION, 0, "Validating content coherence")
        validation_results = await self.coherence_service.validate(request_id, enhanced)
        await _report(PipelineStage.VALIDATION, 100, "Coherence validation complete")

        final_content = enhanced.model_copy(
            update={
                "validation_results": validation_results,
                "metadata": metadata,
                "status": ContentStatus.DRAFT,
                "updated_at": utcnow(),
            }
        )
        logger.info("[%s] Pipeline completed successfully", request_id)
        return final_content
