from __future__ import annotations

import asyncio
import logging

from memogen.core.config import settings
from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import GeneratedSection
from memogen.models.memo_models import ReviewStatus
from memogen.models.memo_models import SectionKind
from memogen.models.memo_models import utcnow
from memogen.services.llm import CompletionService
from memogen.services.llm import LLMError
from memogen.services.llm import OpenRouterCompletionService
from memogen.services.llm import build_system_prompt
from memogen.services.llm import render_prompt
from memogen.services.section_guidance import enhancement_guidance_for

logger = logging.getLogger(__name__)


def needs_enhancement(section: GeneratedSection) -> bool:
    if section.review_status == ReviewStatus.APPROVED:
        return False
    return section.kind != SectionKind.HEADING


class EnhancementService:
    """Second editorial pass over generated sections."""

    def __init__(self, completion_service: CompletionService | None = None, concurrency: int | None = None):
        self.completion_service = completion_service or OpenRouterCompletionService()
        self.concurrency = concurrency or settings.enhancement_concurrency

    async def enhance_section(self, request_id: str, section: GeneratedSection) -> GeneratedSection:
        if not needs_enhancement(section):
            return section

        user_prompt = render_prompt(
            "enhance_section_prompt.jinja2",
            section=section,
            guidance=enhancement_guidance_for(section.title),
        )
        try:
            text = await self.completion_service.complete(
                build_system_prompt(),
                user_prompt,
                settings.model_id,
                settings.llm_temperature,
                settings.llm_max_tokens,
            )
        except LLMError as e:
            logger.error("[%s] Enhancement failed for section '%s': %s", request_id, section.title, str(e))
            raise

        return section.model_copy(update={"content": text, "review_status": ReviewStatus.REVIEWED})

    async def enhance(self, request_id: str, content: GeneratedContent) -> GeneratedContent:
        """Enhance every eligible section concurrently and return a new content object.

        The input is left untouched; nothing is written back until every call has finished.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        eligible = sum(1 for section in content.sections if needs_enhancement(section))
        logger.info("[%s] Enhancing %d of %d sections", request_id, eligible, len(content.sections))

        async def _bounded(section: GeneratedSection) -> GeneratedSection:
            async with semaphore:
                return await self.enhance_section(request_id, section)

        tasks = [asyncio.create_task(_bounded(section)) for section in content.sections]
        try:
            enhanced = await asyncio.gather(*tasks)
        except BaseException:
            # Stop the remaining calls and collect their outcomes before failing the stage
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return content.model_copy(update={"sections": list(enhanced), "updated_at": utcnow()})
