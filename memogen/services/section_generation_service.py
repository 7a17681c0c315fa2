from __future__ import annotations

import logging
from collections.abc import Mapping
from collections.abc import Sequence

from memogen.core.config import settings
from memogen.core.exceptions import NotFoundError
from memogen.models.memo_models import ContentMetadata
from memogen.models.memo_models import GeneratedSection
from memogen.models.memo_models import ReviewStatus
from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import SourceReference
from memogen.models.memo_models import Template
from memogen.models.memo_models import TemplateSection
from memogen.services.llm import CompletionService
from memogen.services.llm import LLMError
from memogen.services.llm import OpenRouterCompletionService
from memogen.services.llm import build_system_prompt
from memogen.services.llm import render_prompt
from memogen.services.section_guidance import SECTION_KIND_HINTS
from memogen.services.section_guidance import generation_guidance_for

logger = logging.getLogger(__name__)


def find_section(template: Template, section_id: str) -> TemplateSection | None:
    """Look up a section among the top-level sections and their direct children."""
    for section in template.structure.sections:
        if section.id == section_id:
            return section
        for child in section.children:
            if child.id == section_id:
                return child
    return None


def select_candidate_documents(
    documents: Sequence[SourceDocument],
    ranked_ids: Sequence[str],
    minimum: int,
) -> list[SourceDocument]:
    """Ranked documents first, topped up with the remaining ones in input order until *minimum*."""
    by_id = {document.id: document for document in documents}
    selected = [by_id[doc_id] for doc_id in ranked_ids if doc_id in by_id]
    if len(selected) < minimum:
        chosen = {document.id for document in selected}
        fallback = [document for document in documents if document.id not in chosen]
        selected.extend(fallback[: minimum - len(selected)])
    return selected


class SectionGenerationService:
    def __init__(self, completion_service: CompletionService | None = None):
        self.completion_service = completion_service or OpenRouterCompletionService()

    async def generate_section(
        self,
        request_id: str,
        template: Template,
        documents: Sequence[SourceDocument],
        section_id: str,
        metadata: ContentMetadata,
        document_matches: Mapping[str, Sequence[str]],
    ) -> GeneratedSection:
        """Write the content of one template section from its best-matching source documents."""
        section = find_section(template, section_id)
        if section is None:
            logger.error("[%s] Section %s not found in template %s", request_id, section_id, template.id)
            raise NotFoundError(f"Section with ID {section_id} not found in template")

        candidates = select_candidate_documents(
            documents,
            document_matches.get(section_id, []),
            settings.min_candidate_documents,
        )
        logger.info(
            "[%s] Generating section '%s' from %d source documents",
            request_id,
            section.title,
            len(candidates),
        )

        source_references: list[SourceReference] = []
        source_parts: list[str] = []
        for document in candidates:
            source_references.append(
                SourceReference(
                    document_id=document.id,
                    excerpt=document.content[: settings.reference_excerpt_chars] + "...",
                )
            )
            source_parts.append(f"Document: {document.name}\n{document.content[: settings.context_excerpt_chars]}...\n\n")

        user_prompt = render_prompt(
            "generate_section_prompt.jinja2",
            section=section,
            metadata=metadata,
            kind_hint=SECTION_KIND_HINTS[section.kind],
            guidance=generation_guidance_for(section.title),
            source_block="\n".join(source_parts),
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
            logger.error("[%s] Generation failed for section '%s': %s", request_id, section.title, str(e))
            raise

        logger.info("[%s] Generated section '%s' (%d chars)", request_id, section.title, len(text))
        return GeneratedSection(
            template_section_id=section.id,
            title=section.title,
            content=text,
            kind=section.kind,
            review_status=ReviewStatus.PENDING,
            source_references=source_references,
        )
