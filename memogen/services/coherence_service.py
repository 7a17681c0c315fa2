from __future__ import annotations

import logging
from typing import Any

from memogen.core.config import settings
from memogen.models.memo_models import GeneratedContent
from memogen.services.llm import CompletionService
from memogen.services.llm import JSONParsingError
from memogen.services.llm import LLMError
from memogen.services.llm import OpenRouterCompletionService
from memogen.services.llm import build_system_prompt
from memogen.services.llm import extract_json
from memogen.services.llm import render_prompt

logger = logging.getLogger(__name__)


def _normalize_issues(data: dict[str, Any]) -> dict[str, list[str]]:
    issues: dict[str, list[str]] = {}
    for title, value in data.items():
        if isinstance(value, list):
            issues[str(title)] = [str(item) for item in value]
        elif isinstance(value, str):
            issues[str(title)] = [value]
    return issues


class CoherenceService:
    """Cross-section consistency check. Advisory only: it never fails the job."""

    def __init__(self, completion_service: CompletionService | None = None):
        self.completion_service = completion_service or OpenRouterCompletionService()

    async def validate(self, request_id: str, content: GeneratedContent) -> dict[str, list[str]]:
        """Ask the model for inconsistencies between sections, keyed by section title."""
        logger.info("[%s] Validating coherence across %d sections", request_id, len(content.sections))
        excerpts = {section.title: section.content[: settings.coherence_excerpt_chars] for section in content.sections}

        try:
            user_prompt = render_prompt("validate_coherence_prompt.jinja2", excerpts=excerpts)
            raw = await self.completion_service.complete(
                build_system_prompt(),
                user_prompt,
                settings.model_id,
                settings.llm_temperature,
                settings.llm_max_tokens,
            )
            data = extract_json(raw)
        except JSONParsingError as e:
            logger.warning("[%s] Coherence response could not be parsed: %s", request_id, str(e))
            return {}
        except LLMError as e:
            logger.warning("[%s] Coherence check skipped after LLM error: %s", request_id, str(e))
            return {}
        except Exception:
            logger.exception("[%s] Unexpected error during coherence check", request_id)
            return {}

        if not isinstance(data, dict):
            logger.warning(
                "[%s] Coherence response is a %s, expected an object; ignoring it",
                request_id,
                type(data).__name__,
            )
            return {}

        issues = _normalize_issues(data)
        logger.info(
            "[%s] Coherence check reported %d issues",
            request_id,
            sum(len(found) for found in issues.values()),
        )
        return issues
