import json
import logging
import pathlib
import re
from typing import Any
from typing import Protocol
from uuid import uuid4

import httpx
import jinja2
from openai import AsyncOpenAI
from openai import OpenAIError
from tenacity import RetryCallState
from tenacity import retry
from tenacity import stop_after_attempt
from tenacity import wait_exponential

from memogen.core.config import settings
from memogen.core.exceptions import ConfigurationError

# Configure module logger
logger = logging.getLogger(__name__)


# Custom exceptions for better error handling
class LLMError(Exception):
    """Raised when LLM call fails"""


class JSONParsingError(Exception):
    """Raised when JSON parsing fails"""


# --- Reusable Jinja2 Environment ---
PROMPT_DIR = pathlib.Path(__file__).parent / "prompt_templates"
env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(PROMPT_DIR),
    trim_blocks=True,
    lstrip_blocks=True,
)


# ---------------------------------------------------------------
# OpenRouter client (async) with required headers
# ---------------------------------------------------------------
timeout_config = httpx.Timeout(
    settings.LLM_CONNECT_TIMEOUT,
    read=settings.LLM_READ_TIMEOUT,
)

_client: AsyncOpenAI | None = None


def get_client() -> AsyncOpenAI:
    """Return the shared OpenRouter client, creating it on first use."""
    global _client
    if _client is None:
        if not settings.openrouter_api_key:
            raise LLMError("API key not configured. Set OPENROUTER_API_KEY.")
        _client = AsyncOpenAI(
            base_url=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key,
            default_headers={
                "HTTP-Referer": "https://investment-memo-generator.com",
                "X-Title": settings.app_name,
            },
            timeout=timeout_config,
            max_retries=2,
        )
    return _client


# ---------------------------------------------------------------
# Helper predicate for tenacity retry
# ---------------------------------------------------------------


def _should_retry_llm_call(retry_state: RetryCallState) -> bool:
    """Determines if a retry should occur based on the exception in RetryCallState."""
    if not retry_state.outcome:
        return False

    exc = retry_state.outcome.exception()
    if not exc:
        return False

    # Unwrap our custom LLMError to get to the original cause (e.g., OpenAIError)
    actual_exception = exc.__cause__ if isinstance(exc, LLMError) and exc.__cause__ else exc

    status = getattr(actual_exception, "status", None) or getattr(actual_exception, "status_code", None)
    if status in {429, 500, 502, 503, 504}:
        logger.debug("Retryable API error status %s detected. Retrying...", status)
        return True
    return False


@retry(
    wait=wait_exponential(multiplier=1, min=2, max=10),
    stop=stop_after_attempt(3),
    retry=_should_retry_llm_call,
    reraise=True,
)  # type: ignore
async def call_llm(
    system_prompt: str,
    user_prompt: str,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """Send one chat completion to OpenRouter and return the stripped message text."""
    call_id = str(uuid4())
    model = model or settings.model_id
    logger.info("[%s] Making LLM API call with model: %s", call_id, model)

    client = get_client()
    try:
        rsp = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens if max_tokens is not None else settings.llm_max_tokens,
            temperature=temperature if temperature is not None else settings.llm_temperature,
            timeout=timeout_config,
        )

        logger.debug("[%s] Raw LLM response structure: %s", call_id, str(rsp))

        if not rsp or not getattr(rsp, "choices", None):
            logger.error("[%s] Invalid response structure from LLM API: %s", call_id, str(rsp))
            raise LLMError(f"Invalid response structure from LLM API: {str(rsp)}")

        first_choice = rsp.choices[0]
        message = getattr(first_choice, "message", None)
        if message is None or getattr(message, "content", None) is None:
            logger.error("[%s] No content in LLM API response: %s", call_id, str(first_choice))
            raise LLMError(f"No content in LLM API response: {str(first_choice)}")

        content = message.content.strip()
        logger.debug("[%s] LLM response received, length: %d chars", call_id, len(content))
        return content
    except LLMError:
        raise
    except OpenAIError as e:
        # Tenacity inspects __cause__ to decide whether to retry
        logger.error("[%s] OpenAI API error: %s", call_id, str(e), exc_info=True)
        raise LLMError(f"OpenAI API error: {str(e)}") from e
    except Exception as e:
        logger.exception("[%s] Unexpected error in LLM call", call_id)
        raise LLMError(f"Unexpected error in LLM call: {str(e)}") from e


class CompletionService(Protocol):
    """Black-box text completion used by every generation stage."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str: ...


class OpenRouterCompletionService:
    """CompletionService backed by :func:`call_llm`."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        return await call_llm(system_prompt, user_prompt, model, temperature, max_tokens)


# ---------------------------------------------------------------
# JSON extractor helper
# ---------------------------------------------------------------
def extract_json(text: str) -> Any:
    """Attempts to robustly extract and parse JSON from LLM responses, handling markdown fences and extraneous text."""
    parse_id = str(uuid4())
    logger.debug("[%s] Attempting to parse JSON response, length: %d", parse_id, len(text))

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("[%s] Initial JSON parse failed, attempting extraction strategies...", parse_id)

    # Strategy 1: Markdown Code Fence Extraction
    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text, re.DOTALL)
    if match:
        try:
            result = json.loads(match.group(1))
            logger.info("[%s] Successfully parsed JSON from markdown code fence.", parse_id)
            return result
        except json.JSONDecodeError:
            logger.warning("[%s] Failed to parse JSON from fenced block, trying next strategy...", parse_id)

    # Strategy 2: Use JSONDecoder().raw_decode for first object/array
    decoder = json.JSONDecoder()
    obj_start = text.find("{")
    arr_start = text.find("[")
    if obj_start == -1 and arr_start == -1:
        logger.error("[%s] No JSON object or array marker found in response", parse_id)
        raise JSONParsingError("No JSON object or array marker found in response")
    start_pos = min(pos for pos in (obj_start, arr_start) if pos != -1)
    try:
        obj, _ = decoder.raw_decode(text, start_pos)
        logger.info("[%s] Successfully parsed JSON using raw_decode.", parse_id)
        return obj
    except json.JSONDecodeError as e:
        logger.error("[%s] Failed to parse JSON using raw_decode: %s", parse_id, str(e))
    raise JSONParsingError("All strategies to parse JSON from LLM response failed.")


# ---------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------
def render_prompt(template_name: str, **context: Any) -> str:
    """Render a prompt template from ``prompt_templates/``."""
    try:
        return env.get_template(template_name).render(**context)
    except jinja2.TemplateNotFound:
        logger.error("Prompt template not found: %s", template_name)
        raise ConfigurationError(f"Prompt template '{template_name}' not found.") from None


def build_system_prompt() -> str:
    return render_prompt("system_prompt.jinja2")
