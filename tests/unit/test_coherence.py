import pytest

from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import GeneratedSection
from memogen.models.memo_models import SectionKind
from memogen.services.coherence_service import CoherenceService
from memogen.services.llm import LLMError
from tests.conftest import FakeCompletionService


@pytest.fixture
def content(metadata):
    return GeneratedContent(
        template_id="t",
        metadata=metadata,
        sections=[
            GeneratedSection(template_section_id="1", title="Executive Summary", content="x" * 800, kind=SectionKind.TEXT),
            GeneratedSection(template_section_id="2", title="Market Analysis", content="Rents grow 3%.", kind=SectionKind.TEXT),
        ],
    )


@pytest.mark.asyncio
async def test_validate_returns_issues_by_title(content):
    fake = FakeCompletionService('```json\n{"Market Analysis": ["Rent growth mismatch"], "Executive Summary": []}\n```')

    issues = await CoherenceService(fake).validate("req", content)

    assert issues == {"Market Analysis": ["Rent growth mismatch"], "Executive Summary": []}
    prompt = fake.calls[0]
    assert "## Market Analysis" in prompt
    # Section excerpts are truncated before being sent
    assert "x" * 501 not in prompt


@pytest.mark.asyncio
async def test_validate_normalizes_values(content):
    fake = FakeCompletionService('{"Market Analysis": "single issue", "Other": 3}')
    assert await CoherenceService(fake).validate("req", content) == {"Market Analysis": ["single issue"]}


@pytest.mark.asyncio
@pytest.mark.parametrize("response", ["no json at all", '["a list"]', "{broken"])
async def test_validate_unusable_response_is_empty(content, response):
    assert await CoherenceService(FakeCompletionService(response)).validate("req", content) == {}


@pytest.mark.asyncio
async def test_validate_provider_error_is_empty(content):
    class Failing:
        async def complete(self, *args):
            raise LLMError("down")

    assert await CoherenceService(Failing()).validate("req", content) == {}
