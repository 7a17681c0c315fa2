import pytest

from memogen.core.exceptions import PipelineError
from memogen.models.memo_models import ContentStatus
from memogen.models.memo_models import ReviewStatus
from memogen.services.llm import LLMError
from memogen.services.pipeline import PipelineService
from memogen.services.pipeline import PipelineStage
from memogen.services.pipeline import flatten_sections
from memogen.services.template_parser import build_template
from tests.conftest import ENHANCED_TEXT
from tests.conftest import GENERATED_TEXT
from tests.conftest import FakeCompletionService


def test_flatten_orders_by_level_and_keeps_two_levels(simple_template):
    titles = [section.title for section in flatten_sections(simple_template)]
    assert titles == ["Executive Summary", "Market Analysis", "Risk Factors", "Competitive Landscape"]


def test_flatten_skips_third_level():
    template = build_template("t.md", "# A\n## B\n### C\n")
    assert [section.title for section in flatten_sections(template)] == ["A", "B"]


@pytest.mark.asyncio
async def test_run_generates_enhances_and_validates(simple_template, sample_documents, metadata, fake_completion):
    events = []

    async def on_progress(stage, percent, message):
        events.append((stage, percent, message))

    content = await PipelineService(fake_completion).run("req", simple_template, sample_documents, metadata, on_progress)

    assert [section.title for section in content.sections] == [
        "Executive Summary",
        "Market Analysis",
        "Risk Factors",
        "Competitive Landscape",
    ]
    # Risk Factors has no body, so it stays a heading and is not enhanced
    risk = content.sections[2]
    assert risk.content == GENERATED_TEXT
    assert risk.review_status == ReviewStatus.PENDING
    assert content.sections[0].content == ENHANCED_TEXT
    assert content.sections[0].review_status == ReviewStatus.REVIEWED

    assert content.status == ContentStatus.DRAFT
    assert content.metadata == metadata
    assert content.template_id == simple_template.id
    assert content.validation_results == {"Market Analysis": ["Rent growth differs from the summary"]}

    assert len(fake_completion.calls_of("generation")) == 4
    assert len(fake_completion.calls_of("enhancement")) == 3
    assert len(fake_completion.calls_of("coherence")) == 1
    # Stages run strictly in order
    kinds = [fake_completion.kind_of(prompt) for prompt in fake_completion.calls]
    assert kinds == ["generation"] * 4 + ["enhancement"] * 3 + ["coherence"]

    stages = [stage for stage, _, _ in events]
    assert stages == [PipelineStage.GENERATION] * 4 + [PipelineStage.ENHANCEMENT] * 2 + [PipelineStage.VALIDATION] * 2
    generation_percents = [percent for stage, percent, _ in events if stage == PipelineStage.GENERATION]
    assert generation_percents == [25, 50, 75, 100]


@pytest.mark.asyncio
async def test_run_without_documents_fails_before_any_call(simple_template, metadata, fake_completion):
    with pytest.raises(PipelineError):
        await PipelineService(fake_completion).run("req", simple_template, [], metadata)
    assert fake_completion.calls == []


@pytest.mark.asyncio
async def test_run_unparseable_coherence_still_succeeds(simple_template, sample_documents, metadata):
    fake = FakeCompletionService(coherence_response="I found no problems.")
    content = await PipelineService(fake).run("req", simple_template, sample_documents, metadata)
    assert content.validation_results == {}


@pytest.mark.asyncio
async def test_run_provider_error_aborts(simple_template, sample_documents, metadata, fake_completion):
    fake_completion.generation_failures = 1
    with pytest.raises(LLMError):
        await PipelineService(fake_completion).run("req", simple_template, sample_documents, metadata)
    assert fake_completion.calls_of("enhancement") == []
