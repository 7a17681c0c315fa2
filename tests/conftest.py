import asyncio

import pytest
import pytest_asyncio

from memogen.jobs.event_bus import EventBus
from memogen.jobs.job_manager import JobManager
from memogen.jobs.job_repository import JobRepository
from memogen.models.memo_models import ContentMetadata
from memogen.models.memo_models import SourceDocument
from memogen.services.llm import LLMError
from memogen.services.pipeline import PipelineService
from memogen.services.storage.memory_store import InMemoryStorage
from memogen.services.template_parser import build_template

SIMPLE_TEMPLATE = """# Executive Summary
Overview of the investment opportunity and the expected returns.

# Market Analysis
Local market trends and comparable rents.
## Competitive Landscape
Competing properties nearby.

# Risk Factors
"""

GENERATED_TEXT = "Generated section content."
ENHANCED_TEXT = "Enhanced section content."


class FakeCompletionService:
    """Stands in for the LLM provider; answers by prompt kind and records every call."""

    def __init__(self, coherence_response: str = '{"Market Analysis": ["Rent growth differs from the summary"]}'):
        self.coherence_response = coherence_response
        self.calls: list[str] = []
        self.generation_gate: asyncio.Event | None = None
        self.generation_failures = 0
        # Enhancement of the section with this title raises; the others wait on the gate
        self.failing_enhancement: str | None = None
        self.enhancement_gate: asyncio.Event | None = None
        self.cancelled: list[str] = []

    @staticmethod
    def kind_of(user_prompt: str) -> str:
        if "coherence and consistency" in user_prompt:
            return "coherence"
        if "Enhance the following" in user_prompt:
            return "enhancement"
        return "generation"

    def calls_of(self, kind: str) -> list[str]:
        return [prompt for prompt in self.calls if self.kind_of(prompt) == kind]

    async def complete(self, system_prompt, user_prompt, model, temperature, max_tokens):
        self.calls.append(user_prompt)
        kind = self.kind_of(user_prompt)
        if kind == "coherence":
            return self.coherence_response
        if kind == "enhancement":
            return await self._enhance(user_prompt)
        if self.generation_gate is not None:
            await self.generation_gate.wait()
        if self.generation_failures > 0:
            self.generation_failures -= 1
            raise LLMError("provider unavailable")
        return GENERATED_TEXT

    async def _enhance(self, user_prompt: str) -> str:
        if self.failing_enhancement and f'"{self.failing_enhancement}"' in user_prompt:
            raise LLMError("enhancement failed")
        if self.enhancement_gate is not None:
            try:
                await self.enhancement_gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(user_prompt)
                raise
        return ENHANCED_TEXT


@pytest.fixture
def fake_completion():
    return FakeCompletionService()


@pytest.fixture
def simple_template():
    return build_template("Simple memo.md", SIMPLE_TEMPLATE)


@pytest.fixture
def sample_documents():
    return [
        SourceDocument(
            name="summary-notes.txt",
            content="Executive summary: a compelling investment opportunity with strong expected returns.",
        ),
        SourceDocument(
            name="market-study.txt",
            content="Market analysis shows local trends favour the asset and comparable rents keep rising.",
        ),
        SourceDocument(name="rent-roll.txt", content="Unit 1A leased until 2029."),
    ]


@pytest.fixture
def metadata():
    return ContentMetadata(
        asset_name="Harbor Point",
        asset_type="Multifamily",
        location="Boston, MA",
        client="Acme Capital",
        date="2024-05-01",
        other_properties={"units": 240},
    )


@pytest_asyncio.fixture
async def storage(simple_template, sample_documents):
    store = InMemoryStorage()
    await store.save_template(simple_template)
    for document in sample_documents:
        await store.save_document(document)
    return store


@pytest.fixture
def job_manager(storage, fake_completion):
    return JobManager(
        storage=storage,
        pipeline=PipelineService(fake_completion),
        repository=JobRepository(),
        event_bus=EventBus(),
    )
