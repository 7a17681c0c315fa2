import asyncio
import logging

from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import Template

logger = logging.getLogger(__name__)


class InMemoryStorage:
    """Process-local key-value storage for templates, source documents and generated memoranda.

    Records are copied on the way in and out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._templates: dict[str, Template] = {}
        self._documents: dict[str, SourceDocument] = {}
        self._contents: dict[str, GeneratedContent] = {}
        self._lock = asyncio.Lock()

    async def save_template(self, template: Template) -> None:
        async with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
        logger.info("Stored template %s (%s)", template.id, template.name)

    async def get_template(self, template_id: str) -> Template | None:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def list_templates(self) -> list[Template]:
        return [template.model_copy(deep=True) for template in self._templates.values()]

    async def save_document(self, document: SourceDocument) -> None:
        async with self._lock:
            self._documents[document.id] = document
        logger.info("Stored source document %s (%s, %d bytes)", document.id, document.name, document.size)

    async def get_document(self, document_id: str) -> SourceDocument | None:
        return self._documents.get(document_id)

    async def list_documents(self) -> list[SourceDocument]:
        return list(self._documents.values())

    async def save_generated_content(self, content: GeneratedContent) -> None:
        async with self._lock:
            replaced = content.id in self._contents
            self._contents[content.id] = content.model_copy(deep=True)
        logger.info("%s generated content %s", "Updated" if replaced else "Stored", content.id)

    async def get_generated_content(self, content_id: str) -> GeneratedContent | None:
        content = self._contents.get(content_id)
        return content.model_copy(deep=True) if content else None

    async def list_generated_contents(self) -> list[GeneratedContent]:
        return [content.model_copy(deep=True) for content in self._contents.values()]

    async def delete_generated_content(self, content_id: str) -> bool:
        async with self._lock:
            removed = self._contents.pop(content_id, None)
        return removed is not None
