"""Storage contract consumed by the job manager and the HTTP layer."""

from __future__ import annotations

from typing import Protocol

from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import SourceDocument
from memogen.models.memo_models import Template


class Storage(Protocol):
    async def get_template(self, template_id: str) -> Template | None: ...

    async def get_document(self, document_id: str) -> SourceDocument | None: ...

    async def save_generated_content(self, content: GeneratedContent) -> None:
        """Insert or replace by ``content.id``."""
        ...

    async def save_template(self, template: Template) -> None: ...

    async def save_document(self, document: SourceDocument) -> None: ...

    async def get_generated_content(self, content_id: str) -> GeneratedContent | None: ...

    async def list_templates(self) -> list[Template]: ...

    async def list_documents(self) -> list[SourceDocument]: ...

    async def list_generated_contents(self) -> list[GeneratedContent]: ...

    async def delete_generated_content(self, content_id: str) -> bool: ...
