from __future__ import annotations

from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class SectionKind(str, Enum):
    """Kind of a template (and generated) section."""

    HEADING = "heading"
    TEXT = "text"
    TABLE = "table"
    CHART = "chart"
    IMAGE = "image"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class ContentStatus(str, Enum):
    DRAFT = "draft"
    REVIEWING = "reviewing"
    COMPLETED = "completed"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class TemplateSection(BaseModel):
    """A node of the parsed template forest."""

    id: str = Field(default_factory=new_id)
    title: str
    content: str = ""
    kind: SectionKind = SectionKind.HEADING
    level: int | None = None
    children: list[TemplateSection] = Field(default_factory=list)

    def append_body(self, line: str) -> None:
        """Append a body line. A heading becomes text once it holds non-blank content, never back."""
        self.content += line + "\n"
        if self.kind == SectionKind.HEADING and self.content.strip():
            self.kind = SectionKind.TEXT


class TemplateStructure(BaseModel):
    sections: list[TemplateSection] = Field(default_factory=list)


class Template(BaseModel):
    """User-supplied memorandum template together with its parsed structure."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    content_type: str = "text/markdown"
    content: str
    size: int = 0
    uploaded_at: datetime = Field(default_factory=utcnow)
    structure: TemplateStructure = Field(default_factory=TemplateStructure)


class SourceDocument(BaseModel):
    """A source material the memorandum is written from."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    content_type: str = "text/plain"
    content: str
    size: int = 0
    uploaded_at: datetime = Field(default_factory=utcnow)


class ContentMetadata(BaseModel):
    """Describes the asset the memorandum is about. Never mutated by the pipeline."""

    model_config = ConfigDict(frozen=True)

    asset_name: str = ""
    asset_type: str = ""
    location: str = ""
    client: str = ""
    date: str = ""
    other_properties: dict[str, Any] = Field(default_factory=dict)


class SourceReference(BaseModel):
    document_id: str
    page: int | None = None
    excerpt: str | None = None


class GeneratedSection(BaseModel):
    id: str = Field(default_factory=new_id)
    template_section_id: str
    title: str
    content: str
    kind: SectionKind
    review_status: ReviewStatus = ReviewStatus.PENDING
    review_comments: str | None = None
    source_references: list[SourceReference] = Field(default_factory=list)


class GeneratedContent(BaseModel):
    """The memorandum produced by one successful job."""

    id: str = Field(default_factory=new_id)
    template_id: str
    sections: list[GeneratedSection] = Field(default_factory=list)
    status: ContentStatus = ContentStatus.DRAFT
    metadata: ContentMetadata
    validation_results: dict[str, list[str]] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GenerationJob(BaseModel):
    """Generation job record. Owned and mutated by the JobManager only."""

    id: str = Field(default_factory=new_id)
    template_id: str
    source_document_ids: list[str] = Field(default_factory=list)
    metadata: ContentMetadata
    status: JobStatus = JobStatus.QUEUED
    progress: float = Field(default=0, ge=0, le=100)
    status_message: str | None = None
    error: str | None = None
    result: GeneratedContent | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def snapshot(self) -> GenerationJob:
        return self.model_copy(deep=True)
