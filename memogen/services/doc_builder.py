import asyncio
import io
import logging
import re

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

from memogen.models.memo_models import GeneratedContent
from memogen.models.memo_models import SectionKind

# Configure module logger
logger = logging.getLogger(__name__)

BOLD_PATTERN = re.compile(r"(\*\*[^*]+\*\*)")


class DocBuilderError(Exception):
    """Raised when DOCX generation fails"""


def _add_rich_paragraph(doc, text: str, style: str | None = None):
    """Add *text* as a paragraph, turning ``**bold**`` spans into bold runs."""
    paragraph = doc.add_paragraph(style=style)
    for part in BOLD_PATTERN.split(text):
        if not part:
            continue
        if part.startswith("**") and part.endswith("**") and len(part) > 4:
            paragraph.add_run(part[2:-2]).bold = True
        else:
            paragraph.add_run(part)
    return paragraph


def _add_body(doc, content: str) -> None:
    # Blank lines separate paragraphs; markdown bullets become list items
    for block in (b.strip() for b in content.split("\n\n")):
        if not block:
            continue
        lines = [line.strip() for line in block.splitlines() if line.strip()]
        if lines and all(line.startswith(("- ", "* ")) for line in lines):
            for line in lines:
                _add_rich_paragraph(doc, line[2:], style="List Bullet")
        else:
            _add_rich_paragraph(doc, " ".join(lines))


async def build_memorandum_docx(content: GeneratedContent) -> bytes:
    """Render *content* as a DOCX memorandum: title page, then one heading per section."""

    def _sync(generated: GeneratedContent) -> bytes:
        logger.info("[%s] Building DOCX memorandum (%d sections)", generated.id, len(generated.sections))
        try:
            doc = Document()
            metadata = generated.metadata

            title = doc.add_heading("INVESTMENT MEMORANDUM", level=0)
            title.alignment = WD_ALIGN_PARAGRAPH.CENTER
            for line in (metadata.asset_name, metadata.asset_type, metadata.location, metadata.date):
                if line:
                    doc.add_paragraph(line).alignment = WD_ALIGN_PARAGRAPH.CENTER
            doc.add_page_break()

            for section in generated.sections:
                doc.add_heading(section.title, level=1)
                if section.kind == SectionKind.HEADING and not section.content.strip():
                    continue
                _add_body(doc, section.content)

            bio = io.BytesIO()
            doc.save(bio)
            size = bio.tell()
            bio.seek(0)
            logger.info("[%s] Memorandum ready (%d bytes)", generated.id, size)
            return bio.read()
        except Exception as err:
            logger.exception("[%s] Memorandum generation failed", generated.id)
            raise DocBuilderError("unexpected rendering error") from err

    # run sync work in a thread
    return await asyncio.to_thread(_sync, content)
